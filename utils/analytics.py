"""Deterministic aggregation of project costs and reaction ratings for dashboards."""
from __future__ import annotations

import logging
import statistics
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import func

from extensions import db
from models import Project, Reaction
from utils.filters import ProjectFilters, split_contractors

logger = logging.getLogger(__name__)

RATING_SCORES: Dict[str, int] = {"excellent": 4, "standard": 3, "sub-standard": 2, "ghost": 1}

CONTRACTOR_SORTS: Dict[str, str] = {
    "highest-rated": "best_score",
    "most-rated": "total_ratings",
    "highest-ghost": "ghost_count",
    "most-controversial": "controversy_score",
    "recent-rated": "latest_rating",
}
DEFAULT_CONTRACTOR_SORT = "highest-rated"


@dataclass
class GroupRollup:
    """Count and summed cost of the projects sharing one grouping key."""

    key: str
    count: int = 0
    cost: float = 0.0

    def to_payload(self, key_name: str) -> dict:
        return {key_name: self.key, "count": self.count, "cost": self.cost}


@dataclass
class AnalyticsSnapshot:
    total_projects: int
    total_cost: float
    avg_cost: float
    active_regions: int
    projects_by_region: List[GroupRollup]
    projects_by_location: List[GroupRollup]
    projects_by_contractor: List[GroupRollup]
    projects_by_fiscal_year: List[GroupRollup]
    project_rollups: Dict[str, "ProjectReactionRollup"] = field(default_factory=dict)
    contractor_rollups: List["ContractorRatingRollup"] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "totalProjects": self.total_projects,
            "totalCost": self.total_cost,
            "avgCost": self.avg_cost,
            "activeRegions": self.active_regions,
            "projectsByRegion": [g.to_payload("region") for g in self.projects_by_region],
            "projectsByLocation": [g.to_payload("location") for g in self.projects_by_location],
            "projectsByContractor": [g.to_payload("contractor") for g in self.projects_by_contractor],
            "projectsByFiscalYear": [g.to_payload("fy") for g in self.projects_by_fiscal_year],
            "totalReactions": sum(r.reaction_count for r in self.project_rollups.values()),
            "projectReactions": [r.to_payload() for r in self.project_rollups.values()],
            "contractorRatings": [c.to_payload() for c in self.contractor_rollups],
        }


@dataclass
class ProjectReactionRollup:
    project: Project
    reaction_count: int = 0
    average_reaction_score: float = 0.0
    ghost_count: int = 0
    variance: float = 0.0
    latest_rating: float = 0.0

    @property
    def reaction_score(self) -> float:
        return self.average_reaction_score * self.reaction_count

    def to_payload(self) -> dict:
        payload = self.project.to_payload()
        payload.update(
            {
                "reactionCount": self.reaction_count,
                "averageReactionScore": self.average_reaction_score,
                "reactionScore": self.reaction_score,
                "ghostCount": self.ghost_count,
                "variance": self.variance,
                "latestRating": self.latest_rating,
            }
        )
        return payload


@dataclass
class ContractorRatingRollup:
    contractor: str
    projects: List[ProjectReactionRollup] = field(default_factory=list)
    best_score: float = 0.0
    total_ratings: int = 0
    ghost_count: int = 0
    latest_rating: float = 0.0
    controversy_score: float = 0.0

    def to_payload(self) -> dict:
        return {
            "contractor": self.contractor,
            "projects": [p.to_payload() for p in self.projects],
            "bestScore": self.best_score,
            "totalRatings": self.total_ratings,
            "ghostCount": self.ghost_count,
            "latestRating": self.latest_rating,
            "controversyScore": self.controversy_score,
        }


def _epoch(moment: Optional[datetime]) -> float:
    if moment is None:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _group(projects: Iterable[Project], key_fn: Callable[[Project], str]) -> List[GroupRollup]:
    groups: Dict[str, GroupRollup] = {}
    for project in projects:
        key = key_fn(project)
        rollup = groups.setdefault(key, GroupRollup(key=key))
        rollup.count += 1
        rollup.cost += float(project.cost)
    return list(groups.values())


def _group_contractors(projects: Iterable[Project], use_full_cost: bool) -> List[GroupRollup]:
    groups: Dict[str, GroupRollup] = {}
    for project in projects:
        members = split_contractors(project.contractor)
        if not members:
            continue
        cost = float(project.cost)
        share = cost if use_full_cost else cost / len(members)
        for member in members:
            rollup = groups.setdefault(member, GroupRollup(key=member))
            rollup.count += 1
            rollup.cost += share
    return list(groups.values())


def rollup_project_reactions(projects: Iterable[Project], reactions: Iterable[Reaction]) -> Dict[str, ProjectReactionRollup]:
    """Fold reactions into one rollup per project; unrated projects report zeros."""
    rollups = {project.id: ProjectReactionRollup(project=project) for project in projects}
    scores: Dict[str, List[int]] = {}
    for reaction in reactions:
        rollup = rollups.get(reaction.project_id)
        score = RATING_SCORES.get(reaction.rating)
        if rollup is None or score is None:
            continue
        scores.setdefault(reaction.project_id, []).append(score)
        if reaction.rating == "ghost":
            rollup.ghost_count += 1
        rollup.latest_rating = max(rollup.latest_rating, _epoch(reaction.updated_at or reaction.created_at))

    for project_id, values in scores.items():
        rollup = rollups[project_id]
        rollup.reaction_count = len(values)
        rollup.average_reaction_score = statistics.fmean(values)
        rollup.variance = statistics.variance(values) if len(values) >= 2 else 0.0
    return rollups


def rollup_contractors(project_rollups: Iterable[ProjectReactionRollup], rated_only: bool = True) -> List[ContractorRatingRollup]:
    """Group project rollups by the raw contractor string of each project."""
    contractors: Dict[str, ContractorRatingRollup] = {}
    for rollup in project_rollups:
        name = (rollup.project.contractor or "").strip()
        if not name or (rated_only and rollup.reaction_count == 0):
            continue
        entry = contractors.setdefault(name, ContractorRatingRollup(contractor=name))
        entry.projects.append(rollup)
        entry.best_score = max(entry.best_score, rollup.average_reaction_score)
        entry.total_ratings += rollup.reaction_count
        entry.ghost_count += rollup.ghost_count
        entry.latest_rating = max(entry.latest_rating, rollup.latest_rating)
        entry.controversy_score += rollup.variance

    for entry in contractors.values():
        entry.projects.sort(key=lambda r: r.average_reaction_score, reverse=True)
    return [contractors[name] for name in sorted(contractors)]


def rank_contractors(rollups: List[ContractorRatingRollup], sort_by: Optional[str]) -> List[ContractorRatingRollup]:
    attribute = CONTRACTOR_SORTS.get(sort_by or "", CONTRACTOR_SORTS[DEFAULT_CONTRACTOR_SORT])
    return sorted(rollups, key=lambda r: getattr(r, attribute), reverse=True)


def compute_analytics(
    projects: Iterable[Project],
    reactions: Iterable[Reaction],
    filters: Optional[ProjectFilters] = None,
) -> AnalyticsSnapshot:
    """Aggregate an already filtered project set.

    ``filters`` only shapes the output: the location drill-down appears when a
    region is selected and joint-venture costs are split unless the full-cost
    option is set.
    """
    projects = list(projects)
    filters = filters or ProjectFilters()

    total_projects = len(projects)
    total_cost = sum(float(p.cost) for p in projects)
    avg_cost = total_cost / total_projects if total_projects else 0.0

    by_location: List[GroupRollup] = []
    if filters.region:
        by_location = _group((p for p in projects if p.region == filters.region), lambda p: p.location)

    project_rollups = rollup_project_reactions(projects, reactions)
    snapshot = AnalyticsSnapshot(
        total_projects=total_projects,
        total_cost=total_cost,
        avg_cost=avg_cost,
        active_regions=len({p.region for p in projects}),
        projects_by_region=_group(projects, lambda p: p.region),
        projects_by_location=by_location,
        projects_by_contractor=_group_contractors(projects, filters.use_full_cost_for_joint_ventures),
        projects_by_fiscal_year=_group(projects, lambda p: p.fiscal_year),
        project_rollups=project_rollups,
        contractor_rollups=rollup_contractors(project_rollups.values()),
    )
    logger.debug("analytics_computed", extra={"projects": total_projects, "region": filters.region})
    return snapshot


DEFAULT_CACHE_MAX_ENTRIES = 256

# Least recently used first.
_ANALYTICS_CACHE: "OrderedDict[tuple, dict]" = OrderedDict()


def invalidate_analytics_cache() -> None:
    _ANALYTICS_CACHE.clear()


def data_revision() -> tuple:
    """Token that changes whenever projects or reactions are written."""
    project_count, project_updated = db.session.query(func.count(Project.id), func.max(Project.updated_at)).one()
    reaction_count, reaction_updated = db.session.query(func.count(Reaction.id), func.max(Reaction.updated_at)).one()
    return (project_count, str(project_updated), reaction_count, str(reaction_updated))


def _prune(now: float, max_entries: int) -> None:
    for cache_key in [k for k, entry in _ANALYTICS_CACHE.items() if entry["expires"] <= now]:
        del _ANALYTICS_CACHE[cache_key]
    while len(_ANALYTICS_CACHE) > max_entries:
        _ANALYTICS_CACHE.popitem(last=False)


def cached(
    namespace: str,
    key: tuple,
    ttl_seconds: int,
    builder: Callable[[], object],
    max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
):
    """Read-through LRU cache for analytics payloads; a zero TTL disables caching.

    Expired entries are dropped on every insert and at most ``max_entries``
    payloads are kept.
    """
    if ttl_seconds <= 0:
        return builder()
    cache_key = (namespace, key, data_revision())
    now = time.time()
    entry = _ANALYTICS_CACHE.get(cache_key)
    if entry is not None:
        if entry["expires"] > now:
            _ANALYTICS_CACHE.move_to_end(cache_key)
            return entry["data"]
        del _ANALYTICS_CACHE[cache_key]
    data = builder()
    _ANALYTICS_CACHE[cache_key] = {"data": data, "expires": now + ttl_seconds}
    _prune(now, max(1, max_entries))
    return data
