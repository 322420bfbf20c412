"""Project filter parsing and in-memory application for listings and analytics."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

DATE_RANGES = ("12months", "24months", "alltime")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
)


class FilterValidationError(Exception):
    """Raised when a query string filter cannot be interpreted."""

    def __init__(self, errors: dict):
        super().__init__("Invalid filters")
        self.errors = errors


def parse_project_date(value) -> Optional[datetime]:
    """Parse the free-text start/completion dates stored on projects."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    text = str(value).strip()
    if not text:
        return None
    try:
        # Handles offsets and the trailing Z emitted by JavaScript clients.
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def split_contractors(contractor: Optional[str]) -> List[str]:
    """Return the distinct joint-venture members of a contractor string, in order."""
    members: List[str] = []
    for part in (contractor or "").split("/"):
        name = part.strip()
        if name and name not in members:
            members.append(name)
    return members


def _shift_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # 29 February in a non-leap target year.
        return moment.replace(year=moment.year - years, day=28)


def _text(args: Mapping, key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _flag(args: Mapping, key: str) -> bool:
    value = args.get(key)
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ProjectFilters:
    search: Optional[str] = None
    min_cost: Optional[float] = None
    max_cost: Optional[float] = None
    region: Optional[str] = None
    contractor: Optional[str] = None
    fiscal_year: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    date_range: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    use_full_cost_for_joint_ventures: bool = False

    @classmethod
    def from_args(cls, args: Mapping) -> "ProjectFilters":
        """Build filters from request query arguments (camelCase keys)."""
        errors = {}

        costs = {}
        for key in ("minCost", "maxCost"):
            raw = _text(args, key)
            if raw is None:
                costs[key] = None
                continue
            try:
                value = float(re.sub(r"[,\s]", "", raw))
            except ValueError:
                errors[key] = "Must be a number."
                continue
            if not math.isfinite(value):
                errors[key] = "Must be a finite number."
                continue
            costs[key] = value

        date_range = _text(args, "dateRange")
        if date_range is not None and date_range not in DATE_RANGES:
            errors["dateRange"] = f"Must be one of: {', '.join(DATE_RANGES)}."

        bounds = {}
        for key in ("dateFrom", "dateTo"):
            raw = _text(args, key)
            bounds[key] = parse_project_date(raw) if raw else None
            if raw and bounds[key] is None:
                errors[key] = "Unrecognized date."

        if errors:
            raise FilterValidationError(errors)

        return cls(
            search=_text(args, "search"),
            min_cost=costs["minCost"],
            max_cost=costs["maxCost"],
            region=_text(args, "region"),
            contractor=_text(args, "contractor"),
            fiscal_year=_text(args, "fiscalYear"),
            location=_text(args, "location"),
            status=_text(args, "status"),
            date_range=date_range,
            date_from=bounds["dateFrom"],
            date_to=bounds["dateTo"],
            use_full_cost_for_joint_ventures=_flag(args, "useFullCostForJointVentures"),
        )

    def cache_key(self) -> tuple:
        return tuple(sorted((k, str(v)) for k, v in asdict(self).items()))


def _matches_date_bound(dates: List[datetime], predicate) -> bool:
    return any(predicate(d) for d in dates)


def apply_filters(projects: Iterable, filters: Optional[ProjectFilters], now: Optional[datetime] = None) -> list:
    """Return the projects that satisfy every set filter, preserving input order."""
    projects = list(projects)
    if filters is None:
        return projects

    now = now or datetime.utcnow()
    cutoff = None
    if filters.date_range == "12months":
        cutoff = _shift_years(now, 1)
    elif filters.date_range == "24months":
        cutoff = _shift_years(now, 2)

    search = filters.search.lower() if filters.search else None
    location = filters.location.lower() if filters.location else None

    selected = []
    for project in projects:
        if search:
            haystack = (project.project_name, project.location, project.contractor, project.region, project.notes)
            if not any(search in (field or "").lower() for field in haystack):
                continue

        if filters.min_cost is not None or filters.max_cost is not None:
            cost = float(project.cost)
            if filters.min_cost is not None and cost < filters.min_cost:
                continue
            if filters.max_cost is not None and cost > filters.max_cost:
                continue

        if filters.region and project.region != filters.region:
            continue
        if filters.fiscal_year and project.fiscal_year != filters.fiscal_year:
            continue
        if filters.status and project.status != filters.status:
            continue
        if filters.contractor:
            if project.contractor != filters.contractor and filters.contractor not in split_contractors(project.contractor):
                continue
        if location and location not in (project.location or "").lower():
            continue

        if cutoff is not None or filters.date_from or filters.date_to:
            dates = [d for d in (parse_project_date(project.start_date), parse_project_date(project.completion_date)) if d]
            if cutoff is not None and not _matches_date_bound(dates, lambda d: d >= cutoff):
                continue
            if filters.date_from and not _matches_date_bound(dates, lambda d: d >= filters.date_from):
                continue
            if filters.date_to and not _matches_date_bound(dates, lambda d: d <= filters.date_to):
                continue

        selected.append(project)

    logger.debug("filters_applied", extra={"input": len(projects), "selected": len(selected)})
    return selected
