"""HTTP tests for dashboard analytics, contractor rankings and service routes."""

from __future__ import annotations

from utils import analytics


class TestDashboardAnalytics:
    def test_totals(self, client, make_project):
        make_project(cost=100, region="Region I")
        make_project(cost=300, region="Region II")
        body = client.get("/api/analytics").get_json()
        assert body["totalProjects"] == 2
        assert body["totalCost"] == 400
        assert body["avgCost"] == 200
        assert body["activeRegions"] == 2
        assert body["projectsByLocation"] == []

    def test_region_scope_adds_location_breakdown(self, client, make_project):
        make_project(region="Region I", location="Laoag")
        make_project(region="Region II", location="Tuguegarao")
        body = client.get("/api/analytics?region=Region%20I").get_json()
        assert body["totalProjects"] == 1
        assert body["projectsByLocation"] == [{"location": "Laoag", "count": 1, "cost": 1000000.0}]

    def test_joint_venture_split(self, client, make_project):
        make_project(contractor="A Corp / B Corp", cost=100)
        split = {g["contractor"]: g["cost"] for g in client.get("/api/analytics").get_json()["projectsByContractor"]}
        full = {
            g["contractor"]: g["cost"]
            for g in client.get("/api/analytics?useFullCostForJointVentures=true").get_json()["projectsByContractor"]
        }
        assert split == {"A Corp": 50, "B Corp": 50}
        assert full == {"A Corp": 100, "B Corp": 100}

    def test_invalid_filters(self, client):
        assert client.get("/api/analytics?dateRange=decade").status_code == 400
        assert client.get("/api/analytics?minCost=nan").status_code == 400

    def test_includes_reaction_rollups(self, client, make_user, make_project, make_reaction):
        rated = make_project(contractor="Good Works")
        make_project(contractor="Unrated Inc")
        make_reaction(make_user(), rated, "excellent")
        make_reaction(make_user(), rated, "ghost")

        body = client.get("/api/analytics").get_json()
        assert body["totalReactions"] == 2

        projects = {p["id"]: p for p in body["projectReactions"]}
        assert len(projects) == 2
        assert projects[rated.id]["reactionCount"] == 2
        assert projects[rated.id]["averageReactionScore"] == 2.5
        assert projects[rated.id]["reactionScore"] == 5
        assert projects[rated.id]["ghostCount"] == 1

        assert [c["contractor"] for c in body["contractorRatings"]] == ["Good Works"]
        assert body["contractorRatings"][0]["totalRatings"] == 2

    def test_cache_is_bounded(self, app, client, make_project):
        app.config["ANALYTICS_CACHE_SECONDS"] = 60
        app.config["ANALYTICS_CACHE_MAX_ENTRIES"] = 5
        analytics.invalidate_analytics_cache()
        make_project()
        for i in range(20):
            assert client.get(f"/api/analytics?search=x{i}").status_code == 200
        assert len(analytics._ANALYTICS_CACHE) == 5
        analytics.invalidate_analytics_cache()

    def test_cache_is_refreshed_by_writes(self, app, client, make_project):
        app.config["ANALYTICS_CACHE_SECONDS"] = 60
        analytics.invalidate_analytics_cache()
        make_project()
        assert client.get("/api/analytics").get_json()["totalProjects"] == 1
        make_project()
        assert client.get("/api/analytics").get_json()["totalProjects"] == 2


class TestContractorRankings:
    def test_ranked_by_reactions(self, client, make_user, make_project, make_reaction):
        good = make_project(contractor="Good Works")
        ghost = make_project(contractor="Ghost Builders")
        make_project(contractor="Unrated Inc")
        rater = make_user()
        make_reaction(rater, good, "excellent")
        make_reaction(rater, ghost, "ghost")
        make_reaction(make_user(), ghost, "ghost")

        best = client.get("/api/projects/by-reactions").get_json()
        assert [c["contractor"] for c in best] == ["Good Works", "Ghost Builders"]
        assert best[0]["projects"][0]["averageReactionScore"] == 4

        ghosts = client.get("/api/projects/by-reactions?sortBy=highest-ghost").get_json()
        assert ghosts[0]["contractor"] == "Ghost Builders"
        assert ghosts[0]["ghostCount"] == 2

    def test_filters_narrow_contractors(self, client, make_user, make_project, make_reaction):
        rater = make_user()
        make_reaction(rater, make_project(contractor="North Co", region="Region I"), "standard")
        make_reaction(rater, make_project(contractor="South Co", region="Region XI"), "excellent")

        body = client.get("/api/projects/by-reactions?region=Region%20I").get_json()
        assert [c["contractor"] for c in body] == ["North Co"]
        assert client.get("/api/projects/by-reactions?maxCost=lots").status_code == 400

    def test_unknown_sort_falls_back(self, client, make_user, make_project, make_reaction):
        make_reaction(make_user(), make_project(), "standard")
        response = client.get("/api/projects/by-reactions?sortBy=alphabetical")
        assert response.status_code == 200
        assert len(response.get_json()) == 1


class TestLeaderboard:
    def test_leaderboard(self, client, make_user, make_project, make_reaction):
        user = make_user(username="top_rater")
        make_reaction(user, make_project(), "standard")
        make_user()
        board = client.get("/api/users/leaderboard").get_json()
        assert len(board) == 1
        assert board[0]["user"]["name"] == "top_rater"
        assert board[0]["reactionCount"] == 1


class TestService:
    def test_health(self, client):
        response = client.get("/health")
        assert response.get_json() == {"status": "ok", "database": "ok"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}
