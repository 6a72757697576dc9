"""
API tests for /api/achievements and /api/locations.

Tests cover:
1. Template endpoints are public to read and admin-only to write
2. Initialize, progress and listing for the caller
3. Leaderboard requires authentication
4. Check-in status codes for new and merged visits
"""

TEMPLATE_BODY = {
    "name": "Explorer",
    "description": "Check in at five places",
    "type": "exploration",
    "category": "exploration",
    "icon": "compass",
    "condition_type": "count",
    "condition_target": 5,
    "points": 40,
}


class TestAchievementRoutes:

    def test_templates_are_public(self, client, make_template):
        make_template()
        make_template(is_hidden=True)

        response = client.get("/api/achievements/templates")

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["templates"]) == 1
        assert data["templates"][0]["is_available"] is True

    def test_create_template_requires_admin(self, client, user, admin_user, auth_headers):
        forbidden = client.post("/api/achievements/templates", json=TEMPLATE_BODY, headers=auth_headers(user))
        assert forbidden.status_code == 403

        created = client.post("/api/achievements/templates", json=TEMPLATE_BODY, headers=auth_headers(admin_user))
        assert created.status_code == 201
        assert created.json()["data"]["created_by"] == admin_user.id

    def test_initialize_and_progress(self, client, user, auth_headers, make_template):
        make_template(condition_target=4)
        headers = auth_headers(user)

        initialized = client.post("/api/achievements/initialize", headers=headers).json()["data"]
        assert initialized["created_count"] == 1
        achievement_id = initialized["achievements"][0]["id"]

        response = client.put(
            f"/api/achievements/progress/{achievement_id}", json={"current": 2}, headers=headers
        )
        data = response.json()["data"]
        assert data["status"] == "in_progress"
        assert data["progress_percentage"] == 50.0
        assert data["remaining"] == 2

        listing = client.get("/api/achievements/user", headers=headers).json()["data"]
        assert listing["stats"]["in_progress"] == 1
        assert listing["pagination"]["total"] == 1

    def test_negative_progress_rejected(self, client, user, auth_headers, make_template):
        make_template()
        headers = auth_headers(user)
        achievement_id = client.post("/api/achievements/initialize", headers=headers).json()["data"]["achievements"][0]["id"]

        response = client.put(f"/api/achievements/progress/{achievement_id}", json={"current": -1}, headers=headers)

        assert response.status_code == 400

    def test_other_users_achievements_forbidden(self, client, user, other_user, auth_headers):
        response = client.get(f"/api/achievements/user/{other_user.id}", headers=auth_headers(user))
        assert response.status_code == 403

    def test_leaderboard(self, client, user, admin_user, auth_headers, make_template):
        template = make_template(points=15)
        assert client.get("/api/achievements/leaderboard").status_code == 401

        client.post(
            "/api/achievements/grant",
            json={"user_id": user.id, "template_id": template.id, "reason": "Launch party"},
            headers=auth_headers(admin_user),
        )
        data = client.get("/api/achievements/leaderboard", headers=auth_headers(user)).json()["data"]

        assert data["type"] == "total_points"
        assert data["leaderboard"][0]["user"]["username"] == "alice"
        assert data["leaderboard"][0]["total_points"] == 15


class TestLocationRoutes:

    def test_checkin_then_revisit(self, client, user, auth_headers):
        headers = auth_headers(user)
        body = {"latitude": 40.7580, "longitude": -73.9855, "address": "Times Square"}

        first = client.post("/api/locations", json=body, headers=headers)
        second = client.post("/api/locations", json=body, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["data"]["visit_count"] == 2

    def test_invalid_coordinates(self, client, user, auth_headers):
        response = client.post(
            "/api/locations",
            json={"latitude": 123, "longitude": 0, "address": "Nowhere"},
            headers=auth_headers(user),
        )
        assert response.status_code == 400
