"""
API tests for /api/profiles.

Tests cover:
1. First profile becomes the default
2. Duplicate names per owner
3. Private profile access
4. Switching the default and soft deletion
"""


def _create(client, headers, **fields):
    body = {"name": "My life"}
    body.update(fields)
    return client.post("/api/profiles", json=body, headers=headers)


class TestProfileRoutes:

    def test_first_profile_is_default(self, client, user, auth_headers):
        headers = auth_headers(user)

        first = _create(client, headers).json()["data"]
        second = _create(client, headers, name="Baby", type="child").json()["data"]

        assert first["is_default"] is True
        assert second["is_default"] is False
        assert second["type"] == "child"

    def test_duplicate_name_rejected(self, client, user, auth_headers):
        headers = auth_headers(user)
        _create(client, headers)

        response = _create(client, headers)

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_same_name_for_other_user_allowed(self, client, user, other_user, auth_headers):
        _create(client, auth_headers(user))
        assert _create(client, auth_headers(other_user)).status_code == 201

    def test_invalid_type(self, client, user, auth_headers):
        response = _create(client, auth_headers(user), type="robot")
        assert response.status_code == 400

    def test_private_profile_forbidden(self, client, user, other_user, auth_headers):
        profile_id = _create(client, auth_headers(user)).json()["data"]["id"]

        response = client.get(f"/api/profiles/{profile_id}", headers=auth_headers(other_user))

        assert response.status_code == 403

    def test_public_profile_listed_for_others(self, client, user, other_user, auth_headers):
        _create(client, auth_headers(user), name="Shared", is_public=True)
        _create(client, auth_headers(user), name="Hidden")

        data = client.get("/api/profiles", headers=auth_headers(other_user)).json()["data"]

        assert [profile["name"] for profile in data["profiles"]] == ["Shared"]
        assert data["pagination"]["total"] == 1

    def test_switch_default(self, client, user, auth_headers):
        headers = auth_headers(user)
        first_id = _create(client, headers).json()["data"]["id"]
        second_id = _create(client, headers, name="Baby").json()["data"]["id"]

        response = client.put(f"/api/profiles/{second_id}", json={"is_default": True}, headers=headers)

        assert response.json()["data"]["is_default"] is True
        assert client.get(f"/api/profiles/{first_id}", headers=headers).json()["data"]["is_default"] is False

    def test_deleting_default_promotes_another(self, client, user, auth_headers):
        headers = auth_headers(user)
        first_id = _create(client, headers).json()["data"]["id"]
        second_id = _create(client, headers, name="Baby").json()["data"]["id"]

        response = client.delete(f"/api/profiles/{first_id}", headers=headers)

        assert response.status_code == 200
        assert client.get(f"/api/profiles/{first_id}", headers=headers).status_code == 404
        assert client.get(f"/api/profiles/{second_id}", headers=headers).json()["data"]["is_default"] is True

    def test_only_owner_updates(self, client, user, other_user, auth_headers):
        profile_id = _create(client, auth_headers(user), is_public=True).json()["data"]["id"]

        response = client.put(f"/api/profiles/{profile_id}", json={"name": "Taken"}, headers=auth_headers(other_user))

        assert response.status_code == 403
