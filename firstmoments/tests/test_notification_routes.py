"""
API tests for /api/notifications.

Tests cover:
1. Authentication and response envelope
2. Sending, listing and unread count
3. Read and delete flows over HTTP
"""
from firstmoments.models import Notification


def _seed(db_session, recipient, count=1, **fields):
    for index in range(count):
        db_session.add(Notification(
            recipient_id=recipient.id,
            type=fields.get("type", "system"),
            category=fields.get("category", "system"),
            title=f"Notice {index}",
            message="Body",
        ))
    db_session.commit()


class TestNotificationRoutes:

    def test_requires_authentication(self, client):
        response = client.get("/api/notifications")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_send_and_list(self, client, admin_user, other_user, auth_headers):
        response = client.post(
            "/api/notifications",
            json={"recipient_id": other_user.id, "type": "mention", "title": "Hi", "message": "Look"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["category"] == "social"

        response = client.get("/api/notifications", headers=auth_headers(other_user))
        data = response.json()["data"]
        assert len(data["notifications"]) == 1
        assert data["pagination"]["total"] == 1
        assert data["pagination"]["total_pages"] == 1

    def test_send_requires_admin(self, client, db_session, user, other_user, auth_headers):
        response = client.post(
            "/api/notifications",
            json={
                "recipient_id": other_user.id,
                "type": "security",
                "title": "Reset your password",
                "message": "Click here",
                "priority": "urgent",
            },
            headers=auth_headers(user),
        )

        assert response.status_code == 403
        assert response.json()["success"] is False
        assert db_session.query(Notification).count() == 0

    def test_invalid_type_is_400(self, client, admin_user, other_user, auth_headers):
        response = client.post(
            "/api/notifications",
            json={"recipient_id": other_user.id, "type": "poke", "title": "Hi", "message": "Look"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_missing_field_is_400(self, client, admin_user, other_user, auth_headers):
        response = client.post(
            "/api/notifications",
            json={"recipient_id": other_user.id, "type": "mention"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 400
        assert response.json()["errors"]

    def test_unread_count_and_read_all(self, client, db_session, user, auth_headers):
        _seed(db_session, user, count=3)
        headers = auth_headers(user)

        assert client.get("/api/notifications/unread-count", headers=headers).json()["data"]["unread_count"] == 3

        response = client.put("/api/notifications/read-all", headers=headers)
        assert response.json()["data"]["updated_count"] == 3
        assert client.get("/api/notifications/unread-count", headers=headers).json()["data"]["unread_count"] == 0

    def test_mark_read_twice(self, client, db_session, user, auth_headers):
        _seed(db_session, user)
        notification_id = db_session.query(Notification).first().id
        headers = auth_headers(user)

        first = client.put(f"/api/notifications/{notification_id}/read", headers=headers)
        second = client.put(f"/api/notifications/{notification_id}/read", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["message"] == "Notification already read"
        assert first.json()["data"]["read_at"] == second.json()["data"]["read_at"]

    def test_foreign_notification_is_403(self, client, db_session, user, other_user, auth_headers):
        _seed(db_session, other_user)
        notification_id = db_session.query(Notification).first().id

        response = client.get(f"/api/notifications/{notification_id}", headers=auth_headers(user))
        assert response.status_code == 403

    def test_unknown_notification_is_404(self, client, user, auth_headers):
        response = client.delete("/api/notifications/12345", headers=auth_headers(user))
        assert response.status_code == 404
        assert response.json()["message"] == "Notification not found"

    def test_batch_delete(self, client, db_session, user, other_user, auth_headers):
        _seed(db_session, user, count=2)
        _seed(db_session, other_user)
        ids = [notification.id for notification in db_session.query(Notification).all()]

        response = client.request(
            "DELETE", "/api/notifications/batch", json={"ids": ids}, headers=auth_headers(user)
        )

        assert response.status_code == 200
        assert response.json()["data"]["deleted_count"] == 2

    def test_batch_delete_rejects_empty_list(self, client, user, auth_headers):
        response = client.request(
            "DELETE", "/api/notifications/batch", json={"ids": []}, headers=auth_headers(user)
        )
        assert response.status_code == 400

    def test_test_notification(self, client, user, auth_headers):
        response = client.post("/api/notifications/test", headers=auth_headers(user))
        assert response.status_code == 201
        assert response.json()["data"]["type"] == "system"
