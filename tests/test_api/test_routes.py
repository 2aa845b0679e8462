"""
Tests for the HTTP API.

These tests verify the endpoints, status codes and the response envelope.
"""

from fastapi.testclient import TestClient

from event_driven.runtime import Runtime
from shared.models import Book


def _subscribe_category(client: TestClient, user: dict, category_id: str = "cat-sci", category_name: str = "Science"):
    return client.post(
        "/api/subscriptions/category/subscribe",
        json={
            "userId": user["user_id"],
            "userEmail": user["user_email"],
            "userName": user["user_name"],
            "categoryId": category_id,
            "categoryName": category_name,
        },
    )


def _add_book_and_drain(client: TestClient, runtime: Runtime, book: Book) -> None:
    """Run a catalog command on the client's event loop and wait for the consumers."""
    client.portal.call(runtime.catalog.add_book, book)
    client.portal.call(runtime.drain)


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "notification-service"}


class TestCategorySubscriptionRoutes:
    """Tests for /api/subscriptions/category/*."""

    def test_subscribe_returns_201(self, client: TestClient, ada: dict):
        response = _subscribe_category(client, ada)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Successfully subscribed to category"
        assert body["data"]["userId"] == ada["user_id"]
        assert body["data"]["isActive"] is True

    def test_subscribe_twice_returns_409(self, client: TestClient, ada: dict):
        _subscribe_category(client, ada)

        response = _subscribe_category(client, ada)

        assert response.status_code == 409
        assert response.json() == {"success": False, "error": "Already subscribed to this category"}

    def test_reactivate_returns_200(self, client: TestClient, ada: dict):
        _subscribe_category(client, ada)
        client.post(
            "/api/subscriptions/category/unsubscribe",
            json={"userId": ada["user_id"], "categoryId": "cat-sci"},
        )

        response = _subscribe_category(client, ada)

        assert response.status_code == 200
        assert response.json()["message"] == "Subscription reactivated"

    def test_unsubscribe(self, client: TestClient, ada: dict):
        _subscribe_category(client, ada)

        response = client.post(
            "/api/subscriptions/category/unsubscribe",
            json={"userId": ada["user_id"], "categoryId": "cat-sci"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"categoryId": "cat-sci", "categoryName": "Science"}

    def test_unsubscribe_unknown_returns_404(self, client: TestClient, ada: dict):
        response = client.post(
            "/api/subscriptions/category/unsubscribe",
            json={"userId": ada["user_id"], "categoryId": "cat-none"},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Subscription not found"

    def test_missing_fields_returns_400(self, client: TestClient):
        response = client.post(
            "/api/subscriptions/category/subscribe",
            json={"userId": "u1", "categoryId": "cat-sci", "categoryName": "Science"},
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid or missing fields: userEmail"}

    def test_empty_field_returns_400(self, client: TestClient):
        response = client.post(
            "/api/subscriptions/category/subscribe",
            json={"userId": "u1", "userEmail": "", "categoryId": "cat-sci", "categoryName": "Science"},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_check(self, client: TestClient, ada: dict):
        url = f"/api/subscriptions/category/cat-sci/check/{ada['user_id']}"
        assert client.get(url).json()["data"] == {"isSubscribed": False, "subscription": None}

        _subscribe_category(client, ada)

        data = client.get(url).json()["data"]
        assert data["isSubscribed"] is True
        assert data["subscription"]["categoryName"] == "Science"

    def test_subscribers_by_name(self, client: TestClient, ada: dict, grace: dict):
        _subscribe_category(client, ada)
        _subscribe_category(client, grace, category_id="cat-legacy", category_name="science")

        response = client.get("/api/subscriptions/category/cat-other/subscribers", params={"categoryName": "SCIENCE"})

        body = response.json()
        assert body["count"] == 2
        assert {s["userId"] for s in body["data"]} == {ada["user_id"], grace["user_id"]}


class TestBookSubscriptionRoutes:
    """Tests for /api/subscriptions/book/* and the per-user view."""

    def _subscribe(self, client: TestClient, user: dict):
        return client.post(
            "/api/subscriptions/book/subscribe",
            json={
                "userId": user["user_id"],
                "userEmail": user["user_email"],
                "bookId": "book-101",
                "bookTitle": "Cosmos",
            },
        )

    def test_lifecycle(self, client: TestClient, ada: dict):
        assert self._subscribe(client, ada).status_code == 201
        assert self._subscribe(client, ada).status_code == 409

        response = client.post(
            "/api/subscriptions/book/unsubscribe",
            json={"userId": ada["user_id"], "bookId": "book-101"},
        )
        assert response.json()["data"] == {"bookId": "book-101", "bookTitle": "Cosmos"}

        assert self._subscribe(client, ada).status_code == 200

    def test_check_and_subscribers(self, client: TestClient, ada: dict):
        self._subscribe(client, ada)

        check = client.get(f"/api/subscriptions/book/book-101/check/{ada['user_id']}").json()
        subscribers = client.get("/api/subscriptions/book/book-101/subscribers").json()

        assert check["data"]["isSubscribed"] is True
        assert subscribers["count"] == 1

    def test_user_subscriptions(self, client: TestClient, ada: dict):
        _subscribe_category(client, ada)
        self._subscribe(client, ada)

        data = client.get(f"/api/subscriptions/user/{ada['user_id']}").json()["data"]

        assert data["totalCategories"] == 1
        assert data["totalBooks"] == 1
        assert data["books"][0]["bookTitle"] == "Cosmos"


class TestNotificationRoutes:
    """Tests for the inbox endpoints, fed by a real BookAdded fan-out."""

    def test_new_book_reaches_inbox(self, client: TestClient, api_runtime: Runtime, ada: dict, cosmos: Book):
        _subscribe_category(client, ada)

        _add_book_and_drain(client, api_runtime, cosmos)

        body = client.get(f"/api/notifications/user/{ada['user_id']}").json()
        assert body["unreadCount"] == 1
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "totalPages": 1}
        [notification] = body["data"]
        assert notification["type"] == "BOOK_ADDED"
        assert notification["title"] == "New Book: Cosmos"
        assert notification["metadata"]["subscriptionType"] == "category"

    def test_mark_read_and_delete(self, client: TestClient, api_runtime: Runtime, ada: dict, cosmos: Book):
        _subscribe_category(client, ada)
        _add_book_and_drain(client, api_runtime, cosmos)
        [notification] = client.get(f"/api/notifications/user/{ada['user_id']}").json()["data"]
        notification_id = notification["notificationId"]

        response = client.put(f"/api/notifications/{notification_id}/read", json={"userId": ada["user_id"]})
        assert response.json()["data"]["isRead"] is True
        unread = client.get(f"/api/notifications/user/{ada['user_id']}/unread-count").json()
        assert unread["data"] == {"unreadCount": 0}

        response = client.request(
            "DELETE", f"/api/notifications/{notification_id}", json={"userId": ada["user_id"]}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Notification deleted"

    def test_other_user_gets_404(self, client: TestClient, api_runtime: Runtime, ada: dict, grace: dict, cosmos: Book):
        _subscribe_category(client, ada)
        _add_book_and_drain(client, api_runtime, cosmos)
        [notification] = client.get(f"/api/notifications/user/{ada['user_id']}").json()["data"]

        response = client.put(
            f"/api/notifications/{notification['notificationId']}/read", json={"userId": grace["user_id"]}
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Notification not found"

    def test_mark_all_read_and_delete_all(self, client: TestClient, api_runtime: Runtime, ada: dict, cosmos: Book):
        _subscribe_category(client, ada)
        _add_book_and_drain(client, api_runtime, cosmos)

        response = client.put("/api/notifications/mark-all-read", json={"userId": ada["user_id"]})
        assert response.json()["data"] == {"modifiedCount": 1}

        response = client.request("DELETE", "/api/notifications/delete-all", json={"userId": ada["user_id"]})
        assert response.json()["data"] == {"deletedCount": 1}
        assert client.get(f"/api/notifications/user/{ada['user_id']}").json()["data"] == []

    def test_paging_parameters(self, client: TestClient):
        response = client.get("/api/notifications/user/u-nobody", params={"page": 0})
        assert response.status_code == 400

        body = client.get("/api/notifications/user/u-nobody", params={"limit": 5, "unreadOnly": "true"}).json()
        assert body["pagination"] == {"page": 1, "limit": 5, "total": 0, "totalPages": 0}


class TestStatusRoutes:
    """Tests for the service status and audit log endpoints."""

    def test_status(self, client: TestClient):
        body = client.get("/api/notifications/status").json()

        assert body["success"] is True
        assert body["status"] == "running"
        assert body["brokerSubscription"] == "connected"
        assert len(body["consumers"]) == 7
        assert body["statistics"]["totalEventsProcessed"] == 0

    def test_events(self, client: TestClient, api_runtime: Runtime, ada: dict, cosmos: Book):
        _subscribe_category(client, ada)
        _add_book_and_drain(client, api_runtime, cosmos)

        everything = client.get("/api/notifications/events").json()
        by_type = client.get("/api/notifications/events/book_added").json()
        other = client.get("/api/notifications/events/USER_DELETED").json()

        assert everything["count"] == 1
        assert by_type["eventType"] == "BOOK_ADDED"
        assert by_type["data"][0]["subscribersNotified"] == 1
        assert other["count"] == 0
