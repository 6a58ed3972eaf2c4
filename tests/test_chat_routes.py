import asyncio
import unittest

from fastapi.testclient import TestClient

from chatrelay.core.config import Settings
from chatrelay.main import create_app
from chatrelay.services.auth_service import AuthSession, issue_session_token


class ChatApiTestCase(unittest.TestCase):

    def setUp(self):
        self.settings = Settings(ROOMS_FILE="", SESSION_SECRET="test-secret", HISTORY_MAX_LIMIT=100)
        self.app = create_app(self.settings)
        self.state = self.app.state.chat
        self.client = TestClient(self.app)

    def cookie(self, user_id, is_admin=False):
        token = issue_session_token(AuthSession(user_id=user_id, is_admin=is_admin), self.settings)
        return {"cookie": f"{self.settings.SESSION_COOKIE_NAME}={token}"}

    def store(self, room_id, count):
        async def fill():
            for n in range(count):
                await self.state.message_store.create_message(room_id, user_id=n % 3 + 1, content=f"message {n}")
        asyncio.run(fill())


class TestChatRoutes(ChatApiTestCase):

    def test_list_rooms(self):
        response = self.client.get("/api/chat/rooms")

        self.assertEqual(response.status_code, 200)
        rooms = response.json()
        self.assertEqual([room["id"] for room in rooms], [1, 2])
        self.assertIn("createdAt", rooms[0])
        self.assertIn("imageUrl", rooms[0])

    def test_get_room(self):
        response = self.client.get("/api/chat/rooms/2")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Travel English")

    def test_get_unknown_room(self):
        response = self.client.get("/api/chat/rooms/42")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Room not found")

    def test_messages_are_newest_first(self):
        self.store(1, 5)

        response = self.client.get("/api/chat/rooms/1/messages")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["content"] for m in response.json()],
                         [f"message {n}" for n in (4, 3, 2, 1, 0)])

    def test_messages_limit(self):
        self.store(1, 60)

        response = self.client.get("/api/chat/rooms/1/messages", params={"limit": 50})

        ids = [m["id"] for m in response.json()]
        self.assertEqual(len(ids), 50)
        self.assertEqual(ids[0], 60)
        self.assertEqual(ids[-1], 11)

    def test_messages_default_limit_and_cap(self):
        self.store(1, 120)

        default = self.client.get("/api/chat/rooms/1/messages").json()
        capped = self.client.get("/api/chat/rooms/1/messages", params={"limit": 500}).json()

        self.assertEqual(len(default), 50)
        self.assertEqual(len(capped), 100)

    def test_messages_of_other_rooms_are_not_mixed_in(self):
        self.store(1, 3)
        self.store(2, 2)

        response = self.client.get("/api/chat/rooms/2/messages")

        self.assertEqual({m["roomId"] for m in response.json()}, {2})
        self.assertEqual(len(response.json()), 2)

    def test_messages_of_unknown_room(self):
        self.assertEqual(self.client.get("/api/chat/rooms/42/messages").status_code, 404)

    def test_invalid_limit(self):
        self.assertEqual(self.client.get("/api/chat/rooms/1/messages", params={"limit": 0}).status_code, 422)


class TestAdminRoutes(ChatApiTestCase):

    def test_create_requires_session(self):
        response = self.client.post("/api/admin/chat/rooms", json={"name": "Book Club"})

        self.assertEqual(response.status_code, 401)

    def test_create_requires_admin(self):
        response = self.client.post("/api/admin/chat/rooms", json={"name": "Book Club"}, headers=self.cookie(4))

        self.assertEqual(response.status_code, 403)

    def test_create_room(self):
        response = self.client.post(
            "/api/admin/chat/rooms",
            json={"name": "Book Club", "description": "Reading aloud together", "topic": "books"},
            headers=self.cookie(1, is_admin=True),
        )

        self.assertEqual(response.status_code, 201)
        room = response.json()
        self.assertEqual(room["id"], 3)
        self.assertEqual(room["topic"], "books")
        self.assertEqual(self.client.get("/api/chat/rooms/3").json()["name"], "Book Club")

    def test_create_rejects_blank_name(self):
        response = self.client.post(
            "/api/admin/chat/rooms", json={"name": "   "}, headers=self.cookie(1, is_admin=True)
        )

        self.assertEqual(response.status_code, 400)

    def test_update_room(self):
        response = self.client.put(
            "/api/admin/chat/rooms/1", json={"topic": "gardening"}, headers=self.cookie(1, is_admin=True)
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["topic"], "gardening")
        self.assertEqual(response.json()["name"], "Morning Tea")

    def test_update_unknown_room(self):
        response = self.client.put(
            "/api/admin/chat/rooms/42", json={"topic": "x"}, headers=self.cookie(1, is_admin=True)
        )

        self.assertEqual(response.status_code, 404)

    def test_room_changes_are_pushed_to_sockets(self):
        with self.client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "roomId": 1, "userId": 1})
            ws.send_json({"type": "message", "roomId": 1, "userId": 1, "content": "ready"})
            ws.receive_json()

            self.client.post("/api/admin/chat/rooms", json={"name": "Quiz Night"}, headers=self.cookie(1, is_admin=True))

            frame = ws.receive_json()

        self.assertEqual(frame["type"], "rooms_updated")
        self.assertEqual([room["name"] for room in frame["rooms"]][-1], "Quiz Night")


class TestOperationalRoutes(ChatApiTestCase):

    def test_root(self):
        self.assertEqual(self.client.get("/").json()["endpoints"]["websocket"], "/ws")

    def test_health_counts_connections(self):
        with self.client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "roomId": 1, "userId": 1})
            ws.send_json({"type": "message", "roomId": 1, "userId": 1, "content": "hi"})
            ws.receive_json()

            health = self.client.get("/health").json()

        self.assertEqual(health["status"], "healthy")
        self.assertEqual(health["connections"], 1)
        self.assertEqual(health["rooms"], 2)
        self.assertEqual(health["active_rooms_with_members"], 1)

    def test_health_without_redis_client_is_degraded(self):
        client = TestClient(create_app(Settings(ROOMS_FILE="", BROADCAST_BACKEND="redis")))

        health = client.get("/health").json()

        self.assertEqual(health["status"], "degraded")
        self.assertEqual(health["broadcast_backend"], "redis")

    def test_metrics(self):
        with self.client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "roomId": 2, "userId": 1})
            ws.send_json({"type": "message", "roomId": 2, "userId": 1, "content": "hi"})
            ws.receive_json()

            metrics = self.client.get("/metrics").json()

        self.assertEqual(metrics["total_messages"], 1)
        self.assertEqual(metrics["stored_messages"], 1)
        self.assertEqual(metrics["rooms"], {"2": 1})
        self.assertEqual(metrics["busiest_room_members"], 1)
        self.assertEqual(metrics["broadcast_backend"], "local")


if __name__ == "__main__":
    unittest.main()
