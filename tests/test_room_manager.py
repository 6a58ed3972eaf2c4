import asyncio
import json
import os
import tempfile
import unittest

from chatrelay.models.models import CreateRoomRequest, UpdateRoomRequest
from chatrelay.services.message_store import MessageStore, RoomNotFoundError
from chatrelay.services.room_manager import RoomManager


class TestRoomManager(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "rooms.json")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_default_rooms(self):
        manager = RoomManager()

        self.assertEqual([room.name for room in manager.list_rooms()], ["Morning Tea", "Travel English"])
        self.assertEqual(manager.next_id, 3)

    def test_without_defaults(self):
        manager = RoomManager(create_defaults=False)

        self.assertEqual(manager.list_rooms(), [])
        self.assertEqual(manager.create_room(CreateRoomRequest(name="First")).id, 1)

    def test_rooms_survive_restart(self):
        manager = RoomManager(self.path)
        manager.create_room(CreateRoomRequest(name="Book Club", topic="books"))

        reloaded = RoomManager(self.path)

        self.assertEqual(len(reloaded.rooms), 3)
        self.assertEqual(reloaded.get_room(3).topic, "books")
        with open(self.path) as f:
            self.assertEqual(set(json.load(f)), {"1", "2", "3"})

    def test_corrupt_file_falls_back_to_defaults(self):
        with open(self.path, "w") as f:
            f.write("{broken")

        manager = RoomManager(self.path)

        self.assertEqual(len(manager.rooms), 2)

    def test_partial_update(self):
        manager = RoomManager()

        room = manager.update_room(1, UpdateRoomRequest(topic="weather", name=None))

        self.assertEqual(room.topic, "weather")
        self.assertEqual(room.name, "Morning Tea")
        self.assertEqual(manager.get_room(1).topic, "weather")

    def test_update_unknown_room(self):
        self.assertIsNone(RoomManager().update_room(9, UpdateRoomRequest(topic="x")))


class TestMessageStore(unittest.TestCase):

    def setUp(self):
        self.store = MessageStore(RoomManager())

    def test_ids_are_assigned_in_accept_order(self):
        async def scenario():
            first = await self.store.create_message(1, 1, "one")
            second = await self.store.create_message(2, 1, "two", message_type="voice")
            return first, second

        first, second = asyncio.run(scenario())

        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(second.type, "voice")
        self.assertIsNotNone(first.created_at.tzinfo)

    def test_unknown_room_is_rejected(self):
        with self.assertRaises(RoomNotFoundError):
            asyncio.run(self.store.create_message(42, 1, "lost"))
        self.assertEqual(self.store.count(), 0)

    def test_recent_messages_newest_first(self):
        async def scenario():
            for n in range(5):
                await self.store.create_message(1, 1, f"m{n}")
            return await self.store.recent_messages(1, limit=3)

        recent = asyncio.run(scenario())

        self.assertEqual([m.content for m in recent], ["m4", "m3", "m2"])

    def test_recent_messages_of_empty_room(self):
        self.assertEqual(asyncio.run(self.store.recent_messages(2)), [])


if __name__ == "__main__":
    unittest.main()
