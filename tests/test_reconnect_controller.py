import asyncio
import unittest

from chatrelay.client.connection import ConnectionState, NotConnectedError
from chatrelay.client.controller import ConnectionController, ConnectionStatus, ReconnectPolicy
from tests.fakes import FakeConnector, wait_for


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):
    max_attempts = 5
    delay = 0.01
    refuse_first = 0

    async def asyncSetUp(self):
        self.connector = FakeConnector(refuse_first=self.refuse_first)
        self.controller = ConnectionController(
            "ws://chat.test/ws",
            policy=ReconnectPolicy(max_attempts=self.max_attempts, delay=self.delay),
            connect=self.connector,
        )
        self.frames = []
        self.statuses = []

    async def asyncTearDown(self):
        self.controller.close_all()
        await asyncio.sleep(0)

    def open(self, room_id=1, user_id=7):
        return self.controller.open(
            room_id, user_id, self.frames.append, lambda room, status: self.statuses.append(status)
        )

    async def until_open(self, room_id=1):
        await wait_for(lambda: self.controller.is_open(room_id))


class TestConnectionLifecycle(ControllerTestCase):

    async def test_join_is_sent_on_open(self):
        self.open()
        await self.until_open()
        await wait_for(lambda: self.connector.latest.sent)

        self.assertEqual(self.connector.latest.sent[0], {"type": "join", "roomId": 1, "userId": 7})
        self.assertEqual(self.statuses, [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED])

    async def test_frames_reach_callback_and_garbage_is_dropped(self):
        self.open()
        await self.until_open()
        socket = self.connector.latest

        socket.push("{oops")
        socket.push("[1, 2]")
        socket.push({"type": "join", "roomId": 1, "userId": 8})
        await wait_for(lambda: self.frames)

        self.assertEqual(self.frames, [{"type": "join", "roomId": 1, "userId": 8}])
        self.assertTrue(self.controller.is_open(1))

    async def test_send(self):
        self.open()
        await self.until_open()

        await self.controller.send(1, {"type": "message", "content": "hi"})

        self.assertEqual(self.connector.latest.sent[-1], {"type": "message", "content": "hi"})

    async def test_send_without_connection(self):
        with self.assertRaises(NotConnectedError):
            await self.controller.send(3, {"type": "message"})

    async def test_open_replaces_existing_connection(self):
        first = self.open()
        await self.until_open()

        second = self.open()
        await self.until_open()

        self.assertIsNot(first, second)
        self.assertIs(self.controller.connections[1], second)
        await wait_for(lambda: first.state is ConnectionState.CLOSED_CLEAN)
        self.assertEqual(self.connector.sockets[0].close_code, 1000)
        self.assertEqual(self.connector.calls, 2)


class TestReconnect(ControllerTestCase):

    async def test_unclean_close_reconnects_after_delay(self):
        self.open()
        await self.until_open()

        self.connector.latest.drop(1006)
        await wait_for(lambda: self.connector.calls == 2)
        await self.until_open()

        self.assertEqual(self.controller.attempts[1], 0)
        self.assertEqual(
            self.statuses,
            [
                ConnectionStatus.CONNECTING,
                ConnectionStatus.CONNECTED,
                ConnectionStatus.RECONNECTING,
                ConnectionStatus.CONNECTING,
                ConnectionStatus.CONNECTED,
            ],
        )

    async def test_close_with_normal_code_does_not_reconnect(self):
        connection = self.open()
        await self.until_open()

        self.connector.latest.drop(1000)
        await wait_for(lambda: connection.state is ConnectionState.CLOSED_CLEAN)
        await asyncio.sleep(self.delay * 3)

        self.assertEqual(self.connector.calls, 1)
        self.assertEqual(self.statuses[-1], ConnectionStatus.CLOSED)
        self.assertFalse(self.controller.reconnect_pending(1))

    async def test_server_going_away_counts_as_unclean(self):
        self.open()
        await self.until_open()

        self.connector.latest.drop(1001)

        await wait_for(lambda: self.connector.calls == 2)


class TestReconnectBound(ControllerTestCase):
    max_attempts = 3
    delay = 0
    refuse_first = 100

    async def test_gives_up_after_max_attempts(self):
        self.open()

        await wait_for(lambda: ConnectionStatus.DISCONNECTED in self.statuses)
        await asyncio.sleep(0.02)

        # First try plus three reconnects
        self.assertEqual(self.connector.calls, 4)
        self.assertEqual(self.statuses.count(ConnectionStatus.RECONNECTING), 3)
        self.assertEqual(self.controller.statuses[1], ConnectionStatus.DISCONNECTED)
        self.assertFalse(self.controller.attempt_reconnect(1))

    async def test_reopen_starts_a_fresh_budget(self):
        self.open()
        await wait_for(lambda: ConnectionStatus.DISCONNECTED in self.statuses)
        self.connector.refuse_first = 0
        self.statuses.clear()

        self.open()
        await self.until_open()

        self.assertEqual(self.controller.attempts[1], 0)
        self.assertEqual(self.connector.calls, 5)


class TestCounterSurvivesReplacement(ControllerTestCase):
    refuse_first = 2

    async def test_attempts_accumulate_until_open(self):
        seen = []
        self.controller.open(
            1, 7, self.frames.append,
            lambda room, status: seen.append(self.controller.attempts.get(room)),
        )

        await self.until_open()

        self.assertEqual(self.connector.calls, 3)
        # RECONNECTING is reported with the attempt it schedules
        self.assertIn(2, seen)
        self.assertEqual(self.controller.attempts[1], 0)


class TestCleanup(ControllerTestCase):
    delay = 10

    async def test_cleanup_cancels_pending_reconnect(self):
        self.open()
        await self.until_open()
        self.connector.latest.drop(1006)
        await wait_for(lambda: self.controller.reconnect_pending(1))

        self.controller.cleanup(1)
        self.controller.cleanup(1)

        self.assertFalse(self.controller.reconnect_pending(1))
        self.assertNotIn(1, self.controller.connections)
        self.assertEqual(self.connector.calls, 1)

    async def test_cleanup_closes_with_normal_code(self):
        connection = self.open()
        await self.until_open()

        self.controller.cleanup(1)
        await wait_for(lambda: connection.state is ConnectionState.CLOSED_CLEAN)

        self.assertEqual(connection.close_code, 1000)
        self.assertFalse(self.controller.reconnect_pending(1))
        self.assertEqual(self.connector.calls, 1)

    async def test_failed_close_is_logged(self):
        connection = self.open()
        await self.until_open()
        self.connector.latest.fail_close = True

        with self.assertLogs("chatrelay.client.connection", level="WARNING") as logs:
            self.controller.cleanup(1)
            await wait_for(lambda: connection._close_task.done())
            await asyncio.sleep(0)

        self.assertIn("Closing WebSocket failed", "\n".join(logs.output))

    async def test_cleanup_of_unknown_room(self):
        self.controller.cleanup(99)

        self.assertEqual(self.controller.connections, {})

    async def test_rooms_are_independent(self):
        self.open(room_id=1)
        self.open(room_id=2)
        await self.until_open(1)
        await self.until_open(2)

        self.controller.cleanup(1)

        self.assertTrue(self.controller.is_open(2))
        self.assertFalse(self.controller.is_open(1))


if __name__ == "__main__":
    unittest.main()
