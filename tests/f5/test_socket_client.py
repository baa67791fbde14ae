"""Tests for the reconnecting notification socket client (F5)."""

import asyncio
import json

import pytest

from mentra.client.socket import NotificationSocket, socket_url


class FakeConnection:
    """Yields canned messages, then ends with close_code."""

    def __init__(self, messages=(), close_code=1006):
        self._messages = [json.dumps(m) if isinstance(m, dict) else m for m in messages]
        self.close_code = close_code
        self.sent = []
        self.closed_with = None

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self, code=1000):
        self.closed_with = code


class FakeServer:
    """Connect factory that replays outcomes; OSError once they run out."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls = []

    async def connect(self, url):
        self.urls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("connection refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    def _make(server, **kwargs):
        return NotificationSocket(
            "http://localhost:8000", "tok", connect_factory=server.connect, sleep=fake_sleep, **kwargs
        )

    return _make


def test_socket_url():
    assert socket_url("https://x", "t") == "wss://x/ws/notifications?token=t"
    assert socket_url("http://localhost:8000/", "a b") == "ws://localhost:8000/ws/notifications?token=a+b"


class TestReconnect:
    """Tests for backoff and attempt limits."""

    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(self, make_client, sleeps):
        """Initial try plus five reconnects, doubling the delay each time."""
        server = FakeServer()
        client = make_client(server)
        failed = []
        client.on("reconnect_failed", failed.append)

        await client.run()

        assert len(server.urls) == 6
        assert sleeps == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert failed == [{"attempts": 5}]
        assert not client.connected

    @pytest.mark.asyncio
    async def test_custom_limits(self, make_client, sleeps):
        client = make_client(FakeServer(), max_reconnect_attempts=2, reconnect_delay=0.5)
        await client.run()
        assert sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_normal_close_stops(self, make_client, sleeps):
        server = FakeServer(FakeConnection(close_code=1000))
        client = make_client(server)
        events = []
        client.on("disconnected", events.append)

        await client.run()

        assert len(server.urls) == 1
        assert sleeps == []
        assert events == [{"code": 1000}]

    @pytest.mark.asyncio
    async def test_abnormal_close_reconnects_and_resets(self, make_client, sleeps):
        """An open connection resets the attempt counter."""
        server = FakeServer(OSError("down"), FakeConnection(close_code=1006), FakeConnection(close_code=1000))
        client = make_client(server)
        connected = []
        client.on("connected", connected.append)

        await client.run()

        assert len(server.urls) == 3
        assert sleeps == [1.0, 1.0]
        assert len(connected) == 2
        assert client.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_unread_count_resumes_after_forced_disconnect(self, make_client, sleeps):
        server = FakeServer(
            FakeConnection([{"type": "unread_count", "data": {"count": 1}}], close_code=1006),
            FakeConnection([{"type": "unread_count", "data": {"count": 2}}], close_code=1000),
        )
        client = make_client(server)
        counts = []
        client.on("unread_count", counts.append)

        await client.run()

        assert counts == [{"count": 1}, {"count": 2}]
        assert sleeps == [1.0]
        assert len(server.urls) == 2

    @pytest.mark.asyncio
    async def test_open_timeout_backs_off(self, make_client, sleeps):
        """A handshake timeout is retried like a refused connection."""
        server = FakeServer(asyncio.TimeoutError(), FakeConnection(close_code=1000))
        client = make_client(server)

        await client.run()

        assert len(server.urls) == 2
        assert sleeps == [1.0]


class TestMessages:
    """Tests for dispatching and sending."""

    @pytest.mark.asyncio
    async def test_dispatch_by_type(self, make_client):
        connection = FakeConnection(
            [
                {"type": "unread_count", "data": {"count": 2}},
                "not json",
                {"type": "notification", "data": {"id": "n1", "title": "Hi"}},
                {"no_type": True},
            ],
            close_code=1000,
        )
        client = make_client(FakeServer(connection))
        counts, notifications = [], []
        client.on("unread_count", counts.append)
        client.on("notification", notifications.append)

        await client.run()

        assert counts == [{"count": 2}]
        assert notifications == [{"id": "n1", "title": "Hi"}]

    @pytest.mark.asyncio
    async def test_async_listener_sends(self, make_client):
        connection = FakeConnection(close_code=1000)
        client = make_client(FakeServer(connection))

        async def on_connected(_):
            await client.ping()
            await client.mark_read("n1")

        client.on("connected", on_connected)
        await client.run()

        assert connection.sent == [
            {"type": "ping", "data": {}},
            {"type": "mark_read", "data": {"notification_id": "n1"}},
        ]

    @pytest.mark.asyncio
    async def test_send_while_disconnected(self, make_client):
        client = make_client(FakeServer())
        assert await client.send("ping") is False

    @pytest.mark.asyncio
    async def test_close_prevents_reconnect(self, make_client, sleeps):
        connection = FakeConnection(close_code=1006)
        server = FakeServer(connection)
        client = make_client(server)

        async def on_connected(_):
            await client.close()

        client.on("connected", on_connected)
        await client.run()

        assert connection.closed_with == 1000
        assert len(server.urls) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_unsubscribe(self, make_client):
        client = make_client(FakeServer(FakeConnection([{"type": "pong", "data": {}}], close_code=1000)))
        seen = []
        remove = client.on("pong", seen.append)
        remove()

        await client.run()

        assert seen == []
