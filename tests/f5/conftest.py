"""Fixtures for notification and client tests."""

import pytest


class FakeSocket:
    """Records messages pushed by the hub; optionally fails on send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.messages.append(data)

    def types(self):
        return [m["type"] for m in self.messages]


@pytest.fixture
def make_socket():
    return FakeSocket
