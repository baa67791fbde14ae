"""Tests for MentraClient against a mock transport (F5)."""

import json

import httpx
import pytest

from mentra.client.api import ApiError, AuthenticationError, MentraClient


def _client(handler, **kwargs):
    return MentraClient("http://testserver", transport=httpx.MockTransport(handler), **kwargs)


class TestRequests:
    def test_login_stores_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path == "/api/auth/login":
                return httpx.Response(200, json={"access_token": "abc", "token_type": "bearer"})
            return httpx.Response(200, json={"id": "u1"})

        with _client(handler) as client:
            client.login("ana@example.com", "secret-pass")
            assert client.me() == {"id": "u1"}

        assert json.loads(seen[0].content) == {"email": "ana@example.com", "password": "secret-pass"}
        assert "authorization" not in seen[0].headers
        assert seen[1].headers["authorization"] == "Bearer abc"

    def test_none_params_dropped(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"entries": [], "total": 0})

        client = _client(handler, token="t")
        client.list_entries(mood=None, limit=5)

        assert dict(seen[0].url.params) == {"limit": "5"}

    def test_empty_body(self):
        client = _client(lambda request: httpx.Response(204), token="t")
        assert client.delete_goal("g1") is None


class TestErrors:
    """Tests for error mapping."""

    def test_unauthorized_clears_token(self):
        calls = []
        client = _client(
            lambda request: httpx.Response(401, json={"error": "Invalid token"}),
            token="expired",
            on_unauthorized=lambda: calls.append(True),
        )

        with pytest.raises(AuthenticationError) as exc_info:
            client.me()

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid token"
        assert client.token is None
        assert calls == [True]

    def test_error_body_message(self):
        client = _client(lambda request: httpx.Response(404, json={"error": "Entry not found"}), token="t")
        with pytest.raises(ApiError) as exc_info:
            client.get_entry("missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Entry not found"

    def test_non_json_error(self):
        client = _client(lambda request: httpx.Response(500, text="boom"), token="t")
        with pytest.raises(ApiError) as exc_info:
            client.health()
        assert exc_info.value.message == "boom"

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        with pytest.raises(ApiError) as exc_info:
            client.health()
        assert exc_info.value.status_code is None
        assert exc_info.value.message == "Network error"


class TestSuggestions:
    """Suggestions fail silently."""

    def test_tag_suggestions(self):
        client = _client(lambda request: httpx.Response(200, json={"suggestions": ["math"]}), token="t")
        assert client.tag_suggestions("ma") == ["math"]

    def test_tag_suggestions_error(self):
        client = _client(lambda request: httpx.Response(500, json={"error": "down"}), token="t")
        assert client.tag_suggestions("ma") == []

    def test_search_suggestions_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert _client(handler, token="t").search_suggestions("fra") == []

    def test_tag_suggestions_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"), token="t")
        assert client.tag_suggestions("ma") == []

    def test_search_suggestions_unexpected_shape(self):
        client = _client(lambda request: httpx.Response(200, json={"unexpected": 1}), token="t")
        assert client.search_suggestions("fra") == []

    def test_search_suggestions_empty_body(self):
        client = _client(lambda request: httpx.Response(200), token="t")
        assert client.search_suggestions("fra") == []
