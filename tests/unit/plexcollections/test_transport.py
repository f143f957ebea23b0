"""Tests for the transport, response handling and cancellation."""

import threading
import time
from collections import deque
from unittest.mock import Mock, patch

import httpx
import pytest

from src.plexcollections.auth import create_auth_headers, redact_token
from src.plexcollections.cancellation import CancelToken
from src.plexcollections.exceptions import (
    OperationCancelledError,
    PlexAPIError,
    PlexAuthenticationError,
    PlexAuthorizationError,
    PlexBadRequestError,
    PlexNotFoundError,
    PlexServerError,
)
from src.plexcollections.session import PlexSession
from src.plexcollections.transport import PlexTransport, merge_query


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, text="error body", request=httpx.Request("GET", "https://plex.test/x"))


class TestHandleResponse:
    """Status code to exception mapping."""

    @pytest.mark.parametrize(
        "status, exc_type",
        [
            (400, PlexBadRequestError),
            (401, PlexAuthenticationError),
            (403, PlexAuthorizationError),
            (404, PlexNotFoundError),
            (409, PlexAPIError),
            (500, PlexServerError),
            (503, PlexServerError),
        ],
    )
    def test_error_statuses(self, plex_config, status, exc_type):
        session = PlexSession(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        with pytest.raises(exc_type) as exc_info:
            session._handle_response(_response(status))

        assert exc_info.value.status_code == status
        assert exc_info.value.body == "error body"
        assert str(status) in str(exc_info.value)
        session.close()

    @pytest.mark.parametrize("status", [200, 201, 204, 302])
    def test_success_statuses_pass_through(self, plex_config, status):
        session = PlexSession(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        response = _response(status)
        assert session._handle_response(response) is response
        session.close()

    def test_transport_does_not_raise_for_status(self, plex_config):
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        assert transport.send("GET", "/library/collections/1").status_code == 500
        transport.close()

    def test_network_failure_propagates_unchanged(self, plex_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        session = PlexSession(plex_config, transport=httpx.MockTransport(handler))

        with pytest.raises(httpx.ConnectError):
            session.request("GET", "/library/collections/1")
        session.close()


class TestMergeQuery:
    """Query strings in the path survive extra params."""

    @pytest.mark.parametrize(
        "path, params, expected",
        [
            ("/library/sections/1/all?genre=action", {"X-Plex-Container-Size": 1},
             "/library/sections/1/all?genre=action&X-Plex-Container-Size=1"),
            ("/library/collections", {"title": "Top Picks", "smart": "0"},
             "/library/collections?title=Top+Picks&smart=0"),
            ("/library/collections/1/items/2/move", None, "/library/collections/1/items/2/move"),
            ("/library/collections/1/items/2/move", {"after": None}, "/library/collections/1/items/2/move"),
            ("/library/sections/1/all?", {"type": 1}, "/library/sections/1/all?type=1"),
            ("/library/sections/1/all?year>>=2000", {}, "/library/sections/1/all?year>>=2000"),
        ],
    )
    def test_merge(self, path, params, expected):
        assert merge_query(path, params) == expected

    def test_send_keeps_path_query_with_params(self, plex_config):
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200)

        transport = PlexTransport(plex_config, transport=httpx.MockTransport(handler))
        transport.send(
            "GET",
            "/library/sections/1/all?type=1&genre=action",
            params={"X-Plex-Container-Start": 0, "X-Plex-Container-Size": 1},
        )
        transport.close()

        assert seen == [
            {
                "type": "1",
                "genre": "action",
                "X-Plex-Container-Start": "0",
                "X-Plex-Container-Size": "1",
            }
        ]


class TestCancellation:
    def test_token_defaults(self):
        token = CancelToken()

        assert token.cancelled is False
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancelToken()
        token.cancel()

        assert token.cancelled is True
        with pytest.raises(OperationCancelledError, match="cancelled"):
            token.raise_if_cancelled("add")

    def test_deadline(self):
        token = CancelToken(timeout=0)

        assert token.expired is True
        with pytest.raises(OperationCancelledError, match="deadline"):
            token.raise_if_cancelled()

    def test_wait_returns_early_when_cancelled(self):
        token = CancelToken()
        token.cancel()

        start = time.monotonic()
        token.wait(5)
        assert time.monotonic() - start < 1

    def test_cancelled_token_sends_nothing(self, client, fake_server):
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            client.get_collections(1, cancel=token)

        assert fake_server.requests == []

    def test_cancel_mid_sequence_stops_before_next_request(self, client, fake_server):
        collection_id = fake_server.add_collection("Picks", items=["1234"])
        token = CancelToken()
        original = fake_server.handler

        def cancel_after_children(request):
            response = original(request)
            if request.url.path.endswith("/children"):
                token.cancel()
            return response

        client.session.transport.client._transport = httpx.MockTransport(cancel_after_children)

        with pytest.raises(OperationCancelledError):
            client.add_items(collection_id, ["5678"], cancel=token)

        assert fake_server.mutations == []
        assert fake_server.collections[collection_id]["items"] == ["1234"]

    def test_settle_with_token_uses_token_wait(self, plex_config):
        plex_config.settle_delay = 3.0
        sleep = Mock()
        session = PlexSession(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)), sleep=sleep)
        token = Mock(spec=CancelToken)

        session.settle(token)

        token.wait.assert_called_once_with(3.0)
        sleep.assert_not_called()
        session.close()

    def test_zero_settle_delay_does_not_sleep(self, plex_config):
        sleep = Mock()
        session = PlexSession(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)), sleep=sleep)

        session.settle()

        sleep.assert_not_called()
        session.close()


class TestTransportInit:
    def test_strips_trailing_slash(self, plex_config):
        plex_config.url = "https://plex.test:32400/"
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        assert transport.base_url == "https://plex.test:32400"
        transport.close()

    @patch("src.plexcollections.transport.httpx.Client")
    def test_http2_fallback(self, mock_client_class, plex_config):
        mock_client_class.side_effect = [ImportError("h2 not available"), Mock()]

        PlexTransport(plex_config)

        assert mock_client_class.call_count == 2
        assert mock_client_class.call_args_list[0][1].get("http2") is True
        assert "http2" not in mock_client_class.call_args_list[1][1]

    def test_rate_limit_window(self, plex_config):
        plex_config.rate_limit = 10
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        assert isinstance(transport._request_times, deque)
        assert transport._request_times.maxlen == 100
        transport.close()

    def test_rate_limit_sleeps_when_window_full(self, plex_config):
        plex_config.rate_limit = 2
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        now = time.time()
        transport._request_times.extend([now, now])

        with patch("src.plexcollections.transport.time.sleep") as mock_sleep:
            transport._apply_rate_limit()

        mock_sleep.assert_called_once()
        assert 0 < mock_sleep.call_args[0][0] <= 1.0
        transport.close()

    def test_rate_limit_window_is_thread_safe(self, plex_config):
        plex_config.rate_limit = 10000
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        errors = []

        def worker():
            try:
                for _ in range(50):
                    transport._apply_rate_limit()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert 0 < len(transport._request_times) <= 100
        transport.close()

    def test_no_rate_limit(self, plex_config):
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        assert transport._request_times is None
        transport._apply_rate_limit()
        transport.close()

    def test_deadline_sets_request_timeout(self, plex_config):
        client = Mock()
        transport = PlexTransport(plex_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport.client.close()
        transport.client = client

        transport.send("GET", "/identity", cancel=CancelToken(timeout=5))

        timeout = client.request.call_args[1]["timeout"]
        assert 0 < timeout <= 5


class TestAuth:
    def test_headers(self, plex_config):
        headers = create_auth_headers(plex_config)

        assert headers == {
            "Accept": "application/json",
            "X-Plex-Token": "test-token",
            "X-Plex-Client-Identifier": "plexcollections",
            "X-Plex-Product": "plexcollections",
        }

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("https://h/x?X-Plex-Token=abc", "https://h/x?X-Plex-Token=***"),
            ("/a?b=1&x-plex-token=abc&c=2", "/a?b=1&x-plex-token=***&c=2"),
            ("/library/collections/1", "/library/collections/1"),
        ],
    )
    def test_redact_token(self, text, expected):
        assert redact_token(text) == expected
