import json

import httpx
import pybreaker
import pytest

from app.core.errors import GatewayError, is_client_side_gateway_error
from app.services.gateways.placid import PlacidClient, extract_render_result


def _client(handler, breaker=None, api_key="placid-key"):
    return PlacidClient(
        {"api_key": api_key, "api_url": "https://api.placid.app/api/rest"},
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        breaker=breaker or pybreaker.CircuitBreaker(fail_max=100),
    )


def _render(client):
    return client.render_template(
        template_uuid="tpl-uuid",
        layers={"title": {"text": "Hello"}},
        webhook_url="https://example.com/api/make/placid-callback",
        passthrough=json.dumps({"session_id": "s1"}),
        meta={"session_id": "s1"},
    )


class TestExtractRenderResult:
    def test_flat_url(self):
        result = extract_render_result({"id": 7, "status": "finished", "image_url": None, "url": "https://cdn/a.png"})
        assert result.id == "7"
        assert result.url == "https://cdn/a.png"

    def test_nested_data(self):
        result = extract_render_result({"data": {"id": "r1", "download_url": "https://cdn/b.png"}})
        assert result.id == "r1"
        assert result.url == "https://cdn/b.png"

    def test_image_object(self):
        assert extract_render_result({"image": {"url": "https://cdn/c.png"}}).url == "https://cdn/c.png"

    def test_async_render_has_no_url(self):
        result = extract_render_result({"id": 9, "status": "queued"})
        assert result.url is None
        assert result.status == "queued"

    def test_non_dict(self):
        assert extract_render_result(["x"]).url is None


class TestRenderTemplate:
    def test_posts_render_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": 1, "status": "queued"})

        result = _render(_client(handler))

        assert result.url is None
        request = seen[0]
        assert request.url.path == "/api/rest/images"
        assert request.headers["Authorization"] == "Bearer placid-key"
        body = json.loads(request.content)
        assert body["template_uuid"] == "tpl-uuid"
        assert body["webhook_success"] == "https://example.com/api/make/placid-callback"
        assert json.loads(body["passthrough"]) == {"session_id": "s1"}
        assert body["meta"] == {"session_id": "s1"}

    def test_provider_error_message_is_surfaced(self):
        client = _client(lambda r: httpx.Response(422, json={"error": "Template not found"}))
        with pytest.raises(GatewayError) as exc_info:
            _render(client)
        assert "Template not found" in str(exc_info.value)
        assert exc_info.value.provider_status == 422

    def test_missing_api_key(self):
        with pytest.raises(GatewayError):
            _render(_client(lambda r: httpx.Response(200, json={}), api_key=""))

    def test_client_errors_do_not_open_the_breaker(self):
        breaker = pybreaker.CircuitBreaker(fail_max=1, exclude=[is_client_side_gateway_error])
        client = _client(lambda r: httpx.Response(400, json={"error": "bad layers"}), breaker=breaker)

        for _ in range(3):
            with pytest.raises(GatewayError):
                _render(client)

        assert breaker.current_state == pybreaker.STATE_CLOSED

    def test_server_errors_open_the_breaker(self):
        breaker = pybreaker.CircuitBreaker(fail_max=1, exclude=[is_client_side_gateway_error])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        client = _client(handler, breaker=breaker)
        with pytest.raises(GatewayError):
            _render(client)
        with pytest.raises(GatewayError):
            _render(client)

        assert breaker.current_state == pybreaker.STATE_OPEN
        assert len(calls) == 1
