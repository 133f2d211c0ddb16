"""
Placid REST API client for poster rendering.
Rendering is usually asynchronous: the final URL arrives on webhook_success.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
import pybreaker

from app.core.config import settings
from app.core.errors import GatewayError
from app.services.circuit_breaker import get_circuit_breaker
from app.services.gateways.base import guarded_call, parse_json_body

logger = logging.getLogger(__name__)

# Where Placid (and older API versions) put the finished image URL
RENDER_URL_KEYS = ("url", "download_url", "result_url")


@dataclass
class RenderResult:
    id: str | None
    url: str | None  # None while rendering continues asynchronously
    status: str | None = None


def extract_render_result(data: Any) -> RenderResult:
    body = data.get("data") if isinstance(data, dict) and isinstance(data.get("data"), dict) else data
    if not isinstance(body, dict):
        return RenderResult(id=None, url=None)
    url = next((body[k] for k in RENDER_URL_KEYS if isinstance(body.get(k), str) and body[k]), None)
    if url is None and isinstance(body.get("image"), dict):
        url = body["image"].get("url") or None
    render_id = body.get("id")
    return RenderResult(
        id=str(render_id) if render_id is not None else None,
        url=url,
        status=body.get("status"),
    )


class PlacidClient:
    def __init__(
        self,
        config: dict,
        http_client: httpx.Client | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.config = config
        self.api_key = config.get("api_key")
        self.api_url = (config.get("api_url") or "https://api.placid.app/api/rest").rstrip("/")
        self.breaker = breaker or get_circuit_breaker("placid")
        self._client = http_client
        self._timeout = config.get("timeout", 30.0)

    @classmethod
    def from_settings(cls) -> "PlacidClient":
        return cls(
            {
                "api_key": settings.placid_api_key,
                "api_url": settings.placid_api_url,
                "timeout": settings.placid_timeout,
            }
        )

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def is_available(self) -> bool:
        return bool(self.api_key)

    def render_template(
        self,
        template_uuid: str,
        layers: dict[str, dict[str, str]],
        webhook_url: str | None,
        passthrough: str,
        meta: dict[str, Any],
    ) -> RenderResult:
        if not self.is_available():
            raise GatewayError("PLACID_API_KEY not configured", provider="placid")

        payload: dict[str, Any] = {
            "template_uuid": template_uuid,
            "layers": layers,
            "passthrough": passthrough,
            "meta": meta,
        }
        if webhook_url:
            payload["webhook_success"] = webhook_url

        return guarded_call(self.breaker, "placid", "render", self._post_render, payload)

    def _post_render(self, payload: dict[str, Any]) -> RenderResult:
        response = self.client.post(
            f"{self.api_url}/images",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        data = parse_json_body(response)
        if not response.is_success:
            message = (data.get("error") if isinstance(data, dict) else None) or response.reason_phrase
            raise GatewayError(
                f"Placid API Error: {message}",
                provider="placid",
                provider_status=response.status_code,
                body=data,
            )
        result = extract_render_result(data)
        logger.info(
            "placid_render_accepted",
            extra={"provider": "placid", "outcome": "sync_url" if result.url else "async"},
        )
        return result


@lru_cache(maxsize=1)
def get_placid_client() -> PlacidClient:
    return PlacidClient.from_settings()
