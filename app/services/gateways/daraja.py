"""
Safaricom Daraja client: OAuth token caching and STK Push initiation.
Sync httpx client, safe to share between request threads.
"""
import base64
import logging
import re
from datetime import datetime
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo

import httpx
import pybreaker

from app.core.config import settings
from app.core.errors import AuthError, GatewayError
from app.services.circuit_breaker import get_circuit_breaker
from app.services.gateways.base import guarded_call, parse_json_body
from app.services.gateways.token_cache import AccessToken, TokenCache
from app.utils.metrics import gateway_requests_total
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

DARAJA_HOSTS = {
    "production": "https://api.safaricom.co.ke",
    "sandbox": "https://sandbox.safaricom.co.ke",
}
OAUTH_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
DEFAULT_TOKEN_TTL_SECONDS = 3599

# Daraja rejects AccountReference / TransactionDesc longer than 20 chars or with symbols
FIELD_MAX_LENGTH = 20
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9 ]")


def sanitize_field(value: str | None, fallback: str, max_length: int = FIELD_MAX_LENGTH) -> str:
    cleaned = _UNSAFE_CHARS.sub("", value or "").strip()[:max_length].strip()
    return cleaned or fallback


def build_timestamp(now: datetime | None = None, tz_name: str = "Africa/Nairobi") -> str:
    """YYYYMMDDHHmmss in the shortcode's local timezone."""
    moment = now or datetime.now(ZoneInfo(tz_name))
    if moment.tzinfo is not None:
        moment = moment.astimezone(ZoneInfo(tz_name))
    return moment.strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


class DarajaClient:
    """M-Pesa Express (STK Push) over the Daraja REST API."""

    def __init__(
        self,
        config: dict,
        http_client: httpx.Client | None = None,
        token_cache: TokenCache | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self.config = config
        self.environment = config.get("environment", "sandbox")
        self.base_url_override = (config.get("base_url") or "").rstrip("/")
        self.consumer_key = config.get("consumer_key")
        self.consumer_secret = config.get("consumer_secret")
        self.shortcode = config.get("shortcode")
        self.passkey = config.get("passkey")
        self.callback_url = config.get("callback_url")
        self.timezone = config.get("timezone", "Africa/Nairobi")
        self.token_cache = token_cache or TokenCache(config.get("token_refresh_margin", 60))
        self.breaker = breaker or get_circuit_breaker("mpesa")
        self._client = http_client
        self._timeout = config.get("timeout", 30.0)

    @classmethod
    def from_settings(cls) -> "DarajaClient":
        return cls(
            {
                "environment": settings.mpesa_env,
                "base_url": settings.mpesa_base_url,
                "consumer_key": settings.mpesa_consumer_key,
                "consumer_secret": settings.mpesa_consumer_secret,
                "shortcode": settings.mpesa_shortcode,
                "passkey": settings.mpesa_passkey,
                "callback_url": settings.mpesa_callback_url,
                "timezone": settings.mpesa_timezone,
                "token_refresh_margin": settings.mpesa_token_refresh_margin_seconds,
                "timeout": settings.mpesa_timeout,
            }
        )

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def base_url(self, environment: str) -> str:
        if self.base_url_override.startswith(("http://", "https://")):
            return self.base_url_override
        return DARAJA_HOSTS.get(environment, DARAJA_HOSTS["sandbox"])

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def fetch_access_token(self) -> AccessToken:
        """Cached bearer token, refreshed when less than the margin remains."""
        return self.token_cache.get_or_refresh(self._refresh_token)

    def _refresh_token(self) -> AccessToken:
        if not self.consumer_key or not self.consumer_secret:
            raise AuthError("Missing MPESA_CONSUMER_KEY or MPESA_CONSUMER_SECRET")

        environment = self.environment
        response, error = self._request_token(environment)

        # Production credentials are often issued against the sandbox host
        if response is None and environment == "production":
            logger.warning(
                "mpesa_oauth_fallback",
                extra={"environment": "sandbox", "error": error},
            )
            environment = "sandbox"
            response, error = self._request_token(environment)

        if response is None:
            raise AuthError(f"M-Pesa OAuth failed: {error}")

        data = parse_json_body(response)
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthError(f"M-Pesa OAuth succeeded but access_token is missing on {environment}")

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_TTL_SECONDS

        logger.info("mpesa_token_refreshed", extra={"environment": environment})
        return self.token_cache.set(token, expires_in, environment)

    def _request_token(self, environment: str) -> tuple[httpx.Response | None, str]:
        url = f"{self.base_url(environment)}{OAUTH_PATH}"
        try:
            response = self.client.get(
                url,
                auth=(self.consumer_key, self.consumer_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            gateway_requests_total.labels(provider="mpesa", operation="oauth", status="error").inc()
            return None, str(e)
        if not response.is_success:
            gateway_requests_total.labels(provider="mpesa", operation="oauth", status="error").inc()
            return None, f"{response.status_code} {response.text[:500]}"
        gateway_requests_total.labels(provider="mpesa", operation="oauth", status="success").inc()
        return response, ""

    # ------------------------------------------------------------------
    # STK Push
    # ------------------------------------------------------------------

    def initiate_push(
        self,
        amount: int,
        phone_number: str,
        account_reference: str,
        transaction_desc: str,
    ) -> dict[str, Any]:
        """
        Send an STK Push prompt to the customer's phone.
        Returns Daraja's acknowledgment (CheckoutRequestID, MerchantRequestID, CustomerMessage).
        """
        if not self.shortcode or not self.passkey or not self.callback_url:
            raise GatewayError(
                "Missing MPESA_SHORTCODE, MPESA_PASSKEY, or MPESA_CALLBACK_URL",
                provider="mpesa",
            )

        token = self.fetch_access_token()
        timestamp = build_timestamp(tz_name=self.timezone)
        phone = normalize_phone(phone_number)

        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": build_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": sanitize_field(account_reference, fallback="Poster Gen"),
            "TransactionDesc": sanitize_field(transaction_desc, fallback="Poster payment"),
        }

        # Push goes to the host that issued the token (may be the sandbox fallback)
        url = f"{self.base_url(token.environment)}{STK_PUSH_PATH}"
        return guarded_call(self.breaker, "mpesa", "stk_push", self._post_push, url, payload, token.token)

    def _post_push(self, url: str, payload: dict[str, Any], token: str) -> dict[str, Any]:
        response = self.client.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        body = parse_json_body(response)
        if not response.is_success:
            raise GatewayError(
                f"STK Push failed: {response.status_code} {body}",
                provider="mpesa",
                provider_status=response.status_code,
                body=body,
            )
        return body if isinstance(body, dict) else {"raw": body}


@lru_cache(maxsize=1)
def get_daraja_client() -> DarajaClient:
    """One client (and token cache) per process."""
    return DarajaClient.from_settings()
