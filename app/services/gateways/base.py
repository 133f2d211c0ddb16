"""
Shared plumbing for outbound provider clients (Placid, Daraja).
"""
import time
from typing import Any, Callable

import httpx
import pybreaker

from app.core.errors import GatewayError
from app.utils.metrics import gateway_request_duration_seconds, gateway_requests_total


def parse_json_body(response: httpx.Response) -> Any:
    """Provider JSON, or {"raw": text} when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


def guarded_call(
    breaker: pybreaker.CircuitBreaker,
    provider: str,
    operation: str,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """
    Run one provider request through the circuit breaker and record metrics.
    Transport errors and an open breaker both surface as GatewayError.
    """
    start = time.time()
    status = "error"
    try:
        result = breaker.call(func, *args, **kwargs)
        status = "success"
        return result
    except pybreaker.CircuitBreakerError as e:
        status = "circuit_open"
        raise GatewayError(f"{provider} unavailable: {e}", provider=provider) from e
    except httpx.HTTPError as e:
        raise GatewayError(f"{provider} {operation} request failed: {e}", provider=provider) from e
    finally:
        gateway_requests_total.labels(provider=provider, operation=operation, status=status).inc()
        gateway_request_duration_seconds.labels(provider=provider, operation=operation).observe(time.time() - start)
