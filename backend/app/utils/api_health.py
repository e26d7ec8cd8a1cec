"""Connectivity probe for a running explorer API."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplorerHealthResult:
    """Outcome of probing the explorer API."""

    ok: bool
    status_code: Optional[int]
    detail: str
    latency_ms: Optional[float]
    pipeline_version: Optional[str] = None
    default_layout_type: Optional[str] = None


def _json_or_none(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def check_explorer_health(
    base_url: str,
    *,
    timeout: float = 5.0,
    client: Optional[httpx.Client] = None,
    verify_settings: bool = False,
) -> ExplorerHealthResult:
    """Ping ``/health`` and optionally ``/api/explorer/settings``.

    Args:
        base_url: Base URL where the API is hosted (e.g. ``"http://localhost:8000"``).
        timeout: Request timeout in seconds when creating an internal client.
        client: Optional pre-configured ``httpx.Client``.
        verify_settings: Also require the settings endpoint to answer with a
            default layout type.

    Returns:
        ExplorerHealthResult: Whether the API answered and what it reported.
    """

    root = base_url.rstrip("/")
    should_close = client is None
    session = client or httpx.Client(timeout=timeout)
    start_time = time.monotonic()

    try:
        response = session.get(f"{root}/health")
        latency_ms = (time.monotonic() - start_time) * 1000
        if response.status_code != httpx.codes.OK:
            LOGGER.warning("Explorer health endpoint returned %s", response.status_code)
            return ExplorerHealthResult(
                ok=False,
                status_code=response.status_code,
                detail=f"Health endpoint returned {response.status_code}",
                latency_ms=latency_ms,
            )
        health = _json_or_none(response) or {}
        version = health.get("pipeline_version")

        layout_type: Optional[str] = None
        if verify_settings:
            settings_response = session.get(f"{root}/api/explorer/settings")
            settings = _json_or_none(settings_response) or {}
            layout_type = (settings.get("layout") or {}).get("default_type")
            if settings_response.status_code != httpx.codes.OK or not layout_type:
                LOGGER.warning(
                    "Explorer settings endpoint unusable (status %s)", settings_response.status_code
                )
                return ExplorerHealthResult(
                    ok=False,
                    status_code=settings_response.status_code,
                    detail="Settings endpoint did not report a default layout type",
                    latency_ms=(time.monotonic() - start_time) * 1000,
                    pipeline_version=version,
                )

        LOGGER.info("Explorer API healthy at %s (%.1f ms)", root, latency_ms)
        return ExplorerHealthResult(
            ok=True,
            status_code=response.status_code,
            detail="Explorer API is reachable",
            latency_ms=latency_ms,
            pipeline_version=version,
            default_layout_type=layout_type,
        )
    except httpx.HTTPError as exc:  # pragma: no cover - network failures are environment dependent
        latency_ms = (time.monotonic() - start_time) * 1000
        LOGGER.error("Explorer health probe against %s failed: %s", root, exc)
        return ExplorerHealthResult(
            ok=False,
            status_code=None,
            detail=f"Request to {root} failed: {exc}",
            latency_ms=latency_ms,
        )
    finally:
        if should_close:
            session.close()


__all__ = ["ExplorerHealthResult", "check_explorer_health"]
