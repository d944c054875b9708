"""
Sentry instrumentation for the sync client.
Strips Authorization headers, cookies and access tokens before anything is sent.
"""

from typing import Any

import sentry_sdk
from sentry_sdk.integrations.httpx import HttpxIntegration

from services.tripsync.config import Settings, settings as default_settings

SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie"}
SENSITIVE_FIELDS = {"access_token", "accesstoken", "token"}


def _filter_mapping(data: Any, sensitive: set[str]) -> None:
    if not isinstance(data, dict):
        return
    for key in list(data.keys()):
        if isinstance(key, str) and key.lower() in sensitive:
            data[key] = "[FILTERED]"


def _strip_sensitive_data(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """before_send hook: strip credentials from breadcrumbs, request data and extras."""
    if "breadcrumbs" in event:
        for breadcrumb in event["breadcrumbs"].get("values", []):
            data = breadcrumb.get("data", {})
            if isinstance(data, dict):
                _filter_mapping(data.get("headers", {}), SENSITIVE_HEADERS)
                _filter_mapping(data, SENSITIVE_FIELDS)
    request = event.get("request", {})
    if isinstance(request, dict):
        _filter_mapping(request.get("headers", {}), SENSITIVE_HEADERS)
    _filter_mapping(event.get("extra", {}), SENSITIVE_FIELDS)
    return event


def setup_sentry(config: Settings | None = None) -> bool:
    """Initialise Sentry when a DSN is configured. Returns whether it was enabled."""
    config = config or default_settings
    if not config.sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.environment,
        release=f"{config.app_name}@{config.app_version}",
        traces_sample_rate=config.sentry_traces_sample_rate,
        before_send=_strip_sensitive_data,
        integrations=[HttpxIntegration()],
        send_default_pii=False,
    )
    return True
