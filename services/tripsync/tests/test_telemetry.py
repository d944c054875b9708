"""Sentry setup and the credential-stripping before_send hook."""

from unittest.mock import patch

from services.tripsync.config import Settings
from services.tripsync.telemetry import _strip_sensitive_data, setup_sentry


class TestStripSensitiveData:
    def test_request_headers_filtered(self):
        event = {"request": {"headers": {"Authorization": "Bearer tok", "Accept": "application/json"}}}

        result = _strip_sensitive_data(event, {})

        assert result["request"]["headers"] == {"Authorization": "[FILTERED]", "Accept": "application/json"}

    def test_breadcrumb_headers_and_tokens_filtered(self):
        event = {
            "breadcrumbs": {
                "values": [
                    {
                        "category": "httpx",
                        "data": {
                            "url": "http://api/trips",
                            "headers": {"cookie": "sid=1"},
                            "access_token": "tok",
                        },
                    }
                ]
            }
        }

        data = _strip_sensitive_data(event, {})["breadcrumbs"]["values"][0]["data"]

        assert data["headers"]["cookie"] == "[FILTERED]"
        assert data["access_token"] == "[FILTERED]"
        assert data["url"] == "http://api/trips"

    def test_extras_filtered(self):
        event = {"extra": {"Token": "tok", "room": "trip:t1"}}
        assert _strip_sensitive_data(event, {})["extra"] == {"Token": "[FILTERED]", "room": "trip:t1"}

    def test_event_without_sensitive_data_passes_through(self):
        event = {"message": "realtime channel reconnect budget exhausted"}
        assert _strip_sensitive_data(event, {}) == event


class TestSetupSentry:
    def test_disabled_without_dsn(self):
        with patch("services.tripsync.telemetry.sentry_sdk.init") as init:
            assert setup_sentry(Settings(sentry_dsn="")) is False
        init.assert_not_called()

    def test_enabled_with_dsn(self):
        config = Settings(sentry_dsn="https://key@o0.ingest.sentry.io/1", environment="staging")
        with patch("services.tripsync.telemetry.sentry_sdk.init") as init:
            assert setup_sentry(config) is True

        kwargs = init.call_args.kwargs
        assert kwargs["dsn"] == "https://key@o0.ingest.sentry.io/1"
        assert kwargs["environment"] == "staging"
        assert kwargs["release"] == "tripsync@0.1.0"
        assert kwargs["before_send"] is _strip_sensitive_data
        assert kwargs["send_default_pii"] is False
