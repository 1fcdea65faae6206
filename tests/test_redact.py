from __future__ import annotations

from chronofleet._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "userId": "d1",
        "access_token": "pk.secret",
        "password": "pw",
        "nested": {"Authorization": "Bearer abc", "keep": "me"},
    }

    redacted = redact_for_log(payload)
    assert redacted["userId"] == "d1"
    assert redacted["access_token"] == "<redacted>"
    assert redacted["password"] == "<redacted>"
    assert redacted["nested"]["Authorization"] == "<redacted>"
    assert redacted["nested"]["keep"] == "me"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_scrubs_credentials_only() -> None:
    url = "https://api.example.com/route?geometries=geojson&access_token=pk.secret"
    redacted = redact_url(url)
    assert "pk.secret" not in redacted
    assert "access_token=<redacted>" in redacted
    assert "geometries=geojson" in redacted

    assert redact_url("https://api.example.com/json?key=abc").endswith("key=<redacted>")
    assert redact_url("https://api.example.com/plain") == "https://api.example.com/plain"
