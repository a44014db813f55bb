from unittest.mock import patch

from app.core.sentry_init import _before_send, init_sentry


def test_before_send_filters_request_body_and_sensitive_headers():
    event = {
        "request": {
            "headers": {
                "Authorization": "Bearer secret",
                "Cookie": "a=b",
                "X-Test": "ok",
            },
            "data": {"password": "cleartext", "other": "value"},
            "cookies": {"a": "b"},
            "body": "raw-body",
        },
        "extra": {"password": "cleartext"},
    }

    out = _before_send(event, {})
    assert out is not None

    request = out["request"]
    assert request["data"] == "[Filtered]"
    assert request["body"] == "[Filtered]"
    assert request["cookies"] == "[Filtered]"
    assert "Authorization" not in request["headers"]
    assert "Cookie" not in request["headers"]
    assert request["headers"]["X-Test"] == "ok"
    assert out["extra"]["password"] == "[Filtered]"


def test_before_send_scrubs_unpublished_manuscript_text():
    event = {
        "extra": {
            "manuscript_id": "m1",
            "payload": {
                "abstract": "unpublished findings",
                "confidential_comments": "do not share",
                "rating": 7,
            },
        },
        "contexts": {"review": [{"comments_for_author": "x"}]},
    }

    out = _before_send(event, {})

    assert out["extra"]["manuscript_id"] == "m1"
    assert out["extra"]["payload"]["abstract"] == "[Filtered]"
    assert out["extra"]["payload"]["confidential_comments"] == "[Filtered]"
    assert out["extra"]["payload"]["rating"] == 7
    assert out["contexts"]["review"][0]["comments_for_author"] == "[Filtered]"


def test_init_sentry_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    assert init_sentry() is False


def test_init_sentry_enabled_with_dsn(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.ingest.sentry.io/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "5")
    with patch("sentry_sdk.init") as init:
        assert init_sentry() is True
    kwargs = init.call_args.kwargs
    assert kwargs["traces_sample_rate"] == 1.0
    assert kwargs["send_default_pii"] is False
    assert kwargs["before_send"] is _before_send


def test_before_send_tags_manuscript_from_url():
    event = {"request": {"url": "http://api.local/api/v1/manuscripts/ms-42/reviews", "headers": {}}}

    out = _before_send(event, {})

    assert out["tags"]["manuscript_id"] == "ms-42"
