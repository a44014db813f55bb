import re
from typing import Any

from app.core.config import SentryConfig

FILTERED = "[Filtered]"

# 凭证类字段
_CREDENTIAL_KEYS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "jwt",
        "token",
        "access_token",
        "refresh_token",
        "supabase_key",
        "service_role_key",
        "resend_api_key",
        "smtp_password",
    }
)

# 稿件正文类字段：审稿意见/摘要/修回说明都属于未公开内容
_MANUSCRIPT_TEXT_KEYS = frozenset(
    {
        "abstract",
        "comments",
        "comments_for_author",
        "confidential_comments",
        "response_to_reviewers",
        "change_log",
        "additional_details",
        "cover_letter",
    }
)

_MAX_STRING = 5000

_MANUSCRIPT_PATH = re.compile(r"/manuscripts/([0-9A-Za-z_-]+)")


def _is_private(key: Any) -> bool:
    k = str(key).strip().lower()
    return k in _CREDENTIAL_KEYS or k in _MANUSCRIPT_TEXT_KEYS


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): (FILTERED if _is_private(k) else _scrub(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    if isinstance(value, str) and len(value) > _MAX_STRING:
        return FILTERED
    return value


def _scrub_request(request: dict[str, Any]) -> dict[str, Any]:
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {k: v for k, v in headers.items() if str(k).strip().lower() not in _CREDENTIAL_KEYS}
    # 请求体可能是投稿/审稿内容，整体丢弃
    for key in ("cookies", "data", "body"):
        if key in request:
            request[key] = FILTERED
    return request


def _tag_manuscript(event: dict[str, Any], url: Any) -> None:
    if not isinstance(url, str):
        return
    m = _MANUSCRIPT_PATH.search(url)
    if m:
        tags = event.setdefault("tags", {})
        if isinstance(tags, dict):
            tags.setdefault("manuscript_id", m.group(1))


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    request = event.get("request")
    if isinstance(request, dict):
        event["request"] = _scrub_request(request)
        _tag_manuscript(event, request.get("url"))

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)

    return event


def init_sentry() -> bool:
    """
    初始化 Sentry（仅在配置了 DSN 且未显式禁用时）。

    初始化异常由 main.py 兜底，不阻塞启动。
    """
    cfg = SentryConfig.from_env()
    if not (cfg.enabled and cfg.dsn):
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=cfg.dsn,
        environment=cfg.environment,
        release="journalflow@1.0.0",
        traces_sample_rate=cfg.traces_sample_rate,
        integrations=[FastApiIntegration()],
        send_default_pii=False,
        max_request_body_size="never",
        before_send=_before_send,
    )
    return True
