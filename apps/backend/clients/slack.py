"""Slack Web API client."""
from __future__ import annotations

import httpx

from apps.backend.services.notification_errors import SlackApiError


def _api_url(method: str) -> str:
    return f"https://slack.com/api/{method}"


def slack_post_message(
    token: str,
    channel: str,
    text: str,
    *,
    blocks: list[dict] | None = None,
    thread_ts: str | None = None,
    timeout: float = 10,
) -> dict:
    """chat.postMessage; returns the API body (``channel``, ``ts``) or raises SlackApiError."""
    payload: dict = {"channel": channel, "text": text, "unfurl_links": False, "unfurl_media": False}
    if blocks:
        payload["blocks"] = blocks
    if thread_ts:
        payload["thread_ts"] = thread_ts
    headers = {"Authorization": f"Bearer {token}"}
    try:
        r = httpx.post(_api_url("chat.postMessage"), json=payload, headers=headers, timeout=timeout)
    except httpx.HTTPError as e:
        raise SlackApiError("slack_http_error", str(e)[:200]) from e
    if r.status_code == 429:
        raise SlackApiError("slack_rate_limited", f"retry_after={r.headers.get('Retry-After', '')}")
    try:
        data = r.json()
    except ValueError as e:
        raise SlackApiError("slack_bad_response", f"http_{r.status_code}") from e
    if not data.get("ok"):
        raise SlackApiError("slack_api_error", data.get("error") or "error")
    return data
