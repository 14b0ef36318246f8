import logging
import threading
from typing import Any

import requests

from funnel_cms.core.config import settings


logger = logging.getLogger(__name__)


class WebhookError(RuntimeError):
    pass


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    api_key: str | None = None,
    timeout: int | None = None,
) -> Any:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        response = requests.post(
            url,
            json=payload,
            headers=headers,
            timeout=timeout or settings.WEBHOOK_TIMEOUT_SECONDS,
        )
    except requests.RequestException as error:
        raise WebhookError(f"Webhook request failed: {error}") from error

    if response.status_code >= 400:
        raise WebhookError(f"Webhook returned {response.status_code}: {response.text[:500]}")

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text[:2000]}


def _deliver_quietly(url: str, payload: dict[str, Any]) -> None:
    try:
        post_json(url, payload)
    except WebhookError:
        logger.warning("fire-and-forget webhook failed: url=%s", url, exc_info=True)


def fire_and_forget(url: str | None, payload: dict[str, Any]) -> threading.Thread | None:
    if not url:
        logger.debug("fire-and-forget webhook skipped: url not configured")
        return None
    thread = threading.Thread(
        target=_deliver_quietly,
        args=(url, payload),
        name="webhook-notify",
        daemon=True,
    )
    thread.start()
    return thread
