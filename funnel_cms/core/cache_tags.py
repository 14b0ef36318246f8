from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable

from funnel_cms.core.config import settings


logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
_CACHE: dict[str, tuple[float, frozenset[str], Any]] = {}


def page_tag(slug: str) -> str:
    return f"page-{slug}"


def page_sections_tag(page_id: int) -> str:
    return f"page-sections-{page_id}"


def get_cached(key: str) -> Any | None:
    ttl = max(1, int(settings.PUBLIC_CACHE_TTL_SECONDS))
    now = time.time()
    with _LOCK:
        value = _CACHE.get(key)
        if value is None:
            return None
        created_at, _, payload = value
        if now - created_at > ttl:
            _CACHE.pop(key, None)
            return None
        return payload


def set_cached(key: str, tags: Iterable[str], payload: Any) -> None:
    with _LOCK:
        _CACHE[key] = (time.time(), frozenset(tags), payload)


def get_or_load(key: str, tags: Iterable[str], loader: Callable[[], Any]) -> Any:
    cached = get_cached(key)
    if cached is not None:
        return cached
    payload = loader()
    if payload is not None:
        set_cached(key, tags, payload)
    return payload


def revalidate_tag(tag: str) -> int:
    with _LOCK:
        keys = [key for key, (_, tags, _) in _CACHE.items() if tag in tags]
        for key in keys:
            _CACHE.pop(key, None)
    if keys:
        logger.debug("revalidated tag=%s dropped=%s", tag, len(keys))
    return len(keys)


def revalidate_tags(*tags: str) -> None:
    for tag in tags:
        if tag:
            revalidate_tag(tag)


def clear() -> None:
    with _LOCK:
        _CACHE.clear()
