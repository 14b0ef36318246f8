import json
import logging
import math
import re
from typing import Any, Iterable, Iterator

import requests

from funnel_cms.core.config import settings


logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"
_CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AIServiceError(RuntimeError):
    pass


def is_enabled() -> bool:
    return bool(settings.OPENROUTER_API_KEY)


def _base_url(path: str) -> str:
    return f"{settings.OPENROUTER_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


def _headers() -> dict[str, str]:
    if not settings.OPENROUTER_API_KEY:
        raise AIServiceError("OPENROUTER_API_KEY is not configured")
    headers = {
        "Authorization": f"Bearer {settings.OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
        "X-Title": settings.OPENROUTER_APP_NAME,
    }
    if settings.OPENROUTER_SITE_URL:
        headers["HTTP-Referer"] = settings.OPENROUTER_SITE_URL
    return headers


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
        error = data.get("error", {})
        if isinstance(error, dict):
            return error.get("message") or response.text
        return str(error) or response.text
    except ValueError:
        return response.text


def _request_json(path: str, payload: dict[str, Any]) -> dict[str, Any]:
    try:
        response = requests.post(
            _base_url(path),
            headers=_headers(),
            json=payload,
            timeout=settings.AI_HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as error:
        raise AIServiceError(f"AI request failed: {error}") from error
    if response.status_code >= 400:
        raise AIServiceError(f"AI request failed: {response.status_code} {_error_message(response)}")

    try:
        return response.json()
    except ValueError as error:
        raise AIServiceError("AI returned non-JSON response") from error


def _chat_payload(messages: list[dict[str, str]], *, stream: bool) -> dict[str, Any]:
    return {
        "model": settings.AI_CHAT_MODEL,
        "messages": messages,
        "temperature": settings.AI_CHAT_TEMPERATURE,
        "max_tokens": settings.AI_CHAT_MAX_TOKENS,
        "stream": stream,
    }


def chat_completion(messages: list[dict[str, str]]) -> str:
    data = _request_json("/chat/completions", _chat_payload(messages, stream=False))
    choices = data.get("choices") or []
    if not choices:
        return ""
    return str(choices[0].get("message", {}).get("content") or "")


def _parse_json_text(text: str) -> dict[str, Any]:
    text = _CODE_FENCE_PATTERN.sub("", text.strip()).strip()
    if not text:
        return {}

    try:
        parsed = json.loads(text)
    except ValueError:
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            return {}
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return {}
    return parsed if isinstance(parsed, dict) else {}


def generate_json(
    system_prompt: str,
    user_text: str,
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> dict[str, Any]:
    """Ask for a single JSON object and return it parsed; unparseable replies give {}."""
    payload = {
        "model": settings.AI_CHAT_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_text},
        ],
        "temperature": settings.AI_CHAT_TEMPERATURE if temperature is None else temperature,
        "max_tokens": max_tokens or settings.AI_CHAT_MAX_TOKENS,
        "response_format": {"type": "json_object"},
    }
    data = _request_json("/chat/completions", payload)
    choices = data.get("choices") or []
    content = ""
    if choices:
        content = str(choices[0].get("message", {}).get("content") or "")
    return _parse_json_text(content)


def iter_sse_content(lines: Iterable[str | bytes]) -> Iterator[str]:
    for raw in lines:
        if raw is None:
            continue
        line = raw.decode("utf-8", errors="ignore") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line or line.startswith(":"):
            continue
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX):].strip()
        if data == SSE_DONE:
            return
        try:
            parsed = json.loads(data)
        except ValueError:
            continue
        if not isinstance(parsed, dict):
            continue
        if parsed.get("error"):
            error = parsed["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise AIServiceError(f"AI stream error: {message}")
        choices = parsed.get("choices") or []
        if not choices:
            continue
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        if content:
            yield str(content)


def stream_chat_completion(messages: list[dict[str, str]]) -> Iterator[str]:
    try:
        response = requests.post(
            _base_url("/chat/completions"),
            headers=_headers(),
            json=_chat_payload(messages, stream=True),
            timeout=settings.AI_HTTP_TIMEOUT_SECONDS,
            stream=True,
        )
    except requests.RequestException as error:
        raise AIServiceError(f"AI request failed: {error}") from error

    with response:
        if response.status_code >= 400:
            raise AIServiceError(f"AI request failed: {response.status_code} {_error_message(response)}")
        try:
            yield from iter_sse_content(response.iter_lines(decode_unicode=True))
        except requests.RequestException as error:
            raise AIServiceError(f"AI stream interrupted: {error}") from error


def generate_embedding(text: str) -> list[float]:
    clean_text = text.strip()
    if not clean_text:
        return []

    source = clean_text[: settings.AI_MAX_SOURCE_CHARS]
    data = _request_json(
        "/embeddings",
        {
            "model": settings.AI_EMBEDDING_MODEL,
            "input": source,
        },
    )
    rows = data.get("data") or []
    if not rows:
        raise AIServiceError("Embedding response is empty")
    embedding = rows[0].get("embedding") or []
    if not isinstance(embedding, list):
        raise AIServiceError("Embedding format is invalid")
    return [float(item) for item in embedding]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b:
        return 0.0

    size = min(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for i in range(size):
        av = float(a[i])
        bv = float(b[i])
        dot += av * bv
        norm_a += av * av
        norm_b += bv * bv

    if norm_a <= 0 or norm_b <= 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
