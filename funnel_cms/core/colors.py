import re


_HSL_PATTERN = re.compile(
    r"^\s*(?:hsla?\(\s*)?"
    r"(?P<h>-?\d+(?:\.\d+)?)(?:deg)?\s*[,\s]\s*"
    r"(?P<s>\d+(?:\.\d+)?)%?\s*[,\s]\s*"
    r"(?P<l>\d+(?:\.\d+)?)%?"
    r"\s*(?:[,/]\s*[\d.]+%?\s*)?\)?\s*$",
    re.IGNORECASE,
)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def hsl_to_hex(h: float, s: float, l: float) -> str:
    hue = float(h) % 360
    sat = _clamp(float(s), 0, 100) / 100
    light = _clamp(float(l), 0, 100) / 100

    chroma = (1 - abs(2 * light - 1)) * sat
    x = chroma * (1 - abs((hue / 60) % 2 - 1))
    m = light - chroma / 2

    if hue < 60:
        r, g, b = chroma, x, 0.0
    elif hue < 120:
        r, g, b = x, chroma, 0.0
    elif hue < 180:
        r, g, b = 0.0, chroma, x
    elif hue < 240:
        r, g, b = 0.0, x, chroma
    elif hue < 300:
        r, g, b = x, 0.0, chroma
    else:
        r, g, b = chroma, 0.0, x

    channels = [int(round(_clamp((value + m) * 255, 0, 255))) for value in (r, g, b)]
    return "#" + "".join(f"{value:02x}" for value in channels)


def parse_hsl(value: str) -> tuple[float, float, float] | None:
    match = _HSL_PATTERN.match(value or "")
    if not match:
        return None
    return float(match.group("h")), float(match.group("s")), float(match.group("l"))


def hsl_string_to_hex(value: str | None) -> str | None:
    if not value:
        return None
    text = value.strip()
    if text.startswith("#"):
        return text.lower()
    parsed = parse_hsl(text)
    if parsed is None:
        return None
    return hsl_to_hex(*parsed)
