import re
from dataclasses import dataclass
from typing import Any


HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")
DEFAULT_FONT = "inter"
DEFAULT_THEME = "dark"
DEFAULT_NAME = "AI Generated Preset"
MAX_NAME_LENGTH = 100
THEMES = ("light", "dark", "system")

FONTS = {
    "roboto": "clean geometric sans-serif",
    "lato": "warm humanist sans-serif",
    "open-sans": "neutral, highly readable sans-serif",
    "montserrat": "urban geometric sans-serif",
    "dm-sans": "modern geometric sans-serif",
    "source-code-pro": "technical monospace",
    "space-grotesk": "bold futuristic sans-serif",
    "josefin-sans": "elegant geometric sans-serif",
    "rubik": "rounded, approachable sans-serif",
    "inter": "professional humanist sans-serif",
    "poppins": "modern geometric sans-serif",
    "raleway": "refined sans-serif",
    "nunito-sans": "warm rounded sans-serif",
    "jost": "clean geometric sans-serif",
    "playfair-display": "classic elegant serif",
    "merriweather": "readable traditional serif",
    "lora": "literary serif",
    "eb-garamond": "refined classic serif",
    "gotham": "bold professional sans-serif",
    "geist-sans": "contemporary sans-serif",
    "geist-mono": "modern monospace",
}


class PresetError(ValueError):
    pass


@dataclass(frozen=True)
class PresetKind:
    name: str
    color_fields: tuple[str, str]
    system_prompt: str
    user_prompt: str
    temperature: float
    max_tokens: int
    full_theme: bool = False


_FONT_LIST = ", ".join(f"{font_id} ({description})" for font_id, description in FONTS.items())

SITE = PresetKind(
    name="site",
    color_fields=("primary_color", "secondary_color"),
    system_prompt=(
        "You design presets for business marketing websites. Pick a distinctive primary color "
        "and a secondary color that harmonises with it through complementary, analogous, triadic "
        "or split-complementary schemes. Avoid stock web colors such as #007bff or #28a745. "
        "Choose a 'dark' theme for dark primaries and 'light' for light ones. "
        f"Fonts must be ids from this list: {_FONT_LIST}. Pair the heading and body fonts. "
        "Enable wave_gradient_enabled only for vibrant, experimental presets and "
        "noise_texture_enabled only for minimal, sophisticated ones. dots_enabled is always false. "
        "Name the preset in 2-4 words. Return only a JSON object with keys primary_color, "
        "secondary_color, theme, heading_font, body_font, dots_enabled, wave_gradient_enabled, "
        "noise_texture_enabled and name. Colors use #RRGGBB."
    ),
    user_prompt="Generate a complete preset configuration now. Return only the JSON object.",
    temperature=1.3,
    max_tokens=500,
    full_theme=True,
)

ADMIN = PresetKind(
    name="admin",
    color_fields=("primary_color", "secondary_color"),
    system_prompt=(
        "You pick color pairs for admin interfaces, inspired by Pantone palettes. Generate a "
        "refined primary color (saturation 40-90%, lightness 30-70%, no neon) and a secondary "
        "color that harmonises with it through a complementary, analogous, triadic, "
        "split-complementary or monochromatic scheme. Name the pair in 2-4 words. Return only "
        "a JSON object with keys primary_color, secondary_color and name. Colors use #RRGGBB."
    ),
    user_prompt="Generate a harmonious admin color preset now. Return only the JSON object.",
    temperature=1.3,
    max_tokens=300,
)

WEBAPP = PresetKind(
    name="webapp",
    color_fields=("primary_color", "accent_color"),
    system_prompt=(
        "You pick colors for web application dashboards used for long sessions. First choose a "
        "primary color from any color family, not only blue (saturation 50-85%, lightness "
        "35-65%). Then choose an accent color that harmonises with it and stays distinct enough "
        "for hover states, badges and secondary actions. Name the pair in 2-4 words. Return "
        "only a JSON object with keys primary_color, accent_color and name. Colors use #RRGGBB."
    ),
    user_prompt=(
        "Generate a webapp preset with a primary color from a varied color family and an accent "
        "color that fits it. Return only the JSON object."
    ),
    temperature=1.5,
    max_tokens=300,
)

PRESET_KINDS = {kind.name: kind for kind in (SITE, ADMIN, WEBAPP)}


def normalize_hex(value: Any) -> str:
    if not isinstance(value, str) or not HEX_COLOR_PATTERN.match(value.strip()):
        raise PresetError("Invalid color format")
    color = value.strip().lower()
    if len(color) == 4:
        color = "#" + "".join(char * 2 for char in color[1:])
    return color


def clean_name(value: Any) -> str:
    if not isinstance(value, str):
        return DEFAULT_NAME
    name = value.strip().strip("\"'").strip()[:MAX_NAME_LENGTH]
    return name or DEFAULT_NAME


def normalize_preset(kind: PresetKind, raw: dict[str, Any]) -> dict[str, Any]:
    if not raw:
        raise PresetError("No preset generated from AI")
    if any(not raw.get(field) for field in kind.color_fields):
        raise PresetError("Missing required color fields")

    preset: dict[str, Any] = {field: normalize_hex(raw[field]) for field in kind.color_fields}
    if kind.full_theme:
        theme = raw.get("theme")
        preset["theme"] = theme if theme in THEMES else DEFAULT_THEME
        for field in ("heading_font", "body_font"):
            font = raw.get(field)
            preset[field] = font if font in FONTS else DEFAULT_FONT
        preset["dots_enabled"] = False
        preset["wave_gradient_enabled"] = bool(raw.get("wave_gradient_enabled"))
        preset["noise_texture_enabled"] = bool(raw.get("noise_texture_enabled"))
    preset["name"] = clean_name(raw.get("name"))
    return preset


def merge_into_theme(kind: PresetKind, theme: Any, preset: dict[str, Any]) -> dict[str, Any]:
    """Site presets fill the top-level theme colors; admin and webapp presets nest under their name."""
    merged = dict(theme) if isinstance(theme, dict) else {}
    if kind.full_theme:
        merged["primary"] = preset["primary_color"]
        merged["secondary"] = preset["secondary_color"]
        for field in ("theme", "heading_font", "body_font", "dots_enabled",
                      "wave_gradient_enabled", "noise_texture_enabled"):
            merged[field] = preset[field]
        merged["preset_name"] = preset["name"]
    else:
        merged[kind.name] = dict(preset)
    return merged
