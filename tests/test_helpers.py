from funnel_cms.core import colors, media_urls
from funnel_cms.core.duplicates import NamingStyle, next_available_name, strip_suffix
from funnel_cms.models import MediaSourceType, MediaType
from funnel_cms.routers.documents import download_filename, title_from_filename
from funnel_cms.routers.projects import normalize_workflow_type
from funnel_cms.schemas import normalize_slug


def test_copy_names_skip_taken_suffixes():
    assert next_available_name("Pricing", [], NamingStyle.copy) == "Pricing (Copy)"
    assert next_available_name("Pricing", ["Pricing (Copy)"], NamingStyle.copy) == "Pricing (Copy 2)"
    assert (
        next_available_name("Pricing (Copy 2)", ["Pricing (Copy)", "Pricing (Copy 2)"], NamingStyle.copy)
        == "Pricing (Copy 3)"
    )


def test_version_names_start_at_v2():
    assert next_available_name("Hero", [], NamingStyle.version) == "Hero V2"
    assert next_available_name("Hero V2", ["Hero V2", "Hero V3"], NamingStyle.version) == "Hero V4"
    assert strip_suffix("Hero V12", NamingStyle.version) == "Hero"


def test_hsl_to_hex():
    assert colors.hsl_to_hex(0, 0, 0) == "#000000"
    assert colors.hsl_to_hex(0, 0, 100) == "#ffffff"
    assert colors.hsl_to_hex(0, 100, 50) == "#ff0000"
    assert colors.hsl_to_hex(120, 100, 25) == "#008000"
    assert colors.hsl_string_to_hex("hsl(240, 100%, 50%)") == "#0000ff"
    assert colors.hsl_string_to_hex("0 0% 100%") == "#ffffff"
    assert colors.hsl_string_to_hex("#ABCDEF") == "#abcdef"
    assert colors.hsl_string_to_hex("not a color") is None


def test_avatar_url_gets_scheme_for_cdn_hosts():
    assert media_urls.normalize_avatar_url("zone.b-cdn.net/a.png") == "https://zone.b-cdn.net/a.png"
    assert media_urls.normalize_avatar_url("https://x.test/a.png") == "https://x.test/a.png"
    assert media_urls.normalize_avatar_url("   ") is None


def test_media_type_from_source_and_extension():
    assert media_urls.determine_media_type(MediaSourceType.youtube, "abc") == MediaType.video
    assert media_urls.determine_media_type("upload", "https://cdn.test/a/photo.JPG?w=2") == MediaType.image
    assert media_urls.determine_media_type("upload", "clip.mp4") == MediaType.video
    assert media_urls.determine_media_type("upload", "deck.pdf") == MediaType.file


def test_sanitize_filename():
    assert media_urls.sanitize_filename("../My Report (final).PDF") == "My-Report-final.pdf"
    assert media_urls.sanitize_filename("", "document") == "document"


def test_document_titles_and_download_names():
    assert title_from_filename("1712345678901-market-notes.md") == "market-notes"
    assert title_from_filename("") == "Untitled Document"
    assert download_filename('Q1: "Plan"') == "Q1_ _Plan_.md"
    assert download_filename("Résumé") == "Rsum.md"
    assert download_filename("日本") == "document.md"


def test_slug_and_workflow_type_normalization():
    assert normalize_slug("  Hello World!  ") == "hello-world"
    assert normalize_workflow_type("Niche-Intelligence Report") == "niche_intelligence_report"
