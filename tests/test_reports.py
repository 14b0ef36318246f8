from funnel_cms.core import reports


EVALUATION = {
    "niche_name": "Dental Clinics",
    "verdict": {"label": "Pursue", "score": 8.2, "priority": "high"},
    "score_details": {"score_spread": 1.5},
    "concerns": ["Crowded market"],
}


def test_resolve_automation_aliases_and_fallback():
    assert reports.resolve_automation("Customer_Intelligence").name == "icp-research"
    assert reports.resolve_automation("lead gen targeting").name == "outbound-strategy"
    assert reports.resolve_automation("unknown").name == reports.DEFAULT_AUTOMATION
    assert reports.resolve_automation(None).name == reports.DEFAULT_AUTOMATION


def test_bare_evaluation_is_wrapped():
    normalized = reports.normalize_output({"data": [EVALUATION]})
    assert normalized["meta"]["mode"] == reports.EVALUATION_MODE
    assert normalized["meta"]["input"]["niche_name"] == "Dental Clinics"
    assert normalized["data"]["evaluation"] is EVALUATION


def test_evaluation_summary():
    assert reports.evaluation_summary(EVALUATION) == (8.2, "Pursue")
    assert reports.evaluation_summary({"meta": {}, "data": {"niche_profile": {}}}) == (None, None)


def test_evaluation_view_ignores_requested_automation():
    view = reports.build_report_view("offer-architect", EVALUATION)
    assert view["automation"] == "niche-fit-evaluation"
    assert "stats" not in view
    verdict = view["sections"][0]
    assert verdict["id"] == "verdict"
    assert verdict["number"] == "01"
    assert verdict["content"]["label"] == "Pursue"
    assert verdict["content"]["recommendation"] == reports.PLACEHOLDER
    concerns = next(item for item in view["sections"] if item["id"] == "concerns_opportunities")
    assert concerns["content"]["concerns"] == ["Crowded market"]
    assert concerns["content"]["opportunities"] == []


def test_missing_fields_render_placeholders():
    view = reports.build_report_view(
        "niche-intelligence",
        {
            "meta": {"confidence": 0.82, "sources_used": ["a", "b"], "input": {"niche_name": " "}},
            "data": {"niche_profile": {"name": "Roofers", "summary": ""}},
        },
    )
    profile = view["sections"][0]
    assert profile["available"] is True
    assert profile["content"]["name"] == "Roofers"
    assert profile["content"]["summary"] == reports.PLACEHOLDER
    assert profile["content"]["common_service_lines"] == []
    assert view["sections"][1]["available"] is False
    assert view["sources_used"] == ["a", "b"]

    stats = {card["label"]: card["value"] for card in view["stats"]}
    assert stats["Confidence"] == "82%"
    assert stats["Sections"] == 1
    assert stats["Sources"] == 2
    assert stats["Market Value"] == reports.PLACEHOLDER


def test_garbage_output_still_renders():
    view = reports.build_report_view("icp-research", ["not", "a", "dict"])
    assert view["automation"] == "icp-research"
    assert all(section["available"] is False for section in view["sections"])
    assert view["meta"]["knowledge_base"] == "unknown"
