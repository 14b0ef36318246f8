"""Report registry and view-model rendering for automation outputs.

Automation outputs are stored as opaque JSON. Rendering never validates the
document: absent scalars become ``PLACEHOLDER`` and absent lists become ``[]``
so a renamed or missing field degrades to an empty card instead of an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


PLACEHOLDER = "—"
DEFAULT_AUTOMATION = "niche-intelligence"
EVALUATION_MODE = "niche_fit_evaluation"


@dataclass(frozen=True)
class ReportSection:
    id: str
    title: str
    path: tuple[str, ...]
    fields: tuple[str, ...] = ()
    lists: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportHeader:
    report_type_label: str
    mode_label: str
    subtitle: str
    show_stats_cards: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "reportTypeLabel": self.report_type_label,
            "modeLabel": self.mode_label,
            "subtitle": self.subtitle,
            "showStatsCards": self.show_stats_cards,
        }


@dataclass(frozen=True)
class Automation:
    name: str
    header: ReportHeader
    sections: tuple[ReportSection, ...]
    aliases: tuple[str, ...] = field(default_factory=tuple)


NICHE_INTELLIGENCE_SECTIONS = (
    ReportSection(
        "niche_profile",
        "Niche Profile",
        ("niche_profile",),
        fields=("name", "category", "summary", "what_they_sell", "description"),
        lists=("common_service_lines", "typical_customer_types"),
    ),
    ReportSection(
        "market_intelligence",
        "Market Intelligence",
        ("market_intelligence",),
        fields=("market_size", "growth_trend", "competitive_intensity"),
        lists=("key_trends",),
    ),
    ReportSection(
        "buyer_psychology",
        "Buyer Psychology",
        ("buyer_psychology",),
        lists=("pain_points", "desired_outcomes", "objections", "buying_triggers"),
    ),
    ReportSection("value_dynamics", "Value Dynamics", ("value_dynamics",), fields=("average_deal_value",)),
    ReportSection("lead_gen_strategy", "Lead Generation Strategy", ("lead_gen_strategy",), lists=("channels",)),
    ReportSection("targeting_strategy", "Targeting Strategy", ("targeting_strategy",), lists=("ideal_segments",)),
    ReportSection("generic_offer_angles", "Offer Angles", ("generic_offer_angles",)),
    ReportSection("outbound_approach", "Outbound Approach", ("outbound_approach",)),
    ReportSection("positioning_intel", "Positioning Intel", ("positioning_intel",)),
    ReportSection("messaging_inputs", "Messaging Inputs", ("messaging_inputs",)),
    ReportSection("research_links", "Research Links", ("research_links",)),
)

ICP_SECTIONS = (
    ReportSection("icp_snapshot", "ICP Snapshot", ("icp_snapshot",), fields=("summary",)),
    ReportSection("primary_segments", "Primary Segments", ("primary_segments",)),
    ReportSection("market_sizing", "Market Sizing", ("market_sizing",)),
    ReportSection("buying_committee", "Buying Committee", ("buying_committee",)),
    ReportSection("triggers", "Buying Triggers", ("triggers",)),
    ReportSection("purchase_journey", "Purchase Journey", ("purchase_journey",)),
    ReportSection("competitive_context", "Competitive Context", ("competitive_context",)),
    ReportSection("ops_outputs", "Operational Outputs", ("ops_outputs",)),
)

NICHE_EVALUATION_SECTIONS = (
    ReportSection(
        "verdict",
        "Verdict",
        ("evaluation", "verdict"),
        fields=("label", "score", "priority", "recommendation"),
    ),
    ReportSection(
        "confidence",
        "Evaluator Confidence",
        ("evaluation", "confidence"),
        fields=("average", "level", "description"),
    ),
    ReportSection("score_details", "Score Details", ("evaluation", "score_details"), fields=("score_spread",)),
    ReportSection("synthesis", "Synthesis", ("evaluation", "synthesis")),
    ReportSection(
        "concerns_opportunities",
        "Concerns & Opportunities",
        ("evaluation",),
        lists=("concerns", "opportunities"),
    ),
    ReportSection("individual_scores", "Individual Scores", ("evaluation", "individual_scores")),
)

OUTBOUND_SECTIONS = (
    ReportSection("our_positioning", "Our Positioning", ("our_positioning",)),
    ReportSection("targeting_strategy", "Targeting Strategy", ("targeting_strategy",)),
    ReportSection("segmentation_rules", "Segmentation Rules", ("segmentation_rules",)),
    ReportSection("title_packs", "Title Packs", ("title_packs",)),
    ReportSection("buyer_psychology", "Buyer Psychology", ("buyer_psychology",)),
    ReportSection("messaging_strategy", "Messaging Strategy", ("messaging_strategy",)),
    ReportSection("objection_handling", "Objection Handling", ("objection_handling",)),
    ReportSection("enrichment_requirements", "Enrichment Requirements", ("enrichment_requirements",)),
    ReportSection("sales_process", "Sales Process", ("sales_process",)),
    ReportSection("pilot", "Pilot Program", ("pilot",)),
    ReportSection("targeting_quick_reference", "Targeting Quick Reference", ("targeting_quick_reference",)),
)

OFFER_ARCHITECT_SECTIONS = (
    ReportSection("target_market", "Target Market", ("target_market",)),
    ReportSection(
        "what_you_sell",
        "What You Sell",
        ("what_you_sell",),
        fields=("core_promise", "what_you_are_actually_selling"),
        lists=("what_you_are_not_selling", "why_this_distinction_matters"),
    ),
    ReportSection("value_proposition", "Value Proposition", ("value_proposition",)),
    ReportSection("offer_structure", "Offer Structure", ("offer_structure",)),
    ReportSection("pricing_architecture", "Pricing Architecture", ("pricing_architecture",)),
    ReportSection("guarantee_design", "Guarantee Design", ("guarantee_design",)),
    ReportSection("offer_naming", "Offer Naming", ("offer_naming",)),
    ReportSection("proof_requirements", "Proof Requirements", ("proof_requirements",)),
    ReportSection("objection_handling", "Objection Handling", ("objection_handling",)),
    ReportSection("lead_magnet", "Lead Magnet", ("lead_magnet",)),
    ReportSection("outreach_strategy", "Outreach Strategy", ("outreach_strategy",)),
    ReportSection("sales_enablement", "Sales Enablement", ("sales_enablement",)),
)

AUTOMATIONS = (
    Automation(
        "niche-intelligence",
        ReportHeader(
            "Niche Intelligence Report",
            "Lead Generation Targeting Mode",
            "Comprehensive Market Intelligence & Strategic Targeting Analysis",
            True,
        ),
        NICHE_INTELLIGENCE_SECTIONS,
    ),
    Automation(
        "descriptive-intelligence",
        ReportHeader(
            "Niche Intelligence Report",
            "Descriptive Intelligence Mode",
            "Comprehensive Market Intelligence & Niche Analysis",
            True,
        ),
        NICHE_INTELLIGENCE_SECTIONS,
    ),
    Automation(
        "icp-research",
        ReportHeader(
            "ICP Research Report",
            "Customer Research Mode",
            "Ideal Customer Profile & Buyer Intelligence",
            False,
        ),
        ICP_SECTIONS,
        aliases=("customer-intelligence", "niche-customer-research"),
    ),
    Automation(
        "niche-fit-evaluation",
        ReportHeader(
            "Niche Evaluation Report",
            "Strategic Assessment Mode",
            "Detailed Niche Analysis & Opportunity Evaluation",
            False,
        ),
        NICHE_EVALUATION_SECTIONS,
    ),
    Automation(
        "outbound-strategy",
        ReportHeader(
            "Outbound Strategy Report",
            "Lead Gen Targeting Mode",
            "Comprehensive Outbound Sales Strategy & Targeting Playbook",
            True,
        ),
        OUTBOUND_SECTIONS,
        aliases=("lead-gen-targeting",),
    ),
    Automation(
        "offer-architect",
        ReportHeader(
            "Offer Architecture Report",
            "Offer Design Mode",
            "Complete Offer Architecture Including Pricing, Guarantees & Positioning",
            True,
        ),
        OFFER_ARCHITECT_SECTIONS,
    ),
)


def _build_registry() -> dict[str, Automation]:
    registry: dict[str, Automation] = {}
    for automation in AUTOMATIONS:
        registry[automation.name] = automation
        for alias in automation.aliases:
            registry[alias] = automation
    return registry


REGISTRY = _build_registry()


def normalize_automation_name(name: str | None) -> str:
    return (name or "").strip().lower().replace("_", "-").replace(" ", "-")


def resolve_automation(name: str | None) -> Automation:
    return REGISTRY.get(normalize_automation_name(name)) or REGISTRY[DEFAULT_AUTOMATION]


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _get(source: Any, *path: str) -> Any:
    current = source
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def is_evaluation_output(output_json: Any) -> bool:
    if not isinstance(output_json, dict):
        return False
    return bool(
        output_json.get("verdict")
        and output_json.get("score_details")
        and not output_json.get("meta")
        and not output_json.get("niche_profile")
    )


def normalize_output(output_json: Any) -> dict[str, Any]:
    payload = output_json if isinstance(output_json, dict) else {}
    if isinstance(payload.get("data"), list) and payload["data"]:
        first = payload["data"][0]
        if is_evaluation_output(first):
            payload = first

    if is_evaluation_output(payload):
        return {
            "meta": {
                "knowledge_base": "unknown",
                "mode": EVALUATION_MODE,
                "confidence": 0,
                "generated_at": payload.get("evaluation_timestamp") or _today(),
                "input": {"niche_name": payload.get("niche_name") or "", "geo": ""},
            },
            "data": {"evaluation": payload},
        }

    meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    meta_input = meta.get("input") if isinstance(meta.get("input"), dict) else {}
    confidence = meta.get("confidence")
    sources_used = meta.get("sources_used")
    return {
        "meta": {
            "knowledge_base": meta.get("knowledge_base") or "unknown",
            "mode": meta.get("mode") or "lead_gen_targeting",
            "confidence": confidence if isinstance(confidence, (int, float)) else 0,
            "generated_at": meta.get("generated_at") or _today(),
            "sources_used": sources_used if isinstance(sources_used, list) else None,
            "input": {
                "niche_name": meta_input.get("niche_name") or "",
                "geo": meta_input.get("geo") or "",
                "notes": meta_input.get("notes"),
                "ai_model": meta_input.get("ai_model"),
            },
            "focus": meta.get("focus"),
            "market_value": meta.get("market_value"),
        },
        "data": data,
    }


def evaluation_summary(output_json: Any) -> tuple[float | None, str | None]:
    normalized = normalize_output(output_json)
    evaluation = _get(normalized, "data", "evaluation")
    if not isinstance(evaluation, dict):
        return None, None
    verdict = evaluation.get("verdict")
    if isinstance(verdict, dict):
        score = verdict.get("score")
        label = verdict.get("label")
    else:
        score = evaluation.get("fit_score") or evaluation.get("score")
        label = verdict
    fit_score = float(score) if isinstance(score, (int, float)) else None
    return fit_score, (str(label) if label else None)


def render_value(value: Any) -> Any:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, str):
        return value if value.strip() else PLACEHOLDER
    if isinstance(value, dict):
        return {key: render_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item) for item in value]
    return value


def render_section(section: ReportSection, data: dict[str, Any], number: int) -> dict[str, Any]:
    raw = _get(data, *section.path)
    content = render_value(raw) if raw is not None else {}
    if section.fields or section.lists:
        if not isinstance(content, dict):
            content = {"value": content}
        for name in section.fields:
            if content.get(name) in (None, "", PLACEHOLDER):
                content[name] = PLACEHOLDER
        for name in section.lists:
            if not isinstance(content.get(name), list):
                content[name] = []
    return {
        "id": section.id,
        "number": f"{number:02d}",
        "title": section.title,
        "available": raw not in (None, "", [], {}),
        "content": content,
    }


def _stats_cards(meta: dict[str, Any], sections: list[dict[str, Any]]) -> list[dict[str, Any]]:
    sources = meta.get("sources_used") or []
    confidence = meta.get("confidence") or 0
    return [
        {"label": "Confidence", "value": f"{round(confidence * 100)}%" if 0 < confidence <= 1 else (
            f"{confidence}%" if confidence else PLACEHOLDER
        )},
        {"label": "Sections", "value": sum(1 for item in sections if item["available"])},
        {"label": "Sources", "value": len(sources) if sources else PLACEHOLDER},
        {"label": "Market Value", "value": render_value(meta.get("market_value"))},
    ]


def build_report_view(automation_name: str | None, output_json: Any) -> dict[str, Any]:
    normalized = normalize_output(output_json)
    meta = normalized["meta"]
    data = normalized["data"]
    if meta["mode"] == EVALUATION_MODE:
        automation = REGISTRY["niche-fit-evaluation"]
    else:
        automation = resolve_automation(automation_name)

    sections = [
        render_section(section, data, index)
        for index, section in enumerate(automation.sections, start=1)
    ]
    sources = meta.get("sources_used") or _get(data, "sources_used") or []
    view = {
        "automation": automation.name,
        "header": automation.header.to_dict(),
        "meta": render_value({key: value for key, value in meta.items() if key != "sources_used"}),
        "sections": sections,
        "sources_used": render_value(sources) if isinstance(sources, list) else [],
    }
    if automation.header.show_stats_cards:
        view["stats"] = _stats_cards(meta, sections)
    return view
