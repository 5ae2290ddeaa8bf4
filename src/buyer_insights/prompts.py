"""Prompt construction for the three generation intents.

- actions: ask for the next recommended actions as a JSON array
- artifact: client-facing write-up, shown to the buyer after agent approval
- thinking: internal analysis for the agent only
"""

import json
from typing import Any

INTENTS = ("actions", "artifact", "thinking")

STAGE_NAMES = (
    "Readiness & Expectations",
    "Home Search",
    "Offer Strategy",
    "Under Contract",
    "Closing Preparation",
    "Closing & Post-Close",
)

SYSTEM_PROMPT = """You are a decision engine for licensed real estate agents, not a chatbot.
Answer one question: what should the agent do next? Propose concrete next actions first.
Be stage-aware and block premature actions when prerequisites are missing.
Tone: calm, confident, concise, professional. Never address the buyer directly unless asked
for a client-facing artifact. Defer legal decisions to the agent. Use only the provided context.
Never use emojis or hedging words. Format with markdown: **bold** for emphasis, bullet points,
and ## headers."""

ACTIONS_INSTRUCTIONS = """Recommend the 3 most valuable next actions for this buyer.
Respond with a JSON array only, each item shaped as
{"id": "1", "label": "<short button text>", "command": "<instruction to run>", "type": "artifact" | "thinking"}.
Use "artifact" for client-facing content and "thinking" for internal analysis."""

ARTIFACT_INSTRUCTIONS = """Generate a client-facing artifact for this command. It is shown to the buyer
after agent approval.
- Address the buyer by first name, professional but warm
- Structure with ## headers and bullet points
- No legal advice and no commitments the agent has not approved
- When budget is involved, state Conservative, Target and Stretch bands as "$min - $max"
- Under 250 words"""

THINKING_INSTRUCTIONS = """Provide internal analysis for the agent only; it is never shared with the buyer.
Include a direct answer, risk assessment, strategic considerations, compliance notes where
relevant, and the recommended approach."""


def _money(value: Any) -> str:
    if isinstance(value, (int, float)):
        return f"${value:,.0f}"
    return "Not specified"


def build_context_block(context: dict[str, Any] | None) -> str:
    """Render buyer context as the BUYER CONTEXT prompt section."""
    context = context or {}
    stage = context.get("current_stage")
    stage_name = STAGE_NAMES[stage] if isinstance(stage, int) and 0 <= stage < len(STAGE_NAMES) else "Unknown"

    lines = [
        "BUYER CONTEXT:",
        f"- Name: {context.get('name') or 'Unknown'}",
        f"- Current Stage: Stage {stage if stage is not None else '?'} - {stage_name}",
        f"- Financing: {'Confirmed' if context.get('financing_confirmed') else 'Not Confirmed'}",
        f"- Buyer Type: {context.get('buyer_type') or 'Not specified'}",
        f"- Market Context: {context.get('market_context') or 'General market'}",
    ]

    status = context.get("pre_approval_status")
    if status:
        lines.append(f"- Pre-Approval Status: {status}")
        # An amount without an approval is not a budget
        if status == "Pre-Approved" and context.get("pre_approval_amount"):
            lines.append(f"- Pre-Approval Amount: {_money(context['pre_approval_amount'])}")

    if context.get("budget_min") or context.get("budget_max"):
        lines.append(f"- Budget: {_money(context.get('budget_min'))} - {_money(context.get('budget_max'))}")
    if context.get("preferred_cities"):
        lines.append(f"- Preferred Cities: {', '.join(context['preferred_cities'])}")
    if context.get("property_types"):
        lines.append(f"- Property Types: {', '.join(context['property_types'])}")
    if context.get("min_beds") or context.get("min_baths"):
        lines.append(f"- Minimum: {context.get('min_beds') or 0} beds, {context.get('min_baths') or 0} baths")
    for field, label in (
        ("must_haves", "Must-Haves"),
        ("nice_to_haves", "Nice-to-Haves"),
        ("agent_notes", "Agent Notes"),
    ):
        if context.get(field):
            lines.append(f"- {label}: {context[field]}")
    if context.get("recent_activity"):
        lines.append(f"- Recent Activity: {', '.join(context['recent_activity'])}")

    return "\n".join(lines)


def build_messages(
    command: str,
    intent: str,
    context: dict[str, Any] | None = None,
    comparables: list[dict[str, Any]] | None = None,
) -> list[dict[str, str]]:
    """Build the chat messages for one generation.

    Args:
        command: The agent's command or question ("" for actions)
        intent: "actions", "artifact" or "thinking"
        context: Buyer profile fields
        comparables: Comparison data (e.g. comparable listings), if gathered

    Returns:
        System and user messages
    """
    if intent not in INTENTS:
        raise ValueError(f"Unknown intent: {intent!r}")

    parts = [build_context_block(context)]
    if comparables:
        parts.append("COMPARISON DATA:\n" + json.dumps(comparables, indent=2, default=str))

    if intent == "actions":
        parts.append(ACTIONS_INSTRUCTIONS)
    elif intent == "artifact":
        parts.append(f"AGENT COMMAND: {command}\n\n{ARTIFACT_INSTRUCTIONS}")
    else:
        parts.append(f"AGENT QUESTION: {command}\n\n{THINKING_INSTRUCTIONS}")

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n\n".join(parts)},
    ]
