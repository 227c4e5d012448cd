from __future__ import annotations

from dataclasses import dataclass
from typing import Any

TONE_INSTRUCTIONS: dict[str, str] = {
    "professional": "Professional & Formal: use formal language, proper titles, and official terminology.",
    "conversational": "Conversational & Friendly: use approachable language while maintaining professionalism.",
    "assertive": "Assertive & Direct: be firm and direct in your statements and requests.",
    "diplomatic": "Conciliatory & Diplomatic: use diplomatic language to find common ground.",
}

APPROACH_INSTRUCTIONS: dict[str, str] = {
    "defensive": (
        "Defensive & Protective: focus on protecting policyholder rights and challenging "
        "insurance company positions."
    ),
    "cooperative": "Cooperative & Collaborative: work with the insurance company to resolve issues amicably.",
    "challenging": "Challenging & Questioning: question insurance findings and demand detailed explanations.",
    "explanatory": "Explanatory & Educational: focus on explaining the policyholder's position clearly.",
}

STYLE_INSTRUCTIONS: dict[str, str] = {
    "detailed": "Detailed & Comprehensive: provide extensive explanations and supporting details.",
    "concise": "Concise & To-the-Point: keep responses brief and focused on key points.",
    "technical": "Technical & Legal-Focused: use legal terminology and cite specific insurance laws.",
    "personal": "Personal & Relatable: use personal examples and relatable language.",
}

DEFAULT_TONE = "professional"
DEFAULT_APPROACH = "cooperative"
DEFAULT_STYLE = "detailed"


@dataclass(frozen=True)
class StyleOptions:
    tone: str = DEFAULT_TONE
    approach: str = DEFAULT_APPROACH
    style: str = DEFAULT_STYLE
    # Option names whose requested value was not recognized.
    defaulted: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "tone": self.tone,
            "approach": self.approach,
            "style": self.style,
            "defaulted": list(self.defaulted),
        }


def _pick(value: str | None, allowed: dict[str, str], default: str) -> tuple[str, bool]:
    if value is None:
        return default, False
    normalized = str(value).strip().lower()
    if not normalized:
        return default, False
    if normalized in allowed:
        return normalized, False
    return default, True


def resolve_style_options(
    *,
    tone: str | None = None,
    approach: str | None = None,
    style: str | None = None,
) -> StyleOptions:
    """Map requested options onto the fixed templates; unknown values fall back to the defaults."""
    resolved_tone, tone_defaulted = _pick(tone, TONE_INSTRUCTIONS, DEFAULT_TONE)
    resolved_approach, approach_defaulted = _pick(approach, APPROACH_INSTRUCTIONS, DEFAULT_APPROACH)
    resolved_style, style_defaulted = _pick(style, STYLE_INSTRUCTIONS, DEFAULT_STYLE)
    defaulted = tuple(
        name
        for name, flag in (("tone", tone_defaulted), ("approach", approach_defaulted), ("style", style_defaulted))
        if flag
    )
    return StyleOptions(tone=resolved_tone, approach=resolved_approach, style=resolved_style, defaulted=defaulted)


ANALYSIS_SYSTEM_PROMPT = """You are an experienced insurance claims analyst. Read the insurance denial
letter supplied by the user and extract the facts an appeal will need.

Return a JSON object with exactly these keys:
{
  "claim_number": <string or null>,
  "policy_number": <string or null>,
  "insurer": <string or null>,
  "denial_date": <string or null>,
  "denial_reasons": [<string>, ...],
  "deadlines": [<string>, ...],
  "requested_documents": [<string>, ...],
  "summary": "<plain-text synopsis of the denial in 2-5 sentences>"
}
Do not invent facts that are not in the letter; use null or an empty list instead."""

ANALYSIS_USER_TEMPLATE = """Insurance denial letter:

{letter_text}"""

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "claim_number": {"type": ["string", "null"]},
        "policy_number": {"type": ["string", "null"]},
        "insurer": {"type": ["string", "null"]},
        "denial_date": {"type": ["string", "null"]},
        "denial_reasons": {"type": "array", "items": {"type": "string"}},
        "deadlines": {"type": "array", "items": {"type": "string"}},
        "requested_documents": {"type": "array", "items": {"type": "string"}},
        "summary": {"type": "string", "minLength": 1},
    },
    "required": ["denial_reasons", "summary"],
}

APPEAL_SYSTEM_TEMPLATE = """You are an experienced insurance adjuster and consumer advocate with 20+ years of
experience specializing in insurance claim denials and appeals.

Write a professional, legally-compliant insurance appeal letter with the following specifications:

TONE: {tone}
- {tone_instruction}

APPROACH: {approach}
- {approach_instruction}

WRITING STYLE: {style}
- {style_instruction}

1. Format & Structure:
   - Use proper business letter format with date, recipient, and subject line
   - Reference the specific claim number, policy number, and denial date
   - Include a proper salutation ("Dear ...,") and closing ("Sincerely,")

2. Content Requirements:
   - Address each specific reason for denial raised by the insurance company
   - Provide clear, factual explanations with supporting details
   - Include relevant policy language and state insurance law references when appropriate
   - Request specific actions or clarifications as needed
   - Offer to provide additional documentation if required

3. Response Elements:
   - Acknowledge receipt of the denial letter
   - State the policyholder's position clearly and concisely
   - Request specific relief or clarification
   - Include contact information placeholders for follow-up
   - Set reasonable expectations for response time

Write a response that matches the specified tone, approach, and style while protecting the
policyholder's rights and maintaining professional standards."""

APPEAL_USER_TEMPLATE = """Based on this insurance denial letter analysis, write a professional appeal letter:

{summary}

Ensure the response addresses all issues raised, provides clear explanations, and follows proper
insurance appeal protocols."""


def build_analysis_prompt(letter_text: str) -> str:
    return ANALYSIS_USER_TEMPLATE.format(letter_text=letter_text.strip())


def build_appeal_system_prompt(options: StyleOptions) -> str:
    return APPEAL_SYSTEM_TEMPLATE.format(
        tone=options.tone,
        tone_instruction=TONE_INSTRUCTIONS[options.tone],
        approach=options.approach,
        approach_instruction=APPROACH_INSTRUCTIONS[options.approach],
        style=options.style,
        style_instruction=STYLE_INSTRUCTIONS[options.style],
    )


def build_appeal_prompt(summary: str) -> str:
    return APPEAL_USER_TEMPLATE.format(summary=summary.strip())
