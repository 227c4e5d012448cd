"""
Mock text provider for offline runs and end-to-end flow checks.

Enabled with MOCK_LLM_ENABLED=true. Produces deterministic output: the same
prompt always yields the same analysis or appeal letter.
"""

from __future__ import annotations

import hashlib
import json
import re

from claimletter.adapters.llm import Completion, CompletionOptions, LLMUsage
from claimletter.errors import AdapterFailure

_CLAIM_RE = re.compile(r"claim\s*(?:no\.?|number|#)?\s*[:#]?\s*([A-Za-z0-9-]+)", re.IGNORECASE)
_POLICY_RE = re.compile(r"policy\s*(?:no\.?|number|#)?\s*[:#]?\s*([A-Za-z0-9-]+)", re.IGNORECASE)
_TONE_RE = re.compile(r"^TONE:\s*(\w+)", re.MULTILINE)

_REASON_KEYWORDS: dict[str, str] = {
    "late filing": "Claim was filed after the policy's filing deadline.",
    "medical necessity": "Insurer considers the service not medically necessary.",
    "not medically necessary": "Insurer considers the service not medically necessary.",
    "pre-existing": "Insurer cites a pre-existing condition exclusion.",
    "out-of-network": "Provider is outside the plan's network.",
    "not covered": "Service is described as not covered by the policy.",
    "prior authorization": "Prior authorization was not obtained.",
}

_OPENINGS: dict[str, str] = {
    "professional": "I am writing to formally appeal the denial of the claim referenced above.",
    "conversational": "I'm reaching out about the recent denial of my claim and hope we can resolve it together.",
    "assertive": "I am writing to contest the denial of this claim, which I believe was made in error.",
    "diplomatic": "Thank you for your letter; I would like to respectfully ask you to reconsider this decision.",
}


def _fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def mock_analyze_letter(letter_text: str) -> dict[str, object]:
    lowered = letter_text.lower()
    claim = _CLAIM_RE.search(letter_text)
    policy = _POLICY_RE.search(letter_text)
    reasons: list[str] = []
    for keyword, reason in _REASON_KEYWORDS.items():
        if keyword in lowered and reason not in reasons:
            reasons.append(reason)
    if not reasons:
        reasons.append("Denial reason was not stated explicitly in the letter.")
    claim_number = claim.group(1) if claim else None
    subject = f"Claim #{claim_number}" if claim_number else "The claim"
    summary = f"{subject} was denied. " + " ".join(reasons)
    return {
        "claim_number": claim_number,
        "policy_number": policy.group(1) if policy else None,
        "insurer": None,
        "denial_date": None,
        "denial_reasons": reasons,
        "deadlines": [],
        "requested_documents": [],
        "summary": summary,
    }


def mock_appeal_letter(summary: str, *, tone: str = "professional") -> str:
    opening = _OPENINGS.get(tone, _OPENINGS["professional"])
    return "\n".join(
        [
            "Re: Appeal of Claim Denial",
            "",
            "Dear Claims Review Department,",
            "",
            opening,
            "",
            f"Summary of the denial: {summary.strip()}",
            "",
            "I request a full review of this decision and written confirmation of the outcome. "
            "I am happy to provide any additional documentation you require.",
            "",
            "Sincerely,",
            "[Policyholder Name]",
        ]
    )


class MockTextProvider:
    backend_name = "mock"

    def complete(self, prompt: str, options: CompletionOptions | None = None) -> Completion:
        opts = options or CompletionOptions()
        if opts.task == "analysis":
            text = json.dumps(mock_analyze_letter(prompt), ensure_ascii=True, sort_keys=True)
        elif opts.task == "appeal":
            tone_match = _TONE_RE.search(opts.system)
            tone = tone_match.group(1).lower() if tone_match else "professional"
            parts = prompt.split("\n\n")
            summary = "\n\n".join(parts[1:-1]) if len(parts) >= 3 else prompt
            text = mock_appeal_letter(summary, tone=tone)
        else:
            text = f"Mock completion {_fingerprint(prompt)}."
        usage = LLMUsage(
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            total_tokens=len(prompt.split()) + len(text.split()),
            model="mock",
        )
        return Completion(text=text, usage=usage)

    def probe(self) -> str:
        raise AdapterFailure("llm", "mock text provider enabled (MOCK_LLM_ENABLED=true)", http_status=503)
