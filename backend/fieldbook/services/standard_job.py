"""
backend/fieldbook/services/standard_job.py

Standard-job classification.

Flags quotes that need a human look before the crew is sent: services outside
the allowed list, oversize volume or item count, declined items, or an AI
result asking for an in-person estimate. Advisory only; hold admission never
depends on it.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .policy import ExtraFee, ItemPoliciesPolicy, StandardJobPolicy

LOAD_TO_CUBIC_YARDS = 12

_GENERAL_JUNK = [
    "general_junk", "general-junk", "junk_removal", "junk_removal_primary",
    "single_item", "single-item", "rubbish", "trash", "garbage",
    "household_waste", "household-waste",
]

WILDCARD_SERVICES = {
    "junk_removal_primary", "junk_removal", "general_junk", "single_item",
    "rubbish", "trash", "garbage", "household_waste",
}

SERVICE_ALIAS: dict[str, list[str]] = {
    "furniture": ["furniture"],
    "appliances": ["appliances"],
    "general_junk": _GENERAL_JUNK,
    "single_item": _GENERAL_JUNK,
    "rubbish": _GENERAL_JUNK,
    "trash": _GENERAL_JUNK,
    "garbage": _GENERAL_JUNK,
    "household_waste": _GENERAL_JUNK,
    "yard_waste": ["yard_waste", "yard-waste"],
    "construction_debris": ["construction_debris", "construction-debris"],
    "hot_tub_playset": ["hot_tub", "hot-tub", "hot_tub_playset"],
    "business_commercial": ["business_commercial", "commercial", "business"],
}

LOAD_FRACTION_BY_SIZE = {
    "few_items": 0.25,
    "small_area": 0.5,
    "one_room_or_half_garage": 0.75,
    "big_cleanout": 1.5,
}


@dataclass
class StandardJobEvaluation:
    is_standard: bool
    reasons: list[str] = field(default_factory=list)
    declined_items: list[str] = field(default_factory=list)
    extra_fees: list[ExtraFee] = field(default_factory=list)
    estimated_volume_cubic_yards: Optional[float] = None
    needs_in_person_estimate: bool = False


def evaluate_standard_job(
    job_types: list[str],
    perceived_size: Optional[str],
    notes: Optional[str],
    ai_result: Any,
    standard_policy: StandardJobPolicy,
    item_policy: ItemPoliciesPolicy,
    item_count: Optional[int] = None,
) -> StandardJobEvaluation:
    reasons: list[str] = []
    normalized_types = [t for t in (_normalize_key(v) for v in job_types or []) if t]
    needs_in_person = isinstance(ai_result, dict) and ai_result.get("needsInPersonEstimate") is True

    if not _is_service_allowed(normalized_types, standard_policy):
        reasons.append("service_not_allowed")

    load_fraction = _resolve_load_fraction(ai_result, perceived_size)
    volume = round(load_fraction * LOAD_TO_CUBIC_YARDS, 1) if load_fraction is not None else None
    if volume is not None and standard_policy.max_volume_cubic_yards > 0 and volume > standard_policy.max_volume_cubic_yards:
        reasons.append("volume_exceeds_limit")

    if item_count is not None and standard_policy.max_item_count > 0 and item_count > standard_policy.max_item_count:
        reasons.append("item_count_exceeds_limit")

    if needs_in_person:
        reasons.append("needs_in_person_estimate")

    text = _search_text(normalized_types, notes, ai_result)
    declined = [item for item in item_policy.declined if item.strip() and item.lower().strip() in text]
    extra_fees = [fee for fee in item_policy.extra_fees if fee.item.strip() and fee.item.lower().strip() in text]
    if declined:
        reasons.append("declined_items")

    return StandardJobEvaluation(
        is_standard=not reasons,
        reasons=reasons,
        declined_items=declined,
        extra_fees=extra_fees,
        estimated_volume_cubic_yards=volume,
        needs_in_person_estimate=needs_in_person,
    )


def build_standard_job_message(evaluation: StandardJobEvaluation) -> str:
    if evaluation.declined_items:
        return f"We may not be able to take: {', '.join(evaluation.declined_items)}. We'll confirm options by text."
    if "volume_exceeds_limit" in evaluation.reasons or "item_count_exceeds_limit" in evaluation.reasons:
        return "This job looks larger than average. We'll confirm details by text."
    if "needs_in_person_estimate" in evaluation.reasons and "service_not_allowed" not in evaluation.reasons:
        return "We may need a quick review before booking. We'll confirm details by text."
    return "This request needs a quick review. We'll confirm details by text."


# ── Helpers ──────────────────────────────────────────────────────────────


def _normalize_key(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(value).lower()).strip("_")


def _is_service_allowed(job_types: list[str], policy: StandardJobPolicy) -> bool:
    allowed = {_normalize_key(s) for s in policy.allowed_services}
    if not allowed:
        return True
    if allowed & WILDCARD_SERVICES:
        return True
    for job_type in job_types:
        aliases = SERVICE_ALIAS.get(job_type, [job_type])
        if not any(_normalize_key(alias) in allowed for alias in aliases):
            return False
    return True


def _resolve_load_fraction(ai_result: Any, perceived_size: Optional[str]) -> Optional[float]:
    if isinstance(ai_result, dict):
        load = ai_result.get("loadFractionEstimate")
        if isinstance(load, (int, float)) and not isinstance(load, bool) and load > 0:
            return float(load)
    return LOAD_FRACTION_BY_SIZE.get((perceived_size or "").lower())


def _search_text(job_types: list[str], notes: Optional[str], ai_result: Any) -> str:
    parts = [t.replace("_", " ") for t in job_types]
    if isinstance(notes, str):
        parts.append(notes)
    if isinstance(ai_result, dict):
        for key in ("reasonSummary", "displayTierLabel"):
            if isinstance(ai_result.get(key), str):
                parts.append(ai_result[key])
    return " ".join(parts).lower()
