# backend/fieldbook/schemas/holds.py
"""
Pydantic schemas for holds.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from ..services.slots.holds import HoldHandoff, HoldResult
from .common import AddressFields, CamelModel


class HoldRequest(AddressFields):
    """POST /junk-quote/hold"""
    instant_quote_id: UUID
    start_at: datetime  # must carry an offset, e.g. 2030-06-03T12:00:00Z


class ExtraFeeOut(CamelModel):
    item: str
    fee: float


class StandardJobEvaluationOut(CamelModel):
    is_standard: bool
    reasons: list[str]
    declined_items: list[str]
    extra_fees: list[ExtraFeeOut]
    estimated_volume_cubic_yards: Optional[float] = None
    needs_in_person_estimate: bool


class StandardJobReviewOut(CamelModel):
    required: bool
    message: str
    evaluation: StandardJobEvaluationOut


class HoldResponse(CamelModel):
    ok: bool = True
    hold_id: str
    expires_at: datetime
    standard_job_review: Optional[StandardJobReviewOut] = None

    @classmethod
    def from_result(cls, result: HoldResult) -> "HoldResponse":
        review = None
        if result.standard_job_review is not None:
            ev = result.standard_job_review.evaluation
            review = StandardJobReviewOut(
                required=result.standard_job_review.required,
                message=result.standard_job_review.message,
                evaluation=StandardJobEvaluationOut(
                    is_standard=ev.is_standard,
                    reasons=ev.reasons,
                    declined_items=ev.declined_items,
                    extra_fees=[ExtraFeeOut(item=f.item, fee=f.fee) for f in ev.extra_fees],
                    estimated_volume_cubic_yards=ev.estimated_volume_cubic_yards,
                    needs_in_person_estimate=ev.needs_in_person_estimate,
                ),
            )
        return cls(hold_id=result.hold_id, expires_at=result.expires_at, standard_job_review=review)


class HoldHandoffResponse(CamelModel):
    ok: bool = True
    hold_id: str
    instant_quote_id: Optional[str] = None
    property_id: Optional[str] = None
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    travel_buffer_minutes: int
    expires_at: datetime

    @classmethod
    def from_handoff(cls, handoff: HoldHandoff) -> "HoldHandoffResponse":
        return cls(
            hold_id=handoff.hold_id,
            instant_quote_id=handoff.instant_quote_id,
            property_id=handoff.property_id,
            start_at=handoff.start_at,
            end_at=handoff.end_at,
            duration_minutes=handoff.duration_minutes,
            travel_buffer_minutes=handoff.travel_buffer_minutes,
            expires_at=handoff.expires_at,
        )


class HoldReleaseResponse(CamelModel):
    ok: bool = True
    hold_id: str
    status: str
