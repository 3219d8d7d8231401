# backend/fieldbook/routers/holds.py
"""
Hold API endpoints.

POST   /junk-quote/hold           - reserve a start time (TTL)
GET    /junk-quote/hold/{hold_id} - hand-off contract for the confirmation step
DELETE /junk-quote/hold/{hold_id} - release a hold
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..dependencies import get_db, get_geocoder, get_policy_provider
from ..schemas.holds import HoldHandoffResponse, HoldReleaseResponse, HoldRequest, HoldResponse
from ..services.geocode import Geocoder
from ..services.policy import PolicyProvider
from ..services.slots import create_hold, get_hold_handoff, release_hold


router = APIRouter(prefix="/junk-quote", tags=["holds"])


@router.post("/hold", response_model=HoldResponse)
def post_hold(
    body: HoldRequest,
    db: Session = Depends(get_db),
    policy_provider: PolicyProvider = Depends(get_policy_provider),
    geocoder: Geocoder = Depends(get_geocoder),
):
    result = create_hold(
        db,
        str(body.instant_quote_id),
        body.start_at,
        body.to_address(),
        policy_provider=policy_provider,
        geocoder=geocoder,
    )
    return HoldResponse.from_result(result)


@router.get("/hold/{hold_id}", response_model=HoldHandoffResponse)
def get_hold(hold_id: str, db: Session = Depends(get_db)):
    return HoldHandoffResponse.from_handoff(get_hold_handoff(db, hold_id))


@router.delete("/hold/{hold_id}", response_model=HoldReleaseResponse)
def delete_hold(hold_id: str, db: Session = Depends(get_db)):
    hold = release_hold(db, hold_id)
    return HoldReleaseResponse(hold_id=hold.id, status=hold.status)
