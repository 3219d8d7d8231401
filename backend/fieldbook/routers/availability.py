# backend/fieldbook/routers/availability.py
"""
Availability API endpoint.

POST /junk-quote/availability - ranked suggestions + per-day slots for a quote
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..dependencies import get_db, get_geocoder, get_policy_provider
from ..schemas.availability import AvailabilityRequest, AvailabilityResponse
from ..services.geocode import Geocoder, LatLng
from ..services.policy import PolicyProvider
from ..services.slots import scan_availability


router = APIRouter(prefix="/junk-quote", tags=["availability"])


@router.post("/availability", response_model=AvailabilityResponse)
def post_availability(
    body: AvailabilityRequest,
    db: Session = Depends(get_db),
    policy_provider: PolicyProvider = Depends(get_policy_provider),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """Scan the booking horizon for a quote."""
    target = None
    if body.target_lat is not None and body.target_lng is not None:
        target = LatLng(lat=body.target_lat, lng=body.target_lng)

    scan = scan_availability(
        db,
        str(body.instant_quote_id),
        body.to_address(),
        body.horizon_days,
        policy_provider=policy_provider,
        geocoder=geocoder,
        target=target,
    )
    return AvailabilityResponse.from_scan(scan)
