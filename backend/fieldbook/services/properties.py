"""
backend/fieldbook/services/properties.py

Service addresses (properties) and their coordinates.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.generated import Properties
from .geocode import Address, Geocoder, LatLng
from .policy import normalize_postal_code

logger = logging.getLogger(__name__)


def normalize_address(address: Address) -> Address:
    """Trim fields, upper-case the state, cut the postal code to 5 digits when possible."""
    postal = address.postal_code.strip()
    return Address(
        address_line1=" ".join(address.address_line1.split()),
        city=address.city.strip(),
        state=address.state.strip().upper(),
        postal_code=normalize_postal_code(postal) or postal,
    )


def find_property(db: Session, address: Address) -> Optional[Properties]:
    return (
        db.query(Properties)
        .filter(
            Properties.address_line1 == address.address_line1,
            Properties.postal_code == address.postal_code,
            Properties.state == address.state,
        )
        .first()
    )


def resolve_coordinates(
    db: Session,
    address: Address,
    geocoder: Geocoder,
    target: Optional[LatLng] = None,
) -> Optional[LatLng]:
    """
    Coordinates for an address, best-effort.

    Explicit target wins, then a stored property's coordinates, then the geocoder.
    Geocoder errors are logged and yield None.
    """
    if target is not None:
        return target

    prop = find_property(db, address)
    if prop is not None and prop.lat is not None and prop.lng is not None:
        return LatLng(lat=prop.lat, lng=prop.lng)

    try:
        return geocoder.geocode(address)
    except Exception as e:
        logger.warning(f"Geocoder error for {address.one_line!r}: {e}")
        return None


def get_or_create_property(db: Session, address: Address, coords: Optional[LatLng]) -> Properties:
    """Find the property for an address or insert it. Fills missing coordinates."""
    prop = find_property(db, address)
    if prop is None:
        prop = _insert_property(db, address, coords)
    if coords is not None and (prop.lat is None or prop.lng is None):
        prop.lat = coords.lat
        prop.lng = coords.lng
        db.flush()
    return prop


def _insert_property(db: Session, address: Address, coords: Optional[LatLng]) -> Properties:
    prop = Properties(
        address_line1=address.address_line1,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        lat=coords.lat if coords else None,
        lng=coords.lng if coords else None,
    )
    try:
        with db.begin_nested():
            db.add(prop)
            db.flush()
        return prop
    except IntegrityError:
        # Another transaction inserted the same address after our lookup
        existing = find_property(db, address)
        if existing is None:
            raise
        logger.info(f"Property for {address.one_line!r} inserted concurrently, reusing {existing.id}")
        return existing
