# backend/fieldbook/dependencies.py
"""
FastAPI dependencies for injected capabilities (overridable in tests).
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .services.geocode import Geocoder, get_geocoder
from .services.policy import DatabasePolicyProvider, PolicyProvider


def get_policy_provider(db: Session = Depends(get_db)) -> PolicyProvider:
    return DatabasePolicyProvider(db)


__all__ = ["get_db", "get_geocoder", "get_policy_provider", "Geocoder", "PolicyProvider"]
