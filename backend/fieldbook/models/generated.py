from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    TypeDecorator, UniqueConstraint, text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


APPOINTMENT_STATUSES = ("requested", "confirmed", "completed", "no_show", "canceled")
HOLD_STATUSES = ("active", "released")


def _uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamp stored as UTC.

    Aware values are converted to UTC on the way in; naive values coming back
    (SQLite drops tzinfo) are tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class InstantQuotes(Base):
    __tablename__ = 'instant_quotes'

    id = Column(String(36), primary_key=True, default=_uuid)
    perceived_size = Column(Text, nullable=False)
    job_types = Column(JSON, nullable=False, default=list)
    ai_result = Column(JSON, nullable=False, default=dict)
    zip = Column(Text)
    notes = Column(Text)
    source = Column(Text, nullable=False, server_default=text("'public_site'"))
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    holds = relationship('AppointmentHolds', back_populates='instant_quote')


class Properties(Base):
    __tablename__ = 'properties'
    __table_args__ = (
        UniqueConstraint('address_line1', 'postal_code', 'state', name='properties_address_key'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    address_line1 = Column(Text, nullable=False)
    city = Column(Text, nullable=False)
    state = Column(String(2), nullable=False)
    postal_code = Column(String(16), nullable=False)
    lat = Column(Float)
    lng = Column(Float)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    appointments = relationship('Appointments', back_populates='property')
    holds = relationship('AppointmentHolds', back_populates='property')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        Index('appointments_start_idx', 'start_at'),
        Index('appointments_status_idx', 'status'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    instant_quote_id = Column(ForeignKey('instant_quotes.id', ondelete='SET NULL'))
    hold_id = Column(ForeignKey('appointment_holds.id', ondelete='SET NULL'))
    start_at = Column(UTCDateTime)
    duration_min = Column(Integer, nullable=False, server_default=text('60'))
    travel_buffer_min = Column(Integer, nullable=False, server_default=text('30'))
    status = Column(Text, nullable=False, server_default=text("'requested'"))
    crew = Column(Text)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    property = relationship('Properties', back_populates='appointments')


class AppointmentHolds(Base):
    __tablename__ = 'appointment_holds'
    __table_args__ = (
        Index('appointment_holds_start_idx', 'start_at'),
        Index('appointment_holds_status_idx', 'status'),
        Index('appointment_holds_expires_idx', 'expires_at'),
        Index('appointment_holds_quote_idx', 'instant_quote_id'),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    instant_quote_id = Column(ForeignKey('instant_quotes.id', ondelete='SET NULL'))
    property_id = Column(ForeignKey('properties.id', ondelete='SET NULL'))
    start_at = Column(UTCDateTime, nullable=False)
    duration_min = Column(Integer, nullable=False, server_default=text('60'))
    travel_buffer_min = Column(Integer, nullable=False, server_default=text('30'))
    status = Column(Text, nullable=False, server_default=text("'active'"))
    expires_at = Column(UTCDateTime, nullable=False)
    consumed_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    instant_quote = relationship('InstantQuotes', back_populates='holds')
    property = relationship('Properties', back_populates='holds')


class PolicySettings(Base):
    __tablename__ = 'policy_settings'

    key = Column(Text, primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class BookingDayLocks(Base):
    __tablename__ = 'booking_day_locks'

    day_key = Column(Integer, primary_key=True, autoincrement=False)
    locked_at = Column(UTCDateTime, nullable=False, default=utcnow)
