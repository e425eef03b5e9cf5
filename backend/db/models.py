import datetime as dt
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class SpotModel(Base):
    """Persisted parking spot.

    - Primary key is (`garage_id`, `spot_id`), where `spot_id` is the
      human-readable `F{floor}-{bay}-{number}` identity.
    - `features` is stored as a comma-separated, sorted list.
    - `occupant` is the normalized plate holding the spot; it is set exactly
      when `status` is 'occupied'.
    """

    __tablename__ = "spots"

    garage_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    spot_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    floor: Mapped[int] = mapped_column(Integer, nullable=False)
    bay: Mapped[str] = mapped_column(String(8), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    spot_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    features: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available", index=True)
    occupant: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class VehicleModel(Base):
    """Persisted vehicle. One row per (garage, normalized plate), reused on re-entry."""

    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint("garage_id", "license_plate", name="uq_vehicle_garage_plate"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    garage_id: Mapped[str] = mapped_column(String(64), nullable=False)
    license_plate: Mapped[str] = mapped_column(String(16), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    spot_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    checked_in_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_out_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class SessionModel(Base):
    """Persisted parking session.

    The partial unique index keeps at most one 'active' session per vehicle.
    """

    __tablename__ = "parking_sessions"
    __table_args__ = (
        Index(
            "uq_active_session_per_vehicle",
            "vehicle_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    garage_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vehicle_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    license_plate: Mapped[str] = mapped_column(String(16), nullable=False)
    spot_id: Mapped[str] = mapped_column(String(32), nullable=False)
    entry_time: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expected_end_time: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    exit_time: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    billable_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closed_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
