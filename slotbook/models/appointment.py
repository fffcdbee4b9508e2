import uuid
from datetime import datetime
from sqlalchemy import String, Text, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.core.database import Base
from slotbook.core.time import utcnow


class Appointment(Base):
    """A committed reservation. Only the booking service creates these."""
    __tablename__ = "appointments"
    __table_args__ = (
        # One live appointment per slot; cancelled rows stay as history
        Index(
            "uq_appointments_reserved_slot",
            "slot_id",
            unique=True,
            postgresql_where=text("status = 'RESERVED'"),
            sqlite_where=text("status = 'RESERVED'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slot_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("appointment_slots.id"), nullable=False)
    professional_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("professionals.id"), nullable=False)
    appointment_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="RESERVED", nullable=False)

    # Client snapshot
    client_name: Mapped[str] = mapped_column(String(120), nullable=False)
    client_email: Mapped[str] = mapped_column(String(255), nullable=False)
    client_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    client_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Owning identity (external provider user id)
    booked_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    booked_by_email: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    slot = relationship("AvailableSlot", back_populates="appointments")
    professional = relationship("Professional")
