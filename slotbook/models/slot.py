import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.core.database import Base
from slotbook.core.time import utcnow


class AvailableSlot(Base):
    __tablename__ = "appointment_slots"
    __table_args__ = (
        Index("ix_appointment_slots_professional_datetime", "professional_id", "appointment_datetime"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professional_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("professionals.id"), nullable=False)
    appointment_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="AVAILABLE", nullable=False)
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    professional = relationship("Professional", back_populates="slots")
    appointments = relationship("Appointment", back_populates="slot")
