import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.core.database import Base
from slotbook.core.time import utcnow


class Professional(Base):
    """A bookable professional. Owned by the profile subsystem; read-only here."""
    __tablename__ = "professionals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_code: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    slots = relationship("AvailableSlot", back_populates="professional")
