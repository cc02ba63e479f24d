from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.ecodeli.models import Base


class Ride(Base):
    __tablename__ = "rides"
    __table_args__ = (
        Index("idx_rides_user_id", "user_id"),
        Index("idx_rides_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    origin: Mapped[str] = mapped_column(Text, nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)
    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    arrival_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    available_space: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    price_per_kg: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    vehicle_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    max_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="AVAILABLE")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    carrier = relationship("User", foreign_keys=[user_id], lazy="selectin")
    matches = relationship("Match", back_populates="ride", order_by="Match.created_at.desc()")
