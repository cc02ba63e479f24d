from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.ecodeli.models import Base


class Match(Base):
    """
    A package assigned to a carrier's ride.
    """

    __tablename__ = "matches"
    __table_args__ = (
        Index("idx_matches_package_id", "package_id"),
        Index("idx_matches_ride_id", "ride_id"),
        Index("idx_matches_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("packages.id"), nullable=False)
    ride_id: Mapped[int] = mapped_column(ForeignKey("rides.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    package = relationship("Package", back_populates="matches", lazy="selectin")
    ride = relationship("Ride", back_populates="matches", lazy="selectin")
    payment = relationship("Payment", back_populates="match", uselist=False)
