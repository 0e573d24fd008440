from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import gen_id
from app.models.base import Base, AuditMixin


class AdoptionRequest(AuditMixin, Base):
    __tablename__ = "adoption_requests"
    __table_args__ = (
        Index("ix_adoption_requests_owner_status", "owner_id", "status"),
        Index("ix_adoption_requests_requester_status", "requester_id", "status"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_adoption_requests_status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("req"))

    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    requester_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    # Display snapshots so request lists render without joins
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(200), nullable=False)
    listing_name: Mapped[str] = mapped_column(String(120), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # "pending" | "approved" | "rejected"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
