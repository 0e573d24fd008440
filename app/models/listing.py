from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id

from app.models.base import Base, AuditMixin


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        Index("ix_listings_available_created", "is_available", "created_at"),
        Index("ix_listings_owner_created", "owner_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("pet"))

    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    # Snapshot of the owner's profile at posting time
    owner_name: Mapped[str] = mapped_column(String(200), nullable=False)
    owner_contact: Mapped[str] = mapped_column(String(320), nullable=False)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    species: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    breed: Mapped[str] = mapped_column(String(120), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[str] = mapped_column(String(10), nullable=False)
    size: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)

    image_url: Mapped[str] = mapped_column(Text, nullable=False)

    # False once the owner withdraws the listing (adopted or otherwise gone)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
