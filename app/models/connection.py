from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Connection(Base):
    """A time-boxed buyer/seller negotiation over one listing."""

    __tablename__ = "connections"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), default="ticket")
    listing_id: Mapped[int] = mapped_column(ForeignKey("listings.id"), index=True)
    buyer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    stage: Mapped[str] = mapped_column(String(30), default="pending_seller")
    stage_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    stage_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    bonding_question_ids: Mapped[list[int] | None] = mapped_column(
        JSON, default=None
    )
    buyer_bonding_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    seller_bonding_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    buyer_comfort: Mapped[bool | None] = mapped_column(default=None)
    seller_comfort: Mapped[bool | None] = mapped_column(default=None)
    buyer_social_share: Mapped[bool | None] = mapped_column(default=None)
    seller_social_share: Mapped[bool | None] = mapped_column(default=None)
    buyer_want_social_share: Mapped[bool | None] = mapped_column(default=None)
    seller_want_social_share: Mapped[bool | None] = mapped_column(default=None)
    buyer_agreed: Mapped[bool] = mapped_column(default=False)
    seller_agreed: Mapped[bool] = mapped_column(default=False)

    ended_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), default=None
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    stage_before_ended: Mapped[str | None] = mapped_column(String(30), default=None)
    ended_reason: Mapped[str | None] = mapped_column(String(500), default=None)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
