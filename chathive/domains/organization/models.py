from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chathive.models.base import Base, TimestampMixin


class Organization(TimestampMixin, Base):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    timezone: Mapped[str] = mapped_column(String(63), nullable=False, server_default="UTC")

    # WhatsApp Cloud API connection
    whatsapp_phone_number_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    whatsapp_waba_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    whatsapp_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    whatsapp_display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    whatsapp_connected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
