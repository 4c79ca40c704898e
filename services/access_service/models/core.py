from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class AllowlistEntry(Base):
    """An approved customer email."""

    __tablename__ = "email_allowlist"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    approved_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<AllowlistEntry {self.email}>"


class BlockedUser(Base):
    __tablename__ = "blocked_users"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    # Supabase auth user id, when the admin knew it at block time
    user_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    blocked_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<BlockedUser {self.email}>"


class Admin(Base):
    __tablename__ = "admins"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<Admin {self.email}>"
