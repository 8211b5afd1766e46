from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import CheckConstraint, ForeignKey, Index, String, DateTime, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# SQLite hands timestamps back without an offset; everything is written in UTC
def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

# Base class for all Sqlalchemy models
class Base(DeclarativeBase):
    pass

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        CheckConstraint("follower_id <> followed_id", name="ck_follows_no_self_follow"),
    )

    # Composite primary key: one edge per ordered pair
    follower_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
        nullable=False,
    )
    followed_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

class SleepRecord(Base):
    __tablename__ = "sleep_records"
    __table_args__ = (
        CheckConstraint("clock_out IS NULL OR clock_out > clock_in", name="ck_sleep_records_clock_out_after_clock_in"),
        # At most one open record per user
        Index(
            "uq_sleep_records_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("clock_out IS NULL"),
            sqlite_where=text("clock_out IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    clock_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Set in Python rather than by the server so ordering keeps sub-second precision on every backend
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_completed(self) -> bool:
        return self.clock_out is not None

    @property
    def is_in_progress(self) -> bool:
        return self.clock_in is not None and self.clock_out is None

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.clock_in is None or self.clock_out is None:
            return None
        return int((as_utc(self.clock_out) - as_utc(self.clock_in)).total_seconds())

    @property
    def duration_hours(self) -> Optional[float]:
        seconds = self.duration_seconds
        if seconds is None:
            return None
        return seconds / 3600.0
