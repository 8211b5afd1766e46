# A user is Idle (no open record) or Open (one record with clock_out NULL); each clock action flips it
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from .errors import ValidationError
from .follows import following_ids
from .models import SleepRecord, User, as_utc, utcnow

logger = logging.getLogger(__name__)

CLOCKED_IN = "Clocked in"
CLOCKED_OUT = "Clocked out"

FEED_WINDOW = timedelta(days=7)


async def history(db: AsyncSession, user_id: int) -> list[SleepRecord]:
    records = (await db.scalars(
        select(SleepRecord)
        .where(SleepRecord.user_id == user_id)
        .order_by(SleepRecord.created_at.asc(), SleepRecord.id.asc())
        .execution_options(populate_existing=True)
    )).all()
    return list(records)


async def open_record(db: AsyncSession, user_id: int, lock: bool = False) -> Optional[SleepRecord]:
    stmt = (
        select(SleepRecord)
        .where(SleepRecord.user_id == user_id, SleepRecord.clock_out.is_(None))
        .order_by(SleepRecord.created_at.desc(), SleepRecord.id.desc())
        .limit(1)
    )
    if lock:
        stmt = stmt.with_for_update()
    return await db.scalar(stmt)


# Returns the message and the whole history, oldest first
async def toggle_clock(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> tuple[str, list[SleepRecord]]:
    now = now or utcnow()

    # Serialize toggles per user; other users are not blocked
    await db.execute(select(User.id).where(User.id == user_id).with_for_update())
    current = await open_record(db, user_id, lock=True)

    if current is not None:
        if as_utc(now) <= as_utc(current.clock_in):
            await db.rollback()
            raise ValidationError(["Clock out must be after clock in time"])
        result = await db.execute(
            update(SleepRecord)
            .where(SleepRecord.id == current.id, SleepRecord.clock_out.is_(None))
            .values(clock_out=now)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise ValidationError(["Sleep record has already been clocked out"])
        message = CLOCKED_OUT
    else:
        db.add(SleepRecord(user_id=user_id, clock_in=now))
        message = CLOCKED_IN

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Clock toggle for user %s collided with a concurrent toggle", user_id)
        raise ValidationError(["User already has a sleep record in progress"])

    logger.info("User %s %s", user_id, message.lower())
    return message, await history(db, user_id)


# (record, owner name) pairs, longest first; equal durations keep insertion order
async def following_feed(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> list[tuple[SleepRecord, str]]:
    followed = await following_ids(db, user_id)
    if not followed:
        return []

    now = now or utcnow()
    rows = (await db.execute(
        select(SleepRecord, User.name)
        .join(User, User.id == SleepRecord.user_id)
        .where(
            SleepRecord.user_id.in_(followed),
            SleepRecord.clock_out.is_not(None),
            SleepRecord.created_at >= now - FEED_WINDOW,
            SleepRecord.created_at <= now,
        )
        .order_by(SleepRecord.created_at.asc(), SleepRecord.id.asc())
    )).all()

    # sorted() is stable, also with reverse=True
    return sorted(((record, name) for record, name in rows), key=lambda row: row[0].duration_seconds, reverse=True)
