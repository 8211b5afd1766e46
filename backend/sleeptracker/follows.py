import logging
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from .errors import DomainRuleError, NotFoundError, ValidationError
from .models import Follow, User

logger = logging.getLogger(__name__)

FOLLOWED = "Successfully followed user"
ALREADY_FOLLOWING = "Already following this user"
UNFOLLOWED = "Successfully unfollowed user"
NOT_FOLLOWING = "Not following this user"


async def following(db: AsyncSession, user_id: int) -> list[User]:
    users = (await db.scalars(
        select(User)
        .join(Follow, Follow.followed_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(User.id.asc())
    )).all()
    return list(users)


async def followers(db: AsyncSession, user_id: int) -> list[User]:
    users = (await db.scalars(
        select(User)
        .join(Follow, Follow.follower_id == User.id)
        .where(Follow.followed_id == user_id)
        .order_by(User.id.asc())
    )).all()
    return list(users)


async def following_ids(db: AsyncSession, user_id: int) -> list[int]:
    return list((await db.scalars(select(Follow.followed_id).where(Follow.follower_id == user_id))).all())


async def _get_target(db: AsyncSession, target_id: int) -> User:
    target = await db.get(User, target_id)
    if not target:
        raise NotFoundError("Target user not found")
    return target


# Following someone already followed is a successful no-op
async def follow(db: AsyncSession, actor_id: int, target_id: int) -> tuple[str, list[User]]:
    if actor_id == target_id:
        raise DomainRuleError("Cannot follow yourself")
    await _get_target(db, target_id)

    if await db.get(Follow, (actor_id, target_id)) is not None:
        return ALREADY_FOLLOWING, await following(db, actor_id)

    db.add(Follow(follower_id=actor_id, followed_id=target_id))
    try:
        await db.commit()
    except IntegrityError:
        # The primary key is the real guard against a concurrent duplicate
        await db.rollback()
        logger.warning("Follow %s -> %s collided with a concurrent request", actor_id, target_id)
        raise ValidationError(["Follow has already been taken"])

    logger.info("User %s followed %s", actor_id, target_id)
    return FOLLOWED, await following(db, actor_id)


# Unfollowing a stranger is a successful no-op
async def unfollow(db: AsyncSession, actor_id: int, target_id: int) -> tuple[str, list[User]]:
    await _get_target(db, target_id)

    result = await db.execute(
        delete(Follow).where(Follow.follower_id == actor_id, Follow.followed_id == target_id)
    )
    await db.commit()

    if result.rowcount:
        logger.info("User %s unfollowed %s", actor_id, target_id)
        return UNFOLLOWED, await following(db, actor_id)
    return NOT_FOLLOWING, await following(db, actor_id)
