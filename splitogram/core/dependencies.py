from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.config import settings
from splitogram.core.errors import NotMember, Unauthorized
from splitogram.core.security import decode_access_token, get_bearer_token
from splitogram.db.session import async_session
from splitogram.models.group_member import GroupMember
from splitogram.models.user import User
from splitogram.services.ledger import ensure_group_exists
from splitogram.services.notifications import TelegramNotifier
from splitogram.services.oracle import TonApiOracle
from splitogram.services.user_service import get_user_by_id


async def get_db():
    async with async_session() as session:
        yield session


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token = get_bearer_token(request)
    user_id = decode_access_token(token)

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise Unauthorized("User not found")

    return user


async def check_group_membership(db: AsyncSession, group_id: int, user_id: int) -> GroupMember:
    await ensure_group_exists(db, group_id)

    q_member = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id
    )
    member = (await db.execute(q_member)).scalar_one_or_none()

    if not member:
        raise NotMember("You are not a member of this group")

    return member


def get_oracle():
    if not settings.TONAPI_KEY:
        return None
    return TonApiOracle(
        base_url=settings.TONAPI_URL,
        api_key=settings.TONAPI_KEY,
        timeout=settings.ORACLE_TIMEOUT_SECONDS,
    )


def get_notifier():
    if not settings.TELEGRAM_BOT_TOKEN:
        return None
    return TelegramNotifier(
        bot_token=settings.TELEGRAM_BOT_TOKEN,
        pages_url=settings.PAGES_URL,
        api_url=settings.TELEGRAM_API_URL,
        timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        retry_delay=settings.NOTIFY_RETRY_DELAY_SECONDS,
    )
