from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.errors import ValidationError
from splitogram.models.user import User


async def get_user_by_id(db: AsyncSession, user_id: int):
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def set_wallet(db: AsyncSession, user: User, address: str) -> User:
    address = address.strip()
    if not address:
        raise ValidationError("Wallet address must not be empty")

    user.wallet_address = address
    await db.commit()
    await db.refresh(user)
    return user


async def clear_wallet(db: AsyncSession, user: User) -> User:
    user.wallet_address = None
    await db.commit()
    await db.refresh(user)
    return user
