from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from splitogram.core.dependencies import get_current_user, get_db
from splitogram.schemas.user import WalletOut, WalletUpdate
from splitogram.services.user_service import clear_wallet, set_wallet


router = APIRouter()


@router.put("/me/wallet", response_model=WalletOut)
async def connect_wallet(
    data: WalletUpdate,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
):
    return await set_wallet(db, user, data.address)


@router.delete("/me/wallet", response_model=WalletOut)
async def disconnect_wallet(
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
):
    return await clear_wallet(db, user)
