from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from splitogram.core.dependencies import get_current_user, get_db
from splitogram.schemas.balances import GroupDebtsOut, MyBalanceOut
from splitogram.services.balance_service import get_group_debts, get_my_balance

router = APIRouter()

@router.get("/{group_id}/balances", response_model=GroupDebtsOut)
async def group_balances(group_id: int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await get_group_debts(db, group_id, current_user.id)

@router.get("/{group_id}/balances/me", response_model=MyBalanceOut)
async def my_balance(group_id: int, db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    return await get_my_balance(db, group_id, current_user.id)
