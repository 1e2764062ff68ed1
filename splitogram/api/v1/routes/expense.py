from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from splitogram.core.dependencies import get_current_user, get_db, get_notifier
from splitogram.schemas.expense import ExpenseCreate, ExpenseList, ExpenseOut
from splitogram.services.expense_services import create_expense, get_expenses_by_group, MAX_PAGE_SIZE
from splitogram.services.ledger import ensure_group_exists
from splitogram.services.notifications import load_notify_users

router = APIRouter()

@router.post("/{group_id}/expenses", response_model=ExpenseOut, status_code=201)
async def add_expense(
    group_id: int,
    data: ExpenseCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
    notifier = Depends(get_notifier),
):
    expense = await create_expense(db, data, current_user.id, group_id)

    if notifier:
        group = await ensure_group_exists(db, group_id)
        participant_ids = [p["user_id"] for p in expense["participants"]]
        payer, *participants = await load_notify_users(db, [expense["paid_by"], *participant_ids])
        background_tasks.add_task(
            notifier.expense_created,
            expense["description"], expense["amount"], payer, participants, group.name,
        )

    return expense

@router.get("/{group_id}/expenses", response_model=ExpenseList)
async def all_expenses(
    group_id: int,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_user),
):
    expenses = await get_expenses_by_group(db, group_id, current_user.id, limit=limit, offset=offset)
    return {"expenses": expenses}
