import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.dependencies import check_group_membership
from splitogram.core.errors import ValidationError
from splitogram.models.expense import Expense
from splitogram.models.expense_share import ExpenseShare
from splitogram.models.group_member import GroupMember
from splitogram.models.user import User
from splitogram.schemas.expense import ExpenseCreate

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


async def create_expense(db: AsyncSession, data: ExpenseCreate, user_id: int, group_id: int) -> dict:
    await check_group_membership(db, group_id, user_id)

    payer_id = data.paid_by or user_id

    members_q = select(GroupMember.user_id).where(GroupMember.group_id == group_id)
    member_ids = set((await db.execute(members_q)).scalars().all())

    if payer_id not in member_ids:
        raise ValidationError("Payer must be a group member")

    # -----------------------------------
    # Validate participants and shares
    # -----------------------------------
    shares = data.share_amounts()
    participant_ids = [uid for uid, _ in shares]

    for uid in participant_ids:
        if uid not in member_ids:
            raise ValidationError(f"User {uid} is not a group member")

    if payer_id not in participant_ids:
        raise ValidationError("Payer must be included in participants")

    total = sum(amount for _, amount in shares)
    if total != data.amount:
        raise ValidationError(f"Share total ({total}) must equal expense amount ({data.amount})")

    # -----------------------------------
    # Expense and shares land together
    # -----------------------------------
    expense = Expense(
        group_id=group_id,
        paid_by=payer_id,
        amount=data.amount,
        description=data.description,
    )
    db.add(expense)
    await db.flush()  # generates expense.id

    db.add_all([
        ExpenseShare(expense_id=expense.id, user_id=uid, share_amount=amount)
        for uid, amount in shares
    ])

    await db.commit()
    await db.refresh(expense)

    logger.info(
        "Expense %s created in group %s: %s paid %s split %d ways",
        expense.id, group_id, payer_id, expense.amount, len(shares),
    )

    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by": expense.paid_by,
        "amount": expense.amount,
        "description": expense.description,
        "created_at": expense.created_at,
        "participants": [
            {"user_id": uid, "share_amount": amount} for uid, amount in shares
        ],
    }


async def get_expenses_by_group(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
):
    await check_group_membership(db, group_id, user_id)

    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    q = (
        select(Expense, User.display_name.label("payer_name"))
        .join(User, User.id == Expense.paid_by)
        .where(Expense.group_id == group_id)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = (await db.execute(q)).all()

    expense_ids = [expense.id for expense, _ in rows]
    participants = {eid: [] for eid in expense_ids}

    if expense_ids:
        shares_q = (
            select(
                ExpenseShare.expense_id,
                ExpenseShare.user_id,
                ExpenseShare.share_amount,
                User.display_name,
            )
            .join(User, User.id == ExpenseShare.user_id)
            .where(ExpenseShare.expense_id.in_(expense_ids))
            .order_by(ExpenseShare.id)
        )
        for row in await db.execute(shares_q):
            participants[row.expense_id].append({
                "user_id": row.user_id,
                "display_name": row.display_name,
                "share_amount": row.share_amount,
            })

    return [
        {
            "id": expense.id,
            "group_id": expense.group_id,
            "paid_by": expense.paid_by,
            "payer_name": payer_name,
            "amount": expense.amount,
            "description": expense.description,
            "created_at": expense.created_at,
            "participants": participants[expense.id],
        }
        for expense, payer_name in rows
    ]
