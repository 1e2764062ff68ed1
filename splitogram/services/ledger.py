import logging
from typing import Dict

from sqlalchemy import select, func, literal, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.errors import LedgerImbalance, NotFound
from splitogram.models.expense import Expense
from splitogram.models.expense_share import ExpenseShare
from splitogram.models.group import Group
from splitogram.models.group_member import GroupMember
from splitogram.models.settlement import Settlement, SETTLED_STATUSES

logger = logging.getLogger(__name__)


def _ledger_entries(group_id: int):
    """
    Every signed balance movement of a group as (user_id, delta) rows.

        members           0         (everyone shows up, even idle)
        expense payer     +amount
        expense share     -share
        settled debtor    +amount   (their debt shrinks)
        settled creditor  -amount   (their credit shrinks)
    """
    members = select(
        GroupMember.user_id.label("user_id"),
        literal(0).label("delta"),
    ).where(GroupMember.group_id == group_id)

    paid = select(
        Expense.paid_by,
        Expense.amount,
    ).where(Expense.group_id == group_id)

    shares = (
        select(
            ExpenseShare.user_id,
            -ExpenseShare.share_amount,
        )
        .join(Expense, Expense.id == ExpenseShare.expense_id)
        .where(Expense.group_id == group_id)
    )

    settled = (Settlement.group_id == group_id) & Settlement.status.in_(SETTLED_STATUSES)

    debtor_side = select(Settlement.from_user, Settlement.amount).where(settled)
    creditor_side = select(Settlement.to_user, -Settlement.amount).where(settled)

    return union_all(members, paid, shares, debtor_side, creditor_side).subquery("ledger")


async def ensure_group_exists(db: AsyncSession, group_id: int) -> Group:
    group = await db.get(Group, group_id)
    if not group:
        raise NotFound("Group not found")
    return group


async def compute_net_balances(db: AsyncSession, group_id: int) -> Dict[int, int]:
    """
    Returns:
        {
            user_id: net_balance (int, micro-USDT)
        }

    net_balance = paid - shares + settlements paid - settlements received

    Positive means the member is owed money. All reads happen in one
    statement, so concurrent writes can never leave the result unbalanced.
    """
    await ensure_group_exists(db, group_id)

    ledger = _ledger_entries(group_id)
    q = (
        select(
            ledger.c.user_id,
            func.coalesce(func.sum(ledger.c.delta), 0).label("balance"),
        )
        .group_by(ledger.c.user_id)
        .order_by(ledger.c.user_id)
    )

    res = await db.execute(q)
    balances = {row.user_id: int(row.balance) for row in res}

    total = sum(balances.values())
    if total != 0:
        logger.error("Group %s ledger does not balance (sum=%s)", group_id, total)
        raise LedgerImbalance(f"Group {group_id} balances sum to {total}, expected 0")

    return balances


async def compute_user_net_balance(db: AsyncSession, group_id: int, user_id: int) -> int:
    balances = await compute_net_balances(db, group_id)
    return balances.get(user_id, 0)
