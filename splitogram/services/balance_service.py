from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.dependencies import check_group_membership
from splitogram.models.group_member import GroupMember
from splitogram.models.user import User
from splitogram.services.debt_solver import simplify_debts
from splitogram.services.ledger import compute_net_balances


async def _member_names(db: AsyncSession, group_id: int) -> dict:
    q = (
        select(User.id, User.display_name, User.username)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
    )
    return {
        row.id: {"display_name": row.display_name, "username": row.username}
        for row in await db.execute(q)
    }


def _ref(names: dict, user_id: int) -> dict:
    info = names.get(user_id, {})
    return {
        "user_id": user_id,
        "display_name": info.get("display_name", "Unknown"),
        "username": info.get("username"),
    }


async def get_group_debts(db: AsyncSession, group_id: int, user_id: int):
    await check_group_membership(db, group_id, user_id)

    balances = await compute_net_balances(db, group_id)
    debts = simplify_debts(balances)
    names = await _member_names(db, group_id)

    return {
        "settled": all(amount == 0 for amount in balances.values()),
        "debts": [
            {
                "from_user": _ref(names, d.from_user),
                "to_user": _ref(names, d.to_user),
                "amount": d.amount,
            }
            for d in debts
        ]
    }


async def get_my_balance(db: AsyncSession, group_id: int, user_id: int):
    await check_group_membership(db, group_id, user_id)

    balances = await compute_net_balances(db, group_id)
    debts = simplify_debts(balances)
    names = await _member_names(db, group_id)

    return {
        "net_balance": balances.get(user_id, 0),
        "i_owe": [
            {**_ref(names, d.to_user), "amount": d.amount}
            for d in debts if d.from_user == user_id
        ],
        "owed_to_me": [
            {**_ref(names, d.from_user), "amount": d.amount}
            for d in debts if d.to_user == user_id
        ],
    }
