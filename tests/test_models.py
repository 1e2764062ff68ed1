import pytest
from sqlalchemy.exc import IntegrityError

from fakes import USDT, add_settlement, create_group, create_user
from splitogram.models.expense import Expense
from splitogram.models.settlement import Settlement


@pytest.fixture
async def pair(db):
    alice = await create_user(db, "Alice")
    bob = await create_user(db, "Bob")
    group = await create_group(db, alice, bob)
    return group, alice, bob


async def test_settlement_to_unknown_user_is_rejected(db, pair):
    group, alice, bob = pair
    db.add(Settlement(group_id=group.id, from_user=bob.id, to_user=9999, amount=USDT, status="open"))

    with pytest.raises(IntegrityError):
        await db.commit()


async def test_settlement_with_oneself_is_rejected(db, pair):
    group, alice, bob = pair
    db.add(Settlement(group_id=group.id, from_user=bob.id, to_user=bob.id, amount=USDT, status="open"))

    with pytest.raises(IntegrityError):
        await db.commit()


async def test_expense_amount_must_be_positive(db, pair):
    group, alice, bob = pair
    db.add(Expense(group_id=group.id, paid_by=alice.id, amount=0, description="Nothing"))

    with pytest.raises(IntegrityError):
        await db.commit()


async def test_one_open_settlement_per_pair(db, pair):
    group, alice, bob = pair
    await add_settlement(db, group, bob, alice, USDT, status="settled_external")
    await add_settlement(db, group, bob, alice, USDT, status="settled_onchain")
    await add_settlement(db, group, bob, alice, USDT)

    with pytest.raises(IntegrityError):
        await add_settlement(db, group, bob, alice, 2 * USDT)
