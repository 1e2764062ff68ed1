import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from splitogram.core.config import settings
from splitogram.core.dependencies import check_group_membership
from splitogram.core.errors import (
    ConfigError,
    InvalidStatus,
    NoOutstandingDebt,
    NoWallet,
    NotCreditor,
    NotDebtor,
    NotFound,
    NotInvolved,
    OracleUnavailable,
    ValidationError,
)
from splitogram.core.utils import utcnow
from splitogram.models.group import Group
from splitogram.models.settlement import Settlement, SettlementStatus, ACTIVE_STATUSES
from splitogram.models.user import User
from splitogram.schemas.settlements import VerificationResult
from splitogram.services.debt_solver import simplify_debts
from splitogram.services.ledger import compute_net_balances
from splitogram.services.notifications import NotifyUser, load_notify_users
from splitogram.services.oracle import VerificationOracle

logger = logging.getLogger(__name__)

OPEN = SettlementStatus.OPEN.value
PAYMENT_PENDING = SettlementStatus.PAYMENT_PENDING.value
SETTLED_ONCHAIN = SettlementStatus.SETTLED_ONCHAIN.value
SETTLED_EXTERNAL = SettlementStatus.SETTLED_EXTERNAL.value


async def _transition(
    db: AsyncSession,
    settlement_id: int,
    from_statuses: Sequence[str],
    **values,
) -> bool:
    """
    Compare-and-swap on the status column.

    Returns False when the settlement was no longer in one of
    ``from_statuses``, i.e. a concurrent request moved it first.
    """
    res = await db.execute(
        update(Settlement)
        .where(Settlement.id == settlement_id, Settlement.status.in_(from_statuses))
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def get_settlement(db: AsyncSession, settlement_id: int) -> Settlement:
    settlement = await db.get(Settlement, settlement_id, populate_existing=True)
    if not settlement:
        raise NotFound("Settlement not found")
    return settlement


async def _find_open_settlement(db: AsyncSession, group_id: int, from_user: int, to_user: int):
    q = select(Settlement).where(
        Settlement.group_id == group_id,
        Settlement.from_user == from_user,
        Settlement.to_user == to_user,
        Settlement.status == OPEN,
    ).execution_options(populate_existing=True)
    return (await db.execute(q)).scalars().first()


async def _derive_once(db: AsyncSession, group_id: int, user_id: int) -> List[Settlement]:
    balances = await compute_net_balances(db, group_id)
    my_debts = [d for d in simplify_debts(balances) if d.from_user == user_id]

    if not my_debts:
        raise NoOutstandingDebt("You have no outstanding debts in this group")

    result = []
    for debt in my_debts:
        existing = await _find_open_settlement(db, group_id, debt.from_user, debt.to_user)

        if existing and existing.amount == debt.amount:
            result.append(existing)
            continue

        if existing and await _transition(db, existing.id, [OPEN], amount=debt.amount):
            logger.info(
                "Settlement %s amount %s -> %s", existing.id, existing.amount, debt.amount
            )
            result.append(existing)
            continue

        settlement = Settlement(
            group_id=group_id,
            from_user=debt.from_user,
            to_user=debt.to_user,
            amount=debt.amount,
            status=OPEN,
        )
        db.add(settlement)
        await db.flush()
        logger.info(
            "Settlement %s opened: %s -> %s, %s in group %s",
            settlement.id, debt.from_user, debt.to_user, debt.amount, group_id,
        )
        result.append(settlement)

    await db.commit()
    for settlement in result:
        await db.refresh(settlement)

    return result


async def derive_settlements(db: AsyncSession, group_id: int, user_id: int) -> List[Settlement]:
    """
    Create or update the caller's open settlements from the current debt graph.

    Repeated calls with unchanged balances return the same records untouched.
    A concurrent call that inserted the same open (group, from, to) row first
    trips the partial unique index; the work is then redone against that row.
    """
    await check_group_membership(db, group_id, user_id)

    try:
        return await _derive_once(db, group_id, user_id)
    except IntegrityError:
        await db.rollback()
        logger.info("Concurrent derive in group %s for user %s, retrying", group_id, user_id)
        return await _derive_once(db, group_id, user_id)


async def list_settlements(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    status: Optional[str] = None,
) -> List[Settlement]:
    await check_group_membership(db, group_id, user_id)

    if status is not None and status not in {s.value for s in SettlementStatus}:
        raise ValidationError(f"Unknown settlement status '{status}'")

    q = select(Settlement).where(Settlement.group_id == group_id)
    if status is not None:
        q = q.where(Settlement.status == status)
    q = q.order_by(Settlement.created_at.desc(), Settlement.id.desc())

    return list((await db.execute(q)).scalars().all())


async def get_settlement_detail(db: AsyncSession, settlement_id: int, user_id: int) -> dict:
    settlement = await get_settlement(db, settlement_id)

    if user_id not in (settlement.from_user, settlement.to_user):
        raise NotInvolved("You are not involved in this settlement")

    res = await db.execute(
        select(User).where(User.id.in_([settlement.from_user, settlement.to_user]))
    )
    users = {u.id: u for u in res.scalars()}

    def party(uid: int) -> dict:
        u = users.get(uid)
        return {
            "user_id": uid,
            "display_name": u.display_name if u else None,
            "username": u.username if u else None,
            "wallet_address": u.wallet_address if u else None,
        }

    return {
        "id": settlement.id,
        "group_id": settlement.group_id,
        "from_user": settlement.from_user,
        "to_user": settlement.to_user,
        "amount": settlement.amount,
        "status": settlement.status,
        "tx_hash": settlement.tx_hash,
        "created_at": settlement.created_at,
        "updated_at": settlement.updated_at,
        "debtor": party(settlement.from_user),
        "creditor": party(settlement.to_user),
    }


async def get_transaction_params(db: AsyncSession, settlement_id: int, user_id: int) -> dict:
    settlement = await get_settlement(db, settlement_id)

    if settlement.from_user != user_id:
        raise NotDebtor("Only the debtor can get transaction params")

    if settlement.status != OPEN:
        raise InvalidStatus(f"Settlement is {settlement.status}, expected open")

    creditor = await db.get(User, settlement.to_user)
    if not creditor or not creditor.wallet_address:
        raise NoWallet("Creditor has not connected a wallet")

    if not settings.USDT_MASTER_ADDRESS:
        raise ConfigError("USDT contract not configured")

    return {
        "settlement_id": settlement.id,
        "amount": settlement.amount,
        "recipient_address": creditor.wallet_address,
        "usdt_master_address": settings.USDT_MASTER_ADDRESS,
        "comment": f"splitogram:{settlement.id}",
    }


async def begin_verification(db: AsyncSession, settlement_id: int, user_id: int) -> Settlement:
    """
    Moves the settlement to payment_pending before any oracle call.

    A second concurrent caller finds it already pending and goes on with its
    own verification attempt; oracle lookups are keyed by transaction hash,
    so racing attempts cannot settle twice.
    """
    settlement = await get_settlement(db, settlement_id)

    if settlement.from_user != user_id:
        raise NotDebtor("Only the debtor can verify payment")

    if settlement.status not in ACTIVE_STATUSES:
        raise InvalidStatus(f"Settlement is already {settlement.status}")

    moved = await _transition(db, settlement_id, ACTIVE_STATUSES, status=PAYMENT_PENDING)
    if not moved:
        await db.rollback()
        await db.refresh(settlement)
        raise InvalidStatus(f"Settlement is already {settlement.status}")

    await db.commit()
    await db.refresh(settlement)
    logger.info("Settlement %s is payment_pending", settlement_id)
    return settlement


def _pending(settlement: Settlement, detail: str) -> VerificationResult:
    return VerificationResult(status=PAYMENT_PENDING, settlement_id=settlement.id, detail=detail)


async def confirm_onchain(
    db: AsyncSession,
    settlement: Settlement,
    oracle: VerificationOracle,
    tx_hash: Optional[str] = None,
    boc: Optional[str] = None,
    timeout: Optional[float] = None,
) -> VerificationResult:
    """
    Ask the oracle about a payment_pending settlement.

    Anything short of a positive confirmation (not found yet, oracle down,
    timeout) leaves the settlement payment_pending for the caller to poll.
    """
    if settlement.status != PAYMENT_PENDING:
        raise InvalidStatus(f"Settlement is {settlement.status}, expected payment_pending")

    timeout = timeout if timeout is not None else settings.ORACLE_TIMEOUT_SECONDS
    reference = tx_hash

    try:
        if boc and not reference:
            reference = await asyncio.wait_for(oracle.submit(boc), timeout)
            if not reference:
                return _pending(
                    settlement,
                    "Transaction broadcast, awaiting on-chain confirmation. Poll the settlement for status.",
                )

        confirmed = await asyncio.wait_for(oracle.check_confirmed(reference), timeout)
    except (OracleUnavailable, asyncio.TimeoutError) as e:
        logger.warning("Oracle check for settlement %s failed: %r", settlement.id, e)
        return _pending(settlement, "Transaction submitted, awaiting verification")

    if not confirmed:
        return _pending(settlement, "Transaction not yet confirmed. Try again or refresh status.")

    settled = await _transition(
        db, settlement.id, [PAYMENT_PENDING], status=SETTLED_ONCHAIN, tx_hash=reference
    )
    if not settled:
        # someone else finished it first, report whatever it is now
        await db.rollback()
        await db.refresh(settlement)
        return VerificationResult(
            status=settlement.status,
            settlement_id=settlement.id,
            tx_hash=settlement.tx_hash,
            detail=f"Settlement is already {settlement.status}",
        )

    await db.commit()
    await db.refresh(settlement)
    logger.info("Settlement %s settled on-chain (tx %s)", settlement.id, reference)

    return VerificationResult(
        status=SETTLED_ONCHAIN, settlement_id=settlement.id, tx_hash=reference, transitioned=True
    )


async def verify_settlement(
    db: AsyncSession,
    settlement_id: int,
    user_id: int,
    oracle: Optional[VerificationOracle],
    tx_hash: Optional[str] = None,
    boc: Optional[str] = None,
) -> VerificationResult:
    settlement = await begin_verification(db, settlement_id, user_id)

    if oracle is None:
        return _pending(settlement, "Transaction submitted, awaiting verification")

    return await confirm_onchain(db, settlement, oracle, tx_hash=tx_hash, boc=boc)


async def mark_settled_external(db: AsyncSession, settlement_id: int, user_id: int) -> Settlement:
    settlement = await get_settlement(db, settlement_id)

    if settlement.to_user != user_id:
        raise NotCreditor("Only the creditor can mark a settlement as externally settled")

    if settlement.status not in ACTIVE_STATUSES:
        raise InvalidStatus(f"Settlement is already {settlement.status}")

    moved = await _transition(db, settlement_id, ACTIVE_STATUSES, status=SETTLED_EXTERNAL)
    if not moved:
        await db.rollback()
        await db.refresh(settlement)
        raise InvalidStatus(f"Settlement is already {settlement.status}")

    await db.commit()
    await db.refresh(settlement)
    logger.info("Settlement %s settled externally", settlement_id)
    return settlement


async def load_settlement_parties(
    db: AsyncSession,
    settlement: Settlement,
) -> Tuple[NotifyUser, NotifyUser, str]:
    debtor, creditor = await load_notify_users(db, [settlement.from_user, settlement.to_user])
    group = await db.get(Group, settlement.group_id)
    return debtor, creditor, group.name
