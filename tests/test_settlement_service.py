import httpx
import pytest
from sqlalchemy import func, select

from fakes import USDT, FakeOracle, add_expense, add_settlement, create_group, create_user
from splitogram.core.config import settings
from splitogram.core.errors import (
    ConfigError,
    InvalidStatus,
    NoOutstandingDebt,
    NoWallet,
    NotCreditor,
    NotDebtor,
    NotFound,
    NotInvolved,
    NotMember,
    OracleUnavailable,
    ValidationError,
)
from splitogram.models.settlement import Settlement
from splitogram.services import settlement_service
from splitogram.services.ledger import compute_net_balances
from splitogram.services.oracle import TonApiOracle
from splitogram.services.settlement_service import (
    begin_verification,
    confirm_onchain,
    derive_settlements,
    get_settlement,
    get_settlement_detail,
    get_transaction_params,
    list_settlements,
    mark_settled_external,
    verify_settlement,
)


@pytest.fixture
async def dinner(db):
    """Alice paid 30 for herself, Bob and Carol: Bob and Carol owe her 10 each."""
    alice = await create_user(db, "Alice", wallet="EQ-alice")
    bob = await create_user(db, "Bob")
    carol = await create_user(db, "Carol")
    group = await create_group(db, alice, bob, carol)
    await add_expense(db, group, alice, {alice: 10 * USDT, bob: 10 * USDT, carol: 10 * USDT})
    return group, alice, bob, carol


async def count_settlements(db, **filters):
    q = select(func.count(Settlement.id)).where(
        *[getattr(Settlement, column) == value for column, value in filters.items()]
    )
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# derive
# ---------------------------------------------------------------------------

async def test_derive_opens_settlement_for_debtor(db, dinner):
    group, alice, bob, carol = dinner

    [settlement] = await derive_settlements(db, group.id, bob.id)

    assert settlement.from_user == bob.id
    assert settlement.to_user == alice.id
    assert settlement.amount == 10 * USDT
    assert settlement.status == "open"
    # carol's debt is hers to derive
    assert await count_settlements(db, from_user=carol.id) == 0


async def test_derive_is_idempotent(db, dinner):
    group, alice, bob, carol = dinner

    first = await derive_settlements(db, group.id, bob.id)
    second = await derive_settlements(db, group.id, bob.id)

    assert [s.id for s in first] == [s.id for s in second]
    assert [s.amount for s in second] == [10 * USDT]
    assert await count_settlements(db, group_id=group.id, status="open") == 1


async def test_derive_updates_open_amount_in_place(db, dinner):
    group, alice, bob, carol = dinner
    [first] = await derive_settlements(db, group.id, bob.id)

    await add_expense(db, group, alice, {alice: 1 * USDT, bob: 4 * USDT})
    [second] = await derive_settlements(db, group.id, bob.id)

    assert second.id == first.id
    assert second.amount == 14 * USDT
    assert second.status == "open"
    assert await count_settlements(db, group_id=group.id) == 1


async def test_derive_without_debt(db, dinner):
    group, alice, bob, carol = dinner

    with pytest.raises(NoOutstandingDebt):
        await derive_settlements(db, group.id, alice.id)


async def test_derive_requires_membership(db, dinner):
    group, alice, bob, carol = dinner
    outsider = await create_user(db, "Mallory")

    with pytest.raises(NotMember):
        await derive_settlements(db, group.id, outsider.id)


async def test_derive_unknown_group(db, dinner):
    group, alice, bob, carol = dinner

    with pytest.raises(NotFound):
        await derive_settlements(db, 9999, bob.id)


async def test_concurrent_derive_reuses_the_other_open_settlement(db, session_factory, dinner, monkeypatch):
    group, alice, bob, carol = dinner
    find_open = settlement_service._find_open_settlement
    lookups = []

    async def racing_lookup(session, group_id, from_user, to_user):
        lookups.append((from_user, to_user))
        if len(lookups) == 1:
            # a parallel request opens the same pair after our lookup missed it
            async with session_factory() as other:
                other.add(Settlement(
                    group_id=group_id, from_user=from_user, to_user=to_user, amount=10 * USDT, status="open",
                ))
                await other.commit()
            return None
        return await find_open(session, group_id, from_user, to_user)

    monkeypatch.setattr(settlement_service, "_find_open_settlement", racing_lookup)

    [settlement] = await derive_settlements(db, group.id, bob.id)

    assert lookups == [(bob.id, alice.id), (bob.id, alice.id)]
    assert settlement.amount == 10 * USDT
    assert settlement.status == "open"
    assert await count_settlements(db, group_id=group.id) == 1
    assert await count_settlements(db, id=settlement.id, from_user=bob.id, status="open") == 1


# ---------------------------------------------------------------------------
# verification
# ---------------------------------------------------------------------------

async def test_only_debtor_may_begin_verification(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    with pytest.raises(NotDebtor):
        await begin_verification(db, settlement.id, alice.id)

    assert (await get_settlement(db, settlement.id)).status == "open"


async def test_begin_verification_marks_pending_and_can_repeat(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    first = await begin_verification(db, settlement.id, bob.id)
    second = await begin_verification(db, settlement.id, bob.id)

    assert first.status == "payment_pending"
    assert second.status == "payment_pending"


async def test_confirmed_transfer_settles_onchain(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    oracle = FakeOracle(confirmed=True)

    result = await verify_settlement(db, settlement.id, bob.id, oracle, tx_hash="abc123")

    assert result.status == "settled_onchain"
    assert result.tx_hash == "abc123"
    assert result.transitioned
    assert oracle.checked == ["abc123"]

    stored = await get_settlement(db, settlement.id)
    assert stored.status == "settled_onchain"
    assert stored.tx_hash == "abc123"

    balances = await compute_net_balances(db, group.id)
    assert balances[bob.id] == 0
    assert balances[alice.id] == 10 * USDT

    with pytest.raises(NoOutstandingDebt):
        await derive_settlements(db, group.id, bob.id)


async def test_unconfirmed_transfer_stays_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    result = await verify_settlement(db, settlement.id, bob.id, FakeOracle(confirmed=False), tx_hash="abc")

    assert result.status == "payment_pending"
    assert (await get_settlement(db, settlement.id)).tx_hash is None


async def test_oracle_outage_stays_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    oracle = FakeOracle(error=OracleUnavailable("down"))

    result = await verify_settlement(db, settlement.id, bob.id, oracle, tx_hash="abc")

    assert result.status == "payment_pending"
    assert (await get_settlement(db, settlement.id)).status == "payment_pending"


async def test_unusable_hash_stays_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    requests = []

    def tonapi(request):
        requests.append(request)
        return httpx.Response(404)

    oracle = TonApiOracle("https://tonapi.test", "key", transport=httpx.MockTransport(tonapi))

    # a control character cannot be put in the lookup URL
    result = await verify_settlement(db, settlement.id, bob.id, oracle, tx_hash="ab\ncd")

    assert result.status == "payment_pending"
    assert requests == []
    assert (await get_settlement(db, settlement.id)).status == "payment_pending"


async def test_slow_oracle_times_out_to_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    settlement = await begin_verification(db, settlement.id, bob.id)

    result = await confirm_onchain(db, settlement, FakeOracle(delay=1.0), tx_hash="abc", timeout=0.01)

    assert result.status == "payment_pending"


async def test_broadcast_without_reference_stays_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    oracle = FakeOracle(reference=None)

    result = await verify_settlement(db, settlement.id, bob.id, oracle, boc="te6cc...")

    assert result.status == "payment_pending"
    assert oracle.submitted == ["te6cc..."]
    assert oracle.checked == []


async def test_broadcast_with_reference_is_checked(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    oracle = FakeOracle(reference="hash-from-boc")

    result = await verify_settlement(db, settlement.id, bob.id, oracle, boc="te6cc...")

    assert result.status == "settled_onchain"
    assert result.tx_hash == "hash-from-boc"


async def test_no_oracle_configured_stays_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    result = await verify_settlement(db, settlement.id, bob.id, None, tx_hash="abc")

    assert result.status == "payment_pending"


async def test_confirm_requires_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    with pytest.raises(InvalidStatus):
        await confirm_onchain(db, settlement, FakeOracle(), tx_hash="abc")


# ---------------------------------------------------------------------------
# external settlement and terminal states
# ---------------------------------------------------------------------------

async def test_only_creditor_may_mark_external(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    with pytest.raises(NotCreditor):
        await mark_settled_external(db, settlement.id, bob.id)

    settled = await mark_settled_external(db, settlement.id, alice.id)
    assert settled.status == "settled_external"


async def test_mark_external_from_pending(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    await begin_verification(db, settlement.id, bob.id)

    settled = await mark_settled_external(db, settlement.id, alice.id)

    assert settled.status == "settled_external"
    assert (await compute_net_balances(db, group.id))[bob.id] == 0


async def test_terminal_states_reject_transitions(db, dinner):
    group, alice, bob, carol = dinner
    onchain = await add_settlement(db, group, bob, alice, 10 * USDT, status="settled_onchain")
    external = await add_settlement(db, group, carol, alice, 10 * USDT, status="settled_external")

    for settlement in (onchain, external):
        with pytest.raises(InvalidStatus):
            await begin_verification(db, settlement.id, settlement.from_user)
        with pytest.raises(InvalidStatus):
            await mark_settled_external(db, settlement.id, settlement.to_user)
        with pytest.raises(InvalidStatus):
            await confirm_onchain(db, settlement, FakeOracle(), tx_hash="abc")

    assert (await get_settlement(db, onchain.id)).status == "settled_onchain"
    assert (await get_settlement(db, external.id)).status == "settled_external"


async def test_external_settlement_wins_race_with_onchain_confirmation(db, session_factory, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)
    pending = await begin_verification(db, settlement.id, bob.id)

    # the creditor settles it from another request while the debtor is verifying
    async with session_factory() as other:
        await mark_settled_external(other, settlement.id, alice.id)

    result = await confirm_onchain(db, pending, FakeOracle(confirmed=True), tx_hash="abc")

    assert result.status == "settled_external"
    assert not result.transitioned
    stored = await get_settlement(db, settlement.id)
    assert stored.status == "settled_external"
    assert stored.tx_hash is None


async def test_unknown_settlement(db, dinner):
    group, alice, bob, carol = dinner

    with pytest.raises(NotFound):
        await begin_verification(db, 9999, bob.id)


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------

async def test_detail_only_for_parties(db, dinner):
    group, alice, bob, carol = dinner
    [settlement] = await derive_settlements(db, group.id, bob.id)

    detail = await get_settlement_detail(db, settlement.id, alice.id)
    assert detail["debtor"]["display_name"] == "Bob"
    assert detail["creditor"]["wallet_address"] == "EQ-alice"

    with pytest.raises(NotInvolved):
        await get_settlement_detail(db, settlement.id, carol.id)


async def test_transaction_params(db, dinner, monkeypatch):
    group, alice, bob, carol = dinner
    monkeypatch.setattr(settings, "USDT_MASTER_ADDRESS", "EQ-usdt-master")
    [settlement] = await derive_settlements(db, group.id, bob.id)

    params = await get_transaction_params(db, settlement.id, bob.id)

    assert params == {
        "settlement_id": settlement.id,
        "amount": 10 * USDT,
        "recipient_address": "EQ-alice",
        "usdt_master_address": "EQ-usdt-master",
        "comment": f"splitogram:{settlement.id}",
    }

    with pytest.raises(NotDebtor):
        await get_transaction_params(db, settlement.id, alice.id)

    await begin_verification(db, settlement.id, bob.id)
    with pytest.raises(InvalidStatus):
        await get_transaction_params(db, settlement.id, bob.id)


async def test_transaction_params_need_wallet_and_config(db, dinner, monkeypatch):
    group, alice, bob, carol = dinner
    monkeypatch.setattr(settings, "USDT_MASTER_ADDRESS", None)
    [settlement] = await derive_settlements(db, group.id, bob.id)

    with pytest.raises(ConfigError):
        await get_transaction_params(db, settlement.id, bob.id)

    # creditor disconnects their wallet
    alice.wallet_address = None
    await db.commit()
    with pytest.raises(NoWallet):
        await get_transaction_params(db, settlement.id, bob.id)


async def test_list_settlements_by_status(db, dinner):
    group, alice, bob, carol = dinner
    [bobs] = await derive_settlements(db, group.id, bob.id)
    [carols] = await derive_settlements(db, group.id, carol.id)
    await mark_settled_external(db, carols.id, alice.id)

    everything = await list_settlements(db, group.id, alice.id)
    still_open = await list_settlements(db, group.id, alice.id, status="open")

    assert {s.id for s in everything} == {bobs.id, carols.id}
    assert [s.id for s in still_open] == [bobs.id]

    with pytest.raises(ValidationError):
        await list_settlements(db, group.id, alice.id, status="paid")
