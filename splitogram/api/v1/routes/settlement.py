from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from splitogram.core.dependencies import get_current_user, get_db, get_notifier, get_oracle
from splitogram.schemas.settlements import (
    SettlementDetail,
    SettlementList,
    TransactionParams,
    VerificationResult,
    VerifyRequest,
)
from splitogram.services.settlement_service import (
    derive_settlements,
    get_settlement,
    get_settlement_detail,
    get_transaction_params,
    list_settlements,
    load_settlement_parties,
    mark_settled_external,
    verify_settlement,
)

router = APIRouter()


async def notify_completed(db: AsyncSession, settlement_id: int, notifier, background_tasks: BackgroundTasks):
    # read everything now, the session is gone by the time the task runs
    settlement = await get_settlement(db, settlement_id)
    debtor, creditor, group_name = await load_settlement_parties(db, settlement)
    background_tasks.add_task(
        notifier.settlement_completed,
        settlement.amount, settlement.status, settlement.tx_hash, debtor, creditor, group_name,
    )


@router.post("/groups/{group_id}/settlements", response_model=SettlementList, status_code=201)
async def create_settlements(group_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return {"settlements": await derive_settlements(db, group_id, user.id)}


@router.get("/groups/{group_id}/settlements", response_model=SettlementList)
async def group_settlements(
    group_id: int,
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
):
    return {"settlements": await list_settlements(db, group_id, user.id, status=status)}


@router.get("/settlements/{settlement_id}", response_model=SettlementDetail)
async def settlement_detail(settlement_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await get_settlement_detail(db, settlement_id, user.id)


@router.get("/settlements/{settlement_id}/tx", response_model=TransactionParams)
async def transaction_params(settlement_id: int, db: AsyncSession = Depends(get_db), user = Depends(get_current_user)):
    return await get_transaction_params(db, settlement_id, user.id)


@router.post("/settlements/{settlement_id}/verify", response_model=VerificationResult)
async def verify(
    settlement_id: int,
    data: VerifyRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
    oracle = Depends(get_oracle),
    notifier = Depends(get_notifier),
):
    result = await verify_settlement(db, settlement_id, user.id, oracle, tx_hash=data.tx_hash, boc=data.boc)

    # only the request that settled it notifies
    if notifier and result.transitioned:
        await notify_completed(db, settlement_id, notifier, background_tasks)

    return result


@router.post("/settlements/{settlement_id}/mark-external", response_model=VerificationResult)
async def mark_external(
    settlement_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user = Depends(get_current_user),
    notifier = Depends(get_notifier),
):
    settlement = await mark_settled_external(db, settlement_id, user.id)

    if notifier:
        await notify_completed(db, settlement_id, notifier, background_tasks)

    return {"status": settlement.status, "settlement_id": settlement.id}
