from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import List

class SettlementOut(BaseModel):
    id: int
    group_id: int
    from_user: int
    to_user: int
    amount: int
    status: str
    tx_hash: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class SettlementList(BaseModel):
    settlements: List[SettlementOut]

class PartyOut(BaseModel):
    user_id: int
    display_name: str | None = None
    username: str | None = None
    wallet_address: str | None = None

class SettlementDetail(SettlementOut):
    debtor: PartyOut
    creditor: PartyOut

class TransactionParams(BaseModel):
    settlement_id: int
    amount: int
    recipient_address: str
    usdt_master_address: str
    comment: str

# TON transaction hash, hex encoded
TX_HASH_PATTERN = r"^[0-9a-fA-F]{64}$"

class VerifyRequest(BaseModel):
    boc: str | None = Field(default=None, min_length=1)
    tx_hash: str | None = Field(default=None, pattern=TX_HASH_PATTERN)

    class Config:
        extra = "forbid"

    @model_validator(mode="after")
    def check_reference(self):
        if not self.boc and not self.tx_hash:
            raise ValueError("Either boc or tx_hash is required")
        return self

class VerificationResult(BaseModel):
    status: str
    settlement_id: int
    tx_hash: str | None = None
    detail: str | None = None
    # True only for the call that moved the settlement to settled_onchain
    transitioned: bool = Field(default=False, exclude=True)
