from pydantic import BaseModel
from typing import List

class MemberRef(BaseModel):
    user_id: int
    display_name: str
    username: str | None = None

class DebtOut(BaseModel):
    from_user: MemberRef
    to_user: MemberRef
    amount: int

class GroupDebtsOut(BaseModel):
    settled: bool
    debts: List[DebtOut]

class Counterparty(MemberRef):
    amount: int

class MyBalanceOut(BaseModel):
    net_balance: int
    i_owe: List[Counterparty]
    owed_to_me: List[Counterparty]
