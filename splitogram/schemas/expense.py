from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, model_validator
from datetime import datetime
from typing import List
from splitogram.core.utils import split_equally

class ShareInput(BaseModel):
    user_id: PositiveInt
    amount: NonNegativeInt

    class Config:
        extra = "forbid"

class ExpenseCreate(BaseModel):
    """
    Either ``participant_ids`` (equal split) or explicit ``shares``, never both.
    All amounts are micro-USDT.
    """
    amount: PositiveInt
    description: str = Field(min_length=1, max_length=500)
    paid_by: PositiveInt | None = None
    participant_ids: List[PositiveInt] | None = None
    shares: List[ShareInput] | None = None

    class Config:
        extra = "forbid"

    @model_validator(mode="after")
    def check_participants(self):
        if (self.participant_ids is None) == (self.shares is None):
            raise ValueError("Provide exactly one of participant_ids or shares")

        if self.shares is not None:
            user_ids = [s.user_id for s in self.shares]
            total = sum(s.amount for s in self.shares)
            if total != self.amount:
                raise ValueError(f"Share total ({total}) must equal expense amount ({self.amount})")
        else:
            user_ids = self.participant_ids

        if len(user_ids) < 2:
            raise ValueError("At least 2 participants required")
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("Duplicate users found in participants")

        return self

    def share_amounts(self):
        if self.shares is not None:
            return [(s.user_id, s.amount) for s in self.shares]
        return split_equally(self.amount, self.participant_ids)

class ParticipantOut(BaseModel):
    user_id: int
    display_name: str | None = None
    share_amount: int

class ExpenseOut(BaseModel):
    id: int
    group_id: int
    paid_by: int
    payer_name: str | None = None
    amount: int
    description: str
    created_at: datetime | None = None
    participants: List[ParticipantOut]

class ExpenseList(BaseModel):
    expenses: List[ExpenseOut]
