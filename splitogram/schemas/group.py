from pydantic import BaseModel, Field
from datetime import datetime
from typing import List

class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)

    class Config:
        extra = "forbid"

class GroupJoin(BaseModel):
    invite_code: str = Field(min_length=1)

    class Config:
        extra = "forbid"

class GroupOut(BaseModel):
    id: int
    name: str
    invite_code: str
    created_by: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class GroupSummary(GroupOut):
    role: str
    member_count: int
    net_balance: int

class GroupMemberOut(BaseModel):
    user_id: int
    telegram_id: int
    username: str | None = None
    display_name: str
    wallet_address: str | None = None
    role: str
    joined_at: datetime | None = None

class GroupDetail(GroupOut):
    members: List[GroupMemberOut]

class InviteInfo(BaseModel):
    id: int
    name: str
    member_count: int

class JoinResult(BaseModel):
    joined: bool
    group_id: int
    group_name: str
