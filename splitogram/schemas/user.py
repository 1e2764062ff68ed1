from pydantic import BaseModel, Field

class WalletUpdate(BaseModel):
    address: str = Field(min_length=1)

    class Config:
        extra = "forbid"

class WalletOut(BaseModel):
    wallet_address: str | None

    class Config:
        from_attributes = True
