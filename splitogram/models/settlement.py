import enum

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.sql import func
from splitogram.db.session import Base


class SettlementStatus(str, enum.Enum):
    OPEN = "open"
    PAYMENT_PENDING = "payment_pending"
    SETTLED_ONCHAIN = "settled_onchain"
    SETTLED_EXTERNAL = "settled_external"


# statuses from which a settlement may still move forward
ACTIVE_STATUSES = (SettlementStatus.OPEN.value, SettlementStatus.PAYMENT_PENDING.value)
SETTLED_STATUSES = (SettlementStatus.SETTLED_ONCHAIN.value, SettlementStatus.SETTLED_EXTERNAL.value)


class Settlement(Base):
    __tablename__ = "settlements"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint("from_user <> to_user", name="ck_settlements_distinct_parties"),
        # at most one open settlement per debtor/creditor pair in a group
        Index(
            "uq_settlements_open_pair",
            "group_id", "from_user", "to_user",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    from_user = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    to_user = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # micro-USDT
    status = Column(String, nullable=False, default=SettlementStatus.OPEN.value, index=True)
    tx_hash = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
