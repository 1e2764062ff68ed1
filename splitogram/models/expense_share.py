from sqlalchemy import Column, Integer, BigInteger, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from splitogram.db.session import Base

class ExpenseShare(Base):
    __tablename__ = "expense_shares"
    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_share_user"),
        CheckConstraint("share_amount >= 0", name="ck_expense_shares_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    share_amount = Column(BigInteger, nullable=False)  # micro-USDT

    expense = relationship("Expense", back_populates="shares")
