# Imports every model so Base.metadata knows all tables (alembic, create_all).
from splitogram.db.session import Base
from splitogram.models.user import User
from splitogram.models.group import Group
from splitogram.models.group_member import GroupMember
from splitogram.models.expense import Expense
from splitogram.models.expense_share import ExpenseShare
from splitogram.models.settlement import Settlement

__all__ = ["Base", "User", "Group", "GroupMember", "Expense", "ExpenseShare", "Settlement"]
