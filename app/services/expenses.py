"""
Expense service — CRUD and totals, always scoped to one owner.
db.commit() is the caller's responsibility.
"""
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models.expense import Expense

logger = logging.getLogger(__name__)


class ExpenseService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self, user_id: int, *, amount: Decimal, category: str, notes: str | None = None
    ) -> Expense:
        expense = Expense(user_id=user_id, amount=amount, category=category, notes=notes or None)
        self.db.add(expense)
        await self.db.flush()
        await self.db.refresh(expense)
        return expense

    async def list_expenses(self, user_id: int) -> list[Expense]:
        result = await self.db.execute(
            select(Expense)
            .where(Expense.user_id == user_id)
            .order_by(Expense.created_at.desc(), Expense.id.desc())
        )
        return list(result.scalars().all())

    async def _get_owned(self, user_id: int, expense_id: int) -> Expense:
        result = await self.db.execute(
            select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
        )
        expense = result.scalar_one_or_none()
        if expense is None:
            raise NotFoundError("Expense not found", details={"id": expense_id})
        return expense

    async def update(
        self,
        user_id: int,
        expense_id: int,
        *,
        amount: Decimal,
        category: str,
        notes: str | None = None,
    ) -> Expense:
        expense = await self._get_owned(user_id, expense_id)
        expense.amount = amount
        expense.category = category
        expense.notes = notes or None
        await self.db.flush()
        return expense

    async def delete(self, user_id: int, expense_id: int) -> Expense:
        expense = await self._get_owned(user_id, expense_id)
        await self.db.delete(expense)
        await self.db.flush()
        return expense

    async def summary(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        """
        Total and per-category totals, optionally limited to [start, end).
        Categories are ordered by total, largest first.
        """
        conditions = [Expense.user_id == user_id]
        if start is not None:
            conditions.append(Expense.created_at >= start)
        if end is not None:
            conditions.append(Expense.created_at < end)

        total = await self.db.scalar(
            select(func.coalesce(func.sum(Expense.amount), 0)).where(*conditions)
        )
        per_category = func.sum(Expense.amount).label("total")
        rows = await self.db.execute(
            select(Expense.category, per_category)
            .where(*conditions)
            .group_by(Expense.category)
            .order_by(per_category.desc())
        )
        return {
            "total": Decimal(str(total or 0)),
            "by_category": [
                {"category": category, "total": Decimal(str(amount))}
                for category, amount in rows.all()
            ],
        }
