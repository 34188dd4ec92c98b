"""
Expenses API — every route is scoped to the signed-in user.

POST   /expenses          — record an expense
GET    /expenses          — list, newest first
GET    /expenses/summary  — total and per-category totals
PUT    /expenses/{id}     — replace amount / category / notes
DELETE /expenses/{id}
"""
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import require_user
from app.models.user import User
from app.services.expenses import ExpenseService
from app.utils.responses import respond_success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])


class ExpenseIn(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category: str = Field(min_length=1, max_length=100)
    notes: str | None = None

    @field_validator("category")
    @classmethod
    def category_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("category must not be blank")
        return value


@router.post("")
async def create_expense(
    body: ExpenseIn,
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await ExpenseService(db).create(
        user.id, amount=body.amount, category=body.category, notes=body.notes
    )
    await db.commit()
    return respond_success(
        request,
        code="EXPENSE_CREATED",
        message="Expense recorded",
        data={"expense": expense.to_dict()},
        status=201,
        authenticated=True,
    )


@router.get("")
async def list_expenses(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    expenses = await ExpenseService(db).list_expenses(user.id)
    return respond_success(
        request,
        code="EXPENSES_LIST_SUCCESS",
        message="Expenses",
        data={"expenses": [e.to_dict() for e in expenses]},
        authenticated=True,
    )


@router.get("/summary")
async def expenses_summary(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    summary = await ExpenseService(db).summary(user.id)
    return respond_success(
        request,
        code="EXPENSES_SUMMARY_SUCCESS",
        message="Expense summary",
        data={
            "total": float(summary["total"]),
            "by_category": [
                {"category": row["category"], "total": float(row["total"])}
                for row in summary["by_category"]
            ],
        },
        authenticated=True,
    )


@router.put("/{expense_id}")
async def update_expense(
    expense_id: int,
    body: ExpenseIn,
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await ExpenseService(db).update(
        user.id,
        expense_id,
        amount=body.amount,
        category=body.category,
        notes=body.notes,
    )
    await db.commit()
    return respond_success(
        request,
        code="EXPENSE_UPDATED",
        message="Expense updated",
        data={"expense": expense.to_dict()},
        authenticated=True,
    )


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await ExpenseService(db).delete(user.id, expense_id)
    await db.commit()
    logger.info(f"Expense {expense_id} deleted by user={user.id}")
    return respond_success(
        request,
        code="EXPENSE_DELETED",
        message="Expense deleted",
        data={"id": expense_id},
        authenticated=True,
    )
