"""
POST /insights — AI spending insights for the signed-in user.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_insights_service, require_user
from app.models.user import User
from app.services.insights import InsightsService
from app.utils.responses import respond_success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/insights", tags=["insights"])


class InsightsRequest(BaseModel):
    prompt: str | None = None
    is_default: bool = False
    messages: list[Any] | None = None  # [{"role": "user"|"assistant", "content": str}]


@router.post("")
async def create_insights(
    body: InsightsRequest,
    request: Request,
    user: User = Depends(require_user),
    service: InsightsService = Depends(get_insights_service),
    db: AsyncSession = Depends(get_db),
):
    result = await service.generate(
        user.id,
        prompt=body.prompt,
        is_default=body.is_default,
        messages=body.messages,
    )
    await db.commit()

    return respond_success(
        request,
        code="INSIGHTS_SUCCESS",
        message="Insights generated",
        data={
            "text": result.text,
            "total": result.total,
            "categories": result.categories,
            "range": result.range_label,
            "remaining": result.remaining,
        },
        authenticated=True,
    )
