"""
Spending insights — summarises a user's expenses and asks Claude for tips.

Range fallback: current month → last month → all time; with no data at all
the model is asked for general advice instead.
Non-default requests count against a per-user daily quota (ai_usage).
db.commit() is the caller's responsibility.
"""
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

import anthropic
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import RateLimitedError, UpstreamServiceError
from app.models.ai_usage import AIUsage
from app.services.expenses import ExpenseService
from app.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "give me insights about my expenses"
FALLBACK_PROMPT = "Give me insights and tips."
_MAX_HISTORY = 10
_MAX_TOKENS = 800
_TEMPERATURE = 0.4

SYSTEM_PROMPT = (
    "You are a helpful budgeting coach. Use ONLY the provided spending data. "
    "If no expenses exist, give general advice. Keep it concise and use bullet points."
)


@dataclass(frozen=True)
class InsightResult:
    text: str
    total: float
    categories: list[dict]
    range_label: str
    remaining: int


def month_range(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def sanitize_history(messages) -> list[dict]:
    """Keep the last chat turns, roles normalised to user/assistant."""
    if not isinstance(messages, list):
        return []
    clean = [
        {
            "role": "assistant" if msg.get("role") == "assistant" else "user",
            "content": str(msg.get("content") or ""),
        }
        for msg in messages
        if isinstance(msg, dict) and isinstance(msg.get("role"), str)
    ]
    return clean[-_MAX_HISTORY:]


def _merge_roles(messages: list[dict]) -> list[dict]:
    """Collapse consecutive same-role turns (the API expects alternation)."""
    merged: list[dict] = []
    for msg in messages:
        if not msg["content"]:
            continue
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {"role": msg["role"], "content": f"{merged[-1]['content']}\n\n{msg['content']}"}
        else:
            merged.append(dict(msg))
    return merged


class InsightsService:
    def __init__(
        self,
        db: AsyncSession,
        client: anthropic.AsyncAnthropic,
        *,
        model: str,
        daily_limit: int = 10,
        clock: Clock = utc_now,
    ) -> None:
        self.db = db
        self.client = client
        self.model = model
        self.daily_limit = daily_limit
        self.clock = clock
        self.expenses = ExpenseService(db)

    async def _usage_row(self, user_id: int, day: date) -> AIUsage | None:
        result = await self.db.execute(
            select(AIUsage).where(AIUsage.user_id == user_id, AIUsage.usage_date == day)
        )
        return result.scalar_one_or_none()

    async def _increment_usage(self, user_id: int, day: date) -> int:
        """INSERT ... ON CONFLICT UPDATE so concurrent first requests of the day both count."""
        dialect = self.db.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert(AIUsage).values(user_id=user_id, usage_date=day, count=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "usage_date"],
            set_={"count": AIUsage.count + 1},
        )
        await self.db.execute(stmt)
        result = await self.db.execute(
            select(AIUsage.count).where(AIUsage.user_id == user_id, AIUsage.usage_date == day)
        )
        return result.scalar_one()

    async def _pick_summary(self, user_id: int) -> tuple[dict, str]:
        now = self.clock()
        start, end = month_range(now.year, now.month)
        summary = await self.expenses.summary(user_id, start, end)
        if summary["total"] > 0:
            return summary, "current month"

        start, end = month_range(*previous_month(now.year, now.month))
        summary = await self.expenses.summary(user_id, start, end)
        if summary["total"] > 0:
            return summary, "last month"

        return await self.expenses.summary(user_id), "all time"

    async def generate(
        self,
        user_id: int,
        *,
        prompt: str | None = None,
        is_default: bool = False,
        messages=None,
    ) -> InsightResult:
        today = self.clock().date()
        usage = await self._usage_row(user_id, today)
        current_count = usage.count if usage else 0
        if not is_default and current_count >= self.daily_limit:
            raise RateLimitedError(
                f"Daily AI limit reached ({self.daily_limit} requests).",
                code="AI_DAILY_LIMIT_REACHED",
                details={"limit": self.daily_limit},
            )

        history = sanitize_history(messages)
        user_prompt = (prompt or "").strip() or FALLBACK_PROMPT
        default_mode = is_default or (user_prompt.lower() == DEFAULT_PROMPT and not history)

        summary, range_label = await self._pick_summary(user_id)
        total = float(summary["total"])
        categories = [
            {"category": row["category"], "total": float(row["total"])}
            for row in summary["by_category"]
        ]
        generic = total == 0

        if generic:
            summary_text = "No expenses found."
        else:
            summary_text = "\n".join(
                [f"Range: {range_label}", f"Total: {total}", "By category:"]
                + [f"- {row['category']}: {row['total']}" for row in categories]
            )
        data_message = json.dumps({
            "range": range_label,
            "total": total,
            "categories": categories,
            "request": user_prompt,
            **({"fallback": "No expenses found. Provide general financial advice."} if generic else {}),
        })

        conversation = _merge_roles(
            [
                {"role": "user", "content": data_message},
                {"role": "user", "content": f"SPENDING SUMMARY\n{summary_text}"},
            ]
            + history
        )

        try:
            resp = await self.client.messages.create(
                model=self.model,
                max_tokens=_MAX_TOKENS,
                temperature=_TEMPERATURE,
                system=SYSTEM_PROMPT,
                messages=conversation,
            )
        except anthropic.APIError as e:
            logger.exception(f"Claude insights error user={user_id}")
            raise UpstreamServiceError("AI request failed", code="AI_UPSTREAM_ERROR", original_error=e)

        text = "".join(
            block.text for block in resp.content if getattr(block, "type", None) == "text"
        )

        next_count = current_count
        if not default_mode:
            next_count = await self._increment_usage(user_id, today)
        else:
            logger.info(f"AI default summary user={user_id} range={range_label} total={total}")

        return InsightResult(
            text=text,
            total=total,
            categories=categories,
            range_label=range_label,
            remaining=max(0, self.daily_limit - next_count),
        )
