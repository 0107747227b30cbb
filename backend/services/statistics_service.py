"""Per-card approval statistics.

Only records that are both admin-reviewed and active count towards public
statistics. The ``approved_median_*`` names are kept for client
compatibility; the values are rounded arithmetic means over approved records.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.record import Record
from db.session import get_or_use_session

logger = logging.getLogger(__name__)

EMPTY_STATISTICS: Dict[str, Any] = {
    "approved_count": 0,
    "rejected_count": 0,
    "total_records": 0,
    "approved_median_credit_score": None,
    "approved_median_income": None,
    "approved_median_length_credit": None,
}


def _public_records_filter():
    return (Record.admin_review.is_(True), Record.active.is_(True))


def round_half_up(value: Any) -> Optional[int]:
    """Round like SQL ROUND(): halves go away from zero. None stays None."""
    if value is None:
        return None
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _approved_only(column):
    # NULL for rejected rows, so AVG only sees approved ones and is NULL when none exist
    return case((Record.result.is_(True), column), else_=None)


def summarize_counts(approved: Any, rejected: Any) -> Dict[str, int]:
    approved_count = int(approved or 0)
    rejected_count = int(rejected or 0)
    return {
        "approved_count": approved_count,
        "rejected_count": rejected_count,
        "total_records": approved_count + rejected_count,
    }


async def get_card_statistics(card_id: int, db: AsyncSession = None) -> Dict[str, Any]:
    stmt = select(
        func.sum(case((Record.result.is_(True), 1), else_=0)),
        func.sum(case((Record.result.is_(False), 1), else_=0)),
        func.avg(_approved_only(Record.credit_score)),
        func.avg(_approved_only(Record.listed_income)),
        func.avg(_approved_only(Record.length_credit)),
    ).where(Record.card_id == card_id, *_public_records_filter())

    async with get_or_use_session(db) as _db:
        row = (await _db.execute(stmt)).one()

    approved, rejected, avg_score, avg_income, avg_length = row
    stats = summarize_counts(approved, rejected)
    stats.update(
        {
            "approved_median_credit_score": round_half_up(avg_score),
            "approved_median_income": round_half_up(avg_income),
            "approved_median_length_credit": round_half_up(avg_length),
        }
    )
    return stats


async def get_all_card_counts(db: AsyncSession = None) -> Dict[int, Dict[str, int]]:
    """Approved/rejected/total counts for every card with public records."""
    stmt = (
        select(
            Record.card_id,
            func.sum(case((Record.result.is_(True), 1), else_=0)),
            func.sum(case((Record.result.is_(False), 1), else_=0)),
        )
        .where(*_public_records_filter())
        .group_by(Record.card_id)
    )
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).all()
    return {int(card_id): summarize_counts(approved, rejected) for card_id, approved, rejected in rows}


def _pairs(rows: Iterable[Dict[str, Any]], x_key: str, y_key: str, result: Optional[bool] = None) -> List[List[int]]:
    points = []
    for row in rows:
        if result is not None and bool(row.get("result")) is not result:
            continue
        x, y = row.get(x_key), row.get(y_key)
        if x is None or y is None:
            continue
        points.append([x, y])
    return points


def build_graph_series(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Scatter-plot series from record rows.

    Starting credit limit only exists on approvals, so the third series is not
    split by result.
    """
    rows = list(rows)
    return {
        "credit_score_vs_income": {
            "accepted": _pairs(rows, "credit_score", "listed_income", True),
            "rejected": _pairs(rows, "credit_score", "listed_income", False),
        },
        "length_credit_vs_credit_score": {
            "accepted": _pairs(rows, "length_credit", "credit_score", True),
            "rejected": _pairs(rows, "length_credit", "credit_score", False),
        },
        "income_vs_starting_credit_limit": _pairs(rows, "listed_income", "starting_credit_limit"),
    }


async def get_graph_rows(card_id: int, db: AsyncSession = None) -> List[Dict[str, Any]]:
    stmt = select(
        Record.result,
        Record.credit_score,
        Record.listed_income,
        Record.length_credit,
        Record.starting_credit_limit,
    ).where(Record.card_id == card_id, *_public_records_filter())
    async with get_or_use_session(db) as _db:
        rows = (await _db.execute(stmt)).mappings().all()
    return [dict(row) for row in rows]
