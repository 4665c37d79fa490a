# Overview: Per-day sales and expense aggregates (upsert).

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailyStat
from tillbook.time_utils import business_date
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


def _bump(day: date, **increments: int) -> None:
    """Add increments to the day's row, creating it on first use."""
    values = {name: getattr(DailyStat, name) + amount for name, amount in increments.items()}
    stmt = update(DailyStat).where(DailyStat.date == day).values(**values).execution_options(
        synchronize_session=False
    )

    def _op():
        if db.session.execute(stmt).rowcount == 0:
            try:
                with db.session.begin_nested():
                    db.session.add(DailyStat(date=day, **increments))
            except IntegrityError:
                # Another writer created the row first
                db.session.execute(stmt)
        db.session.commit()

    run_with_retry(_op)


def record_sale(total_cents: int, day: Optional[date] = None) -> None:
    _bump(day or business_date(), total_sales_cents=total_cents, sale_count=1)


def record_expense(amount_cents: int, day: Optional[date] = None) -> None:
    _bump(day or business_date(), total_expenses_cents=amount_cents)


def get_daily_stat(day: Optional[date] = None) -> Optional[DailyStat]:
    return db.session.query(DailyStat).filter_by(date=day or business_date()).first()
