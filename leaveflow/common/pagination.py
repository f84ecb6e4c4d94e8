"""Generic pagination utilities for SQLAlchemy async queries."""


import math
from typing import Sequence

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func
from sqlalchemy.ext.asyncio import AsyncSession


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends(PaginationParams)`` on any list endpoint."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
        page_size: int = Query(
            default=50, ge=1, le=100, description="Items per page (max 100)",
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size


# ── Pydantic response models ───────────────────────────────────────

class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate_rows(
    session: AsyncSession,
    query: Select,
    page: int,
    page_size: int,
) -> tuple[Sequence, PaginationMeta]:
    """Execute *query* with LIMIT/OFFSET and return (rows, meta).

    List responses wrap these as ``{"data": [...], "meta": {...}}``.
    """
    count_q = query.with_only_columns(
        func.count(), maintain_column_froms=True,
    ).order_by(None)
    total: int = (await session.execute(count_q)).scalar_one()

    rows = (
        await session.execute(
            query.offset((page - 1) * page_size).limit(page_size)
        )
    ).scalars().all()

    total_pages = math.ceil(total / page_size) if total else 0
    meta = PaginationMeta(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
    return rows, meta
