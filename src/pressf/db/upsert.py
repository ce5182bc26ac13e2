"""Dialect-aware INSERT ... ON CONFLICT DO NOTHING."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_ignore(db: AsyncSession, model: Any, values: dict[str, Any], conflict_columns: Sequence[str]) -> Any:  # noqa: ANN401
    """Build an insert that silently skips rows violating ``conflict_columns``."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model)
    else:
        msg = f"insert_ignore is not supported on {dialect}"
        raise NotImplementedError(msg)
    return stmt.values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
