"""
SQL composition helpers for partial-row updates.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from psycopg import sql


def build_set_clause(
    updates: Mapping[str, Any], allowed: Iterable[str]
) -> tuple[sql.Composed, tuple]:
    """
    Build a ``col = %s, ...`` clause for whitelisted columns.

    Raises:
        ValueError: if a column outside ``allowed`` is requested
    """
    allowed_columns = set(allowed)
    unknown = [column for column in updates if column not in allowed_columns]
    if unknown:
        raise ValueError(f"Columns not updatable: {', '.join(sorted(unknown))}")

    clause = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder()) for column in updates
    )
    return clause, tuple(_adapt(value) for value in updates.values())


def _adapt(value: Any) -> Any:
    # StrEnum members are str subclasses; pass the plain value to the driver
    if isinstance(value, str):
        return str(value)
    return value
