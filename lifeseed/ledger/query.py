"""Query builders and feed pagination.

QUERY BUILDER SCOPE:
Abstract query patterns that are repeated MORE THAN TWICE.
Don't build a full ORM - just helpers for common patterns.

PAGINATION:
Feeds are ordered newest first by (created_at DESC, uuid DESC) and paged
with a keyset cursor rather than OFFSET, so rows inserted while a reader
pages do not shift or duplicate earlier pages. The cursor is the
"created_at|uuid" of the last item returned; None means the end.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")

CURSOR_SEPARATOR = "|"


@dataclass
class Page(Generic[T]):
    """One page of a feed.

    Attributes:
        items: Items on this page, newest first
        cursor: Opaque cursor for the next page, None when exhausted
    """

    items: list[T] = field(default_factory=list)
    cursor: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.cursor is None


def build_where_clause(
    conditions: dict[str, Any],
    param_map: dict[str, str] | None = None
) -> tuple[str, list[Any]]:
    """Build dynamic WHERE clause from condition dictionary.

    Args:
        conditions: Dictionary of condition names to values.
                    Values that are None are excluded from the clause.
        param_map: Optional mapping from condition names to SQL fragments.
                   If a condition name is in param_map, use its SQL fragment.
                   Otherwise, default to "{key} = ?" format.

    Returns:
        Tuple of (where_clause, params)

    Examples:
        >>> build_where_clause({"owner_id": "u1", "validated": 1})
        ('owner_id = ? AND validated = ?', ['u1', 1])

        >>> build_where_clause({"owner_id": None})
        ('1=1', [])
    """
    where_parts = []
    params = []

    for key, value in conditions.items():
        if value is None:
            continue
        where_parts.append(param_map[key] if param_map and key in param_map else f"{key} = ?")
        params.append(value)

    where_clause = " AND ".join(where_parts) if where_parts else "1=1"
    return where_clause, params


def build_update_clause(
    data: dict[str, Any],
    exclude: set[str] | None = None
) -> tuple[str, list[Any]]:
    """Build dynamic UPDATE clause from data dictionary.

    Values that are None are skipped; callers clear a field by passing "".

    Examples:
        >>> build_update_clause({"name": "Oak", "short_title": None})
        ('name = ?', ['Oak'])
    """
    exclude = exclude or set()
    update_parts = []
    params = []

    for key, value in data.items():
        if value is None or key in exclude:
            continue
        update_parts.append(f"{key} = ?")
        params.append(value)

    return ", ".join(update_parts), params


def encode_cursor(created_at: str, record_id: str) -> str:
    return f"{created_at}{CURSOR_SEPARATOR}{record_id}"


def decode_cursor(cursor: str) -> tuple[str, str]:
    """Split a feed cursor into (created_at, uuid).

    Raises:
        ValueError: If the cursor was not produced by encode_cursor
    """
    created_at, sep, record_id = cursor.partition(CURSOR_SEPARATOR)
    if not sep or not created_at or not record_id:
        raise ValueError(f"Malformed feed cursor: {cursor!r}")
    return created_at, record_id


def keyset_clause(cursor: str | None, prefix: str = "") -> tuple[str, list[Any]]:
    """WHERE fragment selecting rows strictly after a cursor.

    Args:
        cursor: Cursor from a previous Page, or None for the first page
        prefix: Optional table alias prefix (e.g. "p.")

    Returns:
        Tuple of (clause, params); "1=1" for the first page
    """
    if cursor is None:
        return "1=1", []
    created_at, record_id = decode_cursor(cursor)
    return (
        f"({prefix}created_at < ? OR ({prefix}created_at = ? AND {prefix}uuid < ?))",
        [created_at, created_at, record_id],
    )


def paginate(
    rows: list,
    limit: int,
    convert: Callable[[Any], T],
) -> Page[T]:
    """Build a Page from up to limit + 1 fetched rows.

    The extra row only signals that another page exists; it is not returned.
    """
    has_more = len(rows) > limit
    items = [convert(row) for row in rows[:limit]]
    cursor = None
    if has_more and items:
        last = rows[limit - 1]
        cursor = encode_cursor(last["created_at"], last["uuid"])
    return Page(items=items, cursor=cursor)
