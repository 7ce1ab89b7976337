"""
Suspicious request screening.

Flags path traversal, SQL/NoSQL injection fragments, non-admin access to
admin paths, and oversized page requests. Only the first three are severe
enough to block; the others are logged for monitoring.
"""

import json
from collections.abc import Mapping
from typing import Any, Final

from ..constants import MAX_PUBLIC_PAGE_SIZE
from .policy import Role

PATH_TRAVERSAL: Final[str] = "PATH_TRAVERSAL"
SQL_INJECTION: Final[str] = "SQL_INJECTION"
NOSQL_INJECTION: Final[str] = "NOSQL_INJECTION"
UNAUTHORIZED_ADMIN_ACCESS: Final[str] = "UNAUTHORIZED_ADMIN_ACCESS"
POTENTIAL_DATA_SCRAPING: Final[str] = "POTENTIAL_DATA_SCRAPING"

SEVERE_PATTERNS: Final[frozenset[str]] = frozenset(
    {PATH_TRAVERSAL, SQL_INJECTION, NOSQL_INJECTION}
)

_TRAVERSAL_FRAGMENTS: Final[tuple[str, ...]] = ("../", "..\\")
_SQL_FRAGMENTS: Final[tuple[str, ...]] = (
    "DROP TABLE",
    "UNION SELECT",
    "'OR 1=1",
    "; DELETE FROM",
)
_NOSQL_FRAGMENTS: Final[tuple[str, ...]] = ("$where", "$regex", "$ne")


def _page_size(query: Mapping[str, Any]) -> int:
    try:
        return int(query.get("limit") or 0)
    except (TypeError, ValueError):
        return 0


def scan_request(
    path: str,
    query: Mapping[str, Any] | None = None,
    body: Any = None,
    role: Role | str | None = None,
) -> list[str]:
    """
    Return the suspicious pattern tags found in a request, in detection order.

    Args:
        path: Raw request path (including any query string the client sent)
        query: Parsed query parameters
        body: Parsed JSON body, if any
        role: Caller's role, if authenticated
    """
    query = query or {}
    is_admin = role is not None and str(getattr(role, "value", role)) == Role.ADMIN.value
    found: list[str] = []

    if any(fragment in path for fragment in _TRAVERSAL_FRAGMENTS):
        found.append(PATH_TRAVERSAL)

    query_text = json.dumps(dict(query), default=str).upper()
    if any(fragment in query_text for fragment in _SQL_FRAGMENTS):
        found.append(SQL_INJECTION)

    if isinstance(body, (dict, list)):
        body_text = json.dumps(body, default=str)
        if any(fragment in body_text for fragment in _NOSQL_FRAGMENTS):
            found.append(NOSQL_INJECTION)

    if "/admin/" in path and not is_admin:
        found.append(UNAUTHORIZED_ADMIN_ACCESS)

    if _page_size(query) > MAX_PUBLIC_PAGE_SIZE and not is_admin:
        found.append(POTENTIAL_DATA_SCRAPING)

    return found


def is_severe(patterns: list[str]) -> bool:
    """True if any detected pattern warrants blocking the request."""
    return any(pattern in SEVERE_PATTERNS for pattern in patterns)
