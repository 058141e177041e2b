"""Cursor pagination and search-query helpers."""

from datetime import datetime

from ..errors import ValidationError
from ..models import Message, MessagePage
from ..storage import format_timestamp, parse_timestamp


def parse_cursor(cursor: str | None) -> datetime | None:
    """Decode a cursor into the exclusive upper bound on created_at."""
    if cursor is None or cursor.strip() == "":
        return None
    try:
        # A "+" in an unencoded query string arrives as a space.
        return parse_timestamp(cursor.strip().replace(" ", "+"))
    except ValueError as e:
        raise ValidationError(f"Invalid cursor: {cursor!r}") from e


def build_page(messages: list[Message], limit: int) -> MessagePage:
    """A full page has more data behind it; a short page ends the sequence."""
    has_more = len(messages) == limit
    cursor = format_timestamp(messages[-1].created_at) if has_more and messages else None
    return MessagePage(messages=messages, cursor=cursor, has_more=has_more)


def conjunctive_rewrite(query: str) -> str:
    """Join whitespace-separated terms with ``&``."""
    return " & ".join(query.split())
