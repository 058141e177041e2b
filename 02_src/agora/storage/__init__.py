"""Storage module."""

from .storage import (
    IMessageSink,
    IStorage,
    Storage,
    format_timestamp,
    match_expression,
    parse_timestamp,
)

__all__ = [
    "IMessageSink",
    "IStorage",
    "Storage",
    "format_timestamp",
    "match_expression",
    "parse_timestamp",
]
