"""Message operations module."""

from .pagination import build_page, conjunctive_rewrite, parse_cursor
from .service import MessageService

__all__ = ["MessageService", "build_page", "conjunctive_rewrite", "parse_cursor"]
