"""Per-session sub-protocol module."""

from .engine import IFeedStatus, SessionEngine
from .tools import TOOL_NAMES, TOOLS

__all__ = ["IFeedStatus", "SessionEngine", "TOOLS", "TOOL_NAMES"]
