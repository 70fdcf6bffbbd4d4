"""Terminal output formatters with color and emoji support."""
from __future__ import annotations

import logging
import os
import sys

from perf_audit.scan_core.models import Impact


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[31m"
    YELLOW = "\033[33m"
    GREEN = "\033[32m"
    BLUE = "\033[34m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        """Disable all color output."""
        cls._enabled = False

    @classmethod
    def enable(cls) -> None:
        """Re-enable color output, e.g. between CLI runs in one process."""
        cls._enabled = True

    @classmethod
    def colorize(cls, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        # An empty color means "leave as is"
        if not cls._enabled or not color:
            return text
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def supports_color(cls) -> bool:
        """Check if the terminal supports color output."""
        # Respect NO_COLOR environment variable (https://no-color.org/)
        if os.environ.get("NO_COLOR"):
            return False
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False
        return True


class Emojis:
    """Emoji indicators for visual scanning results."""

    CRITICAL = "🚨"
    WARNING = "⚠️"
    INFO = "ℹ️"
    CLEAN = "✅"
    STATS = "📊"
    FILE = "📄"
    SEARCH = "🔍"
    QUICK_WIN = "⚡"

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        """Disable all emoji output."""
        cls._enabled = False

    @classmethod
    def enable(cls) -> None:
        """Re-enable emoji output."""
        cls._enabled = True

    @classmethod
    def get(cls, emoji: str) -> str:
        """Return emoji if enabled, empty string otherwise."""
        return emoji if cls._enabled else ""

    @classmethod
    def supports_emoji(cls) -> bool:
        """Check if terminal supports emoji rendering."""
        term = os.environ.get("TERM", "")
        # Dumb terminals and redirected output get plain text
        if term == "dumb" or not sys.stdout.isatty():
            return False
        return True


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI color support."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED + Colors.BOLD,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        levelname = record.levelname
        if Colors._enabled:
            color = self.LEVEL_COLORS.get(record.levelno, "")
            record.levelname = Colors.colorize(levelname, color)
        result = super().format(record)
        record.levelname = levelname
        return result


# Critical and High share red; bold marks Critical
IMPACT_COLORS = {
    Impact.CRITICAL: Colors.RED + Colors.BOLD,
    Impact.HIGH: Colors.RED,
    Impact.MEDIUM: Colors.YELLOW,
    Impact.LOW: Colors.BLUE,
}


def impact_color(impact: Impact) -> str:
    """ANSI color for an impact level; empty for unknown levels."""
    return IMPACT_COLORS.get(impact, "")


def score_color(score: float) -> str:
    """Green from Good upward, yellow for Fair, red below."""
    if score >= 75:
        return Colors.GREEN
    if score >= 50:
        return Colors.YELLOW
    return Colors.RED


def status_emoji(score: float) -> str:
    """Emoji for a 0-100 score: clean at Excellent, warning down to Fair, critical below."""
    if score >= 90:
        return Emojis.get(Emojis.CLEAN)
    if score >= 50:
        return Emojis.get(Emojis.WARNING)
    return Emojis.get(Emojis.CRITICAL)
