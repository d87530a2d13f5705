"""Logging utilities for npcmind.

Colour-codes output so rule-engine decisions, external LLM decisions and
failures are easy to tell apart in a running simulation.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Local rule engine
    YELLOW = "\033[93m"    # External LLM provider
    RED = "\033[91m"       # Errors, retries, rejected actions
    GREEN = "\033[92m"     # Completed actions
    CYAN = "\033[96m"      # Queue and cache bookkeeping

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes unless NPCMIND_NO_COLOR is set."""
    if os.getenv("NPCMIND_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def log_deterministic(message: str) -> None:
    """Log a rule-engine operation (blue)."""
    print(colored(f"{TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log an external provider operation (yellow)."""
    print(colored(f"{TAG_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or retry (red)."""
    print(colored(f"{TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a completion (green)."""
    print(colored(f"{TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log bookkeeping (cyan)."""
    print(colored(f"{TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
TAG_DETERMINISTIC = "[•]"
TAG_LLM = "[AI]"
TAG_ERROR = "[!]"
TAG_SUCCESS = "[✓]"
TAG_INFO = "[i]"
