"""Console output helpers shared by the deploy and destroy commands."""

import os
import sys


# ANSI Escape Codes for Colors
class Color:
    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    END = "\033[0m"


def _colored(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def _paint(color: str, msg: str, stream=None) -> str:
    if not _colored(stream or sys.stdout):
        return msg
    return f"{color}{msg}{Color.END}"


def info(msg: str):
    print(_paint(Color.CYAN, f"ℹ {msg}"))


def success(msg: str):
    print(_paint(Color.GREEN, f"✅ {msg}"))


def warning(msg: str):
    print(_paint(Color.YELLOW, f"⚠️ {msg}"))


def error(msg: str):
    print(_paint(Color.RED, f"❌ {msg}", sys.stderr), file=sys.stderr)


def highlight(msg: str) -> str:
    return _paint(Color.BOLD, msg)


def step(msg: str, index: int | None = None, total: int | None = None):
    """Print a stage header, numbered as ``[index/total]`` when both are given."""
    prefix = f"[{index}/{total}] " if index is not None and total is not None else ""
    print(_paint(Color.BLUE, f"➜ {prefix}{msg}"))


def field(label: str, value: str):
    print(f"  {label}: {highlight(value)}")


def plain(msg: str):
    print(msg, flush=True)
