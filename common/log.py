import os
import sys
import time

NO_COLOR = os.getenv("NO_COLOR") == "1"
DEBUG = os.getenv("SYNC_DEBUG") == "1"

COL = {
    "RESET": "\033[0m",
    "RED": "\033[31m",
    "GREEN": "\033[32m",
    "YELLOW": "\033[33m",
    "CYAN": "\033[36m",
    "GREY": "\033[90m",
}

LEVEL_COLOR = {
    "ERROR": "RED",
    "WARN": "YELLOW",
    "OK": "GREEN",
    "DEBUG": "GREY",
}

def _color(s: str, c: str) -> str:
    if NO_COLOR or not sys.stdout.isatty():
        return s
    return f"{COL[c]}{s}{COL['RESET']}"

def _fmt(v) -> str:
    if isinstance(v, tuple):
        return f"{v[0]}:{v[1]}"
    if isinstance(v, float):
        return f"{v:.3f}"
    text = str(v)
    if " " in text or not text:
        return f'"{text}"'
    return text

def log(role: str, node_id: str, event: str, level: str = "INFO", **fields):
    if level == "DEBUG" and not DEBUG:
        return

    ts = f"{time.time():.3f}"
    base = f"ts={ts} role={role} id={node_id} lvl={level} event={event}"

    if fields:
        parts = []
        for k in sorted(fields.keys()):
            parts.append(f"{k}={_fmt(fields[k])}")
        base += " " + " ".join(parts)

    print(_color(base, LEVEL_COLOR.get(level, "CYAN")), flush=True)
