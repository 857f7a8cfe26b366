# common/syslog.py
import socket
from datetime import datetime, timezone

from common.config import (
    SYSLOG_ENABLED,
    SYSLOG_HOST,
    SYSLOG_PORT,
    SYSLOG_FACILITY,
)

APP_NAME = "playsync"

# ------------------------------
# UDP socket (lazily created, reused)
# ------------------------------
_sock = None


def _socket():
    global _sock
    if _sock is None:
        _sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    return _sock


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _pri(severity: int):
    # PRI = facility * 8 + severity
    return (SYSLOG_FACILITY * 8) + severity


def _fmt(v):
    if v is None:
        return "-"
    if isinstance(v, tuple) and len(v) == 2:
        return f"{v[0]}:{v[1]}"
    return str(v)


def format_record(*, level: str, severity: int, message: str, node_id: str, **fields):
    """Render one RFC5424 line; structured fields are appended as key=value."""
    payload_parts = [
        f"event={_fmt(fields.pop('event', None) or message)}",
        f"level={level}",
        f"node_id={node_id}",
        f'msg="{message}"',
    ]

    for k in sorted(fields.keys()):
        if fields[k] is not None:
            payload_parts.append(f"{k}={_fmt(fields[k])}")

    return (
        f"<{_pri(severity)}>1 "
        f"{_ts()} "
        f"{node_id} "
        f"{APP_NAME} "
        f"- - - "
        f"{' '.join(payload_parts)}"
    )


# ------------------------------
# Core syslog sender
# ------------------------------
def _send_syslog(*, level: str, severity: int, message: str, node_id: str = "-", **fields):
    if not SYSLOG_ENABLED:
        return

    record = format_record(
        level=level,
        severity=severity,
        message=message,
        node_id=node_id,
        **fields,
    )

    try:
        _socket().sendto(
            record.encode("utf-8", errors="replace"),
            (SYSLOG_HOST, SYSLOG_PORT),
        )
    except OSError:
        pass


# ------------------------------
# PUBLIC API
# ------------------------------
def LOG_INFO(message: str, **fields):
    _send_syslog(level="INFO", severity=6, message=message, **fields)


def LOG_WARN(message: str, **fields):
    _send_syslog(level="WARN", severity=4, message=message, **fields)


def LOG_ERROR(message: str, **fields):
    _send_syslog(level="ERROR", severity=3, message=message, **fields)
