"""
common.messages

Wire protocol between coordinator (master) and followers (slaves).
One message per line, UTF-8 text:

  play                (master -> slaves)
  pause               (master -> slaves)
  seek|<seconds>      (master seeked; absolute position)
  position|<seconds>  (periodic heartbeat; drift correction)
  speed|<factor>      (master changed nominal speed)

Decoding is best-effort: anything that does not parse is dropped.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from common.config import PLAY, PAUSE, SEEK, POSITION, SPEED, SEPARATOR


@dataclass(frozen=True)
class Play:
    command = PLAY


@dataclass(frozen=True)
class Pause:
    command = PAUSE


@dataclass(frozen=True)
class Seek:
    time: float
    command = SEEK


@dataclass(frozen=True)
class Position:
    time: float
    command = POSITION


@dataclass(frozen=True)
class Speed:
    factor: float
    command = SPEED


Message = Union[Play, Pause, Seek, Position, Speed]


def _fmt_float(value: float) -> str:
    # shortest representation that parses back to the same float
    return repr(float(value))


def encode(msg: Message) -> str:
    if isinstance(msg, (Seek, Position)):
        return f"{msg.command}{SEPARATOR}{_fmt_float(msg.time)}"
    if isinstance(msg, Speed):
        return f"{msg.command}{SEPARATOR}{_fmt_float(msg.factor)}"
    if isinstance(msg, (Play, Pause)):
        return msg.command
    raise TypeError(f"Not a protocol message: {msg!r}")


def frame(msg: Message) -> bytes:
    """Encoded line plus newline framing, ready for either transport."""
    return (encode(msg) + "\n").encode("utf-8")


# plain decimal with optional exponent; no "1_0", "inf", "nan" or hex
NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", re.ASCII)


def _parse_number(data: str) -> Optional[float]:
    if not NUMBER.fullmatch(data):
        return None
    try:
        value = float(data)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def decode(line) -> Optional[Message]:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    line = line.strip()
    if not line:
        return None

    cmd, _, data = line.partition(SEPARATOR)
    cmd = cmd.strip()

    if cmd == PLAY:
        return Play()
    if cmd == PAUSE:
        return Pause()

    if cmd not in (SEEK, POSITION, SPEED):
        return None

    value = _parse_number(data.strip())
    if value is None:
        return None

    if cmd == SPEED:
        return Speed(value) if value > 0 else None
    if value < 0:
        return None
    return Seek(value) if cmd == SEEK else Position(value)


def decode_payload(payload) -> List[Message]:
    """Decode every line of a datagram or relay chunk, dropping garbage."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    out = []
    for line in payload.splitlines():
        msg = decode(line)
        if msg is not None:
            out.append(msg)
    return out
