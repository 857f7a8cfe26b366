"""
transport.relay

Line-relay backend: UDP delivery through an external `socat` helper.

- receive: one long-lived `socat` listener appends every datagram to a
  side buffer file; we read the file from a byte cursor and only ever
  consume complete lines, so nothing is returned twice or split.
- send: a one-shot `socat` per line, fed on stdin and never waited for;
  finished senders are reaped on later calls.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from common.config import RELAY_CANDIDATES, ROLE_SLAVE
from common.syslog import LOG_INFO, LOG_WARN


def find_relay(candidates=RELAY_CANDIDATES) -> Optional[str]:
    for cmd in candidates:
        path = shutil.which(cmd)
        if path:
            return path
    return None


@dataclass
class ListenerHandle:
    port: int
    path: str
    proc: Optional[subprocess.Popen] = None
    cursor: int = 0


class LineRelay:
    def __init__(self, executable: str):
        self.executable = executable
        self._senders: List[subprocess.Popen] = []

    def listener_command(self, port: int) -> List[str]:
        return [self.executable, "-u", f"UDP4-RECVFROM:{port},broadcast,fork,reuseaddr", "STDOUT"]

    def sender_command(self, host: str, port: int) -> List[str]:
        return [self.executable, "-u", "-", f"UDP4-DATAGRAM:{host}:{port},broadcast"]

    def start_listener(self, port: int) -> ListenerHandle:
        fd, path = tempfile.mkstemp(prefix="playsync-", suffix=".buf")
        try:
            proc = subprocess.Popen(
                self.listener_command(port),
                stdin=subprocess.DEVNULL,
                stdout=fd,
                stderr=subprocess.DEVNULL,
            )
        except OSError:
            os.close(fd)
            os.unlink(path)
            raise
        os.close(fd)
        return ListenerHandle(port=port, path=path, proc=proc)

    def send_line(self, payload: bytes, host: str, port: int):
        self._reap()
        if not payload.endswith(b"\n"):
            payload += b"\n"
        proc = subprocess.Popen(
            self.sender_command(host, port),
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        try:
            proc.stdin.write(payload)
        finally:
            proc.stdin.close()
        self._senders.append(proc)

    def poll_new_lines(self, handle: ListenerHandle) -> List[str]:
        try:
            with open(handle.path, "rb") as f:
                f.seek(handle.cursor)
                chunk = f.read()
        except FileNotFoundError:
            return []

        # leave a partial trailing line for the next poll
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        handle.cursor += end + 1

        lines = chunk[: end + 1].decode("utf-8", errors="replace").splitlines()
        return [line for line in lines if line.strip()]

    def stop_listener(self, handle: ListenerHandle):
        if handle.proc is not None and handle.proc.poll() is None:
            handle.proc.terminate()
            try:
                handle.proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                handle.proc.kill()
        try:
            os.unlink(handle.path)
        except FileNotFoundError:
            pass

    def _reap(self):
        self._senders = [p for p in self._senders if p.poll() is None]


class RelayChannel:
    """Same contract as SocketChannel, backed by a LineRelay."""
    name = "socat"

    def __init__(self, group, role, relay: LineRelay):
        self.group = group
        self.role = role
        self.relay = relay
        self.listener: Optional[ListenerHandle] = None
        self._pending: Deque[str] = deque()

        if role == ROLE_SLAVE:
            self.listener = relay.start_listener(group.port)

        LOG_INFO(
            "RELAY_INIT",
            node_id=role,
            event="RELAY_INIT",
            relay=relay.executable,
            addr=str(group),
            listening=self.listener is not None,
        )

    def try_recv(self):
        if not self._pending and self.listener is not None:
            self._pending.extend(self.relay.poll_new_lines(self.listener))
        if not self._pending:
            return None
        return self._pending.popleft().encode("utf-8")

    def send(self, payload: bytes) -> bool:
        try:
            self.relay.send_line(payload, self.group.host, self.group.port)
        except OSError as e:
            LOG_WARN(
                "RELAY_TX_FAIL",
                node_id=self.role,
                event="RELAY_TX_FAIL",
                addr=str(self.group),
                error=e,
            )
            return False
        return True

    def close(self):
        LOG_INFO("RELAY_CLOSE", node_id=self.role, event="RELAY_CLOSE")
        if self.listener is not None:
            self.relay.stop_listener(self.listener)
            self.listener = None
