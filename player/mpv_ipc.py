"""
player.mpv_ipc

HostPlayer for a running mpv, over its JSON IPC socket:

    mpv --input-ipc-server=/tmp/mpv-sync.sock video.mp4

Property reads are served from values mpv pushes via observe_property,
so no call ever waits on mpv. Writes are fire-and-forget commands.
"""

from __future__ import annotations

import json
import select
import socket
import time

from common.log import log
from player.host import HostPlayer

OBSERVED = ("pause", "speed", "time-pos")


class MpvIpcPlayer(HostPlayer):
    def __init__(self, path=None, sock=None):
        super().__init__()
        if sock is None:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.settimeout(1.0)
            sock.connect(path)
        sock.setblocking(False)
        self.sock = sock
        self.path = path

        self._buf = b""
        self._out = bytearray()
        self._props = {}
        self._seek_pending = False
        self.running = True

        for i, name in enumerate(OBSERVED, 1):
            self.command("observe_property", i, name)

    # ------------------------------
    # wire
    # ------------------------------
    def command(self, *args):
        """Queue one command line; whatever the socket won't take now goes out on a later flush."""
        line = json.dumps({"command": list(args)}) + "\n"
        self._out += line.encode("utf-8")
        return self.flush()

    def flush(self):
        while self._out:
            try:
                sent = self.sock.send(self._out)
            except BlockingIOError:
                break
            except OSError as e:
                log("host", "mpv", "IPC_TX_FAIL", level="WARN", pending=len(self._out), error=e)
                self._out.clear()
                return False
            del self._out[:sent]
        return True

    def pump(self):
        """Read whatever mpv has sent so far and dispatch it. Never blocks."""
        while True:
            try:
                chunk = self.sock.recv(65536)
            except BlockingIOError:
                break
            except OSError:
                chunk = b""
            if not chunk:
                self._closed()
                break
            self._buf += chunk

        handled = 0
        while b"\n" in self._buf:
            line, self._buf = self._buf.split(b"\n", 1)
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except ValueError:
                log("host", "mpv", "IPC_BAD_JSON", level="DEBUG", line=line[:80])
                continue
            self.handle_event(event)
            handled += 1
        return handled

    def handle_event(self, event):
        kind = event.get("event")
        if kind is None:
            # reply to one of our commands
            if event.get("error", "success") != "success":
                log("host", "mpv", "IPC_ERROR", level="WARN", error=event.get("error"))
            return

        if kind == "property-change":
            name, value = event.get("name"), event.get("data")
            old = self._props.get(name)
            self._props[name] = value
            if name == "pause" and value is not None and value != old:
                self._emit_pause(bool(value))
            elif name == "speed" and value is not None and value != old:
                self._emit_speed(float(value))
            elif name == "time-pos" and value is not None and self._seek_pending:
                self._seek_pending = False
                self._emit_seek()

        elif kind == "seek":
            # time-pos is only meaningful once the seek lands
            self._seek_pending = True

        elif kind == "client-message":
            args = event.get("args") or []
            if args:
                self._emit_key(args[0])

        elif kind == "shutdown":
            self._closed()

    def _closed(self):
        if not self.running:
            return
        self.running = False
        self._emit_shutdown()

    # ------------------------------
    # HostPlayer
    # ------------------------------
    def get_pause(self):
        return bool(self._props.get("pause"))

    def set_pause(self, paused):
        self._props["pause"] = bool(paused)
        self.command("set_property", "pause", bool(paused))

    def get_speed(self):
        return float(self._props.get("speed") or 1.0)

    def set_speed(self, speed):
        self._props["speed"] = float(speed)
        self.command("set_property", "speed", float(speed))

    def get_time_pos(self):
        value = self._props.get("time-pos")
        return None if value is None else float(value)

    def seek_absolute(self, seconds):
        self.command("seek", float(seconds), "absolute")

    def show_text(self, text, duration):
        self.command("show-text", text, int(duration * 1000))

    def report_error(self, text):
        log("host", "mpv", "ERROR", level="ERROR", text=text)
        self.show_text(text, 5.0)

    def add_key_binding(self, key, name, fn):
        super().add_key_binding(key, name, fn)
        self.command("keybind", key, f"script-message {name}")

    # ------------------------------
    # main loop
    # ------------------------------
    def run(self, max_wait=0.05):
        while self.running:
            self.pump()
            if not self.running:
                break
            self.timers.run_due()
            self.flush()

            due = self.timers.next_due()
            wait = max_wait if due is None else max(0.0, min(max_wait, due - time.monotonic()))
            select.select([self.sock], [self.sock] if self._out else [], [], wait)

        self.close()

    def close(self):
        try: self.sock.close()
        except OSError: pass
