"""
player.host

What the sync engine needs from a media player. Implementations:
  - player.mpv_ipc.MpvIpcPlayer (real mpv over its JSON IPC socket)
  - tests/fake_player.FakePlayer (scripted, in-memory)
"""

import time


class TimerSet:
    """Cooperative periodic timers, driven by the host's main loop."""

    def __init__(self):
        self._timers = []  # [interval, next_due, fn]

    def add(self, interval, fn, now=None):
        now = time.monotonic() if now is None else now
        self._timers.append([interval, now + interval, fn])

    def run_due(self, now=None):
        now = time.monotonic() if now is None else now
        fired = 0
        for timer in list(self._timers):
            interval, due, fn = timer
            if now < due:
                continue
            # skip missed periods instead of bursting to catch up
            timer[1] = max(due + interval, now)
            fn()
            fired += 1
        return fired

    def next_due(self):
        if not self._timers:
            return None
        return min(t[1] for t in self._timers)

    def clear(self):
        self._timers.clear()


class HostPlayer:
    """
    Interface base class. Subclasses must implement the property and
    command methods; callbacks and timers are handled here.
    """

    def __init__(self):
        self.timers = TimerSet()
        self._pause_cbs = []
        self._seek_cbs = []
        self._speed_cbs = []
        self._shutdown_cbs = []
        self.key_bindings = {}  # name -> (key, fn)

    # ------------------------------
    # properties
    # ------------------------------
    def get_pause(self) -> bool:
        raise NotImplementedError

    def set_pause(self, paused: bool):
        raise NotImplementedError

    def get_speed(self) -> float:
        raise NotImplementedError

    def set_speed(self, speed: float):
        raise NotImplementedError

    def get_time_pos(self):
        """Current playback time in seconds, or None if unknown."""
        raise NotImplementedError

    def seek_absolute(self, seconds: float):
        raise NotImplementedError

    # ------------------------------
    # display
    # ------------------------------
    def show_text(self, text: str, duration: float):
        raise NotImplementedError

    def report_error(self, text: str):
        self.show_text(text, 5.0)

    # ------------------------------
    # subscriptions
    # ------------------------------
    def on_pause_changed(self, fn):
        self._pause_cbs.append(fn)

    def on_seek(self, fn):
        self._seek_cbs.append(fn)

    def on_speed_changed(self, fn):
        self._speed_cbs.append(fn)

    def on_shutdown(self, fn):
        self._shutdown_cbs.append(fn)

    def add_periodic_timer(self, interval, fn):
        self.timers.add(interval, fn)

    def add_key_binding(self, key, name, fn):
        self.key_bindings[name] = (key, fn)

    # ------------------------------
    # event fan-out, for subclasses
    # ------------------------------
    def _emit_pause(self, paused):
        for fn in list(self._pause_cbs):
            fn(paused)

    def _emit_seek(self):
        for fn in list(self._seek_cbs):
            fn()

    def _emit_speed(self, speed):
        for fn in list(self._speed_cbs):
            fn(speed)

    def _emit_shutdown(self):
        for fn in list(self._shutdown_cbs):
            fn()

    def _emit_key(self, name):
        binding = self.key_bindings.get(name)
        if binding is not None:
            binding[1]()
