import math

from common.config import (
    OFFSET_DECREASE_KEY,
    OFFSET_INCREASE_KEY,
    OFFSET_STEP,
    OSD_DURATION,
    OSD_SEEK_DURATION,
    ROLE_SLAVE,
    TOGGLE_OSD_KEY,
)
from common.log import log
from common.messages import Pause, Play, Position, Seek, Speed, encode
from sync.corrector import (
    IN_SYNC,
    SEEK,
    CorrectionCurve,
    clamp_speed,
    compute_correction,
    format_ms,
    format_offset,
)
from sync.state import FollowerState, suppressed


class FollowerLoop:
    def __init__(self, player, settings, node_id=ROLE_SLAVE):
        self.player = player
        self.settings = settings
        self.node_id = node_id
        self.curve = CorrectionCurve.from_settings(settings)
        self.show_osd = settings.show_osd

        self.state = FollowerState(manual_offset=settings.initial_offset)
        self.last_correction = None
        self.last_report = None

    def bind_keys(self):
        self.player.add_key_binding(OFFSET_INCREASE_KEY, "sync-offset-increase", self.offset_increase)
        self.player.add_key_binding(OFFSET_DECREASE_KEY, "sync-offset-decrease", self.offset_decrease)
        self.player.add_key_binding(TOGGLE_OSD_KEY, "sync-toggle-osd", self.toggle_osd)
        log(ROLE_SLAVE, self.node_id, "KEYS", level="INFO",
            increase=f"{OFFSET_INCREASE_KEY} +5ms",
            decrease=f"{OFFSET_DECREASE_KEY} -5ms",
            osd=f"{TOGGLE_OSD_KEY} toggle")

    # ------------------------------
    # inbound
    # ------------------------------
    def on_message(self, msg):
        log(ROLE_SLAVE, self.node_id, "RECEIVED", level="DEBUG", msg=encode(msg))

        with suppressed(self.state):
            if isinstance(msg, Play):
                self.state.master_paused = False
                self.player.set_pause(False)

            elif isinstance(msg, Pause):
                self.state.master_paused = True
                self.player.set_pause(True)

            elif isinstance(msg, Seek):
                # NOTE: manual offset only applies to position heartbeats
                self.state.last_known_position = msg.time
                self.player.seek_absolute(msg.time)

            elif isinstance(msg, Speed):
                self.state.base_speed = clamp_speed(msg.factor)
                self.player.set_speed(self.state.base_speed)

            elif isinstance(msg, Position):
                self.state.last_known_position = msg.time
                self.correct(msg.time)

    def correct(self, master_pos):
        current = self.player.get_time_pos()
        if current is None or not math.isfinite(current):
            return None

        target = master_pos + self.state.manual_offset
        c = compute_correction(target, current, self.state.base_speed, self.settings, self.curve)
        self.last_correction = c

        if c.action == SEEK:
            self.player.seek_absolute(c.target)
        else:
            self.player.set_speed(c.speed)

        self.report(c, master_pos, current)
        return c

    # ------------------------------
    # reporting
    # ------------------------------
    def report(self, c, master_pos, slave_pos):
        offset_str = format_offset(self.state.manual_offset)

        if c.action == SEEK:
            text = (f"HARD SEEK: Master: {master_pos:.2f}s | Slave: {slave_pos:.2f}s | "
                    f"Diff: {c.diff:.2f}s (> {self.settings.seek_threshold:.1f}s threshold){offset_str}")
            duration = OSD_SEEK_DURATION
        elif c.action == IN_SYNC:
            text = (f"Master: {master_pos:.2f}s | Slave: {slave_pos:.2f}s | "
                    f"Diff: {c.diff:.3f}s | Speed: {c.speed:.3f} ({c.direction}){offset_str}")
            duration = OSD_DURATION
        else:
            text = (f"Master: {master_pos:.2f}s | Slave: {slave_pos:.2f}s | "
                    f"Diff: {c.diff:.3f}s | Speed: {c.speed:.3f} ({c.percent:+.1f}%) "
                    f"{c.direction}{offset_str}")
            duration = OSD_DURATION

        self.last_report = text
        log(ROLE_SLAVE, self.node_id, c.action.upper(), level="INFO",
            master=master_pos, local=slave_pos, diff=c.diff,
            speed=c.speed if c.speed is not None else "-",
            offset=format_ms(self.state.manual_offset))
        if self.show_osd:
            self.player.show_text(text, duration)

    # ------------------------------
    # key actions
    # ------------------------------
    def offset_increase(self):
        self._shift_offset(OFFSET_STEP)

    def offset_decrease(self):
        self._shift_offset(-OFFSET_STEP)

    def _shift_offset(self, delta):
        self.state.manual_offset += delta
        text = f"Slave offset: {format_ms(self.state.manual_offset)}"
        log(ROLE_SLAVE, self.node_id, "OFFSET", level="INFO", offset=format_ms(self.state.manual_offset))
        if self.show_osd:
            self.player.show_text(text, OSD_DURATION)

    def toggle_osd(self):
        self.show_osd = not self.show_osd
        log(ROLE_SLAVE, self.node_id, "OSD", level="INFO", enabled=self.show_osd)
        # always confirm the toggle itself
        self.player.show_text(f"Sync OSD: {'ON' if self.show_osd else 'OFF'}", OSD_DURATION)
