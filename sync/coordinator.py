import math

from common.config import ROLE_MASTER
from common.log import log
from common.messages import Pause, Play, Position, Seek, Speed, encode, frame
from sync.state import CoordinatorState


class CoordinatorLoop:
    def __init__(self, player, transport, node_id=ROLE_MASTER):
        """
        player must provide get_time_pos() and the on_* subscriptions;
        transport must provide send(bytes) -> bool.
        """
        self.player = player
        self.transport = transport
        self.node_id = node_id
        self.state = CoordinatorState()
        self.sent = 0
        self.send_failures = 0

    def attach(self):
        self.player.on_pause_changed(self.on_pause_changed)
        self.player.on_seek(self.on_seek)
        self.player.on_speed_changed(self.on_speed_changed)

    def send(self, msg) -> bool:
        ok = self.transport.send(frame(msg))
        if ok:
            self.sent += 1
            log(ROLE_MASTER, self.node_id, "SENT", level="DEBUG", msg=encode(msg))
        else:
            self.send_failures += 1
            log(ROLE_MASTER, self.node_id, "SEND_FAIL", level="WARN", msg=encode(msg))
        return ok

    # ------------------------------
    # host events
    # ------------------------------
    def on_pause_changed(self, paused):
        if self.state.suppress_feedback:
            return
        self.send(Pause() if paused else Play())

    def on_seek(self):
        if self.state.suppress_feedback:
            return
        t = self.player.get_time_pos()
        if t is not None:
            self.send(Seek(max(0.0, t)))

    def on_speed_changed(self, speed):
        if self.state.suppress_feedback or speed is None:
            return
        if not math.isfinite(speed) or speed <= 0:
            return
        self.send(Speed(speed))

    # ------------------------------
    # timer
    # ------------------------------
    def heartbeat(self):
        """Drift correction: sent on every tick, guard or not."""
        t = self.player.get_time_pos()
        if t is None:
            return
        self.send(Position(max(0.0, t)))

    def on_message(self, msg):
        # a master never follows anyone
        log(ROLE_MASTER, self.node_id, "IGNORED", level="DEBUG", msg=encode(msg))
