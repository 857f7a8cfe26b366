from common.config import ConfigError
from common.log import log
from common.messages import decode_payload
from common.syslog import LOG_ERROR, LOG_INFO
from sync.coordinator import CoordinatorLoop
from sync.follower import FollowerLoop
from transport.probe import TransportUnavailable, open_transport


class SyncEngine:
    """
    Role controller: owns the one transport of this process and the
    coordinator or follower loop, and wires both into the host player.
    """

    def __init__(self, settings, player, open_transport=open_transport):
        self.settings = settings
        self.player = player
        self._open_transport = open_transport

        self.transport = None
        self.loop = None
        self.started = False
        self.closed = False
        self.received = 0

    @property
    def role(self):
        return self.settings.role

    def start(self) -> bool:
        if self.started:
            raise RuntimeError("sync engine already started")

        try:
            self.settings.validate()
            group = self.settings.group
            self.transport = self._open_transport(group, self.role, self.settings.backend)
        except (ConfigError, TransportUnavailable) as e:
            self._fatal(e)
            return False

        if self.settings.is_master:
            self.loop = CoordinatorLoop(self.player, self.transport)
            self.loop.attach()
            self.player.add_periodic_timer(self.settings.sync_interval, self.loop.heartbeat)
            log(self.role, self.transport.name, "MASTER_READY", level="OK",
                target=str(group), interval=self.settings.sync_interval)
        else:
            self.loop = FollowerLoop(self.player, self.settings)
            self.loop.bind_keys()
            log(self.role, self.transport.name, "SLAVE_READY", level="OK",
                port=group.port, offset=self.loop.state.manual_offset,
                osd="ON" if self.settings.show_osd else "OFF")

        # masters drain too, so nothing piles up on their socket
        self.player.add_periodic_timer(self.settings.poll_interval, self.poll)
        self.player.on_shutdown(self.shutdown)

        self.started = True
        LOG_INFO("ENGINE_START", node_id=self.role, event="ENGINE_START",
                 backend=self.transport.name, addr=str(group))
        return True

    def poll(self):
        """Drain every pending payload, handling messages in arrival order."""
        if self.transport is None:
            return 0
        handled = 0
        while True:
            payload = self.transport.try_recv()
            if payload is None:
                break
            msgs = decode_payload(payload)
            if not msgs:
                log(self.role, self.transport.name, "DROPPED", level="DEBUG", payload=repr(payload))
            for msg in msgs:
                self.received += 1
                self.loop.on_message(msg)
                handled += 1
        return handled

    def shutdown(self):
        if self.closed or self.transport is None:
            return
        self.closed = True
        self.transport.close()
        log(self.role, self.transport.name, "SHUTDOWN", level="INFO")

    def _fatal(self, error):
        text = f"Sync disabled: {error}"
        log(self.role, "engine", "STARTUP_FAILED", level="ERROR", reason=error)
        LOG_ERROR("STARTUP_FAILED", node_id=self.role, event="STARTUP_FAILED", reason=error)
        self.player.report_error(text)
