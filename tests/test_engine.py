import socket
import time

import pytest

from common.config import Settings
from common.messages import Position, Speed, frame
from fake_player import FakePlayer
from sync.coordinator import CoordinatorLoop
from sync.engine import SyncEngine
from sync.follower import FollowerLoop
from transport.probe import TransportUnavailable


def free_udp_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
    finally:
        s.close()


class QueueTransport:
    name = "queue"

    def __init__(self, inbox=None):
        self.inbox = list(inbox or [])
        self.sent = []
        self.closed = 0

    def try_recv(self):
        if not self.inbox:
            return None
        return self.inbox.pop(0)

    def send(self, payload):
        self.sent.append(payload)
        return True

    def close(self):
        self.closed += 1


def settings_for(role, port=12345, **extra):
    options = {"role": role, "target": f"127.0.0.1:{port}", "backend": "socket"}
    options.update(extra)
    return Settings.from_options(options)


def engine_with(role, transport, player=None, **extra):
    player = player or FakePlayer(time_pos=10.0)
    engine = SyncEngine(settings_for(role, **extra), player,
                        open_transport=lambda group, role, backend: transport)
    return engine, player


# -------------------- startup --------------------

def test_bad_target_aborts_without_raising():
    player = FakePlayer()
    engine = SyncEngine(settings_for("slave", port="nope"), player)
    assert engine.start() is False
    assert engine.transport is None
    assert player.errors and "Invalid target" in player.errors[0]
    assert player.timers.next_due() is None


def test_no_backend_aborts_without_raising():
    def unavailable(group, role, backend):
        raise TransportUnavailable("No backend available")

    player = FakePlayer()
    engine = SyncEngine(settings_for("master"), player, open_transport=unavailable)
    assert engine.start() is False
    assert "No backend available" in player.errors[0]


def test_thresholds_too_close_is_a_config_error():
    player = FakePlayer()
    engine = SyncEngine(settings_for("slave", speed_adjust_threshold=6.0), player,
                        open_transport=lambda *a: QueueTransport())
    assert engine.start() is False
    assert "seek_threshold" in player.errors[0]


def test_start_twice_is_refused():
    engine, _ = engine_with("slave", QueueTransport())
    assert engine.start()
    with pytest.raises(RuntimeError):
        engine.start()


def test_master_registers_heartbeat_and_poll():
    engine, player = engine_with("master", QueueTransport())
    assert engine.start()
    assert isinstance(engine.loop, CoordinatorLoop)
    intervals = sorted(t[0] for t in player.timers._timers)
    assert intervals == [0.05, 0.5]


def test_slave_registers_poll_and_keys():
    engine, player = engine_with("slave", QueueTransport())
    assert engine.start()
    assert isinstance(engine.loop, FollowerLoop)
    assert [t[0] for t in player.timers._timers] == [0.05]
    assert set(player.key_bindings) == {
        "sync-offset-increase", "sync-offset-decrease", "sync-toggle-osd",
    }


# -------------------- polling --------------------

def test_poll_drains_everything_in_order():
    transport = QueueTransport([
        frame(Speed(1.25)),
        b"garbage",
        frame(Position(10.0)) + frame(Position(10.0)),
    ])
    engine, player = engine_with("slave", transport, initial_offset=0.0)
    assert engine.start()

    assert engine.poll() == 3
    assert transport.try_recv() is None
    assert engine.loop.state.base_speed == 1.25
    assert engine.received == 3
    assert player.speeds == [1.25, 1.25, 1.25]


def test_master_heartbeat_goes_out_on_timer():
    transport = QueueTransport()
    engine, player = engine_with("master", transport, player=FakePlayer(time_pos=33.0))
    assert engine.start()
    player.fire_timers()
    assert frame(Position(33.0)) in transport.sent


def test_shutdown_closes_transport_once():
    transport = QueueTransport()
    engine, player = engine_with("slave", transport)
    assert engine.start()
    player.shutdown()
    engine.shutdown()
    assert transport.closed == 1


# -------------------- end to end over loopback UDP --------------------

def pump(*players, rounds=20):
    for _ in range(rounds):
        for p in players:
            p.fire_timers()
        time.sleep(0.005)


def test_master_and_slave_over_loopback_udp():
    port = free_udp_port()
    master_player = FakePlayer(time_pos=120.0)
    slave_player = FakePlayer(time_pos=3.0)

    slave = SyncEngine(settings_for("slave", port=port), slave_player)
    master = SyncEngine(settings_for("master", port=port), master_player)
    try:
        assert slave.start()
        assert master.start()

        # far behind: hard seek to master + offset
        pump(master_player, slave_player)
        assert slave_player.seeks
        assert slave_player.seeks[0] == pytest.approx(120.015)

        # master changes speed, slave adopts it as base speed
        master_player.user_speed(1.25)
        pump(master_player, slave_player)
        assert slave.loop.state.base_speed == 1.25

        # master pauses, slave follows, and nothing echoes back
        master_player.user_pause(True)
        pump(master_player, slave_player)
        assert slave_player.paused is True
        assert master.received == 0
    finally:
        master.shutdown()
        slave.shutdown()


def test_infinite_offset_never_reaches_the_player():
    player = FakePlayer(time_pos=10.0)
    engine = SyncEngine(settings_for("slave", initial_offset="inf"), player,
                        open_transport=lambda *a: QueueTransport([frame(Position(10.0))]))
    assert engine.start() is False
    assert "initial_offset" in player.errors[0]
    assert player.seeks == []
