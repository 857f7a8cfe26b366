"""
Run the sync engine against a running mpv.

  Master: mpv --input-ipc-server=/tmp/mpv-a.sock video.mp4
          python -m sync.runner --ipc-socket /tmp/mpv-a.sock --role master --target 192.168.10.255:12345
  Slave:  mpv --input-ipc-server=/tmp/mpv-b.sock video.mp4
          python -m sync.runner --ipc-socket /tmp/mpv-b.sock --role slave --target 192.168.10.255:12345
"""

import argparse
import sys

from common.config import BACKENDS, ROLES, ConfigError, Settings, load_options_file
from common.log import log
from player.mpv_ipc import MpvIpcPlayer
from sync.engine import SyncEngine

FLAGS = (
    ("role", str, "master or slave"),
    ("target", str, "ADDRESS:PORT to broadcast to / listen on"),
    ("backend", str, "auto, socket or socat"),
    ("sync_interval", float, "seconds between position heartbeats (master)"),
    ("seek_threshold", float, "seconds of difference before hard seeking"),
    ("speed_adjust_threshold", float, "seconds; below this the slave runs at base speed"),
    ("max_speed_adjust", float, "largest speed correction, e.g. 0.5 = 50%%"),
    ("initial_offset", float, "slave offset in seconds"),
    ("show_osd", str, "yes/no: show sync info on screen"),
    ("poll_interval", float, "seconds between receive polls"),
    ("correction_curve", str, "|diff|:correction points, e.g. 0.05:0.05,0.2:0.125,1.0:0.325"),
    ("correction_tail_slope", float, "correction growth per second beyond the last curve point"),
)


def build_parser():
    p = argparse.ArgumentParser(prog="playsync", description="Keep several mpv instances in sync over UDP.")
    p.add_argument("--ipc-socket", required=True, help="mpv --input-ipc-server path")
    p.add_argument("--config", help="key=value options file (mpv script-opts format)")
    for name, kind, help_text in FLAGS:
        flag = "--" + name.replace("_", "-")
        kwargs = {"type": kind, "help": help_text, "default": None, "dest": name}
        if name == "role":
            kwargs["choices"] = ROLES
        elif name == "backend":
            kwargs["choices"] = BACKENDS
        p.add_argument(flag, **kwargs)
    return p


def resolve_settings(args) -> Settings:
    settings = Settings()
    if args.config:
        settings = Settings.from_options(load_options_file(args.config), base=settings)
    flags = {name: getattr(args, name) for name, _, _ in FLAGS if getattr(args, name) is not None}
    return Settings.from_options(flags, base=settings).validate()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = resolve_settings(args)
    except (ConfigError, OSError) as e:
        parser.error(str(e))

    try:
        player = MpvIpcPlayer(args.ipc_socket)
    except OSError as e:
        log(settings.role, "runner", "IPC_CONNECT_FAIL", level="ERROR", path=args.ipc_socket, error=e)
        return 1

    engine = SyncEngine(settings, player)
    if not engine.start():
        player.close()
        return 1

    log(settings.role, "runner", "RUNNING", level="OK", backend=engine.transport.name)
    try:
        player.run()
    except KeyboardInterrupt:
        pass
    finally:
        engine.shutdown()
        player.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
