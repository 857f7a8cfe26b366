import math
import os
from dataclasses import dataclass, fields

BUFFER_SIZE = 4096

# Roles
ROLE_MASTER = "master"
ROLE_SLAVE = "slave"
ROLES = (ROLE_MASTER, ROLE_SLAVE)

# Transport backends
BACKEND_AUTO = "auto"
BACKEND_SOCKET = "socket"
BACKEND_SOCAT = "socat"
BACKENDS = (BACKEND_AUTO, BACKEND_SOCKET, BACKEND_SOCAT)

# Message types
PLAY = "play"
PAUSE = "pause"
SEEK = "seek"
POSITION = "position"
SPEED = "speed"

SEPARATOR = "|"

# Absolute speed bounds, regardless of configuration
MIN_SPEED = 0.5
MAX_SPEED = 2.0

# Follower key bindings
OFFSET_STEP = 0.005
OFFSET_INCREASE_KEY = "Ö"
OFFSET_DECREASE_KEY = "Ä"
TOGGLE_OSD_KEY = "i"

OSD_DURATION = 2.0
OSD_SEEK_DURATION = 3.0

RELAY_CANDIDATES = ("socat", "/usr/bin/socat", "/bin/socat")

# Syslog
SYSLOG_ENABLED = os.getenv("SYNC_SYSLOG") == "1"
SYSLOG_HOST = os.getenv("SYNC_SYSLOG_HOST", "127.0.0.1")
SYSLOG_PORT = int(os.getenv("SYNC_SYSLOG_PORT", "5514"))
SYSLOG_FACILITY = 1  # user-level


class ConfigError(ValueError):
    """Invalid or unusable configuration; fatal at startup."""


@dataclass(frozen=True)
class GroupAddress:
    host: str
    port: int

    @property
    def is_loopback(self) -> bool:
        return self.host == "localhost" or self.host.startswith("127.")

    def __str__(self):
        return f"{self.host}:{self.port}"


def parse_target(text: str) -> GroupAddress:
    host, sep, port = str(text).strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(
            f"Invalid target format {text!r}. Use ADDRESS:PORT (e.g., 192.168.1.255:12345)"
        )
    port = int(port)
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid target port {port} in {text!r}")
    return GroupAddress(host, port)


def parse_curve(text: str):
    """
    "0.05:0.05,0.2:0.125,1.0:0.325" -> ((0.05, 0.05), (0.2, 0.125), (1.0, 0.325))
    Each pair is |diff| seconds : speed correction at that point.
    """
    points = []
    for chunk in str(text).split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        x, sep, y = chunk.partition(":")
        try:
            points.append((float(x), float(y)))
        except ValueError:
            raise ConfigError(f"Invalid correction curve point {chunk!r}") from None
        if not sep:
            raise ConfigError(f"Invalid correction curve point {chunk!r}")
    if not points:
        raise ConfigError("Correction curve needs at least one point")
    return tuple(points)


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("yes", "true", "1", "on"):
        return True
    if text in ("no", "false", "0", "off"):
        return False
    raise ConfigError(f"Invalid boolean {value!r}")


@dataclass
class Settings:
    role: str = ROLE_MASTER
    target: str = "192.168.10.255:12345"
    backend: str = BACKEND_AUTO
    sync_interval: float = 0.5
    seek_threshold: float = 5.0
    speed_adjust_threshold: float = 0.02
    max_speed_adjust: float = 0.5
    initial_offset: float = 0.015
    show_osd: bool = True
    poll_interval: float = 0.05
    correction_curve: str = "0.05:0.05,0.2:0.125,1.0:0.325"
    correction_tail_slope: float = 1.0 / 3.0

    @classmethod
    def from_options(cls, options, base=None):
        """
        Build settings from a key/value mapping (CLI flags, options file).
        Keys may use the mpv script-opts spelling ("sync-role") or
        dashes instead of underscores.
        """
        known = {f.name: f for f in fields(cls)}
        values = {}
        if base is not None:
            values = {name: getattr(base, name) for name in known}

        for raw_key, raw_value in options.items():
            key = raw_key.strip()
            if key.startswith("sync-"):
                key = key[len("sync-"):]
            key = key.replace("-", "_")
            if key not in known:
                raise ConfigError(f"Unknown option {raw_key!r}")
            values[key] = _coerce(known[key].type, key, raw_value)

        return cls(**values)

    @property
    def group(self) -> GroupAddress:
        return parse_target(self.target)

    @property
    def curve_points(self):
        return parse_curve(self.correction_curve)

    @property
    def is_master(self) -> bool:
        return self.role == ROLE_MASTER

    def validate(self):
        if self.role not in ROLES:
            raise ConfigError(f"Invalid role {self.role!r}, expected one of {ROLES}")
        if self.backend not in BACKENDS:
            raise ConfigError(f"Invalid backend {self.backend!r}, expected one of {BACKENDS}")
        self.group  # raises on a bad target

        for f in fields(self):
            if f.type is float and not math.isfinite(getattr(self, f.name)):
                raise ConfigError(f"{f.name} must be a finite number")

        for name in ("sync_interval", "poll_interval", "seek_threshold", "max_speed_adjust"):
            if not getattr(self, name) > 0:
                raise ConfigError(f"{name} must be positive")
        if self.speed_adjust_threshold < 0:
            raise ConfigError("speed_adjust_threshold must not be negative")
        if self.speed_adjust_threshold >= self.seek_threshold:
            raise ConfigError("speed_adjust_threshold must be below seek_threshold")
        if self.correction_tail_slope < 0:
            raise ConfigError("correction_tail_slope must not be negative")

        last_x, last_y = 0.0, 0.0
        for x, y in self.curve_points:
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ConfigError("Correction curve points must be finite numbers")
            if x <= last_x or y < last_y:
                raise ConfigError(
                    "Correction curve points must have increasing |diff| "
                    "and non-decreasing correction"
                )
            last_x, last_y = x, y
        return self


def _coerce(kind, key, value):
    # dataclass field types are strings under postponed annotations
    kind = getattr(kind, "__name__", kind)
    try:
        if kind == "bool":
            return parse_bool(value)
        if kind == "float":
            return float(value)
        return str(value).strip()
    except ValueError:
        raise ConfigError(f"Invalid value {value!r} for {key}") from None


def load_options_file(path):
    """
    Read an mpv-style script-opts file: one key=value per line,
    '#' starts a comment line.
    """
    options = {}
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            key, sep, value = line.partition("=")
            if not sep or not key.strip():
                raise ConfigError(f"{path}:{lineno}: expected key=value")
            options[key.strip()] = value.strip()
    return options
