from common.config import BACKEND_AUTO, BACKEND_SOCKET, BACKEND_SOCAT
from common.log import log
from transport import socket_channel
from transport.relay import LineRelay, RelayChannel, find_relay


class TransportUnavailable(RuntimeError):
    """No usable backend for the requested preference; fatal at startup."""


def _open_socket(group, role):
    socket_channel.probe()
    return socket_channel.SocketChannel(group, role)


def _open_socat(group, role):
    path = find_relay()
    if path is None:
        raise OSError("socat not found. Install with: sudo apt install socat")
    return RelayChannel(group, role, LineRelay(path))


OPENERS = {
    BACKEND_SOCKET: _open_socket,
    BACKEND_SOCAT: _open_socat,
}


def open_transport(group, role, backend=BACKEND_AUTO, openers=None):
    """
    Open exactly one channel. A named backend is the only one tried;
    "auto" tries socket first, then socat.
    """
    openers = openers or OPENERS
    order = [BACKEND_SOCKET, BACKEND_SOCAT] if backend == BACKEND_AUTO else [backend]

    reasons = []
    for name in order:
        opener = openers.get(name)
        if opener is None:
            reasons.append(f"{name}: unknown backend")
            continue
        try:
            channel = opener(group, role)
        except OSError as e:
            log(role, name, "BACKEND_UNAVAILABLE", level="WARN", reason=e)
            reasons.append(f"{name}: {e}")
            continue
        log(role, name, "BACKEND_SELECTED", level="OK", addr=str(group))
        return channel

    raise TransportUnavailable(
        "No backend available (" + "; ".join(reasons) + "). "
        "Install socat or set backend=socket/socat explicitly"
    )
