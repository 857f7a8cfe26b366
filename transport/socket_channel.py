import socket
from common.config import BUFFER_SIZE, ROLE_SLAVE
from common.syslog import LOG_INFO, LOG_WARN


def probe():
    """UDP capability check: can this process create a datagram socket at all?"""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.close()


class SocketChannel:
    """
    Native UDP channel on the group address.
    - slave: bound to 0.0.0.0:<group port>, receives broadcasts
    - master: bound to an ephemeral port, send-only in practice
    Both are non-blocking; try_recv() never waits.
    """
    name = "socket"

    def __init__(self, group, role):
        self.group = group
        self.role = role

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    pass

            port = group.port if role == ROLE_SLAVE else 0
            self.sock.bind(("0.0.0.0", port))
            self.sock.setblocking(False)
        except OSError:
            self.sock.close()
            raise

        self.broadcast = False
        if not group.is_loopback:
            try:
                self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                self.broadcast = True
            except OSError as e:
                LOG_WARN(
                    "SOCKET_BROADCAST_FAIL",
                    node_id=role,
                    event="SOCKET_BROADCAST_FAIL",
                    addr=str(group),
                    error=e,
                )

        LOG_INFO(
            "SOCKET_INIT",
            node_id=role,
            event="SOCKET_INIT",
            addr=f"0.0.0.0:{self.local_port}",
            broadcast=self.broadcast,
        )

    @property
    def local_port(self) -> int:
        return self.sock.getsockname()[1]

    def try_recv(self):
        """Non-blocking receive; returns the datagram bytes or None."""
        try:
            data, _ = self.sock.recvfrom(BUFFER_SIZE)
        except BlockingIOError:
            return None
        except OSError:
            # e.g. ICMP port unreachable surfaced as ConnectionResetError
            return None
        return data

    def send(self, payload: bytes) -> bool:
        try:
            self.sock.sendto(payload, (self.group.host, self.group.port))
        except OSError as e:
            LOG_WARN(
                "SOCKET_TX_FAIL",
                node_id=self.role,
                event="SOCKET_TX_FAIL",
                addr=str(self.group),
                error=e,
            )
            return False
        return True

    def close(self):
        LOG_INFO(
            "SOCKET_CLOSE",
            node_id=self.role,
            event="SOCKET_CLOSE",
        )
        try: self.sock.close()
        except OSError: pass
