from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .constants import DEFAULT_MAX_RETRIES, RECV_BUFSIZE, TFTP_PORT
from .errors import ResolutionError


@dataclass(frozen=True, slots=True)
class Endpoint:
    family: int
    address: Tuple[Any, ...]

    @property
    def host(self) -> str:
        return self.address[0]

    @property
    def port(self) -> int:
        return self.address[1]


def resolve_endpoint(host: str, port: int = TFTP_PORT) -> Endpoint:
    try:
        infos = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"cannot resolve {host}:{port}: {e}") from e
    if not infos:
        raise ResolutionError(f"cannot resolve {host}:{port}: no addresses")
    family, _, _, _, sockaddr = infos[0]
    logging.debug("resolved %s:%d -> %s", host, port, sockaddr[0])
    return Endpoint(family, sockaddr)


def open_transport_socket(endpoint: Endpoint, timeout_ms: int = 0) -> socket.socket:
    sock = socket.socket(endpoint.family, socket.SOCK_DGRAM)
    if timeout_ms > 0:
        sock.settimeout(timeout_ms / 1000.0)
    return sock


class UdpTransport:
    """Send/receive pair for one transfer over an already-open socket.

    The server answers the initial request from a fresh port (its transfer
    ID); the first reply from the server's host latches that address and all
    later datagrams go there. Datagrams from anywhere else are dropped.

    When the socket has a timeout and ``max_retries`` is positive, a receive
    that times out resends the last datagram before trying again. The
    session above never relies on this.
    """

    def __init__(self, sock: socket.socket, endpoint: Endpoint, max_retries: int = DEFAULT_MAX_RETRIES):
        self.sock = sock
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.peer: Optional[Tuple[Any, ...]] = None
        self.retransmits = 0
        self._last: Optional[bytes] = None

    @property
    def destination(self) -> Tuple[Any, ...]:
        return self.peer or self.endpoint.address

    def send(self, data: bytes) -> int:
        self._last = data
        return self.sock.sendto(data, self.destination)

    def _accept(self, addr: Tuple[Any, ...]) -> bool:
        if self.peer is None:
            if addr[0] != self.endpoint.host:
                return False
            self.peer = addr[:2]
            logging.debug("server transfer id %s:%d", addr[0], addr[1])
            return True
        return addr[:2] == self.peer

    def receive(self) -> bytes:
        retries = 0
        while True:
            try:
                data, addr = self.sock.recvfrom(RECV_BUFSIZE)
            except socket.timeout:
                if retries >= self.max_retries or self._last is None:
                    raise
                retries += 1
                self.retransmits += 1
                logging.debug("timeout; retransmit retry=%d", retries)
                self.sock.sendto(self._last, self.destination)
                continue
            if not self._accept(addr):
                logging.warning("ignoring %d bytes from unknown peer %s:%d", len(data), addr[0], addr[1])
                continue
            return data

    def close(self) -> None:
        self.sock.close()
