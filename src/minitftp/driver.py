from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .errors import NetworkError, TransferError
from .packet import describe
from .session import TransferSession

SendFn = Callable[[bytes], Optional[int]]
ReceiveFn = Callable[[], Union[bytes, int, None]]


@dataclass(slots=True)
class TransferMetrics:
    packets_sent: int = 0
    packets_received: int = 0
    bytes_transferred: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


def _send(session: TransferSession, send: SendFn, data: bytes) -> None:
    try:
        sent = send(data)
    except OSError as e:
        raise session.fail(NetworkError(f"send failed: {e}")) from e
    if sent is not None and sent < 0:
        raise session.fail(NetworkError(f"send failed: returned {sent}"))


def _receive(session: TransferSession, receive: ReceiveFn) -> bytes:
    try:
        data = receive()
    except OSError as e:
        raise session.fail(NetworkError(f"receive failed: {e}")) from e
    if not isinstance(data, (bytes, bytearray)):
        raise session.fail(NetworkError(f"receive failed: returned {data!r}"))
    return bytes(data)


def run(session: TransferSession, send: SendFn, receive: ReceiveFn) -> TransferMetrics:
    """Drive *session* to completion, one datagram in flight at a time.

    ``send`` and ``receive`` are bound to an already-open socket and peer.
    The first failure of any kind fails the session and propagates as a
    ``TransferError``; nothing is retried here. The session's local stream is
    closed on every exit path.
    """
    metrics = TransferMetrics()
    logging.info("%s %r start", session.direction.value, session.remote_name)

    try:
        while True:
            out = session.take_outbound()
            if out is not None:
                logging.debug("-> %s", describe(out))
                _send(session, send, out)
                metrics.packets_sent += 1

            if session.finished:
                break

            data = _receive(session, receive)
            metrics.packets_received += 1
            logging.debug("<- %s", describe(data))
            session.handle(data)
    except TransferError as e:
        logging.debug("%s %r failed: %s", session.direction.value, session.remote_name, e)
        raise
    finally:
        session.close()
        metrics.bytes_transferred = session.bytes_transferred
        metrics.end_ts = time.monotonic()

    return metrics
