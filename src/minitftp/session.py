"""Per-transfer state machines.

A session never touches the network. The driver pulls outbound datagrams with
``take_outbound()`` and pushes inbound ones with ``handle()``; the session owns
the block counter and the local byte stream, and closes the stream once it
reaches DONE or FAILED.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Union

from .constants import BLOCK_SIZE, MODE
from .errors import SequenceError, StorageError, TransferError
from .packet import (
    Direction,
    decode_ack,
    decode_data,
    encode_ack,
    encode_data,
    encode_request,
    next_block,
)


class State(enum.Enum):
    START = "start"
    REQUEST_SENT = "request_sent"
    AWAITING_DATA = "awaiting_data"
    WRITING = "writing"
    AWAITING_ACK = "awaiting_ack"
    SENDING = "sending"
    DONE = "done"
    FAILED = "failed"


TERMINAL = frozenset({State.DONE, State.FAILED})


@dataclass(slots=True)
class _Session:
    remote_name: str | bytes
    stream: BinaryIO
    state: State = State.START
    error: Optional[TransferError] = None
    blocks: int = 0
    bytes_transferred: int = 0
    _outbound: Optional[bytes] = field(default=None, repr=False)

    direction = Direction.GET

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL

    def fail(self, exc: TransferError) -> TransferError:
        """Move to FAILED, remember *exc*, drop anything queued, and hand *exc* back for raising."""
        if not self.finished:
            logging.debug("%s session failed in %s: %s", self.direction.value, self.state.value, exc)
        self.state = State.FAILED
        self.error = exc
        self._outbound = None
        try:
            self.close()
        except OSError as e:
            logging.warning("closing local file after failure: %s", e)
        return exc

    def take_outbound(self) -> Optional[bytes]:
        if self.state is State.START:
            try:
                self._outbound = encode_request(self.direction, self.remote_name, MODE)
            except TransferError as e:
                raise self.fail(e)
            self.state = State.REQUEST_SENT
        out, self._outbound = self._outbound, None
        return out

    def _finish(self) -> None:
        try:
            self.stream.flush()
            self.close()
        except OSError as e:
            raise self.fail(StorageError(f"closing local file failed: {e}")) from e
        self.state = State.DONE

    def close(self) -> None:
        if not self.stream.closed:
            self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass(slots=True)
class GetSession(_Session):
    expected_block: int = 1

    direction = Direction.GET

    @classmethod
    def open(cls, remote_name: str | bytes, path: str) -> "GetSession":
        try:
            f = open(path, "wb")
        except OSError as e:
            raise StorageError(f"cannot open {path} for writing: {e}") from e
        return cls(remote_name, f)

    def handle(self, datagram: bytes) -> None:
        if self.state not in (State.REQUEST_SENT, State.AWAITING_DATA):
            raise RuntimeError(f"GET session cannot accept a datagram in state {self.state.value}")

        try:
            pkt = decode_data(datagram)
        except TransferError as e:
            raise self.fail(e)
        if pkt.block != self.expected_block:
            raise self.fail(SequenceError(self.expected_block, pkt.block))

        self.state = State.WRITING
        try:
            self.stream.write(pkt.payload)
        except OSError as e:
            raise self.fail(StorageError(f"write failed at block {pkt.block}: {e}")) from e

        self.blocks += 1
        self.bytes_transferred += len(pkt.payload)
        self._outbound = encode_ack(pkt.block)

        if pkt.last:
            self._finish()
            logging.info("GET complete; blocks=%d bytes=%d", self.blocks, self.bytes_transferred)
        else:
            self.expected_block = next_block(pkt.block)
            self.state = State.AWAITING_DATA


@dataclass(slots=True)
class PutSession(_Session):
    expected_block: int = 0
    _last_len: int = field(default=BLOCK_SIZE, repr=False)

    direction = Direction.PUT

    @classmethod
    def open(cls, remote_name: str | bytes, path: str) -> "PutSession":
        try:
            f = open(path, "rb")
        except OSError as e:
            raise StorageError(f"cannot open {path} for reading: {e}") from e
        return cls(remote_name, f)

    def _read_block(self) -> bytes:
        # a short read from a pipe is not end-of-file; keep reading until full or EOF
        buf = b""
        while len(buf) < BLOCK_SIZE:
            chunk = self.stream.read(BLOCK_SIZE - len(buf))
            if not chunk:
                break
            buf += chunk
        return buf

    def handle(self, datagram: bytes) -> None:
        if self.state not in (State.REQUEST_SENT, State.AWAITING_ACK):
            raise RuntimeError(f"PUT session cannot accept a datagram in state {self.state.value}")

        try:
            pkt = decode_ack(datagram)
        except TransferError as e:
            raise self.fail(e)
        if pkt.block != self.expected_block:
            raise self.fail(SequenceError(self.expected_block, pkt.block))

        if self.state is State.AWAITING_ACK and self._last_len < BLOCK_SIZE:
            self._finish()
            logging.info("PUT complete; blocks=%d bytes=%d", self.blocks, self.bytes_transferred)
            return

        self.state = State.SENDING
        try:
            payload = self._read_block()
        except OSError as e:
            raise self.fail(StorageError(f"read failed: {e}")) from e

        block = next_block(pkt.block)
        self._outbound = encode_data(block, payload)
        self._last_len = len(payload)
        self.blocks += 1
        self.bytes_transferred += len(payload)
        self.expected_block = block
        self.state = State.AWAITING_ACK


TransferSession = Union[GetSession, PutSession]


def open_session(direction: Direction, remote_name: str | bytes, path: str) -> TransferSession:
    if direction is Direction.GET:
        return GetSession.open(remote_name, path)
    return PutSession.open(remote_name, path)
