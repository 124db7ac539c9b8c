from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .constants import (
    ACK,
    BLOCK_SIZE,
    DATA,
    ERROR,
    HEADER_FORMAT,
    MAX_BLOCK,
    MODE,
    OPCODE_FORMAT,
    RRQ,
    WRQ,
)
from .errors import EncodingError, MalformedPacketError

HEADER_LEN = struct.calcsize(HEADER_FORMAT)
OPCODE_LEN = struct.calcsize(OPCODE_FORMAT)


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class Direction(enum.Enum):
    GET = "get"
    PUT = "put"

    @property
    def opcode(self) -> Opcode:
        return Opcode.RRQ if self is Direction.GET else Opcode.WRQ


@dataclass(frozen=True, slots=True)
class RequestPacket:
    opcode: Opcode
    filename: bytes
    mode: bytes = MODE

    @property
    def direction(self) -> Direction:
        return Direction.GET if self.opcode == Opcode.RRQ else Direction.PUT


@dataclass(frozen=True, slots=True)
class DataPacket:
    block: int
    payload: bytes = b""

    @property
    def last(self) -> bool:
        return len(self.payload) < BLOCK_SIZE


@dataclass(frozen=True, slots=True)
class AckPacket:
    block: int


def next_block(block: int) -> int:
    return (block + 1) % (MAX_BLOCK + 1)


def _as_field(value: str | bytes, what: str) -> bytes:
    if isinstance(value, str):
        try:
            value = value.encode("ascii")
        except UnicodeEncodeError as e:
            raise EncodingError(f"{what} is not ASCII: {value!r}") from e
    if not value:
        raise EncodingError(f"{what} is empty")
    if b"\x00" in value:
        raise EncodingError(f"{what} contains a NUL byte: {value!r}")
    return value


def _check_block(block: int) -> None:
    if not 0 <= block <= MAX_BLOCK:
        raise EncodingError(f"block number out of range: {block}")


def encode_request(direction: Direction, filename: str | bytes, mode: str | bytes = MODE) -> bytes:
    name = _as_field(filename, "filename")
    mode_b = _as_field(mode, "mode")
    return struct.pack(OPCODE_FORMAT, direction.opcode) + name + b"\x00" + mode_b + b"\x00"


def decode_request(raw: bytes) -> RequestPacket:
    if len(raw) < OPCODE_LEN + 4:
        raise MalformedPacketError(f"request too short: {len(raw)} bytes")
    (opcode,) = struct.unpack_from(OPCODE_FORMAT, raw)
    if opcode not in (RRQ, WRQ):
        raise MalformedPacketError(f"expected RRQ or WRQ, got opcode {opcode}")
    fields = raw[OPCODE_LEN:].split(b"\x00")
    # "name\0mode\0" splits into [name, mode, b""]
    if len(fields) != 3 or fields[2] != b"" or not fields[0] or not fields[1]:
        raise MalformedPacketError("request is not NUL-terminated filename and mode")
    return RequestPacket(Opcode(opcode), fields[0], fields[1])


def encode_data(block: int, payload: bytes) -> bytes:
    _check_block(block)
    if len(payload) > BLOCK_SIZE:
        raise EncodingError(f"payload too large: {len(payload)}")
    return struct.pack(HEADER_FORMAT, DATA, block) + payload


def _header(raw: bytes, expected: int, name: str) -> int:
    if len(raw) < HEADER_LEN:
        raise MalformedPacketError(f"{name} too short: {len(raw)} bytes")
    opcode, block = struct.unpack_from(HEADER_FORMAT, raw)
    if opcode == ERROR:
        raise MalformedPacketError(f"expected {name}, got ERROR packet ({describe(raw)})")
    if opcode != expected:
        raise MalformedPacketError(f"expected {name}, got opcode {opcode}")
    return block


def decode_data(raw: bytes) -> DataPacket:
    block = _header(raw, DATA, "DATA")
    payload = bytes(raw[HEADER_LEN:])
    if len(payload) > BLOCK_SIZE:
        raise MalformedPacketError(f"DATA payload too large: {len(payload)}")
    return DataPacket(block, payload)


def encode_ack(block: int) -> bytes:
    _check_block(block)
    return struct.pack(HEADER_FORMAT, ACK, block)


def decode_ack(raw: bytes) -> AckPacket:
    block = _header(raw, ACK, "ACK")
    if len(raw) != HEADER_LEN:
        raise MalformedPacketError(f"ACK must be {HEADER_LEN} bytes, got {len(raw)}")
    return AckPacket(block)


def peek_opcode(raw: bytes) -> Opcode | None:
    if len(raw) < OPCODE_LEN:
        return None
    (opcode,) = struct.unpack_from(OPCODE_FORMAT, raw)
    try:
        return Opcode(opcode)
    except ValueError:
        return None


def describe(raw: bytes) -> str:
    """One-line summary of a datagram for trace logging. Never raises."""
    opcode = peek_opcode(raw)
    if opcode is None:
        return f"<unknown {len(raw)} bytes>"
    if opcode in (Opcode.RRQ, Opcode.WRQ):
        parts = raw[OPCODE_LEN:].split(b"\x00")
        name = parts[0].decode("ascii", "replace")
        mode = parts[1].decode("ascii", "replace") if len(parts) > 1 else "?"
        return f"{opcode.name} file={name!r} mode={mode}"
    if len(raw) < HEADER_LEN:
        return f"{opcode.name} <truncated {len(raw)} bytes>"
    (_, second) = struct.unpack_from(HEADER_FORMAT, raw)
    if opcode == Opcode.DATA:
        return f"DATA block={second} len={len(raw) - HEADER_LEN}"
    if opcode == Opcode.ACK:
        return f"ACK block={second}"
    msg = raw[HEADER_LEN:].split(b"\x00", 1)[0].decode("ascii", "replace")
    return f"ERROR code={second} msg={msg!r}"
