from __future__ import annotations

import io
from collections import deque

import pytest

from minitftp.driver import run
from minitftp.errors import MalformedPacketError, NetworkError, SequenceError
from minitftp.packet import Opcode, decode_ack, decode_data, encode_ack, encode_data, peek_opcode
from minitftp.session import GetSession, PutSession, State


class ScriptedServer:
    """Replays canned replies and records everything the client sends."""

    def __init__(self, replies):
        self.replies = deque(replies)
        self.sent: list[bytes] = []

    def send(self, data: bytes) -> int:
        self.sent.append(data)
        return len(data)

    def receive(self) -> bytes:
        if not self.replies:
            raise TimeoutError("timed out")
        return self.replies.popleft()

    def acks(self) -> list[int]:
        return [decode_ack(d).block for d in self.sent if peek_opcode(d) is Opcode.ACK]


class SinkServer:
    """ACKs every DATA block it is sent, starting with ACK 0 for the WRQ."""

    def __init__(self):
        self.sent: list[bytes] = []
        self.received = bytearray()
        self._pending: bytes | None = None

    def send(self, data: bytes) -> int:
        self.sent.append(data)
        if peek_opcode(data) is Opcode.WRQ:
            self._pending = encode_ack(0)
        else:
            pkt = decode_data(data)
            self.received += pkt.payload
            self._pending = encode_ack(pkt.block)
        return len(data)

    def receive(self) -> bytes:
        out, self._pending = self._pending, None
        return out


def test_get_three_blocks(sink):
    server = ScriptedServer([encode_data(1, b"a" * 512), encode_data(2, b"b" * 512), encode_data(3, b"c" * 300)])
    s = GetSession("f", sink)

    metrics = run(s, server.send, server.receive)

    assert s.state is State.DONE
    assert server.acks() == [1, 2, 3]
    assert sink.closed
    assert len(sink.data) == 512 + 512 + 300
    assert metrics.bytes_transferred == 1324
    assert metrics.packets_sent == 4
    assert metrics.packets_received == 3
    assert metrics.end_ts is not None


def test_get_bad_second_block():
    server = ScriptedServer([encode_data(1, b"a" * 512), encode_data(3, b"c" * 512)])
    s = GetSession("f", io.BytesIO())

    with pytest.raises(SequenceError):
        run(s, server.send, server.receive)

    assert s.state is State.FAILED
    assert server.acks() == [1]


def test_get_error_packet_aborts():
    server = ScriptedServer([b"\x00\x05\x00\x01File not found\x00"])
    s = GetSession("missing", io.BytesIO())
    with pytest.raises(MalformedPacketError):
        run(s, server.send, server.receive)
    assert server.acks() == []


def test_put_exact_multiple_of_block_size():
    server = SinkServer()
    source = io.BytesIO(bytes(range(256)) * 4)
    s = PutSession("f", source)

    metrics = run(s, server.send, server.receive)

    data = [decode_data(d) for d in server.sent[1:]]
    assert [(p.block, len(p.payload)) for p in data] == [(1, 512), (2, 512), (3, 0)]
    assert bytes(server.received) == bytes(range(256)) * 4
    assert s.state is State.DONE
    assert metrics.bytes_transferred == 1024


def test_put_empty_file():
    server = SinkServer()
    s = PutSession("empty", io.BytesIO(b""))
    run(s, server.send, server.receive)
    assert [decode_data(d).payload for d in server.sent[1:]] == [b""]
    assert s.state is State.DONE


def test_send_failure_return_is_network_error():
    s = GetSession("f", io.BytesIO())
    with pytest.raises(NetworkError):
        run(s, lambda data: -1, lambda: b"")
    assert s.state is State.FAILED


def test_send_oserror_is_network_error():
    def send(data):
        raise OSError(101, "Network is unreachable")

    s = PutSession("f", io.BytesIO(b"x"))
    with pytest.raises(NetworkError, match="unreachable"):
        run(s, send, lambda: b"")
    assert s.state is State.FAILED


def test_receive_timeout_is_network_error():
    server = ScriptedServer([encode_data(1, b"a" * 512)])
    s = GetSession("f", io.BytesIO())
    with pytest.raises(NetworkError):
        run(s, server.send, server.receive)
    assert s.state is State.FAILED
    assert server.acks() == [1]


def test_receive_none_is_network_error():
    s = GetSession("f", io.BytesIO())
    with pytest.raises(NetworkError):
        run(s, lambda data: len(data), lambda: None)
    assert isinstance(s.error, NetworkError)


def test_session_reuse_is_independent():
    for _ in range(2):
        server = ScriptedServer([encode_data(1, b"once")])
        s = GetSession("f", io.BytesIO())
        run(s, server.send, server.receive)
        assert server.acks() == [1]


@pytest.mark.parametrize("result", [-1, 0, "x"])
def test_receive_non_bytes_is_network_error(result):
    source = io.BytesIO(b"abc")
    s = PutSession("f", source)
    with pytest.raises(NetworkError):
        run(s, lambda data: len(data), lambda: result)
    assert s.state is State.FAILED
    assert source.closed


def test_receive_bytearray_is_accepted(sink):
    s = GetSession("f", sink)
    run(s, lambda data: len(data), lambda: bytearray(encode_data(1, b"hi")))
    assert s.state is State.DONE
    assert sink.data == b"hi"


def test_run_closes_stream_on_unexpected_error():
    def receive():
        raise RuntimeError("boom")

    stream = io.BytesIO()
    s = GetSession("f", stream)
    with pytest.raises(RuntimeError):
        run(s, lambda data: len(data), receive)
    assert stream.closed


def test_run_closes_local_file(tmp_path):
    server = ScriptedServer([encode_data(1, b"x" * 512), encode_data(2, b"y")])
    s = GetSession.open("f", str(tmp_path / "o"))
    run(s, server.send, server.receive)
    assert s.state is State.DONE
    assert s.stream.closed
    assert (tmp_path / "o").read_bytes() == b"x" * 512 + b"y"
