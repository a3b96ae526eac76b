import asyncio
import json
import os
import socket
import struct
import sys
import threading
import time

import pytest

try:
    import mcping
except ImportError:
    sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    import mcping

from mcping import (
    DecodeError,
    MalformedVarint,
    PingConnectionError,
    PingTimeout,
    ProtocolError,
    UnexpectedEndOfStream,
)
from mcping.pycraft2.connector import MCSocket, Stages, parse_address
from mcping.pycraft2.packet import encode_packet, encode_string, encode_varint

STATUS = {
    "version": {"name": "1.17", "protocol": 756},
    "players": {"max": 20, "online": 3},
    "description": {"text": "A test server"},
}
STATUS_JSON = json.dumps(STATUS, separators=(",", ":")).encode("utf-8")
STATUS_RESPONSE = encode_packet(0, encode_string(STATUS_JSON))


def expected_request(port: int) -> bytes:
    handshake = encode_packet(
        0,
        encode_varint(756)
        + encode_string("127.0.0.1")
        + struct.pack(">H", port)
        + encode_varint(1),
    )
    return handshake + b"\x01\x00"


class MockServer(threading.Thread):
    """Accepts one connection, reads the handshake and status request, then replies

    Each chunk is sent on its own, ``delay`` seconds apart. Afterwards the
    connection is either closed or held open until the client hangs up.
    """

    def __init__(self, *chunks: bytes, delay: float = 0.0, close: bool = False, pong: bool = False):
        super().__init__(daemon=True)
        self.chunks = chunks
        self.delay = delay
        self.close = close
        self.pong = pong
        self.received = b""
        self.sock = socket.create_server(("127.0.0.1", 0))
        self.port = self.sock.getsockname()[1]
        self.address = f"127.0.0.1:{self.port}"

    @staticmethod
    def recv_exact(conn: socket.socket, length: int) -> bytes:
        data = b""
        while len(data) < length:
            new = conn.recv(length - len(data))
            if not new:
                break
            data += new
        return data

    def run(self):
        try:
            conn, _ = self.sock.accept()
            with conn:
                conn.settimeout(5)
                self.received = self.recv_exact(conn, len(expected_request(self.port)))

                for chunk in self.chunks:
                    conn.sendall(chunk)
                    time.sleep(self.delay)

                if self.pong:
                    # the pong is the ping packet sent straight back
                    conn.sendall(self.recv_exact(conn, 10))

                if self.close:
                    return
                while conn.recv(4096):
                    pass
        except OSError:
            pass
        finally:
            self.sock.close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.join(timeout=5)


def test_ping_status():
    with MockServer(STATUS_RESPONSE) as server:
        status = mcping.ping(server.address, timeout=2)

    assert status.version.name == "1.17"
    assert status.version.protocol == 756
    assert status.players.max == 20
    assert status.players.online == 3
    assert status.description == "A test server"
    assert server.received == expected_request(server.port)


def test_async_ping_status():
    with MockServer(STATUS_RESPONSE) as server:
        status = asyncio.run(mcping.async_ping(server.address, timeout=2))

    assert status.players.online == 3


def test_ping_split_response():
    # length, id and string length arrive first, the JSON trickles in later
    head = STATUS_RESPONSE[:5]
    body = STATUS_RESPONSE[5:]
    chunks = [head] + [body[i:i + 20] for i in range(0, len(body), 20)]

    with MockServer(*chunks, delay=0.02) as server:
        status = mcping.ping(server.address, timeout=2)

    assert status.description == "A test server"


def test_ping_handshake_overrides():
    with MockServer(STATUS_RESPONSE) as server:
        status = mcping.ping(
            server.address, timeout=2, server_address="example.com", protocol_version=47
        )

    assert status.version.protocol == 756
    assert server.received.startswith(encode_packet(
        0,
        encode_varint(47)
        + encode_string("example.com")
        + struct.pack(">H", server.port)
        + encode_varint(1),
    ))


def test_ping_latency():
    with MockServer(STATUS_RESPONSE, pong=True) as server:
        status = mcping.ping(server.address, timeout=2, measure_latency=True)

    assert status.latency is not None
    assert status.latency >= 0


def test_ping_latency_without_pong():
    # the server hangs up instead of answering the ping, the status is still returned
    with MockServer(STATUS_RESPONSE, close=True) as server:
        status = mcping.ping(server.address, timeout=2, measure_latency=True)

    assert status.latency is None
    assert status.players.online == 3


def test_ping_inside_event_loop():
    async def run():
        with pytest.raises(RuntimeError):
            mcping.ping("127.0.0.1:25565")

    asyncio.run(run())


def test_wrong_packet_id():
    with MockServer(encode_packet(1, encode_string(STATUS_JSON))) as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_length_too_short_for_string_length():
    with MockServer(b"\x01\x00") as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_length_shorter_than_string():
    # 2 bytes leave room for the id and the string length, but not for 50 bytes of text
    with MockServer(b"\x02\x00\x32") as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_zero_length():
    with MockServer(b"\x00") as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_string_length_longer_than_packet():
    # the 5 byte string length runs 3 bytes past the end of the packet
    with MockServer(b"\x03", b"\x00\xfd\xff\xff\xff\x0f", delay=0.1) as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_negative_string_length():
    with MockServer(b"\x07\x00\xfd\xff\xff\xff\x0f") as server:
        with pytest.raises(ProtocolError, match="negative"):
            mcping.ping(server.address, timeout=2)


def test_string_length_mismatch():
    body = b"\x00" + encode_varint(len(STATUS_JSON) + 5) + STATUS_JSON
    with MockServer(encode_varint(len(body)) + body) as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_over_buffered_stream():
    with MockServer(STATUS_RESPONSE + b"\x00" * 16) as server:
        with pytest.raises(ProtocolError):
            mcping.ping(server.address, timeout=2)


def test_web_server():
    reply = b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n"
    with MockServer(reply, close=True) as server:
        with pytest.raises(ProtocolError, match="web server"):
            mcping.ping(server.address, timeout=2)


def test_malformed_varint():
    with MockServer(b"\xff\xff\xff\xff\xff\x01") as server:
        with pytest.raises(MalformedVarint):
            mcping.ping(server.address, timeout=2)


def test_invalid_json():
    with MockServer(encode_packet(0, encode_string(b"{not json"))) as server:
        with pytest.raises(DecodeError):
            mcping.ping(server.address, timeout=2)


def test_payload_never_completes():
    partial = STATUS_RESPONSE[:-10]
    with MockServer(partial) as server:
        start = time.perf_counter()
        with pytest.raises(PingTimeout):
            mcping.ping(server.address, timeout=0.3)
        elapsed = time.perf_counter() - start

    assert elapsed < 5


def test_no_response():
    with MockServer() as server:
        with pytest.raises(TimeoutError):
            mcping.ping(server.address, timeout=0.3)


def test_connection_closed_early():
    with MockServer(STATUS_RESPONSE[:-10], close=True) as server:
        with pytest.raises(UnexpectedEndOfStream):
            mcping.ping(server.address, timeout=2)


def test_connection_refused():
    sock = socket.create_server(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    with pytest.raises(PingConnectionError):
        mcping.ping(f"127.0.0.1:{port}", timeout=1, connect_timeout=1)


def test_stages():
    async def run(address):
        mc = await MCSocket(address, timeout=2)
        stages = [mc.stage]

        await mc.handshake_status()
        stages.append(mc.stage)

        status = await mc.status_request()
        stages.append(mc.stage)

        await mc.close()
        await mc.close()
        return mc, stages, status

    with MockServer(STATUS_RESPONSE) as server:
        mc, stages, status = asyncio.run(run(server.address))

    assert stages == [Stages.CONNECTED, Stages.HANDSHAKE_SENT, Stages.AWAITING_RESPONSE]
    assert mc.closed
    assert status.version.name == "1.17"


def test_parse_address():
    assert parse_address("localhost") == ("localhost", 25565)
    assert parse_address("127.0.0.1:25566") == ("127.0.0.1", 25566)
    assert parse_address("[::1]:19132") == ("::1", 19132)
    assert parse_address("[::1]") == ("::1", 25565)
    assert parse_address("example.com", default_port=1) == ("example.com", 1)


@pytest.mark.parametrize("address", ["localhost:abc", "localhost:0", "localhost:70000", ":25565", "[::1"])
def test_parse_address_invalid(address):
    with pytest.raises(PingConnectionError):
        parse_address(address)
