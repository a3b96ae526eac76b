import struct
import time
from ctypes import c_int32 as signed_int32
from ctypes import c_uint32 as unsigned_int32

from ..errors import (
    DecodeError,
    MalformedVarint,
    ProtocolError,
    TruncatedVarint,
    UnexpectedEndOfStream,
)

MAX_VARINT_BYTES = 5


class States:
    HANDSHAKE = 0
    STATUS = 1


class DataTypes:
    VARINT = "VarInt"
    STRING = "String"
    USHORT = "Unsigned Short"
    LONG = "Long"


# https://wiki.vg/Protocol#VarInt_and_VarLong
def encode_varint(value: int) -> bytes:
    """Encode ``value`` as a VarInt.

    :param value: The Maximum is ``2 ** 31-1`` the minimum is ``-(2 ** 31)``.
    :raises ValueError: If value is out of range.
    """
    if value > 2**31 - 1 or value < -(2**31):
        raise ValueError(f'The value "{value}" is too big to send in a varint')

    remaining = unsigned_int32(value).value
    out = b""
    while remaining & -0x80:  # remaining & ~0x7F != 0
        out += struct.pack("!B", remaining & 0x7F | 0x80)
        remaining >>= 7
    return out + struct.pack("!B", remaining)


def decode_varint(stream) -> tuple[int, int]:
    """Read a VarInt from ``stream``, anything with a ``read(n)`` method.

    Returns:
        tuple[int, int]: The signed value and the number of bytes consumed

    Raises:
        MalformedVarint: If a 6th byte would be needed
        TruncatedVarint: If the stream ends before the last byte
    """
    result = 0
    for i in range(MAX_VARINT_BYTES):
        part = stream.read(1)
        if not part:
            raise TruncatedVarint(f"Stream ended after {i} bytes of a VarInt")

        part = part[0]
        result |= (part & 0x7F) << 7 * i
        if not part & 0x80:
            return signed_int32(result).value, i + 1
    raise MalformedVarint(f"VarInt is longer than {MAX_VARINT_BYTES} bytes")


def varint_ready(data: bytes) -> bool:
    """Whether ``data`` holds enough bytes for decode_varint to finish, one way or the other"""
    if len(data) >= MAX_VARINT_BYTES:
        return True
    return any(not part & 0x80 for part in data)


def read_exact(stream, length: int) -> bytes:
    data = stream.read(length)
    if len(data) < length:
        raise UnexpectedEndOfStream(
            f"Stream ended with {length - len(data)} of {length} bytes remaining"
        )
    return data


def encode_string(value: str | bytes) -> bytes:
    """Encode a string prefixed by its length in bytes.

    :param value: Text is sent as utf-8, bytes are sent as is.
    """
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    return encode_varint(len(raw)) + raw


def decode_string(stream) -> bytes:
    """Read a length prefixed string from ``stream`` and return its raw bytes"""
    length, _ = decode_varint(stream)
    if length < 0:
        raise ProtocolError(f"String length is negative: {length}")
    return read_exact(stream, length)


# https://wiki.vg/Protocol#Packet_format
def encode_packet(packet_id: int, payload: bytes = b"") -> bytes:
    id_bytes = encode_varint(packet_id)
    return encode_varint(len(id_bytes) + len(payload)) + id_bytes + payload


def decode_packet(stream) -> tuple[int, bytes]:
    """Read one uncompressed packet from ``stream``.

    Returns:
        tuple[int, bytes]: The packet id and its payload
    """
    length, _ = decode_varint(stream)
    if length < 1:
        raise ProtocolError(f"Packet length {length} can't hold a packet id")

    packet_id, id_size = decode_varint(stream)
    remaining = length - id_size
    if remaining < 0:
        raise ProtocolError(
            f"Packet id takes {id_size} bytes but the packet is only {length} long"
        )
    return packet_id, read_exact(stream, remaining)


class Packet:
    """A byte buffer that values can be written to and read back from in order"""

    def __init__(self, data: bytes = b""):
        self.__data = bytes(data)

    def __bytes__(self):
        return self.__data

    def __repr__(self):
        return f"{self.__class__.__name__}({self.__data!r})"

    def __len__(self):
        return len(self.__data)

    def write(self, data: bytes):
        self.__data += data

    def read(self, length: int) -> bytes:
        result = self.__data[:length]
        self.__data = self.__data[length:]
        return result

    def peek(self, length: int) -> bytes:
        return self.__data[:length]

    def varint_ready(self) -> bool:
        return varint_ready(self.__data[:MAX_VARINT_BYTES])

    encode_varint = staticmethod(encode_varint)
    encode_string = staticmethod(encode_string)

    @staticmethod
    def encode_ushort(value: int) -> bytes:
        """Encode an unsigned short.

        :param value: The Maximum is ``2 ** 16-1`` the minimum is 0.
        :raises ValueError: If value is out of range.
        """
        if value < 0 or value > 2**16 - 1:
            raise ValueError(f"The value {value} is out of range for an unsigned short")
        return struct.pack("!H", value)

    @staticmethod
    def encode_long(value: int) -> bytes:
        """Encode a signed long.

        :param value: The Maximum is ``2 ** 63-1`` the minimum is ``-(2 ** 63)``.
        :raises ValueError: If value is out of range.
        """
        if value < -(2**63) or value > 2**63 - 1:
            raise ValueError(f"The value {value} is out of range for a long")
        return struct.pack("!q", value)

    def read_varint(self) -> int:
        return decode_varint(self)[0]

    def read_string(self) -> str:
        try:
            return decode_string(self).decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"String is not valid utf-8: {err}") from err

    def read_ushort(self) -> int:
        return struct.unpack("!H", read_exact(self, 2))[0]

    def read_long(self) -> int:
        return struct.unpack("!q", read_exact(self, 8))[0]


class C2SPacket(Packet):
    """Base for packets sent by the client.

    Subclasses describe themselves with ``_info`` and list their fields, in wire
    order, with ``_dataTypes``. Field values are passed as keyword arguments.
    """

    def __init__(self, **kwargs):
        super().__init__(b"")
        info = self._info()

        self.fields = kwargs
        self.name = info["name"]
        self.id = info["id"]
        self.state = info["state"]

    @staticmethod
    def _info():
        return {
            "name": "Example Packet",
            "id": 0xFF,
            "state": States.STATUS,
        }

    @staticmethod
    def _dataTypes():
        return {}

    def __str__(self):
        return f"{self.name}({', '.join([f'{k}={v}' for k, v in self.fields.items()]) if self.fields else ''})"

    def toDict(self):
        return {
            "id": self.id,
            "name": self.name,
            "data": self.fields,
        }

    def toBytes(self) -> bytes:
        b = b""

        for k, v in self._dataTypes().items():
            if k not in self.fields:
                raise ValueError(f"Missing field {k} for {self.name}")

            match v:
                case DataTypes.VARINT:
                    b += self.encode_varint(self.fields[k])
                case DataTypes.STRING:
                    b += self.encode_string(self.fields[k])
                case DataTypes.USHORT:
                    b += self.encode_ushort(self.fields[k])
                case DataTypes.LONG:
                    b += self.encode_long(self.fields[k])
                case _:
                    raise ValueError(f"Unknown data type: {v}")

        return encode_packet(self.id, b)


class S2CPacket(Packet):
    """Base for packets read from the server.

    The header is read straight off an ``MCSocket``, the body is moved into this
    buffer once all of it has arrived.
    """

    def __init__(self, _socket):
        super().__init__(b"")
        info = self._info()

        self.socket = _socket
        self.name = info["name"]
        self.expected_id = info["id"]
        self.state = info["state"]
        self.length = None
        self.id = None
        # bytes of the packet that are still on the socket
        self.remaining = None
        self.received_at = None

    @staticmethod
    def _info():
        return {
            "name": "S2C Packet ...",
            "id": None,
            "state": States.STATUS,
        }

    async def read_header(self):
        """Read the packet length and id and check them against what is buffered.

        Raises:
            ProtocolError: If the length is too small, the socket holds more data
                than the packet claims, or the id is not the one expected
        """
        buffer = self.socket.buffer
        self.length, _ = await self.socket.read_varint()

        # "HTTP/1.1 400" reads as a 72 byte packet starting with "TTP"
        if self.length == ord("H") and buffer.peek(3) == b"TTP":
            raise ProtocolError("This is a web server, not a minecraft server")

        if self.length < 1:
            raise ProtocolError(f"Packet length {self.length} can't hold a packet id")

        if len(buffer) > self.length:
            raise ProtocolError(
                f"Too much data: expected packet length {self.length}, got {len(buffer)}"
            )

        self.id, id_size = await self.socket.read_varint()
        self.remaining = self.length - id_size
        if self.remaining < 0:
            raise ProtocolError(
                f"Packet id takes {id_size} bytes but the packet is only {self.length} long"
            )

        if self.expected_id is not None and self.id != self.expected_id:
            raise ProtocolError(
                f"Expected {self.name} ({hex(self.expected_id)}), got {hex(self.id)}"
            )

    async def read_string_length(self) -> int:
        """Read the length of a string that fills the rest of the packet.

        Raises:
            ProtocolError: If the length does not match what is left of the packet
        """
        if self.remaining < 1:
            raise ProtocolError(
                f"Packet length {self.length} leaves no room for a string length"
            )

        length, size = await self.socket.read_varint()
        self.remaining -= size
        if self.remaining < 0:
            raise ProtocolError(
                f"String length takes {size} bytes but the packet only had {self.remaining + size} left"
            )
        if length < 0:
            raise ProtocolError(f"String length is negative: {length}")
        if length != self.remaining:
            raise ProtocolError(
                f"String length claims to be {length}, but is {self.remaining}"
            )
        return length

    async def read_body(self, length: int = None):
        """Wait for ``length`` more bytes of the packet (all of it by default) and buffer them"""
        length = self.remaining if length is None else length
        if length < 0 or length > self.remaining:
            raise ProtocolError(
                f"Can't read {length} bytes, {self.remaining} left in the packet"
            )

        await self.socket.wait_for_bytes(length)
        self.write(self.socket.buffer.read(length))
        self.remaining -= length
        self.received_at = time.perf_counter()
