import asyncio
import inspect
import logging
import time

from .. import config
from ..errors import (
    PingConnectionError,
    PingError,
    PingTimeout,
    ProtocolError,
    UnexpectedEndOfStream,
)
from ..status import StatusRecord
from ..pycraft2 import Handshake, Status
from ..pycraft2.packet import C2SPacket, Packet, decode_varint


class Stages:
    """Where a connection is in the handshake/status exchange"""

    CONNECTED = "connected"
    HANDSHAKE_SENT = "handshake sent"
    STATUS_REQUESTED = "status requested"
    AWAITING_RESPONSE = "awaiting response"
    COMPLETE = "complete"
    FAILED = "failed"


def parse_address(address: str, default_port: int = config.DEFAULT_PORT) -> tuple[str, int]:
    """Split ``host:port`` into its parts

    Args:
        address (str): ``host``, ``host:port`` or ``[ipv6]:port``
        default_port (int, optional): The port to use when none is given.
            Default to 25565.

    Returns:
        tuple[str, int]: The host and port

    Raises:
        PingConnectionError: If the port is not a valid port number
    """
    host, port = address.strip(), default_port

    if host.startswith("["):
        host, sep, rest = host[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise PingConnectionError(f"Invalid address: {address}")
        if rest:
            port = rest[1:]
    elif host.count(":") == 1:
        host, port = host.split(":")

    try:
        port = int(port)
    except ValueError as err:
        raise PingConnectionError(f"Invalid port in address: {address}") from err

    if not host or not 0 < port < 2**16:
        raise PingConnectionError(f"Invalid address: {address}")
    return host, port


class AsyncObj:
    def __init__(self, *args, **kwargs):
        """
        Standard constructor used for arguments pass
        Do not override. Use __ainit__ instead
        """
        self.__storedargs = args, kwargs
        self.async_initialized = False

    async def __ainit__(self, *args, **kwargs):
        """Async constructor, you should implement this"""

    async def __initobj(self):
        """Crutch used for __await__ after spawning"""
        assert not self.async_initialized
        self.async_initialized = True
        await self.__ainit__(
            *self.__storedargs[0], **self.__storedargs[1]
        )  # pass the parameters to __ainit__ that passed to __init__
        return self

    def __await__(self):
        return self.__initobj().__await__()

    def __init_subclass__(cls, **kwargs):
        assert inspect.iscoroutinefunction(cls.__ainit__)  # __ainit__ must be async


class MCSocket(AsyncObj):
    """
    Helper class to ease the connection to a Minecraft server.

    **NB:** This class is an async class, you should await the initialization of the object.

    Example:

    ```python
    from mcping.pycraft2.connector import MCSocket
    import asyncio

    async def main():
        mc = await MCSocket("localhost:25565")
        await mc.handshake_status()
        print(await mc.status_request())
        await mc.close()

    asyncio.run(main())
    ```
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.stage = None
        self.version = None
        self.writer = None
        self.closed = False

    async def __ainit__(
        self,
        host,
        port: int = None,
        timeout: float = config.TIMEOUT,
        connect_timeout: float = config.CONNECT_TIMEOUT,
        logger=logging.getLogger("mcping.connector"),
    ):
        """
        Connect to a Minecraft server.
        """

        if isinstance(host, str) and port is None:
            host, port = parse_address(host)

        self.addr = (host, port)
        self.timeout = timeout
        self.logger = logger
        # bytes received but not read yet
        self.buffer = Packet()
        self.at_eof = False

        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=connect_timeout
            )
        except asyncio.TimeoutError as err:
            raise PingConnectionError(
                f"Timed out connecting to {host}:{port} after {connect_timeout} seconds"
            ) from err
        except OSError as err:
            raise PingConnectionError(f"Unable to connect to {host}:{port}: {err}") from err

        self.stage = Stages.CONNECTED
        self.logger.debug(f"Connected to {host}:{port}")

    def __str__(self):
        return f"MCSocket({self.addr[0]}:{self.addr[1]}, stage={self.stage})"

    async def send(self, data: bytes) -> None:
        try:
            self.writer.write(data)
            await self.writer.drain()
        except OSError as err:
            raise PingConnectionError(f"Unable to send to {self}: {err}") from err

    async def fill(self, deadline: float = None) -> int:
        """Wait for more data from the server and add it to the buffer

        Args:
            deadline (float, optional): Event loop time to give up at.
                Default to ``timeout`` seconds from now.

        Returns:
            int: The number of bytes received, 0 once the server closed the connection

        Raises:
            PingTimeout: If nothing arrived before the deadline
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout if deadline is None else deadline - loop.time()
        if timeout <= 0:
            raise PingTimeout(f"Timed out waiting for data from {self}")

        try:
            data = await asyncio.wait_for(
                self.reader.read(config.READ_CHUNK), timeout=timeout
            )
        except asyncio.TimeoutError as err:
            raise PingTimeout(
                f"Timed out waiting for data from {self} with {len(self.buffer)} bytes buffered"
            ) from err
        except OSError as err:
            raise PingConnectionError(f"Unable to read from {self}: {err}") from err

        if not data:
            self.at_eof = True
        self.buffer.write(data)
        return len(data)

    async def read_varint(self) -> tuple[int, int]:
        """Read a VarInt, waiting for its bytes if they haven't arrived yet

        Returns:
            tuple[int, int]: The value and the number of bytes it took
        """
        while not self.buffer.varint_ready() and not self.at_eof:
            await self.fill()
        return decode_varint(self.buffer)

    async def wait_for_bytes(self, count: int, timeout: float = None) -> None:
        """Block until ``count`` bytes are buffered

        Args:
            count (int): The number of bytes needed
            timeout (float, optional): Seconds to wait in total. Default to ``self.timeout``.

        Raises:
            PingTimeout: If the bytes did not arrive in time
            UnexpectedEndOfStream: If the server closed the connection first
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.timeout if timeout is None else timeout)

        while len(self.buffer) < count:
            if self.at_eof:
                raise UnexpectedEndOfStream(
                    f"Connection closed with {count - len(self.buffer)} bytes remaining"
                )
            await self.fill(deadline)

    async def close(self, quiet: bool = False) -> None:
        """Close the connection, only the first call does anything

        Args:
            quiet (bool, optional): Log a failure to close instead of raising it.
                Default to False.
        """
        if self.closed or self.writer is None:
            return
        self.closed = True

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except OSError as err:
            if quiet:
                self.logger.warning(f"Failed to close {self}: {err}")
                return
            self.stage = Stages.FAILED
            raise PingConnectionError(f"Failed to close {self}: {err}") from err
        self.logger.debug(f"Closed {self}")

    async def send_packet(self, p: "C2SPacket"):
        tStart = time.perf_counter()

        assert isinstance(p, C2SPacket)

        await self.send(p.toBytes())

        tEnd = time.perf_counter()
        self.logger.debug(f"Sent packet: {hex(p.id)} in {tEnd - tStart:.2f} seconds")

    # Connection methods

    async def handshake_status(
        self,
        version_id: int = config.PROTOCOL_VERSION,
        next_state: int = config.NEXT_STATE,
        server_address: str = None,
        server_port: int = None,
    ):
        """
        Send a handshake packet to the server

        Args:
            version_id (int, optional): The version of the protocol. Defaults to 756.
            next_state (int, optional): The state to switch to. Defaults to 1 (status).
            server_address (str, optional): The address to announce. Defaults to the connected host.
            server_port (int, optional): The port to announce. Defaults to the connected port.
        """

        p = Handshake.C2S_0x00(
            protocol_version=version_id,
            server_address=self.addr[0] if server_address is None else server_address,
            server_port=self.addr[1] if server_port is None else server_port,
            next_state=next_state,
        )
        self.version = version_id
        await self.send_packet(p)
        self.stage = Stages.HANDSHAKE_SENT

    async def status_request(self) -> StatusRecord:
        """
        Send a status request to the server

        Returns:
            StatusRecord: The response from the server

        Raises:
            ProtocolError: If the response is not a status response or its lengths don't add up
            PingTimeout: If the response did not arrive in time
            DecodeError: If the response is not a valid status document
        """

        await self.send_packet(Status.C2S_0x00())
        self.stage = Stages.STATUS_REQUESTED

        tStart = time.perf_counter()
        response = Status.S2C_0x00(self)
        await response.read_header()
        length = await response.read_string_length()

        self.stage = Stages.AWAITING_RESPONSE
        await response.read_body(length)

        tEnd = time.perf_counter()
        self.logger.debug(
            f"Received packet: {hex(response.id)} ({length} bytes) in {tEnd - tStart:.2f} seconds"
        )

        return response.read_status()

    async def ping_request(self, payload: int = None) -> float:
        """
        Send a ping request and wait for the server to echo it

        Args:
            payload (int, optional): The number to send. Defaults to the current time in ms.

        Returns:
            float: The round trip time in milliseconds
        """
        if payload is None:
            payload = int(time.time() * 1000)

        tStart = time.perf_counter()
        await self.send_packet(Status.C2S_0x01(payload=payload))

        response = Status.S2C_0x01(self)
        echoed = await response.read_response()
        if echoed != payload:
            raise ProtocolError(f"Sent ping payload {payload}, got {echoed} back")

        latency = (response.received_at - tStart) * 1000
        self.logger.debug(f"Ping to {self} took {latency:.2f} ms")
        return latency


async def async_ping(
    address: str,
    *,
    protocol_version: int = config.PROTOCOL_VERSION,
    next_state: int = config.NEXT_STATE,
    server_address: str = None,
    server_port: int = None,
    timeout: float = config.TIMEOUT,
    connect_timeout: float = config.CONNECT_TIMEOUT,
    measure_latency: bool = False,
    logger=None,
) -> StatusRecord:
    """Connect to ``address``, ask for its status and hang up again

    Args:
        address (str): ``host:port`` of the server, the port defaults to 25565
        protocol_version (int, optional): Protocol version sent in the handshake
        next_state (int, optional): Next state sent in the handshake, 1 is status
        server_address (str, optional): Address sent in the handshake, defaults to the host
        server_port (int, optional): Port sent in the handshake, defaults to the port
        timeout (float, optional): Seconds to wait for each response
        connect_timeout (float, optional): Seconds to wait for the connection
        measure_latency (bool, optional): Also time a ping/pong round trip
        logger (optional): The logger to use

    Returns:
        StatusRecord: The status of the server

    Raises:
        PingError: One of its subclasses, depending on what went wrong
    """
    if logger is None:
        logger = logging.getLogger("mcping.connector")

    mc = await MCSocket(
        address, timeout=timeout, connect_timeout=connect_timeout, logger=logger
    )

    ok = pong_failed = False
    try:
        await mc.handshake_status(
            version_id=protocol_version,
            next_state=next_state,
            server_address=server_address,
            server_port=server_port,
        )
        status = await mc.status_request()

        if measure_latency:
            try:
                status.latency = await mc.ping_request()
            except PingError as err:
                # the status is already decoded, only the latency is lost
                logger.warning(f"Ping to {mc} failed, no latency: {err.__class__.__name__}: {err}")
                pong_failed = True
        ok = True
    finally:
        if not ok:
            mc.stage = Stages.FAILED
        # a failed close must not hide the error that got us here
        await mc.close(quiet=pong_failed or not ok)

    mc.stage = Stages.COMPLETE
    return status


def ping(address: str, **kwargs) -> StatusRecord:
    """Blocking version of ``async_ping``, takes the same arguments

    Runs its own event loop with ``asyncio.run``, so it can't be called from a
    coroutine or anything else running inside an event loop. Await
    ``async_ping`` there instead, it raises RuntimeError otherwise.
    """
    return asyncio.run(async_ping(address, **kwargs))
