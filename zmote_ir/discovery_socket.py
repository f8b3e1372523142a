#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoverySocket -- an asyncio wrapper around the single UDP socket used for one discovery cycle.

  1. Wraps a bound datagram socket (created by a socket factory) in an asyncio datagram endpoint
  2. Delivers received datagrams to any number of async subscribers
  3. Sends the discovery request to the multicast group

  The subscriber interface is a simple async iterator that returns a sequence of (HostAndPort, bytes)
  tuples until the socket is closed.

  A DiscoverySocket is used for exactly one cycle: it is started, used, and closed. Closing it
  ends the stream for every subscriber, which unblocks any task waiting for a datagram.
"""

from __future__ import annotations

import asyncio
from asyncio import Future
import socket
import sys
from ipaddress import IPv4Address

from .internal_types import *
from .pkg_logging import logger
from .exceptions import CommunicationError
from .util import get_multicast_bind_addresses

MAX_QUEUE_SIZE = 1000

class _DiscoverySocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and DiscoverySocket."""

    discovery_socket: DiscoverySocket

    def __init__(self, discovery_socket: DiscoverySocket):
        self.discovery_socket = discovery_socket

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport
        self.discovery_socket.connection_made(transport) # type: ignore[arg-type]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.discovery_socket.datagram_received(addr, data)

    def error_received(self, exc: Exception) -> None:
        self.discovery_socket.error_received(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.discovery_socket.connection_lost(exc)

class DatagramSubscriber(
        AsyncContextManager['DatagramSubscriber'],
        AsyncIterable[Tuple[HostAndPort, bytes]]
      ):
    """Receives the datagrams delivered to a DiscoverySocket, in arrival order."""

    discovery_socket: DiscoverySocket
    queue: asyncio.Queue[Optional[Tuple[HostAndPort, bytes]]]
    eos: bool = False

    def __init__(self, discovery_socket: DiscoverySocket, max_queue_size: int=MAX_QUEUE_SIZE):
        self.discovery_socket = discovery_socket
        self.queue = asyncio.Queue(max_queue_size)

    async def __aenter__(self) -> Self:
        self.discovery_socket.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.discovery_socket.remove_subscriber(self)
        self.on_end_of_stream()
        return False

    async def receive(self) -> Optional[Tuple[HostAndPort, bytes]]:
        """Waits for the next datagram. Returns None once the socket has been closed and
           all queued datagrams have been consumed."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        self.queue.task_done()
        if result is None:
            self.eos = True
        return result

    async def iter_datagrams(self) -> AsyncIterator[Tuple[HostAndPort, bytes]]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[Tuple[HostAndPort, bytes]]:
        return self.iter_datagrams()

    def on_datagram(self, addr: HostAndPort, data: bytes) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait((addr, data))
            except asyncio.QueueFull:
                logger.warning(f"Queue full, dropping datagram from {addr}: {data!r}")

    def on_end_of_stream(self) -> None:
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

class DiscoverySocket(AsyncContextManager['DiscoverySocket']):
    """
    An async wrapper around one bound UDP socket.

    Usage:
        async with DiscoverySocket(sock) as discovery_socket:
            async with discovery_socket.subscribe() as subscriber:
                discovery_socket.sendto(b"SENDAMXB", (group, port))
                async for addr, data in subscriber:
                    ...
    """

    sock: Optional[socket.socket]
    """The low-level socket. Set to None once it has been closed."""

    sockname: str
    """The name of the socket as it should be displayed in logs, etc"""

    transport: Optional[asyncio.DatagramTransport] = None

    final_result: Future[None]
    """A future that is set when the socket has been closed."""

    closed: bool = False

    subscribers: Set[DatagramSubscriber]

    def __init__(self, sock: socket.socket):
        self.sock = sock
        try:
            self.sockname = str(sock.getsockname())
        except OSError:
            self.sockname = "<unbound>"
        self.final_result = asyncio.get_running_loop().create_future()
        self.subscribers = set()

    def subscribe(self, max_queue_size: int=MAX_QUEUE_SIZE) -> DatagramSubscriber:
        return DatagramSubscriber(self, max_queue_size=max_queue_size)

    def add_subscriber(self, subscriber: DatagramSubscriber) -> None:
        if self.closed:
            subscriber.on_end_of_stream()
        self.subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: DatagramSubscriber) -> None:
        self.subscribers.discard(subscriber)

    async def start(self) -> None:
        if self.sock is None:
            raise CommunicationError(f"Discovery socket {self.sockname} has already been closed")
        loop = asyncio.get_running_loop()
        try:
            sock = self.sock
            sock.setblocking(False)
            await loop.create_datagram_endpoint(lambda: _DiscoverySocketProtocol(self), sock=sock)
        except BaseException:
            self.close()
            raise
        logger.debug(f"Created datagram endpoint for {self}")

    def sendto(self, data: bytes, addr: HostAndPort) -> None:
        if self.transport is None:
            raise CommunicationError(f"Cannot send on {self}: the socket is not open")
        logger.debug(f"Sending datagram via {self} to {addr}: {data!r}")
        self.transport.sendto(data, addr)

    def close(self) -> None:
        """Closes the socket and ends the stream for all subscribers. Idempotent."""
        if self.closed:
            return
        self.closed = True
        logger.debug(f"Closing {self}")
        if self.transport is not None:
            try:
                self.transport.close()
            except BaseException as e:
                logger.warning(f"Error closing transport on {self}: {e}")
        else:
            if self.sock is not None:
                try:
                    self.sock.close()
                except BaseException as e:
                    logger.warning(f"Error closing socket on {self}: {e}")
                self.sock = None
            self._set_final_result()
        self._end_all_streams()

    async def wait_for_done(self) -> None:
        await self.final_result

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.transport = transport
        logger.debug(f"Connection made: {self}")

    def datagram_received(self, addr: HostAndPort, data: bytes) -> None:
        logger.debug(f"Received datagram on {self} from {addr}: {data!r}")
        for subscriber in list(self.subscribers):
            try:
                subscriber.on_datagram(addr, data)
            except Exception as e:
                logger.warning(f"Subscriber raised exception processing datagram from {addr}: {e}")

    def error_received(self, exc: Exception) -> None:
        """Called when a send or receive operation raises an OSError. A single failed datagram
           does not end a discovery cycle, so this is only logged."""
        logger.info(f"Error received from transport {self}: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {self}, exc={exc}")
        self.closed = True
        self.transport = None
        self.sock = None
        self._end_all_streams()
        self._set_final_result()

    def _end_all_streams(self) -> None:
        for subscriber in list(self.subscribers):
            subscriber.on_end_of_stream()

    def _set_final_result(self) -> None:
        if not self.final_result.done():
            self.final_result.set_result(None)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        await self.wait_for_done()
        return False

    def __str__(self) -> str:
        return f"DiscoverySocket({self.sockname})"

    def __repr__(self) -> str:
        return str(self)

def create_multicast_socket(
        multicast_address: str,
        port: int,
        bind_addresses: Optional[Iterable[str]]=None,
      ) -> socket.socket:
    """Creates a UDP socket bound to ('', port) that has joined the multicast group on each
       of the given local IPv4 addresses (by default, every non-loopback local IPv4 address).
       If the group cannot be joined on any specific interface, it is joined on INADDR_ANY.

       If multicast_address is not a multicast address, no group is joined."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if sys.platform not in ( 'win32', 'cygwin' ):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        # Multicast listeners MUST bind to 0.0.0.0:<port> to receive multicast packets
        sock.bind(('', port))
        if IPv4Address(multicast_address).is_multicast:
            group_bin = socket.inet_aton(multicast_address)
            if bind_addresses is None:
                bind_addresses = get_multicast_bind_addresses()
            n_joined = 0
            for bind_address in bind_addresses:
                mreq = group_bin + socket.inet_aton(bind_address)
                logger.debug(f"Joining multicast group {multicast_address} on {bind_address}")
                try:
                    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
                    n_joined += 1
                except OSError as e:
                    logger.warning(f"Unable to join multicast group {multicast_address} on {bind_address}: {e}")
            if n_joined == 0:
                logger.debug(f"Joining multicast group {multicast_address} on INADDR_ANY")
                mreq = group_bin + socket.inet_aton('0.0.0.0')
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
    except BaseException:
        sock.close()
        raise
    return sock
