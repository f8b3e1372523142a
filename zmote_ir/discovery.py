#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryRegistry -- finds ZMote devices on the local network and tracks their presence.

  1. Sends a discovery request (SENDAMXB) to the ZMote multicast group
  2. Receives and decodes announcements, both answers and unsolicited broadcasts
  3. Maintains a presence map of uuid -> most recent announcement, with lazy expiry
  4. Notifies registered listeners of discovered devices and of cycle start/finish

Two modes are supported. An active scan (start_scan()) sends one request, listens until the
network goes quiet, and evicts devices that did not answer. Background discovery
(start_background_discovery()) repeats request/listen cycles until stopped and relies on
lazy expiry alone. At most one cycle runs at a time.
"""

from __future__ import annotations

import asyncio
import socket
import time

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    ZMOTE_MULTICAST_ADDRESS,
    ZMOTE_REQUEST_PORT,
    ZMOTE_RESPONSE_PORT,
    DISCOVERY_REQUEST,
    DEFAULT_RECEIVE_TIMEOUT,
    DEFAULT_SCAN_TIMEOUT,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_STALENESS,
  )
from .exceptions import CommunicationError
from .models import DeviceDescriptor, PresenceEntry
from .announcement import parse_announcement
from .discovery_socket import DiscoverySocket, create_multicast_socket

class DiscoveryListener:
    """Base class for objects that wish to be notified of discovery events. All methods are
       called synchronously on the event loop and default to doing nothing."""

    def device_discovered(self, device: DeviceDescriptor) -> None:
        pass

    def discovery_started(self) -> None:
        pass

    def discovery_finished(self) -> None:
        pass

SocketFactory = Callable[['DiscoveryRegistry'], socket.socket]
"""Creates the bound socket used for one discovery cycle."""

def default_socket_factory(registry: DiscoveryRegistry) -> socket.socket:
    return create_multicast_socket(
        registry.multicast_address,
        registry.response_port,
        bind_addresses=registry.bind_addresses,
      )

class DiscoveryRegistry(AsyncContextManager['DiscoveryRegistry']):
    multicast_address: str = ZMOTE_MULTICAST_ADDRESS
    """The address discovery requests are sent to."""

    request_port: int = ZMOTE_REQUEST_PORT
    """The port discovery requests are sent to."""

    response_port: int = ZMOTE_RESPONSE_PORT
    """The local port on which announcements are received."""

    receive_timeout: float
    """An active scan ends after this many seconds without an announcement."""

    scan_timeout: float
    """An active scan never lasts longer than this many seconds."""

    staleness: float
    """A device that has not been announced for this many seconds is considered offline."""

    clock: Clock
    """Returns the current time in seconds. Used only for presence timestamps."""

    socket_factory: SocketFactory

    bind_addresses: Optional[List[str]]
    """The local IPv4 addresses on which to join the multicast group. If None, all
       non-loopback local addresses are used."""

    _presence: Dict[str, PresenceEntry]
    _listeners: List[DiscoveryListener]
    _cycle_lock: asyncio.Lock
    _socket: Optional[DiscoverySocket] = None
    _cycle_seen: Optional[Set[str]] = None
    _cycle_interrupted: bool = False
    _background_task: Optional[asyncio.Task[None]] = None

    def __init__(
            self,
            multicast_address: str=ZMOTE_MULTICAST_ADDRESS,
            request_port: int=ZMOTE_REQUEST_PORT,
            response_port: int=ZMOTE_RESPONSE_PORT,
            receive_timeout: float=DEFAULT_RECEIVE_TIMEOUT,
            scan_timeout: float=DEFAULT_SCAN_TIMEOUT,
            staleness: float=DEFAULT_STALENESS,
            clock: Optional[Clock]=None,
            socket_factory: Optional[SocketFactory]=None,
            bind_addresses: Optional[Iterable[str]]=None,
          ) -> None:
        self.multicast_address = multicast_address
        self.request_port = request_port
        self.response_port = response_port
        self.receive_timeout = receive_timeout
        self.scan_timeout = scan_timeout
        self.staleness = staleness
        self.clock = time.monotonic if clock is None else clock
        self.socket_factory = default_socket_factory if socket_factory is None else socket_factory
        self.bind_addresses = None if bind_addresses is None else list(bind_addresses)
        self._presence = {}
        self._listeners = []
        self._cycle_lock = asyncio.Lock()

    # ---- listeners ----

    def add_listener(self, listener: DiscoveryListener) -> None:
        if not listener in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DiscoveryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception as e:
                logger.warning(f"Discovery listener {listener!r} raised exception in {event}: {e}")

    # ---- presence ----

    def handle_datagram(self, data: bytes, addr: Optional[HostAndPort]=None) -> Optional[DeviceDescriptor]:
        """Processes one received datagram. If it is a ZMote announcement, inserts or refreshes
           the device's presence entry, notifies listeners, and returns the device. Otherwise
           returns None."""
        try:
            device = parse_announcement(data)
        except Exception as e:
            logger.debug(f"Error parsing datagram from {addr}, raw=[{data!r}]: {e}")
            return None
        if device is None:
            return None
        now = self.clock()
        entry = self._presence.get(device.uuid)
        if entry is None:
            logger.info(f"Discovered device {device} from {addr}")
            self._presence[device.uuid] = PresenceEntry(device, now)
        else:
            if entry.device != device:
                logger.info(f"Device {device.uuid} changed: {entry.device} -> {device}")
            entry.device = device
            entry.last_seen = now
        if self._cycle_seen is not None:
            self._cycle_seen.add(device.uuid)
        self._notify('device_discovered', device)
        return device

    def _get_fresh_entry(self, uuid: Optional[str]) -> Optional[PresenceEntry]:
        if uuid is None or uuid == '':
            return None
        entry = self._presence.get(uuid)
        if entry is None:
            return None
        now = self.clock()
        if entry.is_stale(now, self.staleness):
            logger.debug(f"Device {uuid} has not been seen for {entry.age(now):.1f} seconds; evicting")
            self._presence.pop(uuid, None)
            return None
        return entry

    def is_online(self, uuid: Optional[str]) -> bool:
        """Returns True if the device has been announced within the staleness window."""
        return self._get_fresh_entry(uuid) is not None

    def get_device(self, uuid: Optional[str]) -> Optional[DeviceDescriptor]:
        entry = self._get_fresh_entry(uuid)
        return None if entry is None else entry.device

    @property
    def devices(self) -> List[DeviceDescriptor]:
        """A snapshot of all devices that are currently considered online."""
        result: List[DeviceDescriptor] = []
        for uuid in list(self._presence.keys()):
            device = self.get_device(uuid)
            if device is not None:
                result.append(device)
        return result

    # ---- discovery cycles ----

    @property
    def is_running(self) -> bool:
        """True if a discovery cycle currently owns the socket."""
        return self._cycle_lock.locked()

    async def start_scan(self) -> bool:
        """Performs one active scan. Returns False without doing anything if a discovery
           cycle is already running, else True once the scan has finished.

           Devices that were present before the scan and did not answer it are evicted.

           Raises CommunicationError if the discovery socket cannot be opened.
        """
        if self._cycle_lock.locked():
            logger.debug("Discovery is already running; ignoring scan request")
            return False
        async with self._cycle_lock:
            await self._run_cycle(self.receive_timeout, self.scan_timeout, evict=True)
        return True

    async def start_discovery(self) -> bool:
        """Synonym for start_scan()."""
        return await self.start_scan()

    def start_background_discovery(self, interval: float=DEFAULT_DISCOVERY_INTERVAL) -> bool:
        """Starts a background task that repeatedly sends a discovery request and listens for
           interval seconds. Returns False if the background task is already running.
           Must be called from a running event loop."""
        if self._background_task is not None and not self._background_task.done():
            return False
        self._background_task = asyncio.create_task(self._run_background_task(interval))
        return True

    async def _run_background_task(self, interval: float) -> None:
        logger.debug(f"Background discovery task starting, cycling every {interval} seconds")
        try:
            while True:
                try:
                    async with self._cycle_lock:
                        await self._run_cycle(None, interval, evict=False)
                except CommunicationError as e:
                    logger.warning(f"Background discovery cycle failed: {e}")
                    await asyncio.sleep(interval)
                else:
                    # Let a pending scan request see the lock free before the next cycle
                    await asyncio.sleep(0)
        except asyncio.CancelledError:
            logger.debug("Background discovery task cancelled; exiting")
            raise

    async def _run_cycle(self, silence_timeout: Optional[float], max_time: float, evict: bool) -> None:
        loop = asyncio.get_running_loop()
        self._cycle_interrupted = False
        self._cycle_seen = set()
        present_before = set(self._presence.keys())
        logger.info(f"Starting discovery on {self.multicast_address}:{self.request_port}")
        self._notify('discovery_started')
        try:
            try:
                sock = self.socket_factory(self)
                discovery_socket = DiscoverySocket(sock)
            except OSError as e:
                raise CommunicationError(f"Unable to open discovery socket on port {self.response_port}: {e}") from e
            self._socket = discovery_socket
            try:
                async with discovery_socket:
                    async with discovery_socket.subscribe() as subscriber:
                        discovery_socket.sendto(DISCOVERY_REQUEST, (self.multicast_address, self.request_port))
                        end_time = loop.time() + max_time
                        while True:
                            remaining_time = end_time - loop.time()
                            if remaining_time <= 0.0:
                                logger.debug("Discovery time limit reached")
                                break
                            wait_time = remaining_time if silence_timeout is None else min(remaining_time, silence_timeout)
                            try:
                                result = await asyncio.wait_for(subscriber.receive(), wait_time)
                            except asyncio.TimeoutError:
                                break
                            if result is None:
                                break
                            addr, data = result
                            self.handle_datagram(data, addr)
            except OSError as e:
                raise CommunicationError(f"Discovery failed on {discovery_socket}: {e}") from e
            finally:
                self._socket = None
            if evict and not self._cycle_interrupted:
                for uuid in present_before - self._cycle_seen:
                    logger.info(f"Device {uuid} did not answer the scan; evicting")
                    self._presence.pop(uuid, None)
        finally:
            self._cycle_seen = None
            logger.info("Discovery finished")
            self._notify('discovery_finished')

    async def stop_discovery(self) -> None:
        """Stops background discovery and interrupts any cycle in progress. Idempotent."""
        task = self._background_task
        self._background_task = None
        if task is not None and not task.done():
            task.cancel()
        discovery_socket = self._socket
        if discovery_socket is not None:
            self._cycle_interrupted = True
            discovery_socket.close()
        if task is not None:
            for result in await asyncio.gather(task, return_exceptions=True):
                if isinstance(result, Exception):
                    logger.warning(f"Exception while cancelling background discovery task: {result}")

    async def stop(self) -> None:
        await self.stop_discovery()

    async def __aenter__(self) -> DiscoveryRegistry:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.stop()
        return False

    def __str__(self) -> str:
        return f"DiscoveryRegistry({self.multicast_address}:{self.request_port}, {len(self._presence)} devices)"

    def __repr__(self) -> str:
        return str(self)
