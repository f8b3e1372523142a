#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
TransmitService -- the front door for sending IR codes.

Many logical device configurations may be registered at once. The service multiplexes them
over one DeviceClient per physical device (keyed by uuid) and one CodeCache per remote
configuration file (keyed by absolute path). Clients and caches are created on first
registration and disposed when the last configuration that refers to them is unregistered.

Sending is done with bounded retries: a busy device is retried up to the configuration's
retry count, while any other failure aborts the call.
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .pkg_logging import logger
from .exceptions import ZMoteError, ErrorKind, ConfigurationError, CommunicationError
from .config import ZMoteConfig
from .models import IRCode
from .code_cache import CodeCache
from .remote_config import RemoteConfigFile
from .device_client import DeviceClient

ConfigIdentity = Tuple[Optional[str], Optional[str], Optional[str]]

ClientFactory = Callable[..., DeviceClient]
"""Called as client_factory(uuid, url, timeout=timeout_seconds)."""

CacheFactory = Callable[[str], CodeCache]
"""Called with the absolute path of a remote configuration file."""

def default_cache_factory(path: str) -> CodeCache:
    return CodeCache(RemoteConfigFile(path))

class _ClientEntry:
    client: DeviceClient
    referents: Set[ConfigIdentity]

    def __init__(self, client: DeviceClient):
        self.client = client
        self.referents = set()

class _CacheEntry:
    cache: CodeCache
    referents: Set[ConfigIdentity]

    def __init__(self, cache: CodeCache):
        self.cache = cache
        self.referents = set()

class TransmitService(AsyncContextManager['TransmitService']):
    client_factory: ClientFactory
    cache_factory: CacheFactory

    _clients: Dict[str, _ClientEntry]
    """uuid -> client entry"""

    _caches: Dict[str, _CacheEntry]
    """absolute config file path -> cache entry"""

    _lock: asyncio.Lock
    _started: bool = False

    def __init__(
            self,
            client_factory: Optional[ClientFactory]=None,
            cache_factory: Optional[CacheFactory]=None,
          ) -> None:
        self.client_factory = DeviceClient if client_factory is None else client_factory
        self.cache_factory = default_cache_factory if cache_factory is None else cache_factory
        self._clients = {}
        self._caches = {}
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._started

    def get_client(self, uuid: Optional[str]) -> Optional[DeviceClient]:
        entry = None if uuid is None else self._clients.get(uuid.strip())
        return None if entry is None else entry.client

    def get_cache(self, config_file: Optional[str]) -> Optional[CodeCache]:
        path = ZMoteConfig(config_file=config_file).config_path
        entry = None if path is None else self._caches.get(path)
        return None if entry is None else entry.cache

    async def start(self) -> None:
        self._started = True
        logger.debug("TransmitService started")

    async def stop(self) -> None:
        """Disposes every client and forgets every cache. Never raises."""
        async with self._lock:
            clients = [ entry.client for entry in self._clients.values() ]
            self._clients.clear()
            self._caches.clear()
            for client in clients:
                await self._dispose_client(client)
        self._started = False
        logger.debug("TransmitService stopped")

    async def _dispose_client(self, client: DeviceClient) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error disposing client {client}: {e}")

    async def register_configuration(self, config: ZMoteConfig) -> None:
        """Registers a device configuration, creating (or reusing) the client for its device and
           the cache for its remote configuration file.

           Idempotent. If the device's URL has changed, the old client is disposed and replaced.

           Raises ConfigurationError if the uuid or url is missing, or if the remote
           configuration file cannot be loaded.
        """
        config.validate(require_url=True)
        identity = config.identity
        uuid = identity[0]
        url = config.url
        assert uuid is not None and url is not None
        async with self._lock:
            new_cache_path: Optional[str] = None
            cache_entry: Optional[_CacheEntry] = None
            path = config.config_path
            if path is not None:
                cache_entry = self._caches.get(path)
                if cache_entry is None:
                    try:
                        cache = self.cache_factory(path)
                    except ConfigurationError:
                        raise
                    except Exception as e:
                        raise ConfigurationError(f"Unable to load configuration file '{path}' for device {uuid}: {e}") from e
                    cache_entry = _CacheEntry(cache)
                    self._caches[path] = cache_entry
                    new_cache_path = path

            old_entry = self._clients.get(uuid)
            client_entry = old_entry
            if old_entry is None or old_entry.client.url != url.rstrip('/'):
                try:
                    client = self.client_factory(uuid, url, timeout=config.timeout_seconds)
                except Exception as e:
                    if new_cache_path is not None:
                        self._caches.pop(new_cache_path, None)
                    raise ConfigurationError(f"Unable to create client for device {uuid} at {url}: {e}") from e
                client_entry = _ClientEntry(client)
                self._clients[uuid] = client_entry
                logger.info(f"Created client for device {uuid} at {url}")
                if old_entry is not None:
                    # The replacement inherits every registration of the old client
                    logger.info(f"URL of device {uuid} changed from {old_entry.client.url} to {url}; replacing client")
                    client_entry.referents.update(old_entry.referents)
                    await self._dispose_client(old_entry.client)

            client_entry.referents.add(identity)
            if cache_entry is not None:
                cache_entry.referents.add(identity)
        logger.debug(f"Registered {config}")

    async def unregister_configuration(self, config: ZMoteConfig) -> None:
        """Removes a configuration's references. Clients and caches that are no longer referenced
           are disposed. Never raises; unknown configurations are ignored."""
        try:
            identity = config.identity
            uuid = identity[0]
            path = identity[2]
            async with self._lock:
                if uuid is not None:
                    client_entry = self._clients.get(uuid)
                    if client_entry is not None:
                        client_entry.referents.discard(identity)
                        if len(client_entry.referents) == 0:
                            del self._clients[uuid]
                            logger.info(f"Disposing client for device {uuid}")
                            await self._dispose_client(client_entry.client)
                if path is not None:
                    cache_entry = self._caches.get(path)
                    if cache_entry is not None:
                        cache_entry.referents.discard(identity)
                        if len(cache_entry.referents) == 0:
                            del self._caches[path]
                            logger.debug(f"Dropped code cache for '{path}'")
            logger.debug(f"Unregistered {config}")
        except Exception as e:
            logger.warning(f"Error unregistering {config}: {e}")

    async def send_code(
            self,
            config: ZMoteConfig,
            code: str,
            repeat: int=1,
            toggle_code: Optional[str]=None,
          ) -> bool:
        """Sends a raw IR code (and optional toggle code) repeat times.

           Returns True if every repetition was delivered. Raises ConfigurationError if the
           configuration is incomplete or not registered, and CommunicationError if the code
           could not be delivered within the retry budget.
        """
        code = code.strip() if code is not None else ''
        if code == '':
            raise ConfigurationError(f"An IR code is required to send to device {config.uuid}")
        ir_code = IRCode(code, toggle_code.strip() if toggle_code is not None else None)
        return await self._transmit(config, ir_code, repeat)

    async def send_key(self, config: ZMoteConfig, button: str, repeat: int=1) -> bool:
        """Resolves a button name through the configuration's remote file and sends its code.

           Returns False (and logs) if the remote has no such button. Otherwise behaves like send_code().
        """
        config.validate(require_config_file=True)
        path = config.config_path
        assert path is not None
        cache_entry = self._caches.get(path)
        if cache_entry is None:
            raise ConfigurationError(f"Configuration file '{path}' has not been registered for device {config.uuid}")
        ir_code = cache_entry.cache.get_code(button)
        if ir_code is None:
            logger.warning(f"Button '{button}' is not defined in '{path}'; nothing sent to device {config.uuid}")
            return False
        return await self._transmit(config, ir_code, repeat)

    async def _transmit(self, config: ZMoteConfig, ir_code: IRCode, repeat: int) -> bool:
        if repeat < 1:
            raise ConfigurationError(f"Repeat count must be at least 1, got {repeat}")
        config.validate(require_url=True)
        uuid = config.identity[0]
        assert uuid is not None
        client_entry = self._clients.get(uuid)
        if client_entry is None:
            raise ConfigurationError(f"Device {uuid} has not been registered")
        client = client_entry.client
        n_attempts = config.retry_count + 1
        for i in range(repeat):
            for attempt in range(1, n_attempts + 1):
                try:
                    await client.sendir(ir_code.next_code(), config.timeout_seconds)
                    break
                except ZMoteError as e:
                    if e.kind != ErrorKind.BUSY:
                        raise CommunicationError(
                            f"Failed to send IR code to device {uuid} (retry count {config.retry_count}): {e}"
                          ) from e
                    logger.warning(f"Device {uuid} is busy (attempt {attempt} of {n_attempts})")
            else:
                raise CommunicationError(
                    f"Device {uuid} was still busy after {n_attempts} attempts (retry count {config.retry_count})"
                  )
        return True

    async def check_online(self, config: ZMoteConfig) -> bool:
        """Returns True if the configuration's device answers its uuid query."""
        config.validate(require_url=True)
        uuid = config.identity[0]
        assert uuid is not None
        client_entry = self._clients.get(uuid)
        if client_entry is None:
            raise ConfigurationError(f"Device {uuid} has not been registered")
        try:
            await client_entry.client.check(config.timeout_seconds)
        except CommunicationError as e:
            logger.info(f"Device {uuid} is offline: {e}")
            return False
        return True

    async def __aenter__(self) -> TransmitService:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.stop()
        return False
