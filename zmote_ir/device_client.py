#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DeviceClient -- talks to the HTTP interface of a single ZMote device.

  GET  {base}/uuid          -> "uuid,{uuid}"     (reachability check)
  POST {base}/v2/{uuid}     <- "sendir,1:1,0,{code}"
                            -> "completeir..." | "busyIR..." | "error..."
"""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_TIMEOUT,
    SENDIR_SUCCESS,
    SENDIR_BUSY,
    SENDIR_MODULE_SELECTOR,
  )
from .exceptions import CommunicationError, DeviceBusyError

class SendirOutcome(Enum):
    """The classification of a device's reply to a sendir request."""
    SUCCESS = "success"
    BUSY = "busy"
    ERROR = "error"

def classify_sendir_response(status_code: Optional[int], body: Optional[str]) -> SendirOutcome:
    """Classifies the reply to a sendir request. Only a 200 reply whose body begins with
       "completeir" counts as delivered; "busyIR" means the device is transmitting another
       code. Anything else, including an empty body, is an error."""
    if body is None:
        return SendirOutcome.ERROR
    text = body.strip().lower()
    if text == '':
        return SendirOutcome.ERROR
    if status_code is not None and status_code != 200:
        return SendirOutcome.ERROR
    if text.startswith(SENDIR_SUCCESS):
        return SendirOutcome.SUCCESS
    if text.startswith(SENDIR_BUSY):
        return SendirOutcome.BUSY
    return SendirOutcome.ERROR

def format_sendir_request(code: str) -> str:
    return f"sendir,{SENDIR_MODULE_SELECTOR},0,{code}"

class DeviceClient:
    uuid: str
    """The uuid of the device. Part of every sendir URL."""

    base_url: str
    """The base URL of the device's HTTP interface, without trailing slashes"""

    timeout: float
    """The default timeout for each request, in seconds"""

    _http_client: httpx.AsyncClient
    _owns_http_client: bool
    _lock: asyncio.Lock
    _closed: bool = False
    _released: bool = False

    def __init__(
            self,
            uuid: str,
            base_url: str,
            http_client: Optional[httpx.AsyncClient]=None,
            timeout: float=DEFAULT_TIMEOUT,
          ) -> None:
        self.uuid = uuid
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        if http_client is None:
            self._http_client = httpx.AsyncClient()
            self._owns_http_client = True
        else:
            self._http_client = http_client
            self._owns_http_client = False
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return self.base_url

    @property
    def closed(self) -> bool:
        return self._closed

    async def _request(self, method: str, url: str, timeout: Optional[float], content: Optional[str]=None) -> httpx.Response:
        if self._closed:
            raise CommunicationError(f"Client for device {self.uuid} has been closed")
        request_timeout = self.timeout if timeout is None else timeout
        headers = None if content is None else {"Content-Type": "text/plain"}
        async with self._lock:
            if self._released:
                raise CommunicationError(f"Client for device {self.uuid} has been closed")
            try:
                response = await self._http_client.request(
                    method,
                    url,
                    content=content,
                    headers=headers,
                    timeout=request_timeout,
                  )
            except httpx.TimeoutException as e:
                raise CommunicationError(f"Timed out after {request_timeout} seconds waiting for device {self.uuid} at {url}") from e
            except httpx.HTTPError as e:
                raise CommunicationError(f"Unable to communicate with device {self.uuid} at {url}: {e}") from e
        logger.debug(f"{method} {url} -> {response.status_code} {response.text!r}")
        return response

    async def check(self, timeout: Optional[float]=None) -> None:
        """Verifies that the device at base_url is reachable and is the expected device.

        Raises CommunicationError if the device does not answer, or answers with another uuid.
        """
        url = f"{self.base_url}/uuid"
        response = await self._request("GET", url, timeout)
        body = response.text.strip()
        if response.status_code != 200 or body == '':
            raise CommunicationError(f"Device {self.uuid} at {url} returned an invalid response: {response.status_code} {body!r}")
        if not body.lower().startswith(f"uuid,{self.uuid}".lower()):
            raise CommunicationError(f"Device at {url} is not {self.uuid}: {body!r}")

    async def sendir(self, code: str, timeout: Optional[float]=None) -> None:
        """Asks the device to transmit a raw IR code.

        Raises DeviceBusyError if the device is busy transmitting another code, and
        CommunicationError for any other failure.
        """
        url = f"{self.base_url}/v2/{self.uuid}"
        response = await self._request("POST", url, timeout, content=format_sendir_request(code))
        outcome = classify_sendir_response(response.status_code, response.text)
        if outcome == SendirOutcome.SUCCESS:
            return
        if outcome == SendirOutcome.BUSY:
            raise DeviceBusyError(f"Device {self.uuid} is busy")
        raise CommunicationError(f"Device {self.uuid} rejected IR code: {response.status_code} {response.text.strip()!r}")

    async def aclose(self) -> None:
        """Releases the client's connection pool. Idempotent. An injected HTTP client is left open.

        New requests are refused at once, but a request already in progress runs to completion
        (or its own timeout) before the pool is closed.
        """
        if self._closed:
            return
        self._closed = True
        # Waits for the request on the wire, if any
        async with self._lock:
            self._released = True
            if self._owns_http_client:
                await self._http_client.aclose()

    async def __aenter__(self) -> DeviceClient:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.aclose()
        return False

    def __str__(self) -> str:
        return f"DeviceClient({self.uuid} @ {self.base_url})"

    def __repr__(self) -> str:
        return str(self)
