#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package zmote_ir discovers ZMote infrared blasters on a local network and sends
infrared codes through them.

A ZMote is a small WiFi device that transmits raw IR codes on request. Devices answer a
UDP multicast discovery request (and periodically announce themselves) with a tagged
text record that includes their uuid and the base URL of their HTTP interface. Codes are
sent with a simple text-over-HTTP protocol.

The main entry points are:

  DiscoveryRegistry   finds devices and tracks which ones are online
  TransmitService     registers device configurations and sends codes, by raw code or by
                      button name looked up in a remote configuration file
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort

from .exceptions import (
    ErrorKind,
    ZMoteError,
    ConfigurationError,
    CommunicationError,
    DeviceBusyError,
  )

from .constants import (
    ZMOTE_MULTICAST_ADDRESS,
    ZMOTE_REQUEST_PORT,
    ZMOTE_RESPONSE_PORT,
    DEFAULT_RECEIVE_TIMEOUT,
    DEFAULT_SCAN_TIMEOUT,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_STALENESS,
    DEFAULT_TIMEOUT,
    DEFAULT_RETRY_COUNT,
  )
from .models import (
    DeviceDescriptor,
    PresenceEntry,
    IRCode,
    IRCodeState,
    ButtonEntry,
    RemoteDocument,
  )
from .config import ZMoteConfig
from .remote_config import RemoteConfigFile
from .code_cache import CodeCache
from .announcement import ZMoteAnnouncement, parse_announcement
from .discovery_socket import DiscoverySocket, DatagramSubscriber, create_multicast_socket
from .discovery import DiscoveryRegistry, DiscoveryListener
from .device_client import DeviceClient, SendirOutcome, classify_sendir_response
from .service import TransmitService

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort',
    'ErrorKind', 'ZMoteError', 'ConfigurationError', 'CommunicationError', 'DeviceBusyError',
    'ZMOTE_MULTICAST_ADDRESS', 'ZMOTE_REQUEST_PORT', 'ZMOTE_RESPONSE_PORT',
    'DEFAULT_RECEIVE_TIMEOUT', 'DEFAULT_SCAN_TIMEOUT', 'DEFAULT_DISCOVERY_INTERVAL', 'DEFAULT_STALENESS',
    'DEFAULT_TIMEOUT', 'DEFAULT_RETRY_COUNT',
    'DeviceDescriptor', 'PresenceEntry', 'IRCode', 'IRCodeState', 'ButtonEntry', 'RemoteDocument',
    'ZMoteConfig',
    'RemoteConfigFile',
    'CodeCache',
    'ZMoteAnnouncement', 'parse_announcement',
    'DiscoverySocket', 'DatagramSubscriber', 'create_multicast_socket',
    'DiscoveryRegistry', 'DiscoveryListener',
    'DeviceClient', 'SendirOutcome', 'classify_sendir_response',
    'TransmitService',
]
