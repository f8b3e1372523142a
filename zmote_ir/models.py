#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Data model shared by discovery, the code cache and the transmit service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .internal_types import *

@dataclass(frozen=True)
class DeviceDescriptor:
    """An immutable description of a device, as parsed from a discovery announcement.
       Identity is the uuid."""

    make: str
    """The manufacturer tag (e.g. "zmote.io")"""

    type: str
    """The device type tag (e.g. "ZMT2")"""

    model: Optional[str]
    """The model tag, if announced"""

    revision: Optional[str]
    """The firmware revision tag, if announced"""

    uuid: str
    """The device's unique id; used to address the device in HTTP requests"""

    url: str
    """The base URL of the device's HTTP interface"""

    def as_properties(self) -> Dict[str, Optional[str]]:
        """Returns the descriptor as a flat dict suitable for presenting a discovery result."""
        return {
            "uuid": self.uuid,
            "url": self.url,
            "make": self.make,
            "model": self.model,
            "revision": self.revision,
            "type": self.type,
          }

    def __str__(self) -> str:
        return f"{self.make} {self.type} {self.model} {self.revision} [{self.uuid}] @ {self.url}"

class PresenceEntry:
    """The most recent observation of a device. Owned by DiscoveryRegistry."""

    device: DeviceDescriptor

    last_seen: float
    """The clock time (in seconds) at which the device was last announced"""

    def __init__(self, device: DeviceDescriptor, last_seen: float):
        self.device = device
        self.last_seen = last_seen

    def age(self, now: float) -> float:
        return now - self.last_seen

    def is_stale(self, now: float, threshold: float) -> bool:
        return self.age(now) > threshold

    def __str__(self) -> str:
        return f"PresenceEntry({self.device.uuid}, last_seen={self.last_seen})"

    def __repr__(self) -> str:
        return str(self)

class IRCodeState(Enum):
    """Which code of a toggle pair will be returned next."""
    MAIN = 0
    ALTERNATE = 1

class IRCode:
    """
    A raw infrared code, optionally paired with an alternate "toggle" code.

    Some appliances only recognize a repeated press of the same button if the remote
    flips a toggle bit on every press. For such buttons the remote configuration provides
    two codes, and next_code() alternates between them: main, alternate, main, ...
    Without an alternate code next_code() always returns the main code.

    Toggling only persists across sends if the same instance is reused, which is why the
    code cache keeps exactly one IRCode per button.
    """

    code_main: str
    code_alternate: Optional[str]
    state: IRCodeState

    def __init__(self, code_main: str, code_alternate: Optional[str]=None):
        if code_main is None or code_main == '':
            raise ValueError("The main IR code cannot be empty")
        self.code_main = code_main
        self.code_alternate = code_alternate if code_alternate != '' else None
        self.state = IRCodeState.MAIN

    @property
    def is_toggle(self) -> bool:
        return self.code_alternate is not None

    def next_code(self) -> str:
        """Returns the code that should be sent now, and advances the toggle state."""
        if self.code_alternate is None:
            return self.code_main
        if self.state == IRCodeState.ALTERNATE:
            self.state = IRCodeState.MAIN
            return self.code_alternate
        self.state = IRCodeState.ALTERNATE
        return self.code_main

    def __str__(self) -> str:
        return f"IRCode(toggle={self.is_toggle}, state={self.state.name})"

    def __repr__(self) -> str:
        return str(self)

@dataclass(frozen=True)
class ButtonEntry:
    """A single entry of the "keys" list in a remote configuration file. Fields are as read;
       validation happens when the entry is loaded into a CodeCache."""
    key: Optional[str] = None
    name: Optional[str] = None
    code: Optional[str] = None
    tcode: Optional[str] = None

    @classmethod
    def from_json_data(cls, data: Any) -> ButtonEntry:
        if not isinstance(data, dict):
            return cls()
        def _str(name: str) -> Optional[str]:
            value = data.get(name)
            return value if isinstance(value, str) else None
        return cls(key=_str('key'), name=_str('name'), code=_str('code'), tcode=_str('tcode'))

@dataclass(frozen=True)
class RemoteDocument:
    """The parsed form of a remote configuration file."""
    brand: Optional[str] = None
    model: Optional[str] = None
    name: Optional[str] = None
    buttons: Tuple[ButtonEntry, ...] = field(default_factory=tuple)

    @classmethod
    def from_json_data(cls, data: Any) -> RemoteDocument:
        """Builds a RemoteDocument from parsed JSON.

        Raises ValueError if the document is not an object or if "keys" is present but not a list.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        keys = data.get('keys')
        if keys is None:
            keys = []
        if not isinstance(keys, list):
            raise ValueError(f"Expected \"keys\" to be a list, got {type(keys).__name__}")
        def _str(name: str) -> Optional[str]:
            value = data.get(name)
            return value if isinstance(value, str) else None
        return cls(
            brand=_str('brand'),
            model=_str('model'),
            name=_str('name'),
            buttons=tuple(ButtonEntry.from_json_data(k) for k in keys),
          )
