#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of a ZMote discovery announcement.

A ZMote answers a SENDAMXB request (and periodically announces itself unsolicited) with a
single UDP datagram of ASCII text containing bracketed tags, e.g.:

    AMXB<-UUID=5ccf7f0fdeadbeef><-SDKClass=Utility><-Make=zmote.io><-Model=ZV-2>
        <-Revision=2.1.4><-Config-Name=ZMOTE><-Config-URL=http://192.168.1.20><-Type=ZMT2>

Tags may appear in any order and tag names are matched case-insensitively.
"""

from __future__ import annotations

from requests.structures import CaseInsensitiveDict

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    ANNOUNCEMENT_PREFIX,
    ZMOTE_MAKE,
    ZMOTE_TYPE,
    TAG_MAKE,
    TAG_MODEL,
    TAG_REVISION,
    TAG_TYPE,
    TAG_URL,
    TAG_UUID,
  )
from .models import DeviceDescriptor
from .util import parse_tags, encode_tags, trim_to_none

class ZMoteAnnouncement:
    """Wrapper for a raw discovery announcement.

    Provides a case-insensitive dict-like view of the tags, typed accessors for the tags
    that identify a ZMote, and conversion to a DeviceDescriptor.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _text: str
    """The datagram decoded as text. Undecodable bytes are replaced."""

    _tags: CaseInsensitiveDict[str]
    """The parsed tags"""

    def __init__(self, raw_data: Optional[bytes]=None, tags: Optional[Mapping[str, str]]=None):
        if raw_data is None:
            if tags is None:
                raise ValueError("Either raw_data or tags must be provided")
            raw_data = encode_tags(tags, prefix=ANNOUNCEMENT_PREFIX).encode('utf-8')
        elif tags is not None:
            raise ValueError("If raw_data is provided, tags must be None")
        assert isinstance(raw_data, bytes)
        self._raw_data = raw_data
        self._text = raw_data.decode('utf-8', errors='replace')
        self._tags = parse_tags(self._text)

    @property
    def raw_data(self) -> bytes:
        return self._raw_data

    @property
    def text(self) -> str:
        return self._text

    @property
    def tags(self) -> CaseInsensitiveDict[str]:
        """The tags as a CaseInsensitiveDict[str]. The returned dict is a copy."""
        return self._tags.copy()

    def get_tag(self, name: str) -> Optional[str]:
        """Returns the value of a tag with surrounding whitespace stripped, or None if it is absent or empty."""
        return trim_to_none(self._tags.get(name))

    @property
    def has_prefix(self) -> bool:
        """True if the announcement begins with the conventional "AMXB" marker. Not required for acceptance."""
        return self._text.lstrip().startswith(ANNOUNCEMENT_PREFIX)

    @property
    def make(self) -> Optional[str]:
        return self.get_tag(TAG_MAKE)

    @property
    def type(self) -> Optional[str]:
        return self.get_tag(TAG_TYPE)

    @property
    def model(self) -> Optional[str]:
        return self.get_tag(TAG_MODEL)

    @property
    def revision(self) -> Optional[str]:
        return self.get_tag(TAG_REVISION)

    @property
    def uuid(self) -> Optional[str]:
        return self.get_tag(TAG_UUID)

    @property
    def url(self) -> Optional[str]:
        return self.get_tag(TAG_URL)

    def rejection_reason(self) -> Optional[str]:
        """Returns a description of why this announcement does not describe a ZMote, or None if it does."""
        make = self.make
        if make is None or make.lower() != ZMOTE_MAKE.lower():
            return f"make is {make!r}, not {ZMOTE_MAKE!r}"
        type = self.type
        if type is None or type.lower() != ZMOTE_TYPE.lower():
            return f"type is {type!r}, not {ZMOTE_TYPE!r}"
        if self.uuid is None:
            return "missing UUID"
        url = self.url
        if url is None or not url.lower().startswith('http'):
            return f"config URL {url!r} is not an http URL"
        return None

    @property
    def is_zmote(self) -> bool:
        return self.rejection_reason() is None

    def to_device(self) -> DeviceDescriptor:
        """Converts the announcement to a DeviceDescriptor.

        Raises ValueError if the announcement does not describe a ZMote.
        """
        reason = self.rejection_reason()
        if reason is not None:
            raise ValueError(f"Not a ZMote announcement ({reason}): {self}")
        make = self.make
        type = self.type
        uuid = self.uuid
        url = self.url
        assert make is not None and type is not None and uuid is not None and url is not None
        return DeviceDescriptor(
            make=make,
            type=type,
            model=self.model,
            revision=self.revision,
            uuid=uuid,
            url=url.rstrip('/'),
          )

    def __str__(self) -> str:
        return f"ZMoteAnnouncement({dict(self._tags.items())})"

    def __repr__(self) -> str:
        return str(self)

def parse_announcement(data: bytes) -> Optional[DeviceDescriptor]:
    """Parses a raw datagram into a DeviceDescriptor.

    Returns None (and logs at debug level) if the datagram is not a ZMote announcement.
    """
    announcement = ZMoteAnnouncement(raw_data=data)
    reason = announcement.rejection_reason()
    if reason is not None:
        logger.debug(f"Ignoring announcement ({reason}): raw=[{data!r}]")
        return None
    return announcement.to_device()
