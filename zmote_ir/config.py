#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Device configuration support.

A ZMoteConfig describes one logical device as the host application configured it: which
physical device (uuid) to talk to, where to reach it, which remote configuration file and
remote to resolve button names from, and how hard to try.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, replace

from .internal_types import *
from .constants import DEFAULT_RETRY_COUNT, DEFAULT_TIMEOUT
from .exceptions import ConfigurationError
from .util import trim_to_none

# JSON property name -> alternate accepted names
_PROPERTY_ALIASES: Dict[str, Tuple[str, ...]] = {
    'uuid': (),
    'url': ('override_url', 'overrideUrl'),
    'autoUrl': ('auto_url',),
    'configFile': ('config_file',),
    'remote': ('remote_name',),
    'retry': ('retry_count',),
    'timeout': ('timeout_seconds',),
}

@dataclass(frozen=True)
class ZMoteConfig:
    uuid: Optional[str] = None
    """The uuid of the physical device. Required for any registration."""

    override_url: Optional[str] = None
    """A URL configured explicitly by the user. Takes precedence over auto_url."""

    auto_url: Optional[str] = None
    """The URL learned from discovery."""

    config_file: Optional[str] = None
    """Path of the remote configuration file. Required to send by button name."""

    remote_name: Optional[str] = None
    """User-chosen name of the remote within the host application."""

    retry_count: int = DEFAULT_RETRY_COUNT
    """Number of additional attempts made while the device reports busy."""

    timeout_seconds: int = DEFAULT_TIMEOUT
    """HTTP timeout for each request to the device."""

    @property
    def url(self) -> Optional[str]:
        """The override URL if it is set, else the auto-discovered URL."""
        override_url = trim_to_none(self.override_url)
        if override_url is not None:
            return override_url
        return trim_to_none(self.auto_url)

    @property
    def config_path(self) -> Optional[str]:
        """The absolute path of the remote configuration file, or None if not configured."""
        config_file = trim_to_none(self.config_file)
        if config_file is None:
            return None
        return os.path.abspath(os.path.expanduser(config_file))

    @property
    def identity(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Identifies this configuration among those registered for the same device."""
        return (trim_to_none(self.uuid), trim_to_none(self.remote_name), self.config_path)

    def with_discovered_url(self, url: Optional[str]) -> ZMoteConfig:
        return replace(self, auto_url=url)

    def validate(
            self,
            require_url: bool=False,
            require_config_file: bool=False,
            require_remote: bool=False
          ) -> ZMoteConfig:
        """Raises ConfigurationError if a required setting is missing. The uuid is always required.
           Returns self so that calls can be chained."""
        if trim_to_none(self.uuid) is None:
            raise ConfigurationError(f"A device UUID is required: {self}")
        if require_url and self.url is None:
            raise ConfigurationError(f"A URL is required for device '{self.uuid}'")
        if require_config_file and self.config_path is None:
            raise ConfigurationError(f"A configuration file is required for device '{self.uuid}'")
        if require_remote and trim_to_none(self.remote_name) is None:
            raise ConfigurationError(f"A remote name is required for device '{self.uuid}'")
        if self.retry_count < 0:
            raise ConfigurationError(f"The retry count cannot be negative for device '{self.uuid}'")
        if self.timeout_seconds <= 0:
            raise ConfigurationError(f"The timeout must be positive for device '{self.uuid}'")
        return self

    @classmethod
    def from_json_data(cls, json_data: Mapping[str, Any]) -> ZMoteConfig:
        """Creates a ZMoteConfig from a JSON-like mapping. Accepts the property names
           uuid, url, autoUrl, configFile, remote, retry and timeout, as well as their
           snake_case equivalents.

           Raises ConfigurationError if a property has the wrong type."""
        if not isinstance(json_data, Mapping):
            raise ConfigurationError(f"ZMoteConfig: Expected config data to be a mapping, got {type(json_data).__name__}")
        return cls(
            uuid=_get_cfg_property_str(json_data, 'uuid'),
            override_url=_get_cfg_property_str(json_data, 'url'),
            auto_url=_get_cfg_property_str(json_data, 'autoUrl'),
            config_file=_get_cfg_property_str(json_data, 'configFile'),
            remote_name=_get_cfg_property_str(json_data, 'remote'),
            retry_count=_get_cfg_property_int(json_data, 'retry', DEFAULT_RETRY_COUNT),
            timeout_seconds=_get_cfg_property_int(json_data, 'timeout', DEFAULT_TIMEOUT),
          )

    @classmethod
    def loads(cls, config_text: str) -> ZMoteConfig:
        try:
            json_data = json.loads(config_text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"ZMoteConfig: Invalid JSON: {e}") from e
        return cls.from_json_data(json_data)

    @classmethod
    def load(cls, pathname: str) -> ZMoteConfig:
        """Loads a ZMoteConfig from a JSON file."""
        pathname = os.path.abspath(os.path.expanduser(pathname))
        try:
            with open(pathname, 'r', encoding='utf-8') as f:
                config_text = f.read()
        except OSError as e:
            raise ConfigurationError(f"ZMoteConfig: Unable to read config file '{pathname}': {e}") from e
        return cls.loads(config_text)

    def __str__(self) -> str:
        return (f"ZMoteConfig(uuid={self.uuid!r}, url={self.url!r}, config_file={self.config_file!r}, "
                f"remote={self.remote_name!r}, retry={self.retry_count}, timeout={self.timeout_seconds})")

def _get_cfg_property(json_data: Mapping[str, Any], key: str) -> Any:
    for name in (key,) + _PROPERTY_ALIASES.get(key, ()):
        if name in json_data:
            return json_data[name]
    return None

def _get_cfg_property_str(json_data: Mapping[str, Any], key: str) -> Optional[str]:
    result = _get_cfg_property(json_data, key)
    if result is None:
        return None
    if not isinstance(result, str):
        raise ConfigurationError(f"ZMoteConfig: Expected property {key} to be a string, got {type(result).__name__}")
    return trim_to_none(result)

def _get_cfg_property_int(json_data: Mapping[str, Any], key: str, default: int) -> int:
    result = _get_cfg_property(json_data, key)
    if result is None:
        return default
    # bool is a subclass of int, but never a sensible count
    if isinstance(result, bool):
        raise ConfigurationError(f"ZMoteConfig: Expected property {key} to be an integer, got bool")
    if isinstance(result, float) and result.is_integer():
        result = int(result)
    if isinstance(result, str):
        try:
            result = int(result.strip())
        except ValueError as e:
            raise ConfigurationError(f"ZMoteConfig: Property {key} is not an integer: {result!r}") from e
    if not isinstance(result, int):
        raise ConfigurationError(f"ZMoteConfig: Expected property {key} to be an integer, got {type(result).__name__}")
    return result
