#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
CodeCache -- resolves button keys to persistent IRCode instances, backed by a RemoteConfigFile.
"""

from __future__ import annotations

from types import MappingProxyType

from .internal_types import *
from .pkg_logging import logger
from .models import IRCode, RemoteDocument
from .remote_config import RemoteConfigFile
from .util import trim_to_none

def normalize_button_key(button: Optional[str]) -> Optional[str]:
    """Returns the lookup key for a button name (trimmed and lower-cased), or None if blank."""
    key = trim_to_none(button)
    return None if key is None else key.lower()

class CodeCache:
    """
    A cache of the buttons in one remote configuration file.

    Every lookup first checks whether the file has been modified. Unmodified files are
    never re-parsed. A modified file is re-read completely and the mapping is replaced,
    never merged. If the re-read fails, ConfigurationError is raised and the previous
    mapping is kept in memory; since the watcher forgets its timestamp on failure, every
    subsequent lookup re-reads the file and raises again until the file is fixed.

    Each button's code pair is wrapped in a single IRCode that is handed out on every
    lookup, so that toggle codes alternate across presses.
    """

    watcher: RemoteConfigFile
    _codes: Dict[str, IRCode]

    def __init__(self, watcher: RemoteConfigFile):
        self.watcher = watcher
        self._codes = {}
        self._update_cache()

    @property
    def path(self) -> str:
        return self.watcher.path

    @property
    def codes(self) -> Mapping[str, IRCode]:
        """A read-only view of the current button key -> IRCode mapping."""
        return MappingProxyType(self._codes)

    def get_code(self, button: Optional[str]) -> Optional[IRCode]:
        """Returns the IRCode for a button key, or None if the remote has no such button.

        The key is matched case-insensitively, ignoring surrounding whitespace.

        Raises ConfigurationError if the configuration file has changed and can no longer be parsed.
        """
        key = normalize_button_key(button)
        if key is None:
            logger.warning(f"Ignoring lookup of blank button name in {self.watcher}")
            return None
        self._update_cache()
        return self._codes.get(key)

    def reload(self) -> None:
        """Re-reads the configuration file even if it has not been modified."""
        self._install(self.watcher.read())

    def _update_cache(self) -> bool:
        if not self.watcher.is_modified():
            return False
        self._install(self.watcher.read())
        return True

    def _install(self, document: RemoteDocument) -> None:
        codes: Dict[str, IRCode] = {}
        for button in document.buttons:
            key = normalize_button_key(button.key)
            code = trim_to_none(button.code)
            if key is None or code is None:
                logger.warning(f"Skipping invalid button '{button.key}' with code '{button.code}' in {self.watcher}")
                continue
            codes[key] = IRCode(code, trim_to_none(button.tcode))
        if len(codes) == 0:
            logger.warning(f"Configuration file '{self.path}' does not contain any valid buttons")
        self._codes = codes
        logger.debug(f"Loaded {len(codes)} buttons from '{self.path}'")

    def __len__(self) -> int:
        return len(self._codes)

    def __str__(self) -> str:
        return f"CodeCache('{self.path}', {len(self._codes)} buttons)"

    def __repr__(self) -> str:
        return str(self)
