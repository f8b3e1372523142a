#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
RemoteConfigFile -- watches a remote configuration file and parses it into a RemoteDocument.

The file is a JSON document of the form:

    {
      "brand": "Acme",
      "model": "TV-1000",
      "name": "Living room TV",
      "keys": [
        { "key": "power", "name": "Power", "code": "38000,1,1,...", "tcode": "38000,1,1,..." },
        ...
      ]
    }

The file is never modified by this package.
"""

from __future__ import annotations

import os
import json

from .internal_types import *
from .pkg_logging import logger
from .exceptions import ConfigurationError
from .models import RemoteDocument

class RemoteConfigFile:
    path: str
    """The absolute pathname of the configuration file"""

    last_modified: Optional[int] = None
    """The modification time (st_mtime_ns) recorded by the last successful read, or None
       if the file has not been read successfully since the last failure."""

    def __init__(self, path: str):
        if path is None or path.strip() == '':
            raise ConfigurationError("A configuration file path is required")
        self.path = os.path.abspath(os.path.expanduser(path.strip()))
        if not os.path.isfile(self.path) or not os.access(self.path, os.R_OK):
            raise ConfigurationError(f"Configuration file '{self.path}' does not exist or is not readable")

    def is_modified(self) -> bool:
        """Returns True if the file has changed since it was last read successfully.

        If access to the file is denied, logs the denial and returns False so that a
        previously parsed document stays in use. Other stat failures (e.g., the file
        was removed) return True so that the next read() reports the problem.
        """
        if self.last_modified is None:
            return True
        try:
            mtime = os.stat(self.path).st_mtime_ns
        except PermissionError as e:
            logger.error(f"Access to configuration file '{self.path}' has been denied: {e}")
            return False
        except OSError as e:
            logger.debug(f"Unable to stat configuration file '{self.path}': {e}")
            return True
        return mtime != self.last_modified

    def read(self) -> RemoteDocument:
        """Reads and parses the file.

        Raises ConfigurationError if the file cannot be read or does not contain a valid
        remote configuration. After a failure the recorded timestamp is cleared, so that
        is_modified() reports True until the file has been read successfully.
        """
        try:
            mtime = os.stat(self.path).st_mtime_ns
            with open(self.path, 'r', encoding='utf-8') as f:
                json_data = json.load(f)
            document = RemoteDocument.from_json_data(json_data)
        except Exception as e:
            self.last_modified = None
            msg = f"Configuration file '{self.path}' could not be read. Make sure it has the correct format and is readable: {e}"
            logger.error(msg)
            raise ConfigurationError(msg) from e
        # The timestamp taken before reading is recorded, so a write that lands during
        # the read is picked up by the next is_modified().
        self.last_modified = mtime
        logger.debug(f"Read {len(document.buttons)} buttons from configuration file '{self.path}'")
        return document

    def __str__(self) -> str:
        return f"RemoteConfigFile('{self.path}')"

    def __repr__(self) -> str:
        return str(self)
