#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from enum import Enum

class ErrorKind(Enum):
  """The category of a ZMoteError. Retry logic matches on this rather than on exception classes."""
  CONFIGURATION = "configuration"
  """A required setting is missing or invalid. Fatal to the call; never retried."""

  COMMUNICATION = "communication"
  """Transport failure, malformed response, or exhausted retry budget."""

  BUSY = "busy"
  """The device is still processing another transmission. Always retried internally."""

class ZMoteError(Exception):
  """Base class for all error exceptions defined by this package."""
  kind: ErrorKind = ErrorKind.COMMUNICATION

class ConfigurationError(ZMoteError):
  """A device configuration or remote configuration file is missing or invalid."""
  kind = ErrorKind.CONFIGURATION

class CommunicationError(ZMoteError):
  """Communication with a device failed."""
  kind = ErrorKind.COMMUNICATION

class DeviceBusyError(CommunicationError):
  """The device reported that it is busy. Transient; callers of the transmit service never see it."""
  kind = ErrorKind.BUSY
