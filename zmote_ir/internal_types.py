#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, Set, Tuple, Type, TypeVar, Callable, Awaitable,
    Mapping, MutableMapping, Iterable, Iterator, Sequence,
    AsyncIterator, AsyncIterable, AsyncContextManager,
    TYPE_CHECKING,
  )
from types import TracebackType
from typing_extensions import Self

Jsonable = Union[Dict[str, 'Jsonable'], List['Jsonable'], str, int, float, bool, None]
"""A type hint for a simple JSON-serializable value"""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a simple JSON-serializable dict"""

HostAndPort = Tuple[str, int]
"""A type hint for an (ip_address, port) socket address"""

Clock = Callable[[], float]
"""A monotonic clock returning seconds, e.g. time.monotonic"""
