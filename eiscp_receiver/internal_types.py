# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Set, Tuple, Union, Optional, Any, Type,
    Callable, Awaitable, Coroutine,
    Iterable, Iterator, AsyncIterable, AsyncIterator,
    Mapping, MutableMapping, Sequence,
    AsyncContextManager, ContextManager,
    TYPE_CHECKING, cast,
  )
from types import TracebackType
from typing_extensions import TypeAlias

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type hint for a JSON-serializable value."""

JsonableDict: TypeAlias = Dict[str, Jsonable]
"""A type hint for a JSON-serializable dictionary."""

HostAndPort: TypeAlias = Tuple[str, int]
"""A (host, port) socket address."""
