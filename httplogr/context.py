"""Per-request log attributes carried in a context variable."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

ERROR_KEY = "error"


@dataclass(frozen=True)
class Attr:
    """A single key/value log attribute.

    A value that is a tuple of ``Attr`` is a group; a group with an empty
    key is meant to be inlined into its parent.
    """

    key: str
    value: Any


_request_attrs: ContextVar[list[Attr] | None] = ContextVar(
    "httplogr_request_attrs", default=None
)


def set_attrs(*args: Attr) -> None:
    """Add attributes to the log entry of the request being handled.

    Outside of :func:`collect_attrs` this does nothing.
    """
    collected = _request_attrs.get()
    if collected is not None:
        collected.extend(args)


def get_attrs() -> list[Attr]:
    """Return the attributes collected so far for the current request."""
    collected = _request_attrs.get()
    return list(collected) if collected is not None else []


def set_error(err: BaseException | None) -> BaseException | None:
    """Record ``err`` as the error attribute of the request log and return it."""
    if err is not None:
        set_attrs(Attr(ERROR_KEY, err))
    return err


@contextmanager
def collect_attrs() -> Iterator[list[Attr]]:
    """Start collecting request attributes; yields the list they go into."""
    collected: list[Attr] = []
    token = _request_attrs.set(collected)
    try:
        yield collected
    finally:
        _request_attrs.reset(token)