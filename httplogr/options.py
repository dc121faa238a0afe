"""Configuration of the request logger."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Optional

from httplogr.context import Attr
from httplogr.schema import SCHEMA_ECS, Schema

Environ = Mapping[str, Any]

DEFAULT_BODY_CONTENT_TYPES: tuple[str, ...] = (
    "application/json",
    "application/xml",
    "text/plain",
    "text/csv",
    "application/x-www-form-urlencoded",
    "",
)
DEFAULT_BODY_MAX_LEN = 1024


@dataclass(frozen=True)
class Options:
    """Settings of the request logger.

    ``level`` is the minimum level of request logs: DEBUG logs every response
    including OPTIONS, INFO every response except OPTIONS, WARNING only 4xx
    and 5xx (except 429), ERROR only 5xx.

    ``log_body_max_len`` of 0 means the default; -1 logs the full body.
    """

    level: int = logging.INFO
    schema: Optional[Schema] = None
    recover_panics: bool = False
    skip: Optional[Callable[[Environ, int], bool]] = None
    log_request_headers: Sequence[str] = ()
    log_request_body: Optional[Callable[[Environ], bool]] = None
    log_response_headers: Sequence[str] = ()
    log_response_body: Optional[Callable[[Environ], bool]] = None
    log_body_content_types: Sequence[str] = ()
    log_body_max_len: int = 0
    log_extra_attrs: Optional[
        Callable[[Environ, str, int], Optional[Sequence[Attr]]]
    ] = None

    def with_defaults(self) -> Options:
        """Return a copy with unset body settings and schema filled in."""
        return replace(
            self,
            schema=self.schema if self.schema is not None else SCHEMA_ECS,
            log_body_content_types=tuple(self.log_body_content_types)
            or DEFAULT_BODY_CONTENT_TYPES,
            log_body_max_len=self.log_body_max_len or DEFAULT_BODY_MAX_LEN,
        )


DEFAULT_OPTIONS = Options(
    level=logging.INFO,
    schema=SCHEMA_ECS,
    recover_panics=True,
    log_request_headers=("Content-Type", "Origin"),
    log_response_headers=("Content-Type",),
    log_body_content_types=DEFAULT_BODY_CONTENT_TYPES,
    log_body_max_len=DEFAULT_BODY_MAX_LEN,
)