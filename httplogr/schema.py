"""Mapping of semantic log fields onto the names used by logging platforms."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from httplogr.context import ERROR_KEY, Attr

TIME_KEY = "time"
LEVEL_KEY = "level"
MESSAGE_KEY = "msg"
SOURCE_KEY = "source"

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    if moment.utcoffset() == timedelta(0):
        text = text[: -len("+00:00")] + "Z"
    return text


def _level_text(value: object) -> str:
    if isinstance(value, int):
        return logging.getLevelName(value)
    return str(value)


@dataclass(frozen=True)
class Schema:
    """Field names for one logging format; an empty name keeps the default."""

    timestamp: str = ""
    level: str = ""
    message: str = ""
    error_message: str = ""
    error_type: str = ""
    error_stack_trace: str = ""

    source_file: str = ""
    source_line: str = ""
    source_function: str = ""

    request_url: str = ""
    request_method: str = ""
    request_path: str = ""
    request_remote_ip: str = ""
    request_host: str = ""
    request_scheme: str = ""
    request_proto: str = ""
    request_headers: str = ""
    request_body: str = ""
    request_bytes: str = ""
    request_bytes_unread: str = ""
    request_user_agent: str = ""
    request_referer: str = ""

    response_headers: str = ""
    response_body: str = ""
    response_status: str = ""
    response_duration: str = ""
    response_bytes: str = ""

    group_delimiter: str = ""

    def replace_attr(self, groups: Sequence[str], attr: Attr) -> Attr | None:
        """Rename a standard top-level attribute to this schema's name.

        Returns ``None`` when the attribute should be dropped.
        """
        if groups:
            return attr

        key = attr.key
        if key == TIME_KEY:
            if not self.timestamp:
                return attr
            value = attr.value
            text = _rfc3339(value) if isinstance(value, datetime) else str(value)
            return Attr(self.timestamp, text)
        if key == LEVEL_KEY:
            if not self.level:
                return attr
            return Attr(self.level, _level_text(attr.value))
        if key == MESSAGE_KEY:
            if not self.message:
                return attr
            return Attr(self.message, str(attr.value))
        if key == SOURCE_KEY:
            return self._replace_source(attr)
        if key == ERROR_KEY:
            return Attr(self.error_message, attr.value)
        return attr

    def _replace_source(self, attr: Attr) -> Attr | None:
        source = attr.value
        try:
            file, line, function = source.file, source.line, source.function
        except AttributeError:
            return attr

        if not self.source_file:
            # The request logger's own frames carry no useful location.
            if os.path.abspath(str(file)).startswith(_PACKAGE_DIR + os.sep):
                return None
            return attr

        if not self.group_delimiter:
            return Attr(
                "",
                (
                    Attr(self.source_file, file),
                    Attr(self.source_line, line),
                    Attr(self.source_function, function),
                ),
            )

        group, _, file_key = self.source_file.partition(self.group_delimiter)
        _, _, line_key = self.source_line.partition(self.group_delimiter)
        _, _, function_key = self.source_function.partition(self.group_delimiter)
        return Attr(
            group,
            (
                Attr(file_key, file),
                Attr(line_key, line),
                Attr(function_key, function),
            ),
        )

    def concise(self, concise: bool) -> Schema:
        """Return a schema with only the essential fields when ``concise`` is true."""
        if not concise:
            return self
        return Schema(
            error_message=self.error_message,
            error_stack_trace=self.error_stack_trace,
            request_headers=self.request_headers,
            request_body=self.request_body,
            request_bytes_unread=self.request_bytes_unread,
            response_headers=self.response_headers,
            response_body=self.response_body,
            group_delimiter=self.group_delimiter,
        )


SCHEMA_ECS = Schema(
    timestamp="@timestamp",
    level="log.level",
    message="message",
    error_message="error.message",
    error_type="error.type",
    error_stack_trace="error.stack_trace",
    source_file="log.origin.file.name",
    source_line="log.origin.file.line",
    source_function="log.origin.function",
    request_url="url.full",
    request_method="http.request.method",
    request_path="url.path",
    request_remote_ip="client.ip",
    request_host="url.domain",
    request_scheme="url.scheme",
    request_proto="http.version",
    request_headers="http.request.headers",
    request_body="http.request.body.content",
    request_bytes="http.request.body.bytes",
    request_bytes_unread="http.request.body.unread.bytes",
    request_user_agent="user_agent.original",
    request_referer="http.request.referrer",
    response_headers="http.response.headers",
    response_body="http.response.body.content",
    response_status="http.response.status_code",
    response_duration="event.duration",
    response_bytes="http.response.body.bytes",
)

SCHEMA_OTEL = Schema(
    timestamp="timestamp",
    level="severity_text",
    message="body",
    error_message="error.message",
    error_type="error.type",
    error_stack_trace="exception.stacktrace",
    source_file="code.filepath",
    source_line="code.lineno",
    source_function="code.function",
    request_url="url.full",
    request_method="http.request.method",
    request_path="url.path",
    request_remote_ip="client.address",
    request_host="server.address",
    request_scheme="url.scheme",
    request_proto="network.protocol.version",
    request_headers="http.request.header",
    request_body="http.request.body.content",
    request_bytes="http.request.body.size",
    request_bytes_unread="http.request.body.unread.size",
    request_user_agent="user_agent.original",
    request_referer="http.request.header.referer",
    response_headers="http.response.header",
    response_body="http.response.body.content",
    response_status="http.response.status_code",
    response_duration="http.server.request.duration",
    response_bytes="http.response.body.size",
)

SCHEMA_GCP = Schema(
    timestamp="timestamp",
    level="severity",
    message="message",
    error_message="error:message",
    error_type="error:type",
    error_stack_trace="error:stack_trace",
    source_file="logging.googleapis.com/sourceLocation:file",
    source_line="logging.googleapis.com/sourceLocation:line",
    source_function="logging.googleapis.com/sourceLocation:function",
    request_url="httpRequest:requestUrl",
    request_method="httpRequest:requestMethod",
    request_path="httpRequest:requestPath",
    request_remote_ip="httpRequest:remoteIp",
    request_host="httpRequest:host",
    request_scheme="httpRequest:scheme",
    request_proto="httpRequest:protocol",
    request_headers="httpRequest:requestHeaders",
    request_body="httpRequest:requestBody",
    request_bytes="httpRequest:requestSize",
    request_bytes_unread="httpRequest:requestUnreadSize",
    request_user_agent="httpRequest:userAgent",
    request_referer="httpRequest:referer",
    response_headers="httpRequest:responseHeaders",
    response_body="httpRequest:responseBody",
    response_status="httpRequest:status",
    response_duration="httpRequest:latency",
    response_bytes="httpRequest:responseSize",
    group_delimiter=":",
)