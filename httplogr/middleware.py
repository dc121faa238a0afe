"""WSGI middleware that writes one structured log record per request."""

from __future__ import annotations

import io
import logging
import time
import traceback
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from httplogr.context import ERROR_KEY, Attr, collect_attrs, get_attrs
from httplogr.curl import request_scheme, request_url
from httplogr.options import DEFAULT_OPTIONS, Options

EXTRA_KEY = "http_attrs"
"""Name of the log record attribute that holds the request's ``Attr`` list."""


class ClientAbortedError(Exception):
    """The client went away before the response was sent."""

    def __init__(self) -> None:
        super().__init__(
            "request aborted: client disconnected before response was sent"
        )


def append_attrs(attrs: list[Attr], *args: Attr) -> list[Attr]:
    """Append the attributes that have a key; keyless ones are dropped."""
    attrs.extend(attr for attr in args if attr.key)
    return attrs


def group_attrs(attrs: Iterable[Attr], delimiter: str) -> list[Attr]:
    """Nest ``prefix<delimiter>key`` attributes into groups named ``prefix``."""
    result: list[Attr] = []
    nested: dict[str, list[Attr]] = {}
    for attr in attrs:
        prefix, found, key = attr.key.partition(delimiter)
        if not found:
            result.append(attr)
            continue
        nested.setdefault(prefix, []).append(Attr(key, attr.value))
    result.extend(Attr(prefix, tuple(items)) for prefix, items in nested.items())
    return result


def header_attrs(
    headers: Iterable[tuple[str, str]], names: Sequence[str]
) -> list[Attr]:
    """Return attributes for the named headers that are present.

    A header with one value gives a string; with several, a list.
    """
    pairs = list(headers)
    attrs = []
    for name in names:
        wanted = name.lower()
        values = [value for key, value in pairs if key.lower() == wanted]
        if len(values) == 1:
            attrs.append(Attr(name, values[0]))
        elif values:
            attrs.append(Attr(name, values))
    return attrs


def log_body(body: bytes, content_type: str, options: Options) -> str:
    """Return the body as it should appear in the log."""
    if not body:
        return ""
    if any(content_type.startswith(allowed) for allowed in options.log_body_content_types):
        max_len = options.log_body_max_len
        if max_len <= 0 or max_len >= len(body):
            return body.decode("utf-8", "replace")
        return body[:max_len].decode("utf-8", "replace") + "... [trimmed]"
    return f"[body redacted for Content-Type: {content_type}]"


def level_for_status(status: int, method: str) -> int:
    """Return the log level for a response status and request method."""
    if status >= 500:
        return logging.ERROR
    if status == 429:
        return logging.INFO
    if status >= 400:
        return logging.WARNING
    if method == "OPTIONS":
        return logging.DEBUG
    return logging.INFO


def _environ_headers(environ: Mapping[str, Any]) -> Iterator[tuple[str, str]]:
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            raw = key[5:]
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            raw = key
        else:
            continue
        if value in (None, ""):
            continue
        yield "-".join(part.capitalize() for part in raw.split("_")), str(value)


def _format_duration(seconds: float) -> str:
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


def _content_length(environ: Mapping[str, Any]) -> int:
    try:
        return int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        return 0


class _TeeInput:
    """Wraps ``wsgi.input`` and keeps a copy of everything read."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self.buffer = bytearray()

    def _keep(self, data: bytes) -> bytes:
        self.buffer.extend(data)
        return data

    def read(self, size: int = -1) -> bytes:
        return self._keep(self._stream.read(size) if size is not None and size >= 0 else self._stream.read())

    def readline(self, size: int = -1) -> bytes:
        return self._keep(self._stream.readline(size) if size is not None and size >= 0 else self._stream.readline())

    def readlines(self, hint: int = -1) -> list[bytes]:
        return [self._keep(line) for line in self._stream.readlines(hint)]

    def __iter__(self) -> Iterator[bytes]:
        while True:
            line = self.readline()
            if not line:
                return
            yield line


@dataclass
class _Response:
    status: int = 0
    headers: list[tuple[str, str]] = field(default_factory=list)
    bytes_written: int = 0
    body: bytearray = field(default_factory=bytearray)


class RequestLogger:
    """WSGI middleware that logs every request through ``logger``.

    Each record carries its attributes as a list of :class:`Attr` in the
    record attribute named by :data:`EXTRA_KEY`.
    """

    def __init__(
        self,
        app: Callable[..., Iterable[bytes]],
        logger: logging.Logger,
        options: Optional[Options] = None,
    ) -> None:
        self._app = app
        self._logger = logger
        self._options = (options if options is not None else DEFAULT_OPTIONS).with_defaults()

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> list[bytes]:
        opts = self._options
        with collect_attrs():
            log_req = bool(opts.log_request_body and opts.log_request_body(environ))
            log_resp = bool(opts.log_response_body and opts.log_response_body(environ))

            tee: Optional[_TeeInput] = None
            if log_req or opts.log_extra_attrs is not None:
                tee = _TeeInput(environ.get("wsgi.input") or io.BytesIO())
                environ["wsgi.input"] = tee

            state = _Response()

            def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Callable[[bytes], Any]:
                state.status = int(status.split(None, 1)[0])
                state.headers = list(headers)
                write = start_response(status, headers, exc_info)

                def _write(data: bytes) -> Any:
                    state.bytes_written += len(data)
                    if log_resp:
                        state.body.extend(data)
                    return write(data)

                return _write

            chunks: list[bytes] = []
            error: Optional[Exception] = None
            start = time.monotonic()
            try:
                result = self._app(environ, _start)
                try:
                    for chunk in result:
                        if chunk:
                            chunks.append(chunk)
                            state.bytes_written += len(chunk)
                            if log_resp:
                                state.body.extend(chunk)
                finally:
                    close = getattr(result, "close", None)
                    if close is not None:
                        close()
            except Exception as exc:  # a failing handler is logged like any request
                error = exc

            if error is not None and opts.recover_panics and state.status == 0:
                if environ.get("HTTP_CONNECTION") != "Upgrade":
                    _start(
                        "500 Internal Server Error",
                        [("Content-Type", "text/plain; charset=utf-8")],
                        (type(error), error, error.__traceback__),
                    )

            self._log(environ, state, tee, log_req, log_resp, error, time.monotonic() - start)

        if error is not None and not opts.recover_panics:
            raise error
        return chunks

    def _log(
        self,
        environ: Mapping[str, Any],
        state: _Response,
        tee: Optional[_TeeInput],
        log_req: bool,
        log_resp: bool,
        error: Optional[Exception],
        elapsed: float,
    ) -> None:
        opts = self._options
        schema = opts.schema
        assert schema is not None
        attrs: list[Attr] = []

        if error is not None:
            append_attrs(attrs, Attr(schema.error_message, f"panic: {error}"))
            stack = [f"{frame.filename}:{frame.lineno}" for frame in traceback.extract_tb(error.__traceback__)]
            append_attrs(attrs, Attr(schema.error_stack_trace, stack))

        status = state.status or 200
        method = str(environ.get("REQUEST_METHOD", "GET"))

        if opts.skip is not None and opts.skip(environ, status):
            return

        level = level_for_status(status, method)
        if not self._logger.isEnabledFor(level) or level < opts.level:
            return

        path = str(environ.get("SCRIPT_NAME", "")) + str(environ.get("PATH_INFO", ""))
        query = environ.get("QUERY_STRING")
        target = f"{path}?{query}" if query else path

        append_attrs(
            attrs,
            Attr(schema.request_url, request_url(environ)),
            Attr(schema.request_method, method),
            Attr(schema.request_path, path),
            Attr(schema.request_remote_ip, str(environ.get("REMOTE_ADDR", ""))),
            Attr(schema.request_host, str(environ.get("HTTP_HOST") or environ.get("SERVER_NAME", ""))),
            Attr(schema.request_scheme, request_scheme(environ)),
            Attr(schema.request_proto, str(environ.get("SERVER_PROTOCOL", ""))),
            Attr(schema.request_headers, tuple(header_attrs(_environ_headers(environ), opts.log_request_headers))),
            Attr(schema.request_bytes, _content_length(environ)),
            Attr(schema.request_user_agent, str(environ.get("HTTP_USER_AGENT", ""))),
            Attr(schema.request_referer, str(environ.get("HTTP_REFERER", ""))),
            Attr(schema.response_headers, tuple(header_attrs(state.headers, opts.log_response_headers))),
            Attr(schema.response_status, status),
            Attr(schema.response_duration, float(int(elapsed * 1000))),
            Attr(schema.response_bytes, state.bytes_written),
        )

        if isinstance(error, ConnectionError):
            append_attrs(attrs, Attr(ERROR_KEY, ClientAbortedError()), Attr(schema.error_type, "ClientAborted"))

        if tee is not None:
            remaining = _content_length(environ) - len(tee.buffer)
            unread = len(tee.read(remaining)) if remaining > 0 else 0
            if unread > 0:
                append_attrs(attrs, Attr(schema.request_bytes_unread, unread))
        req_body = bytes(tee.buffer) if tee is not None else b""

        if log_req:
            append_attrs(attrs, Attr(schema.request_body, log_body(req_body, str(environ.get("CONTENT_TYPE", "")), opts)))
        if log_resp:
            content_type = next((v for k, v in state.headers if k.lower() == "content-type"), "")
            append_attrs(attrs, Attr(schema.response_body, log_body(bytes(state.body), content_type, opts)))
        if opts.log_extra_attrs is not None:
            extra = opts.log_extra_attrs(environ, req_body.decode("utf-8", "replace"), status)
            append_attrs(attrs, *(extra or ()))
        append_attrs(attrs, *get_attrs())

        if schema.group_delimiter:
            attrs = group_attrs(attrs, schema.group_delimiter)

        message = f"{method} {target} => HTTP {status} ({_format_duration(elapsed)})"
        self._logger.log(level, message, extra={EXTRA_KEY: attrs})