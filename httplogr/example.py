"""Example WSGI application using the request logger."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Optional
from wsgiref.simple_server import make_server

from httplogr.context import Attr, set_attrs, set_error
from httplogr.curl import curl
from httplogr.middleware import EXTRA_KEY, RequestLogger
from httplogr.options import Options
from httplogr.schema import SCHEMA_ECS, Schema

WsgiApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found", 405: "Method Not Allowed",
            422: "Unprocessable Entity", 500: "Internal Server Error"}


def _respond(start_response, status: int, body: bytes, content_type: str = "text/plain") -> list[bytes]:
    start_response(f"{status} {_REASONS[status]}", [("Content-Type", content_type)])
    return [body]


def _is_debug_header_set(environ: Mapping[str, Any]) -> bool:
    return environ.get("HTTP_DEBUG") == "reveal-body-logs"


def _extra_attrs(environ: Mapping[str, Any], req_body: str, status: int) -> Optional[list[Attr]]:
    if status in (400, 422):
        scrubbed = {k: v for k, v in environ.items() if k != "HTTP_AUTHORIZATION"}
        return [Attr("curl", curl(scrubbed, req_body))]
    return None


def _read_body(environ: Mapping[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    return environ["wsgi.input"].read(length) if length > 0 else b""


def _router(logger: logging.Logger) -> WsgiApp:
    def app(environ, start_response):
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "")

        if path == "/string/to/upper":
            if method != "POST":
                return _respond(start_response, 405, b"")
            try:
                payload = json.loads(_read_body(environ) or b"null")
                if not isinstance(payload, dict):
                    raise ValueError("expected a JSON object")
            except ValueError as exc:
                err = set_error(ValueError(f"invalid json: {exc}"))
                return _respond(start_response, 400, json.dumps({"error": str(err)}).encode(), "application/json")
            data = payload.get("data")
            if not isinstance(data, str) or not data:
                err = set_error(ValueError("data field is required"))
                return _respond(start_response, 422, json.dumps({"error": str(err)}).encode(), "application/json")
            out = json.dumps({"data": data.upper()}, separators=(",", ":")) + "\n"
            return _respond(start_response, 200, out.encode(), "application/json")

        routes = {"/slow", "/panic", "/info", "/warn", "/err"}
        if path not in routes:
            return _respond(start_response, 404, b"404 page not found\n")
        if method != "GET":
            return _respond(start_response, 405, b"")

        if path == "/slow":
            time.sleep(5)
            return _respond(start_response, 200, b"slow operation completed \n")
        if path == "/panic":
            raise RuntimeError("oh no")
        if path == "/info":
            logger.info("info here")
            return _respond(start_response, 200, b"info here \n")
        if path == "/warn":
            logger.warning("warn here")
            return _respond(start_response, 200, b"warn here \n")
        err = RuntimeError("err here")
        logger.error("msg here", extra={EXTRA_KEY: [Attr("error", str(err))]})
        set_error(err)
        return _respond(start_response, 500, json.dumps({"error": str(err)}).encode(), "application/json")

    return app


def create_app(logger: logging.Logger, is_localhost: bool) -> WsgiApp:
    """Build the example application with heartbeat, request logging and routes."""
    schema = SCHEMA_ECS.concise(is_localhost)
    router = _router(logger)

    def with_user(environ, start_response):
        set_attrs(Attr("user", "user1"))
        return router(environ, start_response)

    logged = RequestLogger(
        with_user,
        logger,
        Options(
            level=logging.INFO,
            schema=schema,
            recover_panics=True,
            skip=lambda environ, status: status in (404, 405),
            log_request_headers=("Origin",),
            log_response_headers=(),
            log_request_body=_is_debug_header_set,
            log_response_body=_is_debug_header_set,
            log_extra_attrs=_extra_attrs,
        ),
    )

    def app(environ, start_response):
        if environ.get("REQUEST_METHOD") in ("GET", "HEAD") and environ.get("PATH_INFO") == "/ping":
            start_response("200 OK", [("Content-Type", "text/plain")])
            return [b"."]
        return logged(environ, start_response)

    return app


def _plain(value: Any) -> Any:
    if isinstance(value, tuple) and all(isinstance(v, Attr) for v in value):
        return {a.key: _plain(a.value) for a in value}
    if isinstance(value, BaseException):
        return str(value)
    if isinstance(value, (str, int, float, bool, type(None), list)):
        return value
    return str(value)


class _JsonFormatter(logging.Formatter):
    def __init__(self, schema: Schema, extra: Sequence[Attr] = ()) -> None:
        super().__init__()
        self._schema = schema
        self._extra = list(extra)

    def format(self, record: logging.LogRecord) -> str:
        attrs = [
            Attr("time", datetime.fromtimestamp(record.created, timezone.utc)),
            Attr("level", record.levelno),
            Attr("msg", record.getMessage()),
            *self._extra,
            *getattr(record, EXTRA_KEY, []),
        ]
        out: dict[str, Any] = {}
        for attr in attrs:
            replaced = self._schema.replace_attr([], attr)
            if replaced is None:
                continue
            value = _plain(replaced.value)
            if not replaced.key and isinstance(value, dict):
                out.update(value)
            else:
                out[replaced.key] = value
        return json.dumps(out)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the example application on localhost:8000."""
    is_localhost = os.environ.get("ENV") == "localhost"
    schema = SCHEMA_ECS.concise(is_localhost)
    extra = [] if is_localhost else [
        Attr("app", "example-app"), Attr("version", "v1.0.0-a1fa420"), Attr("env", "production"),
    ]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter(schema, extra))
    logger = logging.getLogger("httplogr.example")
    logger.setLevel(logging.DEBUG)
    logger.handlers = [handler]
    logger.propagate = False

    app = create_app(logger, is_localhost)

    if not is_localhost:
        print("Enable pretty logs with:")
        print("  ENV=localhost python -m httplogr.example")
        print()
    print("Try these commands from a new terminal window:")
    for route in ("info", "warn", "err", "panic", "slow"):
        print(f"  curl -v http://localhost:8000/{route}")
    print("""  curl -v http://localhost:8000/string/to/upper -X POST --json '{"data": "valid payload"}'""")
    print("""  curl -v http://localhost:8000/string/to/upper -X POST --json '{"data": "valid payload"}' -H "Debug: reveal-body-logs\"""")
    print("""  curl -v http://localhost:8000/string/to/upper -X POST --json '{"xx": "invalid payload"}'""")
    print()

    with make_server("localhost", 8000, app) as server:
        server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())