import io
import logging
from wsgiref.util import setup_testing_defaults

import pytest

from httplogr.context import Attr, set_attrs
from httplogr.middleware import (
    EXTRA_KEY,
    RequestLogger,
    append_attrs,
    group_attrs,
    header_attrs,
    level_for_status,
    log_body,
)
from httplogr.options import DEFAULT_OPTIONS, Options
from httplogr.schema import SCHEMA_ECS, SCHEMA_GCP


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def capture():
    logger = logging.getLogger("httplogr.test.middleware")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _ListHandler()
    logger.handlers = [handler]
    return logger, handler


def make_environ(method="GET", path="/", body=b"", **extra):
    env = {}
    setup_testing_defaults(env)
    env.update(REQUEST_METHOD=method, PATH_INFO=path, CONTENT_LENGTH=str(len(body)))
    env["wsgi.input"] = io.BytesIO(body)
    env.update(extra)
    return env


def call(app, environ):
    seen = {}

    def start_response(status, headers, exc_info=None):
        seen["status"] = status
        seen["headers"] = headers
        return lambda data: None

    body = b"".join(app(environ, start_response))
    return seen, body


def attrs_of(record):
    return {a.key: a.value for a in getattr(record, EXTRA_KEY)}


def ok_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"hello"]


@pytest.mark.parametrize(
    "status,method,level",
    [
        (500, "GET", logging.ERROR),
        (429, "GET", logging.INFO),
        (404, "GET", logging.WARNING),
        (200, "OPTIONS", logging.DEBUG),
        (200, "GET", logging.INFO),
    ],
)
def test_level_for_status(status, method, level):
    assert level_for_status(status, method) == level


def test_append_attrs_drops_empty_keys():
    assert append_attrs([], Attr("a", 1), Attr("", 2)) == [Attr("a", 1)]


def test_group_attrs_nests_by_prefix():
    result = group_attrs([Attr("x", 1), Attr("g:a", 2), Attr("g:b", 3)], ":")
    assert result == [Attr("x", 1), Attr("g", (Attr("a", 2), Attr("b", 3)))]


def test_header_attrs_single_multiple_missing():
    headers = [("Origin", "o"), ("Accept", "a"), ("accept", "b")]
    result = header_attrs(headers, ["Origin", "Accept", "Missing"])
    assert result == [Attr("Origin", "o"), Attr("Accept", ["a", "b"])]


def test_logs_successful_request(capture):
    logger, handler = capture
    seen, body = call(RequestLogger(ok_app, logger, None), make_environ(path="/hi", HTTP_ORIGIN="o"))
    assert body == b"hello"
    assert seen["status"] == "200 OK"
    (record,) = handler.records
    assert record.levelno == logging.INFO
    assert record.getMessage().startswith("GET /hi => HTTP 200")
    attrs = attrs_of(record)
    assert attrs[SCHEMA_ECS.response_status] == 200
    assert attrs[SCHEMA_ECS.request_path] == "/hi"
    assert attrs[SCHEMA_ECS.response_bytes] == len(b"hello")
    assert Attr("Origin", "o") in attrs[SCHEMA_ECS.request_headers]


def test_context_attrs_are_added(capture):
    logger, handler = capture

    def app(environ, start_response):
        set_attrs(Attr("user", "user1"))
        return ok_app(environ, start_response)

    seen, body = call(RequestLogger(app, logger, None), make_environ())
    assert seen["status"] == "200 OK"
    assert body == b"hello"
    assert attrs_of(handler.records[0])["user"] == "user1"


def test_exception_is_recovered_as_500(capture):
    logger, handler = capture

    def app(environ, start_response):
        raise RuntimeError("oh no")

    seen, _ = call(RequestLogger(app, logger, None), make_environ())
    assert seen["status"].startswith("500")
    attrs = attrs_of(handler.records[0])
    assert attrs[SCHEMA_ECS.error_message] == "panic: oh no"
    assert handler.records[0].levelno == logging.ERROR


def test_exception_reraised_without_recovery(capture):
    logger, handler = capture

    def app(environ, start_response):
        raise ValueError("boom")

    with pytest.raises(ValueError):
        call(RequestLogger(app, logger, Options()), make_environ())
    assert len(handler.records) == 1


def test_skip_and_level_filtering(capture):
    logger, handler = capture
    seen_skip, body_skip = call(
        RequestLogger(ok_app, logger, Options(skip=lambda env, status: status == 200)),
        make_environ(),
    )
    seen_level, body_level = call(
        RequestLogger(ok_app, logger, Options(level=logging.WARNING)), make_environ()
    )
    assert seen_skip["status"] == "200 OK"
    assert body_skip == b"hello"
    assert seen_level["status"] == "200 OK"
    assert body_level == b"hello"
    assert handler.records == []


def test_request_body_logged_and_unread_counted(capture):
    logger, handler = capture
    opts = Options(log_request_body=lambda env: True)
    env = make_environ("POST", "/p", b'{"a":1}', CONTENT_TYPE="application/json")
    seen, body = call(RequestLogger(ok_app, logger, opts), env)
    assert seen["status"] == "200 OK"
    assert body == b"hello"
    attrs = attrs_of(handler.records[0])
    assert attrs[SCHEMA_ECS.request_body] == '{"a":1}'
    assert attrs[SCHEMA_ECS.request_bytes_unread] == len(b'{"a":1}')


def test_group_delimiter_nests_output(capture):
    logger, handler = capture
    seen, body = call(RequestLogger(ok_app, logger, Options(schema=SCHEMA_GCP)), make_environ())
    assert seen["status"] == "200 OK"
    assert body == b"hello"
    attrs = attrs_of(handler.records[0])
    nested = {a.key: a.value for a in attrs["httpRequest"]}
    assert nested["status"] == 200