import io
import json
import logging
from wsgiref.util import setup_testing_defaults

import pytest

from httplogr.example import create_app
from httplogr.middleware import EXTRA_KEY


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def setup():
    logger = logging.getLogger("httplogr.test.example")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _ListHandler()
    logger.handlers = [handler]
    return create_app(logger, False), handler


def request(app, method, path, body=b"", **extra):
    env = {}
    setup_testing_defaults(env)
    env.update(REQUEST_METHOD=method, PATH_INFO=path, CONTENT_LENGTH=str(len(body)))
    env["wsgi.input"] = io.BytesIO(body)
    env.update(extra)
    seen = {}

    def start_response(status, headers, exc_info=None):
        seen["status"] = status
        return lambda data: None

    out = b"".join(app(env, start_response))
    return int(seen["status"].split()[0]), out


def request_records(handler):
    return [r for r in handler.records if hasattr(r, EXTRA_KEY) and "=>" in r.getMessage()]


def attrs_of(record):
    return {a.key: a.value for a in getattr(record, EXTRA_KEY)}


def test_ping_is_not_logged(setup):
    app, handler = setup
    assert request(app, "GET", "/ping") == (200, b".")
    assert handler.records == []


def test_info_logs_user_attr(setup):
    app, handler = setup
    status, body = request(app, "GET", "/info")
    assert (status, body) == (200, b"info here \n")
    (record,) = request_records(handler)
    assert attrs_of(record)["user"] == "user1"


def test_upper_valid_payload(setup):
    app, _ = setup
    status, body = request(app, "POST", "/string/to/upper", b'{"data": "valid payload"}')
    assert status == 200
    assert json.loads(body) == {"data": "VALID PAYLOAD"}


def test_panic_returns_500(setup):
    app, handler = setup
    status, _ = request(app, "GET", "/panic")
    assert status == 500
    assert request_records(handler)[0].levelno == logging.ERROR


def test_not_found_is_skipped(setup):
    app, handler = setup
    status, _ = request(app, "GET", "/nope")
    assert status == 404
    assert request_records(handler) == []