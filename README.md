# httplogr

Structured request logging for WSGI applications, built on the standard
`logging` module. It has no dependencies outside the standard library.

Wrap a WSGI application in `RequestLogger` and every request produces one
log record. The record carries the method, URL, path, client address, host,
scheme, protocol, selected headers, request size, user agent, referer,
status code, duration in milliseconds and response size. Field names come
from a `Schema`, so the same application can emit fields named for Elastic
(ECS), OpenTelemetry or Google Cloud Logging.

## Installation

```
pip install httplogr
```

## Usage

```python
import logging

from httplogr.middleware import RequestLogger
from httplogr.options import Options

logger = logging.getLogger("app")

def app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"hello\n"]

application = RequestLogger(app, logger, Options())
```

Passing `None` as the options uses `httplogr.options.DEFAULT_OPTIONS`: ECS
field names, recovery from exceptions, the `Content-Type` and `Origin`
request headers and the `Content-Type` response header.

The record's message has the form `GET /path?query => HTTP 200 (1.234ms)`.
Its attributes are a list of `httplogr.context.Attr` (a frozen `key`/`value`
pair) stored on the record under the name given by
`httplogr.middleware.EXTRA_KEY` (`"http_attrs"`). A value that is a tuple of
`Attr` is a nested group.

The response of the wrapped application is read completely before it is
returned, so that its size, and its body when asked for, can be logged.

### Log levels

The record's level follows the response status (`level_for_status`):

| Status            | Level   |
|-------------------|---------|
| 5xx               | ERROR   |
| 429               | INFO    |
| other 4xx         | WARNING |
| `OPTIONS` request | DEBUG   |
| anything else     | INFO    |

A record is emitted only if the logger is enabled for that level and the
level is at least `Options.level`. A status of 0 (no response started) is
logged as 200.

### Options

`httplogr.options.Options` is a frozen dataclass:

- `level`: minimum level of request records (default `logging.INFO`).
- `schema`: the field names to use; ECS when `None`.
- `recover_panics`: when true, an exception raised by the application is
  logged and, if no status was sent yet and the request is not a
  `Connection: Upgrade`, the client gets HTTP 500. When false, the exception
  is logged and then raised again.
- `skip(environ, status)`: return true to log nothing for a request.
- `log_request_headers`, `log_response_headers`: header names to log. A
  header with one value is logged as a string, with several as a list.
- `log_request_body(environ)`, `log_response_body(environ)`: return true to
  log the body of that request or response.
- `log_body_content_types`: content-type prefixes whose bodies may be
  logged; others are shown as `[body redacted for Content-Type: ...]`.
  Defaults to JSON, XML, plain text, CSV, form data and no content type.
- `log_body_max_len`: longer bodies are cut and end in `... [trimmed]`.
  0 means 1024; -1 logs the whole body.
- `log_extra_attrs(environ, req_body, status)`: return extra attributes to
  add to the record.

`Options.with_defaults()` fills in the schema, content types and maximum
body length when they are left unset.

Exceptions are logged with `panic: <message>` and their stack trace. A
`ConnectionError` raised by the application also adds an error of type
`ClientAbortedError` with the error type `ClientAborted`. When the request
body is captured, bytes the application left unread are read and counted.

### Adding attributes from a handler

While a request is being handled, the application can attach its own
attributes to the request's record:

```python
from httplogr.context import Attr, set_attrs, set_error

def app(environ, start_response):
    set_attrs(Attr("user", "user1"))
    try:
        ...
    except ValueError as err:
        set_error(err)
    ...
```

`set_error` adds the error under the key `"error"` and returns it. Outside a
request (outside `collect_attrs()`), both do nothing.

### Schemas

`httplogr.schema` provides `SCHEMA_ECS`, `SCHEMA_OTEL` and `SCHEMA_GCP`.
With `SCHEMA_GCP`, whose `group_delimiter` is `":"`, attributes such as
`httpRequest:status` are nested into an `httpRequest` group.

`Schema.replace_attr(groups, attr)` renames the standard top-level fields
`time`, `level`, `msg`, `source` and `error` to the schema's names; times
are written in RFC 3339 form. It returns `None` for a source location inside
this package when the schema has no source field.
`Schema.concise(True)` returns a reduced schema that keeps only the error,
header, body and unread-bytes fields, handy for local development.

### curl commands

`httplogr.curl.curl(environ, req_body)` rebuilds a request as a `curl`
command line, useful in `log_extra_attrs` for reproducing a failing call.
`request_url(environ)` and `request_scheme(environ)` give the full URL and
scheme of a request.

## Example application

A demonstration server on `localhost:8000`, with routes that log at each
level, raise an exception, sleep, and upper-case a JSON payload:

```
httplogr-example
```

It also runs as `python -m httplogr.example`. Records are written to
standard output as JSON lines; with `ENV=localhost` the concise ECS schema
is used and the app, version and environment fields are left out.

## What it does not do

The middleware only creates log records. Apart from the example server,
the package has no formatter or handler that renders the `http_attrs`
attributes; to see them in the output, use a formatter that reads them from
the record. Only WSGI applications are supported.