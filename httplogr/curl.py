"""Rendering of WSGI requests as URLs and curl commands."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import quote

_DEFAULT_PORTS = {"http": "80", "https": "443"}
_PATH_SAFE = "/:@!$&'()*+,;="
_TLS_FLAGS = ("on", "1", "true", "yes")


def request_scheme(environ: Mapping[str, Any]) -> str:
    """Return ``"https"`` for TLS requests and ``"http"`` otherwise."""
    url_scheme = str(environ.get("wsgi.url_scheme", "")).lower()
    if url_scheme == "https":
        return "https"
    https_flag = str(environ.get("HTTPS", "")).lower()
    if https_flag in _TLS_FLAGS:
        return "https"
    return "http"


def _request_host(environ: Mapping[str, Any]) -> str:
    host = environ.get("HTTP_HOST")
    if host:
        return str(host)
    name = str(environ.get("SERVER_NAME", ""))
    port = str(environ.get("SERVER_PORT", ""))
    if port and port != _DEFAULT_PORTS[request_scheme(environ)]:
        return f"{name}:{port}"
    return name


def _request_target(environ: Mapping[str, Any]) -> str:
    path = str(environ.get("SCRIPT_NAME", "")) + str(environ.get("PATH_INFO", ""))
    target = quote(path, safe=_PATH_SAFE)
    query = environ.get("QUERY_STRING")
    if query:
        target += f"?{query}"
    return target


def request_url(environ: Mapping[str, Any]) -> str:
    """Return the full URL of the request."""
    return f"{request_scheme(environ)}://{_request_host(environ)}{_request_target(environ)}"


def _request_headers(environ: Mapping[str, Any]) -> Iterator[tuple[str, str]]:
    """Yield the request headers (without Host) as canonical name/value pairs."""
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            raw = key[5:]
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            raw = key
        else:
            continue
        if raw == "HOST" or value in (None, ""):
            continue
        name = "-".join(part.capitalize() for part in raw.split("_"))
        yield name, str(value)


def _single_quoted(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def curl(environ: Mapping[str, Any], req_body: str) -> str:
    """Return a curl command that reproduces the request."""
    method = str(environ.get("REQUEST_METHOD", "GET"))
    parts = ["curl"]
    if method not in ("GET", "POST"):
        parts.append(f"-X {method}")
    parts.append(_single_quoted(request_url(environ)))
    if method == "POST":
        parts.append(f"--data-raw {_single_quoted(req_body)}")
    for name, value in sorted(_request_headers(environ)):
        parts.append(f"-H {_single_quoted(f'{name}: {value}')}")
    return " ".join(parts)