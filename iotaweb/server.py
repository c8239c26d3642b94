"""Request dispatch for the device web server: routes, file serving and uploads."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .device import AUTH_PATH, CONFIG_NEW_PATH, CONFIG_PATH
from .paths import (
    AuthLevel,
    SPIFFS_PREFIX,
    is_protected,
    required_auth_level,
    resolve_request_path,
)
from .sdfiles import FileStore, WebError

TEXT_PLAIN = "text/plain"
APP_JSON = "application/json"
TEXT_JSON = "text/json"
OCTET_STREAM = "application/octet-stream"
CONFIG_HASH_HEADER = "X-configSHA256"

Handler = Callable[["Request"], "Response"]
Authorizer = Callable[["Request", AuthLevel], bool]


def _to_int(text: Optional[str]) -> int:
    """Read a leading integer the way the firmware does; anything else is 0."""
    if not text:
        return 0
    text = text.lstrip()
    sign = 1
    if text[:1] in "+-" and text:
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


@dataclass
class Request:
    """An incoming request: method, URI, query/form arguments and headers."""

    method: str = "GET"
    uri: str = "/"
    args: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def arg(self, name: str) -> Optional[str]:
        """The argument called name, or None."""
        return self.args.get(name)

    def has_arg(self, name: str) -> bool:
        return name in self.args

    def first_arg(self) -> Optional[str]:
        """The value of the first argument, or None when there are none."""
        return next(iter(self.args.values()), None)

    def header(self, name: str) -> Optional[str]:
        """A header value, looked up without regard to case."""
        wanted = name.lower()
        return next(
            (value for key, value in self.headers.items() if key.lower() == wanted),
            None,
        )


@dataclass
class Response:
    """The status, content type, body and extra headers sent back."""

    status: int = 200
    content_type: str = TEXT_PLAIN
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def ok(cls) -> Response:
        return cls(200, TEXT_PLAIN, b"")

    @classmethod
    def fail(cls, message: str, status: int = 500) -> Response:
        return cls(status, TEXT_PLAIN, (message + "\r\n").encode("utf-8"))


def _allow_all(request: Request, level: AuthLevel) -> bool:
    return True


class WebServer:
    """Dispatches requests to registered routes, falling back to files on the SD card."""

    def __init__(self, store: FileStore, authorize: Authorizer = _allow_all) -> None:
        self.store = store
        self.authorize = authorize
        self._routes: dict[tuple[str, str], tuple[AuthLevel, Handler]] = {}
        self.route(AuthLevel.USER, "/list", "GET", self._list)
        self.route(AuthLevel.ADMIN, "/edit", "DELETE", self._delete)
        self.route(AuthLevel.ADMIN, "/edit", "PUT", self._create)
        self.route(AuthLevel.USER, "/nullreq", "GET", lambda request: Response.ok())

    # -- routing --------------------------------------------------------------

    def route(self, level: AuthLevel, uri: str, method: str, handler: Handler) -> None:
        """Register handler for uri and method, guarded by the given authorisation level."""
        self._routes[(uri, method.upper())] = (AuthLevel(level), handler)

    def _denied(self) -> Response:
        return Response(401, TEXT_PLAIN, b"", {"WWW-Authenticate": "Digest"})

    def handle(self, request: Request) -> Response:
        """Answer a request from a route, else from a file, else with 404."""
        entry = self._routes.get((request.uri, request.method))
        if entry is not None:
            level, handler = entry
            if not self.authorize(request, level):
                return self._denied()
            return handler(request)

        response = self.serve_file(request, request.uri)
        if response is not None:
            return response
        verb = "GET" if request.method == "GET" else "POST"
        message = f"Not found: {verb}, URI: {request.uri}"
        return Response(404, TEXT_PLAIN, message.encode("utf-8"))

    # -- file serving ---------------------------------------------------------

    @staticmethod
    def _locate(root: Path, path: str) -> Optional[Path]:
        target = (root / path.lstrip("/")).resolve()
        if target != root and root not in target.parents:
            return None
        return target

    def _serve_spiffs(self, name: str, content_type: str) -> Response:
        root = self.store.spiffs_root
        target = self._locate(root, name) if root is not None else None
        if target is None or not target.is_file():
            return Response(404, TEXT_PLAIN, b"Not Found")
        return Response(200, content_type, target.read_bytes())

    def serve_file(self, request: Request, path: str) -> Optional[Response]:
        """Serve a file for path; None when there is no such file."""
        resolved = resolve_request_path(path)
        path, content_type = resolved.path, resolved.content_type

        if path.startswith(SPIFFS_PREFIX):
            return self._serve_spiffs(resolved.spiffs_name or "", content_type)

        if path == AUTH_PATH:
            return Response.fail("Protected", 403)

        target = self._locate(self.store.root, path)
        if target is not None and target.is_dir():
            path += "/index.htm"
            content_type = "text/html"
            target = self._locate(self.store.root, path)

        if not self.authorize(request, required_auth_level(path)):
            return self._denied()

        download = request.arg("download")
        if download == "true":
            content_type = OCTET_STREAM
        elif download == "yes":
            entry = self._routes.get(("/query", "GET"))
            if entry is None:
                return None
            return entry[1](request)

        if target is None or not target.is_file():
            return None

        if request.has_arg("textpos"):
            body = self.store.read_from_line(path, _to_int(request.arg("textpos")))
            return Response(200, TEXT_PLAIN, body)

        headers: dict[str, str] = {}
        if path.lower() == CONFIG_PATH:
            headers[CONFIG_HASH_HEADER] = self.store.config_hash
        return Response(200, content_type, target.read_bytes(), headers)

    # -- uploads --------------------------------------------------------------

    def upload(self, request: Request, filename: str, data: bytes) -> Optional[Response]:
        """Store an uploaded file; None when the request is not an upload to /edit."""
        if filename.startswith(SPIFFS_PREFIX):
            if not self.authorize(request, AuthLevel.ADMIN):
                return self._denied()
            with self.store.open_upload(filename) as stream:
                stream.write(data)
            return Response.ok()

        if request.uri != "/edit":
            return None
        name = filename.lower()
        if not name.startswith("/"):
            name = "/" + name
        if is_protected(name):
            return Response.fail("Protected", 403)
        if not self.authorize(request, AuthLevel.ADMIN):
            return self._denied()
        try:
            with self.store.open_upload(name, request.header(CONFIG_HASH_HEADER)) as stream:
                stream.write(data)
        except WebError as exc:
            if exc.status == 409:
                return Response(409, TEXT_PLAIN, exc.message.encode("utf-8"))
            return Response.fail(exc.message, exc.status)

        response = Response.ok()
        if name == CONFIG_NEW_PATH:
            response.headers[CONFIG_HASH_HEADER] = self.store.config_hash
        return response

    # -- built-in handlers ----------------------------------------------------

    def _delete(self, request: Request) -> Response:
        try:
            self.store.delete(request.first_arg())
        except WebError as exc:
            return Response.fail(exc.message, exc.status)
        return Response.ok()

    def _create(self, request: Request) -> Response:
        try:
            self.store.create(request.first_arg())
        except WebError as exc:
            return Response.fail(exc.message, exc.status)
        return Response.ok()

    def _list(self, request: Request) -> Response:
        try:
            listing = self.store.list_directory(request.arg("dir"))
        except WebError as exc:
            return Response.fail(exc.message, exc.status)
        body = json.dumps(listing, separators=(",", ":")).encode("utf-8")
        return Response(200, APP_JSON, body)