"""Rules for turning request paths into files, content types and required authorisation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .device import (
    AUTH_PATH,
    CONFIG_PATH,
    CURRENT_LOG_PATH,
    HISTORY_LOG_PATH,
    SYSTEM_DIR,
)

SPIFFS_PREFIX = "/esp_spiffs/"
INDEX_FILE = "index.htm"
DEFAULT_CONTENT_TYPE = "text/plain"

_CONTENT_TYPES = (
    (".htm", "text/html"),
    (".css", "text/css"),
    (".js", "application/javascript"),
    (".png", "image/png"),
    (".gif", "image/gif"),
    (".jpg", "image/jpeg"),
    (".ico", "image/x-icon"),
    (".xml", "text/xml"),
    (".pdf", "application/pdf"),
    (".zip", "application/zip"),
)

_HTM_PAGES = frozenset({"/edit", "/graph", "/graph2"})
_RESTRICTED = frozenset({CONFIG_PATH, CURRENT_LOG_PATH, HISTORY_LOG_PATH, AUTH_PATH})


class AuthLevel(IntEnum):
    """Authorisation a request needs."""

    USER = 1
    ADMIN = 2


@dataclass(frozen=True)
class ResolvedPath:
    """A request path mapped to the file to serve and its content type."""

    path: str
    content_type: str

    @property
    def spiffs_name(self) -> Optional[str]:
        """The name within flash storage, or None if the path is on the SD card."""
        if self.path.startswith(SPIFFS_PREFIX):
            return self.path[len(SPIFFS_PREFIX) - 1 :]
        return None


def content_type(path: str) -> str:
    """Return the content type served for a file path."""
    for suffix, kind in _CONTENT_TYPES:
        if path.endswith(suffix):
            return kind
    return DEFAULT_CONTENT_TYPE


def resolve_request_path(path: str) -> ResolvedPath:
    """Map a request URI to the file to serve.

    A ".src" suffix is removed and the file is then sent as plain text.
    """
    if not path.startswith("/"):
        path = "/" + path
    if path.endswith("/"):
        path += INDEX_FILE
    if path in _HTM_PAGES:
        path += ".htm"
    if path.endswith(".src"):
        return ResolvedPath(path[: path.rfind(".")], DEFAULT_CONTENT_TYPE)
    return ResolvedPath(path, content_type(path))


def required_auth_level(path: str) -> AuthLevel:
    """Return the level needed to read a file: user for root, /user/ and /graphs/, else admin."""
    if not path.startswith("/config") and (
        path.startswith("/user/")
        or path.startswith("/graphs/")
        or "/" not in path[1:]
    ):
        return AuthLevel.USER
    return AuthLevel.ADMIN


def is_protected(path: str) -> bool:
    """True when an upload may not replace the file: the configuration or any system file."""
    name = path.lower()
    if not name.startswith("/"):
        name = "/" + name
    return name == CONFIG_PATH or name.startswith(SYSTEM_DIR)


def is_restricted(path: str) -> bool:
    """True for the files that may not be deleted."""
    return path in _RESTRICTED