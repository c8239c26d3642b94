"""SD card file operations behind the web server: create, delete, list, upload and partial reads."""

from __future__ import annotations

import base64
import hashlib
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from .device import CONFIG_NEW_PATH, CONFIG_PATH
from .paths import SPIFFS_PREFIX, is_protected, is_restricted

_SPIFFS_ROOT_NAME = "esp_spiffs"
_SPIFFS_TAG = "/" + _SPIFFS_ROOT_NAME
_HIDDEN_DIRS = frozenset({"system volume information"})
_CHUNK_HEADER = 6
_MAX_CHUNK = 0xFFFF


class WebError(Exception):
    """A request that failed, carrying the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def frame_chunk(body: bytes) -> bytes:
    """Frame body as one HTTP chunk: four hex digits, CRLF, the body, CRLF."""
    if len(body) > _MAX_CHUNK:
        raise ValueError(f"chunk of {len(body)} bytes is too large")
    header = f"{len(body):04x}\r\n".encode("ascii")
    assert len(header) == _CHUNK_HEADER
    return header + bytes(body) + b"\r\n"


class FileStore:
    """Files on the SD card, with an optional flash area reached under /esp_spiffs."""

    def __init__(
        self,
        root: Union[str, Path],
        spiffs_root: Union[str, Path, None] = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.spiffs_root = Path(spiffs_root).resolve() if spiffs_root is not None else None
        self.new_config_pending = False
        config = self._sd(CONFIG_PATH)
        if config.is_file():
            self.config_sha256 = hashlib.sha256(config.read_bytes()).digest()
        else:
            self.config_sha256 = bytes(32)

    @property
    def config_hash(self) -> str:
        """Base64 SHA-256 of the current configuration, as sent in X-configSHA256."""
        return base64.b64encode(self.config_sha256).decode("ascii")

    # -- path mapping -------------------------------------------------------

    @staticmethod
    def _within(root: Path, path: str) -> Path:
        target = (root / path.lstrip("/")).resolve()
        if target != root and root not in target.parents:
            raise WebError("BAD PATH", 400)
        return target

    def _sd(self, path: str) -> Path:
        return self._within(self.root, path)

    def _spiffs(self, name: str) -> Path:
        if self.spiffs_root is None:
            raise WebError("Not Found", 404)
        return self._within(self.spiffs_root, name)

    # -- operations ---------------------------------------------------------

    def delete(self, path: Optional[str]) -> None:
        """Delete a file or a directory tree; system files cannot be deleted."""
        if not path:
            raise WebError("BAD ARGS")
        if path.startswith(_SPIFFS_TAG):
            target = self._spiffs(path[len(_SPIFFS_TAG):])
            if target.is_file():
                target.unlink()
            return
        target = self._sd(path)
        if path == "/" or not target.exists():
            raise WebError("BAD PATH", 400)
        if is_restricted(path):
            raise WebError("Restricted File", 403)
        self.delete_recursive(path)

    def create(self, path: Optional[str]) -> None:
        """Create an empty file if the name has an extension, otherwise a directory."""
        if not path:
            raise WebError("BAD ARGS")
        if path.startswith(_SPIFFS_TAG):
            target = self._spiffs(path[len(_SPIFFS_TAG):])
            if target.exists():
                raise WebError("BAD PATH")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"")
            return
        target = self._sd(path)
        if path == "/" or target.exists():
            raise WebError("BAD PATH", 400)
        if path.find(".") > 0:
            try:
                target.write_bytes(b"")
            except OSError:
                pass
        else:
            target.mkdir(parents=True, exist_ok=True)

    def list_directory(self, path: Optional[str]) -> list[dict[str, str]]:
        """List a directory as {"type", "name"} entries: directories first, then files."""
        if path is None:
            raise WebError("BAD ARGS")
        if path.startswith(_SPIFFS_TAG):
            directory = self._spiffs(path[len(_SPIFFS_TAG):])
            if not directory.is_dir():
                return []
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
            return [
                {"type": "dir" if entry.is_dir() else "file", "name": entry.name}
                for entry in entries
            ]

        directory = self._sd(path)
        if path != "/" and not directory.exists():
            raise WebError("BAD PATH")
        listing: list[dict[str, str]] = []
        if path == "/":
            listing.append({"type": "dir", "name": _SPIFFS_ROOT_NAME})
        if not directory.is_dir():
            return listing
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
        listing.extend(
            {"type": "dir", "name": entry.name}
            for entry in entries
            if entry.is_dir() and entry.name.lower() not in _HIDDEN_DIRS
        )
        listing.extend(
            {"type": "file", "name": entry.name} for entry in entries if entry.is_file()
        )
        return listing

    def delete_recursive(self, path: str) -> None:
        """Remove a file, or a directory and everything below it."""
        self._remove_tree(self._sd(path))

    def _remove_tree(self, target: Path) -> None:
        if not target.is_dir():
            target.unlink(missing_ok=True)
            return
        for entry in target.iterdir():
            self._remove_tree(entry)
        if target != self.root:
            target.rmdir()

    def read_from_line(self, path: str, rel_pos: int) -> bytes:
        """Return the file from the first line that starts after rel_pos.

        A negative rel_pos counts back from the end of the file. The partial
        line at the position is always skipped.
        """
        target = self._sd(path)
        if not target.is_file():
            raise WebError("Not Found", 404)
        data = target.read_bytes()
        start = rel_pos if rel_pos >= 0 else len(data) + rel_pos
        start = max(0, min(start, len(data)))
        newline = data.find(b"\n", start)
        return b"" if newline < 0 else data[newline + 1:]

    @contextmanager
    def open_upload(self, path: str, config_hash: Optional[str] = None) -> Iterator[BinaryIO]:
        """Open a file to receive an upload, replacing any file of that name.

        Uploading the new configuration is refused with 409 when config_hash is
        given and does not match the current configuration. Once such an
        upload completes its hash becomes current and new_config_pending is set.
        """
        if path.startswith(SPIFFS_PREFIX):
            target = self._spiffs(path.lower()[len(SPIFFS_PREFIX) - 1:])
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as stream:
                yield stream
            return

        name = path.lower()
        if not name.startswith("/"):
            name = "/" + name
        if is_protected(name):
            raise WebError("Protected", 403)
        if name == CONFIG_NEW_PATH and config_hash is not None and config_hash != self.config_hash:
            raise WebError("Config not current", 409)

        target = self._sd(name)
        if target.is_file():
            target.unlink()
        try:
            stream = target.open("wb")
        except OSError as exc:
            raise WebError(f"Cannot write {name}") from exc
        with stream:
            yield stream
        if name == CONFIG_NEW_PATH:
            self.config_sha256 = hashlib.sha256(target.read_bytes()).digest()
            self.new_config_pending = True