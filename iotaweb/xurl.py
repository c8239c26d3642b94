"""A small URL splitter that keeps each part with its delimiter, so the parts join back into the URL."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_METHOD = "http://"


@dataclass
class Url:
    """A URL held as its parts.

    Each part keeps its delimiter: the method ends in "://", auth ends in "@",
    the port starts with ":", the path starts with "/" and the query holds the
    rest of the URL as given.
    """

    method: Optional[str] = None
    auth: Optional[str] = None
    domain: Optional[str] = None
    port: Optional[str] = None
    path: Optional[str] = None
    query: Optional[str] = None

    @classmethod
    def from_string(cls, url: str) -> Url:
        """Return a new Url parsed from url."""
        parsed = cls()
        parsed.parse(url)
        return parsed

    def _clear(self) -> None:
        self.method = None
        self.auth = None
        self.domain = None
        self.port = None
        self.path = None
        self.query = None

    def parse(self, url: Optional[str]) -> None:
        """Replace the parts with those of url; raise ValueError if it has no domain or a bad port."""
        self._clear()
        if url is None:
            raise ValueError("no URL given")

        rest = url
        scheme_end = rest.find("://")
        if scheme_end >= 0:
            self.method = rest[: scheme_end + 3]
            rest = rest[scheme_end + 3 :]
        else:
            self.method = DEFAULT_METHOD

        at = rest.find("@")
        if at >= 0:
            self.auth = rest[: at + 1]
            rest = rest[at + 1 :]

        domain_end = next(
            (i for i, ch in enumerate(rest) if ch in ":/"), len(rest)
        )
        if domain_end == 0:
            raise ValueError(f"no domain in URL {url!r}")
        self.domain = rest[:domain_end]
        rest = rest[domain_end:]

        if rest.startswith(":"):
            digits = len(rest) - 1 - len(rest[1:].lstrip("0123456789"))
            if digits == 0:
                raise ValueError(f"bad port in URL {url!r}")
            self.port = rest[: digits + 1]
            rest = rest[digits + 1 :]

        if rest.startswith("/"):
            path_end = rest.find("?")
            if path_end < 0:
                path_end = len(rest)
            segment = rest[:path_end]
            if len(segment) > 1:
                self.path = segment[:-1] if segment.endswith("/") else segment
            rest = rest[path_end:]

        if rest:
            self.query = rest

    def build(self) -> str:
        """Join the parts that are set back into a URL."""
        parts = (self.method, self.auth, self.domain, self.port, self.path, self.query)
        return "".join(part for part in parts if part)

    def __str__(self) -> str:
        return self.build()