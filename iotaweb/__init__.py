"""Web-server core of an electric power monitor: routing, file serving, uploads, URL handling and device records."""

__version__ = "2.7.4"

__all__ = ["device", "xurl", "paths", "sdfiles", "server"]