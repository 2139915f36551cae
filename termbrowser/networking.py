"""Fetching page bytes for the terminal browser.

:func:`fetch` turns whatever the user typed on the command line into the
raw bytes of a document. Supported locations are the built-in ``test``
page, local files (``file://`` URLs, absolute paths, Windows drive paths
and, as a last resort, relative paths) and ``http``/``https`` URLs, which
are requested with the small :class:`URL` client below.

Every failure is reported as a :class:`FetchError` carrying the location
and a human-readable reason.
"""

from __future__ import annotations

import gzip
import logging
import socket
import ssl
import zlib
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

TIMEOUT = 15
MAX_REDIRECTS = 5
USER_AGENT = "TermBrowser/1.0"

TEST_LOCATION = "test"

# Non-ASCII text is deliberate: it shows how the page is sanitized
TEST_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Test</title></head>
<body>
<header><h1>Мій браузер у терміналі</h1></header>
<main>
<p>This is <strong>bold</strong>, <em>italic</em>, <u>underlined</u> and <mark>highlight</mark> text.</p>
<hr>
<pre><code>int main() {
    printf("Hello, world!\\n");
}
</code></pre>
<h2>Lists</h2>
<ul><li>First</li><li>Second<ul><li>Nested</li></ul></li></ul>
<ol><li>One</li><li>Two</li></ol>
<h2>Table</h2>
<table><tr><th>№</th><th>Name</th><th>Age</th></tr><tr><td>1</td><td>Aleks</td><td>25</td></tr></table>
<blockquote>Quoted text sits behind a margin.</blockquote>
<dl><dt>Term</dt><dd>Its description.</dd></dl>
<details open><summary>More</summary><p>Shown while expanded.</p></details>
<img src="logo.png" alt="Logo">
<form><input name="query"><input type="submit" value="Search"></form>
<p>Link: <a href="https://example.com">Example</a></p>
</main>
<footer>Footer text</footer>
</body>
</html>
"""


class FetchError(Exception):
    """Raised when a location cannot be turned into page bytes."""
    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"{location}: {reason}")
        self.location = location
        self.reason = reason


class URL:
    """A simple URL parser and request helper for http and https."""

    def __init__(self, url: str) -> None:
        if "://" not in url:
            raise ValueError(f"Not an absolute URL: {url}")
        self.scheme, rest = url.split("://", 1)
        self.scheme = self.scheme.lower()
        if self.scheme not in ("http", "https"):
            raise ValueError(f"Unsupported scheme: {self.scheme}")
        # Ensure there's at least one '/' to separate host and path
        if "/" not in rest:
            rest += "/"
        self.host, path = rest.split("/", 1)
        self.path = "/" + path
        self.port = 80 if self.scheme == "http" else 443
        if ":" in self.host:
            self.host, p = self.host.split(":", 1)
            try:
                self.port = int(p)
            except ValueError:
                raise ValueError(f"Bad port: {p}") from None
        if not self.host:
            raise ValueError(f"Missing host: {url}")

    def request(self, timeout: float = TIMEOUT) -> Tuple[int, Dict[str, str], bytes]:
        """Make an HTTP/1.0 GET request to this URL.

        :returns: A tuple of (status code, headers dict, body bytes). Header
                  names are case-folded.
        :raises OSError: On connection, TLS or timeout failures.
        :raises ValueError: If the response is not HTTP.
        """
        sock = socket.create_connection((self.host, self.port), timeout=timeout)
        try:
            if self.scheme == "https":
                ctx = ssl.create_default_context()
                sock = ctx.wrap_socket(sock, server_hostname=self.host)
            req = f"GET {self.path} HTTP/1.0\r\n"
            req += f"Host: {self.host}\r\n"
            req += f"User-Agent: {USER_AGENT}\r\n"
            req += "Accept-Encoding: gzip\r\n"
            req += "\r\n"
            sock.sendall(req.encode("ascii", errors="replace"))
            with sock.makefile("rb") as resp:
                status = parse_status_line(resp.readline())
                headers: Dict[str, str] = {}
                while True:
                    line = resp.readline().decode("latin-1")
                    if line in ("\r\n", "\n", ""):
                        break
                    if ":" not in line:
                        continue
                    k, v = line.split(":", 1)
                    headers[k.strip().casefold()] = v.strip()
                body = resp.read()
        finally:
            sock.close()
        if headers.get("content-encoding", "").lower() == "gzip":
            body = gzip.decompress(body)
        return status, headers, body

    def resolve(self, url: str) -> 'URL':
        """Resolve a relative or protocol-relative URL against this URL."""
        if "://" in url:
            return URL(url)
        if url.startswith("//"):
            return URL(self.scheme + ":" + url)
        if not url.startswith("/"):
            dir_path, _ = self.path.rsplit("/", 1)
            while url.startswith("../"):
                _, url = url.split("/", 1)
                if "/" in dir_path:
                    dir_path, _ = dir_path.rsplit("/", 1)
            url = dir_path + "/" + url
        return URL(f"{self.scheme}://{self.host}:{self.port}{url}")

    def __str__(self) -> str:
        show_port = (
            (self.scheme == "http" and self.port != 80)
            or (self.scheme == "https" and self.port != 443)
        )
        port = f":{self.port}" if show_port else ""
        return f"{self.scheme}://{self.host}{port}{self.path}"


def parse_status_line(line: bytes) -> int:
    parts = line.decode("latin-1").split(None, 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise ValueError(f"Malformed status line: {line[:80]!r}")
    return int(parts[1])


def fetch_http(location: str) -> bytes:
    """GET ``location``, following up to :data:`MAX_REDIRECTS` redirects.

    The body is returned whatever the final status code is, the same way
    a browser shows a server's error page.
    """
    try:
        url = URL(location)
        for _ in range(MAX_REDIRECTS + 1):
            status, headers, body = url.request()
            logger.debug("GET %s -> %d (%d bytes)", url, status, len(body))
            if 300 <= status < 400 and "location" in headers:
                url = url.resolve(headers["location"])
                continue
            return body
    except (OSError, ValueError, EOFError, zlib.error) as e:
        raise FetchError(location, str(e) or type(e).__name__) from e
    raise FetchError(location, "too many redirects")


def read_file(location: str, path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FetchError(location, e.strerror or str(e)) from e


def is_local_path(location: str) -> bool:
    """Absolute POSIX paths and Windows drive paths such as ``C:\\page.html``."""
    return location.startswith("/") or (len(location) > 1 and location[1] == ":")


def fetch(location: str) -> bytes:
    """Return the raw bytes of the document at ``location``."""
    if location == TEST_LOCATION:
        return TEST_PAGE.encode("utf-8")
    if location.startswith("file://"):
        return read_file(location, location[len("file://"):])
    if is_local_path(location):
        return read_file(location, location)
    if location.lower().startswith(("http://", "https://")):
        return fetch_http(location)
    # Anything else is tried as a path relative to the working directory
    return read_file(location, location)
