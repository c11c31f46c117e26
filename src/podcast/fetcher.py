"""Bounded HTTPS fetcher for podcast feeds.

Retrieves raw feed bytes with a wall-clock timeout, a payload ceiling and a
destination check that refuses loopback, private and link-local hosts before
any request is issued.
"""

import ipaddress
import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

import requests

from .errors import ErrorKind, FeedInterchangeError

logger = logging.getLogger(__name__)

# Loopback, private, link-local and otherwise non-routable ranges
BLOCKED_IP_RANGES = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "localhost.localdomain",
        "ip6-localhost",
        "ip6-loopback",
        "metadata.google.internal",
    }
)

ALLOWED_SCHEMES = frozenset({"https"})


class FeedFetcher:
    """Fetches a single feed document over HTTPS.

    All limits are fixed at construction so a test (or a caller with special
    needs) can build its own instance instead of mutating shared state.

    Example:
        fetcher = FeedFetcher(timeout=8.0, max_bytes=5_000_000)
        data = fetcher.fetch("https://example.com/feed.xml")
    """

    DEFAULT_TIMEOUT = 8.0
    DEFAULT_MAX_BYTES = 5_000_000
    DEFAULT_CHUNK_SIZE = 8192
    DEFAULT_USER_AGENT = "PodcastFeedInterchange/1.0"
    MAX_REDIRECTS = 5

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        blocked_networks: Optional[Iterable] = None,
        blocked_hostnames: Optional[Iterable[str]] = None,
        resolve_dns: bool = False,
        user_agent: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Wall-clock limit in seconds for the whole fetch
            max_bytes: Ceiling for both Content-Length and bytes actually read
            blocked_networks: IP networks to refuse (defaults to BLOCKED_IP_RANGES)
            blocked_hostnames: Hostnames to refuse (defaults to BLOCKED_HOSTNAMES)
            resolve_dns: Also resolve hostnames and refuse blocked addresses
            user_agent: Custom user agent string
            chunk_size: Read size for the streamed body
            session: Optional pre-built requests session
        """
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.blocked_networks = [
            ipaddress.ip_network(n) for n in (blocked_networks or BLOCKED_IP_RANGES)
        ]
        self.blocked_hostnames = frozenset(
            h.lower() for h in (blocked_hostnames or BLOCKED_HOSTNAMES)
        )
        self.resolve_dns = resolve_dns
        self.chunk_size = chunk_size
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session carrying the fetcher's user agent."""
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "application/rss+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5",
            }
        )
        return session

    def close(self) -> None:
        self._session.close()

    # --- Destination checks ---

    def validate_url(self, url: str) -> str:
        """Check scheme and destination host without touching the network.

        Args:
            url: Candidate feed URL

        Returns:
            The URL, stripped of surrounding whitespace

        Raises:
            FeedInterchangeError: InvalidScheme or ForbiddenHost
        """
        url = (url or "").strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise FeedInterchangeError(
                ErrorKind.INVALID_SCHEME,
                f"URL scheme '{parsed.scheme}' is not allowed; feeds must use https",
            )

        hostname = (parsed.hostname or "").lower().rstrip(".")
        if not hostname:
            raise FeedInterchangeError(ErrorKind.FORBIDDEN_HOST, "URL must include a hostname")

        if self.is_host_blocked(hostname):
            raise FeedInterchangeError(
                ErrorKind.FORBIDDEN_HOST, f"Access to host '{hostname}' is not allowed"
            )

        if self.resolve_dns:
            self._check_resolved_addresses(hostname, parsed.port or 443)

        return url

    def is_host_blocked(self, hostname: str) -> bool:
        """Return True when the hostname or IP literal is on the denylist."""
        hostname = hostname.lower().rstrip(".")
        if hostname in self.blocked_hostnames or hostname.endswith(".localhost"):
            return True
        try:
            ip = ipaddress.ip_address(hostname)
        except ValueError:
            return False
        return self._is_ip_blocked(ip)

    def _is_ip_blocked(self, ip) -> bool:
        # IPv4-mapped IPv6 addresses (::ffff:127.0.0.1) are checked as IPv4
        if ip.version == 6 and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        return any(ip in network for network in self.blocked_networks if network.version == ip.version)

    def _check_resolved_addresses(self, hostname: str, port: int) -> None:
        try:
            addrinfo = socket.getaddrinfo(hostname, port, proto=socket.IPPROTO_TCP)
        except socket.gaierror as e:
            raise FeedInterchangeError(
                ErrorKind.FETCH_FAILED, f"Could not resolve host '{hostname}': {e}"
            ) from e

        for _family, _type, _proto, _canon, sockaddr in addrinfo:
            if self._is_ip_blocked(ipaddress.ip_address(sockaddr[0])):
                raise FeedInterchangeError(
                    ErrorKind.FORBIDDEN_HOST,
                    f"Host '{hostname}' resolves to blocked address '{sockaddr[0]}'",
                )

    # --- Fetching ---

    def fetch(self, url: str) -> bytes:
        """Fetch the feed at ``url``.

        Redirects are followed manually so every hop passes the same scheme
        and host checks as the original URL.

        Args:
            url: HTTPS URL of the feed

        Returns:
            Raw response body

        Raises:
            FeedInterchangeError: InvalidScheme, ForbiddenHost, Timeout,
                PayloadTooLarge or FetchFailed
        """
        url = self.validate_url(url)
        deadline = time.monotonic() + self.timeout

        for _ in range(self.MAX_REDIRECTS + 1):
            response = self._get(url, deadline)
            try:
                if response.is_redirect:
                    location = response.headers.get("location")
                    if not location:
                        raise FeedInterchangeError(
                            ErrorKind.FETCH_FAILED, "Redirect without a Location header"
                        )
                    url = self.validate_url(urljoin(url, location))
                    logger.debug(f"Following redirect to {url}")
                    continue

                if response.status_code >= 400:
                    raise FeedInterchangeError(
                        ErrorKind.FETCH_FAILED,
                        f"Failed to fetch feed: HTTP {response.status_code}",
                    )

                body = self._read_body(response, deadline)
                logger.info(f"Fetched {len(body)} bytes from {url}")
                return body
            finally:
                response.close()

        raise FeedInterchangeError(
            ErrorKind.FETCH_FAILED, f"Too many redirects (more than {self.MAX_REDIRECTS})"
        )

    def _get(self, url: str, deadline: float) -> requests.Response:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FeedInterchangeError(
                ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
            )
        try:
            return self._session.get(
                url,
                stream=True,
                timeout=remaining,
                allow_redirects=False,
            )
        except requests.Timeout as e:
            raise FeedInterchangeError(
                ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
            ) from e
        except requests.RequestException as e:
            raise FeedInterchangeError(
                ErrorKind.FETCH_FAILED, f"Failed to fetch feed: {e}"
            ) from e

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        declared = response.headers.get("content-length")
        if declared:
            try:
                declared_size = int(declared)
            except ValueError:
                declared_size = None
            if declared_size is not None and declared_size > self.max_bytes:
                raise FeedInterchangeError(
                    ErrorKind.PAYLOAD_TOO_LARGE,
                    f"Feed declares {declared_size} bytes; limit is {self.max_bytes}",
                )

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FeedInterchangeError(
                ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
            )

        # requests times out single socket reads only; the whole body gets one deadline
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="feed-read")
        try:
            future = executor.submit(self._read_chunks, response, deadline)
            try:
                return future.result(timeout=remaining)
            except FutureTimeoutError:
                self._abort(response)
                raise FeedInterchangeError(
                    ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
                ) from None
        finally:
            executor.shutdown(wait=False)

    def _read_chunks(self, response: requests.Response, deadline: float) -> bytes:
        # Content-Length may be absent or wrong, so count what is actually read
        chunks = []
        received = 0
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if not chunk:
                    continue
                received += len(chunk)
                if received > self.max_bytes:
                    raise FeedInterchangeError(
                        ErrorKind.PAYLOAD_TOO_LARGE,
                        f"Feed exceeded {self.max_bytes} bytes",
                    )
                if time.monotonic() > deadline:
                    raise FeedInterchangeError(
                        ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
                    )
                chunks.append(chunk)
        except requests.Timeout as e:
            raise FeedInterchangeError(
                ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
            ) from e
        except requests.RequestException as e:
            # requests reports a body read timeout as ConnectionError
            if time.monotonic() > deadline:
                raise FeedInterchangeError(
                    ErrorKind.TIMEOUT, f"Feed fetch exceeded {self.timeout:g}s"
                ) from e
            raise FeedInterchangeError(
                ErrorKind.FETCH_FAILED, f"Failed to read feed: {e}"
            ) from e

        return b"".join(chunks)

    def _abort(self, response: requests.Response) -> None:
        """Shut down the response socket so a reader blocked in recv() returns."""
        sock = _response_socket(response)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Socket already closed while aborting read: {e}")
        response.close()


def _response_socket(response: requests.Response) -> Optional[socket.socket]:
    """Find the socket under a streamed urllib3 response, if it is still attached."""
    raw = getattr(response, "raw", None)
    connection = getattr(raw, "_connection", None)
    sock = getattr(connection, "sock", None)
    if not isinstance(sock, socket.socket):
        # Fall back to the http.client file object wrapping the socket
        fp = getattr(getattr(raw, "_fp", None), "fp", None)
        sock = getattr(getattr(fp, "raw", None), "_sock", None)
    return sock if isinstance(sock, socket.socket) else None
