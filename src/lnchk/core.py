"""
Core link-checking logic and data structures.
"""
from __future__ import annotations

import posixpath
import re
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import SplitResult, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup, SoupStrainer
from bs4.builder import ParserRejectedMarkup
from requests.adapters import HTTPAdapter

DEFAULT_USER_AGENT = "lnchk/1.0"

# Status label recorded when no HTTP response was obtained
UNKNOWN_STATUS = "n/a"

SUPPORTED_SCHEMES: frozenset[str] = frozenset(("http", "https"))

# SoupStrainer to parse only <a> and <link> tags carrying an href
LINK_STRAINER = SoupStrainer(["a", "link"], href=True)

# A "%" not starting a two-digit hex escape, and ASCII control characters
INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class LinkCheckError(Exception):
    """Fatal error that aborts a page check."""


class InvalidPageURLError(LinkCheckError):
    pass


class PageFetchError(LinkCheckError):
    pass


class PageParseError(LinkCheckError):
    pass


class ResolveError(ValueError):
    """An href that cannot be turned into a probe-able URL."""


class ParseError(ResolveError):
    pass


class UnsupportedSchemeError(ResolveError):
    """Raised for hrefs with a scheme other than http/https.

    ``url`` holds the best-effort resolved URL so callers can still inspect it.
    """

    def __init__(self, scheme: str, url: str) -> None:
        super().__init__(f"Unsupported scheme {scheme}")
        self.scheme = scheme
        self.url = url


@dataclass(frozen=True, slots=True)
class Link:
    """Outcome of probing a single link."""
    url: str
    latency: float
    response_code: str
    error: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.url,
            "latency": self.latency,
            "responseCode": self.response_code,
            "error": self.error,
        }


@dataclass(slots=True)
class Summary:
    """Aggregated results for one checked page.

    ``add_link`` may be called from many threads at once. Everything else
    (including ``to_dict``) must only run once all writers are done.
    """
    url: str
    avg_latency: float = 0.0
    response_code: str = ""
    total_links: int = 0
    responses_per_code: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    links: List[Link] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def add_link(self, link: Link) -> None:
        """Fold a probe result into the running statistics."""
        with self._lock:
            self.links.append(link)
            self.total_links += 1
            # Incremental mean, no resumming of prior latencies
            self.avg_latency += (link.latency - self.avg_latency) / self.total_links
            self.responses_per_code[link.response_code] += 1

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.url,
            "avgLatency": self.avg_latency,
            "responseCode": self.response_code,
            "totalLinks": self.total_links,
            "responsesPerCode": dict(self.responses_per_code),
            "links": [link.to_dict() for link in self.links],
        }


def _split(url: Union[str, SplitResult]) -> SplitResult:
    """Split a URL, rejecting bad escapes, control characters, netlocs and ports."""
    if isinstance(url, SplitResult):
        parts = url
    else:
        if INVALID_ESCAPE.search(url):
            raise ValueError("invalid URL escape")
        if CONTROL_CHARS.search(url):
            raise ValueError("invalid control character in URL")
        parts = urlsplit(url)
    # SplitResult.port raises ValueError for a non-numeric or out-of-range port
    _ = parts.port
    return parts


def resolve_href(page_url: Union[str, SplitResult], href: str) -> str:
    """
    Resolve an href found on a page into an absolute URL.

    - Missing scheme is taken from the page
    - Missing host is taken from the page; relative paths are then joined
      onto the directory of the page path, collapsing . and .. segments
    - Hrefs with their own host keep host and path untouched

    Raises:
        ParseError: href (or page_url) is not a valid URL.
        UnsupportedSchemeError: href uses a scheme other than http/https.
    """
    try:
        page = _split(page_url)
        parts = _split(href)
    except ValueError as exc:
        raise ParseError(f"Invalid URL {href!r}: {exc}") from exc

    scheme = parts.scheme or page.scheme
    netloc = parts.netloc
    path = parts.path

    if not netloc:
        netloc = page.netloc
        if not path.startswith("/"):
            base_dir = posixpath.dirname(page.path) or "/"
            joined = posixpath.normpath(posixpath.join(base_dir, path))
            path = joined if joined.startswith("/") else "/" + joined

    resolved = urlunsplit((scheme, netloc, path, parts.query, parts.fragment))

    if scheme not in SUPPORTED_SCHEMES:
        raise UnsupportedSchemeError(scheme, resolved)

    return resolved


def probe_link(
    session: requests.Session,
    url: str,
    timeout: Optional[float] = None,
) -> Tuple[str, str, float]:
    """
    Issue a single GET to url.

    Returns (status code label, error message, latency in milliseconds).
    Transport failures are reported with UNKNOWN_STATUS and never raised.
    """
    status_code = UNKNOWN_STATUS
    error = ""

    start = time.perf_counter()
    try:
        resp = session.get(url, stream=True, timeout=timeout)
    except requests.RequestException as e:
        finish = time.perf_counter()
        error = str(e)
    else:
        finish = time.perf_counter()
        # Body is never read; closing hands the connection back
        resp.close()
        status_code = str(resp.status_code)

    return status_code, error, (finish - start) * 1000.0


def extract_hrefs(html: Union[str, bytes]) -> List[str]:
    """Extract non-empty href values from <a> and <link> tags in document order."""
    try:
        soup = BeautifulSoup(html, "lxml", parse_only=LINK_STRAINER)
    except ParserRejectedMarkup as e:
        raise PageParseError(f"Error parsing the document: {e}") from e

    hrefs = []
    for tag in soup.find_all(["a", "link"]):
        href = (tag.get("href") or "").strip()
        if href:
            hrefs.append(href)
    return hrefs


def build_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """Create an HTTP session sending the given User-Agent."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent
    return session


def _size_pool(session: requests.Session, pool_size: int) -> None:
    adapter = HTTPAdapter(pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)


def _check_href(
    session: requests.Session,
    page: SplitResult,
    href: str,
    timeout: Optional[float],
    summary: Summary,
) -> Optional[Link]:
    """Resolve, probe and record one href. Unresolvable hrefs are skipped."""
    try:
        url = resolve_href(page, href)
    except ResolveError:
        return None

    status_code, error, latency = probe_link(session, url, timeout)
    link = Link(url=url, latency=latency, response_code=status_code, error=error)
    summary.add_link(link)
    return link


def check_page(
    page_url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    max_workers: Optional[int] = None,
    user_agent: str = DEFAULT_USER_AGENT,
    on_link: Optional[Callable[[Link], None]] = None,
) -> Summary:
    """
    Fetch a page and concurrently probe every link found on it.

    Args:
        page_url: URL of the page to check.
        session: HTTP session to use. One is created (and closed) if omitted.
        timeout: Per-request timeout in seconds, None for the client default.
        max_workers: Cap on concurrent probes. Defaults to one worker per link.
        user_agent: User-Agent header for a session created here.
        on_link: Called from the calling thread for every recorded link.

    Returns:
        The finished Summary.

    Raises:
        InvalidPageURLError: page_url cannot be parsed.
        PageFetchError: the page itself could not be fetched.
        PageParseError: the page HTML was rejected by the parser.
    """
    try:
        page = _split(page_url)
    except ValueError as e:
        raise InvalidPageURLError(f"Error parsing the given URL: {e}") from e

    owns_session = session is None
    if owns_session:
        session = build_session(user_agent)

    try:
        summary = Summary(url=page.geturl())

        try:
            resp = session.get(summary.url, timeout=timeout)
        except requests.RequestException as e:
            raise PageFetchError(f"Error getting the given URL: {e}") from e

        summary.response_code = str(resp.status_code)
        hrefs = extract_hrefs(resp.content)
        if not hrefs:
            return summary

        workers = min(max_workers or len(hrefs), len(hrefs))
        if owns_session:
            _size_pool(session, workers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_check_href, session, page, href, timeout, summary)
                for href in hrefs
            ]
            for future in as_completed(futures):
                link = future.result()
                if link is not None and on_link is not None:
                    on_link(link)

        return summary
    finally:
        if owns_session:
            session.close()
