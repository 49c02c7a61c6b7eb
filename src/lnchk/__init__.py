"""
Link checker that fetches a page, probes every link on it concurrently,
and reports latency and status-code statistics as JSON.
"""
from lnchk.core import (
    Link,
    LinkCheckError,
    ResolveError,
    Summary,
    UnsupportedSchemeError,
    check_page,
    probe_link,
    resolve_href,
)

__version__ = "1.0.0"
__all__ = [
    "Link",
    "LinkCheckError",
    "ResolveError",
    "Summary",
    "UnsupportedSchemeError",
    "check_page",
    "probe_link",
    "resolve_href",
]
