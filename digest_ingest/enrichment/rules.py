"""Classification rules for URLs found in entry markup.

Each rule is a small pure predicate so the miner's behaviour can be tested
piece by piece.
"""

from typing import Iterable, Optional
from urllib.parse import urlsplit, urlunsplit

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp")

# Hosts that only serve images, matched as substrings of the host
IMAGE_HOSTS = ("i.redd.it", "i.imgur.com")

# Markers of low-quality renditions (thumbnails, previews)
EXCLUDED_TERMS = ("thumb", "preview")

# Domain tokens of the source itself; links to these are not "external"
SELF_DOMAINS = ("reddit", "redd.it")

HTTP_SCHEMES = ("http", "https")


def _split(url: str):
    try:
        return urlsplit(url.strip())
    except ValueError:
        return None


def normalize_url(url: str) -> Optional[str]:
    """Canonical string form used for deduplication; None if unparseable."""
    parts = _split(url)
    if parts is None:
        return None
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path,
        parts.query,
        parts.fragment,
    ))


def host_of(url: str) -> str:
    parts = _split(url)
    if parts is None:
        return ""
    try:
        return (parts.hostname or "").lower()
    except ValueError:
        return ""


def has_image_extension(url: str) -> bool:
    """True if the URL path ends in a known image extension."""
    parts = _split(url)
    if parts is None:
        return False
    return parts.path.lower().endswith(IMAGE_EXTENSIONS)


def is_image_host(url: str, image_hosts: Iterable[str] = IMAGE_HOSTS) -> bool:
    """True if the URL is served from a dedicated image host."""
    host = host_of(url)
    return bool(host) and any(token in host for token in image_hosts)


def is_likely_image(url: str, image_hosts: Iterable[str] = IMAGE_HOSTS) -> bool:
    return has_image_extension(url) or is_image_host(url, image_hosts)


def contains_excluded_terms(url: str, excluded_terms: Iterable[str] = EXCLUDED_TERMS) -> bool:
    """True if the URL looks like a thumbnail or preview rendition."""
    lowered = url.lower()
    return any(term in lowered for term in excluded_terms)


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    parts = _split(url)
    if parts is None:
        return False
    return parts.scheme.lower() in HTTP_SCHEMES and bool(host_of(url))


def is_self_domain(url: str, self_domains: Iterable[str] = SELF_DOMAINS) -> bool:
    """True if the URL's host belongs to the source's own domain family."""
    host = host_of(url)
    return any(token in host for token in self_domains)


def ensure_scheme(url: str) -> str:
    """Prefix https:// onto a scheme-less URL such as 'i.imgur.com/x.png'."""
    url = url.strip()
    if not url:
        return url
    if url.startswith("//"):
        return "https:" + url
    if "://" in url or url.lower().startswith(("mailto:", "data:", "javascript:")):
        return url
    return "https://" + url
