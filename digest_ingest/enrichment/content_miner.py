"""Image and external link mining from entry markup."""

import html
from dataclasses import dataclass, field
from typing import Iterable, List, Set, Tuple

from bs4 import BeautifulSoup, Tag

from .rules import (
    EXCLUDED_TERMS,
    IMAGE_HOSTS,
    SELF_DOMAINS,
    contains_excluded_terms,
    ensure_scheme,
    is_http_url,
    is_likely_image,
    is_self_domain,
    normalize_url,
)

LINK_ANCHOR_TOKEN = "link"


@dataclass
class _Candidates:
    """Raw URL pools collected from one document."""
    image_sources: List[str] = field(default_factory=list)
    anchors: List[str] = field(default_factory=list)
    link_anchors: List[str] = field(default_factory=list)


def _is_link_anchor(tag: Tag) -> bool:
    """Anchors whose visible text is '[link]' point at the post's direct media."""
    text = tag.get_text(strip=True).strip("[]").strip().lower()
    return text == LINK_ANCHOR_TOKEN


def _collect(markup: str) -> _Candidates:
    candidates = _Candidates()
    if not markup or not markup.strip():
        return candidates

    soup = BeautifulSoup(html.unescape(markup), "html.parser")
    for node in soup.descendants:
        if not isinstance(node, Tag):
            continue
        if node.name == "img":
            src = (node.get("src") or "").strip()
            if src:
                candidates.image_sources.append(src)
        elif node.name == "a":
            href = (node.get("href") or "").strip()
            if not href:
                continue
            if _is_link_anchor(node):
                candidates.link_anchors.append(ensure_scheme(href))
            else:
                candidates.anchors.append(href)
    return candidates


class ContentMiner:
    """Extracts image URLs and off-site links from raw entry markup.

    Stateless apart from its rule tables; every call parses the markup afresh.
    """

    def __init__(
        self,
        self_domains: Iterable[str] = SELF_DOMAINS,
        image_hosts: Iterable[str] = IMAGE_HOSTS,
        excluded_terms: Iterable[str] = EXCLUDED_TERMS,
    ):
        self.self_domains = tuple(t.lower() for t in self_domains)
        self.image_hosts = tuple(t.lower() for t in image_hosts)
        self.excluded_terms = tuple(t.lower() for t in excluded_terms)

    def extract_images(self, markup: str) -> Set[str]:
        return self._images(_collect(markup))

    def extract_external_links(self, markup: str) -> Set[str]:
        return self._external_links(_collect(markup))

    def mine(self, markup: str) -> Tuple[Set[str], Set[str]]:
        """Images and external links from a single parse."""
        candidates = _collect(markup)
        return self._images(candidates), self._external_links(candidates)

    def _accept_image(self, url: str, element_is_image: bool) -> bool:
        if not is_http_url(url):
            return False
        if not element_is_image and not is_likely_image(url, self.image_hosts):
            return False
        # Veto runs after classification so it can override a host match
        return not contains_excluded_terms(url, self.excluded_terms)

    def _images(self, candidates: _Candidates) -> Set[str]:
        found = set()
        for url in candidates.link_anchors + candidates.anchors:
            if self._accept_image(url, element_is_image=False):
                found.add(normalize_url(url))
        for url in candidates.image_sources:
            if self._accept_image(url, element_is_image=True):
                found.add(normalize_url(url))
        found.discard(None)
        return found

    def _external_links(self, candidates: _Candidates) -> Set[str]:
        found = set()
        for url in candidates.link_anchors + candidates.anchors:
            if is_http_url(url) and not is_self_domain(url, self.self_domains):
                found.add(normalize_url(url))
        found.discard(None)
        return found
