"""
CSS Extractor
=============

Extracts feed items from an HTML page with CSS selectors.

Every sub-selector of a rule is evaluated against one item node at a time:
the node itself and its descendants, never anything outside it.
"""

import mimetypes
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Set
from urllib.parse import urljoin, urlparse

import soupsieve
from bs4 import BeautifulSoup, Tag

from ..config.feeds import ExtractionRule
from ..utils.exceptions import ParseError, SelectorError
from ..utils.logging import get_logger_for_component
from .dates import DateNormalizer

DEFAULT_MIME_TYPE = "application/octet-stream"

URL_ATTRIBUTES = ("href", "src")


@dataclass(frozen=True)
class Enclosure:
    """Media attached to an item. Length is unknown, hence "0"."""

    url: str
    mime_type: str = DEFAULT_MIME_TYPE
    length: str = "0"


@dataclass(frozen=True)
class ExtractedItem:
    """One item scraped from the page."""

    title: Optional[str]
    link: Optional[str]
    summary: Optional[str] = None
    published: Optional[datetime] = None
    enclosure: Optional[Enclosure] = None


@dataclass(frozen=True)
class LinkResolution:
    """Outcome of link lookup for one item."""

    href: Optional[str]
    used_fallback: bool


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def guess_mime_type(url: str) -> str:
    """Guess a MIME type from the last path segment of ``url``."""
    filename = urlparse(url).path.rsplit("/", 1)[-1]
    if not filename:
        return DEFAULT_MIME_TYPE
    mime_type, _ = mimetypes.guess_type(filename, strict=False)
    return mime_type or DEFAULT_MIME_TYPE


def parse_document(
    body: bytes, encoding: Optional[str] = None, base_url: Optional[str] = None
) -> BeautifulSoup:
    """Parse raw page bytes into a document.

    When ``base_url`` is given every ``href`` and ``src`` attribute is
    rewritten to an absolute URL.

    Raises:
        ParseError: If the bytes cannot be parsed as markup
    """
    try:
        document = BeautifulSoup(body, "html.parser", from_encoding=encoding)
    except Exception as e:
        raise ParseError(f"Unable to parse document: {e}", feed_url=base_url) from e

    if base_url:
        rewrite_urls(document, base_url)

    return document


def rewrite_urls(document: Tag, base_url: str) -> None:
    """Make every ``href``/``src`` attribute in ``document`` absolute."""
    for attribute in URL_ATTRIBUTES:
        for element in document.find_all(attrs={attribute: True}):
            value = element.get(attribute)
            if not isinstance(value, str):
                continue
            try:
                element[attribute] = urljoin(base_url, value.strip())
            except ValueError:
                # Leave unparsable values untouched
                continue


class CssExtractor:
    """Yields ``ExtractedItem`` records for a document and rule."""

    def __init__(self, date_normalizer: Optional[DateNormalizer] = None):
        self.date_normalizer = date_normalizer or DateNormalizer()
        self.logger = get_logger_for_component("extractor")
        self._fallback_warned: Set[ExtractionRule] = set()

    def extract(
        self, document: Tag, rule: ExtractionRule, base_url: str
    ) -> Iterator[ExtractedItem]:
        """Lazily extract items in document order.

        Raises:
            SelectorError: If any selector of ``rule`` is not valid CSS
        """
        item_selector = self._compile(rule.item, "item")
        heading_selector = self._compile(rule.heading, "heading")
        link_selector = self._compile(rule.link, "link") if rule.link else None
        summary_selector = (
            self._compile(rule.summary, "summary") if rule.summary else None
        )
        date_selector = self._compile(rule.date.selector, "date") if rule.date else None
        media_selector = self._compile(rule.media, "media") if rule.media else None

        if link_selector is None and rule not in self._fallback_warned:
            self._fallback_warned.add(rule)
            self.logger.warning(
                f"no explicit link selector provided, falling back to heading "
                f"selector: {rule.heading!r}",
                extra={"url": rule.url},
            )

        for node in item_selector.select(document):
            title_node = self.select_first(node, heading_selector)
            title = normalize_whitespace(title_node.get_text()) if title_node else ""

            link = self.resolve_link(node, link_selector, heading_selector, base_url)

            if not title and not link.href:
                self.logger.info(
                    f"dropping item matched by {rule.item!r}: no title and no link"
                )
                continue

            yield ExtractedItem(
                title=title or None,
                link=link.href,
                summary=self._extract_summary(node, summary_selector, title),
                published=self._extract_date(node, date_selector, rule),
                enclosure=self._extract_media(node, media_selector, base_url),
            )

    def resolve_link(
        self,
        node: Tag,
        link_selector: Optional[soupsieve.SoupSieve],
        heading_selector: soupsieve.SoupSieve,
        base_url: str,
    ) -> LinkResolution:
        """Find the item link, falling back to the heading element.

        An element without an ``href`` counts as no link.
        """
        used_fallback = link_selector is None
        link_node = self.select_first(
            node, heading_selector if used_fallback else link_selector
        )

        href = link_node.get("href") if link_node is not None else None
        if not isinstance(href, str) or not href.strip():
            if link_node is not None:
                self.logger.debug("element selected as link has no 'href' attribute")
            return LinkResolution(href=None, used_fallback=used_fallback)

        return LinkResolution(
            href=urljoin(base_url, href.strip()), used_fallback=used_fallback
        )

    @staticmethod
    def select_first(node: Tag, selector: soupsieve.SoupSieve) -> Optional[Tag]:
        """First match among ``node`` and its descendants, in document order."""
        if selector.match(node):
            return node
        return selector.select_one(node)

    def extract_all(
        self, body: bytes, encoding: Optional[str], rule: ExtractionRule, base_url: str
    ) -> List[ExtractedItem]:
        """Parse ``body`` and return every item."""
        document = parse_document(body, encoding, base_url)
        return list(self.extract(document, rule, base_url))

    def _compile(self, selector: str, field_name: str) -> soupsieve.SoupSieve:
        try:
            return soupsieve.compile(selector)
        except soupsieve.SelectorSyntaxError as e:
            raise SelectorError(
                f"invalid selector for {field_name}: {selector}", selector=selector
            ) from e

    def _extract_summary(
        self, node: Tag, selector: Optional[soupsieve.SoupSieve], title: str
    ) -> Optional[str]:
        if selector is None:
            return None

        summary_node = self.select_first(node, selector)
        if summary_node is None:
            self.logger.warning(
                f"summary selector for item with title '{title}' did not match anything"
            )
            return None

        return summary_node.decode_contents().strip()

    def _extract_date(
        self, node: Tag, selector: Optional[soupsieve.SoupSieve], rule: ExtractionRule
    ) -> Optional[datetime]:
        if selector is None:
            return None

        date_node = self.select_first(node, selector)
        if date_node is None:
            return None

        attribute = None
        if date_node.name == "time":
            value = date_node.get("datetime")
            if isinstance(value, str):
                attribute = value

        return self.date_normalizer.parse(date_node.get_text(), attribute, rule.date)

    def _extract_media(
        self, node: Tag, selector: Optional[soupsieve.SoupSieve], base_url: str
    ) -> Optional[Enclosure]:
        if selector is None:
            return None

        media_node = self.select_first(node, selector)
        if media_node is None:
            return None

        media_url = media_node.get("src") or media_node.get("href")
        if not isinstance(media_url, str) or not media_url.strip():
            self.logger.warning(
                "element selected as media has no 'src' or 'href' attribute"
            )
            return None

        try:
            absolute = urljoin(base_url, media_url.strip())
        except ValueError as e:
            self.logger.warning(f"media enclosure url invalid: {e}")
            return None

        return Enclosure(url=absolute, mime_type=guess_mime_type(absolute))
