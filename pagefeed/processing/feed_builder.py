"""
Feed Builder
============

Assembles extracted items into an RSS 2.0 document. Serialization is a
pure function of the document: identical input gives identical bytes, so
output fingerprints only change when the content does.
"""

import hashlib
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime
from typing import Iterable, Optional, Tuple

from ..config.feeds import FeedDefinition
from .extractor import Enclosure, ExtractedItem

# Characters that may not appear in XML 1.0 documents
_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def clean_text(value: str) -> str:
    return _INVALID_XML_CHARS.sub("", value)


def title_guid(title: str) -> str:
    return hashlib.sha256(title.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FeedItem:
    """An item as it appears in the feed."""

    guid: str
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    pub_date: Optional[datetime] = None
    enclosure: Optional[Enclosure] = None
    guid_is_permalink: bool = False


@dataclass(frozen=True)
class FeedDocument:
    """Channel metadata plus items in extraction order."""

    title: str
    link: str
    description: str
    generator: str
    items: Tuple[FeedItem, ...] = ()


class FeedBuilder:
    """Builds and serializes feed documents."""

    def __init__(self, generator: Optional[str] = None):
        if generator is None:
            from .. import __version__

            generator = f"pagefeed {__version__}"
        self.generator = generator

    def build(
        self, definition: FeedDefinition, items: Iterable[ExtractedItem]
    ) -> FeedDocument:
        """Map a definition and its items to a document. Order is preserved."""
        url = definition.config.url
        return FeedDocument(
            title=definition.title,
            link=url,
            description=definition.description or f"Items scraped from {url}",
            generator=self.generator,
            items=tuple(self._to_feed_item(item) for item in items),
        )

    @staticmethod
    def _to_feed_item(item: ExtractedItem) -> FeedItem:
        # The link doubles as the identifier; it is not promised to be a permalink
        guid = item.link if item.link else title_guid(item.title or "")
        return FeedItem(
            guid=guid,
            title=item.title,
            link=item.link,
            description=item.summary,
            pub_date=item.published,
            enclosure=item.enclosure,
        )

    def serialize(self, document: FeedDocument) -> bytes:
        """Render ``document`` as UTF-8 RSS 2.0 XML."""
        rss = ET.Element("rss", {"version": "2.0"})
        channel = ET.SubElement(rss, "channel")

        _add_text(channel, "title", document.title)
        _add_text(channel, "link", document.link)
        _add_text(channel, "description", document.description)
        _add_text(channel, "generator", document.generator)

        for item in document.items:
            element = ET.SubElement(channel, "item")
            _add_text(element, "title", item.title)
            _add_text(element, "link", item.link)
            _add_text(element, "description", item.description)

            guid = ET.SubElement(
                element,
                "guid",
                {"isPermaLink": "true" if item.guid_is_permalink else "false"},
            )
            guid.text = clean_text(item.guid)

            if item.pub_date is not None:
                _add_text(element, "pubDate", format_datetime(item.pub_date))

            if item.enclosure is not None:
                ET.SubElement(
                    element,
                    "enclosure",
                    {
                        "url": clean_text(item.enclosure.url),
                        "length": item.enclosure.length,
                        "type": item.enclosure.mime_type,
                    },
                )

        ET.indent(rss, space="  ")
        return ET.tostring(rss, encoding="utf-8", xml_declaration=True) + b"\n"


def _add_text(parent: ET.Element, tag: str, value: Optional[str]) -> None:
    if value is None:
        return
    ET.SubElement(parent, tag).text = clean_text(value)
