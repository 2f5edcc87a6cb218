"""Format parsers: CSV, XML records, sitemaps, RSS/Atom feeds and HTML text.

All parsers are lenient. Malformed input degrades to fewer extracted records
rather than an exception, except where the whole resource is unreadable
(a sitemap with no urlset or index element, or a feed with no recognizable entries), which raises
ParseError so the caller can attribute the failure to that resource.
"""

import calendar
import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import feedparser

logger = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised when a resource cannot be parsed at all."""
    pass


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def parse_csv_line(line: str) -> List[str]:
    """Split one CSV line on commas outside double quotes.

    Quotes only toggle the in-quotes state and are dropped, so unmatched
    quotes never raise.
    """
    values = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            values.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
    values.append(''.join(current).strip())

    return values


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Parse CSV text into one dict per data line, keyed by header."""
    lines = [line.rstrip('\r') for line in text.strip().split('\n')]
    if len(lines) < 2:
        return []

    headers = parse_csv_line(lines[0])
    records = []
    for line in lines[1:]:
        values = parse_csv_line(line)
        records.append({
            header: values[i] if i < len(values) else ''
            for i, header in enumerate(headers)
        })
    return records


# ---------------------------------------------------------------------------
# Generic XML records
# ---------------------------------------------------------------------------

_LEAF_TAG = re.compile(
    r'<([\w:.-]+)[^>]*>\s*(?:<!\[CDATA\[([\s\S]*?)\]\]>|([^<]*))\s*</\1>'
)


def parse_xml_records(text: str, item_tag: str = 'item') -> List[Dict[str, str]]:
    """Extract ``<item_tag>`` elements as flat dicts of leaf tag -> text.

    Nested structure is flattened: any element that directly wraps text
    becomes a key. Unclosed tags are skipped.
    """
    item_pattern = re.compile(
        r'<{tag}(?:\s[^>]*)?>([\s\S]*?)</{tag}>'.format(tag=re.escape(item_tag)),
        re.IGNORECASE,
    )

    records = []
    for item_match in item_pattern.finditer(text):
        record = {}
        for leaf in _LEAF_TAG.finditer(item_match.group(1)):
            value = leaf.group(2) if leaf.group(2) is not None else leaf.group(3)
            record[leaf.group(1)] = value.strip()
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# Sitemaps
# ---------------------------------------------------------------------------

@dataclass
class SitemapDocument:
    """Parsed sitemap: either an index of child sitemaps or a page list."""
    is_index: bool
    locations: List[str] = field(default_factory=list)


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1].lower()


_SITEMAP_ROOT = re.compile(r'<(?:[\w.-]+:)?(sitemapindex|urlset)\b', re.IGNORECASE)
_SITEMAP_LOC = re.compile(
    r'<(?:[\w.-]+:)?loc\s*>\s*(?:<!\[CDATA\[([\s\S]*?)\]\]>|([^<]*?))\s*</(?:[\w.-]+:)?loc\s*>',
    re.IGNORECASE,
)


def _scan_sitemap(xml: str) -> SitemapDocument:
    """Regex scan used when the document is not well-formed XML.

    Every ``<loc>`` inside a complete ``<url>``/``<sitemap>`` entry is kept;
    broken entries are simply not extracted.
    """
    root = _SITEMAP_ROOT.search(xml)
    if root is None:
        raise ParseError("Invalid sitemap: no <urlset> or <sitemapindex> element")

    is_index = root.group(1).lower() == 'sitemapindex'
    entry = re.compile(
        r'<(?:[\w.-]+:)?{tag}\b[^>]*>([\s\S]*?)</(?:[\w.-]+:)?{tag}\s*>'.format(
            tag='sitemap' if is_index else 'url'),
        re.IGNORECASE,
    )

    locations = []
    for entry_match in entry.finditer(xml):
        loc_match = _SITEMAP_LOC.search(entry_match.group(1))
        if loc_match is None:
            continue
        loc = decode_entities(loc_match.group(1) if loc_match.group(1) is not None else loc_match.group(2)).strip()
        if loc.startswith('http'):
            locations.append(loc)

    return SitemapDocument(is_index=is_index, locations=locations)


def parse_sitemap(xml: str) -> SitemapDocument:
    """Parse a ``<sitemapindex>`` or ``<urlset>`` document.

    Documents that are not well-formed XML (an unescaped ``&`` in a query
    string is the usual culprit) are scanned entry by entry instead.

    Raises:
        ParseError: If the document has no ``<urlset>`` or ``<sitemapindex>``
    """
    try:
        root = ET.fromstring(xml.strip())
    except ET.ParseError as e:
        logger.debug(f"Sitemap is not well-formed XML ({e}), scanning entries")
        return _scan_sitemap(xml)

    root_name = _local_name(root.tag)
    if root_name not in ('sitemapindex', 'urlset'):
        raise ParseError(f"Invalid sitemap: unexpected root element <{root_name}>")

    is_index = root_name == 'sitemapindex'
    entry_name = 'sitemap' if is_index else 'url'

    locations = []
    for entry in root:
        if _local_name(entry.tag) != entry_name:
            continue
        for child in entry:
            if _local_name(child.tag) == 'loc' and child.text:
                loc = child.text.strip()
                if loc.startswith('http'):
                    locations.append(loc)
                break

    return SitemapDocument(is_index=is_index, locations=locations)


# ---------------------------------------------------------------------------
# RSS / Atom
# ---------------------------------------------------------------------------

@dataclass
class FeedItem:
    title: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    published: Optional[str] = None
    author: Optional[str] = None
    categories: List[str] = field(default_factory=list)


@dataclass
class ParsedFeed:
    dialect: str  # 'rss' | 'atom' | 'unknown'
    items: List[FeedItem] = field(default_factory=list)


def _feed_dialect(version: str) -> str:
    if version.startswith('atom'):
        return 'atom'
    if version.startswith('rss'):
        return 'rss'
    return 'unknown'


def _entry_link(entry) -> Optional[str]:
    for link in entry.get('links', []):
        if link.get('rel') == 'alternate' and link.get('href'):
            return link['href']
    if entry.get('link'):
        return entry['link']
    for link in entry.get('links', []):
        if link.get('href'):
            return link['href']
    return None


def _entry_published(entry) -> Optional[str]:
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if parsed:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()
    return entry.get('published') or entry.get('updated')


def _entry_content(entry) -> Optional[str]:
    contents = entry.get('content') or []
    for content in contents:
        if content.get('value'):
            return content['value']
    return None


def parse_feed(data: Union[str, bytes]) -> ParsedFeed:
    """Parse an RSS 2.0 or Atom document.

    Raises:
        ParseError: If the document is malformed and yields no entries
    """
    if isinstance(data, str):
        data = data.encode('utf-8')

    parsed = feedparser.parse(io.BytesIO(data))
    if parsed.bozo and not parsed.entries:
        raise ParseError(f"Invalid feed: {parsed.get('bozo_exception')}")

    items = []
    for entry in parsed.entries:
        items.append(FeedItem(
            title=entry.get('title'),
            link=_entry_link(entry),
            guid=entry.get('id'),
            description=entry.get('summary'),
            content=_entry_content(entry),
            published=_entry_published(entry),
            author=entry.get('author'),
            categories=[tag['term'] for tag in entry.get('tags', []) if tag.get('term')],
        ))

    return ParsedFeed(dialect=_feed_dialect(parsed.get('version') or ''), items=items)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_SCRIPT_BLOCK = re.compile(r'<script[^>]*>[\s\S]*?</script>', re.IGNORECASE)
_STYLE_BLOCK = re.compile(r'<style[^>]*>[\s\S]*?</style>', re.IGNORECASE)
_TAG = re.compile(r'<[^>]+>')
_WHITESPACE = re.compile(r'\s+')

_ENTITIES = (
    ('&nbsp;', ' '),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&amp;', '&'),
)


def decode_entities(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def strip_html(html: Optional[str]) -> str:
    """Drop tags and script/style blocks, decode common entities."""
    if not html:
        return ''
    text = _SCRIPT_BLOCK.sub('', html)
    text = _STYLE_BLOCK.sub('', text)
    text = _TAG.sub(' ', text)
    return collapse_whitespace(decode_entities(text))


def portable_text_to_plain(blocks: Any) -> str:
    """Convert Sanity Portable Text blocks to plain paragraphs."""
    if not isinstance(blocks, list):
        return ''

    paragraphs = []
    for block in blocks:
        if not isinstance(block, dict) or block.get('_type') != 'block':
            continue
        children = block.get('children') or []
        paragraphs.append(''.join(
            child.get('text', '') for child in children if isinstance(child, dict)
        ))
    return '\n\n'.join(paragraphs)


def is_portable_text(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(block, dict) and '_type' in block for block in value)
    )


def to_text(value: Any) -> str:
    """Render an arbitrary record value as embeddable text."""
    if isinstance(value, str):
        return value
    if is_portable_text(value):
        return portable_text_to_plain(value)
    return json.dumps(value, default=str, ensure_ascii=False)
