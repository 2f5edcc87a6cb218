"""Main-content extraction from rendered HTML pages."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

from sources.parsers import collapse_whitespace

logger = logging.getLogger(__name__)

DEFAULT_REMOVE_SELECTORS = [
    'script', 'style', 'nav', 'header', 'footer',
    '.sidebar', '.navigation', '.menu', '.comments',
    '[role="navigation"]', '[role="banner"]',
]
DEFAULT_TITLE_SELECTOR = 'h1, title'
DEFAULT_CONTENT_SELECTOR = 'article, main, .content, .post-content, #content, [role="main"]'

# Pages with less text than this after cleanup are treated as empty
MIN_CONTENT_LENGTH = 50


@dataclass
class ExtractedPage:
    title: str
    content: str


def extract_page(html: str,
                 content_selector: Optional[str] = None,
                 title_selector: Optional[str] = None,
                 remove_selectors: Optional[List[str]] = None) -> Optional[ExtractedPage]:
    """Pull the title and main text out of an HTML document.

    Args:
        html: Raw HTML
        content_selector: CSS selector for the main content block
        title_selector: CSS selector for the title
        remove_selectors: Boilerplate selectors stripped before extraction

    Returns:
        ExtractedPage, or None when the page has too little content
    """
    soup = BeautifulSoup(html, 'html.parser')

    # <title> lives in <head>, grab it before boilerplate removal can touch it
    head_title = soup.title.get_text() if soup.title else ''

    for selector in remove_selectors if remove_selectors is not None else DEFAULT_REMOVE_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    title_element = soup.select_one(title_selector or DEFAULT_TITLE_SELECTOR)
    title = collapse_whitespace(title_element.get_text(' ')) if title_element else ''
    if not title:
        title = collapse_whitespace(head_title)

    main = soup.select_one(content_selector or DEFAULT_CONTENT_SELECTOR)
    if main is not None:
        text = main.get_text(' ')
    elif soup.body is not None:
        text = soup.body.get_text(' ')
    else:
        text = soup.get_text(' ')

    content = collapse_whitespace(text)
    if len(content) < MIN_CONTENT_LENGTH:
        logger.debug(f"Page rejected: only {len(content)} characters of content")
        return None

    return ExtractedPage(title=title, content=content)


def infer_type(url: str, type_from_url: Optional[dict], default_type: str = 'page') -> str:
    """Pick a content type from the first URL substring pattern that matches."""
    for pattern, type_name in (type_from_url or {}).items():
        if pattern in url:
            return type_name
    return default_type
