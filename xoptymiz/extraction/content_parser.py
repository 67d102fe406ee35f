"""
Content parser for extracting the main readable body from HTML pages.

Uses a readability-style heuristic: prefer semantic containers, then
content-like class names, and fall back to the whole document body after
stripping boilerplate elements.
"""

import re
import logging
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


class ContentParser:
    """Parses HTML documents into a plain-text main body."""

    # Containers that usually hold the main content, in priority order
    MAIN_CONTENT_SELECTORS = [
        "main",
        "article",
        "[role='main']",
        "#content",
        "#main-content",
        ".post-content",
        ".entry-content",
        ".article-content",
        ".content",
    ]

    # Hints matched against id/class names when no selector above hits
    CONTENT_HINTS = ("content", "post", "entry", "article")

    # Elements never part of the readable body
    BOILERPLATE_TAGS = [
        "script", "style", "nav", "footer", "aside", "header",
        "form", "noscript", "iframe", "svg",
    ]

    AD_SELECTORS = [
        ".advertisement",
        ".ads",
        ".ad",
        "[id^='ad-']",
        "[class*='sponsor']",
    ]

    # Minimum characters for a candidate container to count as main content
    MIN_CONTENT_LENGTH = 50

    @staticmethod
    def extract_main_text(soup: BeautifulSoup) -> str:
        """
        Extracts the readable body text from a parsed document.

        Args:
            soup: Parsed HTML document (modified in place)

        Returns:
            Plain text with whitespace collapsed
        """
        ContentParser._strip_boilerplate(soup)

        container = ContentParser._find_main_container(soup)
        if container is None:
            container = soup.body or soup
            logger.debug("No main content container found - using full document")

        return ContentParser.clean_text(container.get_text(separator=" "))

    @staticmethod
    def _strip_boilerplate(soup: BeautifulSoup) -> None:
        """Remove script/style/navigation/ad elements."""
        for tag in soup.find_all(ContentParser.BOILERPLATE_TAGS):
            tag.extract()

        for selector in ContentParser.AD_SELECTORS:
            for element in soup.select(selector):
                element.extract()

    @staticmethod
    def _find_main_container(soup: BeautifulSoup) -> Optional[Tag]:
        """Find the element most likely to hold the main content."""
        for selector in ContentParser.MAIN_CONTENT_SELECTORS:
            for element in soup.select(selector):
                if len(element.get_text(strip=True)) >= ContentParser.MIN_CONTENT_LENGTH:
                    logger.debug(f"Main content found with selector '{selector}'")
                    return element

        candidates = [
            element for element in soup.find_all(["div", "section"])
            if ContentParser._has_content_hint(element)
        ]
        if candidates:
            best = max(candidates, key=lambda el: len(el.get_text(strip=True)))
            if len(best.get_text(strip=True)) >= ContentParser.MIN_CONTENT_LENGTH:
                return best

        return None

    @staticmethod
    def _has_content_hint(element: Tag) -> bool:
        names: List[str] = list(element.get("class") or [])
        if element.get("id"):
            names.append(element["id"])
        joined = " ".join(names).lower()
        return any(hint in joined for hint in ContentParser.CONTENT_HINTS)

    @staticmethod
    def clean_text(text: str) -> str:
        """Collapse runs of whitespace into single spaces."""
        if not text:
            return ""
        return re.sub(r'\s+', ' ', text).strip()

    @staticmethod
    def preprocess_text(text: str) -> str:
        """Collapse whitespace and drop characters that are not words or basic punctuation."""
        collapsed = ContentParser.clean_text(text)
        return re.sub(r'[^\w\s\-.,!?;:]', '', collapsed).strip()
