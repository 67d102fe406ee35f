"""
Metadata extractor for page titles and structural text metrics.

Title lookup uses CSS selectors in priority order; metrics are the word
count, sentence count and a words-per-sentence readability estimate.
"""

import re
from typing import List, Optional

from bs4 import BeautifulSoup

DEFAULT_TITLE = "Untitled"


class MetadataExtractor:
    """Extracts titles and text metrics from pages."""

    # Selectors tried in order when looking for a page title
    TITLE_SELECTORS = [
        "title",
        "h1",
        "meta[property='og:title']",
    ]

    EXCERPT_LENGTH = 200

    @staticmethod
    def extract_title(soup: BeautifulSoup) -> str:
        """
        Best-guess document title.

        Args:
            soup: Parsed HTML document

        Returns:
            Text of the first non-empty title candidate, or ``Untitled``
        """
        for selector in MetadataExtractor.TITLE_SELECTORS:
            for element in soup.select(selector):
                if element.name == "meta":
                    text = element.get("content", "")
                else:
                    text = element.get_text()
                cleaned = MetadataExtractor._clean_text(text)
                if cleaned:
                    return cleaned
        return DEFAULT_TITLE

    @staticmethod
    def _clean_text(text: Optional[str]) -> str:
        if not text:
            return ""
        return re.sub(r'\s+', ' ', text.strip())

    @staticmethod
    def tokenize(text: str) -> List[str]:
        """Whitespace tokenization."""
        return text.split()

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split on sentence terminators, discarding empty pieces."""
        return [s for s in re.split(r'[.!?]+', text) if s.strip()]

    @staticmethod
    def readability_score(word_count: int, sentence_count: int) -> float:
        """Higher words-per-sentence lowers the score; 0 when there are no sentences."""
        if sentence_count == 0:
            return 0.0
        avg_words_per_sentence = word_count / sentence_count
        return max(0.0, 100 - 2 * avg_words_per_sentence)

    @staticmethod
    def excerpt(text: str) -> str:
        if len(text) <= MetadataExtractor.EXCERPT_LENGTH:
            return text
        return text[:MetadataExtractor.EXCERPT_LENGTH] + "..."
