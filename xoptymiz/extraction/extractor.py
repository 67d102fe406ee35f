"""
Content extractor: turns a URL, an HTML document or raw text into
normalized content with structural metrics.
"""

import logging
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup

from xoptymiz.crawler.page_fetcher import PageFetcher
from xoptymiz.errors import InvalidInputError
from .content_parser import ContentParser
from .data_models import ContentInput, NormalizedContent
from .metadata_extractor import DEFAULT_TITLE, MetadataExtractor

logger = logging.getLogger(__name__)


class ContentExtractor:
    """First pipeline stage: input -> NormalizedContent."""

    def __init__(self, fetcher: Optional[PageFetcher] = None):
        """
        Initialize the extractor.

        Args:
            fetcher: Object with an async ``fetch(url) -> str`` method; a
                Playwright-backed PageFetcher is created when omitted
        """
        self.fetcher = fetcher or PageFetcher()

    async def extract(self, content_input: ContentInput) -> NormalizedContent:
        """
        Extract normalized content from exactly one kind of input.

        Args:
            content_input: url, html or text (url wins, then html)

        Returns:
            NormalizedContent with text and metrics

        Raises:
            InvalidInputError: none of url/html/text was provided
            FetchError: the URL could not be fetched
        """
        if content_input.url:
            html = await self.fetcher.fetch(content_input.url)
            return self.extract_from_html(html, url=content_input.url)
        if content_input.html is not None:
            return self.extract_from_html(content_input.html)
        if content_input.text is not None:
            return self.process_raw_text(content_input.text, content_input.title)

        raise InvalidInputError("Invalid input: must provide url, html, or text")

    def extract_from_html(self, html: str, url: Optional[str] = None) -> NormalizedContent:
        """Run main-content extraction over an HTML document."""
        soup = BeautifulSoup(html, 'html.parser')

        # Title first: boilerplate stripping may remove the <header> holding the <h1>
        title = MetadataExtractor.extract_title(soup)
        text = ContentParser.extract_main_text(soup)
        logger.debug(f"Extracted {len(text)} characters of main content (title: {title})")

        return self._build(text, title, url)

    def process_raw_text(self, text: str, title: Optional[str] = None) -> NormalizedContent:
        """Pass raw text through with the given or default title."""
        return self._build(ContentParser.clean_text(text), title or DEFAULT_TITLE, None)

    @staticmethod
    def _build(text: str, title: str, url: Optional[str]) -> NormalizedContent:
        word_count = len(MetadataExtractor.tokenize(text))
        sentence_count = len(MetadataExtractor.split_sentences(text))

        return NormalizedContent(
            url=url,
            title=title,
            text=text,
            cleaned=ContentParser.preprocess_text(text),
            excerpt=MetadataExtractor.excerpt(text),
            word_count=word_count,
            sentence_count=sentence_count,
            readability=MetadataExtractor.readability_score(word_count, sentence_count),
            extracted_at=datetime.now(),
        )
