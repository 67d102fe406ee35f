import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from xoptymiz.config import config
from xoptymiz.errors import FetchError

logger = logging.getLogger(__name__)


class PageFetcher:
    """Fetches raw HTML for a URL through Playwright's API request context."""

    def __init__(self,
                 timeout_ms: Optional[int] = None,
                 user_agent: Optional[str] = None):
        self.timeout_ms = timeout_ms if timeout_ms is not None else config.FETCH_TIMEOUT
        self.user_agent = user_agent or config.FETCH_USER_AGENT

    async def fetch(self, url: str) -> str:
        """
        Performs a single GET request for the page.

        :param url: Absolute http(s) URL
        :return: Response body as text
        :raises FetchError: on non-2xx status, timeout or transport failure
        """
        logger.info(f"Fetching content from: {url}")

        async with async_playwright() as p:
            context = await p.request.new_context(
                user_agent=self.user_agent,
                timeout=self.timeout_ms,
                ignore_https_errors=True,
            )
            try:
                response = await context.get(url, timeout=self.timeout_ms)
                if not response.ok:
                    raise FetchError(
                        f"HTTP {response.status}: {response.status_text}",
                        url=url,
                        status=response.status,
                        reason=response.status_text,
                    )
                body = await response.text()
                logger.debug(f"Fetched {len(body)} characters from {url}")
                return body
            except PlaywrightTimeoutError as e:
                raise FetchError(
                    f"Timed out after {self.timeout_ms}ms fetching {url}",
                    url=url,
                    reason="timeout",
                    original_error=e,
                ) from e
            except PlaywrightError as e:
                raise FetchError(
                    f"Failed to fetch URL: {e}",
                    url=url,
                    reason=str(e),
                    original_error=e,
                ) from e
            finally:
                await context.dispose()
