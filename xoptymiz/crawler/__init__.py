from .page_fetcher import PageFetcher

__all__ = [
    'PageFetcher'
]
