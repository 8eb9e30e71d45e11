"""RPKI Dash Collectors Module - remote feed retrieval"""

from .feeds import FeedFetcher

__all__ = ["FeedFetcher"]
