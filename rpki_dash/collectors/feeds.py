#!/usr/bin/env python3
"""
Feed Fetcher - route dumps, VRP exports and registry delegation files

Retrieves a feed over HTTP(S) (or from a local path / file:// URL for
offline runs), gunzips it when the location ends in .gz, and returns raw
lines or CSV rows. No parsing beyond line and field splitting happens here.
Any transport, decompression or decoding failure raises FeedError.
"""

import csv
import gzip
import io
import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import requests

from ..utils.error_handling import FeedError

USER_AGENT = "rpki-dash/1.0"


class FeedFetcher:
    """Download remote feeds into memory"""

    def __init__(self, timeout: int = 300, session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize fetcher

        Args:
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session
            logger: Optional logger instance
        """
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def fetch_bytes(self, url: str) -> bytes:
        """Raw feed content, decompressed when the location ends in .gz"""
        self.logger.info(f"Starting file download: {url}")
        parsed = urlparse(url)

        if parsed.scheme in ("http", "https"):
            payload = self._download(url)
        else:
            payload = self._read_local(url, parsed)

        if parsed.path.endswith(".gz"):
            try:
                payload = gzip.decompress(payload)
            except (OSError, EOFError) as e:
                raise FeedError(url, f"decompression failed: {e}")

        self.logger.info(f"File download finished: {url} ({len(payload)} bytes)")
        return payload

    def _download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise FeedError(url, f"timed out after {self.timeout}s")
        except requests.exceptions.HTTPError as e:
            raise FeedError(url, f"HTTP {e.response.status_code}")
        except requests.exceptions.RequestException as e:
            raise FeedError(url, str(e))
        return response.content

    def _read_local(self, url: str, parsed) -> bytes:
        path = Path(parsed.path) if parsed.scheme == "file" else Path(url)
        try:
            return path.read_bytes()
        except OSError as e:
            raise FeedError(url, str(e))

    def fetch_lines(self, url: str) -> List[str]:
        """Feed content split into text lines without line terminators"""
        return self._decode(url, self.fetch_bytes(url)).splitlines()

    def fetch_table(self, url: str) -> List[List[str]]:
        """Feed content parsed as CSV rows"""
        text = self._decode(url, self.fetch_bytes(url))
        try:
            return list(csv.reader(io.StringIO(text)))
        except csv.Error as e:
            raise FeedError(url, f"malformed CSV: {e}")

    def _decode(self, url: str, payload: bytes) -> str:
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FeedError(url, f"not valid UTF-8 at byte {e.start}")
