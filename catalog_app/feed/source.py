"""
Retrieval of the raw feed file.

A configured local ``FEED_PATH`` that already exists wins; otherwise the feed
is downloaded from ``FEED_URL``. Downloads are streamed to disk so the
parser never needs the whole document in memory.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import requests
from flask import current_app

from catalog_app.feed.errors import FeedSourceError

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_SIZE = 64 * 1024


class FeedSource:
    """Locate or download the supplier feed."""

    def __init__(
        self,
        *,
        url: str | None = None,
        path: str | os.PathLike | None = None,
        connect_timeout: float = 30,
        read_timeout: float = 300,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.path = Path(path) if path else None
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.session = session

    @classmethod
    def from_config(cls, app=None) -> "FeedSource":
        config = (app or current_app).config
        return cls(
            url=config.get("FEED_URL"),
            path=config.get("FEED_PATH"),
            connect_timeout=config.get("FEED_CONNECT_TIMEOUT_SECONDS", 30),
            read_timeout=config.get("FEED_DOWNLOAD_TIMEOUT_SECONDS", 300),
        )

    @property
    def description(self) -> str:
        if self.path is not None and self.path.exists():
            return str(self.path)
        return self.url or "<unconfigured>"

    @contextmanager
    def open(self) -> Iterator[Path]:
        """
        Yield a local path to the feed file.

        Downloads that had no configured target go to a temporary file that is
        removed when the context exits.
        """

        if self.path is not None and self.path.exists():
            logger.info("Using local feed file %s", self.path)
            yield self.path
            return

        if not self.url:
            raise FeedSourceError("No feed source configured: set FEED_PATH to an existing file or FEED_URL")

        if self.path is not None:
            self.download(self.path)
            yield self.path
            return

        handle, temp_name = tempfile.mkstemp(prefix="feed-", suffix=".xml")
        os.close(handle)
        temp_path = Path(temp_name)
        try:
            self.download(temp_path)
            yield temp_path
        finally:
            temp_path.unlink(missing_ok=True)

    def download(self, target: Path) -> Path:
        """Stream ``self.url`` into ``target``; raises ``FeedSourceError`` on any HTTP failure."""

        logger.info("Downloading feed from %s", self.url)
        target.parent.mkdir(parents=True, exist_ok=True)
        session = self.session or requests.Session()
        try:
            with session.get(
                self.url,
                stream=True,
                timeout=(self.connect_timeout, self.read_timeout),
            ) as response:
                response.raise_for_status()
                size = 0
                with target.open("wb") as output:
                    for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            output.write(chunk)
                            size += len(chunk)
        except requests.exceptions.RequestException as exc:
            logger.error("Feed download from %s failed: %s", self.url, exc)
            raise FeedSourceError(f"Feed download failed: {exc}") from exc
        finally:
            # Only close a session created for this download
            if self.session is None:
                session.close()

        logger.info("Downloaded %s bytes to %s", size, target)
        return target
