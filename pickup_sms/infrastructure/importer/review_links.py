"""
Review Links - CSV Import and City Lookup
=========================================

Loads the city -> Google review URL mapping from CSV and serves random
picks per city. The pool is replaced wholesale on reload, never edited
in place, so readers always see either the old or the new mapping.

Expected columns (case-insensitive, surrounding whitespace ignored):
    city, google_review_url, stashpoint_name (optional)
"""

import io
import logging
import os
import random
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

import pandas as pd

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("city", "google_review_url")

CsvSource = Union[str, Path, bytes]


class ReviewLinkImportError(ValueError):
    """The CSV could not be read or lacks required columns."""


@dataclass(frozen=True)
class LinkResolution:
    """Outcome of the two-step city -> fallback lookup."""
    url: Optional[str]
    used_fallback: bool = False

    @property
    def found(self) -> bool:
        return self.url is not None


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _read_frame(source: CsvSource) -> pd.DataFrame:
    try:
        if isinstance(source, bytes):
            df = pd.read_csv(io.BytesIO(source), dtype=str, keep_default_na=False)
        else:
            df = pd.read_csv(source, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ReviewLinkImportError(f"Could not parse review links CSV: {e}")

    df.columns = df.columns.str.strip().str.lower()
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ReviewLinkImportError(f"Missing required column(s): {', '.join(missing)}")
    return df


def parse_review_links(source: CsvSource) -> Dict[str, Tuple[str, ...]]:
    """
    Parse a CSV into {lowercased city: (url, ...)}.

    Rows with an empty city or a URL that is not http(s) are skipped with
    a warning. Duplicate URLs for one city are kept once.
    """
    df = _read_frame(source)

    pool: Dict[str, List[str]] = {}
    skipped = 0
    for idx, row in df.iterrows():
        city = str(row["city"]).strip().lower()
        url = str(row["google_review_url"]).strip()
        if not city or not _is_http_url(url):
            skipped += 1
            logger.warning(f"Row {idx + 2}: skipped (city={city!r}, url={url!r})")
            continue
        urls = pool.setdefault(city, [])
        if url not in urls:
            urls.append(url)

    if skipped:
        logger.info(f"Skipped {skipped} invalid review-link rows")
    return {city: tuple(urls) for city, urls in pool.items()}


class ReviewLinkResolver:
    """
    City -> review URL lookup with an explicit fallback step.

    Usage:
        resolver = ReviewLinkResolver(fallback_city="london")
        resolver.load_file("data/review-links.csv")
        resolution = resolver.resolve("Glasgow")
        resolution.url, resolution.used_fallback
    """

    def __init__(
        self,
        fallback_city: str = "london",
        pool: Optional[Mapping[str, Tuple[str, ...]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._fallback_city = fallback_city.strip().lower()
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._pool: Mapping[str, Tuple[str, ...]] = MappingProxyType({})
        if pool:
            self.replace(pool)

    @property
    def fallback_city(self) -> str:
        return self._fallback_city

    def replace(self, pool: Mapping[str, Tuple[str, ...]]) -> None:
        """Swap in a new pool. Empty URL lists are dropped."""
        cleaned = {
            city.strip().lower(): tuple(urls)
            for city, urls in pool.items()
            if city and city.strip() and urls
        }
        with self._lock:
            self._pool = MappingProxyType(cleaned)
        logger.info(f"Review link pool loaded: {len(cleaned)} cities, {self.link_count()} links")

    def load_file(self, path: Union[str, Path]) -> int:
        """Load from disk. A missing file leaves an empty pool. Returns city count."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Review links CSV not found at {path}; no review links loaded")
            self.replace({})
            return 0
        self.replace(parse_review_links(path))
        return self.city_count()

    def upload(self, content: bytes, path: Union[str, Path]) -> int:
        """
        Validate uploaded CSV bytes, persist them over path, then swap the pool.

        Nothing is written and the current pool stays active when the
        content does not parse.
        """
        pool = parse_review_links(content)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".review-links-", suffix=".csv")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        self.replace(pool)
        return len(pool)

    def _links(self, city: Optional[str]) -> Tuple[str, ...]:
        if not city:
            return ()
        return self._pool.get(city.strip().lower(), ())

    def has_links(self, city: Optional[str]) -> bool:
        return bool(self._links(city))

    def pick_link(self, city: Optional[str], allow_fallback: bool = False) -> Optional[str]:
        """Random URL for city; with allow_fallback, try the fallback city second."""
        links = self._links(city)
        if not links and allow_fallback:
            links = self._links(self._fallback_city)
        if not links:
            return None
        return self._rng.choice(links)

    def resolve(self, city: Optional[str]) -> LinkResolution:
        url = self.pick_link(city)
        if url:
            return LinkResolution(url=url, used_fallback=False)
        url = self.pick_link(self._fallback_city)
        if url:
            return LinkResolution(url=url, used_fallback=True)
        return LinkResolution(url=None)

    def city_count(self) -> int:
        return len(self._pool)

    def link_count(self) -> int:
        return sum(len(urls) for urls in self._pool.values())

    def cities(self) -> List[str]:
        return sorted(self._pool)
