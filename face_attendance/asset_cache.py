"""Offline cache for the app shell and model files.

One versioned bucket on disk holds every cached response. Same-origin model
files and anything cross-origin are served stale-while-revalidate; the rest
of the same-origin app shell is served cache-first.
"""

import hashlib
import json
import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from face_attendance.config import (
    APP_SHELL, ASSET_ORIGIN, CACHE_DIR, CACHE_NAME, FETCH_TIMEOUT
)

logger = logging.getLogger(__name__)

# One lock per bucket directory, shared by every CacheBucket opened on it
_bucket_locks: Dict[Path, threading.Lock] = {}
_bucket_locks_guard = threading.Lock()


def _lock_for(directory: Path) -> threading.Lock:
    with _bucket_locks_guard:
        return _bucket_locks.setdefault(directory.resolve(), threading.Lock())


@dataclass
class CachedResponse:
    """A response body plus the bits of metadata worth keeping on disk."""

    url: str
    status_code: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error for url: {self.url}")


def is_model_request(url: str) -> bool:
    """Return True if the URL points into a models/ directory."""
    try:
        return "/models/" in urlparse(url).path
    except ValueError:
        return False


class CacheBucket:
    """A named directory of cached responses keyed by URL."""

    def __init__(self, root: Path, name: str):
        self.name = name
        self.dir = Path(root) / name
        self.dir.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self.dir)

    def _paths(self, url: str) -> Tuple[Path, Path]:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self.dir / f"{digest}.json", self.dir / f"{digest}.body"

    def _read_meta(self, meta_path: Path) -> Optional[dict]:
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry {meta_path.name}: {e}")
            return None
        if not isinstance(meta, dict) or "url" not in meta or "status_code" not in meta:
            logger.warning(f"Ignoring malformed cache entry {meta_path.name}")
            return None
        return meta

    def match(self, url: str) -> Optional[CachedResponse]:
        """Return the cached response for url; unreadable entries count as a miss."""
        meta_path, body_path = self._paths(url)
        with self._lock:
            if not meta_path.exists() or not body_path.exists():
                return None
            meta = self._read_meta(meta_path)
            if meta is None:
                return None
            try:
                content = body_path.read_bytes()
            except OSError as e:
                logger.warning(f"Ignoring unreadable cache body for {url}: {e}")
                return None
        return CachedResponse(url=meta["url"], status_code=meta["status_code"],
                              content=content, headers=meta.get("headers", {}),
                              from_cache=True)

    def put(self, url: str, response: CachedResponse) -> None:
        meta_path, body_path = self._paths(url)
        meta = {
            "url": url,
            "status_code": response.status_code,
            "headers": dict(response.headers),
        }
        with self._lock:
            tmp_body = body_path.with_suffix(".body.tmp")
            tmp_body.write_bytes(response.content)
            os.replace(tmp_body, body_path)
            tmp_meta = meta_path.with_suffix(".json.tmp")
            tmp_meta.write_text(json.dumps(meta), encoding="utf-8")
            os.replace(tmp_meta, meta_path)

    def keys(self) -> List[str]:
        urls = []
        with self._lock:
            for meta_path in sorted(self.dir.glob("*.json")):
                meta = self._read_meta(meta_path)
                if meta is not None:
                    urls.append(meta["url"])
        return urls


class AssetCache:
    """Versioned response cache with cache-first and stale-while-revalidate strategies."""

    def __init__(self, origin: Optional[str] = None,
                 cache_dir: Optional[Path] = None,
                 cache_name: Optional[str] = None,
                 app_shell: Optional[List[str]] = None,
                 session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None):
        """
        Args:
            origin: Base URL of the app; relative shell entries resolve against it
            cache_dir: Directory holding bucket directories (defaults to config)
            cache_name: Current versioned bucket name (defaults to config)
            app_shell: Resources to precache on install (defaults to config)
            session: requests session used for network access
            timeout: Per-request timeout in seconds
        """
        self.origin = origin or ASSET_ORIGIN
        self.cache_dir = Path(cache_dir or CACHE_DIR)
        self.cache_name = cache_name or CACHE_NAME
        self.app_shell = list(APP_SHELL if app_shell is None else app_shell)
        self.session = session or requests.Session()
        self.timeout = timeout or FETCH_TIMEOUT

        self._pending: List[threading.Thread] = []
        self._pending_lock = threading.Lock()
        self._bucket: Optional[CacheBucket] = None

    def open(self) -> CacheBucket:
        """Open (creating if needed) the current bucket."""
        if self._bucket is None or not self._bucket.dir.exists():
            self._bucket = CacheBucket(self.cache_dir, self.cache_name)
        return self._bucket

    def resolve(self, url: str) -> str:
        return urljoin(self.origin, url)

    def is_same_origin(self, url: str) -> bool:
        target, origin = urlparse(self.resolve(url)), urlparse(self.origin)
        return (target.scheme, target.netloc) == (origin.scheme, origin.netloc)

    def install(self) -> Tuple[List[str], List[str]]:
        """
        Precache the app shell into the current bucket.

        A resource that can't be fetched is skipped with a warning; install
        itself never fails because of it.

        Returns:
            Tuple of (cached_urls, failed_urls)
        """
        bucket = self.open()
        cached, failed = [], []

        for resource in self.app_shell:
            url = self.resolve(resource)
            try:
                response = self._network(url)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.warning(f"Some shell resources failed to cache on install: {url}: {e}")
                failed.append(url)
                continue
            bucket.put(url, response)
            cached.append(url)

        logger.info(f"Installed {self.cache_name}: {len(cached)} cached, {len(failed)} failed")
        return cached, failed

    def activate(self) -> List[str]:
        """
        Delete every bucket other than the current one.

        Returns:
            Names of the deleted buckets
        """
        deleted = []
        if self.cache_dir.exists():
            for child in sorted(self.cache_dir.iterdir()):
                if child.is_dir() and child.name != self.cache_name:
                    shutil.rmtree(child)
                    deleted.append(child.name)
        if deleted:
            logger.info(f"Deleted stale cache buckets: {', '.join(deleted)}")
        return deleted

    def fetch(self, url: str, method: str = "GET") -> CachedResponse:
        """
        Fetch a resource through the cache.

        Args:
            url: Absolute URL or path relative to the app origin
            method: HTTP method; anything but GET bypasses the cache

        Returns:
            CachedResponse (from_cache tells where it came from)
        """
        url = self.resolve(url)

        if method.upper() != "GET":
            return self._network(url, method)

        if self.is_same_origin(url):
            if is_model_request(url):
                return self._stale_while_revalidate(url)
            return self._cache_first(url)

        return self._stale_while_revalidate(url)

    def wait_for_refresh(self, timeout: Optional[float] = None) -> None:
        """Block until background refreshes started so far have finished."""
        with self._pending_lock:
            pending, self._pending = self._pending, []
        for thread in pending:
            thread.join(timeout)

    def _network(self, url: str, method: str = "GET") -> CachedResponse:
        response = self.session.request(method, url, timeout=self.timeout)
        return CachedResponse(url=url, status_code=response.status_code,
                              content=response.content,
                              headers=dict(response.headers))

    def _cache_first(self, url: str) -> CachedResponse:
        bucket = self.open()
        cached = bucket.match(url)
        if cached is not None:
            return cached

        response = self._network(url)
        if response.ok:
            bucket.put(url, response)
        return response

    def _stale_while_revalidate(self, url: str) -> CachedResponse:
        bucket = self.open()
        cached = bucket.match(url)
        if cached is None:
            response = self._network(url)
            if response.ok:
                bucket.put(url, response)
            return response

        thread = threading.Thread(target=self._refresh, args=(bucket, url), daemon=True)
        with self._pending_lock:
            self._pending.append(thread)
        thread.start()
        return cached

    def _refresh(self, bucket: CacheBucket, url: str) -> None:
        try:
            response = self._network(url)
        except requests.RequestException as e:
            logger.debug(f"Background refresh failed for {url}, keeping cached copy: {e}")
            return

        if response.ok:
            bucket.put(url, response)
            logger.debug(f"Refreshed {url}")
