"""Persistent token cache using msal-extensions storage."""

import json
import logging
import os
import sys
import tempfile
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional

from msal_extensions import (
    FilePersistence,
    KeychainPersistence,
    LibsecretPersistence,
)
from msal_extensions.persistence import BasePersistence, PersistenceNotFound
from pydantic import ValidationError

from ..models.request import CacheKey, TokenKind
from ..models.token import TokenRecord
from ..utils.clock import Clock, SystemClock
from ..utils.exceptions import TokenCacheError

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


class AtomicFilePersistence(FilePersistence):
    """Plain file persistence that replaces the file in one step.

    The new content is written to a temporary file next to the cache and
    moved over it, so readers see either the old or the new cache.
    """

    def save(self, content: str) -> None:
        location = self.get_location()
        fd, tmp_path = tempfile.mkstemp(
            dir=os.path.dirname(location) or ".",
            prefix=".tokengen-",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(content)
            os.replace(tmp_path, location)
        except BaseException:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise


def build_persistence(cache_path: Path, encrypted: bool = False) -> BasePersistence:
    """
    Choose the storage backend for the cache file.

    Args:
        cache_path: Location of the cache file
        encrypted: Whether to use the platform's encrypted storage

    Returns:
        msal-extensions persistence instance

    Raises:
        TokenCacheError: If the storage cannot be initialized
    """
    try:
        # Create cache directory if it doesn't exist
        cache_path.parent.mkdir(parents=True, exist_ok=True)

        if not encrypted:
            return AtomicFilePersistence(str(cache_path))

        if sys.platform == "win32":
            from msal_extensions import FilePersistenceWithDataProtection

            return FilePersistenceWithDataProtection(str(cache_path))
        if sys.platform == "darwin":
            return KeychainPersistence(str(cache_path), "tokengen", cache_path.stem)
        try:
            return LibsecretPersistence(
                str(cache_path),
                schema_name="tokengen",
                attributes={"app": cache_path.stem},
            )
        except Exception as e:
            # No usable secret service (headless box, no gi bindings)
            logger.warning(f"Encrypted cache unavailable, using plain file: {e}")
            return AtomicFilePersistence(str(cache_path))

    except OSError as e:
        raise TokenCacheError(f"Failed to initialize token cache: {e}") from e


class TokenCache:
    """Keyed store of token records.

    Records are loaded once, mutated in memory and written back by ``flush``,
    which is a no-op unless something changed. Use ``open_token_cache`` to get
    a cache that is flushed on every exit path.
    """

    def __init__(
        self,
        persistence: Optional[BasePersistence] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the cache.

        Args:
            persistence: Backing storage (None for a memory-only cache)
            clock: Time source for validity checks
        """
        self.persistence = persistence
        self.clock = clock or SystemClock()
        self._records: dict[str, TokenRecord] = {}
        self._dirty = False

    def load(self) -> None:
        """Read all records from storage. Unreadable storage yields an empty cache."""
        if self.persistence is None:
            return

        location = self.persistence.get_location()
        try:
            raw = self.persistence.load()
        except PersistenceNotFound:
            logger.debug(f"No token cache at {location}")
            return
        except Exception as e:
            logger.warning(f"Unable to load token cache at '{location}': {e}")
            return

        try:
            data = json.loads(raw) if raw else {}
            entries = data.get("records", {}) if isinstance(data, dict) else {}
            self._records = {
                key: TokenRecord.model_validate(value) for key, value in entries.items()
            }
        except (ValueError, AttributeError, ValidationError) as e:
            logger.warning(f"Ignoring corrupt token cache at '{location}': {e}")
            self._records = {}
            return

        logger.debug(f"Loaded {len(self._records)} cached token record(s)")

    def lookup(self, key: CacheKey) -> Optional[TokenRecord]:
        """Record stored under key, valid or not."""
        return self._records.get(str(key))

    def is_valid(
        self,
        record: Optional[TokenRecord],
        kind: TokenKind,
        skew_margin: timedelta = timedelta(seconds=60),
    ) -> bool:
        """True iff the record has a token of `kind` expiring after now + margin."""
        if record is None or not record.token(kind):
            return False
        expires_at = record.expires_at(kind)
        if expires_at is None:
            return False
        return expires_at > self.clock.now() + skew_margin

    def store(self, key: CacheKey, record: TokenRecord) -> None:
        """Replace whatever is stored under key."""
        self._records[str(key)] = record
        self._dirty = True

    def remove(self, key: CacheKey) -> bool:
        removed = self._records.pop(str(key), None) is not None
        self._dirty = self._dirty or removed
        return removed

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        self._dirty = True
        return count

    def __len__(self) -> int:
        return len(self._records)

    def _is_worth_keeping(self, record: TokenRecord) -> bool:
        if record.refresh_token:
            return True
        return any(
            self.is_valid(record, kind, timedelta(0)) for kind in TokenKind
        )

    def flush(self) -> bool:
        """
        Write records back if anything changed.

        Records with neither a live token nor a refresh token are dropped.

        Returns:
            True if storage was written
        """
        if not self._dirty or self.persistence is None:
            return False

        records = {
            key: record
            for key, record in self._records.items()
            if self._is_worth_keeping(record)
        }
        payload = {
            "version": CACHE_FORMAT_VERSION,
            "records": {
                key: record.model_dump(mode="json") for key, record in records.items()
            },
        }

        location = self.persistence.get_location()
        try:
            self.persistence.save(json.dumps(payload, indent=2))
        except Exception as e:
            logger.warning(f"Unable to save token cache to '{location}': {e}")
            return False

        self._records = records
        self._dirty = False
        logger.debug(f"Saved {len(records)} token record(s) to {location}")
        return True


@contextmanager
def open_token_cache(
    cache_path: Path,
    encrypted: bool = False,
    clock: Optional[Clock] = None,
) -> Iterator[TokenCache]:
    """
    Load the cache and flush it when the block exits, even on error.

    Unusable storage degrades to a memory-only cache for this invocation.
    """
    try:
        persistence = build_persistence(cache_path, encrypted)
    except TokenCacheError as e:
        logger.warning(f"{e}; continuing without a persistent cache")
        persistence = None

    cache = TokenCache(persistence, clock=clock)
    cache.load()
    try:
        yield cache
    finally:
        cache.flush()
