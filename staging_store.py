"""
ImageStage v1.0 - Staging Store
===============================
In-memory registry of staged images awaiting commit
"""

import asyncio
import re
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple
import config
from crop_engine import to_data_url
from logger import get_logger
from models import DerivedImage, SourceFile, StagedEntry
from upload_commit import GrantProvider, Transport, UploadFailed, upload_entry

logger = get_logger(__name__)

_HANDLE_BODY = re.compile(r'^\d+_[0-9a-f]+$')

def is_handle(value, prefix: str = config.HANDLE_PREFIX) -> bool:
    """Structural test: staging handle (temp_<ms>_<hex>) vs durable storage key"""
    if not isinstance(value, str) or not value.startswith(prefix):
        return False
    return bool(_HANDLE_BODY.match(value[len(prefix):]))

class StagingStore:
    """
    Registry mapping temporary handles to staged images

    All mutation goes through stage / commit / discard. Entries are never
    collected automatically; owners must discard what they staged.
    """

    def __init__(self, handle_prefix: str = config.HANDLE_PREFIX, clock: Callable[[], float] = time.time):
        self._prefix = handle_prefix
        self._clock = clock
        self._entries: Dict[str, StagedEntry] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        # handle -> (key, released_at) for committed entries discarded afterwards
        self._released: Dict[str, Tuple[str, float]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def stage(
        self,
        binary: bytes,
        derivation: DerivedImage,
        context_id: str,
        origin_file: SourceFile,
        data_url_preview: Optional[str] = None
    ) -> str:
        """Insert a new entry and return its fresh handle"""
        handle = self._new_handle()
        if data_url_preview is None:
            data_url_preview = to_data_url(binary, derivation.content_type)
        self._entries[handle] = StagedEntry(
            handle=handle,
            binary=binary,
            data_url_preview=data_url_preview,
            origin_file=origin_file,
            derivation=derivation,
            context_id=context_id,
            created_at=self._clock()
        )
        logger.info(f"Staged {handle} ({derivation.width}x{derivation.height}) for '{context_id}'")
        return handle

    def is_handle(self, value) -> bool:
        return is_handle(value, self._prefix)

    def get(self, handle: str) -> Optional[StagedEntry]:
        return self._entries.get(handle)

    def committed_key(self, handle: str) -> Optional[str]:
        entry = self._entries.get(handle)
        if entry is not None:
            return entry.committed_key
        released = self._released.get(handle)
        return released[0] if released else None

    async def commit(
        self,
        handle: str,
        grant_provider: GrantProvider,
        transport: Optional[Transport] = None
    ) -> str:
        """
        Exchange a handle for its durable key, uploading at most once

        Overlapping calls for the same handle share one in-flight upload;
        calls after success return the stored key without network access.

        Raises:
            UploadFailed: Unknown handle or failed upload (entry stays staged)
        """
        key = self.committed_key(handle)
        if key is not None:
            return key

        task = self._pending.get(handle)
        if task is None or task.done():
            entry = self._entries.get(handle)
            if entry is None:
                raise UploadFailed(f"Staged image not found: {handle}", handle)
            # Registered before the first await so re-entrant calls join it
            task = asyncio.ensure_future(self._upload(entry, grant_provider, transport))
            self._pending[handle] = task
            task.add_done_callback(lambda done: self._finish(handle, done))
        else:
            logger.debug(f"Joining in-flight commit of {handle}")

        return await asyncio.shield(task)

    async def _upload(self, entry: StagedEntry, grant_provider, transport) -> str:
        key = await upload_entry(entry, grant_provider, transport)
        entry.committed_key = key
        if entry.handle not in self._entries:
            logger.warning(f"{entry.handle} was discarded while committing")
            self._release(entry.handle, key)
        logger.info(f"Committed {entry.handle} -> {key}")
        return key

    def _finish(self, handle: str, task: asyncio.Future) -> None:
        if self._pending.get(handle) is task:
            del self._pending[handle]
        # Retrieved here so a failure nobody is awaiting any more is not reported as lost
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Commit of {handle} ended with {task.exception()!r}")

    def _release(self, handle: str, key: str) -> None:
        self._released[handle] = (key, self._clock())

    def discard(self, handle: str) -> None:
        """Remove an entry and its preview; unknown handles are ignored"""
        entry = self._entries.pop(handle, None)
        if entry is None:
            return
        if entry.committed_key is not None:
            self._release(handle, entry.committed_key)
        logger.info(f"Discarded {handle}")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def clear_all(self) -> None:
        """Discard every entry and forget the keys of released ones"""
        for handle in list(self._entries):
            self.discard(handle)
        self._released.clear()
        logger.info("Cleared all staged images")

    def clear_expired(self, max_age: float = config.STAGED_MAX_AGE) -> int:
        """
        Discard entries older than max_age seconds that are not being committed

        Released keys older than max_age are forgotten too. Returns the
        number of discarded entries.
        """
        now = self._clock()
        expired = [
            handle for handle, entry in self._entries.items()
            if now - entry.created_at >= max_age and handle not in self._pending
        ]
        for handle in expired:
            self.discard(handle)
        stale = [h for h, (_, released_at) in self._released.items() if now - released_at >= max_age]
        for handle in stale:
            del self._released[handle]
        if expired:
            logger.info(f"Removed {len(expired)} expired staged images")
        return len(expired)

    def released_count(self) -> int:
        return len(self._released)

    def handles(self) -> List[str]:
        return list(self._entries)

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, handle) -> bool:
        return handle in self._entries

    def _new_handle(self) -> str:
        while True:
            handle = f"{self._prefix}{int(self._clock() * 1000)}_{uuid.uuid4().hex[:9]}"
            if handle not in self._entries and handle not in self._released:
                return handle
