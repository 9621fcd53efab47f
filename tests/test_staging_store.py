"""
ImageStage v1.0 - Unit Tests
============================
Test suite for staging store
"""

import asyncio
import gc
import os
import sys
import pytest

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from conftest import FakeGrantProvider, FakeTransport
from staging_store import StagingStore, is_handle
from upload_commit import UploadFailed

@pytest.fixture
def store():
    return StagingStore()

@pytest.fixture
def handle(store, derivation, origin_file):
    return store.stage(b'jpeg-bytes', derivation, 'venues', origin_file)

# === STAGE ===

def test_stage_registers_entry(store, handle):
    assert is_handle(handle)
    assert store.is_handle(handle)
    entry = store.get(handle)
    assert entry.binary == b'jpeg-bytes'
    assert entry.context_id == 'venues'
    assert entry.data_url_preview.startswith('data:image/jpeg;base64,')
    assert not entry.is_committed
    assert handle in store
    assert len(store) == 1

def test_handles_are_unique(derivation, origin_file):
    store = StagingStore(clock=lambda: 1700000000.0)
    handles = {store.stage(b'x', derivation, 'venues', origin_file) for _ in range(100)}
    assert len(handles) == 100
    assert store.count() == 100

@pytest.mark.parametrize("value,expected", [
    ('temp_1700000000000_abc123def', True),
    ('uploads/venues/photo.jpg', False),
    ('temp_', False),
    ('temp_abc_123', False),
    ('', False),
    (None, False),
])
def test_is_handle(value, expected):
    assert is_handle(value) is expected

def test_custom_prefix(derivation, origin_file):
    store = StagingStore(handle_prefix='staged_')
    h = store.stage(b'x', derivation, 'venues', origin_file)
    assert h.startswith('staged_')
    assert store.is_handle(h)
    assert not store.is_handle('temp_1_abc')

# === COMMIT ===

def test_commit_is_idempotent(store, handle, grant_provider, transport):
    first = asyncio.run(store.commit(handle, grant_provider, transport))
    second = asyncio.run(store.commit(handle, grant_provider, transport))

    assert first == second == 'uploads/object-1.jpg'
    assert len(grant_provider.calls) == 1
    assert len(transport.calls) == 1
    assert store.get(handle).committed_key == first

def test_overlapping_commits_share_one_upload(store, handle, grant_provider):
    transport = FakeTransport(delay=0.02)

    async def scenario():
        return await asyncio.gather(*(store.commit(handle, grant_provider, transport) for _ in range(3)))

    keys = asyncio.run(scenario())
    assert len(set(keys)) == 1
    assert len(grant_provider.calls) == 1
    assert len(transport.calls) == 1

def test_commit_transfers_binary(store, handle, grant_provider, transport):
    asyncio.run(store.commit(handle, grant_provider, transport))
    url, binary, content_type, timeout = transport.calls[0]
    assert url == 'https://storage.test/put/1'
    assert binary == b'jpeg-bytes'
    assert content_type == 'image/jpeg'
    assert timeout == 300

def test_committed_entry_is_frozen(store, handle, grant_provider, transport):
    asyncio.run(store.commit(handle, grant_provider, transport))
    entry = store.get(handle)
    with pytest.raises(AttributeError):
        entry.binary = b'other'
    with pytest.raises(AttributeError):
        entry.committed_key = 'uploads/other.jpg'

def test_failed_commit_keeps_entry(store, handle, grant_provider):
    failing = FakeTransport(fail=True)
    with pytest.raises(UploadFailed) as exc_info:
        asyncio.run(store.commit(handle, grant_provider, failing))
    assert exc_info.value.handle == handle
    assert store.get(handle) is not None
    assert not store.get(handle).is_committed

    # Retry is a fresh attempt
    key = asyncio.run(store.commit(handle, grant_provider, FakeTransport()))
    assert key == 'uploads/object-2.jpg'
    assert len(grant_provider.calls) == 2

def test_commit_unknown_handle(store, grant_provider, transport):
    with pytest.raises(UploadFailed, match="not found"):
        asyncio.run(store.commit('temp_1_abc', grant_provider, transport))
    assert grant_provider.calls == []

# === DISCARD ===

def test_discard(store, handle):
    store.discard(handle)
    assert store.get(handle) is None
    assert handle not in store
    # Unknown handles are ignored
    store.discard(handle)
    store.discard('temp_1_abc')

def test_commit_after_discard_of_committed_returns_key(store, handle, grant_provider, transport):
    key = asyncio.run(store.commit(handle, grant_provider, transport))
    store.discard(handle)

    assert store.get(handle) is None
    assert store.committed_key(handle) == key
    assert asyncio.run(store.commit(handle, grant_provider, transport)) == key
    assert len(transport.calls) == 1

def test_discard_during_commit(store, handle, grant_provider):
    transport = FakeTransport(delay=0.02)

    async def scenario():
        task = asyncio.ensure_future(store.commit(handle, grant_provider, transport))
        await asyncio.sleep(0)
        store.discard(handle)
        return await task

    key = asyncio.run(scenario())
    assert key == 'uploads/object-1.jpg'
    assert handle not in store
    assert store.committed_key(handle) == key

def test_discard_uncommitted_forgets_handle(store, handle, grant_provider, transport):
    store.discard(handle)
    assert store.committed_key(handle) is None
    with pytest.raises(UploadFailed):
        asyncio.run(store.commit(handle, grant_provider, transport))

# === MAINTENANCE ===

def test_clear_expired(derivation, origin_file):
    now = [1000.0]
    store = StagingStore(clock=lambda: now[0])
    old = store.stage(b'old', derivation, 'venues', origin_file)
    now[0] += 100
    fresh = store.stage(b'fresh', derivation, 'venues', origin_file)

    assert store.clear_expired(max_age=50) == 1
    assert old not in store
    assert fresh in store
    assert store.handles() == [fresh]

def test_clear_all(store, derivation, origin_file):
    for _ in range(3):
        store.stage(b'x', derivation, 'venues', origin_file)
    store.clear_all()
    assert len(store) == 0
    assert store.handles() == []

def test_clear_all_forgets_released_keys(store, handle, grant_provider, transport):
    asyncio.run(store.commit(handle, grant_provider, transport))
    store.discard(handle)
    assert store.released_count() == 1

    store.clear_all()
    assert store.released_count() == 0
    assert store.committed_key(handle) is None

def test_clear_expired_prunes_old_released_keys(derivation, origin_file, grant_provider, transport):
    now = [1000.0]
    store = StagingStore(clock=lambda: now[0])
    old = store.stage(b'old', derivation, 'venues', origin_file)
    asyncio.run(store.commit(old, grant_provider, transport))
    store.discard(old)

    now[0] += 10
    recent = store.stage(b'recent', derivation, 'venues', origin_file)
    asyncio.run(store.commit(recent, grant_provider, transport))
    store.discard(recent)

    now[0] += 45
    assert store.clear_expired(max_age=50) == 0
    assert store.committed_key(old) is None
    assert store.committed_key(recent) == 'uploads/object-2.jpg'
    assert store.released_count() == 1

# === ABANDONED COMMITS ===

def test_failed_commit_after_callers_cancelled_is_retrieved(store, handle, grant_provider):
    reported = []

    async def scenario():
        asyncio.get_running_loop().set_exception_handler(lambda loop, ctx: reported.append(ctx))
        caller = asyncio.ensure_future(store.commit(handle, grant_provider, FakeTransport(delay=0.02, fail=True)))
        await asyncio.sleep(0.005)
        caller.cancel()
        await asyncio.sleep(0.05)
        gc.collect()

    asyncio.run(scenario())
    assert reported == []
    assert store.get(handle) is not None
    assert not store.get(handle).is_committed

    # The handle is free for a fresh attempt
    assert asyncio.run(store.commit(handle, grant_provider, FakeTransport())) == 'uploads/object-2.jpg'
