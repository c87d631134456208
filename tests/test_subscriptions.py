import pytest

from support_chat.services.subscriptions import INBOX_VIEW, TRANSCRIPT_VIEW, SubscriptionHandle, SubscriptionManager


class Recorder:

    def __init__(self):
        self.batches = []
        self.errors = []

    async def on_update(self, handle, batch):
        self.batches.append((handle.filter_spec, [m.text for m in batch]))

    async def on_error(self, handle, exc):
        self.errors.append((handle.filter_spec, str(exc)))


@pytest.mark.asyncio
async def test_one_open_handle_per_view(controlled_store):
    manager = SubscriptionManager(controlled_store)
    rec = Recorder()
    first = await manager.open(TRANSCRIPT_VIEW, "u1", rec.on_update, rec.on_error)
    second = await manager.open(TRANSCRIPT_VIEW, "u2", rec.on_update, rec.on_error)
    inbox = await manager.open(INBOX_VIEW, "admin", rec.on_update, rec.on_error)

    assert first.closed
    assert controlled_store.latest("u1").closed
    assert not second.closed
    assert manager.active(TRANSCRIPT_VIEW) is second
    assert manager.active(INBOX_VIEW) is inbox
    assert second.generation > first.generation


@pytest.mark.asyncio
async def test_late_batch_from_previous_conversation_is_dropped(controlled_store, make_message):
    manager = SubscriptionManager(controlled_store)
    rec = Recorder()
    await manager.open(TRANSCRIPT_VIEW, "u1", rec.on_update, rec.on_error)
    old_listener = controlled_store.latest("u1")
    await manager.open(TRANSCRIPT_VIEW, "u2", rec.on_update, rec.on_error)

    await controlled_store.latest("u2").on_update([make_message("u2", "fresh", 2)])
    await old_listener.on_update([make_message("u1", "late", 1)])
    await old_listener.on_error(RuntimeError("late failure"))

    assert rec.batches == [("u2", ["fresh"])]
    assert rec.errors == []


@pytest.mark.asyncio
async def test_close_is_idempotent(controlled_store):
    manager = SubscriptionManager(controlled_store)
    rec = Recorder()
    handle = await manager.open(INBOX_VIEW, "admin", rec.on_update, rec.on_error)
    await manager.close(handle)
    await manager.close(handle)
    await manager.close(None)
    await manager.close(SubscriptionHandle(view=INBOX_VIEW, generation=99, filter_spec="admin"))
    assert handle.closed
    assert manager.active(INBOX_VIEW) is None


@pytest.mark.asyncio
async def test_close_all_stops_every_view(controlled_store, make_message):
    manager = SubscriptionManager(controlled_store)
    rec = Recorder()
    inbox = await manager.open(INBOX_VIEW, "admin", rec.on_update, rec.on_error)
    transcript = await manager.open(TRANSCRIPT_VIEW, "u1", rec.on_update, rec.on_error)
    await manager.close_all()

    assert inbox.closed and transcript.closed
    assert all(listener.closed for listener in controlled_store.listeners)
    await controlled_store.latest("admin").on_update([make_message("u1")])
    assert rec.batches == []
    assert not manager.is_current(inbox)


@pytest.mark.asyncio
async def test_open_failure_is_reported_to_the_view(controlled_store):
    controlled_store.fail_listen = True
    manager = SubscriptionManager(controlled_store)
    rec = Recorder()
    handle = await manager.open(TRANSCRIPT_VIEW, "u1", rec.on_update, rec.on_error)
    assert handle.listener is None
    assert rec.errors == [("u1", "listen refused")]
