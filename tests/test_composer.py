import pytest

from support_chat.models.conversation import Actor
from support_chat.services.composer import Composer, InputBuffer, SendContext


CUSTOMER = Actor(user_id="u1", display_name="Alice", role="customer")
SUPPORT = Actor(user_id="agent-1", display_name="Support", role="admin")


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_text_is_a_noop(store, text):
    buffer = InputBuffer(text)
    composer = Composer(store, buffer)
    assert await composer.send(text, SendContext(actor=CUSTOMER)) is None
    assert len(store) == 0
    assert buffer.text == text


@pytest.mark.asyncio
async def test_support_without_selection_is_a_noop(store):
    buffer = InputBuffer("Hi there")
    composer = Composer(store, buffer)
    assert await composer.send("Hi there", SendContext(actor=SUPPORT)) is None
    assert len(store) == 0
    assert buffer.text == "Hi there"


@pytest.mark.asyncio
async def test_customer_always_addresses_support(controlled_store):
    composer = Composer(controlled_store)
    # a selection from a customer is ignored
    message = await composer.send("Hello", SendContext(actor=CUSTOMER, selected="u2"))
    doc = controlled_store.appended[0]
    assert message is not None
    assert doc["participants"] == ["u1", "admin"]
    assert doc["receiverId"] == "admin"
    assert doc["senderName"] == "Alice"
    assert doc["createdAt"] is None
    assert doc["isRead"] is False


@pytest.mark.asyncio
async def test_support_addresses_selected_customer(controlled_store):
    composer = Composer(controlled_store)
    await composer.send("Hi there", SendContext(actor=SUPPORT, selected="u1"))
    doc = controlled_store.appended[0]
    assert doc["participants"] == ["u1", "admin"]
    assert doc["receiverId"] == "u1"
    assert doc["senderId"] == "agent-1"


@pytest.mark.asyncio
async def test_success_clears_buffer_and_returns_pending_message(store):
    buffer = InputBuffer("Hello")
    composer = Composer(store, buffer)
    message = await composer.send(None, SendContext(actor=CUSTOMER))
    assert message is not None
    assert message.text == "Hello"
    assert message.created_at is None
    assert buffer.text == ""
    assert len(store) == 1


@pytest.mark.asyncio
async def test_write_failure_keeps_text_for_retry(failing_store, caplog):
    buffer = InputBuffer("Hello")
    composer = Composer(failing_store, buffer)
    assert await composer.send("Hello", SendContext(actor=CUSTOMER)) is None
    assert buffer.text == "Hello"
    assert "Error sending message" in caplog.text
