"""Tests for event debouncing."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from hookline.exceptions import StorageError
from hookline.models import FormEventData, PageEventData
from hookline.webhooks.debounce import Debouncer, entity_key


@pytest.fixture
def dispatcher() -> AsyncMock:
    mock = AsyncMock()
    mock.dispatch.return_value = ["dlv_1"]
    return mock


class TestEntityKey:
    def test_dict_with_id(self):
        assert entity_key("page.updated", {"id": 7}) == "page.updated:7"

    def test_float_id_normalized(self):
        assert entity_key("page.updated", {"id": 7.0}) == "page.updated:7"

    def test_model_with_id(self):
        data = PageEventData(id=3, title="t", slug="s", status="draft", author_id=1)
        assert entity_key("page.updated", data) == "page.updated:3"

    def test_form_keyed_on_submission(self):
        data = FormEventData(form_id=1, form_name="Contact", form_slug="contact", submission_id=55)
        assert entity_key("form.submitted", data) == "form.submitted:55"

    def test_no_entity(self):
        assert entity_key("media.deleted", ["a", "b"]) == "media.deleted"
        assert entity_key("media.deleted", {"name": "x"}) == "media.deleted"
        assert entity_key("media.deleted", None) == "media.deleted"


class TestDebouncer:
    """Tests for Debouncer timing behaviour."""

    @pytest.mark.asyncio
    async def test_coalesces_rapid_events(self, dispatcher):
        debouncer = Debouncer(dispatcher, interval=0.05, max_wait=1.0)
        for title in ("one", "two", "three"):
            debouncer.dispatch("page.updated", {"id": 1, "title": title})
        assert debouncer.pending_count == 1

        await asyncio.sleep(0.2)

        dispatcher.dispatch.assert_awaited_once_with("page.updated", {"id": 1, "title": "three"})
        assert debouncer.pending_count == 0

    @pytest.mark.asyncio
    async def test_different_entities_dispatched_separately(self, dispatcher):
        debouncer = Debouncer(dispatcher, interval=0.05, max_wait=1.0)
        debouncer.dispatch("page.updated", {"id": 1})
        debouncer.dispatch("page.updated", {"id": 2})
        debouncer.dispatch("page.deleted", {"id": 1})
        assert debouncer.pending_count == 3

        await asyncio.sleep(0.2)
        assert dispatcher.dispatch.await_count == 3

    @pytest.mark.asyncio
    async def test_max_wait_bounds_delay(self, dispatcher):
        debouncer = Debouncer(dispatcher, interval=0.08, max_wait=0.15)
        for i in range(15):
            debouncer.dispatch("page.updated", {"id": 1, "rev": i})
            await asyncio.sleep(0.03)

        # Updates never paused for a full interval, yet events went out
        assert dispatcher.dispatch.await_count >= 1
        await debouncer.stop()

    @pytest.mark.asyncio
    async def test_flush(self, dispatcher):
        debouncer = Debouncer(dispatcher, interval=10.0, max_wait=60.0)
        debouncer.dispatch("page.updated", {"id": 1})
        debouncer.dispatch("user.created", {"id": 9})

        assert debouncer.flush() == 2
        assert debouncer.pending_count == 0
        await asyncio.sleep(0.01)
        assert dispatcher.dispatch.await_count == 2

    @pytest.mark.asyncio
    async def test_stop_flushes_and_rejects_new_events(self, dispatcher):
        debouncer = Debouncer(dispatcher, interval=10.0, max_wait=60.0)
        debouncer.dispatch("page.updated", {"id": 1})

        await debouncer.stop()
        dispatcher.dispatch.assert_awaited_once_with("page.updated", {"id": 1})

        with pytest.raises(RuntimeError):
            debouncer.dispatch("page.updated", {"id": 2})

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_logged_not_raised(self, dispatcher):
        dispatcher.dispatch.side_effect = StorageError("locked")
        debouncer = Debouncer(dispatcher, interval=10.0, max_wait=60.0)
        debouncer.dispatch("page.updated", {"id": 1})

        await debouncer.stop()
        dispatcher.dispatch.assert_awaited_once()
