"""
Tests for live comment synchronization
"""
import asyncio

import pytest

from ecoreport.core.exceptions import FetchFailed, Stage, SubmissionError, Unauthenticated, ValidationFailed
from ecoreport.crowdsource import CommentSyncEngine, ReportSubmitter, SyncState


class TestCommentSyncEngine:
    """Test suite for CommentSyncEngine."""

    @pytest.fixture(autouse=True)
    def setup(self, service, clock, session, png_bytes):
        self.service = service
        self.session = session
        self.submitter = ReportSubmitter(service, clock=clock)
        self.image = png_bytes

    async def new_report(self):
        report = await self.submitter.submit(self.session, self.image, "pollution")
        return report.id

    async def fresh_fetch(self, report_id):
        return await CommentSyncEngine(self.service, report_id).refresh()

    def subscriptions(self):
        return self.service.changes.active_subscriptions("comments")

    @pytest.mark.asyncio
    async def test_open_fetches_then_subscribes(self):
        """Test entering the view loads comments and opens one subscription."""
        report_id = await self.new_report()
        await self.service.store.insert(
            "comments", {"report_id": report_id, "user_id": "user-bob", "text": "Seen it too"}
        )

        async with CommentSyncEngine(self.service, report_id) as view:
            assert view.state == SyncState.SUBSCRIBED
            assert [c.text for c in view.comments] == ["Seen it too"]
            assert len(self.subscriptions()) == 1
            assert self.subscriptions()[0].filters == {"report_id": report_id}

        assert view.state == SyncState.UNSUBSCRIBED
        assert self.subscriptions() == []

    @pytest.mark.asyncio
    async def test_comments_oldest_first(self):
        """Test comments are ordered by created_at ascending."""
        report_id = await self.new_report()

        async with CommentSyncEngine(self.service, report_id) as view:
            for text in ("first", "second", "third"):
                await view.add_comment(self.session, text)

            assert [c.text for c in view.comments] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_remote_insert_triggers_refetch(self):
        """Test a comment written elsewhere appears in an open view."""
        report_id = await self.new_report()
        updates = []

        async def on_update(comments):
            updates.append([c.text for c in comments])

        async with CommentSyncEngine(self.service, report_id, on_update=on_update) as view:
            await self.service.store.insert(
                "comments", {"report_id": report_id, "user_id": "user-bob", "text": "Still there"}
            )
            assert [c.text for c in view.comments] == ["Still there"]

        assert updates == [[], ["Still there"]]

    @pytest.mark.asyncio
    async def test_other_reports_ignored(self):
        """Test comments on another report do not trigger a refetch."""
        report_id = await self.new_report()
        other_id = await self.new_report()

        async with CommentSyncEngine(self.service, report_id) as view:
            before = view.refetch_count
            await self.service.store.insert(
                "comments", {"report_id": other_id, "user_id": "user-bob", "text": "elsewhere"}
            )
            assert view.refetch_count == before
            assert view.comments == []

    @pytest.mark.asyncio
    async def test_arbitrary_events_reconcile_to_fresh_fetch(self):
        """Test any sequence of notifications leaves the list equal to a fresh fetch."""
        report_id = await self.new_report()
        changes = self.service.changes

        async with CommentSyncEngine(self.service, report_id) as view:
            await view.add_comment(self.session, "one")
            await view.add_comment(self.session, "two")

            # out-of-band delete, announced with a partial payload
            rows = self.service.store.tables["comments"]
            rows.remove(next(r for r in rows if r["text"] == "one"))
            await changes.publish("comments", "DELETE", {"report_id": report_id})

            # malformed and duplicate payloads
            await changes.publish("comments", "UPDATE", {"report_id": report_id, "text": 42})
            await changes.publish("comments", "INSERT", {"report_id": report_id})
            await changes.publish("comments", "INSERT", {"report_id": report_id})

            assert view.comments == await self.fresh_fetch(report_id)
            assert [c.text for c in view.comments] == ["two"]

    @pytest.mark.asyncio
    async def test_add_comment_returns_stored_comment(self):
        """Test add_comment returns the server-assigned comment."""
        report_id = await self.new_report()

        async with CommentSyncEngine(self.service, report_id) as view:
            comment = await view.add_comment(self.session, "  Getting worse  ")

            assert comment.text == "Getting worse"
            assert comment.author_id == "user-alice"
            assert comment.report_id == report_id
            assert view.comments == [comment]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_comment_rejected(self, text):
        """Test blank comments fail before any insert."""
        report_id = await self.new_report()
        inserts = self.service.store.insert_calls

        async with CommentSyncEngine(self.service, report_id) as view:
            with pytest.raises(ValidationFailed):
                await view.add_comment(self.session, text)

        assert self.service.store.insert_calls == inserts

    @pytest.mark.asyncio
    async def test_comment_requires_identity(self, anonymous):
        """Test anonymous sessions cannot comment."""
        report_id = await self.new_report()

        async with CommentSyncEngine(self.service, report_id) as view:
            with pytest.raises(Unauthenticated):
                await view.add_comment(anonymous, "hello")

        assert self.service.store.tables["comments"] == []

    @pytest.mark.asyncio
    async def test_comment_insert_failure(self):
        """Test a rejected insert is a SubmissionError at the persist stage."""
        report_id = await self.new_report()
        self.service.store.insert_errors["comments"] = "rate limited"

        async with CommentSyncEngine(self.service, report_id) as view:
            with pytest.raises(SubmissionError) as exc_info:
                await view.add_comment(self.session, "hello")

        assert exc_info.value.stage == Stage.PERSIST
        assert exc_info.value.partial is False

    @pytest.mark.asyncio
    async def test_one_subscription_across_reentries(self):
        """Test repeated enter/exit cycles never accumulate subscriptions."""
        report_id = await self.new_report()
        view = CommentSyncEngine(self.service, report_id)

        for _ in range(3):
            async with view:
                await view.open()
                assert len(self.subscriptions()) == 1
            assert self.subscriptions() == []

    @pytest.mark.asyncio
    async def test_subscription_released_on_error(self):
        """Test leaving the view through an exception releases the subscription."""
        report_id = await self.new_report()

        with pytest.raises(RuntimeError):
            async with CommentSyncEngine(self.service, report_id):
                assert len(self.subscriptions()) == 1
                raise RuntimeError("view crashed")

        assert self.subscriptions() == []

    @pytest.mark.asyncio
    async def test_open_failure_subscribes_nothing(self):
        """Test a failed initial fetch raises FetchFailed without subscribing."""
        report_id = await self.new_report()
        self.service.store.select_error = "offline"

        with pytest.raises(FetchFailed):
            async with CommentSyncEngine(self.service, report_id):
                pass

        assert self.subscriptions() == []

    @pytest.mark.asyncio
    async def test_refetch_failure_keeps_list(self):
        """Test a failed refetch triggered by a notification keeps the last list."""
        report_id = await self.new_report()

        async with CommentSyncEngine(self.service, report_id) as view:
            await view.add_comment(self.session, "kept")
            self.service.store.select_error = "offline"
            await self.service.changes.publish("comments", "UPDATE", {"report_id": report_id})

            assert [c.text for c in view.comments] == ["kept"]
            assert view.state == SyncState.SUBSCRIBED

    @pytest.mark.asyncio
    async def test_stale_refetch_discarded(self):
        """Test an older refetch finishing last does not overwrite a newer one."""
        report_id = await self.new_report()
        store = self.service.store
        original_select = store.select
        gate = asyncio.Event()
        calls = []

        async def gated_select(table, filters=None, order=None):
            rows = await original_select(table, filters, order)
            calls.append(len(rows))
            if len(calls) == 1:
                await gate.wait()
            return rows

        async with CommentSyncEngine(self.service, report_id) as view:
            store.select = gated_select
            slow = asyncio.create_task(view.refresh())
            await asyncio.sleep(0)
            assert view.state == SyncState.RECONCILING

            await store.insert("comments", {"report_id": report_id, "user_id": "user-bob", "text": "new"})
            gate.set()
            await slow

            assert [c.text for c in view.comments] == ["new"]
            assert view.state == SyncState.SUBSCRIBED

    @pytest.mark.asyncio
    async def test_refetch_after_close_discarded(self):
        """Test results arriving after the view closed are not applied."""
        report_id = await self.new_report()
        store = self.service.store
        original_select = store.select
        gate = asyncio.Event()

        view = CommentSyncEngine(self.service, report_id)
        await view.open()

        async def gated_select(table, filters=None, order=None):
            rows = await original_select(table, filters, order)
            await gate.wait()
            return rows

        await store.insert("comments", {"report_id": report_id, "user_id": "user-bob", "text": "late"})
        assert [c.text for c in view.comments] == ["late"]

        store.select = gated_select
        store.tables["comments"].clear()
        pending = asyncio.create_task(view.refresh())
        await asyncio.sleep(0)
        view.close()
        gate.set()
        await pending

        assert [c.text for c in view.comments] == ["late"]
        assert view.state == SyncState.UNSUBSCRIBED

    @pytest.mark.asyncio
    async def test_close_during_open_subscribes_nothing(self):
        """Test leaving the view before the first fetch returns leaves no listener."""
        report_id = await self.new_report()
        store = self.service.store
        original_select = store.select
        started = asyncio.Event()
        gate = asyncio.Event()

        async def gated_select(table, filters=None, order=None):
            started.set()
            await gate.wait()
            return await original_select(table, filters, order)

        store.select = gated_select
        view = CommentSyncEngine(self.service, report_id)
        opening = asyncio.create_task(view.open())
        await started.wait()
        view.close()
        gate.set()
        await opening

        assert self.subscriptions() == []
        assert view.state == SyncState.UNSUBSCRIBED
        assert not view.is_open

        store.select = original_select
        async with view:
            assert len(self.subscriptions()) == 1
        assert self.subscriptions() == []

    @pytest.mark.asyncio
    async def test_unreadable_stored_comment(self):
        """Test a stored row that cannot be read back is a partial SubmissionError."""
        report_id = await self.new_report()
        store = self.service.store
        original_insert = store.insert

        async def insert_without_timestamp(table, record):
            row = await original_insert(table, record)
            row.pop("created_at")
            return row

        store.insert = insert_without_timestamp

        async with CommentSyncEngine(self.service, report_id) as view:
            with pytest.raises(SubmissionError) as exc_info:
                await view.add_comment(self.session, "hello")

            assert [c.text for c in view.comments] == ["hello"]

        assert exc_info.value.stage == Stage.PERSIST
        assert exc_info.value.partial is True

    def test_report_id_required(self, service):
        """Test an engine needs a report id."""
        with pytest.raises(ValueError):
            CommentSyncEngine(service, "")
