"""
Tests for services/batch_processor.py and services/batch_writer.py

Test categories:
  1. FULL PIPELINE (counters, earnings, totals)
  2. SUPERSESSION (second batch for a period replaces the first)
  3. START CONTROL (duplicate triggers, finished batches)
  4. FAILURES AND RESUME
  5. WRITE PIPELINE (progress events, deterministic ids)
"""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from commission_engine.models.bonus import Bonus
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.manager import Manager, ManagerType
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch, BatchStatus, PipelineStage
from commission_engine.services import batch_writer
from commission_engine.services.batch_management_service import BatchManagementService
from commission_engine.services.batch_processor import BatchNotFoundError, BatchProcessor
from commission_engine.services.batch_writer import BatchWritePipeline, transaction_id
from commission_engine.services.sheet_rows import RowSourceError
from commission_engine.services.supersession_service import SupersessionService
from tests.factories import InMemoryRowSource, make_row, money


PERIOD = "202508"


async def create_batch(session_factory, source: str, period: str = PERIOD):
    async with session_factory() as db:
        batch = await BatchManagementService(db).create_batch(period, source)
        await db.commit()
        return batch.id


async def get_batch(session_factory, batch_id) -> UploadBatch:
    async with session_factory() as db:
        return await db.get(UploadBatch, batch_id)


async def earnings_by_handle(session_factory, period: str = PERIOD):
    async with session_factory() as db:
        result = await db.execute(
            select(Manager.handle, ManagerEarnings)
            .join(ManagerEarnings, ManagerEarnings.manager_id == Manager.id)
            .where(ManagerEarnings.period == period)
        )
        return {handle: earnings for handle, earnings in result.all()}


def reference_rows():
    return [
        make_row(1, "Live Lisa", "creator_1", "2000", "NOPS"),
        make_row(2, "Team Tom", "creator_2", "1500", "NP", ManagerType.TEAM),
        make_row(3, "@live lisa", "creator_3", "800"),
        make_row(4, "Live Lisa", "creator_4", "0"),
        make_row(5, "Live Lisa", None, "500"),
        make_row(6, "Live Lisa", "creator_6", "-5"),
    ]


# ===========================================================================
# 1. Full pipeline
# ===========================================================================

class TestFullPipeline:

    async def test_batch_completes_with_earnings(self, session_factory):
        source = InMemoryRowSource({"aug.xlsx": reference_rows()})
        processor = BatchProcessor(session_factory, source, chunk_size=2)
        batch_id = await create_batch(session_factory, "aug.xlsx")

        result = await processor.process(batch_id)

        assert result.accepted is True
        assert result.status == BatchStatus.COMPLETED.value

        batch = await get_batch(session_factory, batch_id)
        assert batch.status == BatchStatus.COMPLETED.value
        assert batch.stage == PipelineStage.DONE.value
        assert batch.progress == 100
        assert batch.is_active is True
        assert batch.is_processing is False
        assert batch.total_rows == 6
        assert batch.processed_rows == 3
        assert batch.skipped_rows == 3
        assert batch.failed_rows == 0
        assert batch.chunks_committed == 3
        assert batch.total_revenue == money("4300")
        assert batch.total_commissions == money("669")
        assert batch.total_bonuses == money("1010")
        assert batch.managers_processed == 2
        assert batch.error is None

        earnings = await earnings_by_handle(session_factory)
        lisa = earnings["live lisa"]
        assert lisa.base_commission == money("333")
        assert lisa.milestone_payouts == money("725")
        assert lisa.extras == money("0")
        assert lisa.total_earnings == money("1058")
        assert lisa.total_gross == money("2800")
        assert lisa.total_deductions == money("1690")
        assert lisa.transaction_count == 2
        assert lisa.creator_count == 2
        assert lisa.batch_id == batch_id

        tom = earnings["team tom"]
        assert tom.base_commission == money("336")
        assert tom.milestone_payouts == money("285")
        assert tom.total_earnings == money("621")

    async def test_lifetime_total_matches_earnings(self, session_factory):
        source = InMemoryRowSource({"aug.xlsx": reference_rows()})
        await BatchProcessor(session_factory, source).process(await create_batch(session_factory, "aug.xlsx"))

        source.add("sep.xlsx", [make_row(1, "Live Lisa", "creator_1", "100")])
        await BatchProcessor(session_factory, source).process(
            await create_batch(session_factory, "sep.xlsx", period="202509")
        )

        async with session_factory() as db:
            lisa = (await db.execute(select(Manager).where(Manager.handle == "live lisa"))).scalar_one()
            assert lisa.lifetime_total == money("1088")

    async def test_manager_type_recorded_on_transaction(self, session_factory):
        source = InMemoryRowSource({"aug.xlsx": reference_rows()})
        batch_id = await create_batch(session_factory, "aug.xlsx")
        await BatchProcessor(session_factory, source).process(batch_id)

        async with session_factory() as db:
            result = await db.execute(select(Transaction).order_by(Transaction.row_index))
            txns = result.scalars().all()

        assert [t.manager_type for t in txns] == ["LIVE", "TEAM", "LIVE"]
        assert [t.milestones_achieved for t in txns] == ["NOPS", "NP", ""]
        assert txns[0].id == transaction_id(batch_id, 1)


# ===========================================================================
# 2. Supersession
# ===========================================================================

class TestSupersession:

    async def test_second_batch_replaces_first(self, session_factory):
        source = InMemoryRowSource({
            "aug-v1.xlsx": [
                make_row(1, "Live Lisa", "creator_1", "1000"),
                make_row(2, "Old Oscar", "creator_2", "500", "N"),
            ],
            "aug-v2.xlsx": [
                make_row(1, "Live Lisa", "creator_1", "2000"),
                make_row(2, "Team Tom", "creator_2", "500", manager_type=ManagerType.TEAM),
            ],
        })
        processor = BatchProcessor(session_factory, source)

        first_id = await create_batch(session_factory, "aug-v1.xlsx")
        await processor.process(first_id)
        second_id = await create_batch(session_factory, "aug-v2.xlsx")
        await processor.process(second_id)

        first = await get_batch(session_factory, first_id)
        assert first.status == BatchStatus.SUPERSEDED.value
        assert first.is_active is False
        assert first.superseded_by_id == second_id
        assert first.superseded_at is not None

        async with session_factory() as db:
            batch_ids = (await db.execute(
                select(Transaction.batch_id).where(Transaction.period == PERIOD).distinct()
            )).scalars().all()
            assert batch_ids == [second_id]

            bonus_batches = (await db.execute(select(Bonus.batch_id).distinct())).scalars().all()
            assert first_id not in bonus_batches

            txn_base = (await db.execute(
                select(func.sum(Transaction.base_commission)).where(Transaction.period == PERIOD)
            )).scalar()
            earnings_base = (await db.execute(
                select(func.sum(ManagerEarnings.base_commission)).where(ManagerEarnings.period == PERIOD)
            )).scalar()
            assert money(txn_base) == money(earnings_base) == money("775")

            oscar = (await db.execute(select(Manager).where(Manager.handle == "old oscar"))).scalar_one()
            assert oscar.lifetime_total == money("0")

        earnings = await earnings_by_handle(session_factory)
        assert set(earnings) == {"live lisa", "team tom"}
        assert earnings["live lisa"].base_commission == money("600")
        assert earnings["team tom"].base_commission == money("175")
        assert all(e.batch_id == second_id for e in earnings.values())

    async def test_only_one_active_batch_per_period(self, session_factory):
        source = InMemoryRowSource({
            "a.xlsx": [make_row(1)],
            "b.xlsx": [make_row(1)],
            "c.xlsx": [make_row(1)],
        })
        processor = BatchProcessor(session_factory, source)
        for name in ("a.xlsx", "b.xlsx", "c.xlsx"):
            await processor.process(await create_batch(session_factory, name))

        async with session_factory() as db:
            active = (await db.execute(
                select(func.count(UploadBatch.id)).where(UploadBatch.period == PERIOD, UploadBatch.is_active == True)  # noqa: E712
            )).scalar()
            assert active == 1

    async def test_refused_while_other_batch_processing(self, session_factory):
        source = InMemoryRowSource({"a.xlsx": [make_row(1)], "b.xlsx": [make_row(1)]})
        processor = BatchProcessor(session_factory, source)

        stuck_id = await create_batch(session_factory, "a.xlsx")
        assert (await processor.start_processing(stuck_id)).accepted

        new_id = await create_batch(session_factory, "b.xlsx")
        result = await processor.process(new_id)

        assert result.status == BatchStatus.FAILED.value
        new_batch = await get_batch(session_factory, new_id)
        assert "still processing" in new_batch.error
        assert new_batch.is_processing is False
        assert new_batch.chunks_committed == 0

        stuck = await get_batch(session_factory, stuck_id)
        assert stuck.status == BatchStatus.DOWNLOADING.value

        async with session_factory() as db:
            assert (await db.execute(select(func.count(Transaction.id)))).scalar() == 0


# ===========================================================================
# 3. Start control
# ===========================================================================

class TestStartControl:

    async def test_duplicate_trigger_is_noop(self, session_factory):
        source = InMemoryRowSource({"aug.xlsx": [make_row(1)]})
        processor = BatchProcessor(session_factory, source)
        batch_id = await create_batch(session_factory, "aug.xlsx")

        first = await processor.start_processing(batch_id)
        second = await processor.start_processing(batch_id)

        assert first.accepted is True
        assert second.accepted is False
        assert second.status == BatchStatus.DOWNLOADING.value

        await processor.run(batch_id)
        assert source.loads == 1

    async def test_completed_batch_not_restarted(self, session_factory):
        source = InMemoryRowSource({"aug.xlsx": [make_row(1)]})
        processor = BatchProcessor(session_factory, source)
        batch_id = await create_batch(session_factory, "aug.xlsx")
        await processor.process(batch_id)

        result = await processor.start_processing(batch_id)

        assert result.accepted is False
        assert result.status == BatchStatus.COMPLETED.value
        assert source.loads == 1

    async def test_claim_is_atomic(self, session_factory):
        batch_id = await create_batch(session_factory, "aug.xlsx")

        async with session_factory() as db:
            assert await SupersessionService(db).claim_processing(batch_id) is True
            assert await SupersessionService(db).claim_processing(batch_id) is False
            await db.commit()

    async def test_unknown_batch(self, session_factory):
        with pytest.raises(BatchNotFoundError):
            await BatchProcessor(session_factory, InMemoryRowSource()).start_processing(uuid.uuid4())


# ===========================================================================
# 4. Failures and resume
# ===========================================================================

class FailingRowSource:
    async def load_rows(self, batch):
        raise RowSourceError(f"Source file not found: {batch.source}")


class TestFailures:

    async def test_row_source_failure_marks_batch_failed(self, session_factory):
        batch_id = await create_batch(session_factory, "missing.xlsx")

        result = await BatchProcessor(session_factory, FailingRowSource()).process(batch_id)

        assert result.status == BatchStatus.FAILED.value
        batch = await get_batch(session_factory, batch_id)
        assert "Source file not found" in batch.error
        assert batch.is_processing is False
        assert batch.failed_at is not None

    async def test_chunk_failure_then_resume(self, session_factory, monkeypatch):
        rows = [
            make_row(1, "Live Lisa", "creator_1", "100"),
            make_row(2, "Live Lisa", "creator_2", "200"),
            make_row(3, "Live Lisa", "creator_3", "666"),
            make_row(4, "Team Tom", "creator_4", "400", manager_type=ManagerType.TEAM),
        ]
        source = InMemoryRowSource({"aug.xlsx": rows})
        processor = BatchProcessor(session_factory, source, chunk_size=2)
        batch_id = await create_batch(session_factory, "aug.xlsx")

        original = batch_writer.calculate_row

        def flaky(gross, achieved, manager_type, rates):
            if gross == Decimal("666"):
                raise RuntimeError("disk on fire")
            return original(gross, achieved, manager_type, rates)

        monkeypatch.setattr(batch_writer, "calculate_row", flaky)
        result = await processor.process(batch_id)

        assert result.status == BatchStatus.FAILED.value
        batch = await get_batch(session_factory, batch_id)
        assert "disk on fire" in batch.error
        assert "Chunk 1" in batch.error
        assert batch.chunks_committed == 1
        assert batch.processed_rows == 2

        async with session_factory() as db:
            assert (await db.execute(select(func.count(Transaction.id)))).scalar() == 2
            # Rolled-back chunk created no identities
            assert (await db.execute(
                select(func.count(Manager.id)).where(Manager.handle == "team tom")
            )).scalar() == 0

        monkeypatch.setattr(batch_writer, "calculate_row", original)
        result = await processor.process(batch_id)

        assert result.accepted is True
        assert result.status == BatchStatus.COMPLETED.value
        batch = await get_batch(session_factory, batch_id)
        assert batch.processed_rows == 4
        assert batch.chunks_committed == 2
        assert batch.error is None

        async with session_factory() as db:
            assert (await db.execute(select(func.count(Transaction.id)))).scalar() == 4

        earnings = await earnings_by_handle(session_factory)
        assert earnings["live lisa"].base_commission == money("289.80")
        assert earnings["team tom"].base_commission == money("140")

    async def test_row_computation_error_is_recorded_and_skipped(self, session_factory, monkeypatch):
        original = batch_writer.calculate_row

        def picky(gross, achieved, manager_type, rates):
            if gross == Decimal("13"):
                raise ValueError("unlucky gross")
            return original(gross, achieved, manager_type, rates)

        monkeypatch.setattr(batch_writer, "calculate_row", picky)
        source = InMemoryRowSource({"aug.xlsx": [make_row(1, gross="13"), make_row(2, gross="100")]})
        batch_id = await create_batch(session_factory, "aug.xlsx")

        result = await BatchProcessor(session_factory, source).process(batch_id)

        assert result.status == BatchStatus.COMPLETED.value
        batch = await get_batch(session_factory, batch_id)
        assert batch.failed_rows == 1
        assert batch.processed_rows == 1
        assert batch.row_errors == [{"row": 1, "error": "unlucky gross"}]


# ===========================================================================
# 5. Write pipeline
# ===========================================================================

class TestWritePipeline:

    async def test_progress_events_per_chunk(self, session_factory):
        batch_id = await create_batch(session_factory, "aug.xlsx")
        events = []

        async def collect(event):
            events.append(event)

        pipeline = BatchWritePipeline(session_factory, chunk_size=2, on_progress=collect)
        rows = [make_row(i, creator=f"creator_{i}", gross="100") for i in range(1, 6)]
        summary = await pipeline.process(batch_id, rows, PERIOD)

        assert summary.chunks_total == 3
        assert summary.processed == 5
        assert [e.chunk_index for e in events] == [0, 1, 2]
        assert [e.progress for e in events] == [33, 56, 80]
        assert events[-1].processed_rows == 5

    async def test_milestone_bonuses_linked_to_transaction(self, session_factory):
        batch_id = await create_batch(session_factory, "aug.xlsx")
        pipeline = BatchWritePipeline(session_factory)
        await pipeline.process(batch_id, [make_row(7, gross="2000", milestones="NS")], PERIOD)

        async with session_factory() as db:
            bonuses = (await db.execute(select(Bonus).order_by(Bonus.type))).scalars().all()

        assert [b.type for b in bonuses] == ["MILESTONE_N", "MILESTONE_S"]
        assert [b.amount for b in bonuses] == [money("150"), money("75")]
        assert all(b.transaction_id == transaction_id(batch_id, 7) for b in bonuses)
        assert all(b.source == "BATCH" for b in bonuses)

    async def test_max_row_errors_cap(self, session_factory, monkeypatch):
        def always_fail(*args):
            raise ValueError("bad row")

        monkeypatch.setattr(batch_writer, "calculate_row", always_fail)
        batch_id = await create_batch(session_factory, "aug.xlsx")
        pipeline = BatchWritePipeline(session_factory, chunk_size=3, max_row_errors=2)

        summary = await pipeline.process(batch_id, [make_row(i) for i in range(1, 6)], PERIOD)

        assert summary.failed == 5
        batch = await get_batch(session_factory, batch_id)
        assert batch.failed_rows == 5
        assert len(batch.row_errors) == 2
