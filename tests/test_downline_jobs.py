"""
Tests for jobs/downline_jobs.py and the scheduler registration.
"""

import types

import commission_engine.jobs
import commission_engine.jobs.scheduler as scheduler_module
from commission_engine.jobs.downline_jobs import run_monthly_downline
from commission_engine.models.genealogy import GenealogyEdge
from commission_engine.models.manager import ManagerType
from tests.factories import seed_batch, seed_manager, seed_transaction


PERIOD = "202508"


async def test_skips_period_without_active_batch(session_factory):
    result = await run_monthly_downline(PERIOD, session_factory)

    assert result == {"period": PERIOD, "status": "skipped", "bonuses_written": 0}


async def test_books_downline_for_period(session_factory):
    async with session_factory() as db:
        batch = await seed_batch(db, PERIOD)
        tom = await seed_manager(db, "team tom", ManagerType.TEAM)
        lisa = await seed_manager(db, "live lisa")
        await seed_transaction(db, batch, lisa, "1000")
        db.add(GenealogyEdge(team_manager_id=tom.id, live_manager_id=lisa.id, level="A"))
        await db.commit()

    result = await run_monthly_downline(PERIOD, session_factory)

    assert result["status"] == "completed"
    assert result["bonuses_written"] == 1


def test_register_jobs_adds_monthly_cron():
    scheduler_module.register_jobs()
    try:
        status = {job["id"]: job for job in scheduler_module.get_job_status()}
        assert "monthly_downline" in status
        assert "cron" in status["monthly_downline"]["trigger"]
    finally:
        scheduler_module.scheduler.remove_job("monthly_downline")


def test_jobs_package_exposes_scheduler_submodule():
    assert isinstance(commission_engine.jobs.scheduler, types.ModuleType)
    assert commission_engine.jobs.scheduler is scheduler_module
    assert callable(scheduler_module.register_jobs)
