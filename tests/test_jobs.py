"""Scheduled jobs and the operator CLI."""

from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from typer.testing import CliRunner

import fitflow.db.session as session_module
import fitflow.scheduler_tasks as scheduler_tasks
from fitflow.cli import app as cli_app
from fitflow.utils import now_utc
from fitflow.worker import WorkerSettings, expire_preorders_job, generate_orders_job

runner = CliRunner()


class TestWorkerJobs:
    @pytest.fixture(autouse=True)
    def use_test_database(self, monkeypatch, session_factory):
        monkeypatch.setattr(scheduler_tasks, "async_session_factory", session_factory)

    async def test_generate_orders_job(self, catalog, make_cycle, make_subscription, cache):
        cycle = await make_cycle(date(2026, 1, 5))
        await make_subscription()

        result = await generate_orders_job({"catalog_cache": cache})

        assert result["cycle_id"] == cycle.id
        assert result["generated"] == 1
        assert result["cycle_date"] == "2026-01-05"

    async def test_generate_orders_job_without_due_cycle(self, catalog):
        result = await generate_orders_job({})
        assert result["cycle_id"] is None
        assert result["message"]

    async def test_expire_preorders_job(self, make_preorder):
        await make_preorder(conversion_token_expires_at=now_utc() - timedelta(hours=1))
        await make_preorder()
        assert await expire_preorders_job({}) == 1

    def test_cron_schedule(self):
        assert len(WorkerSettings.cron_jobs) == 2
        assert generate_orders_job in WorkerSettings.functions


class TestCli:
    @pytest.fixture(autouse=True)
    def cli_database(self, tmp_path, monkeypatch):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
        monkeypatch.setattr(session_module, "engine", engine)
        monkeypatch.setattr(
            session_module,
            "async_session_factory",
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        )

    def test_seed_then_quote(self):
        result = runner.invoke(cli_app, ["seed"])
        assert result.exit_code == 0, result.output
        assert "Seed complete" in result.output

        result = runner.invoke(cli_app, ["quote", "monthly-standard", "--promo", "fitflow10"])
        assert result.exit_code == 0, result.output
        assert "22.41" in result.output

    def test_generate_orders_with_nothing_due(self):
        runner.invoke(cli_app, ["seed"])
        result = runner.invoke(cli_app, ["generate-orders"])
        assert result.exit_code == 0, result.output
        assert "No upcoming cycle" in result.output

    def test_generate_orders_for_unknown_cycle(self):
        runner.invoke(cli_app, ["seed"])
        result = runner.invoke(cli_app, ["generate-orders", "--cycle-id", "999"])
        assert result.exit_code == 1

    def test_expire_preorders_rejects_bad_timestamp(self):
        result = runner.invoke(cli_app, ["expire-preorders", "--now", "yesterday"])
        assert result.exit_code == 2
