"""Tests for the background task runner."""

from __future__ import annotations

import asyncio
import logging

import pytest

from llm_chat.core.tasks import BackgroundTaskRunner, Scheduler


def test_runner_satisfies_scheduler_protocol() -> None:
    assert isinstance(BackgroundTaskRunner(), Scheduler)


@pytest.mark.asyncio
async def test_drain_waits_for_scheduled_work() -> None:
    runner = BackgroundTaskRunner()
    done: list[str] = []

    async def _work(name: str) -> None:
        await asyncio.sleep(0.01)
        done.append(name)

    runner.run_in_background(_work("a"), label="a")
    runner.run_in_background(_work("b"), label="b")
    assert runner.pending == 2

    await runner.drain()

    assert sorted(done) == ["a", "b"]
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_drain_includes_work_scheduled_while_draining() -> None:
    runner = BackgroundTaskRunner()
    done: list[str] = []

    async def _child() -> None:
        done.append("child")

    async def _parent() -> None:
        await asyncio.sleep(0)
        runner.run_in_background(_child(), label="child")
        done.append("parent")

    runner.run_in_background(_parent(), label="parent")
    await runner.drain()

    assert done == ["parent", "child"]


@pytest.mark.asyncio
async def test_failed_task_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    runner = BackgroundTaskRunner()

    async def _boom() -> None:
        msg = "disk full"
        raise RuntimeError(msg)

    with caplog.at_level(logging.ERROR, logger="llm_chat.core.tasks"):
        runner.run_in_background(_boom(), label="save-history-u1-c1")
        await runner.drain()

    assert "save-history-u1-c1 failed" in caplog.text
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_drain_timeout_leaves_slow_tasks_running() -> None:
    runner = BackgroundTaskRunner()
    release = asyncio.Event()

    async def _slow() -> None:
        await release.wait()

    runner.run_in_background(_slow(), label="slow")
    await runner.drain(timeout=0.01)
    assert runner.pending == 1

    release.set()
    await runner.drain()
    assert runner.pending == 0
