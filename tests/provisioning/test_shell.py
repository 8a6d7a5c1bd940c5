"""Unit tests for run_shell_cmd."""

import asyncio
import logging
import os

import pytest

from stackwave.provisioning.shell import run_shell_cmd


async def test_captures_stdout_and_returncode():
    rc, stdout, stderr = await run_shell_cmd(["sh", "-c", "echo hello; echo oops >&2; exit 3"])

    assert rc == 3
    assert stdout == "hello\n"
    assert stderr == "oops\n"


async def test_feeds_stdin():
    rc, stdout, _ = await run_shell_cmd(["cat"], input="services: {}\n")

    assert rc == 0
    assert stdout == "services: {}\n"


async def test_cwd_and_env(tmp_path):
    rc, stdout, _ = await run_shell_cmd(
        ["sh", "-c", "pwd; echo $GREETING"],
        cwd=str(tmp_path),
        env={"GREETING": "hi", "PATH": os.environ["PATH"]},
    )

    assert rc == 0
    assert stdout.split() == [str(tmp_path), "hi"]


async def test_dry_run_logs_instead_of_running(caplog, tmp_path):
    marker = tmp_path / "marker"

    with caplog.at_level(logging.INFO):
        rc, stdout, stderr = await run_shell_cmd(["touch", str(marker)], dry_run=True)

    assert (rc, stdout, stderr) == (0, "", "")
    assert f"[dry-run] touch {marker}" in caplog.text
    assert not marker.exists()


async def test_missing_executable():
    rc, _, stderr = await run_shell_cmd(["stackwave-no-such-binary"])

    assert rc == 1
    assert "not found" in stderr


async def test_timeout_kills_the_process():
    rc, _, stderr = await run_shell_cmd(["sleep", "5"], timeout=0.2)

    assert rc == 1
    assert "timed out" in stderr


async def test_log_output_streams_lines(caplog):
    with caplog.at_level(logging.INFO):
        rc, stdout, stderr = await run_shell_cmd(
            ["sh", "-c", "echo line-one; echo line-two; echo warn >&2"],
            log_output=True,
        )

    assert rc == 0
    assert stdout == "line-one\nline-two"
    assert stderr == "warn"
    assert "line-one" in caplog.text
    assert any(r.levelno == logging.ERROR and r.getMessage() == "warn" for r in caplog.records)


async def test_cancellation_kills_the_process():
    task = asyncio.create_task(run_shell_cmd(["sleep", "5"], timeout=30))
    await asyncio.sleep(0.2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
