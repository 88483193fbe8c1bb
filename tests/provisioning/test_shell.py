"""Tests for the async subprocess helper."""

import logging
import sys

from nodeup.provisioning.shell import run_shell_cmd


async def test_run_shell_cmd_captures_output():
    rc, stdout, stderr = await run_shell_cmd([sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"])

    assert rc == 0
    assert stdout.strip() == "out"
    assert stderr.strip() == "err"


async def test_run_shell_cmd_nonzero_exit():
    rc, _, _ = await run_shell_cmd([sys.executable, "-c", "raise SystemExit(3)"])
    assert rc == 3


async def test_run_shell_cmd_missing_binary(caplog):
    rc, stdout, stderr = await run_shell_cmd(["nodeup-definitely-not-installed"])

    assert rc == 127
    assert stdout == ""
    assert "not found" in stderr
    assert "Is it installed and on PATH?" in caplog.text


async def test_run_shell_cmd_timeout():
    rc, _, stderr = await run_shell_cmd([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)

    assert rc == 1
    assert "timed out after 0.5s" in stderr


async def test_run_shell_cmd_streams_output(caplog):
    with caplog.at_level(logging.INFO, logger="nodeup.provisioning.shell"):
        rc, stdout, stderr = await run_shell_cmd(
            [sys.executable, "-c", "import sys; print('first'); print('second'); print('oops', file=sys.stderr)"],
            log_output=True,
        )

    assert rc == 0
    assert stdout == "first\nsecond"
    assert stderr == "oops"
    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels["first"] == logging.INFO
    assert levels["oops"] == logging.ERROR
