from __future__ import annotations

import json
import sys
import textwrap
from pathlib import Path

import pytest

from runtime_harness.config import RunnerOptions, file_entries
from runtime_harness.karma import (
    BrowserResult,
    KarmaRunner,
    build_runner_env,
    parse_browser_result,
    render_runner_config,
)


def _fake_runner(tmp_path: Path, exit_code: int) -> list[str]:
    script = tmp_path / "fake_karma.py"
    script.write_text(
        textwrap.dedent(
            f"""
            import os
            import sys

            config_path = sys.argv[-1]
            with open(config_path) as f:
                contents = f.read()
            assert contents.startswith("// Generated by runtime-test")
            print("SERVE_MODE=" + os.environ.get("SERVE_MODE", ""))
            print("Chrome 70.0 (Linux 0.0.0): Executed 3 of 10 SUCCESS", flush=True)
            print("\\rChrome 70.0 (Linux 0.0.0): Executed 9 of 10 (1 FAILED) (skipped 1) (0.5 secs / 0.4 secs)")
            print("Safari 12.0 (Mac OS X 10.14): Executed 10 of 10 SUCCESS (0.3 secs / 0.2 secs)")
            sys.exit({exit_code})
            """
        ),
        encoding="utf-8",
    )
    return [sys.executable, str(script)]


def _options(tmp_path: Path) -> RunnerOptions:
    return RunnerOptions(base_path=str(tmp_path), files=file_entries("test/a.js"), browsers=["SL_Safari_latest"])


def test_parse_browser_result_with_failures() -> None:
    result = parse_browser_result(
        "\x1b[32mChrome 70.0 (Linux 0.0.0)\x1b[39m: Executed 9 of 10 (1 FAILED) (skipped 1) (0.5 secs / 0.4 secs)"
    )
    assert result == BrowserResult(name="Chrome 70.0 (Linux 0.0.0)", executed=9, total=10, failed=1, skipped=1)
    assert result.success is False
    assert result.summary() == "Chrome 70.0 (Linux 0.0.0): Executed 9 of 10 (Skipped 1) 1 FAILED"


def test_parse_browser_result_ignores_other_lines() -> None:
    assert parse_browser_result("INFO [karma]: Karma v1.7.0 server started") is None
    assert parse_browser_result("") is None


def test_render_runner_config_is_a_karma_module(tmp_path: Path) -> None:
    rendered = render_runner_config(_options(tmp_path))
    assert "module.exports = function(config) {" in rendered
    body = rendered.split("config.set(", 1)[1].rsplit(");", 1)[0]
    data = json.loads(body)
    assert data["basePath"] == str(tmp_path)
    assert data["files"] == [{"pattern": "test/a.js"}]
    assert data["browsers"] == ["SL_Safari_latest"]


def test_build_runner_env_sets_serve_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVE_MODE", "compiled")
    env = build_runner_env({"PATH": "/usr/bin", "CHROME_BIN": "/opt/chrome"})
    assert env["SERVE_MODE"] == "compiled"
    assert env["CHROME_BIN"] == "/opt/chrome"
    assert env["PATH"] == "/usr/bin"


@pytest.mark.asyncio
async def test_runner_forwards_exit_code_and_collects_results(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVE_MODE", "compiled")
    lines: list[str] = []
    runner = KarmaRunner(_fake_runner(tmp_path, 3), saucelabs=True, output=lines.append)

    exit_code = await runner.run(_options(tmp_path))

    assert exit_code == 3
    assert "SERVE_MODE=compiled\n" in lines
    chrome = runner.browser_results["Chrome 70.0 (Linux 0.0.0)"]
    assert (chrome.executed, chrome.total, chrome.failed, chrome.skipped) == (9, 10, 1, 1)
    assert runner.browser_results["Safari 12.0 (Mac OS X 10.14)"].success is True


@pytest.mark.asyncio
async def test_runner_passes(tmp_path: Path) -> None:
    runner = KarmaRunner(_fake_runner(tmp_path, 0), output=lambda line: None)
    assert await runner.run(_options(tmp_path)) == 0


@pytest.mark.asyncio
async def test_missing_runner_command_raises(tmp_path: Path) -> None:
    runner = KarmaRunner([str(tmp_path / "node_modules" / ".bin" / "karma"), "start"], output=lambda line: None)
    with pytest.raises(FileNotFoundError):
        await runner.run(_options(tmp_path))


@pytest.mark.asyncio
async def test_runner_survives_progress_without_line_breaks(tmp_path: Path) -> None:
    script = tmp_path / "dots_karma.py"
    script.write_text(
        textwrap.dedent(
            """
            import sys

            sys.stdout.write("." * 70000)
            sys.stdout.write("\\rChrome 70.0 (Linux 0.0.0): Executed 4 of 4 SUCCESS\\r\\n")
            sys.stdout.write("." * 10)
            sys.stdout.flush()
            sys.exit(0)
            """
        ),
        encoding="utf-8",
    )
    chunks: list[str] = []
    runner = KarmaRunner([sys.executable, str(script)], output=chunks.append)

    assert await runner.run(_options(tmp_path)) == 0

    output = "".join(chunks)
    assert output.startswith("." * 70000 + "\r")
    assert output.endswith("\r\n" + "." * 10)
    assert runner.browser_results["Chrome 70.0 (Linux 0.0.0)"].executed == 4


def test_parse_browser_result_ignores_line_endings() -> None:
    result = parse_browser_result("Chrome 70.0 (Linux 0.0.0): Executed 4 of 4 SUCCESS\r")
    assert result is not None
    assert result.total == 4
