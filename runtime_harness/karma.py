"""Launches Karma as an external process with a generated configuration."""

from __future__ import annotations

import asyncio
import codecs
import json
import os
import re
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

import structlog
from jinja2 import Environment, FileSystemLoader

from .config import RunnerOptions
from .environment import find_chromium_executable, get_serve_mode

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
READ_CHUNK_SIZE = 64 * 1024

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_LINE_SPLIT_RE = re.compile(r"(?<=[\r\n])")
_EXECUTED_RE = re.compile(r"^(?P<name>.+?): Executed (?P<executed>\d+) of (?P<total>\d+)(?P<rest>.*)$")
_FAILED_RE = re.compile(r"\((?P<failed>\d+) FAILED\)")
_SKIPPED_RE = re.compile(r"\(skipped (?P<skipped>\d+)\)", re.IGNORECASE)


@dataclass(frozen=True)
class BrowserResult:
    name: str
    executed: int
    total: int
    failed: int = 0
    skipped: int = 0

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        status = "SUCCESS" if self.success else f"{self.failed} FAILED"
        return f"{self.name}: Executed {self.executed} of {self.total} (Skipped {self.skipped}) {status}"


def parse_browser_result(line: str) -> BrowserResult | None:
    """Parse a Karma progress line such as `Chrome 70 (Linux): Executed 5 of 6 (1 FAILED)`."""
    text = _ANSI_RE.sub("", line or "")
    # Progress reporters redraw the same line with carriage returns.
    text = text.rstrip("\r\n").split("\r")[-1].strip()
    m = _EXECUTED_RE.match(text)
    if not m:
        return None
    rest = m.group("rest")
    failed = _FAILED_RE.search(rest)
    skipped = _SKIPPED_RE.search(rest)
    return BrowserResult(
        name=m.group("name").strip(),
        executed=int(m.group("executed")),
        total=int(m.group("total")),
        failed=int(failed.group("failed")) if failed else 0,
        skipped=int(skipped.group("skipped")) if skipped else 0,
    )


def render_runner_config(options: RunnerOptions) -> str:
    env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), autoescape=False, keep_trailing_newline=True)
    template = env.get_template("karma.conf.js.j2")
    return template.render(options_json=json.dumps(options.to_runner_dict(), indent=2, sort_keys=True))


def write_runner_config(options: RunnerOptions, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render_runner_config(options), encoding="utf-8")
    return out


def build_runner_env(base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["SERVE_MODE"] = get_serve_mode()
    if not env.get("CHROME_BIN"):
        chrome = find_chromium_executable()
        if chrome:
            env["CHROME_BIN"] = chrome
    return env


class KarmaRunner:
    """Runs the browser tests and reports progress the way the task prints it."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        saucelabs: bool = False,
        output: Callable[[str], None] | None = None,
    ):
        self.command = list(command)
        self.saucelabs = saucelabs
        self.output = output or self._echo
        self.browser_results: dict[str, BrowserResult] = {}

    @staticmethod
    def _echo(line: str) -> None:
        sys.stdout.write(line)
        sys.stdout.flush()

    def on_run_start(self, options: RunnerOptions) -> None:
        if self.saucelabs:
            logger.info(f"Running tests in parallel on {len(options.browsers)} Sauce Labs browser(s)...")
        else:
            logger.info("Running tests locally...")

    def on_browser_complete(self, result: BrowserResult) -> None:
        if not self.saucelabs:
            return
        if result.success:
            logger.info(result.summary())
        else:
            logger.error(result.summary())

    def _emit(self, line: str) -> None:
        self.output(line)
        result = parse_browser_result(line)
        if result is not None:
            self.browser_results[result.name] = result

    def _consume(self, text: str) -> str:
        """Emit every complete line of `text` and return the unterminated rest.

        A rest longer than one chunk (progress dots with no line break) is
        flushed as is.
        """
        *lines, rest = _LINE_SPLIT_RE.split(text)
        for line in lines:
            self._emit(line)
        if len(rest) >= READ_CHUNK_SIZE:
            self.output(rest)
            return ""
        return rest

    async def run(self, options: RunnerOptions) -> int:
        with tempfile.TemporaryDirectory(prefix="runtime-test-") as tmp:
            config_path = write_runner_config(options, Path(tmp) / "karma.conf.js")
            cmd = self.command + [str(config_path)]
            logger.debug("Launching test runner", command=" ".join(cmd))

            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=build_runner_env(),
                cwd=options.base_path,
            )
            self.on_run_start(options)
            try:
                decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
                pending = ""
                while proc.stdout is not None:
                    chunk = await proc.stdout.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    pending = self._consume(pending + decoder.decode(chunk))
                pending += decoder.decode(b"", final=True)
                if pending:
                    self._emit(pending)
                exit_code = await proc.wait()
            finally:
                if proc.returncode is None:
                    proc.kill()
                    await proc.wait()

        for result in self.browser_results.values():
            self.on_browser_complete(result)
        return int(exit_code)
