"""Builds the options handed to the browser test runner from the command-line flags."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from .ad_types import get_ad_types
from .config import AmpClientConfig, HarnessConfig, RunnerOptions, file_entries
from .environment import RunEnvironment
from .flags import TestFlags
from .selection import resolve_files, select_mode

logger = structlog.get_logger(__name__)

SAUCE_REPORTERS = ["super-dots", "saucelabs", "karmaSimpleReporter"]

BROWSER_OVERRIDES = (
    ("safari", "Safari"),
    ("firefox", "Firefox"),
    ("edge", "Edge"),
    ("ie", "IE"),
)

COVERAGE_PREPROCESSED_GLOBS = ("src/**/*.js", "extensions/**/*.js")


@dataclass(frozen=True)
class HarnessConfigError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class MissingEnvironmentError(HarnessConfigError):
    variable: str = ""


def _coverage_reporter() -> dict:
    return {
        "dir": "test/coverage",
        "reporters": [
            {"type": "html", "subdir": "report-html"},
            {"type": "lcov", "subdir": "report-lcov"},
            {"type": "lcovonly", "subdir": ".", "file": "report-lcovonly.txt"},
            {"type": "text", "subdir": ".", "file": "text.txt"},
            {"type": "text-summary", "subdir": ".", "file": "text-summary.txt"},
        ],
        "instrumenterOptions": {
            "istanbul": {
                "noCompact": True,
            },
        },
    }


def _require_env(value: str, variable: str) -> None:
    if not value:
        raise MissingEnvironmentError(f"Missing {variable} Env variable", variable=variable)


def base_config(flags: TestFlags, env: RunEnvironment, config: HarnessConfig) -> RunnerOptions:
    """Apply the browser override: local browser > remote lab > defaults."""
    options = config.runner.model_copy(deep=True)

    for flag, browser in BROWSER_OVERRIDES:
        if getattr(flags, flag):
            options.browsers = [browser]
            return options

    if flags.on_saucelabs:
        _require_env(env.sauce_username, "SAUCE_USERNAME")
        _require_env(env.sauce_access_key, "SAUCE_ACCESS_KEY")
        options.reporters = list(SAUCE_REPORTERS)
        options.browsers = list(config.sauce_browsers if flags.saucelabs else config.sauce_lite_browsers)

    return options


def _apply_coverage(options: RunnerOptions) -> None:
    logger.info("Including code coverage tests")
    options.browserify.transform.append(
        ["browserify-istanbul", {"instrumenterConfig": {"embedSource": True}}]
    )
    options.reporters = options.reporters + ["progress", "coverage"]
    for pattern in COVERAGE_PREPROCESSED_GLOBS:
        if pattern in options.preprocessors:
            options.preprocessors[pattern].append("coverage")
    options.coverage_reporter = _coverage_reporter()


def build_runner_config(
    flags: TestFlags,
    env: RunEnvironment,
    config: HarnessConfig,
    cwd: str | Path | None = None,
) -> RunnerOptions:
    options = base_config(flags, env, config)
    options.base_path = str(Path(cwd or Path.cwd()).resolve())

    if flags.watch:
        options.single_run = False

    if flags.verbose:
        options.client.capture_console = True

    if flags.testnames:
        options.reporters = ["mocha"]

    if flags.saucelabs and not flags.integration:
        raise HarnessConfigError(
            "Only integration tests may be run on the full set of Sauce Labs browsers. "
            "Use --saucelabs with --integration"
        )

    paths = config.test_paths

    # chai-as-promised cannot load on the full set of Sauce Labs browsers.
    files = [] if flags.saucelabs else file_entries(*paths.chai_as_promised)

    mode = select_mode(flags)
    logger.debug("Selected test files", mode=mode.kind)
    files = files + resolve_files(mode, paths)
    if mode.kind == "files" and not flags.on_saucelabs:
        options.reporters = ["mocha"]

    # Running zero tests on a Sauce Labs browser is an error.
    if flags.on_saucelabs:
        files = files + file_entries(*paths.simple_test)

    options.files = files

    options.client.amp = AmpClientConfig(
        use_compiled_js=flags.compiled,
        saucelabs=flags.on_saucelabs,
        ad_types=get_ad_types(Path(options.base_path) / config.ads_directory),
        mocha_timeout=options.client.mocha.timeout,
    )

    if flags.grep:
        options.client.mocha.grep = flags.grep

    if flags.coverage:
        _apply_coverage(options)

    return options
