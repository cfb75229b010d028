"""Command-line flags for the runtime test task."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import Sequence

import structlog

from .environment import RunEnvironment

logger = structlog.get_logger(__name__)


FLAG_HELP: dict[str, str] = {
    "verbose": "With logging enabled",
    "testnames": "Lists the name of each test being run",
    "watch": "Watches for changes in files, runs corresponding test(s)",
    "saucelabs": "Runs integration tests on saucelabs (requires setup)",
    "saucelabs_lite": "Runs tests on a subset of saucelabs browsers (requires setup)",
    "safari": "Runs tests on Safari",
    "firefox": "Runs tests on Firefox",
    "edge": "Runs tests on Edge",
    "ie": "Runs tests on IE",
    "unit": "Run only unit tests.",
    "integration": "Run only integration tests.",
    "compiled": "Changes integration tests to use production JS binaries for execution",
    "grep": "Runs tests that match the pattern",
    "files": "Runs tests for specific files",
    "randomize": "Runs entire test suite in random order",
    "seed": "Seeds the test order randomization. Use with --randomize or --a4a",
    "glob": "Explicitly expands test paths using glob before passing to Karma",
    "nohelp": "Silence help messages that are printed prior to test run",
    "a4a": "Runs all A4A tests",
    "coverage": "Instruments the sources and reports code coverage",
    "nobuild": "Skips the build that normally runs before the tests",
    "config": 'Sets the runtime\'s AMP config to one of "prod" or "canary"',
}

_BOOLEAN_FLAGS = (
    "unit",
    "integration",
    "randomize",
    "glob",
    "a4a",
    "compiled",
    "coverage",
    "saucelabs",
    "saucelabs_lite",
    "safari",
    "firefox",
    "edge",
    "ie",
    "testnames",
    "nobuild",
    "nohelp",
)


@dataclass(frozen=True)
class TestFlags:
    __test__ = False

    unit: bool = False
    integration: bool = False
    files: str | None = None
    randomize: bool = False
    glob: bool = False
    seed: str | None = None
    a4a: bool = False
    compiled: bool = False
    grep: str | None = None
    coverage: bool = False
    saucelabs: bool = False
    saucelabs_lite: bool = False
    safari: bool = False
    firefox: bool = False
    edge: bool = False
    ie: bool = False
    watch: bool = False
    verbose: bool = False
    testnames: bool = False
    nobuild: bool = False
    nohelp: bool = False
    config: str = "prod"
    given: tuple[str, ...] = ()

    @property
    def on_saucelabs(self) -> bool:
        return self.saucelabs or self.saucelabs_lite


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runtime-test", description="Runs tests")
    for name in _BOOLEAN_FLAGS:
        parser.add_argument(f"--{name}", action="store_true", help=FLAG_HELP[name])
    parser.add_argument("--watch", "-w", action="store_true", help=FLAG_HELP["watch"])
    parser.add_argument("--verbose", "-v", action="store_true", help=FLAG_HELP["verbose"])
    parser.add_argument("--files", metavar="GLOB", help=FLAG_HELP["files"])
    parser.add_argument("--seed", help=FLAG_HELP["seed"])
    parser.add_argument("--grep", metavar="PATTERN", help=FLAG_HELP["grep"])
    parser.add_argument("--config", default="prod", help=FLAG_HELP["config"])
    return parser


_SHORT_FLAGS = {"-w": "watch", "-v": "verbose"}


def given_order(argv: Sequence[str]) -> tuple[str, ...]:
    """Names of the recognised flags in `argv`, in the order they appear."""
    order: list[str] = []
    for token in argv:
        if not token.startswith("-"):
            continue
        option = token.split("=", 1)[0]
        name = _SHORT_FLAGS.get(option, option.lstrip("-"))
        if name in FLAG_HELP and name not in order:
            order.append(name)
    return tuple(order)


def parse_flags(argv: Sequence[str] | None = None) -> TestFlags:
    argv = sys.argv[1:] if argv is None else list(argv)
    args = vars(build_parser().parse_args(argv))
    args["given"] = given_order(argv)
    args["config"] = "canary" if args.get("config") == "canary" else "prod"
    return TestFlags(**args)


def pre_test_tasks(flags: TestFlags) -> list[str]:
    if flags.nobuild:
        return []
    return ["css"] if flags.unit else ["build"]


def _flag_messages(flags: TestFlags) -> dict[str, str]:
    return {
        "safari": "Running tests on Safari.",
        "firefox": "Running tests on Firefox.",
        "ie": "Running tests on IE.",
        "edge": "Running tests on Edge.",
        "saucelabs": "Running integration tests on Sauce Labs browsers.",
        "saucelabs_lite": "Running tests on a subset of Sauce Labs browsers.",
        "nobuild": "Skipping build.",
        "watch": (
            "Enabling watch mode. Editing and saving a file will cause the"
            " tests for that file to be re-run in the same browser instance."
        ),
        "verbose": "Enabling verbose mode. Expect lots of output!",
        "testnames": "Listing the names of all tests being run.",
        "files": f"Running tests in the file(s): {flags.files}",
        "integration": "Running only the integration tests. Requires `gulp build` to have been run first.",
        "unit": "Running only the unit tests. Requires `gulp css` to have been run first.",
        "randomize": "Randomizing the order in which tests are run.",
        "a4a": "Running only A4A tests.",
        "seed": f"Randomizing test order with seed {flags.seed}.",
        "compiled": "Running tests against minified code.",
        "grep": f'Only running tests that match the pattern "{flags.grep}".',
    }


def print_flag_messages(flags: TestFlags, env: RunEnvironment) -> list[str]:
    """Log help messages for the flags in use when tests run for local development.

    Returns the messages that were logged.
    """
    if env.travis:
        return []

    printed: list[str] = []

    def _say(message: str) -> None:
        printed.append(message)
        logger.info(message)

    _say("Run runtime-test --help to see a list of all test flags. (Use --nohelp to silence these messages.)")
    if not flags.unit and not flags.integration and not flags.files:
        _say("Running all tests. Use --unit or --integration to run just the unit tests or integration tests.")
    if not flags.compiled:
        _say("Running tests against unminified code.")
    _say(f"Setting the runtime's AMP config to {flags.config}")

    messages = _flag_messages(flags)
    names = [n for n in flags.given if n in messages]
    names += [n for n in messages if n not in names]
    for name in names:
        if getattr(flags, name, None):
            _say(f"--{name}: {messages[name]}")
    return printed
