"""Entry point for `runtime-test`: builds the runner config, serves fake responses, runs the tests."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from pathlib import Path
from typing import Sequence

import structlog

from .amp_config import apply_runtime_config
from .config import HarnessConfig, RunnerOptions, load_config
from .environment import RunEnvironment, set_serve_mode
from .fake_server import FakeResponseServer, ServerStartError
from .flags import TestFlags, parse_flags, pre_test_tasks, print_flag_messages
from .karma import KarmaRunner
from .runner_config import HarnessConfigError, build_runner_config

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def run_pre_test_tasks(flags: TestFlags, config: HarnessConfig) -> int:
    commands = {"build": config.build_command, "css": config.css_command}
    for task in pre_test_tasks(flags):
        cmd = commands[task]
        logger.info("Running pre-test task", task=task, command=" ".join(cmd))
        try:
            proc = subprocess.run(cmd, check=False)
        except FileNotFoundError:
            logger.error("Pre-test task command not found", task=task, command=cmd[0])
            return 1
        if proc.returncode != 0:
            logger.error("Pre-test task failed", task=task, exit_code=proc.returncode)
            return proc.returncode
    return 0


def apply_runtime_configs(flags: TestFlags, config: HarnessConfig) -> None:
    for target in config.runtime_targets:
        apply_runtime_config(target, flags.config, config.global_configs_directory)


async def run_tests(
    options: RunnerOptions,
    flags: TestFlags,
    config: HarnessConfig,
    runner: KarmaRunner | None = None,
) -> int:
    runner = runner or KarmaRunner(config.runner_command, saucelabs=flags.on_saucelabs)
    set_serve_mode(flags.compiled)

    server = FakeResponseServer(config.fake_server)
    await asyncio.to_thread(server.start)
    try:
        exit_code = await runner.run(options)
    finally:
        await asyncio.to_thread(server.stop)

    if exit_code:
        logger.error("ERROR: Karma test failed", exit_code=exit_code)
    return exit_code


def main(argv: Sequence[str] | None = None) -> int:
    flags = parse_flags(argv)
    config = load_config()
    configure_logging("DEBUG" if flags.verbose else config.log_level)
    env = RunEnvironment()

    if not flags.nohelp:
        print_flag_messages(flags, env)

    if env.ampsauce_repo and not flags.integration:
        logger.info("Deactivated for ampsauce repo")
        return 0

    try:
        options = build_runner_config(flags, env, config, cwd=Path.cwd())
    except HarnessConfigError as e:
        logger.error(str(e))
        return 1

    build_code = run_pre_test_tasks(flags, config)
    if build_code:
        return build_code

    apply_runtime_configs(flags, config)

    try:
        return asyncio.run(run_tests(options, flags, config))
    except FileNotFoundError as e:
        logger.error("Could not launch the test runner", command=" ".join(config.runner_command), error=str(e))
        return 1
    except ServerStartError as e:
        logger.error("Could not start test responses server", host=e.host, port=e.port)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
