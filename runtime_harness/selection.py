"""Test file selection.

Every invocation resolves to exactly one selection mode. The mode is a small
tagged value; `resolve_files` turns it into the runner's file entries.
"""

from __future__ import annotations

import glob as globlib
import random
from dataclasses import dataclass
from typing import Union

import structlog

from .config import FileEntry, TestPaths, file_entries
from .flags import TestFlags

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExplicitFiles:
    pattern: str
    kind: str = "files"


@dataclass(frozen=True)
class IntegrationSuite:
    kind: str = "integration"


@dataclass(frozen=True)
class UnitSuite:
    sauce_subset: bool = False
    kind: str = "unit"


@dataclass(frozen=True)
class GlobbedSuite:
    a4a: bool = False
    shuffle: bool = False
    seed: str | None = None
    kind: str = "glob"


@dataclass(frozen=True)
class DefaultSuite:
    kind: str = "default"


SelectionMode = Union[ExplicitFiles, IntegrationSuite, UnitSuite, GlobbedSuite, DefaultSuite]


def select_mode(flags: TestFlags) -> SelectionMode:
    if flags.files:
        return ExplicitFiles(pattern=flags.files)
    if flags.integration:
        return IntegrationSuite()
    if flags.unit:
        return UnitSuite(sauce_subset=flags.saucelabs_lite)
    if flags.randomize or flags.glob or flags.a4a:
        return GlobbedSuite(a4a=flags.a4a, shuffle=flags.randomize or flags.a4a, seed=flags.seed)
    return DefaultSuite()


def resolve_seed(seed: str | None = None) -> str:
    if seed is not None and str(seed).strip():
        return str(seed).strip()
    return str(random.random())


def shuffle_files(files: list[str], seed: str) -> list[str]:
    """Return a copy of `files` in an order determined only by `seed`."""
    out = list(files)
    random.Random(str(seed)).shuffle(out)
    return out


def expand_globs(patterns: list[str]) -> list[str]:
    files: list[str] = []
    for pattern in patterns:
        files.extend(sorted(globlib.glob(pattern, recursive=True)))
    return files


def resolve_files(mode: SelectionMode, paths: TestPaths) -> list[FileEntry]:
    if isinstance(mode, ExplicitFiles):
        return paths.common + file_entries(mode.pattern)
    if isinstance(mode, IntegrationSuite):
        return file_entries(*paths.integration)
    if isinstance(mode, UnitSuite):
        return file_entries(*(paths.unit_on_sauce if mode.sauce_subset else paths.unit))
    if isinstance(mode, GlobbedSuite):
        test_files = expand_globs(paths.a4a if mode.a4a else paths.basic)
        if mode.shuffle:
            seed = resolve_seed(mode.seed)
            logger.info("Randomizing: Seeding with value", seed=seed)
            logger.info(f"To rerun same ordering, append --seed={seed} to your invocation of runtime-test")
            test_files = shuffle_files(test_files, seed)
        # The init file is always loaded first through the common paths.
        if paths.init_tests in test_files:
            test_files.remove(paths.init_tests)
        return paths.common + file_entries(*test_files)
    if isinstance(mode, DefaultSuite):
        return paths.default
    raise TypeError(f"Unknown selection mode: {mode!r}")
