"""Configures and launches the browser test runner for the AMP runtime."""

from .config import HarnessConfig, RunnerOptions, load_config
from .flags import TestFlags, parse_flags

__all__ = ["HarnessConfig", "RunnerOptions", "TestFlags", "load_config", "parse_flags"]
