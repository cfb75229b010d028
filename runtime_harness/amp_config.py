"""Prepend or strip the AMP_CONFIG block of a built runtime file."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

CONFIG_MARKER = "/*AMP_CONFIG*/"
_CONFIG_BLOCK_RE = re.compile(r"self\.AMP_CONFIG\|\|\(self\.AMP_CONFIG=.*?\/\*AMP_CONFIG\*\/", re.DOTALL)

CONFIG_NAMES = ("prod", "canary")


def config_block(config: dict[str, Any]) -> str:
    payload = json.dumps(config, separators=(",", ":"), ensure_ascii=False)
    return f"self.AMP_CONFIG||(self.AMP_CONFIG={payload});{CONFIG_MARKER}"


def has_config(contents: str) -> bool:
    return _CONFIG_BLOCK_RE.search(contents) is not None


def load_config_file(config_file: str | Path) -> dict[str, Any]:
    with open(config_file, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"AMP config must be a JSON object: {config_file}")
    return data


def apply_config(
    config_name: str,
    target: str | Path,
    config_file: str | Path,
    *,
    local_dev: bool = False,
) -> None:
    """Prepend the JSON config in `config_file` (read from the working tree) to `target`."""
    target_path = Path(target)
    config = load_config_file(config_file)
    if local_dev:
        config["localDev"] = True
    contents = target_path.read_text(encoding="utf-8")
    target_path.write_text(config_block(config) + contents, encoding="utf-8")
    logger.info("Wrote AMP config", config=config_name, target=str(target_path))


def remove_config(target: str | Path) -> bool:
    target_path = Path(target)
    contents = target_path.read_text(encoding="utf-8")
    if not has_config(contents):
        return False
    target_path.write_text(_CONFIG_BLOCK_RE.sub("", contents, count=1), encoding="utf-8")
    logger.info("Removed existing config", target=str(target_path))
    return True


def config_file_for(config_name: str, configs_dir: str | Path) -> Path:
    return Path(configs_dir) / f"{config_name}-config.json"


def apply_runtime_config(target: str | Path, config_name: str, configs_dir: str | Path) -> bool:
    """Replace the runtime config of `target` with the `config_name` one.

    Returns False when the target does not exist (nothing has been built yet).
    """
    target_path = Path(target)
    if not target_path.exists():
        logger.debug("Skipping AMP config, target not built", target=str(target_path))
        return False
    remove_config(target_path)
    apply_config(
        config_name,
        target_path,
        config_file_for(config_name, configs_dir),
        local_dev=True,
    )
    return True
