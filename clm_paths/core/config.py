import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

_CONFIG_ENV_KEYS = ("CLM_CONFIG_PATH", "CLM_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"

# Dry-run overrides honoured by the keeper CLI, env name -> strategy key
STRATEGY_ENV_OVERRIDES = {
    "POSITION_WIDTH": "position_width",
    "TWAP_INTERVAL": "twap_interval",
    "MAX_TICK_DEV": "max_tick_deviation",
}


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_strategy_section() -> dict[str, Any]:
    return dict(CONFIG.get("strategy", {}))


def set_rpc_urls(rpc_urls):
    if "strategy" not in CONFIG:
        CONFIG["strategy"] = {}
    CONFIG["strategy"]["rpc_urls"] = rpc_urls


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("strategy", {}).get("rpc_urls", {})


def env_strategy_overrides(environ: dict[str, str] | None = None) -> dict[str, int]:
    """Integer strategy overrides taken from the environment.

    Empty or non-numeric values are skipped so an unset shell variable never
    clobbers the configured value.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, int] = {}
    for env_key, cfg_key in STRATEGY_ENV_OVERRIDES.items():
        raw = str(env.get(env_key, "")).strip()
        if not raw:
            continue
        try:
            overrides[cfg_key] = int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer {env_key}={raw!r}")
    return overrides
