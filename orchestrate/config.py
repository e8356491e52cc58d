"""
Settings, logging setup and input loading for pipeline orchestration.
"""

from __future__ import annotations

import csv
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from fetch.config import FetchConfig


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
STORE_FILE = "pipeline_store.json"

DEFAULT_EVENTS_CHANNEL = "pipeline-events"

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    try:
        return float(value) if value else default
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class Settings:
    """Process-wide settings, read from the environment."""

    data_dir: Path = DATA_DIR
    redis_url: str | None = None
    events_channel: str = DEFAULT_EVENTS_CHANNEL
    simple_timeout: float = 15.0
    browser_timeout: float = 30.0  # seconds
    headless: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.environ.get("PIPELINE_DATA_DIR") or DATA_DIR),
            redis_url=os.environ.get("REDIS_URL") or None,
            events_channel=os.environ.get("PIPELINE_EVENTS_CHANNEL") or DEFAULT_EVENTS_CHANNEL,
            simple_timeout=_env_float("FETCH_SIMPLE_TIMEOUT", 15.0),
            browser_timeout=_env_float("FETCH_BROWSER_TIMEOUT", 30.0),
            headless=_env_bool("FETCH_HEADLESS", True),
            log_level=(os.environ.get("PIPELINE_LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def store_path(self) -> Path:
        return Path(self.data_dir) / STORE_FILE

    def fetch_config(self) -> FetchConfig:
        return FetchConfig(
            simple_timeout=self.simple_timeout,
            browser_timeout_ms=int(self.browser_timeout * 1000),
            headless=self.headless,
        )


def configure_logging(level: str = "INFO") -> None:
    """Route loguru output to stderr at the given level (JSON output owns stdout)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {message}",
    )


def _read_structured(p: Path, what: str):
    """Parse a JSON or YAML file; empty files parse to None."""
    content = p.read_text(encoding="utf-8").strip()
    if not content:
        return None
    if p.suffix.lower() in (".yaml", ".yml"):
        try:
            import yaml
        except Exception as exc:
            raise RuntimeError(f"PyYAML required for YAML {what}") from exc
        return yaml.safe_load(content)
    return json.loads(content)


def load_run_config(path: str) -> dict:
    """Load a submodule run configuration from JSON or YAML."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Run config not found: {path}")

    # Handle empty files (e.g., /dev/null) gracefully
    result = _read_structured(p, "run config")
    if not result:
        return {}
    if not isinstance(result, dict):
        raise ValueError("Run config must be a mapping of option names to values")
    return result


def _split_seeds(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [s.strip() for s in str(value).split(";") if s.strip()]


def load_entities_file(path: str) -> list[dict]:
    """
    Load entities from JSON, YAML or CSV.

    JSON/YAML: a list, or a mapping with an 'entities' list.
    CSV: header row with at least 'name' and 'website'; optional 'id' and
    'seed_urls' (separated by ';'). Other columns go to metadata.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Entities file not found: {path}")

    if p.suffix.lower() == ".csv":
        with open(p, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        entities = []
        for i, row in enumerate(rows):
            row = {k.strip().lower(): (v or "").strip() for k, v in row.items() if k is not None}
            if not row.get("name") and not row.get("website"):
                continue
            extra = {k: v for k, v in row.items() if k not in ("id", "name", "website", "seed_urls") and v}
            entities.append({
                "id": row.get("id") or str(i + 1),
                "name": row.get("name") or row.get("website"),
                "website": row.get("website") or None,
                "seed_urls": _split_seeds(row.get("seed_urls")),
                "metadata": extra,
            })
        return entities

    data = _read_structured(p, "entities file")
    if isinstance(data, dict) and "entities" in data:
        data = data["entities"]
    if not isinstance(data, list):
        raise ValueError("Entities file must be a list or contain an 'entities' list")
    for item in data:
        if isinstance(item, dict) and "seed_urls" in item:
            item["seed_urls"] = _split_seeds(item["seed_urls"])
    return data

