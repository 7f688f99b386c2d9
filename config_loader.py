"""Configuration loader for the slide batch renderer."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ModuleNotFoundError as exc:  # pragma: no cover - import guard
    raise RuntimeError(
        "PyYAML is required. Please install it with `pip install pyyaml`."
    ) from exc

SUPPORTED_ENGINES = ("moviepy", "ffmpeg")
INCOMPLETE_ROW_POLICIES = ("reject", "skip")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


@dataclass
class AppConfig:
    """Wrapper around raw configuration with resolved paths."""

    raw: Dict[str, Any]
    config_path: Optional[Path]
    project_root: Path
    output_dir: Path
    temp_dir: Path
    log_file: Path

    @property
    def logging_level(self) -> str:
        level = _section(self.raw, "logging").get("level") or "INFO"
        return str(level).upper()

    @property
    def engine_name(self) -> str:
        return str(self.raw.get("engine", "moviepy")).strip().lower() or "moviepy"

    @property
    def batch_capacity(self) -> int:
        return int(_section(self.raw, "batch").get("capacity", 10))

    @property
    def default_count(self) -> int:
        count = int(_section(self.raw, "batch").get("default_count", self.batch_capacity))
        return max(1, min(count, self.batch_capacity))

    @property
    def incomplete_rows_policy(self) -> str:
        policy = str(_section(self.raw, "batch").get("incomplete_rows", "reject")).strip().lower()
        if policy not in INCOMPLETE_ROW_POLICIES:
            raise ValueError(
                f"batch.incomplete_rows must be one of {INCOMPLETE_ROW_POLICIES}, got '{policy}'"
            )
        return policy

    @property
    def http_settings(self) -> Dict[str, Any]:
        return dict(_section(self.raw, "http"))

    def to_debug_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine_name,
            "output_dir": str(self.output_dir),
            "temp_dir": str(self.temp_dir),
            "log_file": str(self.log_file),
            "incomplete_rows": self.incomplete_rows_policy,
        }

    def dumps(self) -> str:
        """Return a JSON string for diagnostics."""
        return json.dumps(self.to_debug_dict(), ensure_ascii=False, indent=2)


def build_config(raw: Dict[str, Any], root: Path, config_path: Optional[Path] = None) -> AppConfig:
    """Resolve key directories of an already-parsed config mapping."""
    output_cfg = _section(raw, "output")
    output_dir = (root / output_cfg.get("directory", "output")).resolve()
    temp_dir = (root / output_cfg.get("temp_directory", "temp")).resolve()
    log_file_name = _section(raw, "logging").get("file", "logs/run.log")
    log_file = (root / log_file_name).resolve()

    engine = str(raw.get("engine", "moviepy")).strip().lower()
    if engine and engine not in SUPPORTED_ENGINES:
        raise ValueError(f"Unsupported engine '{engine}'. Supported engines: {list(SUPPORTED_ENGINES)}")

    return AppConfig(
        raw=raw,
        config_path=config_path,
        project_root=root,
        output_dir=output_dir,
        temp_dir=temp_dir,
        log_file=log_file,
    )


def load_config(path: Path | str, project_root: Path | None = None) -> AppConfig:
    """Load YAML config and resolve key directories."""
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    root = project_root.resolve() if project_root else config_path.parent
    return build_config(raw, root, config_path=config_path)
