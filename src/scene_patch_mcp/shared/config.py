from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONFIG_ENV = "SCENE_PATCH_CONFIG"


@dataclass(frozen=True)
class SceneConfig:
    file: str | None = None
    root_name: str = "Root"
    root_type: str = "Node"
    transactional: bool = True


@dataclass(frozen=True)
class PatchDefaults:
    strict: bool = True
    allow_delete: bool = False
    strict_types: bool = True
    detect_renames: bool = False
    reorder_children: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: str | None = None


@dataclass(frozen=True)
class AppConfig:
    scene: SceneConfig = SceneConfig()
    patch: PatchDefaults = PatchDefaults()
    logging: LoggingConfig = LoggingConfig()


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_config() -> AppConfig:
    config_path = os.getenv(CONFIG_ENV)
    if not config_path:
        return AppConfig()

    path = Path(config_path)
    if not path.exists():
        return AppConfig()

    raw = _load_json(path)
    scene_raw = raw.get("scene", {})
    patch_raw = raw.get("patch", {})
    logging_raw = raw.get("logging", {})
    return AppConfig(
        scene=SceneConfig(
            file=scene_raw.get("file"),
            root_name=str(scene_raw.get("root_name", "Root")),
            root_type=str(scene_raw.get("root_type", "Node")),
            transactional=_as_bool(scene_raw.get("transactional"), True),
        ),
        patch=PatchDefaults(
            strict=_as_bool(patch_raw.get("strict"), True),
            allow_delete=_as_bool(patch_raw.get("allow_delete"), False),
            strict_types=_as_bool(patch_raw.get("strict_types"), True),
            detect_renames=_as_bool(patch_raw.get("detect_renames"), False),
            reorder_children=_as_bool(patch_raw.get("reorder_children"), False),
        ),
        logging=LoggingConfig(
            level=str(logging_raw.get("level", "INFO")),
            file=logging_raw.get("file"),
        ),
    )
