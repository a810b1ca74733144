"""Simple JSON-based config store and user configuration codec."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from interfaces import ConfigStore
from models import Interest, OperatingMode, Settings, UsageStats, UserProfile

logger = logging.getLogger(__name__)

CONFIG_KEY = "trail_config"
HISTORY_KEY = "content_history"


class JsonConfigStore:
    """Key-value blob store persisted as a single JSON file."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "trail_narrator" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Config file %s unreadable, starting empty", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def default_profile() -> UserProfile:
    return UserProfile(
        interests=[
            Interest(id="1", name="History", category="history", weight=0.8),
            Interest(id="2", name="Nature", category="nature", weight=0.6),
            Interest(id="3", name="Culture", category="culture", weight=0.7),
        ]
    )


@dataclass
class UserConfiguration:
    profile: UserProfile = field(default_factory=default_profile)
    settings: Settings = field(default_factory=Settings)
    stats: UsageStats = field(default_factory=UsageStats)


def load_user_configuration(store: ConfigStore) -> UserConfiguration:
    """Merge persisted values over defaults; never raises."""
    config = UserConfiguration()
    try:
        raw = store.get_item(CONFIG_KEY)
    except Exception as exc:
        logger.warning("Failed to read user configuration: %s", exc)
        return config
    if not raw:
        return config

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Stored user configuration is corrupt, using defaults: %s", exc)
        return config
    if not isinstance(data, dict):
        logger.warning("Stored user configuration has unexpected shape, using defaults")
        return config

    try:
        config.profile = _merge_profile(config.profile, data.get("user_profile"))
        config.settings = _merge_settings(config.settings, data.get("settings"))
        config.stats = _merge_dataclass(config.stats, data.get("stats"))
    except (TypeError, ValueError, OverflowError) as exc:
        logger.warning("Stored user configuration is invalid, using defaults: %s", exc)
        return UserConfiguration()
    logger.info("User configuration loaded")
    return config


def save_user_configuration(
    store: ConfigStore,
    profile: UserProfile,
    settings: Settings,
    stats: UsageStats,
) -> bool:
    payload = {
        "user_profile": asdict(profile),
        "settings": {**asdict(settings), "mode": settings.mode.value},
        "stats": asdict(stats),
    }
    try:
        store.set_item(CONFIG_KEY, json.dumps(payload, ensure_ascii=False))
    except Exception as exc:
        logger.warning("Failed to save user configuration: %s", exc)
        return False
    return True


def _merge_dataclass(base: Any, data: Any, skip: tuple[str, ...] = ()) -> Any:
    if not isinstance(data, dict):
        return base
    for f in fields(base):
        if f.name in skip or f.name not in data:
            continue
        current = getattr(base, f.name)
        value = data[f.name]
        coerced = _coerce_like(current, value)
        if coerced is None:
            logger.debug("Ignoring stored %s=%r", f.name, value)
            continue
        setattr(base, f.name, coerced)
    return base


def _coerce_like(current: Any, value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(current, bool):
        return value if isinstance(value, bool) else None
    if isinstance(current, int) and not isinstance(current, bool):
        return int(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None
    if isinstance(current, float):
        return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None
    if isinstance(current, str):
        return value if isinstance(value, str) else None
    return None


def _merge_profile(base: UserProfile, data: Any) -> UserProfile:
    base = _merge_dataclass(base, data, skip=("interests",))
    if isinstance(data, dict) and isinstance(data.get("interests"), list):
        interests = []
        for item in data["interests"]:
            try:
                interests.append(
                    Interest(
                        id=str(item["id"]),
                        name=str(item["name"]),
                        category=str(item.get("category", "local")),
                        weight=_finite(float(item.get("weight", 0.5))),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError, OverflowError):
                logger.debug("Skipping malformed stored interest: %r", item)
        base.interests = interests
    return base


def _merge_settings(base: Settings, data: Any) -> Settings:
    base = _merge_dataclass(base, data, skip=("mode",))
    if isinstance(data, dict) and "mode" in data:
        try:
            base.mode = OperatingMode(data["mode"])
        except ValueError:
            logger.debug("Ignoring stored mode %r", data["mode"])
    return base


def _finite(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"non-finite value: {value}")
    return value
