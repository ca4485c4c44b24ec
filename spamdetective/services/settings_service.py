"""
Detection settings persistence with a read-through cache.
"""

import logging
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from spamdetective.config import DetectionSettings, DEFAULT_DETECTION_SETTINGS
from spamdetective.errors import ConfigError, LookupUnavailable
from spamdetective.models.setting import SettingEntry

logger = logging.getLogger(__name__)


class SettingsStore:
    """Flat key -> value settings table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        try:
            entry = self.db.get(SettingEntry, key)
        except SQLAlchemyError as e:
            raise LookupUnavailable(f"settings store unavailable: {e}") from e
        return entry.value if entry is not None else default

    def get_all(self) -> Dict[str, Any]:
        try:
            return {entry.key: entry.value for entry in self.db.query(SettingEntry).all()}
        except SQLAlchemyError as e:
            raise LookupUnavailable(f"settings store unavailable: {e}") from e

    def set_many(self, values: Dict[str, Any]):
        try:
            for key, value in values.items():
                entry = self.db.get(SettingEntry, key)
                if entry is None:
                    self.db.add(SettingEntry(key=key, value=value))
                else:
                    entry.value = value
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupUnavailable(f"settings store unavailable: {e}") from e


def validate_settings(values: Dict[str, Any]) -> DetectionSettings:
    """Build DetectionSettings from raw values, raising ConfigError on bad input."""
    try:
        return DetectionSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid detection settings: {e}") from e


class SettingsAccessor:
    """
    Typed, cached view over the settings store.

    The loaded DetectionSettings is reused until invalidate() or save()
    is called; callers hold one accessor per batch or per process.
    """

    def __init__(self, store: SettingsStore, analysis_cache=None):
        self.store = store
        self.analysis_cache = analysis_cache
        self._cached: Optional[DetectionSettings] = None
        self._lock = threading.Lock()

    def get(self) -> DetectionSettings:
        with self._lock:
            if self._cached is None:
                self._cached = self._load()
            return self._cached

    def _load(self) -> DetectionSettings:
        stored = self.store.get_all()
        known = {k: v for k, v in stored.items() if k in DetectionSettings.model_fields}
        try:
            return DetectionSettings(**{**DEFAULT_DETECTION_SETTINGS.model_dump(), **known})
        except (ValidationError, ConfigError) as e:
            # Only reachable if the table was edited behind our back
            logger.error(f"Stored detection settings are invalid, using defaults: {e}")
            return DEFAULT_DETECTION_SETTINGS

    def invalidate(self):
        with self._lock:
            self._cached = None

    def save(self, updates: Dict[str, Any]) -> DetectionSettings:
        """
        Validate and persist a partial update.

        The merged settings are validated before anything is written; on
        success the cached view and all cached analyses are dropped.
        """
        unknown = set(updates) - set(DetectionSettings.model_fields)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")

        merged = validate_settings({**self.get().model_dump(), **updates})
        self.store.set_many({key: getattr(merged, key) for key in updates})
        self.invalidate()
        if self.analysis_cache is not None:
            self.analysis_cache.clear_all_user_cache()

        logger.info(f"Detection settings updated: {updates}")
        return merged

    def initialize_defaults(self) -> bool:
        """Write defaults for any missing keys, keeping existing values. Returns whether anything was written."""
        stored = self.store.get_all()
        missing = {
            key: value
            for key, value in DEFAULT_DETECTION_SETTINGS.model_dump().items()
            if key not in stored
        }
        if missing:
            self.store.set_many(missing)
            self.invalidate()
        return bool(missing)
