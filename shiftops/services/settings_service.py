# shiftops/services/settings_service.py
from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftops.core.config import Settings, settings as app_settings
from shiftops.models.setting import DealershipSetting, SettingType

AUTO_ARCHIVE_ENABLED = "auto_archive_enabled"
AUTO_ARCHIVE_DAY_OF_WEEK = "auto_archive_day_of_week"
TASK_ARCHIVE_DAYS = "task_archive_days"
ARCHIVE_OVERDUE_HOURS_AFTER_SHIFT = "archive_overdue_hours_after_shift"
ARCHIVE_COMPLETED_COOLDOWN_HOURS = "archive_completed_cooldown_hours"
ARCHIVE_MODE = "archive_mode"
ARCHIVE_OVERDUE_DAY_OF_WEEK = "archive_overdue_day_of_week"

ARCHIVE_MODES = ("cooldown", "days", "weekend", "end_of_day")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

_MISSING = object()


class SettingValueError(ValueError):
    pass


def decode_value(row: DealershipSetting) -> Any:
    raw = row.value
    kind = row.type or SettingType.string.value
    try:
        if raw is None:
            return None
        if kind == SettingType.integer.value:
            return int(raw.strip())
        if kind == SettingType.boolean.value:
            v = raw.strip().lower()
            if v in _TRUE:
                return True
            if v in _FALSE:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if kind == SettingType.json.value:
            return json.loads(raw)
        return raw
    except ValueError as e:
        raise SettingValueError(
            f"setting '{row.key}' (dealership={row.dealership_id}) has bad {kind} value {raw!r}"
        ) from e


def encode_value(value: Any, kind: SettingType) -> str:
    if kind == SettingType.json:
        return json.dumps(value, ensure_ascii=False)
    if kind == SettingType.boolean:
        return "1" if value else "0"
    return str(value)


class SettingsService:
    """Dealership-scoped settings: dealership row -> global row -> app default.

    Lookups are memoized per instance, i.e. per sweep run.
    """

    def __init__(self, db: Session, defaults: Settings = app_settings):
        self.db = db
        self.defaults = defaults
        self._cache: dict[tuple[UUID | None, str], Any] = {}

    def _stored(self, key: str, dealership_id: UUID | None) -> Any:
        cache_key = (dealership_id, key)
        if cache_key not in self._cache:
            stmt = select(DealershipSetting).where(DealershipSetting.key == key)
            if dealership_id is None:
                stmt = stmt.where(DealershipSetting.dealership_id.is_(None))
            else:
                stmt = stmt.where(DealershipSetting.dealership_id == dealership_id)
            row = self.db.execute(stmt).scalar_one_or_none()
            self._cache[cache_key] = _MISSING if row is None else decode_value(row)
        return self._cache[cache_key]

    def get(self, key: str, dealership_id: UUID | None = None, default: Any = None) -> Any:
        if dealership_id is not None:
            value = self._stored(key, dealership_id)
            if value is not _MISSING and value is not None:
                return value

        value = self._stored(key, None)
        if value is not _MISSING and value is not None:
            return value

        return default

    def set(
        self,
        key: str,
        value: Any,
        *,
        dealership_id: UUID | None = None,
        kind: SettingType = SettingType.string,
        description: str | None = None,
    ) -> DealershipSetting:
        stmt = select(DealershipSetting).where(DealershipSetting.key == key)
        if dealership_id is None:
            stmt = stmt.where(DealershipSetting.dealership_id.is_(None))
        else:
            stmt = stmt.where(DealershipSetting.dealership_id == dealership_id)

        row = self.db.execute(stmt).scalar_one_or_none()
        if row is None:
            row = DealershipSetting(dealership_id=dealership_id, key=key)
            self.db.add(row)

        row.type = kind.value
        row.value = encode_value(value, kind)
        if description is not None:
            row.description = description

        self.db.flush()
        self._cache.pop((dealership_id, key), None)
        return row

    # ---- typed accessors used by the archive sweeps ----

    def _int(self, key: str, dealership_id: UUID | None, default: int) -> int:
        value = self.get(key, dealership_id, default)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise SettingValueError(f"setting '{key}' is not an integer: {value!r}") from e

    def _bool(self, key: str, dealership_id: UUID | None, default: bool) -> bool:
        value = self.get(key, dealership_id, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
        raise SettingValueError(f"setting '{key}' is not a boolean: {value!r}")

    def auto_archive_enabled(self, dealership_id: UUID | None) -> bool:
        return self._bool(AUTO_ARCHIVE_ENABLED, dealership_id, self.defaults.default_auto_archive_enabled)

    def auto_archive_day_of_week(self, dealership_id: UUID | None) -> int:
        day = self._int(AUTO_ARCHIVE_DAY_OF_WEEK, dealership_id, self.defaults.default_auto_archive_day_of_week)
        if not 0 <= day <= 7:
            raise SettingValueError(f"'{AUTO_ARCHIVE_DAY_OF_WEEK}' must be 0..7, got {day}")
        return day

    def archive_mode(self, dealership_id: UUID | None) -> str:
        """How completed tasks age out.

        cooldown: only the cool-down hours; days: completed before the start of
        the business day task_archive_days ago; weekend: Sundays only;
        end_of_day: completed before today (business day).
        """
        mode = self.get(ARCHIVE_MODE, dealership_id, self.defaults.default_archive_mode)
        if not isinstance(mode, str) or mode.strip().lower() not in ARCHIVE_MODES:
            raise SettingValueError(f"'{ARCHIVE_MODE}' must be one of {ARCHIVE_MODES}, got {mode!r}")
        return mode.strip().lower()

    def archive_overdue_day_of_week(self, dealership_id: UUID | None) -> int:
        day = self._int(
            ARCHIVE_OVERDUE_DAY_OF_WEEK,
            dealership_id,
            self.defaults.default_archive_overdue_day_of_week,
        )
        if not 0 <= day <= 7:
            raise SettingValueError(f"'{ARCHIVE_OVERDUE_DAY_OF_WEEK}' must be 0..7, got {day}")
        return day

    def task_archive_days(self, dealership_id: UUID | None) -> int:
        return self._int(TASK_ARCHIVE_DAYS, dealership_id, self.defaults.default_task_archive_days)

    def archive_overdue_hours_after_shift(self, dealership_id: UUID | None) -> int:
        return self._int(
            ARCHIVE_OVERDUE_HOURS_AFTER_SHIFT,
            dealership_id,
            self.defaults.default_archive_overdue_hours_after_shift,
        )

    def archive_completed_cooldown_hours(self, dealership_id: UUID | None) -> int:
        return self._int(
            ARCHIVE_COMPLETED_COOLDOWN_HOURS,
            dealership_id,
            self.defaults.default_archive_completed_cooldown_hours,
        )
