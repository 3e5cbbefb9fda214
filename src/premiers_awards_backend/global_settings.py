"""Administrative global settings, including the current program year."""

from __future__ import annotations

import logging
from typing import List, Optional

from .database import NominationDatabase, new_id
from .errors import InvalidInput, NoRecord, RecordExists
from .models import GlobalSetting, SettingCreate, SettingUpdate

logger = logging.getLogger(__name__)

YEAR_SETTING = "year"


class GlobalSettings:
    def __init__(self, db: NominationDatabase, default_year: int) -> None:
        self.db = db
        self.default_year = default_year

    def get(self, setting_id: str) -> GlobalSetting:
        setting = self.db.get_setting(setting_id)
        if setting is None:
            raise NoRecord(f"Setting {setting_id} not found.")
        return setting

    def list_all(self) -> List[GlobalSetting]:
        return self.db.find_settings()

    def by_type(self, setting_type: str) -> List[GlobalSetting]:
        return self.db.find_settings(type=setting_type)

    def create(self, data: SettingCreate) -> GlobalSetting:
        if not data.type or not data.value:
            raise InvalidInput("Settings require a type and a value.")
        if self.db.find_settings(type=data.type, label=data.label, value=data.value):
            raise RecordExists(f"Setting {data.type}/{data.label} already exists.")
        setting = GlobalSetting(id=new_id(), **data.model_dump())
        self.db.save_setting(setting)
        return setting

    def update(self, setting_id: str, data: SettingUpdate) -> GlobalSetting:
        current = self.get(setting_id)
        updated = current.model_copy(update=data.model_dump(exclude_none=True))
        if not updated.type or not updated.value:
            raise InvalidInput("Settings require a type and a value.")
        self.db.save_setting(updated)
        return updated

    def delete(self, setting_id: str) -> None:
        self.get(setting_id)
        self.db.delete_setting(setting_id)

    def program_year(self) -> int:
        """Year from the first valid ``year`` setting, else the configured default."""
        for setting in self.by_type(YEAR_SETTING):
            try:
                return int(setting.value)
            except ValueError:
                logger.warning(f"Ignoring non-numeric year setting {setting.id}: {setting.value!r}")
        return self.default_year

    def validate_year(self, year: Optional[int | str]) -> bool:
        if year is None or year == "":
            return False
        try:
            return int(year) == self.program_year()
        except (TypeError, ValueError):
            return False
