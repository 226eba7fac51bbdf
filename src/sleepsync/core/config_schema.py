"""Pydantic models for config validation.

``Config.validated()`` turns the merged ``Config.config_data`` dict into a
typed :class:`SleepSyncSettings`. The journal layer works with the plain
dataclasses from :mod:`sleepsync.journal.config`; ``to_category()`` and
``to_config()`` build them from the validated settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sleepsync.journal.config import CategoryConfig, MeasurementConfig, MeasurementSpec


def _expand(v: Any) -> Any:
    if isinstance(v, str):
        return Path(v).expanduser()
    if isinstance(v, Path):
        return v.expanduser()
    return v


class PathsSettings(BaseModel):
    """File-system paths used by the application."""

    data_dir: Path
    token_file: Path | None = None
    log_dir: Path | None = None

    @field_validator("data_dir", "token_file", "log_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        return _expand(v)


class VaultSettings(BaseModel):
    """Root directory of the markdown vault."""

    path: Path = Path("~/vault")

    @field_validator("path", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        return _expand(v)


class UserSettings(BaseModel):
    id: str
    name: str = ""


class CategorySettings(BaseModel):
    """One document category (the journal or the running sleep log)."""

    enabled: bool = True
    folder: str = "Journal"
    subfolder: str = ""
    name_format: str = "YYYY-MM-DD_ddd"
    template: str = ""
    sleep_entry: str
    wake_entry: str
    prefix_letter: str = ""
    per_day: bool = True

    @field_validator("prefix_letter")
    @classmethod
    def _single_letter(cls, v: str) -> str:
        v = v.strip()
        if len(v) > 1:
            raise ValueError(f"prefix_letter must be a single character, got {v!r}")
        return v

    @model_validator(mode="after")
    def _running_log_has_dates(self) -> CategorySettings:
        # Rows of a running log span many days.
        if not self.per_day:
            for field_name in ("sleep_entry", "wake_entry"):
                if "<date>" not in getattr(self, field_name):
                    raise ValueError(f"{field_name} must contain <date> for a running log")
        return self

    def to_category(self, name: str) -> CategoryConfig:
        return CategoryConfig(name=name, **self.model_dump())


class MeasurementSpecSettings(BaseModel):
    name: str
    kind: Literal["duration", "quality"] = "duration"
    unit: str = "hours"


class MeasurementSettings(BaseModel):
    """Per-measurement history tables."""

    enabled: bool = True
    folder: str = "Sleep"
    template: str = ""
    entry: str = "| <date> | <user> | <measure> <unit> |"
    name_format: str = "<measure>"
    track: list[MeasurementSpecSettings] = []

    def to_config(self) -> MeasurementConfig:
        return MeasurementConfig(
            enabled=self.enabled,
            folder=self.folder,
            template=self.template,
            entry=self.entry,
            name_format=self.name_format,
            track=tuple(MeasurementSpec(**spec.model_dump()) for spec in self.track),
        )


class SessionNoteSettings(BaseModel):
    folder: str = "Sleep"


class CalendarSettings(BaseModel):
    """Calendar feed written by the phone's sleep tracker."""

    enabled: bool = False
    plugin: str = "calendar"
    url: str = ""
    summary_marker: str = "Sleep as Android"

    @model_validator(mode="after")
    def _url_when_enabled(self) -> CalendarSettings:
        if self.enabled and not self.url:
            raise ValueError("sources.calendar.url is required when the calendar source is enabled")
        return self


class GoogleFitSettings(BaseModel):
    enabled: bool = False
    plugin: str = "google_fit"
    callback_port: int = Field(default=16321, ge=0, le=65535)
    callback_timeout: int = Field(default=300, ge=1)
    min_request_interval: float = Field(default=1.0, ge=0)


class SourcesSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    calendar: CalendarSettings = CalendarSettings()
    google_fit: GoogleFitSettings = GoogleFitSettings()


class SyncSettings(BaseModel):
    default_days: int = Field(default=7, ge=0)
    auto_sync_minutes: int = Field(default=60, ge=1)


class SleepSyncSettings(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so consumers can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    paths: PathsSettings = PathsSettings(data_dir=Path("~/.sleepsync"))
    vault: VaultSettings = VaultSettings()
    users: list[UserSettings] = []
    default_user: str = ""
    journal: CategorySettings
    running_log: CategorySettings
    measurements: MeasurementSettings = MeasurementSettings()
    session_notes: SessionNoteSettings = SessionNoteSettings()
    sources: SourcesSettings = SourcesSettings()
    sync: SyncSettings = SyncSettings()

    @model_validator(mode="after")
    def _default_user_known(self) -> SleepSyncSettings:
        ids = [u.id for u in self.users]
        if self.default_user and ids and self.default_user not in ids:
            raise ValueError(f"default_user {self.default_user!r} not found in users: {ids}")
        return self

    def user_id(self) -> str:
        """The user new events are attributed to."""
        if self.default_user:
            return self.default_user
        return self.users[0].id if self.users else ""

    def user_name(self, user_id: str) -> str:
        for user in self.users:
            if user.id == user_id:
                return user.name or user.id
        return "Unknown"
