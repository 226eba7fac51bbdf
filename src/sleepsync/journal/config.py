"""Configuration dataclasses for document categories.

These are pure data containers with sensible defaults. The validated
settings in :mod:`sleepsync.core.config_schema` build them from YAML
config and env vars; tests construct them directly.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SLEEP_ENTRY = "(time:: <mtime>) (type:: 💤) Asleep"
DEFAULT_WAKE_ENTRY = "(time:: <mtime>) (type:: ⏰) Awake ((duration:: <duration>) hours of sleep)"


@dataclass(frozen=True)
class CategoryConfig:
    """Where and how one kind of document receives sleep entries.

    Attributes:
        name: Category name used in logs and reports (``journal``, ``running_log``).
        enabled: Whether syncs write to this category by default.
        folder: Vault-relative root folder.
        subfolder: Date-token template below ``folder`` (``YYYY/YYYY-MM``).
        name_format: Date-token template for the file name, without ``.md``.
        template: Vault-relative path of a note used as the body of new documents.
        sleep_entry: Entry template for sleep events.
        wake_entry: Entry template for wake events.
        prefix_letter: Single task letter rendered as ``- [s] `` before entries.
        per_day: False for a single running document whose path is used verbatim.
    """

    name: str = "journal"
    enabled: bool = True
    folder: str = "Journal"
    subfolder: str = "YYYY/YYYY-MM"
    name_format: str = "YYYY-MM-DD_ddd"
    template: str = ""
    sleep_entry: str = DEFAULT_SLEEP_ENTRY
    wake_entry: str = DEFAULT_WAKE_ENTRY
    prefix_letter: str = "s"
    per_day: bool = True

    def entry_template(self, kind: str) -> str:
        return self.sleep_entry if kind == "sleep" else self.wake_entry


@dataclass(frozen=True)
class MeasurementSpec:
    """One tracked measurement: a name, a kind (``duration``/``quality``) and a unit."""

    name: str
    kind: str = "duration"
    unit: str = "hours"


DEFAULT_MEASUREMENTS = (
    MeasurementSpec("Total Sleep", "duration", "hours"),
    MeasurementSpec("Deep Sleep", "duration", "hours"),
    MeasurementSpec("Sleep Quality", "quality", "percent"),
)


@dataclass(frozen=True)
class MeasurementConfig:
    """Settings for the per-measurement tables.

    Attributes:
        enabled: Whether syncs update measurement files.
        folder: Vault-relative folder holding one file per measurement.
        template: Optional note used as the body of a new measurement file.
        entry: Row template; ``<date>``, ``<user>``, ``<measure>``, ``<unit>``.
        name_format: File name template; ``<measure>`` is the measurement name.
        track: Measurements to maintain.
    """

    enabled: bool = True
    folder: str = "Sleep"
    template: str = ""
    entry: str = "| <date> | <user> | <measure> <unit> |"
    name_format: str = "<measure>"
    track: tuple[MeasurementSpec, ...] = DEFAULT_MEASUREMENTS
