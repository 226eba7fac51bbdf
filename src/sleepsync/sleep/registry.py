"""
Which classes back the sleep sources named in the config.

The bundled sources are registered by name. Installed packages can add a
source, or replace a bundled one, through the ``sleepsync.sources``
entry-point group:

    [project.entry-points."sleepsync.sources"]
    my_ring = "my_package.source:MyRingSource"

``sources.calendar.plugin`` names the class for the primary slot and
``sources.google_fit.plugin`` the one for the fallback slot.
"""

from importlib.metadata import entry_points
from typing import Any

from loguru import logger

from sleepsync.core.exceptions import ConfigurationError

from .source import SleepSource

ENTRY_POINT_GROUP = "sleepsync.sources"


class SourceRegistry:
    """Name to source-class table."""

    def __init__(self):
        self._classes: dict[str, type] = {}

    def register(self, name: str, source_class: type) -> None:
        if not isinstance(source_class, type):
            raise TypeError(f"Sleep source '{name}' must be a class, got {source_class!r}")
        self._classes[name] = source_class

    def load_entry_points(self) -> list[str]:
        """Register every installed plugin and return the names loaded."""
        loaded = []
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                self.register(ep.name, ep.load())
            except (ImportError, AttributeError, TypeError) as e:
                logger.warning(f"Skipping sleep source plugin '{ep.name}': {e}")
                continue
            loaded.append(ep.name)
        if loaded:
            logger.debug(f"Loaded sleep source plugins: {', '.join(loaded)}")
        return loaded

    def get(self, name: str) -> type | None:
        return self._classes.get(name)

    def names(self) -> list[str]:
        return sorted(self._classes)

    def create(self, name: str, **config: Any) -> SleepSource:
        cls = self._classes.get(name)
        if cls is None:
            raise ConfigurationError(f"Unknown sleep source '{name}'. Available: {', '.join(self.names())}")
        source = cls(**config)
        if not isinstance(source, SleepSource):
            raise ConfigurationError(f"{cls.__name__} does not implement the SleepSource protocol")
        return source


def default_registry() -> SourceRegistry:
    """The bundled sources, then whatever installed plugins add or replace."""
    from .plugins.calendar_feed import CalendarSource
    from .plugins.google_fit import GoogleFitSource

    registry = SourceRegistry()
    registry.register(CalendarSource.name, CalendarSource)
    registry.register(GoogleFitSource.name, GoogleFitSource)
    registry.load_entry_points()
    return registry
