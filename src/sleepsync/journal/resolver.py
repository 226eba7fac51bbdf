"""Map (date, category) to a vault-relative document path.

Per-day categories format ``folder/subfolder/name_format.md`` with date
tokens, evaluated at local noon of the date. A running log (``per_day``
off) uses its configured path verbatim. Nothing here touches storage.
"""

from __future__ import annotations

from datetime import date

from sleepsync.core.clock import Clock
from sleepsync.core.dates import format_date, parse_iso_date

from .config import CategoryConfig


def join_path(*parts: str) -> str:
    """Join path parts with ``/``, dropping empty parts and stray slashes."""
    cleaned = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/".join(cleaned)


def with_markdown_suffix(name: str) -> str:
    return name if name.endswith(".md") else f"{name}.md"


class DocumentResolver:
    """Pure path computation for document categories."""

    def __init__(self, clock: Clock):
        self.clock = clock

    def resolve(self, day: date | str, category: CategoryConfig) -> str:
        if not category.per_day:
            return join_path(category.folder, category.subfolder, with_markdown_suffix(category.name_format))

        noon = self.clock.local_noon(parse_iso_date(day))
        subfolder = format_date(noon, category.subfolder) if category.subfolder else ""
        name = format_date(noon, category.name_format)
        return join_path(category.folder, subfolder, with_markdown_suffix(name))

    def title(self, day: date | str, category: CategoryConfig) -> str:
        """File name without ``.md``, used for ``{{title}}``."""
        path = self.resolve(day, category)
        return path.rsplit("/", 1)[-1].removesuffix(".md")
