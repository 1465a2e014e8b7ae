from __future__ import annotations

import html
from dataclasses import dataclass, field


@dataclass(frozen=True)
class LabelValue:
    label: str
    value: str

    def is_valid(self) -> bool:
        return bool(self.label) and bool(self.value)


def is_zero_reading(value: str) -> bool:
    """True for readings that carry no signal ("0", "0.0", "-0")."""
    if value == "0":
        return True
    try:
        return float(value) == 0.0
    except ValueError:
        return False


def _sort_key(pair: LabelValue) -> int:
    # Non-integer readings sort as 0.
    try:
        return int(pair.value)
    except ValueError:
        return 0


@dataclass
class QueryMetric:
    """A backend query, its report title and the values fetched this cycle."""

    query: str
    description: str
    label_field: str = "queue"
    dashboard_link: str | None = None
    name: str = ""
    values: list[LabelValue] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.query

    def clear(self) -> None:
        self.values = []

    def render(self) -> str:
        """Render the report: title, blank line, then ``label: value`` lines by descending value.

        Sorting is stable, so equal readings keep their fetch order. ``values``
        itself is not reordered.
        """
        lines = [self.description, ""]
        for pair in sorted(self.values, key=_sort_key, reverse=True):
            if not pair.is_valid():
                continue
            lines.append(f"{html.escape(pair.label, quote=False)}: {html.escape(pair.value, quote=False)}")
        if self.dashboard_link:
            lines.append("")
            lines.append(self.dashboard_link)
        return "\n".join(lines)
