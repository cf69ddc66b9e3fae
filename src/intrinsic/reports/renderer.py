"""Plain-text period exports rendered from Jinja2 templates."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from intrinsic.domain.models.periods import (
    FLOAT_FIELDS,
    PeriodRecord,
    UserInputs,
    period_label,
)
from intrinsic.domain.services.calculations import derive_metrics, snapshot_values
from intrinsic.reports.formatting import format_clip_value

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def _present(items: Sequence[Tuple[str, Optional[float]]]) -> List[Tuple[str, str]]:
    return [(label, format_clip_value(value)) for label, value in items if value is not None]


def _raw_field_value(name: str, value: float) -> float:
    return value if name in FLOAT_FIELDS else int(value)


@dataclass
class ReportRenderer:
    """Render period snapshots from structured metric bundles."""

    template_dir: Path = TEMPLATE_DIR
    template_name: str = "period_snapshot.txt.j2"
    _env: Environment = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, context: Dict[str, Any]) -> str:
        """Render the configured template with supplied context."""
        return self.render_template(self.template_name, context)

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self._env.get_template(template_name)
        return template.render(**context)

    def period_snapshot(
        self,
        periods: Sequence[PeriodRecord],
        selected_index: int,
        inputs: Optional[UserInputs] = None,
        prefer_ttm: bool = False,
    ) -> str:
        """``label: value`` lines for every known raw field and derived metric."""
        record = periods[selected_index]
        bundle = derive_metrics(periods, selected_index, inputs, prefer_ttm)
        extras = snapshot_values(periods, selected_index, inputs, prefer_ttm)

        raw_fields = [
            (name.replace("_", " "), format_clip_value(_raw_field_value(name, value)))
            for name, value in record.payload().items()
            if value is not None
        ]
        shown = {metric.label for metric in bundle.metrics()}
        derived = _present([(metric.label, metric.value) for metric in bundle.metrics()])
        derived += _present([(label, value) for label, value in extras.items() if label not in shown])

        return self.render(
            {
                "ticker": record.ticker,
                "period": period_label(record),
                "entity_type": record.entity_type.value,
                "ttm": bundle.ttm_applied,
                "raw_fields": raw_fields,
                "derived": derived,
            }
        )
