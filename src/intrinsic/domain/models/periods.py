"""Domain models describing fiscal periods and the metrics derived from them."""
from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


class EntityType(str, Enum):
    """Reporting schema shared by every period of a ticker."""

    GENERIC = "generic"
    BANK = "bank"
    INSURER = "insurer"

    @classmethod
    def parse(cls, value: str) -> "EntityType":
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown entity type {value!r}; expected one of {choices}.") from exc


PERIOD_CODES = ("Y", "Q1", "Q2", "Q3", "Q4", "S1", "S2")
_PERIOD_RE = re.compile(r"^(\d{4})-([A-Za-z0-9]+)$")

# Raw payload fields per reporting schema, in data-entry order.
GENERIC_FIELDS: Tuple[str, ...] = (
    "cash_and_equivalents",
    "current_assets",
    "non_current_assets",
    "current_liabilities",
    "non_current_liabilities",
    "revenue",
    "net_income",
    "eps",
    "cash_flow_from_operations",
    "cash_flow_from_investing",
    "cash_flow_from_financing",
)
BANK_FIELDS: Tuple[str, ...] = (
    "total_loans",
    "goodwill",
    "total_assets",
    "total_deposits",
    "total_liabilities",
    "net_interest_income",
    "non_interest_income",
    "loan_loss_provisions",
    "non_interest_expense",
    "net_income",
    "eps",
    "risk_weighted_assets",
    "common_equity_tier1",
    "net_charge_offs",
    "non_performing_loans",
)
INSURER_FIELDS: Tuple[str, ...] = (
    "total_assets",
    "insurance_reserves",
    "total_debt",
    "total_liabilities",
    "earned_premiums",
    "claims_incurred",
    "interest_expenses",
    "total_expenses",
    "underwriting_expenses",
    "net_income",
    "eps",
)

SCHEMA_FIELDS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.GENERIC: GENERIC_FIELDS,
    EntityType.BANK: BANK_FIELDS,
    EntityType.INSURER: INSURER_FIELDS,
}

# Every field except EPS is stored as a whole amount.
FLOAT_FIELDS = frozenset({"eps"})


class PeriodFormatError(ValueError):
    """Raised when a period label does not look like ``YYYY-<code>``."""


@dataclass(frozen=True)
class PeriodRecord:
    """One fiscal period for one ticker.

    Fields outside the record's schema simply stay ``None``; absence is the
    only representation of an unknown value.
    """

    ticker: str
    year: int
    period_code: str
    entity_type: EntityType = EntityType.GENERIC

    # Generic
    cash_and_equivalents: Optional[float] = None
    current_assets: Optional[float] = None
    non_current_assets: Optional[float] = None
    current_liabilities: Optional[float] = None
    non_current_liabilities: Optional[float] = None
    revenue: Optional[float] = None
    cash_flow_from_operations: Optional[float] = None
    cash_flow_from_investing: Optional[float] = None
    cash_flow_from_financing: Optional[float] = None

    # Shared
    net_income: Optional[float] = None
    eps: Optional[float] = None
    total_assets: Optional[float] = None
    total_liabilities: Optional[float] = None

    # Bank
    total_loans: Optional[float] = None
    goodwill: Optional[float] = None
    total_deposits: Optional[float] = None
    net_interest_income: Optional[float] = None
    non_interest_income: Optional[float] = None
    loan_loss_provisions: Optional[float] = None
    non_interest_expense: Optional[float] = None
    risk_weighted_assets: Optional[float] = None
    common_equity_tier1: Optional[float] = None
    net_charge_offs: Optional[float] = None
    non_performing_loans: Optional[float] = None

    # Insurer
    insurance_reserves: Optional[float] = None
    total_debt: Optional[float] = None
    earned_premiums: Optional[float] = None
    claims_incurred: Optional[float] = None
    interest_expenses: Optional[float] = None
    total_expenses: Optional[float] = None
    underwriting_expenses: Optional[float] = None

    @property
    def label(self) -> str:
        return period_label(self)

    def payload(self) -> Dict[str, Optional[float]]:
        """Schema fields of this record, in data-entry order."""
        return {name: getattr(self, name) for name in SCHEMA_FIELDS[self.entity_type]}

    def with_write_time_fields(self) -> "PeriodRecord":
        """Derive insurer expense fields from the others.

        Underwriting expenses always follow total, claims and interest when
        total and claims are known; otherwise a missing total is rebuilt from
        its parts.
        """
        if self.entity_type is not EntityType.INSURER:
            return self
        interest = self.interest_expenses or 0
        if self.total_expenses is not None and self.claims_incurred is not None:
            return replace(
                self, underwriting_expenses=self.total_expenses - self.claims_incurred - interest
            )
        if (
            self.total_expenses is None
            and self.claims_incurred is not None
            and self.underwriting_expenses is not None
        ):
            return replace(
                self, total_expenses=self.claims_incurred + self.underwriting_expenses + interest
            )
        return self


PAYLOAD_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(PeriodRecord) if f.name not in {"ticker", "year", "period_code", "entity_type"}
)


@dataclass(frozen=True)
class UserInputs:
    """Ephemeral values typed by the user while viewing a period."""

    price: Optional[float] = None
    wished_multiple: Optional[float] = None


@dataclass(frozen=True)
class DerivedMetric:
    """A labelled value recomputed every time a period is viewed."""

    label: str
    value: Optional[float]
    percent_change: Optional[float] = None
    display_kind: str = "amount"  # amount | integer | compact | ratio | percent
    invert_change: bool = False
    input_dependent: bool = False


@dataclass
class MetricBundle:
    """Ordered metric boxes for one period, laid out per entity type."""

    ticker: str
    period: str
    entity_type: EntityType
    boxes: Dict[str, List[DerivedMetric]] = field(default_factory=dict)
    ttm_applied: bool = False

    def metrics(self) -> List[DerivedMetric]:
        return [metric for box in self.boxes.values() for metric in box]

    def get(self, label: str) -> Optional[DerivedMetric]:
        for metric in self.metrics():
            if metric.label == label:
                return metric
        return None

    def value(self, label: str) -> Optional[float]:
        metric = self.get(label)
        return metric.value if metric is not None else None

    def changes(self) -> Dict[str, Optional[float]]:
        return {metric.label: metric.percent_change for metric in self.metrics()}


# ----------------------------
# Period identity helpers
# ----------------------------

def period_label(record: PeriodRecord) -> str:
    return f"{record.year}-{record.period_code}"


def parse_period(label: str) -> Tuple[int, str]:
    """Split ``2024-Q3`` into ``(2024, "Q3")``, normalising case."""
    match = _PERIOD_RE.match(str(label).strip())
    if match is None:
        raise PeriodFormatError(f"Invalid period {label!r}; expected YYYY-<code>, e.g. 2024-Q3.")
    year, code = int(match.group(1)), match.group(2).upper()
    if code not in PERIOD_CODES:
        raise PeriodFormatError(f"Invalid period code {code!r}; expected one of {', '.join(PERIOD_CODES)}.")
    return year, code


def period_family(record: PeriodRecord) -> str:
    """First letter of the period code (``Y``, ``Q``, ``S``); empty when unknown."""
    if not record.period_code:
        return ""
    return record.period_code[0].upper()


def ttm_window(family: str) -> int:
    if family == "Q":
        return 4
    if family == "S":
        return 2
    return 0


def is_yearly(record: PeriodRecord) -> bool:
    return record.period_code == "Y"


def find_by_label(periods: Sequence[PeriodRecord], label: str) -> int:
    """Index of the period carrying ``label``, or -1."""
    for idx, record in enumerate(periods):
        if period_label(record) == label:
            return idx
    return -1


def find_prior_year_same_period(
    periods: Sequence[PeriodRecord], record: PeriodRecord
) -> Optional[PeriodRecord]:
    prev_year = record.year - 1
    for candidate in periods:
        if candidate.year == prev_year and candidate.period_code == record.period_code:
            return candidate
    return None
