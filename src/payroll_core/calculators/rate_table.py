"""Statutory rate table with effective-dated, condition-matched wage bands.

Resolution order for ``resolve``:
1. Entries of the requested contribution type
2. Effective window contains the as-of date (effective_from <= d < effective_to)
3. Every condition on the entry equals the employee's value
4. Wage band [wage_from, wage_to] contains the (ceiling-clamped) wage
5. Most specific wins: more condition keys, then the latest effective_from
   (a later publication supersedes an earlier one). A remaining tie is a
   configuration error, as is no match at all.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from payroll_core.calculators.types import ContributionType
from payroll_core.config import DEFAULT_DATASET
from payroll_core.exceptions import AmbiguousRateError, DatasetError, RateEntryNotFoundError
from payroll_core.money import round_money, to_decimal


class RateEntry(BaseModel):
    """One published band of a contribution schedule. Immutable."""

    model_config = ConfigDict(frozen=True)

    type: str
    effective_from: date
    effective_to: date | None = None
    wage_from: Decimal
    wage_to: Decimal | None = None
    amount: Decimal | None = None
    rate: Decimal | None = Field(default=None, ge=0, le=1)
    conditions: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_entry(self) -> RateEntry:
        if (self.amount is None) == (self.rate is None):
            raise ValueError("exactly one of amount or rate must be set")
        if self.wage_to is not None and self.wage_to < self.wage_from:
            raise ValueError(f"wage_to {self.wage_to} is below wage_from {self.wage_from}")
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise ValueError("effective_to must be after effective_from")
        return self

    @property
    def specificity(self) -> int:
        return len(self.conditions)

    def is_active(self, as_of: date) -> bool:
        return self.effective_from <= as_of and (
            self.effective_to is None or as_of < self.effective_to
        )

    def matches(self, conditions: Mapping[str, str]) -> bool:
        return all(conditions.get(key) == value for key, value in self.conditions.items())

    def contains(self, wage: Decimal) -> bool:
        return self.wage_from <= wage and (self.wage_to is None or wage <= self.wage_to)


class WageCeiling(BaseModel):
    """Maximum wage a contribution is computed on."""

    model_config = ConfigDict(frozen=True)

    applies_to: list[str]
    effective_from: date
    effective_to: date | None = None
    amount: Decimal = Field(gt=0)

    def is_active(self, as_of: date) -> bool:
        return self.effective_from <= as_of and (
            self.effective_to is None or as_of < self.effective_to
        )


class ReliefSchedule(BaseModel):
    """Annual personal tax reliefs used by resident withholding."""

    model_config = ConfigDict(frozen=True)

    effective_from: date
    effective_to: date | None = None
    personal: Decimal
    spouse_no_income: Decimal
    child_under_18: Decimal
    child_18_plus_studying: Decimal
    disabled_child: Decimal
    epf_max: Decimal
    socso_eis_max: Decimal

    def is_active(self, as_of: date) -> bool:
        return self.effective_from <= as_of and (
            self.effective_to is None or as_of < self.effective_to
        )


class StatutoryDataset(BaseModel):
    """Top-level shape of a statutory dataset file."""

    jurisdiction: str
    currency: str
    version: str
    ceilings: list[WageCeiling] = Field(default_factory=list)
    reliefs: list[ReliefSchedule] = Field(default_factory=list)
    entries: list[RateEntry]


@dataclass(frozen=True)
class ResolvedRate:
    """Outcome of a rate-table lookup.

    ``amount`` is the contribution: the band's flat amount verbatim, or
    wage * rate rounded half-up to 2 dp. ``wage`` is the ceiling-clamped
    wage the band was matched against.
    """

    amount: Decimal
    applied_rate: Decimal | None
    matched_band: RateEntry
    wage: Decimal
    ceiling: Decimal | None = None

    @property
    def is_flat(self) -> bool:
        return self.applied_rate is None


class StatutoryRateTable:
    """Versioned statutory contribution schedules for one jurisdiction."""

    def __init__(
        self,
        entries: Iterable[RateEntry],
        ceilings: Iterable[WageCeiling] = (),
        reliefs: Iterable[ReliefSchedule] = (),
        jurisdiction: str = "MY",
        currency: str = "MYR",
        version: str | None = None,
    ):
        self.jurisdiction = jurisdiction
        self.currency = currency
        self.version = version
        self._ceilings = list(ceilings)
        self._reliefs = list(reliefs)
        self._by_type: dict[str, list[RateEntry]] = {}
        for entry in entries:
            self._by_type.setdefault(entry.type, []).append(entry)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StatutoryRateTable:
        try:
            dataset = StatutoryDataset.model_validate(data)
        except ValidationError as e:
            raise DatasetError(f"Invalid statutory dataset: {e}") from e
        return cls(
            entries=dataset.entries,
            ceilings=dataset.ceilings,
            reliefs=dataset.reliefs,
            jurisdiction=dataset.jurisdiction,
            currency=dataset.currency,
            version=dataset.version,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> StatutoryRateTable:
        with open(path, encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    @classmethod
    def default(cls) -> StatutoryRateTable:
        """The packaged Malaysian dataset (loaded once)."""
        return _load_default()

    @property
    def contribution_types(self) -> list[str]:
        return sorted(self._by_type)

    def entries(self, contribution_type: str | ContributionType) -> list[RateEntry]:
        return list(self._by_type.get(_type_key(contribution_type), []))

    def ceiling(self, contribution_type: str | ContributionType, as_of: date) -> Decimal | None:
        """Wage ceiling in force for a contribution type, if any."""
        key = _type_key(contribution_type)
        active = [c for c in self._ceilings if key in c.applies_to and c.is_active(as_of)]
        if not active:
            return None
        return max(active, key=lambda c: c.effective_from).amount

    def reliefs(self, as_of: date) -> ReliefSchedule:
        active = [r for r in self._reliefs if r.is_active(as_of)]
        if not active:
            raise RateEntryNotFoundError("reliefs", Decimal("0"), as_of, {})
        return max(active, key=lambda r: r.effective_from)

    def resolve(
        self,
        contribution_type: str | ContributionType,
        wage: Decimal | str,
        as_of: date,
        conditions: Mapping[str, str],
        rate_override: Decimal | None = None,
    ) -> ResolvedRate:
        """Resolve the contribution for a wage.

        Args:
            contribution_type: Schedule to look up
            wage: Wage before ceiling
            as_of: Effective date
            conditions: Employee condition values (age_category, nationality,
                salary_category)
            rate_override: Replaces the band's rate; band and ceiling still apply

        Raises:
            RateEntryNotFoundError: No band covers the wage
            AmbiguousRateError: Two equally specific bands cover the wage
        """
        key = _type_key(contribution_type)
        gross = to_decimal(wage)
        ceiling = self.ceiling(key, as_of)
        applicable = min(gross, ceiling) if ceiling is not None else gross

        band = self._select(key, applicable, as_of, conditions)

        if rate_override is not None:
            rate = to_decimal(rate_override)
            return ResolvedRate(round_money(applicable * rate), rate, band, applicable, ceiling)
        if band.amount is not None:
            return ResolvedRate(round_money(band.amount), None, band, applicable, ceiling)
        return ResolvedRate(round_money(applicable * band.rate), band.rate, band, applicable, ceiling)

    def bands(
        self,
        contribution_type: str | ContributionType,
        as_of: date,
        conditions: Mapping[str, str] | None = None,
    ) -> list[RateEntry]:
        """All bands of the schedule in force, ordered by wage_from.

        Only the most specific, most recent condition set is returned so
        callers walking a progressive schedule never mix two versions.
        """
        key = _type_key(contribution_type)
        candidates = [
            e
            for e in self._by_type.get(key, [])
            if e.is_active(as_of) and e.matches(conditions or {})
        ]
        if not candidates:
            return []
        best = max((e.specificity, e.effective_from) for e in candidates)
        chosen = [e for e in candidates if (e.specificity, e.effective_from) == best]
        return sorted(chosen, key=lambda e: e.wage_from)

    def _select(
        self,
        key: str,
        wage: Decimal,
        as_of: date,
        conditions: Mapping[str, str],
    ) -> RateEntry:
        candidates = [
            e
            for e in self._by_type.get(key, [])
            if e.is_active(as_of) and e.matches(conditions) and e.contains(wage)
        ]
        if not candidates:
            raise RateEntryNotFoundError(key, wage, as_of, dict(conditions))

        best = max((e.specificity, e.effective_from) for e in candidates)
        winners = [e for e in candidates if (e.specificity, e.effective_from) == best]
        if len(winners) > 1:
            raise AmbiguousRateError(key, wage, as_of, len(winners))
        return winners[0]


def _type_key(contribution_type: str | ContributionType) -> str:
    if isinstance(contribution_type, ContributionType):
        return contribution_type.value
    return str(contribution_type)


@lru_cache(maxsize=1)
def _load_default() -> StatutoryRateTable:
    return StatutoryRateTable.from_file(DEFAULT_DATASET)
