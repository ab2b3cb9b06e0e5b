"""Column population rates for uploaded datasets.

A value is populated when it is present and not blank after trimming.  An
empty dataset reports every requested column as fully populated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Sequence

from pintae.engine.datasets import DATASET_KINDS, is_blank

if TYPE_CHECKING:
    from pintae.coverage.catalog import TraceabilityCatalog


@dataclass(frozen=True)
class ColumnPopulation:
    column: str
    total_rows: int
    populated_count: int
    population_pct: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "column": self.column,
            "total_rows": self.total_rows,
            "populated_count": self.populated_count,
            "population_pct": round(self.population_pct, 2),
        }


@dataclass(frozen=True)
class DatasetPopulation:
    dataset: str
    columns: tuple[ColumnPopulation, ...]

    def get(self, column: str) -> Optional[ColumnPopulation]:
        for col in self.columns:
            if col.column == column:
                return col
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"dataset": self.dataset, "columns": [c.to_dict() for c in self.columns]}


def compute_column_population(
    rows: Sequence[Mapping[str, Any]], columns: Iterable[str]
) -> list[ColumnPopulation]:
    if not rows:
        return [ColumnPopulation(c, 0, 0, 100.0) for c in columns]

    result = []
    for column in columns:
        populated = sum(1 for row in rows if not is_blank(row.get(column)))
        result.append(ColumnPopulation(column, len(rows), populated, populated / len(rows) * 100))
    return result


def compute_all_dataset_populations(
    parsed: Mapping[str, Optional[Sequence[Mapping[str, Any]]]]
) -> list[DatasetPopulation]:
    """Population per dataset; columns are taken from each dataset's first row."""
    result = []
    for kind in DATASET_KINDS:
        rows = parsed.get(kind)
        if not rows:
            continue
        columns = list(rows[0].keys())
        result.append(DatasetPopulation(kind, tuple(compute_column_population(rows, columns))))
    return result


def populations_from_dict(raw: Mapping[str, Mapping[str, float]]) -> list[DatasetPopulation]:
    """Accept precomputed stats shaped ``{dataset: {column: pct}}``."""
    return [
        DatasetPopulation(
            dataset,
            tuple(ColumnPopulation(col, 0, 0, float(pct)) for col, pct in columns.items()),
        )
        for dataset, columns in raw.items()
    ]


def get_column_population_pct(
    populations: Iterable[DatasetPopulation], dataset: str, column: str
) -> Optional[float]:
    for ds in populations:
        if ds.dataset == dataset:
            col = ds.get(column)
            return col.population_pct if col else None
    return None


def mandatory_population_pct(
    populations: Sequence[DatasetPopulation], catalog: "TraceabilityCatalog"
) -> Optional[float]:
    """Mean population over mandatory in-template DRs that have data."""
    pcts = []
    for entry in catalog.drs:
        if not entry.mandatory_for_default_use_case or not entry.internal_column_names:
            continue
        known = [
            p for p in (
                get_column_population_pct(populations, entry.dataset_file, col)
                for col in entry.internal_column_names
            )
            if p is not None
        ]
        if known:
            pcts.append(sum(known) / len(known))
    if not pcts:
        return None
    return sum(pcts) / len(pcts)
