from dataclasses import dataclass, field
from enum import Enum
from typing import Self

import pandas as pd
from pandas import DataFrame

VALUE_COLUMN = "value"


class MetricKind(Enum):
    GAUGE = "gauge"


@dataclass
class MetricDefinition:
    name: str
    query: str


@dataclass
class Metric:
    """One result row: label columns and value columns."""
    labels: dict[str, str] = field(default_factory=dict)
    values: dict[str, float] = field(default_factory=dict)

    @staticmethod
    def is_value_column(column: str) -> bool:
        return column == VALUE_COLUMN or column.startswith(VALUE_COLUMN + "_")

    @classmethod
    def from_data_frame(cls, df: DataFrame) -> list[Self]:
        value_columns = [str(c) for c in df.columns if cls.is_value_column(str(c))]
        label_columns = [str(c) for c in df.columns if not cls.is_value_column(str(c))]
        return [
            cls(
                {c: "" if pd.isna(row[c]) else str(row[c]) for c in label_columns},
                {c: float(row[c]) for c in value_columns},
            )
            for _, row in df.iterrows()
        ]


def metric_suffix(column: str) -> str:
    """
    Maps a value column to the suffix appended to the metric name:
    ``value`` -> ``""``, ``value_bytes`` -> ``"_bytes"``.
    """

    return column[len(VALUE_COLUMN):]
