"""
Collector that caches query results and exports them as gauges
"""
import time
from typing import Iterator, List, Set

from prometheus_client.core import GaugeMetricFamily, Metric as MetricFamily

from bigquery_exporter.core.errors import RunnerError
from bigquery_exporter.metrics.base import QueryRunner
from bigquery_exporter.models import Metric, MetricKind, metric_suffix

_FAMILIES = {
    MetricKind.GAUGE: GaugeMetricFamily,
}


class QueryCollector:
    """
    Runs one metric's query on demand and serves the last good result.

    Scrapes never run the query: ``collect()`` only reads the cache that
    ``update()`` fills. A failed update keeps the previous values.
    """

    def __init__(self, runner: QueryRunner, kind: MetricKind, metric_name: str, query: str):
        self.runner = runner
        self.kind = kind
        self.metric_name = metric_name
        self.query = query

        self.metrics: List[Metric] = []
        self.last_error: RunnerError | None = None
        self.last_success: float | None = None

        # Family names owned by another collector; never exported from here
        self.excluded: Set[str] = set()

    @property
    def value(self) -> float | None:
        """The ``value`` column of the first row, if any."""
        for metric in self.metrics:
            if "value" in metric.values:
                return metric.values["value"]
        return None

    def fetch(self) -> List[Metric]:
        """
        Run the query without touching the cache.

        Raises:
            RunnerError: If the query fails. The error is recorded.
        """
        try:
            return self.runner.query(self.query)
        except RunnerError as e:
            self.last_error = e
            raise

    def store(self, metrics: List[Metric]):
        self.metrics = metrics
        self.last_error = None
        self.last_success = time.time()

    def update(self):
        """
        Run the query again and cache the result.

        Raises:
            RunnerError: If the query fails. The cached result is kept.
        """
        self.store(self.fetch())

    def family_names(self, metrics: List[Metric] | None = None) -> Set[str]:
        """
        Names of the families exported for the given rows (the cached rows
        by default). With no rows, only the bare metric name.
        """
        if metrics is None:
            metrics = self.metrics
        names = {
            self.metric_name + metric_suffix(column)
            for metric in metrics
            for column in metric.values
        }
        return names or {self.metric_name}

    def _families(self, metrics: List[Metric]) -> Iterator[MetricFamily]:
        family_type = _FAMILIES[self.kind]
        excluded = self.excluded
        families = {}
        for metric in metrics:
            label_names = sorted(metric.labels)
            for column, value in metric.values.items():
                family_name = self.metric_name + metric_suffix(column)
                if family_name in excluded:
                    continue
                family = families.get(column)
                if family is None:
                    family = family_type(
                        family_name,
                        f"Result of the {self.metric_name} query",
                        labels=label_names,
                    )
                    families[column] = family
                family.add_metric([metric.labels[name] for name in label_names], value)
        return iter(families.values())

    def describe(self) -> Iterator[MetricFamily]:
        if not self.metrics:
            # Nothing cached yet: reserve the bare metric name
            yield _FAMILIES[self.kind](self.metric_name, f"Result of the {self.metric_name} query")
            return
        yield from self._families(self.metrics)

    def collect(self) -> Iterator[MetricFamily]:
        yield from self._families(self.metrics)
