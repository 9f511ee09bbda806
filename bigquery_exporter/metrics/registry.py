"""
Registry of live query collectors, keyed by metric name
"""
import logging
import threading
import time
from typing import Dict, List, Optional, Set

from bigquery_exporter.core.errors import RegistrationError, RunnerError, UnregistrationError
from bigquery_exporter.models import Metric, MetricKind
from .base import Exposition, QueryRunner
from .collector import QueryCollector

logger = logging.getLogger(__name__)


class MetricRegistry:
    """
    Owns the collectors currently served by the exposition layer.

    At most one collector is live per metric name. Within one refresh cycle
    a name is registered at most once: later attempts are skipped, so two
    files defining the same metric cannot race each other. In a later cycle
    registering the name again replaces the live collector.

    Every family name a collector exports (``<metric>`` and each
    ``<metric>_<suffix>``) is reserved for it. A family that shows up later
    under a name reserved by another metric is not exported.

    All check-then-register sequences run under a single lock.
    """

    def __init__(self, exposition: Exposition, kind: MetricKind = MetricKind.GAUGE):
        self.exposition = exposition
        self.kind = kind
        self._collectors: Dict[str, QueryCollector] = {}
        self._owners: Dict[str, Optional[str]] = {}
        self._reserved: Dict[str, str] = {}
        self._claimed: set[str] = set()
        self._lock = threading.Lock()

    def begin_cycle(self):
        """Open a new refresh cycle; every name may be registered once more."""
        with self._lock:
            self._claimed.clear()

    def register(self, name: str, runner: QueryRunner, query: str,
                 owner: Optional[str] = None) -> Optional[QueryCollector]:
        """
        Register a collector for a metric, replacing the previous one.

        The query runs once before the collector is exposed, so every family
        name it produces is checked and reserved at registration. A failed
        first run is logged and the collector is registered anyway.

        Args:
            name: Metric name
            runner: QueryRunner the collector will use
            query: Query text, placeholders already substituted
            owner: Name of the query file defining the metric

        Returns:
            The new collector, or None if the name was already registered
            during this cycle

        Raises:
            UnregistrationError: If the previous collector could not be
                removed. It stays live.
            RegistrationError: If one of the new collector's family names
                belongs to another metric, or the exposition layer rejects
                it. The name is left unregistered.
        """
        with self._lock:
            if name in self._claimed:
                logger.debug(f"Skipping {name}: already registered this cycle")
                return None
            self._claimed.add(name)

        try:
            return self._register(name, runner, query, owner)
        except Exception:
            # A rejected registration leaves the name free for another try
            with self._lock:
                self._claimed.discard(name)
            raise

    def _register(self, name: str, runner: QueryRunner, query: str,
                  owner: Optional[str]) -> QueryCollector:
        # The query can be slow; don't hold the lock while it runs
        collector = QueryCollector(runner, self.kind, name, query)
        try:
            collector.update()
        except RunnerError as e:
            logger.error(f"Error: {name}: first update failed: {e}")

        with self._lock:
            taken = {n for n in collector.family_names() if self._reserved.get(n, name) != name}
            if taken:
                raise RegistrationError(name, ValueError(f"names already in use: {sorted(taken)}"))

            previous = self._collectors.get(name)
            if previous is not None:
                ok = self.exposition.unregister(previous)
                logger.debug(f"Unregister: {name} {ok}")
                if not ok:
                    raise UnregistrationError(name)
                del self._collectors[name]
                self._owners.pop(name, None)
                self._release(name)

            try:
                self.exposition.register(collector)
            except ValueError as e:
                raise RegistrationError(name, e) from e

            self._collectors[name] = collector
            self._owners[name] = owner
            self._reserve(collector, collector.metrics)
            logger.info(f"Registering: {name}")
            return collector

    def _release(self, name: str):
        for family in [f for f, n in self._reserved.items() if n == name]:
            del self._reserved[family]

    def _reserve(self, collector: QueryCollector, metrics: List[Metric]) -> Set[str]:
        # Caller holds the lock
        excluded = set()
        for family in collector.family_names(metrics):
            holder = self._reserved.setdefault(family, collector.metric_name)
            if holder != collector.metric_name:
                excluded.add(family)
        if excluded - collector.excluded:
            logger.error(f"Error: {collector.metric_name}: not exporting {sorted(excluded)}, "
                         f"names belong to other metrics")
        return excluded

    def update(self, name: str):
        """
        Run the query of a registered metric again. Does nothing if the
        name is not registered.

        Raises:
            RunnerError: If the query fails. The collector stays registered
                and keeps serving its previous values.
        """
        collector = self.get(name)
        if collector is None:
            return
        start = time.monotonic()
        metrics = collector.fetch()
        with self._lock:
            # A replaced collector no longer owns any names
            if self._collectors.get(name) is collector:
                collector.excluded = self._reserve(collector, metrics)
            collector.store(metrics)
        logger.info(f"Updating: {name} {time.monotonic() - start:.3f}s")

    def get(self, name: str) -> Optional[QueryCollector]:
        with self._lock:
            return self._collectors.get(name)

    def get_all(self) -> List[QueryCollector]:
        with self._lock:
            return list(self._collectors.values())

    def names_for(self, owner: str) -> List[str]:
        """
        Get the metrics registered by a query file.

        Args:
            owner: Name of the query file

        Returns:
            Metric names whose live collector was registered by that file
        """
        with self._lock:
            return [name for name, o in self._owners.items() if o == owner]

    def failures(self) -> Dict[str, str]:
        """Metrics whose last update failed, with the error message."""
        return {
            c.metric_name: str(c.last_error)
            for c in self.get_all()
            if c.last_error is not None
        }
