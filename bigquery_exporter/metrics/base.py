"""
Base classes for the capabilities the collectors depend on
"""
from abc import ABC, abstractmethod
from typing import List

from bigquery_exporter.models import Metric


class QueryRunner(ABC):
    """
    Executes query text against a warehouse.

    Any client that can turn a query string into result rows can back a
    collector. Implementations raise RunnerError when the query fails.
    """

    @abstractmethod
    def query(self, query: str) -> List[Metric]:
        """
        Run a query.

        Args:
            query: Complete statement to execute

        Returns:
            One Metric per result row
        """
        pass


class Exposition(ABC):
    """
    The registry that serves collector values over the pull protocol.
    """

    @abstractmethod
    def register(self, collector) -> None:
        """
        Make a collector visible for scraping.

        Raises:
            ValueError: If the collector's metric names are already taken
        """
        pass

    @abstractmethod
    def unregister(self, collector) -> bool:
        """
        Stop serving a collector.

        Returns:
            True if the collector was registered and has been removed
        """
        pass
