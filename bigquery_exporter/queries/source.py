"""
Query files watched for modification.
"""
import logging
import os
from typing import Callable

from bigquery_exporter.core.errors import StatError

logger = logging.getLogger(__name__)


class QuerySource:
    """
    A query file and the metadata needed to keep its metrics up to date.
    """

    def __init__(self, name: str, stat: Callable[[str], os.stat_result] = os.stat):
        """
        Initialize a watched query file.

        Args:
            name: Path of the query file
            stat: Function used to stat the file (os.stat unless testing)
        """
        self.name = name
        self._stat = stat
        self._mtime_ns: int | None = None

        # Set once the file's definitions have been parsed and registered
        self.loaded = False

    @property
    def last_modified_ns(self) -> int | None:
        return self._mtime_ns

    def _stat_mtime(self) -> int:
        try:
            return self._stat(self.name).st_mtime_ns
        except OSError as e:
            raise StatError(self.name, e) from e

    def is_modified(self) -> bool:
        """
        Reports whether the file has been modified since the last call.

        The first successful call only records a baseline and returns False.
        A failed stat leaves the recorded time untouched.

        Returns:
            True if the modification time is strictly later than the one
            seen on the previous call.

        Raises:
            StatError: If the file cannot be stat'ed.
        """
        if self._mtime_ns is None:
            self._mtime_ns = self._stat_mtime()
            logger.debug(f"IsModified:baseline: {self.name} {self._mtime_ns}")
            return False

        try:
            current = self._stat_mtime()
        except StatError as e:
            logger.warning(f"Failed to stat {self.name!r}: {e.cause}")
            raise

        modified = current > self._mtime_ns
        logger.debug(f"IsModified: {self.name} {current} {self._mtime_ns} {modified}")
        if modified:
            self._mtime_ns = current
        return modified
