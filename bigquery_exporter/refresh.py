"""
Refresh loop for the query files.

Each cycle handles every file concurrently: a file that changed (or was
never loaded) is parsed again and its metrics re-registered; an unchanged
file only has its metrics' queries re-run. Once every file is done the loop
sleeps until the next multiple of the refresh interval.
"""
import asyncio
import logging
from datetime import timedelta
from enum import Enum
from typing import Iterable

from bigquery_exporter.core.errors import (
    ExporterError,
    ParseError,
    RegistrationError,
    RunnerError,
    UnregistrationError,
)
from bigquery_exporter.core.utils.sync import sleep_until_next
from bigquery_exporter.metrics.base import QueryRunner
from bigquery_exporter.metrics.registry import MetricRegistry
from bigquery_exporter.queries.parser import file_to_definitions
from bigquery_exporter.queries.source import QuerySource
from bigquery_exporter.queries.substitution import render_query

logger = logging.getLogger(__name__)


class RefreshState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SLEEPING = "sleeping"
    CANCELLED = "cancelled"


class RefreshOrchestrator:
    """
    Drives the refresh cycles over a fixed set of query files.
    """

    def __init__(self, sources: Iterable[QuerySource], registry: MetricRegistry,
                 runner: QueryRunner, variables: dict[str, str], refresh: timedelta):
        """
        Args:
            sources: The watched query files
            registry: Registry the collectors are registered with
            runner: QueryRunner shared by every collector
            variables: Placeholder values substituted into every query
            refresh: Interval between cycles
        """
        self.sources = list(sources)
        self.registry = registry
        self.runner = runner
        self.variables = variables
        self.refresh = refresh
        self.state = RefreshState.IDLE
        self.cycles = 0

    async def run(self, cancellation: asyncio.Event):
        """
        Run cycles until the cancellation event is set. The event is checked
        between cycles; a cycle in progress always completes.
        """
        while not cancellation.is_set():
            await self.run_cycle()
            self.state = RefreshState.SLEEPING
            await sleep_until_next(self.refresh, cancellation)
            self.state = RefreshState.IDLE
        self.state = RefreshState.CANCELLED
        logger.info(f"Refresh loop stopped after {self.cycles} cycles")

    async def run_cycle(self):
        """Process every query file once and wait for all of them."""
        self.state = RefreshState.RUNNING
        self.registry.begin_cycle()
        async with asyncio.TaskGroup() as tg:
            for source in self.sources:
                tg.create_task(self._process(source))
        self.cycles += 1
        self.state = RefreshState.IDLE

    async def _process(self, source: QuerySource):
        # Failures stay scoped to this file
        try:
            modified = await asyncio.to_thread(source.is_modified)
            if modified or not source.loaded:
                await self._reload(source)
            else:
                await self._update(source)
        except ExporterError as e:
            logger.error(f"Error: {source.name}: {e}")
        except Exception:
            logger.exception(f"Error: {source.name}: unexpected failure")

    async def _reload(self, source: QuerySource):
        try:
            definitions = await asyncio.to_thread(file_to_definitions, source.name)
        except ParseError:
            # Parse again next cycle even if the file doesn't change
            source.loaded = False
            raise
        source.loaded = True

        # Registering runs each new collector's query once
        for definition in definitions:
            try:
                await asyncio.to_thread(
                    self.registry.register, definition.name, self.runner,
                    render_query(definition.query, self.variables), source.name,
                )
            except (RegistrationError, UnregistrationError) as e:
                logger.error(f"Error: {source.name}: {e}")

    async def _update(self, source: QuerySource):
        for name in self.registry.names_for(source.name):
            try:
                await asyncio.to_thread(self.registry.update, name)
            except RunnerError as e:
                logger.error(f"Error: {source.name}: {name}: {e}")
