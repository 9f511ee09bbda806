"""
QueryRunner backed by a SQLAlchemy engine.

BigQuery is reached through the ``bigquery://<project>`` dialect
(sqlalchemy-bigquery); any other SQLAlchemy URL works as well.
"""
import logging
from typing import List

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from bigquery_exporter.core.errors import ConfigurationError, RunnerError
from bigquery_exporter.models import Metric
from .base import QueryRunner

logger = logging.getLogger(__name__)


class SQLAlchemyRunner(QueryRunner):
    """Runs queries on a shared engine and converts the rows to metrics."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def query(self, query: str) -> List[Metric]:
        try:
            with self.engine.connect() as conn:
                df = pd.read_sql_query(text(query), conn)
        except (SQLAlchemyError, pd.errors.DatabaseError) as e:
            raise RunnerError(f"query failed: {e}") from e

        try:
            return Metric.from_data_frame(df)
        except (TypeError, ValueError) as e:
            raise RunnerError(f"non-numeric value column: {e}") from e


def create_runner(database_url: str) -> SQLAlchemyRunner:
    """
    Build a runner for the given warehouse.

    Raises:
        ConfigurationError: If the URL is invalid or its driver is missing.
    """
    try:
        engine = create_engine(database_url)
    except (ArgumentError, ImportError) as e:
        raise ConfigurationError(f"failed to create a client for {database_url!r}: {e}") from e
    logger.info(f"Using warehouse {engine.url.render_as_string(hide_password=True)}")
    return SQLAlchemyRunner(engine)
