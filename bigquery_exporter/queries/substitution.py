"""
Replaces run-time placeholders in query text.
"""
import time
from datetime import timedelta

from bigquery_exporter.queries.parser import STATEMENT_TERMINATOR

UNIX_START_TIME = "UNIX_START_TIME"
REFRESH_RATE_SEC = "REFRESH_RATE_SEC"


def make_variables(refresh: timedelta, start_time: float | None = None) -> dict[str, str]:
    """
    Builds the placeholder values for this process.

    Args:
        refresh (timedelta): The configured refresh interval.
        start_time (float): Process start, in seconds since the epoch.
            Defaults to now.

    Returns:
        A dictionary from placeholder token to its decimal string value.
    """

    if start_time is None:
        start_time = time.time()
    return {
        UNIX_START_TIME: str(int(start_time)),
        REFRESH_RATE_SEC: str(int(refresh.total_seconds())),
    }


def substitute(blob: str, variables: dict[str, str]) -> list[str]:
    """
    Splits a blob into statements and fills in the placeholders of each.

    Statements are trimmed, empty ones are dropped, and every statement is
    returned with its terminator.

    Args:
        blob (str): One or more statements separated by ``;``.
        variables (dict[str, str]): Placeholder token to replacement text.

    Returns:
        The statements in the order they appear in the blob.
    """

    queries = []
    for statement in blob.split(STATEMENT_TERMINATOR):
        statement = statement.strip()
        if not statement:
            continue
        for name, value in variables.items():
            statement = statement.replace(name, value)
        queries.append(statement + STATEMENT_TERMINATOR)
    return queries


def render_query(query: str, variables: dict[str, str]) -> str:
    """
    Substitutes the placeholders of a single metric's query text.

    The text is not split on `;`, so semicolons inside string literals are
    kept as they are.
    """
    for name, value in variables.items():
        query = query.replace(name, value)
    return query.strip()
