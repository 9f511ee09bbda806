"""
Extracts named metric queries from query-definition files.

A file holds one or more SQL statements, each preceded by an annotation
line naming the metric it produces:

    -- MetricName: bq_ndt_tests
    SELECT COUNT(*) AS value
    FROM `measurement-lab.ndt.unified_downloads`;

Other ``--`` lines are comments and are dropped. A statement ends at the
first line ending in ``;``.
"""
import logging

from bigquery_exporter.core.errors import ParseError
from bigquery_exporter.models import MetricDefinition

COMMENT_MARKER = "--"
METRIC_NAME_MARKER = "-- MetricName:"
STATEMENT_TERMINATOR = ";"

logger = logging.getLogger(__name__)


def parse_metrics(content: str) -> dict[str, str]:
    """
    Maps each metric name to its query text.

    Every kept line is followed by a single space, so the text of a metric
    is its statement lines joined and ending in ``"; "``.

    A block with no name annotation is stored under ``""``. A second
    annotation before the block ends replaces the pending name, and a name
    seen twice keeps its last block. Callers should ignore the empty name.

    Args:
        content (str): The file contents.

    Returns:
        A dictionary from metric name to query text, in file order.
    """

    metrics: dict[str, str] = {}
    current_metric = ""
    current_query: list[str] = []

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if line.startswith(METRIC_NAME_MARKER):
            current_metric = line[len(METRIC_NAME_MARKER):].strip()
            continue

        # Ignore comments
        if line.startswith(COMMENT_MARKER) or not line:
            continue

        current_query.append(line + " ")
        if line.endswith(STATEMENT_TERMINATOR):
            metrics[current_metric] = "".join(current_query)
            current_metric = ""
            current_query = []

    return metrics


def file_to_metrics(filename: str) -> dict[str, str]:
    """
    Reads a query file and extracts its metrics.

    Raises:
        ParseError: If the file cannot be opened or decoded.
    """

    try:
        with open(filename, 'r', encoding='utf-8') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(filename, e) from e

    return parse_metrics(content)


def file_to_definitions(filename: str) -> list[MetricDefinition]:
    """
    Reads a query file and returns its named metric definitions, in file
    order. Queries with no MetricName annotation are dropped with a warning.

    Raises:
        ParseError: If the file cannot be opened or decoded.
    """

    definitions = []
    for name, query in file_to_metrics(filename).items():
        if not name:
            logger.warning(f"{filename}: dropping a query with no MetricName annotation")
            continue
        definitions.append(MetricDefinition(name, query))
    return definitions
