"""
Process configuration: command-line flags with environment fallbacks.

Every flag can also be set through an environment variable named after the
flag, upper-cased, with dashes replaced by underscores (``--gauge-query``
becomes ``GAUGE_QUERY``). A ``.env`` file in the working directory is
loaded first.
"""
import argparse
import os
import re
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv

from bigquery_exporter.core.errors import ConfigurationError

# Port registered at https://github.com/prometheus/prometheus/wiki/Default-port-allocations
DEFAULT_LISTEN_ADDRESS = ":9348"
DEFAULT_REFRESH = "5m"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass
class ExporterConfig:
    gauge_queries: list[str]
    refresh: timedelta
    project: str = ""
    database_url: str = ""
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def host(self) -> str:
        host, _, _ = self.listen_address.rpartition(":")
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, _, port = self.listen_address.rpartition(":")
        try:
            return int(port)
        except ValueError:
            raise ConfigurationError(f"invalid listen address {self.listen_address!r}")


def parse_duration(text: str) -> timedelta:
    """
    Parses a duration such as ``300``, ``300s``, ``5m`` or ``1h30m``.

    Args:
        text (str): The duration. A bare number is read as seconds.

    Returns:
        The parsed duration.

    Raises:
        ConfigurationError: If the text is not a positive duration.
    """

    value = text.strip()
    if re.fullmatch(r"\d+(?:\.\d+)?", value):
        seconds = float(value)
    else:
        parts = _DURATION_PART.findall(value)
        if not parts or "".join(n + u for n, u in parts) != value:
            raise ConfigurationError(f"invalid duration {text!r}")
        seconds = sum(float(n) * _DURATION_UNITS[u] for n, u in parts)

    if seconds <= 0:
        raise ConfigurationError(f"duration must be positive, got {text!r}")
    return timedelta(seconds=seconds)


def _env(flag: str, default: str | None = None) -> str | None:
    return os.getenv(flag.upper().replace("-", "_"), default)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bigquery-exporter",
        description="Runs SQL query files periodically and exports the results as Prometheus gauges.",
    )
    parser.add_argument(
        "--gauge-query", action="append", dest="gauge_queries",
        default=None,
        help="Name of file containing a gauge query. Repeatable. "
             "Env: GAUGE_QUERY, comma separated.",
    )
    parser.add_argument("--project", default=_env("project", ""), help="GCP project name.")
    parser.add_argument(
        "--database-url", default=_env("database-url", ""),
        help="SQLAlchemy URL of the warehouse. Defaults to bigquery://<project>.",
    )
    parser.add_argument(
        "--refresh", default=_env("refresh", DEFAULT_REFRESH),
        help="Interval between updating metrics (e.g. 300s, 5m, 1h).",
    )
    parser.add_argument(
        "--listen-address", default=_env("listen-address", DEFAULT_LISTEN_ADDRESS),
        help="Address the metrics server listens on.",
    )
    parser.add_argument("--log-level", default=_env("log-level", "INFO"))
    parser.add_argument("--log-file", default=_env("log-file"))
    return parser


def load_config(argv: list[str] | None = None) -> ExporterConfig:
    """
    Loads the configuration from ``.env``, the environment and ``argv``.

    Raises:
        ConfigurationError: If no query files are given, if neither a
            project nor a database URL is set, or if a value is malformed.
    """

    load_dotenv()
    args = build_parser().parse_args(argv)

    queries = args.gauge_queries
    if not queries:
        env_queries = _env("gauge-query", "")
        queries = [q.strip() for q in env_queries.split(",") if q.strip()]
    if not queries:
        raise ConfigurationError("at least one --gauge-query file is required")

    database_url = args.database_url
    if not database_url:
        if not args.project:
            raise ConfigurationError("either --project or --database-url is required")
        database_url = f"bigquery://{args.project}"

    config = ExporterConfig(
        gauge_queries=queries,
        refresh=parse_duration(args.refresh),
        project=args.project,
        database_url=database_url,
        listen_address=args.listen_address,
        log_level=args.log_level,
        log_file=args.log_file,
    )
    if config.port <= 0:
        raise ConfigurationError(f"invalid listen address {config.listen_address!r}")
    return config
