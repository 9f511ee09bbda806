"""
bigquery_exporter runs SQL query files against a data warehouse and
converts the results into Prometheus metrics. Because warehouse queries can
be slow and expensive, results are cached and refreshed every refresh
interval, not on every scrape.
"""
import asyncio
import signal
import sys
import threading

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST, PlatformCollector, ProcessCollector, generate_latest
from werkzeug.serving import make_server

from bigquery_exporter.core.config import ExporterConfig, load_config
from bigquery_exporter.core.errors import ConfigurationError
from bigquery_exporter.core.utils.logger import get_logger, setup_logger
from bigquery_exporter.metrics import MetricRegistry, PrometheusExposition, create_runner
from bigquery_exporter.queries.source import QuerySource
from bigquery_exporter.queries.substitution import make_variables
from bigquery_exporter.refresh import RefreshOrchestrator


def create_app(registry: MetricRegistry, exposition: PrometheusExposition) -> Flask:
    """
    Build the HTTP app serving the cached metrics.

    Args:
        registry: The query collectors, used for the health report
        exposition: The prometheus_client registry rendered on /metrics

    Returns:
        The Flask application
    """
    app = Flask(__name__)

    @app.get("/metrics")
    def metrics():
        return Response(generate_latest(exposition.registry), content_type=CONTENT_TYPE_LATEST)

    # Stale values are still served, so failed updates don't make us unhealthy
    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": "BigQuery Exporter",
            "metrics": sorted(c.metric_name for c in registry.get_all()),
            "failures": registry.failures(),
        }, 200

    return app


async def _refresh_until_signalled(orchestrator: RefreshOrchestrator):
    cancellation = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancellation.set)
    await orchestrator.run(cancellation)


def build_orchestrator(config: ExporterConfig, registry: MetricRegistry, runner) -> RefreshOrchestrator:
    sources = [QuerySource(name) for name in config.gauge_queries]
    return RefreshOrchestrator(sources, registry, runner, make_variables(config.refresh), config.refresh)


def main(argv: list[str] | None = None) -> int:
    try:
        config = load_config(argv)
    except ConfigurationError as e:
        get_logger().error(f"Invalid configuration: {e}")
        return 2

    logger = setup_logger(config.log_level, config.log_file)

    try:
        runner = create_runner(config.database_url)
    except ConfigurationError as e:
        logger.error(f"Failed to allocate a warehouse client: {e}")
        return 1

    exposition = PrometheusExposition()
    ProcessCollector(registry=exposition.registry)
    PlatformCollector(registry=exposition.registry)
    registry = MetricRegistry(exposition)

    server = make_server(config.host, config.port, create_app(registry, exposition), threaded=True)
    threading.Thread(target=server.serve_forever, name="metrics-server", daemon=True).start()
    logger.info(f"Serving metrics on {config.listen_address}")

    try:
        asyncio.run(_refresh_until_signalled(build_orchestrator(config, registry, runner)))
    finally:
        server.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
