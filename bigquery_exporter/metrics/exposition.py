"""
Adapter from prometheus_client's CollectorRegistry to the Exposition interface
"""
from prometheus_client import CollectorRegistry

from .base import Exposition


class PrometheusExposition(Exposition):
    """Registers collectors with a prometheus_client registry."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

    def register(self, collector) -> None:
        self.registry.register(collector)

    def unregister(self, collector) -> bool:
        try:
            self.registry.unregister(collector)
        except KeyError:
            return False
        return True
