"""
Query collectors and the registry that keeps them exposed
"""
from .base import Exposition, QueryRunner
from .collector import QueryCollector
from .exposition import PrometheusExposition
from .registry import MetricRegistry
from .runner import SQLAlchemyRunner, create_runner

__all__ = [
    'Exposition',
    'QueryRunner',
    'QueryCollector',
    'PrometheusExposition',
    'MetricRegistry',
    'SQLAlchemyRunner',
    'create_runner',
]
