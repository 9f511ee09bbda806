from bigquery_exporter.metrics.base import Exposition, QueryRunner
from bigquery_exporter.metrics.exposition import PrometheusExposition
from bigquery_exporter.metrics.registry import MetricRegistry
from bigquery_exporter.models import Metric
from bigquery_exporter.core.errors import RegistrationError, RunnerError, UnregistrationError

import threading
import time

from prometheus_client import CollectorRegistry, Gauge, generate_latest

import pytest


class FakeExposition(Exposition):
    def __init__(self, register_error=None, unregister_ok=True, register_delay=0.0):
        self.calls = []
        self.live = []
        self.register_error = register_error
        self.unregister_ok = unregister_ok
        self.register_delay = register_delay

    def register(self, collector):
        time.sleep(self.register_delay)
        if self.register_error is not None:
            raise self.register_error
        self.calls.append(("register", collector))
        self.live.append(collector)

    def unregister(self, collector):
        self.calls.append(("unregister", collector))
        if not self.unregister_ok or collector not in self.live:
            return False
        self.live.remove(collector)
        return True


class ConstantRunner(QueryRunner):
    def __init__(self, value=1.0):
        self.value = value

    def query(self, query):
        if isinstance(self.value, Exception):
            raise self.value
        return [Metric({}, {"value": self.value})]


class RowsRunner(QueryRunner):
    def __init__(self, *values):
        self.values = dict(values)

    def query(self, query):
        return [Metric({}, dict(self.values))]

# ===================
# || register tests ||
# ===================
def test_register_new_metric():
    exposition = FakeExposition()
    registry = MetricRegistry(exposition)

    collector = registry.register("foo", ConstantRunner(), "SELECT 1;", owner="a.sql")

    assert collector is not None
    assert registry.get("foo") is collector
    assert exposition.calls == [("register", collector)]
    assert registry.names_for("a.sql") == ["foo"]

def test_second_registration_in_same_cycle_is_skipped():
    exposition = FakeExposition()
    registry = MetricRegistry(exposition)

    first = registry.register("foo", ConstantRunner(), "SELECT 1;", owner="a.sql")
    second = registry.register("foo", ConstantRunner(), "SELECT 1;", owner="b.sql")

    assert second is None
    assert registry.get("foo") is first
    assert len(exposition.calls) == 1
    assert registry.names_for("b.sql") == []

def test_concurrent_registration_registers_once():
    exposition = FakeExposition(register_delay=0.01)
    registry = MetricRegistry(exposition)
    barrier = threading.Barrier(8)
    results = []

    def worker(i):
        barrier.wait()
        results.append(registry.register("foo", ConstantRunner(), "SELECT 1;", owner=f"{i}.sql"))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    registered = [r for r in results if r is not None]
    assert len(registered) == 1
    assert registry.get("foo") is registered[0]
    assert [c for c in exposition.calls if c[0] == "register"] == [("register", registered[0])]
    assert len(registry.get_all()) == 1

def test_registration_in_next_cycle_replaces_collector():
    exposition = FakeExposition()
    registry = MetricRegistry(exposition)
    old = registry.register("foo", ConstantRunner(), "SELECT 1;", owner="a.sql")

    registry.begin_cycle()
    new = registry.register("foo", ConstantRunner(), "SELECT 2;", owner="a.sql")

    assert new is not old
    assert registry.get("foo") is new
    assert exposition.calls == [("register", old), ("unregister", old), ("register", new)]
    assert exposition.live == [new]

def test_failed_unregister_keeps_previous_collector():
    exposition = FakeExposition()
    registry = MetricRegistry(exposition)
    old = registry.register("foo", ConstantRunner(), "SELECT 1;", owner="a.sql")
    exposition.unregister_ok = False

    registry.begin_cycle()
    with pytest.raises(UnregistrationError):
        registry.register("foo", ConstantRunner(), "SELECT 2;", owner="a.sql")

    assert registry.get("foo") is old
    assert exposition.live == [old]
    assert [c for c in exposition.calls if c[0] == "register"] == [("register", old)]

def test_rejected_registration_leaves_name_unregistered():
    exposition = FakeExposition(register_error=ValueError("Duplicated timeseries"))
    registry = MetricRegistry(exposition)

    with pytest.raises(RegistrationError) as excinfo:
        registry.register("foo", ConstantRunner(), "SELECT 1;", owner="a.sql")

    assert excinfo.value.metric_name == "foo"
    assert registry.get("foo") is None
    assert registry.names_for("a.sql") == []

def test_rejected_registration_can_be_retried_in_same_cycle():
    exposition = FakeExposition(register_error=ValueError("Duplicated timeseries"))
    registry = MetricRegistry(exposition)
    with pytest.raises(RegistrationError):
        registry.register("foo", ConstantRunner(), "SELECT 1;")

    exposition.register_error = None

    assert registry.register("foo", ConstantRunner(), "SELECT 1;") is not None

# =================
# || update tests ||
# =================
def test_update_refreshes_value():
    registry = MetricRegistry(FakeExposition())
    runner = ConstantRunner(1.0)
    registry.register("foo", runner, "SELECT 1;")
    registry.update("foo")

    runner.value = 2.0
    registry.update("foo")

    assert registry.get("foo").value == 2.0

def test_failed_update_keeps_collector_and_value():
    exposition = FakeExposition()
    registry = MetricRegistry(exposition)
    runner = ConstantRunner(1.0)
    collector = registry.register("foo", runner, "SELECT 1;")
    registry.update("foo")

    runner.value = RunnerError("timeout")
    with pytest.raises(RunnerError):
        registry.update("foo")

    assert registry.get("foo") is collector
    assert collector.value == 1.0
    assert exposition.live == [collector]
    assert registry.failures() == {"foo": "timeout"}

def test_update_unknown_metric_is_a_no_op():
    registry = MetricRegistry(FakeExposition())

    registry.update("missing")

# ===============================
# || prometheus exposition tests ||
# ===============================
def test_prometheus_exposition_serves_values():
    exposition = PrometheusExposition(CollectorRegistry())
    registry = MetricRegistry(exposition)
    registry.register("bq_tests", ConstantRunner(5.0), "SELECT 5;")

    registry.update("bq_tests")

    assert exposition.registry.get_sample_value("bq_tests") == 5.0

def test_prometheus_exposition_rejects_taken_name():
    prom = CollectorRegistry()
    Gauge("bq_tests", "Already here", registry=prom)
    registry = MetricRegistry(PrometheusExposition(prom))

    with pytest.raises(RegistrationError):
        registry.register("bq_tests", ConstantRunner(), "SELECT 1;")

def test_prometheus_exposition_replace():
    exposition = PrometheusExposition(CollectorRegistry())
    registry = MetricRegistry(exposition)
    registry.register("bq_tests", ConstantRunner(1.0), "SELECT 1;")
    registry.update("bq_tests")

    registry.begin_cycle()
    registry.register("bq_tests", ConstantRunner(2.0), "SELECT 2;")
    registry.update("bq_tests")

    assert exposition.registry.get_sample_value("bq_tests") == 2.0

def test_prometheus_exposition_unregister_unknown():
    exposition = PrometheusExposition(CollectorRegistry())

    assert exposition.unregister(object()) is False

# =======================
# || family name tests ||
# =======================
def test_suffixed_family_blocks_metric_of_same_name():
    exposition = PrometheusExposition(CollectorRegistry())
    registry = MetricRegistry(exposition)
    registry.register("foo", RowsRunner(("value", 1.0), ("value_bytes", 2.0)), "SELECT 1;")

    with pytest.raises(RegistrationError):
        registry.register("foo_bytes", ConstantRunner(3.0), "SELECT 3;")

    assert registry.get("foo_bytes") is None
    assert exposition.registry.get_sample_value("foo_bytes") == 2.0
    assert generate_latest(exposition.registry).decode().count("# TYPE foo_bytes gauge") == 1

def test_metric_blocks_suffixed_family_of_another():
    exposition = PrometheusExposition(CollectorRegistry())
    registry = MetricRegistry(exposition)
    registry.register("foo_bytes", ConstantRunner(3.0), "SELECT 3;")

    with pytest.raises(RegistrationError):
        registry.register("foo", RowsRunner(("value", 1.0), ("value_bytes", 2.0)), "SELECT 1;")

    assert registry.get("foo") is None
    assert exposition.registry.get_sample_value("foo_bytes") == 3.0

def test_late_suffixed_family_is_not_exported():
    exposition = PrometheusExposition(CollectorRegistry())
    registry = MetricRegistry(exposition)
    runner = RowsRunner(("value", 1.0))
    registry.register("foo", runner, "SELECT 1;")
    registry.register("foo_bytes", ConstantRunner(3.0), "SELECT 3;")

    runner.values["value_bytes"] = 2.0
    registry.update("foo")

    assert registry.get("foo").excluded == {"foo_bytes"}
    assert exposition.registry.get_sample_value("foo") == 1.0
    assert exposition.registry.get_sample_value("foo_bytes") == 3.0
    assert generate_latest(exposition.registry).decode().count("# TYPE foo_bytes gauge") == 1

def test_replaced_metric_releases_its_family_names():
    registry = MetricRegistry(PrometheusExposition(CollectorRegistry()))
    registry.register("foo", RowsRunner(("value", 1.0), ("value_bytes", 2.0)), "SELECT 1;")

    registry.begin_cycle()
    registry.register("foo", RowsRunner(("value", 1.0)), "SELECT 1;")

    assert registry.register("foo_bytes", ConstantRunner(3.0), "SELECT 3;") is not None
