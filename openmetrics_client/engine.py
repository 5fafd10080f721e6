"""Metrics engine: builds metrics from configuration and drives workloads."""
import time
import logging
from typing import Dict, Optional

from openmetrics_client.base import BaseMetric
from openmetrics_client.config import Config, MetricConfig
from openmetrics_client.generators import WorkloadDriver, create_driver
from openmetrics_client.metrics import Counter, Gauge, GaugeHistogram, Histogram, Info, StateSet, Unknown
from openmetrics_client.registry import Registry
from openmetrics_client.summary import Summary

logger = logging.getLogger(__name__)

TICK_DURATION_BUCKETS = [0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]


def create_metric(config: MetricConfig, registry: Optional[Registry] = None) -> BaseMetric:
    """Factory function to create the metric described by a MetricConfig."""
    metric_type = config.type
    common = dict(name=config.name, help=config.help, label_names=config.label_names, registry=registry)

    if metric_type == "counter":
        return Counter(unit=config.unit, **common)
    elif metric_type == "gauge":
        return Gauge(unit=config.unit, **common)
    elif metric_type == "histogram":
        return Histogram(unit=config.unit, buckets=config.buckets, **common)
    elif metric_type == "gaugehistogram":
        return GaugeHistogram(unit=config.unit, buckets=config.buckets, **common)
    elif metric_type == "summary":
        return Summary(
            unit=config.unit,
            quantiles=config.quantiles,
            max_age_seconds=config.max_age_seconds,
            age_buckets=config.age_buckets,
            **common,
        )
    elif metric_type == "stateset":
        return StateSet(states=config.states or [], unit=config.unit, **common)
    elif metric_type == "info":
        if config.unit:
            raise ValueError(f"Info metric '{config.name}' cannot have a unit")
        return Info(**common)
    elif metric_type == "unknown":
        return Unknown(unit=config.unit, value=config.value, **common)
    else:
        raise ValueError(f"Unknown metric type: {metric_type}")


class SelfMetrics:
    """Self-monitoring metrics for the engine."""

    def __init__(self, registry: Registry):
        self.ticks_total = Counter(
            "engine_ticks",
            "Total number of engine ticks",
            registry=registry,
        )

        self.mutations_total = Counter(
            "engine_mutations",
            "Total number of workload mutations applied",
            label_names=["metric_name"],
            registry=registry,
        )

        self.errors_total = Counter(
            "engine_errors",
            "Total number of workload errors",
            label_names=["metric_name"],
            registry=registry,
        )

        self.tick_duration_seconds = Histogram(
            "engine_tick_duration",
            "Duration of each tick in seconds",
            unit="seconds",
            buckets=TICK_DURATION_BUCKETS,
            registry=registry,
        )

    def record_tick(self, duration: float):
        """Record one completed tick."""
        self.ticks_total.inc()
        self.tick_duration_seconds.observe(duration)

    def record_mutations(self, metric_name: str, count: int):
        self.mutations_total.labels(metric_name=metric_name).inc(count)

    def record_error(self, metric_name: str):
        self.errors_total.labels(metric_name=metric_name).inc()


class MetricsEngine:
    """Owns the registry, the configured metrics and their workload drivers."""

    def __init__(self, config: Config, self_metrics: bool = True):
        self.config = config
        self.registry = Registry(prefix=config.registry.prefix)
        self.metrics: Dict[str, BaseMetric] = {}
        self.drivers: Dict[str, WorkloadDriver] = {}
        self.running = False
        self.tick_count = 0
        self.start_time = time.time()

        self._initialize_metrics()

        self.self_metrics = SelfMetrics(self.registry) if self_metrics else None

        logger.info("Metrics engine initialized")

    def _initialize_metrics(self):
        """Create every configured metric and its workload driver."""
        for metric_config in self.config.metrics:
            metric = create_metric(metric_config, self.registry)
            self.metrics[metric_config.name] = metric

            if metric_config.workload:
                driver = create_driver(metric, metric_config.workload, self.config.global_.seed)
                self.drivers[metric_config.name] = driver
                logger.info(
                    f"Metric '{metric.name}' ({metric.kind}): "
                    f"{len(driver.label_combinations)} driven series"
                )
            else:
                logger.info(f"Metric '{metric.name}' ({metric.kind}): no workload")

        logger.info(f"Initialized {len(self.metrics)} metrics, {len(self.drivers)} workload drivers")

    def get_metric(self, name: str) -> Optional[BaseMetric]:
        """Look up a metric by configured name or effective name."""
        return self.metrics.get(name) or self.registry.get_metric(name)

    def tick(self):
        """Execute one round of workload mutations."""
        tick_start = time.time()
        current_time = int(tick_start)
        mutations = 0

        for metric_name, driver in self.drivers.items():
            try:
                applied = driver.tick(current_time)
                mutations += applied
                if self.self_metrics:
                    self.self_metrics.record_mutations(metric_name, applied)
            except Exception as e:
                logger.error(f"Error driving metric '{metric_name}': {e}")
                if self.self_metrics:
                    self.self_metrics.record_error(metric_name)

        tick_duration = time.time() - tick_start
        if self.self_metrics:
            self.self_metrics.record_tick(tick_duration)

        self.tick_count += 1

        if self.tick_count % 60 == 0:  # Log every 60 ticks
            logger.info(
                f"Tick {self.tick_count}: applied {mutations} mutations "
                f"in {tick_duration:.3f}s"
            )

    def render(self) -> str:
        return self.registry.render()

    def run(self):
        """Run the engine until stopped."""
        self.running = True
        self.start_time = time.time()

        logger.info("Starting metrics engine")

        tick_interval = self.config.global_.tick_interval_s

        while self.running:
            tick_start = time.time()

            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in tick: {e}", exc_info=True)

            # Sleep for remaining time in tick interval
            tick_duration = time.time() - tick_start
            sleep_time = max(0, tick_interval - tick_duration)

            if sleep_time > 0:
                time.sleep(sleep_time)
            else:
                logger.warning(
                    f"Tick took {tick_duration:.3f}s, longer than interval {tick_interval}s"
                )

    def stop(self):
        """Stop the engine and release summary rotation threads."""
        logger.info("Stopping metrics engine")
        self.running = False

        for metric in self.metrics.values():
            if isinstance(metric, Summary):
                metric.destroy()


def run_engine_thread(engine: MetricsEngine):
    """Run engine in a separate thread."""
    try:
        engine.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        engine.stop()
    except Exception as e:
        logger.error(f"Engine thread error: {e}", exc_info=True)
        engine.stop()
