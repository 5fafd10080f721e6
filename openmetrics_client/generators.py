"""Synthetic workload drivers that mutate metrics on every engine tick."""
from typing import Dict, List, Iterator
import logging

import numpy as np

from openmetrics_client.base import BaseMetric
from openmetrics_client.config import WorkloadConfig
from openmetrics_client.labels import canonical_key

logger = logging.getLogger(__name__)


def generate_label_space(label_values: Dict[str, List[str]]) -> List[Dict[str, str]]:
    """
    Generate Cartesian product of all label combinations.

    Args:
        label_values: Mapping of label name to its possible values

    Returns:
        List of label dictionaries
    """
    if not label_values:
        return [{}]

    label_names = list(label_values.keys())
    value_lists = [label_values[name] for name in label_names]

    def cartesian_product(lists: List[List[str]]) -> Iterator[List[str]]:
        if not lists:
            yield []
            return

        for item in lists[0]:
            for rest in cartesian_product(lists[1:]):
                yield [item] + rest

    return [dict(zip(label_names, combo)) for combo in cartesian_product(value_lists)]


class WorkloadDriver:
    """Applies one round of synthetic mutations to every configured series of a metric."""

    def __init__(self, metric: BaseMetric, workload: WorkloadConfig, global_seed: int):
        self.metric = metric
        self.workload = workload
        self.label_combinations = generate_label_space(workload.label_values)

        # Initialize RNG with deterministic seed
        seed = workload.seed if workload.seed is not None else global_seed
        self.rng = np.random.default_rng(seed)

        # Random-walk state per series
        self.state: Dict[tuple, float] = {}

    def tick(self, t_s: int) -> int:
        """Mutate every series once; returns the number of mutations applied."""
        applied = 0
        for labels in self.label_combinations:
            handle = self.metric.labels(labels)
            if self._apply(handle, labels, t_s):
                applied += 1
        return applied

    def _apply(self, handle, labels: Dict[str, str], t_s: int) -> bool:
        kind = self.metric.kind

        if kind == "info":
            handle.set()
            return True

        if kind == "stateset":
            handle.enable_only(self._pick_state(t_s))
            return True

        value = self._sample(labels, t_s)

        if kind == "counter":
            handle.inc(max(0.0, value))
        elif kind in ("gauge", "unknown"):
            handle.set(value)
        elif kind in ("histogram", "summary"):
            handle.observe(max(0.0, value))
        elif kind == "gaugehistogram":
            handle.observe(value)
        else:
            logger.warning(f"No workload support for metric type '{kind}'")
            return False
        return True

    def _pick_state(self, t_s: int) -> str:
        states = self.metric.states
        if self.workload.algorithm == "cycle":
            period = self.workload.period_s or 60
            return states[(t_s // period) % len(states)]
        return states[int(self.rng.integers(len(states)))]

    def _sample(self, labels: Dict[str, str], t_s: int) -> float:
        """Draw the next value according to the configured algorithm."""
        w = self.workload
        algorithm = w.algorithm

        if algorithm == "poisson":
            return float(self.rng.poisson(w.base_rate or 1.0))

        if algorithm == "constant":
            if w.base_rate is not None:
                return w.base_rate
            return w.start or 0.0

        if algorithm == "random_walk":
            key = canonical_key(labels)
            if key not in self.state:
                self.state[key] = w.start or 0.0
            value = float(self.state[key] + self.rng.normal(0, w.step or 0.1))
            if w.min is not None or w.max is not None:
                value = float(np.clip(value, w.min if w.min is not None else -np.inf,
                                      w.max if w.max is not None else np.inf))
            self.state[key] = value
            return value

        if algorithm == "sine":
            period = w.period_s or 3600
            low = w.min or 0.0
            high = w.max if w.max is not None else 1.0
            phase = (t_s % period) / period
            return float((high + low) / 2 + (high - low) / 2 * np.sin(2 * np.pi * phase))

        if algorithm == "lognormal":
            return float(self.rng.lognormal(w.mu or 0.0, w.sigma or 1.0))

        if algorithm == "exponential":
            return float(self.rng.exponential(1.0 / (w.lam or 1.0)))

        if algorithm == "cycle":
            # Sawtooth between min and max
            period = w.period_s or 3600
            low = w.min or 0.0
            high = w.max if w.max is not None else 1.0
            return low + (high - low) * ((t_s % period) / period)

        raise ValueError(f"Unknown workload algorithm: {algorithm}")


def create_driver(metric: BaseMetric, workload: WorkloadConfig, global_seed: int) -> WorkloadDriver:
    """Factory function to create a workload driver for a metric."""
    logger.debug(f"Workload for {metric.name}: {workload.algorithm} over {len(workload.label_values)} labels")
    return WorkloadDriver(metric, workload, global_seed)
