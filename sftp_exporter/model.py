"""
sftp_exporter.model
AUTHOR: carter-vin

Metric set schema + Prometheus exposition

Design goals:
- Fixed metric vocabulary (name -> help, label names)
- Explicit structure; samples built from collector results only
- Deterministic ordering: metrics in vocabulary order, samples in path order
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from sftp_exporter.collectors.tree import TreeResult
from sftp_exporter.sftp.client import CapacitySample

# name -> (help, label names); order is exposition order
METRICS: dict[str, tuple[str, tuple[str, ...]]] = {
    "sftp_up": (
        "1 when the exporter connected and collected every configured path",
        ("host",),
    ),
    "sftp_objects_available": (
        "Number of non-directory objects under the path",
        ("host", "path"),
    ),
    "sftp_objects_total_size_bytes": (
        "Total size of all non-directory objects under the path",
        ("host", "path"),
    ),
    "sftp_directories_available": (
        "Number of directories under the path, the path itself included",
        ("host", "path"),
    ),
    "sftp_filesystem_total_space_bytes": (
        "Total space of the filesystem containing the path",
        ("host", "path"),
    ),
    "sftp_filesystem_free_space_bytes": (
        "Free space of the filesystem containing the path",
        ("host", "path"),
    ),
    "sftp_filesystem_available_space_bytes": (
        "Space available to unprivileged users on the filesystem containing the path",
        ("host", "path"),
    ),
    "sftp_filesystem_total_inodes": (
        "Total inodes of the filesystem containing the path",
        ("host", "path"),
    ),
    "sftp_filesystem_free_inodes": (
        "Free inodes of the filesystem containing the path",
        ("host", "path"),
    ),
    "sftp_collect_duration_seconds": (
        "Wall time of the collection pass",
        ("host",),
    ),
}


@dataclass(frozen=True)
class MetricSample:
    name: str
    labels: dict[str, str]
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "labels": dict(self.labels), "value": self.value}


@dataclass(frozen=True)
class MetricSet:
    """
    Output of one collection pass
    """

    host: str
    samples: tuple[MetricSample, ...] = field(default_factory=tuple)

    def values(self, name: str) -> dict[Optional[str], float]:
        """
        path label -> value for one metric (None key for host-level metrics)
        """
        return {s.labels.get("path"): s.value for s in self.samples if s.name == name}

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "samples": [s.to_dict() for s in self.samples]}


def validate_metric_set(metric_set: MetricSet) -> None:
    """
    Raise ValueError on unknown metrics or mismatched labels
    """
    if not metric_set.host:
        raise ValueError("metric set host is empty")

    for sample in metric_set.samples:
        if sample.name not in METRICS:
            raise ValueError(f"unknown metric: {sample.name}")
        _, label_names = METRICS[sample.name]
        if tuple(sorted(sample.labels)) != tuple(sorted(label_names)):
            raise ValueError(
                f"{sample.name} labels must be {list(label_names)}, got {sorted(sample.labels)}"
            )


def build_metric_set(
    host: str,
    trees: Iterable[TreeResult],
    capacities: Iterable[CapacitySample] = (),
    *,
    duration_s: float,
) -> MetricSet:
    """
    Assemble a MetricSet from collector results
    """
    samples: list[MetricSample] = [MetricSample("sftp_up", {"host": host}, 1)]

    for tree in trees:
        labels = {"host": host, "path": tree.path}
        samples.append(MetricSample("sftp_objects_available", labels, tree.objects))
        samples.append(MetricSample("sftp_objects_total_size_bytes", labels, tree.total_size_bytes))
        samples.append(MetricSample("sftp_directories_available", labels, tree.directories))

    for cap in capacities:
        labels = {"host": host, "path": cap.path}
        samples.append(MetricSample("sftp_filesystem_total_space_bytes", labels, cap.total_bytes))
        samples.append(MetricSample("sftp_filesystem_free_space_bytes", labels, cap.free_bytes))
        samples.append(
            MetricSample("sftp_filesystem_available_space_bytes", labels, cap.available_bytes)
        )
        samples.append(MetricSample("sftp_filesystem_total_inodes", labels, cap.total_inodes))
        samples.append(MetricSample("sftp_filesystem_free_inodes", labels, cap.free_inodes))

    samples.append(MetricSample("sftp_collect_duration_seconds", {"host": host}, duration_s))

    metric_set = MetricSet(host=host, samples=tuple(samples))

    # validate before returning
    validate_metric_set(metric_set)
    return metric_set


def to_families(metric_set: MetricSet) -> list[GaugeMetricFamily]:
    """
    Group samples into gauge families, vocabulary order, empty families skipped
    """
    families: list[GaugeMetricFamily] = []

    for name, (help_text, label_names) in METRICS.items():
        samples = [s for s in metric_set.samples if s.name == name]
        if not samples:
            continue
        family = GaugeMetricFamily(name, help_text, labels=list(label_names))
        for sample in samples:
            family.add_metric([sample.labels[label] for label in label_names], sample.value)
        families.append(family)

    return families


class _StaticCollector:
    def __init__(self, metric_set: MetricSet) -> None:
        self._metric_set = metric_set

    def collect(self):
        return to_families(self._metric_set)


def render_exposition(metric_set: MetricSet) -> bytes:
    """
    Serialize a MetricSet in the Prometheus text format
    """
    registry = CollectorRegistry(auto_describe=False)
    registry.register(_StaticCollector(metric_set))
    return generate_latest(registry)
