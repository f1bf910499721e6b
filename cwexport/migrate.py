"""Conversion of scraped CloudWatch data into Prometheus metrics."""

from __future__ import annotations

import math
import re
from datetime import datetime

from cwexport.logs import Logger
from cwexport.model import (
    CloudwatchData,
    CloudwatchMetricResult,
    Datapoint,
    ScrapeContext,
    TaggedResourceResult,
)
from cwexport.promutil import (
    DUPLICATE_METRICS_FILTERED_COUNTER,
    PrometheusMetric,
    labels_to_signature,
    prom_string,
    prom_string_tag,
)

PERCENTILE = re.compile(r"p([0-9]{1,2}(\.[0-9]{0,2})?|100)")

_SIMPLE_STATISTICS = {
    "Maximum": "maximum",
    "Minimum": "minimum",
    "Sum": "sum",
    "SampleCount": "sample_count",
}


def _namespace_prefix(namespace: str) -> str:
    prom_ns = prom_string(namespace.lower())
    return prom_ns if prom_ns.startswith("aws") else "aws_" + prom_ns


def build_namespace_info_metrics(
    tag_data: list[TaggedResourceResult],
    metrics: list[PrometheusMetric],
    observed_metric_labels: dict[str, set[str]],
    labels_snake_case: bool,
    logger: Logger,
) -> tuple[list[PrometheusMetric], dict[str, set[str]]]:
    """Append one "_info" metric per tagged resource."""
    output = list(metrics)
    for tag_result in tag_data:
        context_labels = context_to_labels(tag_result.context, labels_snake_case, logger)
        for resource in tag_result.data:
            metric_name = _namespace_prefix(resource.namespace) + "_info"
            prom_labels = dict(context_labels)
            prom_labels["name"] = resource.arn
            for tag in resource.tags:
                ok, prom_tag = prom_string_tag(tag.key, labels_snake_case)
                if not ok:
                    logger.warn("tag name is an invalid prometheus label name", tag=tag.key)
                    continue
                prom_labels["tag_" + prom_tag] = tag.value
            observed_metric_labels = record_labels_for_metric(
                metric_name, prom_labels, observed_metric_labels
            )
            output.append(PrometheusMetric(name=metric_name, labels=prom_labels, value=0.0))
    return output, observed_metric_labels


def build_metrics(
    results: list[CloudwatchMetricResult], labels_snake_case: bool, logger: Logger
) -> tuple[list[PrometheusMetric], dict[str, set[str]]]:
    """Build Prometheus metrics from scrape results.

    Raises ValueError when a metric requests an unknown statistic.
    """
    output: list[PrometheusMetric] = []
    observed: dict[str, set[str]] = {}
    for result in results:
        context_labels = context_to_labels(result.context, labels_snake_case, logger)
        for metric in result.data:
            for statistic in metric.statistics:
                include_timestamp = bool(metric.add_cloudwatch_timestamp)
                value, timestamp = get_datapoint(metric, statistic)
                if value is None and not metric.add_cloudwatch_timestamp:
                    value = 0.0 if metric.nil_to_zero else math.nan
                    include_timestamp = False

                name = (
                    f"{_namespace_prefix(metric.namespace or '')}_"
                    f"{prom_string(metric.metric or '')}_{prom_string(statistic)}"
                )
                if value is None:
                    continue
                prom_labels = create_prometheus_labels(metric, labels_snake_case, logger)
                prom_labels.update(context_labels)
                observed = record_labels_for_metric(name, prom_labels, observed)
                output.append(
                    PrometheusMetric(
                        name=name,
                        labels=prom_labels,
                        value=value,
                        timestamp=timestamp,
                        include_timestamp=include_timestamp,
                    )
                )
    return output, observed


def get_datapoint(
    cwd: CloudwatchData, statistic: str
) -> tuple[float | None, datetime | None]:
    """Return the value and timestamp to export for a statistic.

    Raises ValueError for a statistic that is not supported.
    """
    if cwd.get_metric_data_point is not None:
        return cwd.get_metric_data_point, cwd.get_metric_data_timestamp

    averages: list[Datapoint] = []
    for datapoint in sort_by_timestamp(cwd.points or []):
        if statistic in _SIMPLE_STATISTICS:
            value = getattr(datapoint, _SIMPLE_STATISTICS[statistic])
            if value is not None:
                return value, datapoint.timestamp
        elif statistic == "Average":
            if datapoint.average is not None:
                averages.append(datapoint)
        elif PERCENTILE.fullmatch(statistic):
            if statistic in datapoint.extended_statistics:
                return datapoint.extended_statistics[statistic], datapoint.timestamp
        else:
            raise ValueError(f"invalid statistic requested on metric {cwd.metric}: {statistic}")

    if averages:
        total = sum(point.average for point in averages)
        timestamp = max(point.timestamp for point in averages)
        return total / len(averages), timestamp
    return None, None


def sort_by_timestamp(datapoints: list[Datapoint]) -> list[Datapoint]:
    """Sort data points in place, newest first, and return the list."""
    datapoints.sort(key=lambda point: point.timestamp, reverse=True)
    return datapoints


def create_prometheus_labels(
    cwd: CloudwatchData, labels_snake_case: bool, logger: Logger
) -> dict[str, str]:
    """Return the name, dimension and tag labels of a metric."""
    labels = {"name": cwd.id or ""}
    for dimension in cwd.dimensions:
        ok, prom_tag = prom_string_tag(dimension.name, labels_snake_case)
        if not ok:
            logger.warn(
                "dimension name is an invalid prometheus label name", dimension=dimension.name
            )
            continue
        labels["dimension_" + prom_tag] = dimension.value
    for tag in cwd.tags:
        ok, prom_tag = prom_string_tag(tag.key, labels_snake_case)
        if not ok:
            logger.warn("metric tag name is an invalid prometheus label name", tag=tag.key)
            continue
        labels["tag_" + prom_tag] = tag.value
    return labels


def context_to_labels(
    context: ScrapeContext | None, labels_snake_case: bool, logger: Logger
) -> dict[str, str]:
    """Return the region, account and custom tag labels of a scrape context."""
    if context is None:
        return {}
    labels = {"region": context.region, "account_id": context.account_id}
    for label in context.custom_tags:
        ok, prom_tag = prom_string_tag(label.key, labels_snake_case)
        if not ok:
            logger.warn("custom tag name is an invalid prometheus label name", tag=label.key)
            continue
        labels["custom_tag_" + prom_tag] = label.value
    return labels


def record_labels_for_metric(
    metric_name: str, prom_labels: dict[str, str], observed_metric_labels: dict[str, set[str]]
) -> dict[str, set[str]]:
    """Add the label names of a metric to the observed set for its name."""
    observed_metric_labels.setdefault(metric_name, set()).update(prom_labels)
    return observed_metric_labels


def ensure_label_consistency_and_remove_duplicates(
    metrics: list[PrometheusMetric], observed_metric_labels: dict[str, set[str]]
) -> list[PrometheusMetric]:
    """Give every metric all labels observed for its name and drop duplicates."""
    seen: set[tuple[str, int]] = set()
    output: list[PrometheusMetric] = []
    for metric in metrics:
        for label in observed_metric_labels.get(metric.name, ()):
            metric.labels.setdefault(label, "")
        key = (metric.name, labels_to_signature(metric.labels))
        if key in seen:
            DUPLICATE_METRICS_FILTERED_COUNTER.inc()
            continue
        seen.add(key)
        output.append(metric)
    return output