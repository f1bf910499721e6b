"""Discovery of metrics to query and mapping of query results back to them."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from cwexport.associator import Associator, NopAssociator
from cwexport.logs import Logger
from cwexport.model import (
    CloudwatchData,
    DimensionsRegexp,
    DiscoveryJob,
    Metric,
    MetricConfig,
    TaggedResource,
)


class _ListMetricsClient(Protocol):
    def list_metrics(
        self,
        namespace: str,
        metric: MetricConfig,
        recently_active_only: bool,
        on_page: Callable[[list[Metric]], None],
    ) -> None: ...


class _ResourceAssociator(Protocol):
    def associate_metric_to_resource(
        self, cw_metric: Metric
    ) -> tuple[TaggedResource | None, bool]: ...


@dataclass
class MetricDataResult:
    """One value returned by a GetMetricData query."""

    id: str
    datapoint: float
    timestamp: datetime | None = None


def _new_metric_id() -> str:
    return f"id_{random.getrandbits(63)}"


def map_results_to_metric_datas(
    output: Iterable[Sequence[MetricDataResult] | None],
    datas: Iterable[CloudwatchData],
    logger: Logger,
) -> None:
    """Store each query result on the metric data with the same metric ID.

    Every metric data that receives a value has its metric ID cleared to
    mark it as processed; later results for the same ID are ignored.
    """
    by_id = {data.metric_id: data for data in datas}
    for batch in output:
        if batch is None:
            continue
        for result in batch:
            data = by_id.get(result.id)
            if data is None:
                logger.warn("GetMetricData returned unknown metric ID", metric_id=result.id)
                continue
            if data.metric_id is None:
                continue
            data.get_metric_data_point = result.datapoint
            data.get_metric_data_timestamp = result.timestamp
            data.metric_id = None


def get_metric_data_input_length(metrics: Iterable[MetricConfig]) -> int:
    """Return the longest length among the metric configurations, or 0."""
    return max((metric.length for metric in metrics), default=0)


def metric_dimensions_match_names(
    metric: Metric, dimension_name_requirements: Sequence[str]
) -> bool:
    """Return True if the metric has exactly the required dimension names."""
    if len(dimension_name_requirements) != len(metric.dimensions):
        return False
    return all(
        dimension.name in dimension_name_requirements for dimension in metric.dimensions
    )


def get_filtered_metric_datas(
    logger: Logger,
    namespace: str,
    tags_on_metrics: Sequence[str] | None,
    metrics_list: Iterable[Metric],
    dimension_name_list: Sequence[str] | None,
    metric_config: MetricConfig,
    assoc: _ResourceAssociator,
) -> list[CloudwatchData]:
    """Build one metric data per statistic for every listed metric that is kept."""
    result: list[CloudwatchData] = []
    for cw_metric in metrics_list:
        if dimension_name_list and not metric_dimensions_match_names(
            cw_metric, dimension_name_list
        ):
            continue

        matched, skip = assoc.associate_metric_to_resource(cw_metric)
        if skip:
            if logger.is_debug_enabled():
                dimensions = ",".join(f"{d.name}={d.value}" for d in cw_metric.dimensions)
                logger.debug(
                    "skipping metric unmatched by associator",
                    metric=metric_config.name,
                    dimensions=dimensions,
                )
            continue

        resource = matched or TaggedResource(arn="global", namespace=namespace)
        metric_tags = resource.metric_tags(list(tags_on_metrics or []))
        for statistic in metric_config.statistics:
            result.append(
                CloudwatchData(
                    id=resource.arn,
                    metric_id=_new_metric_id(),
                    metric=metric_config.name,
                    namespace=namespace,
                    statistics=[statistic],
                    nil_to_zero=metric_config.nil_to_zero,
                    add_cloudwatch_timestamp=metric_config.add_cloudwatch_timestamp,
                    tags=list(metric_tags),
                    dimensions=cw_metric.dimensions,
                    period=metric_config.period,
                )
            )
    return result


def get_metric_data_for_queries(
    logger: Logger,
    discovery_job: DiscoveryJob,
    namespace: str,
    service_regexps: Sequence[DimensionsRegexp],
    client: _ListMetricsClient,
    resources: Sequence[TaggedResource],
) -> list[CloudwatchData]:
    """List the metrics of every configured metric and build the data to query.

    Resources are associated only when the service defines dimension regexps
    and there are resources; otherwise no metric is skipped.
    """
    assoc: _ResourceAssociator
    if service_regexps and resources:
        assoc = Associator(logger, discovery_job.dimensions_regexps, resources)
    else:
        assoc = NopAssociator()

    def fetch(metric: MetricConfig) -> list[CloudwatchData]:
        collected: list[CloudwatchData] = []

        def on_page(page: list[Metric]) -> None:
            collected.extend(
                get_filtered_metric_datas(
                    logger,
                    discovery_job.type,
                    discovery_job.exported_tags_on_metrics,
                    page,
                    discovery_job.dimension_name_requirements,
                    metric,
                    assoc,
                )
            )

        try:
            client.list_metrics(
                namespace, metric, discovery_job.recently_active_only, on_page
            )
        except Exception as err:  # noqa: BLE001 - one failing metric must not stop the rest
            logger.error(
                err,
                "Failed to get full metric list",
                metric_name=metric.name,
                namespace=namespace,
            )
        return collected

    if not discovery_job.metrics:
        return []
    with ThreadPoolExecutor(max_workers=len(discovery_job.metrics)) as executor:
        return [data for part in executor.map(fetch, discovery_job.metrics) for data in part]