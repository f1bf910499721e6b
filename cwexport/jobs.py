"""Static and custom-namespace scrape jobs."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from cwexport.discovery import (
    MetricDataResult,
    get_metric_data_input_length,
    metric_dimensions_match_names,
)
from cwexport.logs import Logger
from cwexport.model import (
    CloudwatchData,
    CustomNamespaceJob,
    Datapoint,
    Dimension,
    Metric,
    MetricConfig,
    StaticJob,
)


class _CloudwatchClient(Protocol):
    def list_metrics(
        self,
        namespace: str,
        metric: MetricConfig,
        recently_active_only: bool,
        on_page: Callable[[list[Metric]], None],
    ) -> None: ...

    def get_metric_data(
        self,
        logger: Logger,
        metric_datas: list[CloudwatchData],
        namespace: str,
        length: int,
        delay: int,
        rounding_period: int | None,
    ) -> list[MetricDataResult] | None: ...

    def get_metric_statistics(
        self,
        logger: Logger,
        dimensions: list[Dimension],
        namespace: str,
        metric: MetricConfig,
    ) -> list[Datapoint] | None: ...


def create_static_dimensions(dimensions: Iterable[Dimension]) -> list[Dimension]:
    """Return fresh copies of the given dimensions."""
    return [Dimension(name=d.name, value=d.value) for d in dimensions]


def run_static_job(
    logger: Logger, job: StaticJob, client: _CloudwatchClient
) -> list[CloudwatchData]:
    """Fetch statistics for every metric of a static job.

    Metrics for which the client returns no data points are left out.
    """

    def fetch(metric: MetricConfig) -> CloudwatchData | None:
        data = CloudwatchData(
            id=job.name,
            metric=metric.name,
            namespace=job.namespace,
            statistics=metric.statistics,
            nil_to_zero=metric.nil_to_zero,
            add_cloudwatch_timestamp=metric.add_cloudwatch_timestamp,
            dimensions=create_static_dimensions(job.dimensions),
        )
        data.points = client.get_metric_statistics(
            logger, data.dimensions, job.namespace, metric
        )
        return data if data.points is not None else None

    if not job.metrics:
        return []
    with ThreadPoolExecutor(max_workers=len(job.metrics)) as executor:
        return [data for data in executor.map(fetch, job.metrics) if data is not None]


def find_metric_data_by_id(
    metric_datas: Iterable[CloudwatchData], value: str
) -> CloudwatchData:
    """Return the metric data with the given metric ID; raise KeyError if none."""
    found = next((data for data in metric_datas if data.metric_id == value), None)
    if found is None:
        raise KeyError(f"metric with id {value} not found")
    return found


def get_metric_data_for_custom_namespace(
    job: CustomNamespaceJob, client: _CloudwatchClient, logger: Logger
) -> list[CloudwatchData]:
    """List the metrics of a custom namespace job and build the data to query."""

    def fetch(metric: MetricConfig) -> list[CloudwatchData]:
        collected: list[CloudwatchData] = []

        def on_page(page: list[Metric]) -> None:
            for cw_metric in page:
                if job.dimension_name_requirements and not metric_dimensions_match_names(
                    cw_metric, job.dimension_name_requirements
                ):
                    continue
                for statistic in metric.statistics:
                    collected.append(
                        CloudwatchData(
                            id=job.name,
                            metric_id=f"id_{random.getrandbits(63)}",
                            metric=metric.name,
                            namespace=job.namespace,
                            statistics=[statistic],
                            nil_to_zero=metric.nil_to_zero,
                            add_cloudwatch_timestamp=metric.add_cloudwatch_timestamp,
                            dimensions=cw_metric.dimensions,
                            period=metric.period,
                        )
                    )

        try:
            client.list_metrics(job.namespace, metric, job.recently_active_only, on_page)
        except Exception as err:  # noqa: BLE001 - one failing metric must not stop the rest
            logger.error(
                err,
                "Failed to get full metric list",
                metric_name=metric.name,
                namespace=job.namespace,
            )
        return collected

    if not job.metrics:
        return []
    with ThreadPoolExecutor(max_workers=len(job.metrics)) as executor:
        return [data for part in executor.map(fetch, job.metrics) for data in part]


def run_custom_namespace_job(
    logger: Logger,
    job: CustomNamespaceJob,
    client: _CloudwatchClient,
    metrics_per_query: int,
) -> list[CloudwatchData]:
    """Query every metric of a custom namespace in batches of metrics_per_query.

    Raises ValueError if metrics_per_query is not positive.
    """
    if metrics_per_query <= 0:
        raise ValueError("metrics_per_query must be positive")

    datas = get_metric_data_for_custom_namespace(job, client, logger)
    if not datas:
        logger.debug("No metrics data found")
        return []

    length = get_metric_data_input_length(job.metrics)
    batches = [
        datas[start : start + metrics_per_query]
        for start in range(0, len(datas), metrics_per_query)
    ]
    logger.debug("GetMetricData partitions", total=len(batches))

    def fetch(batch: list[CloudwatchData]) -> list[CloudwatchData]:
        results = client.get_metric_data(
            logger, batch, job.namespace, length, job.delay, job.rounding_period
        )
        if results is None:
            return []
        output: list[CloudwatchData] = []
        for result in results:
            try:
                data = find_metric_data_by_id(batch, result.id)
            except KeyError:
                continue
            data.get_metric_data_point = result.datapoint
            data.get_metric_data_timestamp = result.timestamp
            output.append(data)
        return output

    with ThreadPoolExecutor(max_workers=len(batches)) as executor:
        return [data for part in executor.map(fetch, batches) for data in part]