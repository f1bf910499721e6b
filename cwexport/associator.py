"""Association of listed CloudWatch metrics with tagged resources."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from cwexport.logs import Logger, new_nop_logger
from cwexport.model import DimensionsRegexp, Metric, TaggedResource
from cwexport.promutil import labels_to_signature

_AMAZON_MQ_BROKER_SUFFIX = re.compile(r"-[0-9]+$")


@dataclass
class _DimensionsRegexpMapping:
    """Resources keyed by the signature of the dimensions one regexp extracts."""

    dimensions: list[str]
    dimensions_mapping: dict[int, TaggedResource] = field(default_factory=dict)

    def __str__(self) -> str:
        entries = ",".join(
            f"{signature}={resource.arn}"
            for signature, resource in self.dimensions_mapping.items()
        )
        return f"{{dimensions=[{''.join(self.dimensions)}], dimensions_mappings={{{entries}}}}}"


class Associator:
    """Best-effort mapping of metrics to resources through ARN regexps.

    Each resource is matched against at most one regexp: the first one,
    in the given order, that matches its ARN.
    """

    def __init__(
        self,
        logger: Logger,
        dimensions_regexps: Iterable[DimensionsRegexp],
        resources: Sequence[TaggedResource],
    ) -> None:
        self._logger = logger
        mapped: set[int] = set()
        mappings: list[_DimensionsRegexpMapping] = []

        for dimensions_regexp in dimensions_regexps:
            mapping = _DimensionsRegexpMapping(dimensions=list(dimensions_regexp.dimensions_names))
            for index, resource in enumerate(resources):
                if index in mapped:
                    continue
                match = dimensions_regexp.regexp.search(resource.arn)
                if match is None:
                    continue
                labels = {
                    name: value or ""
                    for name, value in zip(dimensions_regexp.dimensions_names, match.groups())
                }
                mapping.dimensions_mapping[labels_to_signature(labels)] = resource
                mapped.add(index)

            if mapping.dimensions_mapping:
                mappings.append(mapping)
            elif logger.is_debug_enabled():
                logger.debug(
                    "unable to define a regex mapping",
                    regex=dimensions_regexp.regexp.pattern,
                )

        # Most specific mappings first, keeping the regexp order among equals.
        self._mappings = sorted(mappings, key=lambda m: -len(m.dimensions))

        if logger.is_debug_enabled():
            for index, mapping in enumerate(self._mappings):
                logger.debug("associator mapping", mapping_idx=index, mapping=str(mapping))

    def associate_metric_to_resource(
        self, cw_metric: Metric
    ) -> tuple[TaggedResource | None, bool]:
        """Return the resource of a metric and whether the metric must be skipped.

        A metric without dimensions, or whose dimensions no mapping knows,
        is kept as a global metric. A metric that fits a mapping but matches
        none of its resources is skipped.
        """
        logger = self._logger.with_fields(metric_name=cw_metric.metric_name)

        if not cw_metric.dimensions:
            logger.debug("metric has no dimensions, don't skip")
            return None, False

        names = [dimension.name for dimension in cw_metric.dimensions]
        if logger.is_debug_enabled():
            logger.debug("associate loop start", dimensions=",".join(names))

        mapping_found = False
        for index, mapping in enumerate(self._mappings):
            if not contains_all(names, mapping.dimensions):
                continue
            if logger.is_debug_enabled():
                logger.debug("found mapping", mapping_idx=index, mapping=str(mapping))
            mapping_found = True
            signature = labels_to_signature(build_labels_map(cw_metric, mapping.dimensions))
            resource = mapping.dimensions_mapping.get(signature)
            if resource is not None:
                logger.debug("resource matched", signature=signature)
                return resource, False
            logger.debug("resource not matched", signature=signature)

        logger.debug("associate loop end", skip=mapping_found)
        return None, mapping_found


@dataclass
class NopAssociator:
    """An associator that maps nothing and skips nothing."""

    logger: Logger = field(default_factory=new_nop_logger)

    def associate_metric_to_resource(
        self, cw_metric: Metric
    ) -> tuple[TaggedResource | None, bool]:
        """Keep every metric as a global one, without a resource."""
        self.logger.debug(
            "no associator mappings, metric kept as global",
            metric_name=cw_metric.metric_name,
        )
        return None, False


def build_labels_map(cw_metric: Metric, dimensions: Iterable[str]) -> dict[str, str]:
    """Return the metric's values for the given dimension names.

    Values are normalised where a namespace reports them differently
    from the resource ARN.
    """
    wanted = set(dimensions)
    labels: dict[str, str] = {}
    for dimension in cw_metric.dimensions:
        if dimension.name not in wanted:
            continue
        value = dimension.value
        # Active/standby brokers carry a number suffix absent from the ARN.
        if cw_metric.namespace == "AWS/AmazonMQ" and dimension.name == "Broker":
            value = _AMAZON_MQ_BROKER_SUFFIX.sub("", value)
        # Endpoint ARNs are lower case while the dimension may not be.
        if cw_metric.namespace == "AWS/SageMaker" and dimension.name == "EndpointName":
            value = value.lower()
        labels[dimension.name] = value
    return labels


def contains_all(a: Iterable[str], b: Iterable[str]) -> bool:
    """Return True if a contains every element of b."""
    present = set(a)
    return all(element in present for element in b)