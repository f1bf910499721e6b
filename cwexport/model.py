"""Data model shared by the scrape jobs and the metric builders."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_PERIOD_SECONDS = 300
DEFAULT_LENGTH_SECONDS = 300
DEFAULT_DELAY_SECONDS = 300

LabelSet = set


@dataclass(frozen=True)
class Tag:
    """A key/value tag."""

    key: str
    value: str = ""


@dataclass(frozen=True)
class SearchTag:
    """A tag filter: the key must be equal, the value must match the pattern."""

    key: str
    value: re.Pattern


@dataclass(frozen=True)
class Dimension:
    """A CloudWatch metric dimension."""

    name: str
    value: str = ""


@dataclass
class Role:
    """An IAM role to assume for a job."""

    role_arn: str = ""
    external_id: str = ""


@dataclass
class MetricConfig:
    """Configuration of one metric to scrape."""

    name: str
    statistics: list[str] = field(default_factory=list)
    period: int = 0
    length: int = 0
    delay: int = 0
    nil_to_zero: bool | None = None
    add_cloudwatch_timestamp: bool | None = None


@dataclass
class DimensionsRegexp:
    """A regular expression extracting dimension values from an ARN."""

    regexp: re.Pattern
    dimensions_names: list[str] = field(default_factory=list)


@dataclass
class DiscoveryJob:
    """A job discovering resources through their tags."""

    regions: list[str] = field(default_factory=list)
    type: str = ""
    roles: list[Role] = field(default_factory=list)
    search_tags: list[SearchTag] = field(default_factory=list)
    custom_tags: list[Tag] = field(default_factory=list)
    dimension_name_requirements: list[str] = field(default_factory=list)
    metrics: list[MetricConfig] = field(default_factory=list)
    rounding_period: int | None = None
    recently_active_only: bool = False
    exported_tags_on_metrics: list[str] = field(default_factory=list)
    include_context_on_info_metrics: bool = False
    dimensions_regexps: list[DimensionsRegexp] = field(default_factory=list)
    statistics: list[str] = field(default_factory=list)
    period: int = 0
    length: int = 0
    delay: int = 0
    nil_to_zero: bool | None = None
    add_cloudwatch_timestamp: bool | None = None


@dataclass
class StaticJob:
    """A job scraping fixed dimensions of a namespace."""

    name: str = ""
    regions: list[str] = field(default_factory=list)
    roles: list[Role] = field(default_factory=list)
    namespace: str = ""
    custom_tags: list[Tag] = field(default_factory=list)
    dimensions: list[Dimension] = field(default_factory=list)
    metrics: list[MetricConfig] = field(default_factory=list)


@dataclass
class CustomNamespaceJob:
    """A job scraping every metric of a custom namespace."""

    regions: list[str] = field(default_factory=list)
    name: str = ""
    namespace: str = ""
    recently_active_only: bool = False
    roles: list[Role] = field(default_factory=list)
    metrics: list[MetricConfig] = field(default_factory=list)
    custom_tags: list[Tag] = field(default_factory=list)
    dimension_name_requirements: list[str] = field(default_factory=list)
    rounding_period: int | None = None
    statistics: list[str] = field(default_factory=list)
    period: int = 0
    length: int = 0
    delay: int = 0
    nil_to_zero: bool | None = None
    add_cloudwatch_timestamp: bool | None = None


@dataclass
class JobsConfig:
    """All configured jobs."""

    sts_region: str = ""
    discovery_jobs: list[DiscoveryJob] = field(default_factory=list)
    static_jobs: list[StaticJob] = field(default_factory=list)
    custom_namespace_jobs: list[CustomNamespaceJob] = field(default_factory=list)


@dataclass
class Metric:
    """A metric as listed by CloudWatch."""

    dimensions: list[Dimension] = field(default_factory=list)
    metric_name: str = ""
    namespace: str = ""


@dataclass
class Datapoint:
    """One statistics data point returned by CloudWatch."""

    average: float | None = None
    extended_statistics: dict[str, float] = field(default_factory=dict)
    maximum: float | None = None
    minimum: float | None = None
    sample_count: float | None = None
    sum: float | None = None
    timestamp: datetime | None = None


@dataclass
class ScrapeContext:
    """Where a set of results was scraped from."""

    region: str = ""
    account_id: str = ""
    custom_tags: list[Tag] = field(default_factory=list)


@dataclass
class CloudwatchData:
    """A CloudWatch metric with its data points and resource information."""

    id: str | None = None
    metric_id: str | None = None
    metric: str | None = None
    namespace: str | None = None
    statistics: list[str] = field(default_factory=list)
    points: list[Datapoint] | None = None
    get_metric_data_point: float | None = None
    get_metric_data_timestamp: datetime | None = None
    nil_to_zero: bool | None = None
    add_cloudwatch_timestamp: bool | None = None
    tags: list[Tag] = field(default_factory=list)
    dimensions: list[Dimension] = field(default_factory=list)
    period: int = 0


@dataclass
class TaggedResource:
    """A cloud resource with its tags."""

    arn: str
    namespace: str = ""
    region: str = ""
    tags: list[Tag] = field(default_factory=list)

    def filter_through_tags(self, filter_tags: list[SearchTag]) -> bool:
        """Return True if every filter tag matches a tag of the resource."""
        if not filter_tags:
            return True
        matches = 0
        for resource_tag in self.tags:
            for filter_tag in filter_tags:
                if resource_tag.key == filter_tag.key:
                    if filter_tag.value.search(resource_tag.value) is None:
                        return False
                    matches += 1
        return matches == len(filter_tags)

    def metric_tags(self, exported_tags: list[str]) -> list[Tag]:
        """Return one tag per exported name, valued from the resource or empty."""
        values: dict[str, str] = {}
        for tag in self.tags:
            values.setdefault(tag.key, tag.value)
        return [Tag(key=name, value=values.get(name, "")) for name in exported_tags]


@dataclass
class CloudwatchMetricResult:
    """Metrics scraped for one context."""

    context: ScrapeContext | None = None
    data: list[CloudwatchData] = field(default_factory=list)


@dataclass
class TaggedResourceResult:
    """Resources discovered for one context."""

    context: ScrapeContext | None = None
    data: list[TaggedResource] = field(default_factory=list)