"""Prometheus naming helpers, counters and a text-format collector."""

from __future__ import annotations

import math
import re
import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

HELP_TEXT = "Help is not implemented yet."

_FNV_OFFSET_64 = 14695981039346656037
_FNV_PRIME_64 = 1099511628211
_SEPARATOR = 0xFF

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_SPLIT = re.compile(r"([a-z0-9])([A-Z])")

_REPLACEMENTS = str.maketrans(
    {
        " ": "_",
        ",": "_",
        "\t": "_",
        "/": "_",
        "\\": "_",
        ".": "_",
        "-": "_",
        ":": "_",
        "=": "_",
        "\u201c": "_",
        "@": "_",
        "<": "_",
        ">": "_",
        "%": "_percent",
    }
)


class Counter:
    """A monotonically increasing, thread-safe counter."""

    def __init__(self, name: str, help: str = "") -> None:
        self.name = name
        self.help = help
        self._value = 0.0
        self._lock = threading.Lock()

    def inc(self) -> None:
        """Increase the counter by one."""
        with self._lock:
            self._value += 1

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


CLOUDWATCH_API_COUNTER = Counter("yace_cloudwatch_requests_total", HELP_TEXT)
CLOUDWATCH_API_ERROR_COUNTER = Counter("yace_cloudwatch_request_errors", HELP_TEXT)
CLOUDWATCH_GET_METRIC_DATA_API_COUNTER = Counter(
    "yace_cloudwatch_getmetricdata_requests_total", HELP_TEXT
)
CLOUDWATCH_GET_METRIC_STATISTICS_API_COUNTER = Counter(
    "yace_cloudwatch_getmetricstatistics_requests_total", HELP_TEXT
)
RESOURCE_GROUP_TAGGING_API_COUNTER = Counter(
    "yace_cloudwatch_resourcegrouptaggingapi_requests_total", HELP_TEXT
)
AUTO_SCALING_API_COUNTER = Counter("yace_cloudwatch_autoscalingapi_requests_total", HELP_TEXT)
TARGET_GROUPS_API_COUNTER = Counter("yace_cloudwatch_targetgroupapi_requests_total", HELP_TEXT)
API_GATEWAY_API_COUNTER = Counter("yace_cloudwatch_apigatewayapi_requests_total")
API_GATEWAY_API_V2_COUNTER = Counter("yace_cloudwatch_apigatewayapiv2_requests_total")
EC2_API_COUNTER = Counter("yace_cloudwatch_ec2api_requests_total", HELP_TEXT)
SHIELD_API_COUNTER = Counter("yace_cloudwatch_shieldapi_requests_total", HELP_TEXT)
MANAGED_PROMETHEUS_API_COUNTER = Counter(
    "yace_cloudwatch_managedprometheusapi_requests_total", HELP_TEXT
)
STORAGEGATEWAY_API_COUNTER = Counter("yace_cloudwatch_storagegatewayapi_requests_total", HELP_TEXT)
DMS_API_COUNTER = Counter("yace_cloudwatch_dmsapi_requests_total", HELP_TEXT)
DUPLICATE_METRICS_FILTERED_COUNTER = Counter(
    "yace_cloudwatch_duplicate_metrics_filtered", HELP_TEXT
)


@dataclass
class PrometheusMetric:
    """A gauge sample ready to be exposed."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    value: float | None = None
    include_timestamp: bool = False
    timestamp: datetime | None = None


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    stripped = digits.rstrip("0")
    exponent += len(digits) - len(stripped)
    digits = stripped.lstrip("0") or "0"
    point = len(digits) + exponent
    exp10 = point - 1
    prefix = "-" if sign else ""
    if exp10 < -4 or exp10 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if exp10 < 0 else '+'}{abs(exp10):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{prefix}{digits}{'0' * (point - len(digits))}"
    return f"{prefix}{digits[:point]}.{digits[point:]}"


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _timestamp_ms(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (timestamp - _EPOCH) // timedelta(milliseconds=1)


def _sample_line(metric: PrometheusMetric) -> str:
    line = metric.name
    if metric.labels:
        pairs = ",".join(
            f'{name}="{_escape_label_value(metric.labels[name])}"' for name in sorted(metric.labels)
        )
        line += "{" + pairs + "}"
    value = math.nan if metric.value is None else metric.value
    line += " " + _format_value(value)
    if metric.include_timestamp and metric.timestamp is not None:
        line += f" {_timestamp_ms(metric.timestamp)}"
    return line


class PrometheusCollector:
    """Exposes a fixed set of metrics as gauges in the text format."""

    def __init__(self, metrics: Iterable[PrometheusMetric]) -> None:
        self.metrics = list(metrics)

    def collect(self) -> Iterator[str]:
        """Yield one exposition sample line per metric, in order."""
        for metric in self.metrics:
            yield _sample_line(metric)

    def expose(self) -> str:
        """Return the metrics in the Prometheus text exposition format."""
        families: dict[str, list[str]] = {}
        for metric in self.metrics:
            families.setdefault(metric.name, []).append(_sample_line(metric))
        lines: list[str] = []
        for name in sorted(families):
            lines.append(f"# HELP {name} {HELP_TEXT}")
            lines.append(f"# TYPE {name} gauge")
            lines.extend(families[name])
        return "".join(line + "\n" for line in lines)


def split_string(text: str) -> str:
    """Insert a dot at every lower-to-upper case boundary."""
    return _SPLIT.sub(r"\1.\2", text)


def sanitize(text: str) -> str:
    """Replace characters not allowed in Prometheus names."""
    return text.translate(_REPLACEMENTS)


def prom_string(text: str) -> str:
    """Turn text into a snake-case Prometheus name fragment."""
    return sanitize(split_string(text)).lower()


def is_valid_label_name(name: str) -> bool:
    """Return True if name is a valid Prometheus label name."""
    return _LABEL_NAME.fullmatch(name) is not None


def prom_string_tag(text: str, labels_snake_case: bool) -> tuple[bool, str]:
    """Convert text to a label name; return whether it is valid and the name."""
    converted = prom_string(text) if labels_snake_case else sanitize(text)
    return is_valid_label_name(converted), converted


def labels_to_signature(labels: Mapping[str, str]) -> int:
    """Return the 64-bit FNV-1a signature of a label set, independent of order."""
    signature = _FNV_OFFSET_64
    for name in sorted(labels):
        for chunk in (name.encode(), bytes([_SEPARATOR]), labels[name].encode(), bytes([_SEPARATOR])):
            for byte in chunk:
                signature ^= byte
                signature = (signature * _FNV_PRIME_64) & 0xFFFFFFFFFFFFFFFF
    return signature