from datetime import datetime, timezone

import pytest

from cwexport.promutil import (
    Counter,
    PrometheusCollector,
    PrometheusMetric,
    is_valid_label_name,
    labels_to_signature,
    prom_string,
    prom_string_tag,
    sanitize,
    split_string,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("GlobalTopicCount", "Global.Topic.Count"),
        ("CPUUtilization", "CPUUtilization"),
        ("StatusCheckFailed_Instance", "Status.Check.Failed_Instance"),
    ],
)
def test_split_string(text, expected):
    assert split_string(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Global.Topic.Count", "Global_Topic_Count"),
        ("Status.Check.Failed_Instance", "Status_Check_Failed_Instance"),
        ("IHaveA%Sign", "IHaveA_percentSign"),
    ],
)
def test_sanitize(text, expected):
    assert sanitize(text) == expected


@pytest.mark.parametrize(
    "label, snake, ok, out",
    [
        ("labelName", False, True, "labelName"),
        ("labelName", True, True, "label_name"),
        ("label_name", False, True, "label_name"),
        ("label_name", True, True, "label_name"),
        ("invalidChars@$", False, False, ""),
        ("invalidChars@$", True, False, ""),
    ],
)
def test_prom_string_tag(label, snake, ok, out):
    valid, converted = prom_string_tag(label, snake)
    assert valid == ok
    if valid:
        assert converted == out


def test_prom_string():
    assert prom_string("GlobalTopicCount") == "global_topic_count"
    assert prom_string("aws/elasticache") == "aws_elasticache"
    assert prom_string("CPUUtilization") == "cpuutilization"


@pytest.mark.parametrize(
    "name, expected",
    [("name", True), ("_x1", True), ("1abc", False), ("", False), ("a$b", False)],
)
def test_is_valid_label_name(name, expected):
    assert is_valid_label_name(name) is expected


def test_labels_to_signature_empty():
    assert labels_to_signature({}) == 14695981039346656037


def test_labels_to_signature_order_independent():
    first = labels_to_signature({"a": "1", "b": "2"})
    second = labels_to_signature({"b": "2", "a": "1"})
    assert first == second
    assert labels_to_signature({"a": "1", "b": "3"}) != first


def test_counter_inc():
    counter = Counter("test_total", "help")
    counter.inc()
    counter.inc()
    assert counter.value == 2


def test_collector_expose():
    metrics = [
        PrometheusMetric(name="aws_x", labels={"name": "n", "a": 'q"v'}, value=1.0),
        PrometheusMetric(name="aws_x", labels={}, value=0.5),
    ]
    text = PrometheusCollector(metrics).expose()
    assert text == (
        "# HELP aws_x Help is not implemented yet.\n"
        "# TYPE aws_x gauge\n"
        'aws_x{a="q\\"v",name="n"} 1\n'
        "aws_x 0.5\n"
    )


def test_collector_collect_values_and_timestamp():
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    metrics = [
        PrometheusMetric(name="m", value=float("nan")),
        PrometheusMetric(name="m", value=1e6),
        PrometheusMetric(name="m", value=2.0, include_timestamp=True, timestamp=ts),
        PrometheusMetric(name="m", value=3.0, include_timestamp=False, timestamp=ts),
    ]
    assert list(PrometheusCollector(metrics).collect()) == [
        "m NaN",
        "m 1e+06",
        "m 2 1704067200000",
        "m 3",
    ]