# cwexport

`cwexport` is a library. It takes metric data and tagged resources collected from
CloudWatch and turns them into Prometheus metrics. Every metric of the same name
carries the same set of labels, and duplicate series are dropped. It has no
dependencies outside the standard library.

## Modules

### `cwexport.model`

Dataclasses for the configuration and the scraped data:

- jobs: `JobsConfig`, `DiscoveryJob`, `StaticJob`, `CustomNamespaceJob`, `Role`;
- metric settings: `MetricConfig`, `DimensionsRegexp`;
- scraped data: `Tag`, `SearchTag`, `Dimension`, `Metric`, `Datapoint`, `ScrapeContext`,
  `CloudwatchData`;
- resources: `TaggedResource`;
- results: `CloudwatchMetricResult`, `TaggedResourceResult`.

`TaggedResource` has two methods:

- `filter_through_tags(filter_tags)` returns `True` when every `SearchTag` matches a tag
  of the resource. The key must be equal and the pattern must be found in the value. An
  empty filter list always matches.
- `metric_tags(exported_tags)` returns one `Tag` per exported name. Its value comes from
  the resource, or is `""` when the resource has no such tag.

### `cwexport.associator`

`Associator(logger, dimensions_regexps, resources)` maps a listed `Metric` to the
`TaggedResource` it belongs to. Each `DimensionsRegexp` pulls dimension values out of
resource ARNs, and each resource is claimed by the first regexp that matches its ARN.

`associate_metric_to_resource(metric)` returns a pair `(resource, skip)`:

- Mappings with more dimension names are tried first.
- A metric with no dimensions is kept as a global metric: `(None, False)`.
- A metric whose dimension names fit no mapping is also kept as a global metric.
- A metric that fits a mapping but matches none of its resources is skipped:
  `(None, True)`.
- For `AWS/AmazonMQ`, a trailing `-<number>` on the `Broker` value is ignored.
- For `AWS/SageMaker`, the `EndpointName` value is lower-cased.

`NopAssociator` keeps every metric as a global metric.

`build_labels_map` and `contains_all` are the helpers the association uses.

### `cwexport.discovery`

- `get_filtered_metric_datas(...)` builds one `CloudwatchData` per statistic for every
  listed metric that passes two checks: it has exactly the required dimension names, and
  the associator does not skip it. Metrics without a resource get the ID `"global"`.
- `get_metric_data_for_queries(logger, discovery_job, namespace, service_regexps, client, resources)`
  calls `client.list_metrics` for every configured metric, in threads.
  - Metrics are associated only when `service_regexps` and `resources` are both
    non-empty. The association then uses the job's `dimensions_regexps`.
  - A failing `list_metrics` call is logged and the other metrics carry on.
- `map_results_to_metric_datas(output, datas, logger)` stores each `MetricDataResult` on
  the `CloudwatchData` that has the same `metric_id`, then clears that ID to mark the
  data as processed. Unknown IDs are logged as warnings.
- `metric_dimensions_match_names` and `get_metric_data_input_length` are the helpers
  these functions use.

### `cwexport.jobs`

- `run_static_job(logger, job, client)` calls `client.get_metric_statistics` for each
  metric of a `StaticJob`. Metrics for which the client returns `None` are left out.
- `run_custom_namespace_job(logger, job, client, metrics_per_query)` lists the metrics of
  a `CustomNamespaceJob`, then queries them with `client.get_metric_data` in batches of
  `metrics_per_query`. It returns the data that received a value. A `metrics_per_query`
  that is not positive raises `ValueError`.
- `find_metric_data_by_id` raises `KeyError` when no data has the ID.
- `create_static_dimensions` and `get_metric_data_for_custom_namespace` are the helpers
  these functions use.

### The client you supply

The job functions take a client object that you write. It needs these methods:

- `list_metrics(namespace, metric, recently_active_only, on_page)` calls `on_page` with
  lists of `Metric`.
- `get_metric_data(logger, metric_datas, namespace, length, delay, rounding_period)`
  returns a list of `MetricDataResult`, or `None`.
- `get_metric_statistics(logger, dimensions, namespace, metric)` returns a list of
  `Datapoint`, or `None`.

### `cwexport.migrate`

- `build_metrics(results, labels_snake_case, logger)` turns `CloudwatchMetricResult`s
  into `PrometheusMetric`s and also returns the label names observed for each metric
  name.
  - A missing value becomes NaN, or `0` when `nil_to_zero` is set.
  - When `add_cloudwatch_timestamp` is set, a metric with no value is left out.
  - An unknown statistic raises `ValueError`.
- `build_namespace_info_metrics(...)` adds one `aws_<namespace>_info` metric with value
  `0` per tagged resource. Its labels are `name` and `tag_<key>`, plus the context labels
  when the result has a context.
- `ensure_label_consistency_and_remove_duplicates(metrics, observed)` gives every metric
  all the labels observed for its name, with missing ones set to `""`. It then drops
  duplicate series.
- `get_datapoint` chooses the value to export, checked in this order:
  1. a GetMetricData value;
  2. the newest data point that holds the statistic;
  3. for `Average`, the mean of all the averages.

  Percentile statistics such as `p99` or `p99.9` are read from `extended_statistics`.
- `sort_by_timestamp`, `create_prometheus_labels`, `context_to_labels` and
  `record_labels_for_metric` are the helpers behind these functions.

### `cwexport.promutil`

- `PrometheusMetric` is a gauge sample.
- `PrometheusCollector(metrics)` renders samples:
  - `collect()` yields one sample line per metric;
  - `expose()` returns the text exposition format, with a `# HELP` and `# TYPE ... gauge`
    header for each name.
- Naming helpers:
  - `split_string`, `sanitize` and `prom_string` build name fragments;
  - `prom_string_tag` converts text to a label name and reports whether it is valid;
  - `is_valid_label_name` checks a label name;
  - `labels_to_signature` returns an order-independent 64-bit hash of a label set.
- `Counter` is a thread-safe counter. The module defines request counters named
  `yace_cloudwatch_*`. `DUPLICATE_METRICS_FILTERED_COUNTER` goes up by one for every
  duplicate series that is dropped.

### `cwexport.logs`

- `new_logger(log_format, debug_enabled, stream=None, **fields)` returns a `Logger`.
  - It writes JSON when `log_format` is `"json"` and logfmt otherwise.
  - It writes to stderr unless `stream` is given.
- `Logger` has `debug`, `info`, `warn` and `error(err, message, ...)`.
  - Debug records are written only when debugging is enabled.
  - `with_fields(**fields)` returns a logger that adds those fields to every record.
- `new_nop_logger()` returns a logger that writes nothing.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from cwexport.logs import new_nop_logger
from cwexport.model import CloudwatchData, CloudwatchMetricResult, Dimension, ScrapeContext
from cwexport.migrate import build_metrics, ensure_label_consistency_and_remove_duplicates
from cwexport.promutil import PrometheusCollector

logger = new_nop_logger()
results = [
    CloudwatchMetricResult(
        context=ScrapeContext(region="us-east-1", account_id="123456789012"),
        data=[
            CloudwatchData(
                id="arn:aws:elasticache:us-east-1:123456789012:cluster:redis-cluster",
                metric="CPUUtilization",
                namespace="AWS/ElastiCache",
                statistics=["Average"],
                dimensions=[Dimension(name="CacheClusterId", value="redis-cluster")],
                nil_to_zero=False,
                get_metric_data_point=1.0,
            )
        ],
    )
]

metrics, observed = build_metrics(results, labels_snake_case=True, logger=logger)
metrics = ensure_label_consistency_and_remove_duplicates(metrics, observed)
print(PrometheusCollector(metrics).expose())
```

This prints a gauge named `aws_elasticache_cpuutilization_average` with value `1` and
these labels:

- `account_id`
- `dimension_cache_cluster_id`
- `name`
- `region`

## Metric naming

- Metric names take the form `aws_<namespace>_<metric>_<statistic>`. When the namespace
  part already starts with `aws`, no second `aws_` is added.
- Each part is split at lower-to-upper case boundaries and lower-cased.
- Characters that Prometheus does not allow (spaces, `,`, `/`, `.`, `-`, `:`, `=`, `@`,
  `<`, `>` and the like) become `_`, and `%` becomes `_percent`.
- Label names keep their case unless `labels_snake_case` is set.
- Tags, dimensions and custom tags whose names are not valid label names are logged and
  left out.

## What it does not do

- It does not talk to AWS. There is no CloudWatch, tagging or STS client; the job
  functions use a client object that you supply.
- It ships no table of supported services or ARN regexps; you pass the
  `DimensionsRegexp`s yourself.
- It does not read configuration files.
- It does not run jobs across roles and regions.
- It does not serve metrics over HTTP and has no command-line program. `expose()` gives
  you the text; serving it is up to you.