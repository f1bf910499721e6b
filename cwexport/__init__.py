"""Build Prometheus metrics from CloudWatch data and tagged cloud resources."""

__version__ = "0.1.0"