# metrics_logger.py
# Description: Lightweight counters and histograms emitted through loguru
#
# Imports
from typing import Dict, Optional, Union
#
# Third-Party Imports
from loguru import logger
#
########################################################################################################################
#
# Functions:

metrics_logger = logger.bind(module="metrics")

Number = Union[int, float]


def _format_labels(labels: Optional[Dict[str, str]]) -> str:
    if not labels:
        return ""
    return " " + " ".join(f"{key}={value}" for key, value in sorted(labels.items()))


def log_counter(metric_name: str, value: Number = 1, labels: Optional[Dict[str, str]] = None) -> None:
    """
    Record a counter increment.

    Args:
        metric_name: Name of the counter (snake_case, prefixed by component)
        value: Amount to increment by
        labels: Optional string labels attached to the sample
    """
    metrics_logger.bind(metric=metric_name, metric_type="counter", value=value, labels=labels or {}).debug(
        f"METRIC counter {metric_name} +{value}{_format_labels(labels)}"
    )


def log_histogram(metric_name: str, value: Number, labels: Optional[Dict[str, str]] = None) -> None:
    """Record a single histogram observation (durations, sizes, counts)."""
    metrics_logger.bind(metric=metric_name, metric_type="histogram", value=value, labels=labels or {}).debug(
        f"METRIC histogram {metric_name} {value}{_format_labels(labels)}"
    )

#
# End of metrics_logger.py
########################################################################################################################
