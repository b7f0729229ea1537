"""Soft checks on raw configuration that warn instead of failing."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    retry = config_dict.get("retry", {})
    if isinstance(retry, dict):
        max_retries = retry.get("max_retries")
        if max_retries == 0:
            warning_messages.append(
                "retry.max_retries is 0: transient failures will never be retried"
            )

        jitter = retry.get("jitter_factor", 0)
        if isinstance(jitter, (int, float)) and jitter >= 0.9:
            warning_messages.append(
                f"High retry.jitter_factor ({jitter}) can make retries nearly immediate"
            )

    batch = config_dict.get("batch", {})
    if isinstance(batch, dict):
        concurrency = batch.get("concurrency")
        if isinstance(concurrency, int) and concurrency > 50:
            warning_messages.append(
                f"High batch.concurrency ({concurrency}) may exceed provider send limits"
            )

    scheduler = config_dict.get("scheduler", {})
    if isinstance(scheduler, dict) and scheduler.get("enabled") is False:
        warning_messages.append(
            "scheduler.enabled is false: failed notifications are only retried via --process-retries"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
