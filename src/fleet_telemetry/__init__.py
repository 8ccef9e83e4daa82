"""
Fleet Telemetry - point-in-time health and event-log aggregation for Windows fleets

This package queries a set of remote hosts for structured operational data,
normalizes the heterogeneous results into one schema, classifies severity
against configurable thresholds and exports the aggregated result set.

Main modules:
- adapters: Host query adapters (telemetry agent over HTTP, recorded snapshots)
- records: Normalized record models and the record normalizer
- classification: Threshold classifier and verdict models
- aggregator: Fleet-wide query pipeline, counters and deduplication
- reporting: CSV export, aggregate statistics and HTML report
- cli: fleetctl command line entry point
"""

__version__ = "0.3.0"
__author__ = "Fleet Telemetry Team"

import os
from typing import Dict, Any

# Environment configuration defaults
DEFAULT_CONFIG: Dict[str, Any] = {
    "log_level": "INFO",
}


def get_log_level() -> str:
    """
    Get the logging level from environment or configuration.

    Priority order:
    1. FLEET_LOG_LEVEL environment variable
    2. Default fallback (INFO)

    Returns:
        str: The logging level name
    """
    return os.getenv("FLEET_LOG_LEVEL", DEFAULT_CONFIG["log_level"]).upper()


__all__ = ["__version__", "__author__", "DEFAULT_CONFIG", "get_log_level"]
