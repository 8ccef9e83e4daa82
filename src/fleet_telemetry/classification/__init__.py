"""
Threshold classification of normalized records.
"""

from .classifier import ThresholdClassifier
from .models import Status, Thresholds, Verdict

__all__ = ["ThresholdClassifier", "Status", "Thresholds", "Verdict"]
