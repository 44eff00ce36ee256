"""
Public Pulse
Issue classifiers.

Classifiers:
    - severity: 1-10 severity score from title + description
    - department: responsible department id from title + description

Each classifier exposes ``run()`` returning a ``StageResult`` so the
orchestrator can decide how to degrade.
"""

from public_pulse.ai.classifiers.result import StageResult
from public_pulse.ai.classifiers.severity import SeverityClassifier, parse_severity
from public_pulse.ai.classifiers.department import DepartmentClassifier, match_department

__all__ = [
    "StageResult",
    "SeverityClassifier",
    "DepartmentClassifier",
    "parse_severity",
    "match_department",
]
