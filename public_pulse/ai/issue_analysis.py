"""
Public Pulse
Issue Analysis Orchestrator.

Runs the severity stage, then the department stage. Any failed stage turns
the whole analysis into the safe default (severity 5, no department) so
issue creation never depends on the language model being reachable.

Usage:
    analyzer = IssueAnalyzer.from_app(current_app)
    analysis = analyzer.analyze("Pothole", "deep crack")
    analysis.severity, analysis.department_id
"""

import logging
from dataclasses import dataclass

from public_pulse.ai.classifiers import DepartmentClassifier, SeverityClassifier
from public_pulse.models.issue import DEFAULT_SEVERITY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueAnalysis:
    severity: int
    department_id: str | None
    classified: bool = True

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "department_id": self.department_id,
            "classified": self.classified,
        }


DEFAULT_ANALYSIS = IssueAnalysis(severity=DEFAULT_SEVERITY, department_id=None, classified=False)


class IssueAnalyzer:
    """Sequential severity → department classification with fallback."""

    def __init__(self, severity_classifier, department_classifier, *, enabled=True):
        self.severity_classifier = severity_classifier
        self.department_classifier = department_classifier
        self.enabled = enabled

    @classmethod
    def from_app(cls, app):
        """Build an analyzer wired to the app's gateway, prompts and settings."""
        gateway = app.extensions["llm_gateway"]
        prompts = app.extensions["prompt_registry"]
        model = app.config.get("LLM_CLASSIFIER_MODEL")
        timeout = app.config.get("LLM_TIMEOUT_SECONDS")
        return cls(
            SeverityClassifier(gateway, prompts, model=model, timeout=timeout),
            DepartmentClassifier(gateway, prompts, model=model, timeout=timeout),
            enabled=app.config.get("ISSUE_ANALYSIS_ENABLED", True),
        )

    def analyze(self, title: str, description: str, *, issue_id=None) -> IssueAnalysis:
        if not self.enabled:
            return DEFAULT_ANALYSIS

        try:
            severity = self.severity_classifier.run(title, description, issue_id=issue_id)
            if not severity.ok:
                logger.warning("Issue analysis degraded to defaults (severity stage): %s",
                               severity.error)
                return DEFAULT_ANALYSIS

            department = self.department_classifier.run(title, description, issue_id=issue_id)
            if not department.ok:
                logger.warning("Issue analysis degraded to defaults (department stage): %s",
                               department.error)
                return DEFAULT_ANALYSIS
        except Exception:
            logger.warning("Issue analysis raised; using defaults", exc_info=True)
            return DEFAULT_ANALYSIS

        logger.info("Issue analysed: severity=%s department=%s",
                    severity.value, department.value)
        return IssueAnalysis(severity=severity.value, department_id=department.value)
