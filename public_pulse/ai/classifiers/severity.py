"""
Public Pulse
Severity Classifier.

Pipeline:
    1. Render the severity rubric prompt with title + description
    2. One LLM call (no retry, bounded by a timeout)
    3. Take the first integer in the reply, clamp it to [1, 10]
    4. No integer in the reply → 5
"""

import logging
import re

from public_pulse.ai.classifiers.result import StageResult
from public_pulse.models.issue import DEFAULT_SEVERITY, SEVERITY_MAX, SEVERITY_MIN

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r"\d+")


def parse_severity(text: str | None) -> int:
    """Extract a severity score from free text, clamped into range."""
    match = _INTEGER_RE.search(text or "")
    if not match:
        return DEFAULT_SEVERITY
    return min(max(int(match.group()), SEVERITY_MIN), SEVERITY_MAX)


class SeverityClassifier:
    """Scores an issue's severity via the LLM gateway."""

    PROMPT_NAME = "severity_classifier"

    def __init__(self, gateway, prompt_registry, *, model=None, timeout=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model
        self.timeout = timeout

    def run(self, title: str, description: str, *, issue_id=None):
        """Classify and return a ``StageResult`` carrying the score."""
        try:
            messages = self.prompt_registry.render(
                self.PROMPT_NAME, title=title, description=description,
            )
            response = self.gateway.chat(
                messages,
                model=self.model,
                purpose="severity",
                issue_id=issue_id,
                max_retries=1,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("Severity classification failed: %s", e)
            return StageResult.failure(e)

        score = parse_severity(response.get("content"))
        logger.debug("Severity for %r: %d", title[:60], score)
        return StageResult.success(score)

    def classify(self, title: str, description: str) -> int:
        """Return a score in [1, 10]; any failure yields the default."""
        result = self.run(title, description)
        return result.value if result.ok else DEFAULT_SEVERITY
