"""
Public Pulse
Department Classifier.

Pipeline:
    1. Load all departments in stored order (created_at, id)
    2. Empty list → None, the model is not called
    3. One LLM call listing every department name
    4. Map the answer back to a department id by lenient name matching
"""

import logging

from public_pulse.ai.classifiers.result import StageResult
from public_pulse.models import db
from public_pulse.models.user import Department

logger = logging.getLogger(__name__)


def match_department(answer: str | None, departments) -> str | None:
    """
    Resolve a model answer to a department id.

    Case-insensitive containment in either direction; the first department
    in the given order wins. Blank answers never match.
    """
    needle = (answer or "").strip().strip(".\"'").strip().lower()
    if not needle:
        return None
    for dept in departments:
        name = dept.name.lower()
        if name in needle or needle in name:
            return dept.id
    return None


class DepartmentClassifier:
    """Routes an issue to a stored department via the LLM gateway."""

    PROMPT_NAME = "department_classifier"

    def __init__(self, gateway, prompt_registry, *, model=None, timeout=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.model = model
        self.timeout = timeout

    @staticmethod
    def load_departments():
        return db.session.execute(
            db.select(Department).order_by(Department.created_at, Department.id)
        ).scalars().all()

    def run(self, title: str, description: str, *, issue_id=None):
        """Classify and return a ``StageResult`` carrying a department id or None."""
        try:
            departments = self.load_departments()
            if not departments:
                logger.info("No departments defined; skipping department classification")
                return StageResult.success(None)

            department_list = "\n".join(f"- {d.name}" for d in departments)
            messages = self.prompt_registry.render(
                self.PROMPT_NAME,
                title=title,
                description=description,
                department_list=department_list,
            )
            response = self.gateway.chat(
                messages,
                model=self.model,
                purpose="department",
                issue_id=issue_id,
                max_retries=1,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("Department classification failed: %s", e)
            return StageResult.failure(e)

        department_id = match_department(response.get("content"), departments)
        if department_id is None:
            logger.info("Model answer %r matched no department", (response.get("content") or "")[:80])
        return StageResult.success(department_id)

    def classify(self, title: str, description: str) -> str | None:
        result = self.run(title, description)
        return result.value if result.ok else None
