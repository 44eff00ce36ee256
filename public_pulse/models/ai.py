"""
Public Pulse
Language-model usage ledger.

Models:
    - AIUsageLog: one row per classifier call (tokens, cost, latency, outcome)
"""

from collections import namedtuple
from datetime import datetime, timezone

from public_pulse.models import db

# USD per 1M tokens
Price = namedtuple("Price", "prompt completion")

MODEL_PRICES = {
    "claude-3-5-haiku-20241022": Price(1.00, 5.00),
    "claude-3-5-sonnet-20241022": Price(3.00, 15.00),
    "gpt-4o-mini": Price(0.15, 0.60),
    "gpt-4o": Price(2.50, 10.00),
    "gemini-2.5-flash": Price(0.30, 2.50),
    "gemini-2.5-pro": Price(1.25, 10.00),
    "gemini-2.0-flash": Price(0.10, 0.40),
}
FREE = Price(0.0, 0.0)


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost of one call; unpriced models (the local stub) are free."""
    price = MODEL_PRICES.get(model, FREE)
    return (prompt_tokens * price.prompt + completion_tokens * price.completion) / 1_000_000


class AIUsageLog(db.Model):
    __tablename__ = "ai_usage_logs"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False)
    model = db.Column(db.String(80), nullable=False)
    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    total_tokens = db.Column(db.Integer, default=0)
    cost_usd = db.Column(db.Float, default=0.0)
    latency_ms = db.Column(db.Integer, default=0)
    purpose = db.Column(db.String(100), default="", comment="severity / department")
    # Not a foreign key: intake classifies before the issue row exists
    issue_id = db.Column(db.String(36), nullable=True, index=True)
    success = db.Column(db.Boolean, default=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def record(cls, *, provider, model, purpose="", issue_id=None, prompt_tokens=0,
               completion_tokens=0, latency_ms=0, error=None):
        """Build a row for one call; ``error`` marks it failed."""
        return cls(
            provider=provider,
            model=model,
            purpose=purpose,
            issue_id=issue_id,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            cost_usd=calculate_cost(model, prompt_tokens, completion_tokens),
            latency_ms=latency_ms,
            success=error is None,
            error_message=str(error) if error is not None else None,
        )

    def __repr__(self):
        return f"<AIUsageLog {self.provider}/{self.model} {self.purpose} ok={self.success}>"
