"""
AI usage model.

Models:
    - AIUsageLog: token/cost tracking for every Completion Service call,
      successful or not
"""

from datetime import datetime, timezone

from memberdesk.models import db

# Token costs per 1M tokens (input/output)
TOKEN_COSTS = {
    "claude-3-5-haiku-20241022":   {"input": 1.00, "output": 5.00},
    "claude-3-5-sonnet-20241022":  {"input": 3.00, "output": 15.00},
    "claude-3-7-sonnet-20250219":  {"input": 3.00, "output": 15.00},
    "claude-sonnet-4-20250514":    {"input": 3.00, "output": 15.00},
    "claude-3-opus-20240229":      {"input": 15.00, "output": 75.00},
}


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Calculate USD cost for a given model + token counts."""
    costs = TOKEN_COSTS.get(model, {"input": 0.0, "output": 0.0})
    return (prompt_tokens * costs["input"] + completion_tokens * costs["output"]) / 1_000_000


class AIUsageLog(db.Model):
    """One row per LLM call, used for cost monitoring."""

    __tablename__ = "ai_usage_logs"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False, comment="anthropic / local")
    model = db.Column(db.String(80), nullable=False)
    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    total_tokens = db.Column(db.Integer, default=0)
    cost_usd = db.Column(db.Float, default=0.0)
    latency_ms = db.Column(db.Integer, default=0, comment="End-to-end latency in milliseconds")

    member_id = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    purpose = db.Column(db.String(100), default="", comment="e.g. generate:mail_client, refine")

    success = db.Column(db.Boolean, default=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.cost_usd or 0.0, 6),
            "latency_ms": self.latency_ms,
            "member_id": self.member_id,
            "purpose": self.purpose,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AIUsageLog {self.provider}/{self.model} {self.total_tokens}tok>"
