"""Token, latency and cost telemetry for knowledge retrieval calls."""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# USD per 1M tokens
MODEL_PRICING = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o":      {"input": 2.50, "output": 10.00},
}


def estimate_tokens(text: str | None) -> int:
    """Rough token count: about four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


@dataclass
class CostRecord:
    model: str
    operation: str = ""         # "knowledge_query"
    query: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> Optional[float]:
        pricing = MODEL_PRICING.get(self.model)
        if not pricing:
            return None
        return (
            self.input_tokens  / 1_000_000 * pricing["input"] +
            self.output_tokens / 1_000_000 * pricing["output"]
        )

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at.isoformat(),
            "model": self.model,
            "operation": self.operation,
            "query": self.query,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.cost_usd, 6) if self.cost_usd is not None else None,
            "latency_ms": self.latency_ms,
        }

    def __str__(self) -> str:
        cost    = f"${self.cost_usd:.6f}" if self.cost_usd is not None else "N/A"
        latency = f"{self.latency_ms}ms" if self.latency_ms is not None else "N/A"
        return (
            f"input={self.input_tokens} tok  "
            f"output={self.output_tokens} tok  "
            f"total={self.total_tokens} tok  "
            f"cost={cost}  "
            f"latency={latency}"
        )


class QueryTelemetry:
    """Appends CostRecords to a JSON-lines file."""

    def __init__(self, path: Path = Path("outputs/query_metrics.jsonl")):
        self.path = Path(path)

    def record(self, cost: CostRecord) -> None:
        """Best-effort write. Never raises."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(cost.to_dict()) + "\n")
            logger.info("Tracked knowledge query: %s", cost)
        except OSError as e:
            logger.error("Failed to record query telemetry: %s", e)
