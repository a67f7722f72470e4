"""Intent classification: decides which backend should answer a question."""

import logging

from knowledge_router.llm_client import CompletionGateway
from knowledge_router.models import IntentLabel

logger = logging.getLogger(__name__)

CLASSIFICATION_PROMPT = """You are a task classification agent. Your only job is to determine the correct tool for a user's question based on these definitions:

- Use DATABASE_QUERY for questions about specific business metrics, numbers, counts, or lists of data that would be in a database (e.g., sales, customers, revenue, dates, inventory, orders).
- Use KNOWLEDGE_BASE_QUERY for questions about procedures, policies, explanations, "how-to" information, or general knowledge found in documents.
- Use HYBRID_QUERY when the question clearly requires BOTH database records AND document knowledge to fully answer (e.g., questions asking for data AND explanations).

User question: "{question}"

Based on the user's question, which is the correct tool? Respond with ONLY the tool name (DATABASE_QUERY, KNOWLEDGE_BASE_QUERY, or HYBRID_QUERY). Do not include any other text."""

# Order matters: the first label found in the response wins.
_LABEL_PRIORITY = (IntentLabel.HYBRID, IntentLabel.STRUCTURED, IntentLabel.UNSTRUCTURED)


def parse_intent(response: str) -> IntentLabel:
    """Map a raw model reply onto an IntentLabel by ordered substring search."""
    for label in _LABEL_PRIORITY:
        if label.value in response:
            return label
    return IntentLabel.UNRECOGNIZED


class IntentClassifier:
    """One completion call per question; no retries."""

    def __init__(self, gateway: CompletionGateway, max_tokens: int = 20, temperature: float = 0.0):
        self.gateway = gateway
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def classify(self, question: str) -> IntentLabel:
        response = await self.gateway.complete(
            CLASSIFICATION_PROMPT.format(question=question),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        label = parse_intent(response or "")
        if label is IntentLabel.UNRECOGNIZED:
            logger.warning("Could not classify %r; model returned %r", question, response)
        return label
