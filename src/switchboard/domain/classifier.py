"""Classifier - Selects Which Agent Handles a Request.

Every strategy implements the same contract:

    classify(input_text, history, agents) -> ClassifierResult

and the base class enforces the parts that must hold for all of them:
    - Empty text → InvalidInput; empty agent set → NoAgentsRegistered
    - Strategy failure (backend error, malformed output, unknown agent id) or
      indecision degrades to the first registered agent at confidence 0.0
    - No state is kept between calls, so one classifier serves all sessions

Strategies:
    - KeywordClassifier: Deterministic keyword rules per agent id
    - LLMClassifier: Fast model picks an agent from their descriptions
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import logfire
from pydantic import BaseModel, ConfigDict, Field

from .agent import Agent
from .domain_value import ConversationHistory
from .errors import InvalidInput, NoAgentsRegistered
from .prompt import PromptTemplate

if TYPE_CHECKING:
    from pydantic_ai import Agent as ModelAgent
    from pydantic_ai.models import Model
    from pydantic_ai.settings import ModelSettings

FALLBACK_CONFIDENCE = 0.0


class ClassifierResult(BaseModel):
    """Selected agent plus an advisory confidence in [0, 1].

    Confidence is not a probability: scores for different agents are never
    normalised against each other.
    """

    agent: Agent | None
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def agent_id(self) -> str | None:
        return self.agent.id if self.agent else None


class Classifier(ABC):
    """Base class; subclasses implement _select()."""

    async def classify(
        self,
        input_text: str,
        history: ConversationHistory,
        agents: Sequence[Agent],
    ) -> ClassifierResult:
        if not input_text or not input_text.strip():
            raise InvalidInput("Input text must not be empty")
        if not agents:
            raise NoAgentsRegistered()

        try:
            result = await self._select(input_text, history, agents)
        except Exception as e:
            logfire.warn("Classifier {classifier} failed, using fallback", classifier=type(self).__name__, error=str(e))
            return self.fallback(agents, reasoning=f"Classifier error: {type(e).__name__}")

        if result is None or result.agent is None:
            return self.fallback(agents, reasoning="No agent matched")
        if not any(result.agent is a for a in agents):
            return self.fallback(agents, reasoning=f"Selected agent {result.agent.id!r} is not registered")
        return result

    @staticmethod
    def fallback(agents: Sequence[Agent], reasoning: str | None = None) -> ClassifierResult:
        """First-registered agent at the lowest confidence."""
        return ClassifierResult(agent=agents[0], confidence=FALLBACK_CONFIDENCE, reasoning=reasoning)

    @abstractmethod
    async def _select(
        self,
        input_text: str,
        history: ConversationHistory,
        agents: Sequence[Agent],
    ) -> ClassifierResult | None:
        """Pick an agent, or return None when undecided."""


# ---------------------------------------------------------------------------
# Keyword rules
# ---------------------------------------------------------------------------


class KeywordClassifier(Classifier):
    """Routes on keyword/phrase hits per agent id.

    Confidence is the winner's share of all keyword hits: 1.0 when only one
    agent matched, lower when several agents compete. Ties go to the
    earlier-registered agent.

    Example:
        >>> classifier = KeywordClassifier({"billing": ["invoice", "refund"], "tech": ["error", "install"]})
        >>> result = await classifier.classify("I need a refund", history, agents)
        >>> result.agent_id, result.confidence
        ('billing', 1.0)
    """

    def __init__(self, rules: Mapping[str, Sequence[str]]) -> None:
        self.patterns = {
            agent_id: [re.compile(rf"\b{re.escape(kw.lower())}\b") for kw in keywords if kw.strip()]
            for agent_id, keywords in rules.items()
        }

    def score(self, input_text: str, agent_id: str) -> int:
        text = input_text.lower()
        return sum(1 for pattern in self.patterns.get(agent_id, ()) if pattern.search(text))

    async def _select(
        self,
        input_text: str,
        history: ConversationHistory,
        agents: Sequence[Agent],
    ) -> ClassifierResult | None:
        scores = [(self.score(input_text, agent.id), agent) for agent in agents]
        total = sum(hits for hits, _ in scores)
        if total == 0:
            return None

        best_hits, best = scores[0]
        for hits, agent in scores[1:]:
            if hits > best_hits:
                best_hits, best = hits, agent
        return ClassifierResult(agent=best, confidence=best_hits / total, reasoning=f"{best_hits} keyword hit(s)")


# ---------------------------------------------------------------------------
# Model-backed classification
# ---------------------------------------------------------------------------

CLASSIFIER_PROMPT = """
You are AgentMatcher, routing a user's request to the most suitable agent.

Available agents (id: description):
{{AGENT_DESCRIPTIONS}}

Recent conversation with the current agent:
{{HISTORY}}

Rules:
- Pick exactly one agent id from the list above
- Follow-ups ("tell me more", "and the second one?") stay with the agent the
  conversation is already with
- confidence is 0.0-1.0: high for clear intent, low for vague or ambiguous input
- Always explain your choice briefly in reasoning
""".strip()


class AgentDecision(BaseModel):
    """Structured output of the routing model."""

    selected_agent_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str | None = None

    model_config = ConfigDict(frozen=True)


class ClassifierDeps(BaseModel):
    """Per-call dependencies for the routing model (rendered system prompt)."""

    system_prompt: str

    model_config = ConfigDict(frozen=True)


def format_history(history: ConversationHistory, window: int) -> str:
    """Last ``window`` text turns as ``role: text`` lines."""
    lines = [f"{msg.role.value}: {msg.text}" for msg in history.messages if msg.text and not msg.tool_results]
    return "\n".join(lines[-window:]) if window > 0 and lines else "(no previous messages)"


class LLMClassifier(Classifier):
    """Fast-model routing via pydantic-ai structured output.

    The routing client is built lazily and cached; one instance serves all
    sessions because the per-call prompt travels in deps, not in the client.

    Args:
        model: pydantic-ai model name or Model instance (use a fast tier)
        prompt: Template with {{AGENT_DESCRIPTIONS}} and {{HISTORY}}
        history_window: How many previous text turns the router sees
    """

    def __init__(
        self,
        model: Model | str,
        *,
        prompt: PromptTemplate | None = None,
        history_window: int = 10,
        model_settings: ModelSettings | None = None,
    ) -> None:
        self.model = model
        self.prompt = prompt or PromptTemplate(template=CLASSIFIER_PROMPT)
        self.history_window = history_window
        self.model_settings = model_settings
        self._client_cache: ModelAgent[ClassifierDeps, AgentDecision] | None = None

    @property
    def client(self) -> ModelAgent[ClassifierDeps, AgentDecision]:
        """Lazy-initialized routing client (cached)."""
        if self._client_cache is None:
            from pydantic_ai import Agent as ModelAgent
            from pydantic_ai import RunContext

            agent: ModelAgent[ClassifierDeps, AgentDecision] = ModelAgent(
                self.model,
                deps_type=ClassifierDeps,
                output_type=AgentDecision,
            )

            @agent.system_prompt
            def routing_prompt(ctx: RunContext[ClassifierDeps]) -> str:
                return ctx.deps.system_prompt

            self._client_cache = agent
        return self._client_cache

    def render_prompt(self, history: ConversationHistory, agents: Sequence[Agent]) -> str:
        descriptions = [f"{agent.id}: {agent.description or agent.name}" for agent in agents]
        history_text = format_history(history, self.history_window)
        return self.prompt.render({"AGENT_DESCRIPTIONS": descriptions, "HISTORY": history_text})

    async def _select(
        self,
        input_text: str,
        history: ConversationHistory,
        agents: Sequence[Agent],
    ) -> ClassifierResult | None:
        deps = ClassifierDeps(system_prompt=self.render_prompt(history, agents))
        result = await self.client.run(user_prompt=input_text, deps=deps, model_settings=self.model_settings)
        decision: AgentDecision = result.output

        by_id = {agent.id: agent for agent in agents}
        selected = by_id.get(decision.selected_agent_id.strip())
        if selected is None:
            logfire.warn("Router picked unknown agent {agent_id}", agent_id=decision.selected_agent_id)
            return None
        return ClassifierResult(agent=selected, confidence=decision.confidence, reasoning=decision.reasoning)


__all__ = [
    "AgentDecision",
    "Classifier",
    "ClassifierDeps",
    "ClassifierResult",
    "FALLBACK_CONFIDENCE",
    "KeywordClassifier",
    "LLMClassifier",
    "format_history",
]
