"""
Shared test fixtures and configuration.

Environment strategy:
- All tests use .env.test (isolated, no real infra needed): in-memory
  history, keyword classifier, no retrieval backend
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.test"

load_dotenv(ENV_FILE, override=True)

from switchboard.domain.conversation_store import InMemoryConversationStore  # noqa: E402
from switchboard.domain.domain_value import ConversationHistory, ConversationMessage  # noqa: E402
from switchboard.domain.orchestrator import Orchestrator, OrchestratorConfig  # noqa: E402

from .fakes import EchoAgent, FixedClassifier  # noqa: E402


@pytest.fixture
def store() -> InMemoryConversationStore:
    """Fresh in-memory conversation store."""
    return InMemoryConversationStore()


@pytest.fixture
def agent_a() -> EchoAgent:
    return EchoAgent("A")


@pytest.fixture
def agent_b() -> EchoAgent:
    return EchoAgent("B")


@pytest.fixture
def orchestrator(store: InMemoryConversationStore, agent_a: EchoAgent, agent_b: EchoAgent) -> Orchestrator:
    """Orchestrator with A (default) and B registered; the classifier always picks B."""
    return Orchestrator(
        classifier=FixedClassifier("B", confidence=1.0),
        store=store,
        config=OrchestratorConfig(),
        agents=[agent_a, agent_b],
    )


@pytest.fixture
def two_turn_history() -> ConversationHistory:
    """A completed user/assistant exchange followed by a second one."""
    return ConversationHistory().extend(
        [
            ConversationMessage.user_text("hi"),
            ConversationMessage.assistant_text("hello"),
            ConversationMessage.user_text("how are you?"),
            ConversationMessage.assistant_text("fine"),
        ]
    )
