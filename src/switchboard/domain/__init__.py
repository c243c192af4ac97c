"""Domain Layer - Routing and Session Orchestration.

Key Components:
    - Orchestrator: classify → dispatch → resolve tools → commit, per request
    - Classifier: KeywordClassifier / LLMClassifier behind one contract
    - Agent: polymorphic responder (LLMAgent for pydantic-ai models)
    - ToolResolutionLoop: bounded tool-use re-invocation
    - ConversationStore: per-(user, session, agent) history, memory or Redis

Design Principles:
    - Immutable by Default: histories, messages, prompts and traces are frozen
    - Explicit Dependencies: history and context are passed on every call,
      no component holds a back-reference to the orchestrator
    - Typed Failures: every error derives from SwitchboardError
"""

from .agent import Agent, AgentOptions, AgentReply, AgentStream, RequestContext
from .agent_catalog import BUILTIN_TOOLS, AgentCatalog, AgentDefinition
from .classifier import (
    AgentDecision,
    Classifier,
    ClassifierResult,
    KeywordClassifier,
    LLMClassifier,
)
from .conversation_store import ConversationStore, InMemoryConversationStore, RedisConversationStore
from .domain_type import ParticipantRole, RequestStage, StageStatus
from .domain_value import (
    AgentId,
    ContentBlock,
    ConversationHistory,
    ConversationMessage,
    SessionId,
    SessionKey,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserId,
)
from .errors import (
    AgentInvocationFailed,
    AgentNotFound,
    DuplicateAgentId,
    InvalidInput,
    LowConfidenceSelection,
    NoAgentsRegistered,
    SwitchboardError,
    ToolResolutionExceeded,
)
from .llm_agent import LLMAgent
from .orchestrator import (
    KeyedLocks,
    Orchestrator,
    OrchestratorConfig,
    RouteMetadata,
    RouteResult,
    RouteStream,
)
from .prompt import PromptTemplate
from .retriever import QdrantRetriever, QdrantRetrieverConfig, Retriever
from .tool_loop import ToolLoopResult, ToolResolutionLoop
from .tools import ToolConfig, Toolbox, ToolSpec, calculator
from .trace import RequestTrace, StageRecord

__all__ = [
    "BUILTIN_TOOLS",
    "Agent",
    "AgentCatalog",
    "AgentDecision",
    "AgentDefinition",
    "AgentId",
    "AgentInvocationFailed",
    "AgentNotFound",
    "AgentOptions",
    "AgentReply",
    "AgentStream",
    "Classifier",
    "ClassifierResult",
    "ContentBlock",
    "ConversationHistory",
    "ConversationMessage",
    "ConversationStore",
    "DuplicateAgentId",
    "InMemoryConversationStore",
    "InvalidInput",
    "KeyedLocks",
    "KeywordClassifier",
    "LLMAgent",
    "LLMClassifier",
    "LowConfidenceSelection",
    "NoAgentsRegistered",
    "Orchestrator",
    "OrchestratorConfig",
    "ParticipantRole",
    "PromptTemplate",
    "QdrantRetriever",
    "QdrantRetrieverConfig",
    "RedisConversationStore",
    "RequestContext",
    "RequestStage",
    "RequestTrace",
    "Retriever",
    "RouteMetadata",
    "RouteResult",
    "RouteStream",
    "SessionId",
    "SessionKey",
    "StageRecord",
    "StageStatus",
    "SwitchboardError",
    "TextBlock",
    "ToolConfig",
    "ToolLoopResult",
    "ToolResolutionExceeded",
    "ToolResolutionLoop",
    "ToolResultBlock",
    "ToolSpec",
    "ToolUseBlock",
    "Toolbox",
    "UserId",
    "calculator",
]
