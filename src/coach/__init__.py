from .chat import ChatReply, ChatService, create_chat_service
from .orchestrator import ConversationOrchestrator, TurnResult
from .repository import ResolutionRepository, ResolutionSet
from .store import StoreConflictError, StoreError, StoreUnavailableError, create_record_store
from .tools import ToolName, ToolRegistry, ToolResult

__all__ = [
    "ChatReply",
    "ChatService",
    "create_chat_service",
    "ConversationOrchestrator",
    "TurnResult",
    "ResolutionRepository",
    "ResolutionSet",
    "StoreError",
    "StoreConflictError",
    "StoreUnavailableError",
    "create_record_store",
    "ToolName",
    "ToolRegistry",
    "ToolResult",
]
