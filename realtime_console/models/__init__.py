from .conversation import (
    ConversationItem,
    ItemDelta,
    ItemRole,
    ItemStatus,
    ItemType,
    ToolCall,
    TrackOffset,
)
from .session_state import (
    CaptureState,
    ConnectionState,
    PlaybackState,
    SessionConfig,
    TurnDetection,
)
from .tool_models import (
    OpenAITool,
    ToolDefinition,
    ToolInvocation,
    ToolParameter,
    ToolParameters,
    ToolResult,
)
