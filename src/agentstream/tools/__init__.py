from .client import ACTION_ENDPOINTS, ToolServerClient, normalize_tool_server_url
from .models import (
    DesktopAction,
    DesktopTaskConfig,
    LocalExecutionStatus,
    PlanResult,
    PlanStep,
    RoundTrip,
    ToolCommand,
    ToolName,
    ToolResult,
)
from .plan import PlanOrchestrator
from .router import ToolDispatchRouter
from .session import AutomationSessionService

# desktop is imported on demand by the router

__all__ = [
    "ACTION_ENDPOINTS",
    "AutomationSessionService",
    "DesktopAction",
    "DesktopTaskConfig",
    "LocalExecutionStatus",
    "PlanOrchestrator",
    "PlanResult",
    "PlanStep",
    "RoundTrip",
    "ToolCommand",
    "ToolDispatchRouter",
    "ToolName",
    "ToolResult",
    "ToolServerClient",
    "normalize_tool_server_url",
]
