"""FastAPI route definitions for the SpecForge API.

One router factory per area: projects, chat, research, generation,
downloads, automation queries, health checks and the SSE event stream.
"""

from __future__ import annotations

from specforge.web.routes.automation import FollowUpResponse, create_automation_router
from specforge.web.routes.chat import ChatTurn, create_chat_router
from specforge.web.routes.downloads import DownloadRequest, create_downloads_router
from specforge.web.routes.events import (
    EventBroadcaster,
    SSEEvent,
    SSEEventType,
    create_events_router,
    get_broadcaster,
)
from specforge.web.routes.generation import (
    DocumentResponse,
    GenerateRequest,
    GenerationResponse,
    create_generation_router,
)
from specforge.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)
from specforge.web.routes.projects import (
    ProjectCreate,
    ProjectDetailResponse,
    ProjectResponse,
    create_projects_router,
)
from specforge.web.routes.research import (
    FeedbackCreate,
    PhaseOutcomeResponse,
    ResearchResponse,
    create_research_router,
)

__all__ = [
    # Automation
    "FollowUpResponse",
    "create_automation_router",
    # Chat
    "ChatTurn",
    "create_chat_router",
    # Downloads
    "DownloadRequest",
    "create_downloads_router",
    # Events / SSE
    "EventBroadcaster",
    "SSEEvent",
    "SSEEventType",
    "create_events_router",
    "get_broadcaster",
    # Generation
    "DocumentResponse",
    "GenerateRequest",
    "GenerationResponse",
    "create_generation_router",
    # Health
    "HealthResponse",
    "ReadinessResponse",
    "create_health_router",
    # Projects
    "ProjectCreate",
    "ProjectDetailResponse",
    "ProjectResponse",
    "create_projects_router",
    # Research
    "FeedbackCreate",
    "PhaseOutcomeResponse",
    "ResearchResponse",
    "create_research_router",
]
