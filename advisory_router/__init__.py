"""
Geo-aware intent routing for agricultural advisory tool servers.
"""

from advisory_router.app import AdvisoryService, get_service
from advisory_router.agent.orchestrator import Orchestrator
from advisory_router.domain.registry import ServerRegistry
from advisory_router.infra.tool_caller import ToolInvoker

__version__ = "0.1.0"
__all__ = [
    "AdvisoryService",
    "Orchestrator",
    "ServerRegistry",
    "ToolInvoker",
    "get_service",
]
