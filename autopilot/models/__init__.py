from autopilot.models.automation_run import AgentKind, AutomationRun, RunStatus, TriggerKind
from autopilot.models.base import Base
from autopilot.models.business import Business
from autopilot.models.campaign import Campaign, PerformanceStatus

__all__ = [
    "Base",
    "AgentKind",
    "AutomationRun",
    "RunStatus",
    "TriggerKind",
    "Business",
    "Campaign",
    "PerformanceStatus",
]
