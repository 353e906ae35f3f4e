from autopilot.schemas.performance import (
    CampaignMetrics,
    CampaignSyncResult,
    PerformanceSnapshot,
    SyncReport,
)
from autopilot.schemas.run import (
    DecodeResult,
    DiffResult,
    NormalizedResult,
    ProviderTask,
    RunRequest,
    RunResponse,
    RunResult,
    RunSummaries,
    StreamEvent,
    StreamEventKind,
)

__all__ = [
    "CampaignMetrics",
    "CampaignSyncResult",
    "PerformanceSnapshot",
    "SyncReport",
    "DecodeResult",
    "DiffResult",
    "NormalizedResult",
    "ProviderTask",
    "RunRequest",
    "RunResponse",
    "RunResult",
    "RunSummaries",
    "StreamEvent",
    "StreamEventKind",
]
