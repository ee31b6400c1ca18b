"""
AdminHub data model.

Wire-facing models use pydantic so that control-service payloads are
validated at the boundary; everything crossing a component boundary is a
value (model copy, tuple, dict copy), never a reference into owned state.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import ProtocolError
from shared.sse_client import StreamEvent


# ============================================================================
# ENUM DEFINITIONS
# ============================================================================

class ServiceStatus(str, enum.Enum):
    """Reachability of the deployer control service"""
    CHECKING = "Checking"
    ONLINE = "Online"
    OFFLINE = "Offline"
    ERROR = "Error"


class LiveStatus(str, enum.Enum):
    """Reachability of one application's public URL"""
    UNKNOWN = "Unknown"
    CHECKING = "Checking"
    LIVE = "Live"
    DEAD = "Dead"

    @classmethod
    def from_flag(cls, flag: Optional[bool]) -> "LiveStatus":
        if flag is None:
            return cls.UNKNOWN
        return cls.LIVE if flag else cls.DEAD


class MonitorMode(str, enum.Enum):
    """Where a monitor currently gets its data from"""
    IDLE = "idle"  # Constructed, or waiting for a credential
    STREAMING = "streaming"  # Push events from the SSE endpoint
    POLLING = "polling"  # Stream unavailable, fixed-interval one-shot requests
    STOPPED = "stopped"  # Torn down; terminal


class NotificationLevel(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


# ============================================================================
# CONTROL SERVICE MODELS
# ============================================================================

class ApplicationConfig(BaseModel):
    """Deployment metadata for one managed application (keyed by name)"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    git_url: Optional[str] = None
    branch: Optional[str] = None
    build_type: Optional[str] = None
    artifact_path: Optional[str] = None
    service_name: Optional[str] = None
    deploy_path: Optional[str] = None
    application_url: Optional[str] = None
    symlink: Optional[str] = None


class DeploymentResponse(BaseModel):
    """Result envelope returned by every lifecycle endpoint"""
    model_config = ConfigDict(extra="allow")

    applicationName: Optional[str] = None
    action: Optional[str] = None
    success: bool = False
    message: Optional[str] = None
    data: Any = None
    status: Optional[str] = None
    logs: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ServerHealthSummary(BaseModel):
    """Host resource snapshot; replaced wholesale on every update"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    cpuUsage: float = 0.0
    memoryUsage: float = 0.0
    diskUsage: float = 0.0
    loadAverage: float = 0.0
    totalMemory: Optional[str] = None
    usedMemory: Optional[str] = None
    uptime: Optional[str] = None
    usedDisk: Optional[str] = None
    totalDisk: Optional[str] = None


class RunningService(BaseModel):
    """OS-level service under the server's management"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    status: str
    description: Optional[str] = None


class Notification(BaseModel):
    """User-facing toast produced by the action dispatcher"""
    model_config = ConfigDict(frozen=True)

    level: NotificationLevel
    title: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# STREAM PAYLOADS
# ============================================================================

class HealthUpdate(BaseModel):
    """`health` event"""
    model_config = ConfigDict(extra="ignore")

    healthy: bool
    message: Optional[str] = None
    timestamp: Optional[int] = None


class AppStatusUpdate(BaseModel):
    """`appStatus` event"""
    model_config = ConfigDict(extra="ignore")

    appStatuses: Dict[str, Optional[bool]] = Field(default_factory=dict)
    timestamp: Optional[int] = None


class ServerHealthUpdate(ServerHealthSummary):
    """`serverHealth` event: resource summary plus running services"""
    runningServices: List[RunningService] = Field(default_factory=list)
    timestamp: Optional[int] = None

    def summary(self) -> ServerHealthSummary:
        return ServerHealthSummary.model_validate(
            self.model_dump(exclude={"runningServices", "timestamp"})
        )


EVENT_PAYLOADS = {
    "health": HealthUpdate,
    "appStatus": AppStatusUpdate,
    "serverHealth": ServerHealthUpdate,
}


def decode_stream_event(event: StreamEvent):
    """
    Turn a raw StreamEvent into its typed payload.

    Returns None for event types this hub does not consume.

    Raises:
        ProtocolError: If the payload does not match the event's schema
    """
    model = EVENT_PAYLOADS.get(event.type)
    if model is None:
        return None
    try:
        return model.model_validate(event.data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid '{event.type}' payload: {e.error_count()} error(s)") from e


def health_flag_to_status(healthy: Any) -> ServiceStatus:
    return ServiceStatus.ONLINE if healthy else ServiceStatus.OFFLINE


def is_recovery(previous: ServiceStatus, current: ServiceStatus) -> bool:
    """Offline -> Online is the only transition that warrants an application reload"""
    return previous == ServiceStatus.OFFLINE and current == ServiceStatus.ONLINE


# ============================================================================
# READ MODEL
# ============================================================================

class DashboardSnapshot(BaseModel):
    """Point-in-time copy of everything the presentation layer renders"""
    service_status: ServiceStatus
    health_mode: MonitorMode
    server_mode: MonitorMode
    applications_loading: bool
    server_loading: bool
    applications: List[ApplicationConfig]
    live_statuses: Dict[str, LiveStatus]
    server_health: Optional[ServerHealthSummary] = None
    running_services: List[RunningService] = Field(default_factory=list)
    selected_app: Optional[str] = None
    active_actions: List[str] = Field(default_factory=list)
    last_response: Optional[DeploymentResponse] = None
    logs_content: str = ""
    status_content: str = ""
