"""
Data model for endpoints, delivery attempts, results and event contexts.

Endpoint and context models are pydantic models so that rows coming from the
store and dicts coming from callers are validated at the boundary. Attempt
and result records are plain dataclasses produced by the engine itself.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class EndpointScope(str, Enum):
    GLOBAL = "global"
    USER = "user"


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class NotificationEndpoint(BaseModel):
    """A configured delivery destination (one channel, one config)."""
    id: int
    name: str = ""
    type: str
    enabled: bool = True
    is_global: bool = False
    events: List[str] = Field(default_factory=list)
    types: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def scope(self) -> EndpointScope:
        return EndpointScope.GLOBAL if self.is_global else EndpointScope.USER


@dataclass(frozen=True)
class DeliveryAttempt:
    """One network-call attempt for one (endpoint, event) pair."""
    endpoint_id: int
    endpoint_type: str
    event_type: str
    attempt_number: int
    status: DeliveryStatus
    duration_ms: int
    error_message: Optional[str] = None
    target_user_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    """Aggregate outcome of the retry loop for one endpoint."""
    status: DeliveryStatus
    attempts: int
    error: Optional[str] = None

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)


@dataclass
class DeliveryOptions:
    include_global_endpoints: bool = True
    target_user_ids: List[int] = field(default_factory=list)
    ignore_event_filters: bool = False


@dataclass
class FanoutResult:
    eligible: int = 0
    delivered: int = 0
    results: Dict[int, DeliveryResult] = field(default_factory=dict)


@dataclass(frozen=True)
class DeliveryTarget:
    """Identity of one delivery, used to label every persisted attempt."""
    endpoint_id: int
    endpoint_type: str
    event_type: str
    target_user_id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class SystemAlertContext(BaseModel):
    title: str
    service_name: Optional[str] = None
    service_type: Optional[str] = None
    latency_ms: Optional[float] = None
    threshold_ms: Optional[float] = None
    details: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def target_user_id(self) -> Optional[int]:
        return None

    def audit_metadata(self) -> Dict[str, Any]:
        audit = dict(self.metadata)
        if self.service_name:
            audit['serviceName'] = self.service_name
        if self.service_type:
            audit['serviceType'] = self.service_type
        return audit


class IssueContext(BaseModel):
    issue_id: str
    media_type: Literal['movie', 'tv']
    tmdb_id: int
    title: str
    category: str
    description: str = ""
    username: str
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    image_url: Optional[str] = None
    url: Optional[str] = None

    @property
    def target_user_id(self) -> Optional[int]:
        return self.user_id

    def audit_metadata(self) -> Dict[str, Any]:
        return {'issueId': self.issue_id, 'tmdbId': self.tmdb_id, 'mediaType': self.media_type}


class RequestContext(BaseModel):
    request_id: str
    request_type: Literal['movie', 'episode']
    tmdb_id: int
    title: str
    username: str
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    discord_user_id: Optional[str] = None
    image_url: Optional[str] = None
    rating: Optional[float] = None
    year: Optional[int] = None
    overview: Optional[str] = None
    sonarr_series_id: Optional[int] = None
    tvdb_id: Optional[int] = None

    @property
    def target_user_id(self) -> Optional[int]:
        return self.user_id

    def audit_metadata(self) -> Dict[str, Any]:
        return {'requestId': self.request_id, 'tmdbId': self.tmdb_id, 'requestType': self.request_type}


class RenderedMessage(BaseModel):
    """Every payload shape for one event, rendered once and shared by adapters."""
    app_name: str
    title: str
    subject: str
    summary: str
    embed: Dict[str, Any]
    webhook_payload: Dict[str, Any]
    url: Optional[str] = None
    discord_content: Optional[str] = None
    discord_user_id: Optional[str] = None
    recipient_email: Optional[str] = None
