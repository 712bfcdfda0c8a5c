"""Domain types, models, and errors for thread discovery and collection."""

from slackmcp.domain.errors import (
    CollectionFailedError,
    DuplicateTemplateError,
    FatalError,
    InvalidParameterError,
    InvalidTimeRangeError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitedError,
    RemoteServiceError,
    SlackMcpError,
    UnavailableError,
)
from slackmcp.domain.models import (
    ChannelRecord,
    ChannelThreadsResult,
    CollectedThread,
    CollectionResult,
    CollectionStats,
    IdentifierRecord,
    MessageRecord,
    PrincipalRecord,
    ThreadDetails,
    ThreadFilters,
    ThreadParticipant,
    ThreadReplies,
    ThreadSearchResult,
    ThreadStats,
    ThreadSummary,
    TimeRange,
    ToolResponse,
    normalize_name,
)
from slackmcp.domain.types import (
    CollectionEvent,
    CollectionState,
    ErrorCode,
    IdentifierKind,
    MatchType,
    ParticipantRole,
    RefreshPolicy,
    ThreadSortKey,
    ThreadStatus,
    Timestamp,
    format_timestamp,
    parse_kind,
    parse_timestamp,
)

__all__ = [
    "ChannelRecord",
    "ChannelThreadsResult",
    "CollectedThread",
    "CollectionEvent",
    "CollectionFailedError",
    "CollectionResult",
    "CollectionState",
    "CollectionStats",
    "DuplicateTemplateError",
    "ErrorCode",
    "FatalError",
    "IdentifierKind",
    "IdentifierRecord",
    "InvalidParameterError",
    "InvalidTimeRangeError",
    "InvalidTransitionError",
    "MatchType",
    "MessageRecord",
    "NotFoundError",
    "ParticipantRole",
    "PrincipalRecord",
    "RateLimitedError",
    "RefreshPolicy",
    "RemoteServiceError",
    "SlackMcpError",
    "ThreadDetails",
    "ThreadFilters",
    "ThreadParticipant",
    "ThreadReplies",
    "ThreadSearchResult",
    "ThreadSortKey",
    "ThreadStats",
    "ThreadStatus",
    "ThreadSummary",
    "TimeRange",
    "Timestamp",
    "ToolResponse",
    "UnavailableError",
    "format_timestamp",
    "normalize_name",
    "parse_kind",
    "parse_timestamp",
]
