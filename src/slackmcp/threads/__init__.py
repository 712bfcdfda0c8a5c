"""Thread discovery and collection: engine, state machine and text helpers."""

from slackmcp.threads.engine import ThreadEngine, identify_anchors
from slackmcp.threads.machine import TERMINAL_STATES, TRANSITIONS, CollectionStateMachine
from slackmcp.threads.text import derive_preview, derive_title, strip_markup
from slackmcp.threads.timerange import parse_bound, parse_time_range

__all__ = [
    "TERMINAL_STATES",
    "TRANSITIONS",
    "CollectionStateMachine",
    "ThreadEngine",
    "derive_preview",
    "derive_title",
    "identify_anchors",
    "parse_bound",
    "parse_time_range",
    "strip_markup",
]
