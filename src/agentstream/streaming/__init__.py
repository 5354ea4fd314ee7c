from .accumulator import ThrottledAccumulator
from .decoder import SSEDecoder, decode_stream
from .events import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageStartEvent,
    StreamEvent,
    SwitchingToBackgroundEvent,
    ToolExecuteLocallyEvent,
    parse_event,
)
from .monitor import StallMonitor, StallReport

__all__ = [
    "CompleteEvent",
    "ContentEvent",
    "ErrorEvent",
    "MessageStartEvent",
    "SSEDecoder",
    "StallMonitor",
    "StallReport",
    "StreamEvent",
    "SwitchingToBackgroundEvent",
    "ThrottledAccumulator",
    "ToolExecuteLocallyEvent",
    "decode_stream",
    "parse_event",
]
