"""Engine event log entries keyed by bar index"""
import json
from typing import Dict, Any, Optional, List
from datetime import datetime, UTC

RESERVED_FIELDS = ('timestamp', 'bar', 'event_type')


def log_engine_event(
    event_type: str,
    payload: Dict[str, Any],
    logger: Optional[List[Dict]] = None,
    timestamp: Optional[datetime] = None,
    bar: Optional[int] = None,
    echo: bool = True
) -> Dict[str, Any]:
    """
    Record one replay event.

    Every entry carries `timestamp`, `bar` and `event_type` ahead of the
    payload fields. `bar` is the index into the replayed series; run-level
    events (run_start, run_end) have no bar and store None, so log_events.jsonl
    can be filtered or joined against trades.csv by bar without key checks.

    Args:
        event_type: "run_start", "fill", "signal_rejected", "strategy_error", ...
        payload: Event fields; may not reuse the reserved field names
        logger: Optional list to append to (the engine's event_log)
        timestamp: Bar timestamp for per-bar events; wall clock when omitted
        bar: Bar index the event happened on
        echo: Print the entry as an [ENGINE_LOG] line

    Returns:
        The entry dict
    """
    clashes = [key for key in RESERVED_FIELDS if key in payload]
    if clashes:
        raise ValueError(f"{event_type}: payload may not set {clashes}")

    if timestamp is None:
        timestamp = datetime.now(UTC)

    log_entry = {
        'timestamp': timestamp.isoformat() if hasattr(timestamp, 'isoformat') else str(timestamp),
        'bar': None if bar is None else int(bar),
        'event_type': event_type,
        **payload
    }

    if logger is not None:
        logger.append(log_entry)

    if echo:
        where = 'run' if bar is None else f"bar {bar}"
        print(f"[ENGINE_LOG] {where} {event_type}: {json.dumps(payload, default=str)}")

    return log_entry
