from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..core.clock import as_utc
from ..models.rfqs import RfqEvent

RFQ_PAYLOAD = "rfq_payload"


def latest_by_type(events: Iterable[RfqEvent], event_type: str) -> dict[str, Any]:
    """Payload of the newest event of ``event_type``, or an empty dict."""
    matching = [event for event in events if event.type == event_type]
    if not matching:
        return {}
    newest = max(matching, key=lambda event: (as_utc(event.timestamp), event.id or 0))
    return dict(newest.payload or {})
