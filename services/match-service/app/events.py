import json
import uuid
from datetime import datetime, timezone

from .config import SERVICE_NAME

# published by this service
MATCH_PROPOSED = "match.proposed"
MATCH_SEARCHING = "match.searching"
MATCH_ACCEPTED = "match.accepted"
MATCH_ATTEMPT_CLOSED = "match.attempt_closed"

# consumed from the requests service
REQUEST_CREATED = "scribe_request.created"
REQUEST_CANCELLED = "scribe_request.cancelled"


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "source": SERVICE_NAME,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False)


def parse_event(body: bytes) -> dict | None:
    """Message body -> event dict, or None if it is not a JSON object."""
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None
