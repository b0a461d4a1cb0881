"""Response normalization for remote pipeline calls.

The remote pipeline's response shape is not fixed across agent versions:
the digest may arrive as a structured object, as a JSON document serialized
into the message string, as plain prose, or not at all. This module turns
any of those shapes into a plain dict and then into a DigestRecord.

Extraction Chain (first match wins):
    1. STRUCTURED: response.result is an object -> use it
    2. JSON MESSAGE: response.message parses as a JSON object
       -> use its "result" object, or the whole parsed object
    3. PLAIN MESSAGE: response.message is non-blank text -> {"text": message}
    4. ENVELOPE: any renderable text in the response envelope,
       or the "No response received" placeholder -> {"text": ...}

Everything here is a pure function over plain JSON values and never raises:
every branch produces a usable dict, and every field read from it falls back
to a safe default when missing or of the wrong type.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from models.digest import AgentStatuses, DeliveryAgentStatus, DigestRecord, SearchAgentStatus

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response received"

# Keys checked, in order, when looking for renderable text in an envelope
_TEXT_KEYS = ("text", "message", "content", "summary", "result", "response", "output")
_MAX_TEXT_DEPTH = 4

# Agent response keys as reported by the pipeline, per sub-agent
_SEARCH_AGENT_KEYS = ("arxiv_agent", "search_agent")
_DELIVERY_AGENT_KEYS = ("email_agent", "delivery_agent")


# =============================================================================
# Coercion helpers
# =============================================================================


def as_str(value: Any, default: str = "") -> str:
    """Return value if it is a string, else default."""
    return value if isinstance(value, str) else default


def as_int(value: Any, default: int = 0) -> int:
    """Return value as a non-negative int, else default.

    Booleans are rejected even though they are ints in Python. Floats are
    accepted only when they hold a whole number.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value >= 0 else default
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return default


def as_bool_true(value: Any) -> bool:
    """True only for an explicit boolean True."""
    return value is True


def as_str_list(value: Any) -> list[str] | None:
    """Return the string items of a list, or None if value is not a list."""
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str)]


def as_dict(value: Any) -> dict[str, Any]:
    """Return value if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


# =============================================================================
# Text extraction
# =============================================================================


def extract_text(value: Any, _depth: int = 0) -> str:
    """Find renderable text anywhere in a response envelope.

    Strings are returned as-is. Dicts are searched through a fixed list of
    text-bearing keys, lists are joined line by line. Search depth is bounded.

    Args:
        value: Any JSON value

    Returns:
        The first non-blank text found, or an empty string
    """
    if _depth > _MAX_TEXT_DEPTH:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in _TEXT_KEYS:
            if key in value:
                text = extract_text(value[key], _depth + 1)
                if text:
                    return text
        return ""
    if isinstance(value, list):
        parts = [extract_text(item, _depth + 1) for item in value]
        return "\n".join(part for part in parts if part)
    return ""


# =============================================================================
# Extraction chain
# =============================================================================


def _structured_result(response: dict[str, Any]) -> dict[str, Any] | None:
    result = response.get("result")
    if isinstance(result, dict) and result:
        return result
    return None


def _message(response: dict[str, Any]) -> str:
    message = response.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return ""


def _json_message(response: dict[str, Any]) -> dict[str, Any] | None:
    message = _message(response)
    if not message:
        return None
    try:
        parsed = json.loads(message)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        # Bare JSON scalars and arrays carry no fields, treat as prose
        return None
    result = parsed.get("result")
    if isinstance(result, dict) and result:
        return result
    return parsed or None


def _plain_message(response: dict[str, Any]) -> dict[str, Any] | None:
    message = _message(response)
    if not message:
        return None
    return {"text": message}


def _envelope_text(response: dict[str, Any]) -> dict[str, Any]:
    return {"text": extract_text(response) or NO_RESPONSE_TEXT}


_EXTRACTORS: tuple[Callable[[dict[str, Any]], dict[str, Any] | None], ...] = (
    _structured_result,
    _json_message,
    _plain_message,
)


def normalize_response(payload: Any) -> dict[str, Any]:
    """Locate the canonical result object in an agent call envelope.

    Args:
        payload: The full ``{success, response, error}`` envelope

    Returns:
        A dict that always holds either structured digest fields or a
        ``text`` entry. Never raises.
    """
    response = as_dict(as_dict(payload).get("response"))
    for extractor in _EXTRACTORS:
        found = extractor(response)
        if found is not None:
            logger.debug("Response normalized | extractor=%s", extractor.__name__)
            return found
    logger.debug("Response normalized | extractor=_envelope_text")
    return _envelope_text(response)


# =============================================================================
# Record mapping
# =============================================================================


def _agent_statuses(raw: Any) -> AgentStatuses:
    agents = as_dict(raw)

    search = None
    for key in _SEARCH_AGENT_KEYS:
        if isinstance(agents.get(key), dict):
            entry = agents[key]
            search = SearchAgentStatus(
                status=as_str(entry.get("status")),
                papers_found=as_int(entry.get("papers_found")),
            )
            break

    delivery = None
    for key in _DELIVERY_AGENT_KEYS:
        if isinstance(agents.get(key), dict):
            entry = agents[key]
            delivery = DeliveryAgentStatus(
                status=as_str(entry.get("status")),
                email_delivered=as_bool_true(entry.get("email_delivered")),
            )
            break

    return AgentStatuses(search=search, delivery=delivery)


def _timestamp(value: Any, received_at: datetime) -> str:
    """Remote ISO-8601 timestamp if it parses, else the time of receipt."""
    text = as_str(value).strip()
    if text:
        try:
            datetime.fromisoformat(text)
            return text
        except ValueError:
            logger.debug("Ignoring unparseable processing_timestamp | value=%s", text[:40])
    return received_at.isoformat()


def to_digest_record(
    data: Any,
    requested_topics: list[str],
    recipient: str = "",
    now: datetime | None = None,
    id_factory: Callable[[], str] | None = None,
) -> DigestRecord:
    """Map a normalized result object onto a DigestRecord.

    Every field falls back to a safe default when missing or mistyped.

    Args:
        data: Output of normalize_response()
        requested_topics: Topics the run was requested for
        recipient: Recipient address the run was requested with
        now: Time of receipt (defaults to current UTC time)
        id_factory: Identifier generator used when the response carries
            no id (defaults to a random hex id)

    Returns:
        DigestRecord for the run
    """
    fields = as_dict(data)
    received_at = now or datetime.now(timezone.utc)
    new_id = as_str(fields.get("id")).strip() or (id_factory() if id_factory else uuid.uuid4().hex)

    topics = as_str_list(fields.get("topics_processed"))
    if topics is None:
        topics = list(requested_topics)

    summary = as_str(fields.get("digest_summary")) or as_str(fields.get("text"))

    return DigestRecord(
        id=new_id,
        timestamp=_timestamp(fields.get("processing_timestamp"), received_at),
        topics=topics,
        paper_count=as_int(fields.get("total_papers_found")),
        summary_text=summary,
        delivered=as_bool_true(fields.get("email_sent")),
        recipient=as_str(fields.get("recipient_email")) or recipient or "",
        workflow_status=as_str(fields.get("workflow_status")) or "completed",
        agent_statuses=_agent_statuses(fields.get("agent_responses")),
    )
