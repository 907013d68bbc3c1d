"""Server-Sent Events framing."""
import json
from typing import Any, Dict

DONE_EVENT = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # stop reverse proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"
