from typing import Any, Dict

from fastapi import Request


async def read_json(request: Request) -> Dict[str, Any]:
    """Request body as a dict; malformed or non-object bodies read as empty."""
    try:
        data = await request.json()
    except Exception:
        data = {}
    return data if isinstance(data, dict) else {}
