# concisely/responses.py
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder


def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": jsonable_encoder(data)}


def error(message: str = "Error", err: Optional[Any] = None) -> Dict[str, Any]:
    return {"success": False, "message": message, "error": err}
