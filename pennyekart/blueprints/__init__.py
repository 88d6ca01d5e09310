from __future__ import annotations

from typing import Any, Dict, Tuple

from flask import jsonify, request, session


def is_admin() -> bool:
    return bool(session.get("is_admin"))


def forbidden() -> Tuple[Any, int]:
    return jsonify({"error": "Forbidden"}), 403


def json_payload() -> Dict[str, Any]:
    """JSON body, falling back to form fields for plain HTML posts."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def json_result(success: bool, message: str, body: Dict[str, Any] | None = None, status: int | None = None):
    response = {"success": success, "message": message}
    if body:
        response.update(body)
    if not success:
        response["error"] = message
    return jsonify(response), status or (200 if success else 400)
