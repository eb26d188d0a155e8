from flask import request


def json_body() -> dict:
    """The request's JSON object, or an empty dict for a missing or non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
