def success(data=None, message=None):
    """Standard ``{"success": true, ...}`` envelope returned by every route."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def error(message):
    return {"success": False, "error": message}
