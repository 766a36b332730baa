def group_tags(result, generator, request, public):
    """Group operations under one tag per API area."""
    patterns = [
        (lambda p: p.startswith("/api/v1/auth/"), "Authentication"),
        (lambda p: p.startswith("/api/v1/users/"), "Users"),
        (lambda p: p.endswith("/questions/"), "Trip Q&A"),
        (lambda p: p.startswith("/api/v1/trips/"), "Trips"),
        (lambda p: p.startswith("/api/v1/chats/messages/"), "Messages"),
        (lambda p: p.startswith("/api/v1/chats/"), "Chats"),
        (lambda p: p == "/api/v1/schema/", "Meta"),
    ]
    for path, operations in result.get("paths", {}).items():
        tag = next((name for pred, name in patterns if pred(path)), None)
        if tag is None:
            continue
        for op in operations.values():
            op["tags"] = [tag]
    return result
