"""Cache key builders, namespaced by entity kind and id or user."""


def project_key(project_id: str) -> str:
    return f"project:{project_id}"


def projects_list_key(user_id: str) -> str:
    return f"projects:{user_id}"


def teams_list_key(user_id: str) -> str:
    return f"teams:{user_id}"


def unread_count_key(user_id: str) -> str:
    return f"unread:{user_id}"
