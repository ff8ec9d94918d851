# Public addresses for the server and its static files.
# SERVER_URL comes from the environment / .env, see core/config.py

from groupchat.core.config import settings


def get_server_url() -> str:
    """Full server URL without trailing slash"""
    return settings.SERVER_URL.rstrip("/")


def get_static_url(path: str) -> str:
    """
    Full URL of a static file
    :param path: relative path, e.g. '/static/group_images/xxx.jpg'
    """
    if path.startswith("http"):
        return path
    return f"{get_server_url()}{path}"
