from slowapi import Limiter
from starlette.requests import Request


def get_client_key(request: Request) -> str:
    """Rate-limit key: the original client IP.

    Behind a reverse proxy the client address is the first entry of
    X-Forwarded-For. Direct connections fall back to request.client.host.
    The key is only used in memory and never logged.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=get_client_key)
