from jose import jwt, JWTError
from groupchat.core.config import settings

# Tokens are issued by the auth service with the same SECRET_KEY and ALGORITHM.
def verify_token(token: str) -> dict:
    """
    Returns the payload (carrying user_id) on success.
    Raises JWTError otherwise; callers turn it into a 401 / close code 1008.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise JWTError("Token is invalid or expired")
