"""
Group chat error taxonomy.

Services raise these; the GraphQL layer maps them onto mutation payloads
or GraphQL errors using ``code``.
"""


class GroupChatError(Exception):
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GroupChatError):
    """Malformed or missing input."""
    code = "VALIDATION_ERROR"


class AuthorizationError(GroupChatError):
    """Caller lacks the required role or membership."""
    code = "FORBIDDEN"


class NotFoundError(GroupChatError):
    code = "NOT_FOUND"


class CapacityError(GroupChatError):
    """Member limit would be exceeded."""
    code = "CAPACITY_EXCEEDED"


class InvariantError(GroupChatError):
    """Operation would break a structural rule, e.g. removing the creator."""
    code = "INVARIANT_VIOLATION"


class MediaUploadError(GroupChatError):
    code = "MEDIA_UPLOAD_FAILED"
