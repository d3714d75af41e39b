"""Exception types shared across Huddle."""


class HuddleError(Exception):
    """Base class for Huddle errors"""


class InvalidRequestError(HuddleError):
    """Malformed caller input, rejected before any retrieval work"""

    def __init__(self, message: str, code: str = "invalid_request"):
        super().__init__(message)
        self.message = message
        self.code = code


class NotFoundError(HuddleError):
    """Requested record does not exist"""

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message)
        self.message = message
        self.code = code


class GenerationError(HuddleError):
    """
    The generative model failed after retrieval found usable context.

    Distinct from a fallback: we had something to say but could not phrase it,
    so the caller should retry rather than treat it as "no answer".
    """

    retryable = True

    def __init__(self, message: str, model: str = ""):
        super().__init__(message)
        self.message = message
        self.model = model
