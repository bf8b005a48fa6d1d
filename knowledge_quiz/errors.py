class QuizEngineError(Exception):
    """Base class for all engine errors."""
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {"error": self.__class__.__name__, "message": self.message}


class NotFoundError(QuizEngineError):
    """The requested resource does not exist."""
    status_code = 404


class ValidationError(QuizEngineError):
    """The input is malformed."""
    status_code = 400


class ForbiddenError(QuizEngineError):
    """The caller may not modify this resource."""
    status_code = 403


class ConflictError(QuizEngineError):
    """The resource is not in a state that allows this operation."""
    status_code = 409


class StorageError(QuizEngineError):
    """The backing store rejected the operation."""
    status_code = 503


class GenerationError(QuizEngineError):
    """Question generation failed."""
    status_code = 502
