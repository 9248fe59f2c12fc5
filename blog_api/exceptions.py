class BlogError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv["message"] = self.message
        return rv


class NotFoundError(BlogError):
    status_code = 404


class CategoryNotFoundError(NotFoundError):
    def __init__(self, message="Category not found", payload=None):
        super().__init__(message, payload=payload)


class ArticleNotFoundError(NotFoundError):
    def __init__(self, message="Article not found", payload=None):
        super().__init__(message, payload=payload)


class ConflictError(BlogError):
    status_code = 409


class ServiceError(BlogError):
    """Store failure; the cause is logged, only ``message`` reaches the client."""

    status_code = 500
