class ServiceError(Exception):
    """
    Base for every error the API returns on purpose.
    The HTTP layer turns it into `{"error": message}` with `status_code`.
    """
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidRequest(ServiceError):
    status_code = 400
    default_message = "Invalid request body"


class NotFound(ServiceError):
    # missing / not owned / already completed 는 일부러 같은 응답
    status_code = 404
    default_message = "Test attempt not found or already completed"


class UpstreamFailure(ServiceError):
    status_code = 500
    default_message = "Failed to load or store exam data"


class InternalError(ServiceError):
    status_code = 500
