class CareerNetException(Exception):
    """Base exception for the application"""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(CareerNetException):
    """Malformed or missing input, self reference"""
    status_code = 400


class NotFoundError(CareerNetException):
    """Resource absent or already in a terminal state"""
    status_code = 404


class AuthorizationError(NotFoundError):
    """Actor is not a party to the resource; reported exactly like NotFoundError"""
    pass


class ConflictError(CareerNetException):
    """Duplicate request, duplicate edge or a lost materialization race"""
    status_code = 409


class TransientStoreError(CareerNetException):
    """Store connection or timeout failure"""
    status_code = 503

    def __init__(self, detail: str, retryable: bool = False):
        super().__init__(detail)
        self.retryable = retryable
