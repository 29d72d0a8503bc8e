class TribeError(Exception):
    """Base for every per-operation failure raised by the core."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(TribeError):
    status_code = 404


class Unauthorized(TribeError):
    status_code = 403


class InvalidState(TribeError):
    status_code = 409


class ValidationError(TribeError):
    status_code = 400
