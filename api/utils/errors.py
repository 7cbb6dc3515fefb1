from __future__ import annotations


class ServiceError(Exception):
    def __init__(self, message: str, status: int = 400, code: str = "bad_request"):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class Unauthenticated(ServiceError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401, "unauthenticated")
