from __future__ import annotations


class PickupError(Exception):
    """Base class for pickup-domain failures."""

class NotAuthenticated(PickupError):
    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)

class NotAuthorized(PickupError):
    def __init__(self, message: str = "Not authorized for pickup at this time"):
        super().__init__(message)

class TokenExpired(PickupError):
    def __init__(self, message: str = "Token expired"):
        super().__init__(message)

class TokenAlreadyUsed(PickupError):
    def __init__(self, message: str = "Token already used"):
        super().__init__(message)

class InvalidTokenFormat(PickupError):
    def __init__(self, message: str = "Invalid token format"):
        super().__init__(message)

class StorageFailure(PickupError):
    """Persistence I/O error. Read paths treat it as empty, write paths log it."""

class InvalidStatusTransition(PickupError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move check-in from {current} to {requested}")
        self.current = current
        self.requested = requested
