from typing import Dict, Optional


class MarketplaceError(Exception):
    """Base error carrying the HTTP status class the caller should see."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None, **payload):
        self.message = message or self.default_message
        self.payload: Dict[str, object] = payload
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, object]:
        body: Dict[str, object] = {"message": self.message}
        body.update(self.payload)
        return body


class ValidationError(MarketplaceError):
    status_code = 400
    default_message = "Invalid data"


class BusinessRuleError(MarketplaceError):
    status_code = 400
    default_message = "This action is not allowed."


class AuthorizationError(MarketplaceError):
    status_code = 403
    default_message = "You need additional permissions to perform this action."


class NotFoundError(MarketplaceError):
    status_code = 404
    default_message = "Not found."


class ConflictError(MarketplaceError):
    status_code = 409
    default_message = "The resource was changed by another request."


class PersistenceError(MarketplaceError):
    status_code = 500
    default_message = "Failed to save changes."
