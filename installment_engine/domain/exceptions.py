"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Malformed or out-of-policy input, rejected before any state change"""

    pass


class InvalidScheduleInput(ValidationError):
    """Schedule cannot be generated for the given amount or count"""

    pass


class RequestNotFound(DomainException):
    pass


class OfferNotFound(DomainException):
    pass


class InstallmentNotFound(DomainException):
    pass


class InvalidStateForDecision(DomainException):
    """Operation is not legal in the request's (or offer's) current state"""

    pass


class RequestNotOpenForSuppliers(DomainException):
    """Request has not been forwarded to this supplier"""

    pass


class OfferAlreadyResolved(DomainException):
    """Offer is no longer waiting for the buyer"""

    pass


class DuplicateOffer(DomainException):
    """Supplier already submitted an offer for this request"""

    pass


class InstallmentAlreadyPaid(DomainException):
    pass


class PolicyViolation(DomainException):
    """Operation is disallowed by the current negotiation policy"""

    pass


class CannotCancelActiveContract(DomainException):
    pass


class ConcurrentModification(DomainException):
    """Another writer changed the aggregate first; nothing was applied"""

    pass


class NotificationDeliveryError(DomainException):
    """Notification dispatcher gave up after all retries"""

    pass
