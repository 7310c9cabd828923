"""
Purpose: Error taxonomy for matching and allocation requests.

ValidationError     missing / malformed input
NotFoundError       referenced record absent or not owned by the caller
AuthorizationError  acting hospital does not hold the required role
ConflictError       request already resolved, or a concurrent writer won
DataIntegrityError  recipient / donor vanished under an existing request
DownstreamError     storage or notification failure; the unit of work rolled back

Validation, authorization and not-found errors are raised before any write.
"""


class AllocationError(Exception):
    """Base class for every error the allocation core surfaces to callers."""


class ValidationError(AllocationError):
    pass


class NotFoundError(AllocationError):
    pass


class AuthorizationError(AllocationError):
    pass


class ConflictError(AllocationError):
    pass


class DataIntegrityError(AllocationError):
    pass


class DownstreamError(AllocationError):
    """Raised when the store or the notification sink fails inside a unit of work."""
