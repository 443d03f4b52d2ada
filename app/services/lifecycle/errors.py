# app/services/lifecycle/errors.py
"""
Error taxonomy for the listing lifecycle engine.

- AuthorizationError: caller is neither the scheduler nor an admin (401)
- StoreUnavailableError: the listing store could not be opened (500)
- PerEntityProcessingError: one listing failed; it is skipped, the run goes on
- BatchCommitError: a batch commit failed; the run stops, earlier commits stand
"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for lifecycle failures that map onto an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthorizationError(LifecycleError):
    """Missing or unrecognised bearer token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[str] = None):
        super().__init__(message, details)


class StoreUnavailableError(LifecycleError):
    """Session could not be created or the store did not answer."""

    status_code = 500


class PerEntityProcessingError(LifecycleError):
    """
    A single listing could not be processed.

    Recovered locally: logged and the listing is left out of the current
    pass. It stays eligible for the next run.
    """

    def __init__(self, listing_id: str, context: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Failed to process listing {listing_id} during {context}",
            details=str(cause) if cause else None,
        )
        self.listing_id = listing_id
        self.context = context
        self.cause = cause


class BatchCommitError(LifecycleError):
    """
    A batch commit failed.

    Batches committed before this one are not rolled back.
    """

    def __init__(self, batch_number: int, committed_batches: int, cause: Optional[BaseException] = None):
        super().__init__(
            f"Batch {batch_number} failed to commit after {committed_batches} committed batches",
            details=str(cause) if cause else None,
        )
        self.batch_number = batch_number
        self.committed_batches = committed_batches
        self.cause = cause


class ListingNotFoundError(LifecycleError):
    """No listing with the requested id."""

    status_code = 404


class InvalidTransitionError(LifecycleError):
    """The listing is not in a state the requested transition starts from."""

    status_code = 409
