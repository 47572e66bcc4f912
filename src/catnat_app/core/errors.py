"""Domain exceptions raised by services."""

from __future__ import annotations


class CatnatError(ValueError):
    """Base class for business-rule failures."""


class MalformedInputError(CatnatError):
    """Raised when an import file cannot be parsed at all."""


class UploadRejectedError(CatnatError):
    """Raised when an upload fails the extension or size gate."""


class NoActiveConfigError(CatnatError):
    """Raised when no pricing configuration covers the requested date."""

    def __init__(self, coverage_type: str, as_of: str):
        super().__init__(
            f'No active pricing configuration for "{coverage_type}" on {as_of}. '
            "Check that a rate table covers the requested period."
        )
        self.coverage_type = coverage_type
        self.as_of = as_of


class PolicyNotFoundError(CatnatError):
    """Raised when a policy id is unknown."""

    def __init__(self, policy_id: str):
        super().__init__(f"Policy not found: {policy_id}")
        self.policy_id = policy_id


class PolicyStateError(CatnatError):
    """Raised when a policy cannot move to the requested status."""


class ForbiddenError(CatnatError):
    """Raised when a role is not allowed to mutate import jobs."""


class CapacityError(CatnatError):
    """Raised when the session job limit is reached."""


class JobStateError(CatnatError):
    """Raised when a job cannot be changed in its current status."""
