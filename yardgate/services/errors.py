# yardgate/services/errors.py
"""Exceptions raised by the scan processor services."""


class ScanProcessingError(Exception):
    """Base class for scan processor failures."""

    # Set by the scan processor when the failing unit of work belongs to a truck
    truck_id = None


class SeverityConfigError(ScanProcessingError):
    """The severity tier table is malformed, incomplete or overlapping. Fatal for the run."""


class SeverityNotFoundError(ScanProcessingError):
    """No severity tier covers a computed missing cost. Fatal for that truck's unit of work."""

    def __init__(self, total_cost):
        super().__init__(f"No severity tier covers missing cost {total_cost}")
        self.total_cost = total_cost


class ConcurrencyConflictError(ScanProcessingError):
    """A unit of work kept conflicting with concurrent writers after all retries."""


class InvalidCaseTransition(ScanProcessingError):
    """A missing-equipment case was asked to make a transition it does not allow."""

    def __init__(self, status, event):
        super().__init__(f"Case in status {status} cannot handle {event}")
        self.status = status
        self.event = event


class CaseNotFoundError(ScanProcessingError):
    """An operator action named a missing-equipment case that does not exist."""

    def __init__(self, case_id):
        super().__init__(f"Missing-equipment case {case_id} not found")
        self.case_id = case_id
