"""Exception types raised by the Clinic GYM engines.

Starvation or an aborted clue selection is not an error: it is reported
through ``ClueSelectionResult.warnings``. Death is not an error either: it is
a state change visible on the patient and in the ``TreatmentOutcome``.
"""

from typing import Optional


class ClinicError(Exception):
    """Base class for all Clinic GYM errors."""


class InvalidStateError(ClinicError):
    """An operation was invoked in the wrong lifecycle stage."""


class DataIncompleteError(ClinicError):
    """A remedy batch cannot be scored because it holds no complete entry.

    Attributes:
        incomplete: ``{entry_index: [missing_field, ...]}`` for every
            partially filled entry in the batch.
    """

    def __init__(self, message: str, incomplete: Optional[dict[int, list[str]]] = None):
        super().__init__(message)
        self.incomplete = incomplete or {}
