"""Error taxonomy for the run engine.

Validation and precondition errors are raised before a run row exists and
reach the caller directly. Provider and persistence errors raised after a run
has been created are converted into a failed run by the executor.
"""


class EngineError(Exception):
    """Base class for all run engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(EngineError):
    """Required run input is missing or malformed."""


class PreconditionError(EngineError):
    """Required configuration or credential is absent."""


class ProviderError(EngineError):
    """The automation provider failed or returned an unusable outcome."""


class ProviderTimeoutError(ProviderError):
    """The provider did not reach a terminal event before the deadline."""


class PersistenceError(EngineError):
    """A read or write against the run store did not succeed."""


class RunNotFoundError(PersistenceError):
    """No run exists with the requested id."""


class RunAlreadyFinalizedError(PersistenceError):
    """A finalize was attempted on a run that already left the running state."""
