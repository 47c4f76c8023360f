"""Error taxonomy for the cellscript engine.

Errors fall into three families:

- ``CompileError``: the submitted script cannot become a Rule. Surfaced to the
  user; the previously installed Rule stays active.
- ``RuleFault`` (``RuleTimeout``, ``RuleError``, ``UnsupportedKind``): a single
  cell evaluation failed. Recovered locally by substituting the default Value
  and counted in the ``StepReport``.
- ``FatalError`` (``TagMismatch``, ``OutOfBounds``, ``StepperFaulted``): a broken
  invariant between collaborators. Aborts the generation and faults the Stepper.
"""

from typing import Optional


class CellscriptError(Exception):
    """Root of all engine errors."""


class CompileError(CellscriptError, ValueError):
    """Rule script failed to parse, validate or smoke-test."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class RuleFault(CellscriptError):
    """A single rule invocation failed."""

    kind = "fault"


class RuleTimeout(RuleFault):
    """Rule invocation exceeded its step or time budget."""

    kind = "timeout"


class RuleError(RuleFault):
    """Rule script raised while evaluating a cell."""

    kind = "error"


class UnsupportedKind(RuleFault):
    """Value could not be converted to or from a recognized kind."""

    kind = "unsupported"


class FatalError(CellscriptError):
    """Unrecoverable integration error; transitions the Stepper to Faulted."""


class TagMismatch(FatalError, TypeError):
    """Value kind differs from the kind a grid was established with."""


class OutOfBounds(FatalError, IndexError):
    """Coordinate lies outside the addressed grid shape."""


class StepperFaulted(FatalError):
    """Stepper is Faulted and must be reset before further use."""


class StepperStateError(CellscriptError, RuntimeError):
    """Operation requested in a state that does not permit it."""
