"""
Error taxonomy for the classification pipeline.
================================================
  InvalidInputError      — fatal to the current call (shape mismatch,
                           empty vocabulary, single-class fold, ...)
  NonConvergenceError    — solver ran out of iterations at one λ;
                           the path skips that λ and continues
  DegenerateMatrixError  — precision/recall undefined (strict mode only)
  TrainingCancelledError — caller aborted a training run between λ steps
"""


class ClassifierError(Exception):
    """Base class, carries a diagnostic context dict."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        base = super().__str__()
        if not self.context:
            return base
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{base} ({details})"


class InvalidInputError(ClassifierError, ValueError):
    """Malformed input — surfaced immediately, never recovered."""


class NonConvergenceError(ClassifierError, RuntimeError):
    """Coordinate descent exceeded its iteration budget at a given λ."""

    def __init__(self, message: str, lam: float, iterations: int, **context):
        super().__init__(message, lam=lam, iterations=iterations, **context)
        self.lam = lam
        self.iterations = iterations


class DegenerateMatrixError(ClassifierError, ArithmeticError):
    """A confusion-matrix ratio has a zero denominator."""


class TrainingCancelledError(ClassifierError):
    """Training aborted by the caller; partial results were discarded."""
