"""
Exception taxonomy for attribute risk estimation.

Configuration problems are raised before any record is processed; the
remaining errors surface while a single record is being estimated and abort
the batch that contains it.
"""


class AttributeRiskError(Exception):
    """Base class for all errors raised by attrisk."""


class InvalidFamily(AttributeRiskError, ValueError):
    """Unsupported synthesis model family."""

    def __init__(self, family: str, supported=None):
        self.family = family
        self.supported = list(supported or [])
        message = f"Unknown variable type: {family!r}"
        if self.supported:
            message += f". Choose from: {self.supported}"
        super().__init__(message)


class MissingTrueValue(AttributeRiskError):
    """The confidential value is absent from a guess set after substitution."""

    def __init__(self, outcome: str, true_value):
        self.outcome = outcome
        self.true_value = true_value
        super().__init__(
            f"True value {true_value!r} for '{outcome}' is not among the guesses "
            f"even after median substitution"
        )


class InvalidConfiguration(AttributeRiskError, ValueError):
    """Inconsistent estimator configuration or synthesis step definition."""


class NumericDegeneracy(AttributeRiskError):
    """Every guess combination of a record has zero posterior-predictive mass."""
