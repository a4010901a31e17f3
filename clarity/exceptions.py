"""Error kinds raised by the clarity pipeline."""


class ClarityError(Exception):
    """Base class for pipeline errors."""


class DataInsufficiencyError(ClarityError, ValueError):
    """Too few observations to fit a correction, stratify, or build folds."""


class DegenerateInputError(ClarityError, ValueError):
    """Input for which a transform is undefined (zero reflectance, zero denominator)."""


class SchemaMismatchError(ClarityError, ValueError):
    """Feature matrix does not match the schema a model was trained on."""

    def __init__(self, expected, received):
        self.expected = list(expected)
        self.received = list(received)
        missing = [c for c in self.expected if c not in self.received]
        extra = [c for c in self.received if c not in self.expected]
        super().__init__(
            f"Feature schema mismatch: expected {len(self.expected)} columns "
            f"{self.expected}, got {len(self.received)} {self.received} "
            f"(missing={missing}, extra={extra})"
        )


class TrainingDivergenceError(ClarityError, RuntimeError):
    """A hyperparameter configuration failed numerically."""
