"""Enumerations shared across the package."""
import enum


class Sign(enum.Enum):
    """Sign of an expression, as determined under a set of assumptions."""
    Positive = 0

    Negative = 1

    Zero = 2

    Unknown = 3


class DiagnosticKind(enum.Enum):
    """Categories of recoverable problems reported by the translation pipeline."""
    # Radical combination declined because some base has an undetermined sign.
    UnknownSigns = 0

    # The requested function has no stored definition.
    NoDefinitionFound = 1

    # Writing generated code to disk failed.
    WriteFailure = 2

    # A call has no target-language mapping and was emitted verbatim.
    UnmappedFunction = 3

    # Two parameters normalize to the same identifier.
    AmbiguousSignature = 4

    # Two distinct symbols normalize to the same identifier.
    IdentifierCollision = 5

    # Radical combination declined because of an unpaired negative base.
    OddNegativeRadicand = 6

    # A host object (eg. the result of a python callable) has no expression tree equivalent.
    ConversionFailure = 7


class PythonGeneratorTarget(enum.Enum):
    """Numeric API targeted by generated python code."""
    NumPy = 0

    JAX = 1


class RadicalStyle(enum.Enum):
    """How `x ** (1/2)` is rendered."""
    # np.sqrt(x)
    SqrtCall = 0

    # x**(1/2)
    FractionalPower = 1


class NegativeBasePolicy(enum.Enum):
    """
    How the radical combination treats bases that are known to be negative.

    PairBases counts negative bases and applies `(-1) ** (count // 2)`. DeclineOdd does the same,
    but refuses to rewrite when the count is odd. ExponentWeighted counts each negative base once
    per unit of its exponent numerator, which keeps the rewrite exact for `x ** (3/2)` style powers.
    """
    PairBases = 0

    DeclineOdd = 1

    ExponentWeighted = 2
