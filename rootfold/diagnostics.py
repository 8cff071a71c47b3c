"""
Structured results. Recoverable problems are returned as `Diagnostic` records alongside the
output rather than raised, so one failing translation never aborts its siblings.
"""
import dataclasses
import typing as T

from . import ast
from .enumerations import DiagnosticKind


@dataclasses.dataclass(frozen=True)
class Diagnostic:
    """
    A recoverable problem.

    Attributes:
      kind: Category of the problem.
      message: Human readable description.
      payload: Kind-specific details, eg. the list of bases with unknown sign.
    """
    kind: DiagnosticKind
    message: str
    payload: T.Dict[str, T.Any] = dataclasses.field(default_factory=dict, compare=False)

    def __str__(self) -> str:
        return f'{self.kind.name}: {self.message}'


@dataclasses.dataclass(frozen=True)
class FunctionDefinition:
    """
    A function ready for emission.

    Attributes:
      name: Function name, as given by the host.
      parameters: Normalized parameter names, in order.
      body: Expression returned by the function.
    """
    name: str
    parameters: T.Tuple[str, ...]
    body: ast.Expression


@dataclasses.dataclass(frozen=True)
class CombineResult:
    """Output of radical combination: the rewritten tree and any diagnostics."""
    expression: ast.Expression
    diagnostics: T.Tuple[Diagnostic, ...] = tuple()

    @property
    def ok(self) -> bool:
        return len(self.diagnostics) == 0


@dataclasses.dataclass(frozen=True)
class EmitResult:
    """Generated code and any diagnostics."""
    code: str
    diagnostics: T.Tuple[Diagnostic, ...] = tuple()

    @property
    def ok(self) -> bool:
        return len(self.diagnostics) == 0


@dataclasses.dataclass(frozen=True)
class ExtractResult:
    """Output of signature extraction. `definition` is None whenever extraction failed."""
    definition: T.Optional[FunctionDefinition]
    diagnostics: T.Tuple[Diagnostic, ...] = tuple()

    @property
    def ok(self) -> bool:
        return self.definition is not None and len(self.diagnostics) == 0
