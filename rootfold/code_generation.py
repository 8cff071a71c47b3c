"""
Utility functions to support code-generation.
"""
import collections
import dataclasses
import enum
import fractions
import logging
import pathlib
import re
import types
import typing as T

from . import ast, identifiers
from .assumptions import AnyAssumptions
from .definitions import HostDefinition, create_host_definition, extract_definition
from .diagnostics import Diagnostic, EmitResult, FunctionDefinition
from .enumerations import DiagnosticKind, NegativeBasePolicy, PythonGeneratorTarget, RadicalStyle
from .radicals import combine_sqrt
from .sympy_conversion import from_sympy

logger = logging.getLogger(__name__)


class Precedence(enum.IntEnum):
    """Binding strength of python operators, loosest first."""
    Add = 1

    Multiply = 2

    # Unary minus binds tighter than `*` but looser than `**` on its right: -x**2 == -(x**2)
    Negate = 3

    Power = 4

    Atom = 5


# Host function name -> attribute of the numeric module.
_FUNCTION_NAMES = {
    'Sin': 'sin',
    'Cos': 'cos',
    'Tan': 'tan',
    'ArcSin': 'arcsin',
    'ArcCos': 'arccos',
    'ArcTan': 'arctan',
    'ArcTan2': 'arctan2',
    'Sinh': 'sinh',
    'Cosh': 'cosh',
    'Tanh': 'tanh',
    'ArcSinh': 'arcsinh',
    'ArcCosh': 'arccosh',
    'ArcTanh': 'arctanh',
    'Log': 'log',
    'Exp': 'exp',
    'Abs': 'abs',
    'Sign': 'sign',
    'Floor': 'floor',
    'Ceiling': 'ceil',
    'Round': 'round',
    'Sqrt': 'sqrt',
}


@dataclasses.dataclass(frozen=True)
class GeneratorConfig:
    """
    Immutable tables that drive :class:`PythonGenerator`.

    Attributes:
      function_map: Host function name -> python callable expression, eg. `'Sin' -> 'np.sin'`.
      constant_map: Host constant name -> python expression, eg. `'Pi' -> 'np.pi'`.
      sqrt_function: Callable used for square roots when `radical_style` is `SqrtCall`.
      radical_style: Whether `x ** (1/2)` is emitted as a call or as a fractional power.
      array_constructor: Callable wrapping list literals, eg. `np.array`.
      import_statement: Line that makes the numeric module available to generated code.
      reserved_names: Identifiers used by generated code itself, eg. the module alias `np`. A
        symbol normalizing to one of these would shadow it.
    """
    function_map: T.Mapping[str, str]
    constant_map: T.Mapping[str, str]
    sqrt_function: str
    radical_style: RadicalStyle
    array_constructor: str
    import_statement: str
    reserved_names: T.FrozenSet[str] = frozenset()

    @staticmethod
    def for_target(target: PythonGeneratorTarget = PythonGeneratorTarget.NumPy,
                   radical_style: RadicalStyle = RadicalStyle.SqrtCall) -> 'GeneratorConfig':
        """
        Build the default tables for a python API.

        If the target is ``NumPy``, generated code expects ``numpy`` imported as ``np``. If the
        target is ``JAX``, it expects ``jax.numpy`` imported as ``jnp``.
        """
        if target == PythonGeneratorTarget.NumPy:
            alias, import_statement = 'np', 'import numpy as np'
        elif target == PythonGeneratorTarget.JAX:
            alias, import_statement = 'jnp', 'import jax.numpy as jnp'
        else:
            raise NotImplementedError(f'Unsupported target: {target}')
        return GeneratorConfig(
            function_map=types.MappingProxyType(
                {host: f'{alias}.{name}' for host, name in _FUNCTION_NAMES.items()}),
            constant_map=types.MappingProxyType({
                ast.PI_NAME: f'{alias}.pi',
                ast.EULER_NAME: f'{alias}.e',
                ast.IMAGINARY_UNIT_NAME: '1j',
            }),
            sqrt_function=f'{alias}.sqrt',
            radical_style=radical_style,
            array_constructor=f'{alias}.array',
            import_statement=import_statement,
            reserved_names=frozenset({alias}))

    def replace(self, **changes: T.Any) -> 'GeneratorConfig':
        """Copy of this config with some fields replaced."""
        return dataclasses.replace(self, **changes)


class BaseGenerator:
    """
    Dispatches each expression node to a `format_<node type>` method, eg. `format_pow` for
    `ast.Pow`. Inherit and implement those methods to target a different language or API.
    """

    def __init__(self) -> None:
        self._type_to_method: T.Dict[T.Type, T.Callable[[T.Any], str]] = dict()

    def get_formatter(self, node_type: T.Type) -> T.Callable[[T.Any], str]:
        if node_type not in self._type_to_method:
            snake_name = re.sub(r'(?<!^)(?=[A-Z])', '_', node_type.__name__).lower()
            method_name = f'format_{snake_name}'
            if not hasattr(self, method_name):
                raise KeyError(f"Code generator is missing formatting method: {method_name}")
            self._type_to_method[node_type] = getattr(self, method_name)
        return self._type_to_method[node_type]

    def format(self, node: ast.Expression) -> str:
        if not isinstance(node, ast.ExpressionTypes):
            raise TypeError(f'Cannot format object of type `{type(node)}`.')
        return self.get_formatter(type(node))(node)


# noinspection PyMethodMayBeStatic
class PythonGenerator(BaseGenerator):
    """
    Emits python source code for an expression tree.

    Rendering is structural: operands are parenthesized only where python operator precedence
    requires it. Products containing powers with negative exponents are rendered as divisions,
    and negative terms of sums as subtractions.

    Example:
      >>> x, y = ast.symbols('x y')
      >>> PythonGenerator().emit(ast.add(ast.call('Sin', x), ast.Negate(ast.pow(y, 2)))).code
      'np.sin(x) - y**2'
    """

    def __init__(self, config: T.Optional[GeneratorConfig] = None, indent: int = 4) -> None:
        super().__init__()
        assert indent > 0, f'indent = {indent}'
        self._config = config or GeneratorConfig.for_target()
        self._indent: str = ' ' * indent

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    # Precedence:

    def precedence(self, node: ast.Expression) -> Precedence:
        """The precedence of the outermost operator in the rendering of `node`."""
        if isinstance(node, ast.Number):
            if isinstance(node.value, fractions.Fraction) and node.value.denominator != 1:
                return Precedence.Multiply
            return Precedence.Negate if node.is_negative() else Precedence.Atom
        elif isinstance(node, ast.Add):
            if len(node.terms) == 1:
                return self.precedence(node.terms[0])
            return Precedence.Add
        elif isinstance(node, ast.Mul):
            negative, numerator, denominator = self._split_product(node.factors)
            if negative or denominator or len(numerator) > 1:
                return Precedence.Multiply
            return self.precedence(numerator[0]) if numerator else Precedence.Atom
        elif isinstance(node, ast.Pow):
            if self._is_negative_number(node.exponent):
                return Precedence.Multiply
            if node.exponent == ast.HALF and self._config.radical_style == RadicalStyle.SqrtCall:
                return Precedence.Atom
            return Precedence.Power
        elif isinstance(node, ast.Negate):
            return Precedence.Negate
        return Precedence.Atom

    def _has_leading_minus(self, node: ast.Expression) -> bool:
        if isinstance(node, ast.Negate):
            return True
        elif isinstance(node, ast.Number):
            return node.is_negative()
        elif isinstance(node, ast.Mul):
            return self._split_product(node.factors)[0]
        elif isinstance(node, ast.Add):
            return self._has_leading_minus(node.terms[0])
        return False

    def _wrap(self, node: ast.Expression, parenthesize: bool) -> str:
        text = self.format(node)
        return f'({text})' if parenthesize else text

    def _format_factor(self, node: ast.Expression) -> str:
        """Format a factor that follows a `*` or `/`."""
        return self._wrap(node, self.precedence(node) < Precedence.Multiply or
                          self._has_leading_minus(node))

    @staticmethod
    def _is_negative_number(node: ast.Expression) -> bool:
        return isinstance(node, ast.Number) and node.is_negative()

    # Products:

    def _split_product(
        self, factors: T.Sequence[ast.Expression]
    ) -> T.Tuple[bool, T.List[ast.Expression], T.List[ast.Expression]]:
        """
        Split factors into (overall sign is negative, numerator factors, denominator factors).
        Nested products are spliced in. Numeric coefficients contribute their sign, numerator and
        denominator separately; powers with negative numeric exponents move to the denominator.
        """
        negative = False
        numerator: T.List[ast.Expression] = []
        denominator: T.List[ast.Expression] = []
        for factor in factors:
            if isinstance(factor, ast.Mul):
                inner_negative, inner_num, inner_den = self._split_product(factor.factors)
                negative ^= inner_negative
                numerator.extend(inner_num)
                denominator.extend(inner_den)
            elif isinstance(factor, ast.Negate):
                negative = not negative
                numerator.append(factor.arg)
            elif isinstance(factor, ast.Number):
                value = factor.value
                if value < 0:
                    negative = not negative
                    value = -value
                if isinstance(value, fractions.Fraction):
                    if value.numerator != 1:
                        numerator.append(ast.Number(value.numerator))
                    if value.denominator != 1:
                        denominator.append(ast.Number(value.denominator))
                elif value != 1:
                    numerator.append(ast.Number(value))
            elif isinstance(factor, ast.Pow) and self._is_negative_number(factor.exponent):
                positive_exponent = ast.number(-factor.exponent.value)
                if positive_exponent == ast.Number(1):
                    denominator.append(factor.base)
                else:
                    denominator.append(ast.Pow(factor.base, positive_exponent))
            else:
                numerator.append(factor)
        return negative, numerator, denominator

    def _join_product(self, numerator: T.Sequence[ast.Expression],
                      denominator: T.Sequence[ast.Expression]) -> str:
        if numerator:
            first = self._wrap(numerator[0], self.precedence(numerator[0]) < Precedence.Multiply)
            text = '*'.join([first] + [self._format_factor(x) for x in numerator[1:]])
        else:
            text = '1'
        if not denominator:
            return text
        if len(denominator) == 1:
            (single,) = denominator
            return f'{text}/' + self._wrap(single, self.precedence(single) <= Precedence.Negate)
        return f'{text}/(' + '*'.join(self._format_factor(x) for x in denominator) + ')'

    # Node formatters:

    def format_number(self, num: ast.Number) -> str:
        value = num.value
        if isinstance(value, fractions.Fraction):
            if value.denominator == 1:
                return str(value.numerator)
            return f'{value.numerator}/{value.denominator}'
        elif isinstance(value, float):
            return repr(value)
        return str(value)

    def format_symbol(self, sym: ast.Symbol) -> str:
        constant = self._config.constant_map.get(sym.name, None)
        if constant is not None:
            return constant
        return identifiers.normalize(sym.name)

    def format_add(self, add: ast.Add) -> str:
        result = self.format(add.terms[0])
        for term in add.terms[1:]:
            if isinstance(term, ast.Negate):
                result += ' - ' + self._wrap(term.arg, self.precedence(term.arg) <= Precedence.Add)
            elif self._is_negative_number(term):
                result += ' - ' + self.format(ast.number(-term.value))
            elif isinstance(term, ast.Mul) and self._has_leading_minus(term):
                _, numerator, denominator = self._split_product(term.factors)
                result += ' - ' + self._join_product(numerator, denominator)
            else:
                result += ' + ' + self.format(term)
        return result

    def format_mul(self, mul: ast.Mul) -> str:
        negative, numerator, denominator = self._split_product(mul.factors)
        text = self._join_product(numerator, denominator)
        return f'-{text}' if negative else text

    def format_pow(self, power: ast.Pow) -> str:
        if self._is_negative_number(power.exponent):
            return self.format_mul(ast.Mul((power,)))
        if power.exponent == ast.HALF and self._config.radical_style == RadicalStyle.SqrtCall:
            return f'{self._config.sqrt_function}({self.format(power.base)})'
        # `**` is right associative, so a power base needs parentheses but a power exponent
        # does not.
        base = self._wrap(power.base, self.precedence(power.base) <= Precedence.Power)
        exponent = self._wrap(power.exponent, self.precedence(power.exponent) < Precedence.Power)
        return f'{base}**{exponent}'

    def format_negate(self, neg: ast.Negate) -> str:
        return '-' + self._wrap(neg.arg, self.precedence(neg.arg) <= Precedence.Negate)

    def format_call(self, call: ast.Call) -> str:
        """Unmapped functions are emitted verbatim."""
        name = self._config.function_map.get(call.function, call.function)
        return f'{name}(' + ', '.join(self.format(x) for x in call.args) + ')'

    def format_list_literal(self, lst: ast.ListLiteral) -> str:
        elements = ', '.join(self.format(x) for x in lst.elements)
        return f'{self._config.array_constructor}([{elements}])'

    # Entry points:

    def check(self, expr: ast.Expression) -> T.List[Diagnostic]:
        """
        Find the problems `emit` reports for `expr`: calls without a mapping, distinct symbols
        that normalize to the same identifier, and symbols that shadow a reserved name.
        """
        diagnostics: T.List[Diagnostic] = []
        unmapped: T.List[str] = []
        for call in ast.iter_calls(expr):
            if call.function not in self._config.function_map and call.function not in unmapped:
                unmapped.append(call.function)
        for name in unmapped:
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.UnmappedFunction,
                    message=f'No python mapping for function `{name}`, emitted verbatim.',
                    payload=dict(function=name)))

        raw_names = [
            s.name for s in ast.iter_symbols(expr) if s.name not in self._config.constant_map
        ]
        for identifier, sources in identifiers.find_collisions(raw_names).items():
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.IdentifierCollision,
                    message=f'Symbols {sources} all normalize to `{identifier}`.',
                    payload=dict(identifier=identifier, sources=sources)))
        diagnostics.extend(self._reserved_name_diagnostics(raw_names))
        return diagnostics

    def _reserved_name_diagnostics(self, raw_names: T.Iterable[str]) -> T.List[Diagnostic]:
        """Names that would shadow an identifier the generated code relies on, eg. `np`."""
        sources: T.Dict[str, T.Set[str]] = collections.defaultdict(set)
        for raw in raw_names:
            identifier = identifiers.normalize(raw)
            if identifier in self._config.reserved_names:
                sources[identifier].add(raw)
        return [
            Diagnostic(
                kind=DiagnosticKind.IdentifierCollision,
                message=f'Symbols {sorted(raws)} normalize to `{identifier}`, which is reserved by '
                'the generated code.',
                payload=dict(identifier=identifier, sources=sorted(raws)))
            for identifier, raws in sources.items()
        ]

    def emit(self, expr: ast.Expression) -> EmitResult:
        """Generate python code for a single expression."""
        return EmitResult(code=self.format(expr), diagnostics=tuple(self.check(expr)))

    def emit_function(self, definition: FunctionDefinition) -> EmitResult:
        """
        Generate a python function that returns the body of `definition`:

        .. code-block:: python

          def name(x, y):
              return <body>
        """
        name = identifiers.normalize(definition.name)
        code = (f'def {name}({", ".join(definition.parameters)}):\n' +
                f'{self._indent}return {self.format(definition.body)}')
        diagnostics = self.check(definition.body)
        # Parameters and the function name shadow reserved names even when the body never
        # mentions them.
        reported = {d.payload['identifier'] for d in diagnostics if 'identifier' in d.payload}
        for diagnostic in self._reserved_name_diagnostics((definition.name,) +
                                                          tuple(definition.parameters)):
            if diagnostic.payload['identifier'] not in reported:
                diagnostics.append(diagnostic)
        return EmitResult(code=code, diagnostics=tuple(diagnostics))

    def emit_module(self, definitions: T.Iterable[FunctionDefinition]) -> EmitResult:
        """Generate a module: the import statement followed by every function."""
        results = [self.emit_function(d) for d in definitions]
        code = '\n\n\n'.join([self._config.import_statement] + [r.code for r in results])
        return EmitResult(code=code, diagnostics=tuple(d for r in results for d in r.diagnostics))


def mkdir_and_write_file(code: str, path: T.Union[str, pathlib.Path], append: bool = False) -> None:
    """
    Write ``code`` to the specified path. Create intermediate directories as required.

    Args:
      code: String containing file contents.
      path: Path to the destination file.
      append: Append to the file instead of overwriting it.
    """
    if isinstance(path, str):
        path = pathlib.Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True)
    with open(path, 'ab' if append else 'wb') as handle:
        # Encode to UTF8 and write binary so we get \n and not \r\n
        handle.write(code.encode('utf-8'))
        handle.flush()


def write_output(code: str, path: T.Union[str, pathlib.Path], append: bool = False,
                 separator: str = '\n') -> T.Optional[Diagnostic]:
    """
    Write generated code to `path`. When appending, `separator` follows the new content.

    Returns:
      None on success, or a `WriteFailure` diagnostic.
    """
    try:
        mkdir_and_write_file(code + separator if append else code, path=path, append=append)
    except OSError as e:
        return Diagnostic(
            kind=DiagnosticKind.WriteFailure,
            message=f'Could not write to file {path}: {e}',
            payload=dict(path=str(path), error=e))
    return None


def _log_diagnostics(diagnostics: T.Iterable[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        logger.warning('%s', diagnostic)


def _to_expression(expr: T.Any) -> ast.Expression:
    if isinstance(expr, ast.ExpressionTypes):
        return expr
    return from_sympy(expr)


def _finish(result: EmitResult, path: T.Union[str, pathlib.Path], append: bool,
            separator: str) -> EmitResult:
    diagnostics = list(result.diagnostics)
    if path:
        failure = write_output(result.code, path=path, append=append, separator=separator)
        if failure is not None:
            diagnostics.append(failure)
    _log_diagnostics(diagnostics)
    return EmitResult(code=result.code, diagnostics=tuple(diagnostics))


def to_python_string(expr: T.Any,
                     path: T.Union[str, pathlib.Path] = '',
                     append: bool = False,
                     generator: T.Optional[PythonGenerator] = None) -> EmitResult:
    """
    Convert a single expression to python code.

    Args:
      expr: An expression tree, or a sympy expression (converted with `from_sympy`).
      path: If non-empty, the code is also written to this file.
      append: Append to `path` (followed by a newline) instead of overwriting it.
      generator: Generator to use. Defaults to a NumPy :class:`PythonGenerator`.

    Returns:
      The generated code, with any diagnostics (including a `WriteFailure`).
    """
    generator = generator or PythonGenerator()
    result = generator.emit(_to_expression(expr))
    return _finish(result, path=path, append=append, separator='\n')


FunctionLike = T.Union[HostDefinition, FunctionDefinition, T.Callable[..., T.Any]]


def _prepare_function(
    function: FunctionLike, radicals: T.Optional[AnyAssumptions], policy: NegativeBasePolicy
) -> T.Tuple[T.Optional[FunctionDefinition], T.List[Diagnostic]]:
    diagnostics: T.List[Diagnostic] = []
    if isinstance(function, FunctionDefinition):
        definition = function
    else:
        if not isinstance(function, HostDefinition):
            name = getattr(function, '__name__', repr(function))
            try:
                function = create_host_definition(function)
            except TypeError as e:
                return None, [
                    Diagnostic(
                        kind=DiagnosticKind.ConversionFailure,
                        message=f'Could not convert {name}: {e}',
                        payload=dict(name=name, error=e))
                ]
        extracted = extract_definition(function)
        diagnostics.extend(extracted.diagnostics)
        definition = extracted.definition
        if definition is None:
            return None, diagnostics

    if radicals is not None:
        combined = combine_sqrt(definition.body, assumptions=radicals, policy=policy)
        diagnostics.extend(combined.diagnostics)
        definition = dataclasses.replace(definition, body=combined.expression)
    return definition, diagnostics


def to_python(function: FunctionLike,
              path: T.Union[str, pathlib.Path] = '',
              append: bool = False,
              generator: T.Optional[PythonGenerator] = None,
              radicals: T.Optional[AnyAssumptions] = None,
              policy: NegativeBasePolicy = NegativeBasePolicy.PairBases) -> EmitResult:
    """
    Convert a function definition to a python function.

    Args:
      function: Stored host definition, an extracted `FunctionDefinition`, or a python callable
        that builds a sympy expression from its arguments (see `create_host_definition`).
      path: If non-empty, the code is also written to this file.
      append: Append to `path` (followed by a blank line) instead of overwriting it.
      generator: Generator to use. Defaults to a NumPy :class:`PythonGenerator`.
      radicals: If not None, the body is passed through `combine_sqrt` with these assumptions
        first. Pass `NO_ASSUMPTIONS` for the syntactic rewrite.
      policy: Treatment of negative bases by `combine_sqrt`. Ignored when `radicals` is None.

    Returns:
      The generated code and diagnostics. When no definition could be extracted (or a callable
      could not be converted) the code is empty and nothing is written.
    """
    generator = generator or PythonGenerator()
    definition, diagnostics = _prepare_function(function, radicals=radicals, policy=policy)
    if definition is None:
        _log_diagnostics(diagnostics)
        return EmitResult(code='', diagnostics=tuple(diagnostics))
    result = generator.emit_function(definition)
    result = EmitResult(code=result.code, diagnostics=tuple(diagnostics) + result.diagnostics)
    return _finish(result, path=path, append=append, separator='\n\n')


def to_python_module(functions: T.Iterable[FunctionLike],
                     path: T.Union[str, pathlib.Path] = '',
                     append: bool = False,
                     generator: T.Optional[PythonGenerator] = None,
                     radicals: T.Optional[AnyAssumptions] = None,
                     policy: NegativeBasePolicy = NegativeBasePolicy.PairBases) -> EmitResult:
    """
    Convert several functions into one python module. A function that fails to convert or
    extract is reported and skipped; the others are still generated.

    Arguments are as for :func:`to_python`.
    """
    generator = generator or PythonGenerator()
    definitions: T.List[FunctionDefinition] = []
    diagnostics: T.List[Diagnostic] = []
    for function in functions:
        definition, function_diagnostics = _prepare_function(
            function, radicals=radicals, policy=policy)
        diagnostics.extend(function_diagnostics)
        if definition is not None:
            definitions.append(definition)
    result = generator.emit_module(definitions)
    result = EmitResult(code=result.code, diagnostics=tuple(diagnostics) + result.diagnostics)
    return _finish(result, path=path, append=append, separator='\n\n')
