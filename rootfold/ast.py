"""
Expression tree consumed by the rewriter and the code generator.

Nodes are frozen dataclasses: they compare structurally, hash, and are never mutated. Rewrites
always build new trees.
"""
import dataclasses
import fractions
import typing as T

# Host names of the symbolic constants. The code generator maps these via its constant table.
PI_NAME = 'Pi'
EULER_NAME = 'E'
IMAGINARY_UNIT_NAME = 'I'


@dataclasses.dataclass(frozen=True)
class Number:
    """An exact integer or rational, or a floating point literal."""
    value: T.Union[int, fractions.Fraction, float]

    def is_negative(self) -> bool:
        return self.value < 0


@dataclasses.dataclass(frozen=True)
class Symbol:
    """
    A variable, as named by the host. The name may contain glyph tokens like `\\[Alpha]` or
    non-ASCII letters; these are normalized only when code is emitted.
    """
    name: str


@dataclasses.dataclass(frozen=True)
class Add:
    terms: T.Tuple['Expression', ...]

    def __post_init__(self) -> None:
        if len(self.terms) == 0:
            raise ValueError('Add requires at least one term.')


@dataclasses.dataclass(frozen=True)
class Mul:
    factors: T.Tuple['Expression', ...]

    def __post_init__(self) -> None:
        if len(self.factors) == 0:
            raise ValueError('Mul requires at least one factor.')


@dataclasses.dataclass(frozen=True)
class Pow:
    base: 'Expression'
    exponent: 'Expression'


@dataclasses.dataclass(frozen=True)
class Call:
    """Invocation of a host function, eg. `Call('Sin', (x,))`."""
    function: str
    args: T.Tuple['Expression', ...]


@dataclasses.dataclass(frozen=True)
class Negate:
    arg: 'Expression'


@dataclasses.dataclass(frozen=True)
class ListLiteral:
    """A sequence of values, emitted as an array construction."""
    elements: T.Tuple['Expression', ...]


Expression = T.Union[Number, Symbol, Add, Mul, Pow, Call, Negate, ListLiteral]

ExpressionTypes = (Number, Symbol, Add, Mul, Pow, Call, Negate, ListLiteral)

HALF = Number(fractions.Fraction(1, 2))


def number(value: T.Union[int, fractions.Fraction, float]) -> Number:
    """Create a number, demoting integral fractions to `int`."""
    if isinstance(value, fractions.Fraction) and value.denominator == 1:
        return Number(int(value.numerator))
    return Number(value)


def rational(n: int, d: int) -> Number:
    return number(fractions.Fraction(n, d))


def symbols(names: str) -> T.Union[Symbol, T.Tuple[Symbol, ...]]:
    """Create one symbol per whitespace-separated name."""
    result = tuple(Symbol(name) for name in names.split())
    return result[0] if len(result) == 1 else result


def add(*terms: Expression) -> Expression:
    """Build a sum, splicing in nested sums. A single term is returned as-is."""
    flat: T.List[Expression] = []
    for term in terms:
        flat.extend(term.terms if isinstance(term, Add) else (term,))
    return flat[0] if len(flat) == 1 else Add(tuple(flat))


def mul(*factors: Expression) -> Expression:
    """Build a product, splicing in nested products. A single factor is returned as-is."""
    flat: T.List[Expression] = []
    for factor in factors:
        flat.extend(factor.factors if isinstance(factor, Mul) else (factor,))
    return flat[0] if len(flat) == 1 else Mul(tuple(flat))


def pow(base: Expression, exponent: T.Union[Expression, int, fractions.Fraction]) -> Pow:
    if not isinstance(exponent, ExpressionTypes):
        exponent = number(exponent)
    return Pow(base, exponent)


def sqrt(arg: Expression) -> Pow:
    return Pow(arg, HALF)


def call(function: str, *args: Expression) -> Call:
    return Call(function, tuple(args))


def half_integer_numerator(expr: Expression) -> T.Optional[int]:
    """
    If `expr` is `Pow(base, n/2)` with integer (necessarily odd) `n`, return `n`. Otherwise None.
    """
    if not isinstance(expr, Pow) or not isinstance(expr.exponent, Number):
        return None
    value = expr.exponent.value
    if isinstance(value, fractions.Fraction) and value.denominator == 2:
        return value.numerator
    return None


def is_half_integer_power(expr: Expression) -> bool:
    return half_integer_numerator(expr) is not None


def children(expr: Expression) -> T.Tuple[Expression, ...]:
    """Direct sub-expressions of `expr`, in order."""
    if isinstance(expr, Add):
        return expr.terms
    elif isinstance(expr, Mul):
        return expr.factors
    elif isinstance(expr, Pow):
        return (expr.base, expr.exponent)
    elif isinstance(expr, Call):
        return expr.args
    elif isinstance(expr, Negate):
        return (expr.arg,)
    elif isinstance(expr, ListLiteral):
        return expr.elements
    return tuple()


def with_children(expr: Expression, new_children: T.Sequence[Expression]) -> Expression:
    """Rebuild `expr` with replaced children. Returns `expr` itself when nothing changed."""
    new_children = tuple(new_children)
    if new_children == children(expr):
        return expr
    if isinstance(expr, Add):
        return Add(new_children)
    elif isinstance(expr, Mul):
        return Mul(new_children)
    elif isinstance(expr, Pow):
        return Pow(*new_children)
    elif isinstance(expr, Call):
        return Call(expr.function, new_children)
    elif isinstance(expr, Negate):
        return Negate(*new_children)
    elif isinstance(expr, ListLiteral):
        return ListLiteral(new_children)
    raise TypeError(f'Leaf expression of type `{type(expr)}` has no children.')


def iter_symbols(expr: Expression) -> T.Iterator[Symbol]:
    """Yield every symbol in `expr`, depth first, left to right."""
    if isinstance(expr, Symbol):
        yield expr
        return
    for child in children(expr):
        yield from iter_symbols(child)


def iter_calls(expr: Expression) -> T.Iterator[Call]:
    if isinstance(expr, Call):
        yield expr
    for child in children(expr):
        yield from iter_calls(child)


def expression_tree_str(expr: Expression, indent: int = 2) -> str:
    """Render `expr` as an indented tree, one node per line."""
    lines: T.List[str] = []

    def visit(node: Expression, depth: int) -> None:
        prefix = ' ' * (indent * depth)
        if isinstance(node, Number):
            lines.append(f'{prefix}Number ({node.value})')
        elif isinstance(node, Symbol):
            lines.append(f'{prefix}Symbol ({node.name})')
        elif isinstance(node, Call):
            lines.append(f'{prefix}Call ({node.function})')
        else:
            lines.append(f'{prefix}{type(node).__name__}')
        for child in children(node):
            visit(child, depth + 1)

    visit(expr, 0)
    return '\n'.join(lines)
