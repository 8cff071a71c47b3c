"""
Conversion between sympy expressions and the rootfold expression tree.

sympy plays the role of the symbolic host: definitions are built with it, and the sign oracle
delegates assumption queries to it.
"""
import fractions
import importlib
import typing as T

from . import ast


def _host_functions(sp: T.Any) -> T.Dict[str, T.Any]:
    """Host function name -> sympy function."""
    return {
        'Sin': sp.sin,
        'Cos': sp.cos,
        'Tan': sp.tan,
        'ArcSin': sp.asin,
        'ArcCos': sp.acos,
        'ArcTan': sp.atan,
        'ArcTan2': sp.atan2,
        'Sinh': sp.sinh,
        'Cosh': sp.cosh,
        'Tanh': sp.tanh,
        'ArcSinh': sp.asinh,
        'ArcCosh': sp.acosh,
        'ArcTanh': sp.atanh,
        'Log': sp.log,
        'Exp': sp.exp,
        'Abs': sp.Abs,
        'Sign': sp.sign,
        'Floor': sp.floor,
        'Ceiling': sp.ceiling,
    }


class Conversions:
    """
    Object used to recursively convert sympy expressions into rootfold expressions.
    """

    def __init__(self, sp: T.Any) -> None:
        """Initialize with the sympy module."""
        self.sp = sp
        self.value_map = {
            sp.pi: ast.Symbol(ast.PI_NAME),
            sp.E: ast.Symbol(ast.EULER_NAME),
            sp.I: ast.Symbol(ast.IMAGINARY_UNIT_NAME),
        }
        self.type_map = {func: name for name, func in _host_functions(sp).items()}
        self.custom_converters = {
            sp.Add: self.convert_add,
            sp.Mul: self.convert_mul,
            sp.Pow: self.convert_pow,
            sp.Symbol: self.convert_symbol,
            sp.Integer: lambda x: ast.Number(int(x)),
            sp.Float: lambda x: ast.Number(float(x)),
            sp.Rational: lambda x: ast.rational(int(x.p), int(x.q)),
            sp.Tuple: self.convert_sequence,
        }

        # Cache of already converted expressions, since expressions often include repeated terms.
        self.cache: T.Dict[T.Any, ast.Expression] = {}

    def convert_add(self, expr) -> ast.Expression:
        return ast.Add(tuple(self(x) for x in expr.args))

    def convert_mul(self, expr) -> ast.Expression:
        return ast.Mul(tuple(self(x) for x in expr.args))

    def convert_pow(self, expr) -> ast.Expression:
        base, exponent = expr.args
        return ast.Pow(self(base), self(exponent))

    @staticmethod
    def convert_symbol(expr) -> ast.Expression:
        """
        Convert a symbolic variable. Assumptions attached to the sympy symbol are not carried on
        the tree; use `assumptions.AssumptionSet.from_sympy` to collect them.
        """
        return ast.Symbol(expr.name)

    def convert_sequence(self, expr) -> ast.Expression:
        return ast.ListLiteral(tuple(self(x) for x in expr))

    def convert_applied_undef(self, expr) -> ast.Expression:
        """
        Convert an undefined function application, eg. `Function('f')(x)`. The name is kept
        verbatim; the code generator reports it as unmapped.
        """
        return ast.Call(expr.func.__name__, tuple(self(x) for x in expr.args))

    def convert_application(self, expr) -> ast.Expression:
        """
        Convert a sympy function with no host name, eg. `sec(x)`, `gamma(x)` or `Max(x, 1)`. The
        sympy class name is used verbatim, and the code generator reports it as unmapped.
        """
        return ast.Call(type(expr).__name__, tuple(self(x) for x in expr.args))

    def __call__(self, expr: T.Any) -> ast.Expression:
        """
        Convert sympy expression `expr`. We check the different maps stored on self for
        matching values or types, and use the corresponding method to convert.

        :param expr: A sympy expression.
        """
        if isinstance(expr, (list, tuple)):
            return ast.ListLiteral(tuple(self(x) for x in expr))
        if isinstance(expr, bool):
            raise TypeError(f'Boolean values cannot be converted: {expr}')
        if isinstance(expr, int):
            return ast.Number(expr)
        if isinstance(expr, float):
            return ast.Number(expr)
        if isinstance(expr, fractions.Fraction):
            return ast.number(expr)

        # Not all types are hashable (sympy matrix, for example) so cache only hashable things.
        if isinstance(expr, T.Hashable):
            cached_result = self.cache.get(expr)
            if cached_result is not None:
                return cached_result
            result = self._convert_expr(expr)
            self.cache[expr] = result
            return result
        else:
            return self._convert_expr(expr)

    def _convert_expr(self, expr: T.Any) -> ast.Expression:
        name = self.type_map.get(type(expr), None)
        if name is not None:
            return ast.Call(name, tuple(self(x) for x in expr.args))

        if isinstance(expr, T.Hashable):
            value = self.value_map.get(expr, None)
            if value is not None:
                return value

        func = self.custom_converters.get(type(expr), None)
        if func is not None:
            return func(expr)

        # Subclasses of the converted types (eg. sympy's singleton One, Half, NegativeOne).
        for sp_type, func in self.custom_converters.items():
            if isinstance(expr, sp_type):
                return func(expr)

        if isinstance(expr, self.sp.MatrixBase):
            return ast.ListLiteral(tuple(self(x) for x in expr))

        if isinstance(expr, self.sp.core.function.AppliedUndef):
            return self.convert_applied_undef(expr)

        if isinstance(expr, self.sp.core.function.Application):
            return self.convert_application(expr)

        raise TypeError(f"sympy expression of type `{type(expr)}` cannot be converted.")


def from_sympy(expr: T.Any, sp: T.Any = None) -> ast.Expression:
    """
    Convert sympy expressions to rootfold expressions. This method will recursively traverse
    the sympy expression tree, converting each encountered object to the equivalent node.

    Args:
      expr: A sympy expression.
      sp: The sympy module. If None, the package ``sympy`` will be imported.

    Returns:
      The equivalent expression tree.

    Raises:
      TypeError: When a sympy object has no equivalent node.
    """
    if sp is None:
        sp = importlib.import_module(name="sympy")
    return Conversions(sp=sp)(expr)


def to_sympy(expr: ast.Expression, sp: T.Any = None) -> T.Any:
    """
    Convert a rootfold expression to sympy. Symbols become plain (assumption free) sympy symbols
    with the same name, so they match symbols used when building an assumption set.

    Raises:
      TypeError: When `expr` is not an expression node.
    """
    if sp is None:
        sp = importlib.import_module(name="sympy")
    functions = _host_functions(sp)
    constants = {
        ast.PI_NAME: sp.pi,
        ast.EULER_NAME: sp.E,
        ast.IMAGINARY_UNIT_NAME: sp.I,
    }

    def convert(node: ast.Expression) -> T.Any:
        if isinstance(node, ast.Number):
            if isinstance(node.value, fractions.Fraction):
                return sp.Rational(node.value.numerator, node.value.denominator)
            elif isinstance(node.value, float):
                return sp.Float(node.value)
            return sp.Integer(node.value)
        elif isinstance(node, ast.Symbol):
            if node.name in constants:
                return constants[node.name]
            return sp.Symbol(node.name)
        elif isinstance(node, ast.Add):
            return sp.Add(*(convert(x) for x in node.terms))
        elif isinstance(node, ast.Mul):
            return sp.Mul(*(convert(x) for x in node.factors))
        elif isinstance(node, ast.Pow):
            return sp.Pow(convert(node.base), convert(node.exponent))
        elif isinstance(node, ast.Negate):
            return -convert(node.arg)
        elif isinstance(node, ast.Call):
            func = functions.get(node.function, None)
            if func is None:
                func = sp.Function(node.function)
            return func(*(convert(x) for x in node.args))
        elif isinstance(node, ast.ListLiteral):
            return sp.Tuple(*(convert(x) for x in node.elements))
        raise TypeError(f'Cannot convert object of type `{type(node)}` to sympy.')

    return convert(expr)
