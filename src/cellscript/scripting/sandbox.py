"""Restricted execution environment for rule scripts.

Rule scripts are a small subset of Python. The sandbox has four parts:

1. ``validate``: an AST pass that rejects imports, class definitions, exception
   handling, context managers, async code, scope escapes, any name or
   attribute starting with an underscore, and the frame/code/traceback
   attributes that lead back into the host interpreter.
2. ``guard_operators``: rewrites ``**``, ``*`` and ``<<`` into helper calls
   that refuse results larger than the script's budget allows.
3. ``make_namespace``: globals with a whitelist of pure builtins, ``math`` and a
   seeded ``random`` generator.
4. ``Budget``: a per-thread tracer that counts executed script lines and checks
   the wall clock, raising ``RuleTimeout`` once either limit is exceeded.
"""

import ast
import builtins
import copy
import logging
import math
import random
import sys
import time
from typing import Any, Callable, Dict, Optional

from ..errors import CompileError, RuleTimeout

logger = logging.getLogger(__name__)

# Filename given to compiled rule code; the tracer only counts frames from it
SCRIPT_FILENAME = "<rule>"

# Largest integer (in bits) an operator or pow() may produce
MAX_INT_BITS = 1 << 16

# Largest n accepted by math.factorial / comb / perm
MAX_COMBINATORIC_ARG = 5000

SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "divmod", "enumerate", "filter", "float",
    "int", "isinstance", "len", "list", "map", "max", "min",
    "reversed", "round", "sorted", "sum", "tuple", "zip",
    "True", "False", "None",
    "ArithmeticError", "IndexError", "KeyError", "TypeError", "ValueError",
    "ZeroDivisionError",
)

# Generator, coroutine, frame, code and traceback attributes
_INTROSPECTION_PREFIXES = ("gi_", "cr_", "ag_", "f_", "tb_", "co_")

_REJECTED_NODES = {
    ast.Import: "imports are not available in rule scripts",
    ast.ImportFrom: "imports are not available in rule scripts",
    ast.ClassDef: "class definitions are not available in rule scripts",
    ast.Global: "global declarations are not available in rule scripts",
    ast.Nonlocal: "nonlocal declarations are not available in rule scripts",
    ast.Try: "exception handling is not available in rule scripts",
    ast.With: "with statements are not available in rule scripts",
    ast.AsyncFunctionDef: "async functions are not available in rule scripts",
    ast.AsyncFor: "async loops are not available in rule scripts",
    ast.AsyncWith: "async with statements are not available in rule scripts",
    ast.Await: "await is not available in rule scripts",
}
if hasattr(ast, "TryStar"):
    _REJECTED_NODES[ast.TryStar] = "exception handling is not available in rule scripts"

# Operator node -> namespace name of its guarded helper
_GUARDED_OPS = {
    ast.Pow: "_guarded_pow",
    ast.Mult: "_guarded_mul",
    ast.LShift: "_guarded_lshift",
}


class _BudgetExceeded(BaseException):
    """Raised from inside the tracer.

    Derives from BaseException so that nothing the script could name catches it.
    """


def parse(source: str) -> ast.Module:
    """Parse and validate rule source.

    Raises:
        CompileError: On syntax errors or disallowed constructs
    """
    try:
        tree = ast.parse(source, filename=SCRIPT_FILENAME, mode="exec")
    except SyntaxError as e:
        raise CompileError(f"syntax error: {e.msg}", e.lineno) from e
    validate(tree)
    return tree


def _is_introspection_attr(name: str) -> bool:
    return name.startswith(_INTROSPECTION_PREFIXES)


def validate(tree: ast.AST) -> None:
    """Reject constructs that escape the sandbox.

    Raises:
        CompileError: Naming the first offending construct and its line
    """
    for node in ast.walk(tree):
        line = getattr(node, "lineno", None)
        for node_type, message in _REJECTED_NODES.items():
            if isinstance(node, node_type):
                raise CompileError(message, line)
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_") or _is_introspection_attr(node.attr):
                raise CompileError(f"access to attribute {node.attr!r} is not allowed", line)
        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise CompileError(f"name {node.id!r} is not allowed", line)
        if isinstance(node, (ast.FunctionDef, ast.Lambda)):
            names = [a.arg for a in node.args.args + node.args.kwonlyargs + node.args.posonlyargs]
            if isinstance(node, ast.FunctionDef):
                names.append(node.name)
            for name in names:
                if name.startswith("_"):
                    raise CompileError(f"name {name!r} is not allowed", line)


class _OperatorGuard(ast.NodeTransformer):
    """Replace ``a ** b``, ``a * b`` and ``a << b`` with guarded helper calls."""

    def _call(self, op, left, right, like):
        call = ast.Call(func=ast.Name(id=_GUARDED_OPS[type(op)], ctx=ast.Load()),
                        args=[left, right], keywords=[])
        return ast.copy_location(call, like)

    def visit_BinOp(self, node):
        self.generic_visit(node)
        if type(node.op) not in _GUARDED_OPS:
            return node
        return self._call(node.op, node.left, node.right, node)

    def visit_AugAssign(self, node):
        self.generic_visit(node)
        if type(node.op) not in _GUARDED_OPS:
            return node
        current = copy.deepcopy(node.target)
        current.ctx = ast.Load()
        assign = ast.Assign(targets=[node.target],
                            value=self._call(node.op, current, node.value, node))
        return ast.copy_location(assign, node)


def guard_operators(tree: ast.Module) -> ast.Module:
    """Rewrite size-amplifying operators in a validated tree."""
    return ast.fix_missing_locations(_OperatorGuard().visit(tree))


class Budget:
    """Per-call execution budget enforced through ``sys.settrace``.

    Only frames whose code comes from a rule script are counted, so time spent
    in the engine or in builtins called from the script costs nothing beyond
    the script line that called them. The deadline is checked again when a
    script frame returns and once more after the call, so a single slow line
    still fails the call.
    """

    def __init__(self, max_steps: int, time_limit: float):
        self.max_steps = max_steps
        self.time_limit = time_limit
        self.steps = 0
        self._deadline = 0.0

    def _check_deadline(self) -> None:
        if time.perf_counter() > self._deadline:
            raise _BudgetExceeded(f"exceeded time limit of {self.time_limit:.3f}s")

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise _BudgetExceeded(f"exceeded step budget of {self.max_steps}")
        self._check_deadline()

    def _global_trace(self, frame, event, arg):
        if frame.f_code.co_filename != SCRIPT_FILENAME:
            return None
        self._tick()
        return self._local_trace

    def _local_trace(self, frame, event, arg):
        if event == "line":
            self._tick()
        elif event == "return":
            self._check_deadline()
        return self._local_trace

    def run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Call ``func`` under the budget.

        Raises:
            RuleTimeout: If the step or time budget is exhausted
        """
        self.steps = 0
        self._deadline = time.perf_counter() + self.time_limit
        previous = sys.gettrace()
        sys.settrace(self._global_trace)
        try:
            result = func(*args)
            self._check_deadline()
            return result
        except _BudgetExceeded as e:
            raise RuleTimeout(str(e)) from None
        finally:
            sys.settrace(previous)


def _bounded_range(limit: int) -> Callable[..., range]:
    def bounded(*args: int) -> range:
        result = range(*args)
        if len(result) > limit:
            raise ValueError(f"range of {len(result)} items exceeds the step budget")
        return result
    return bounded


def _is_int(obj: Any) -> bool:
    return isinstance(obj, int)


def _check_int_bits(bits: int, operation: str) -> None:
    if bits > MAX_INT_BITS:
        raise ValueError(f"{operation} result of about {bits} bits exceeds the {MAX_INT_BITS}-bit limit")


def _guarded_pow(base, exponent, modulus=None):
    if modulus is None and _is_int(base) and _is_int(exponent) and exponent > 0 and abs(base) > 1:
        _check_int_bits(base.bit_length() * exponent, "power")
    if modulus is None:
        return base ** exponent
    return pow(base, exponent, modulus)


def _guarded_lshift(value, shift):
    if _is_int(value) and _is_int(shift) and value:
        _check_int_bits(value.bit_length() + shift, "shift")
    return value << shift


def _guarded_mul(limit: int) -> Callable[[Any, Any], Any]:
    def multiply(left, right):
        if _is_int(left) and _is_int(right):
            _check_int_bits(left.bit_length() + right.bit_length(), "product")
        else:
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (list, tuple, str)) and _is_int(count) and len(seq) * count > limit:
                    raise ValueError(f"repetition of {len(seq) * count} items exceeds the step budget")
        return left * right
    return multiply


def _bounded_combinatoric(func: Callable[..., int]) -> Callable[..., int]:
    def bounded(n, *args):
        if _is_int(n) and n > MAX_COMBINATORIC_ARG:
            raise ValueError(f"{func.__name__}() argument {n} exceeds {MAX_COMBINATORIC_ARG}")
        return func(n, *args)
    return bounded


class _MathModule:
    """Read-only proxy exposing the public names of ``math``."""

    def __init__(self):
        for name in dir(math):
            if not name.startswith("_"):
                object.__setattr__(self, name, getattr(math, name))
        for name in ("factorial", "comb", "perm"):
            if hasattr(math, name):
                object.__setattr__(self, name, _bounded_combinatoric(getattr(math, name)))

    def __setattr__(self, name, value):
        raise AttributeError("math is read-only in rule scripts")


MATH = _MathModule()


def make_namespace(max_steps: int, seed: Optional[int] = None) -> Dict[str, Any]:
    """Build fresh globals for one execution context."""
    safe = {name: getattr(builtins, name) for name in SAFE_BUILTIN_NAMES}
    safe["range"] = _bounded_range(max_steps)
    safe["pow"] = _guarded_pow
    return {
        "__builtins__": safe,
        "__name__": "rule",
        "math": MATH,
        "random": random.Random(seed),
        "_guarded_pow": _guarded_pow,
        "_guarded_mul": _guarded_mul(max_steps),
        "_guarded_lshift": _guarded_lshift,
    }


def compile_source(source: str):
    """Validate and compile rule source into a code object.

    Raises:
        CompileError: On syntax errors or disallowed constructs
    """
    tree = guard_operators(parse(source))
    try:
        return compile(tree, SCRIPT_FILENAME, "exec")
    except (SyntaxError, ValueError) as e:
        raise CompileError(f"compilation failed: {e}") from e
