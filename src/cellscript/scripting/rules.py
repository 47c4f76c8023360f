"""Compilation of rule scripts into immutable Rule handles.

``compile_rule`` is a pure function of the script text and its options: the
same text always yields an equivalent Rule. A failed compilation raises
``CompileError`` and produces nothing, so callers keep whatever Rule they had.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional, Union

from ..config import EngineConfig
from ..core.value import ValueKind, default_for
from ..errors import CompileError, RuleFault
from .context import ENTRY_POINT, HOOKS, RuleContext
from .sandbox import compile_source

logger = logging.getLogger(__name__)

# Order in which kinds are tried when a script doesn't declare one
INFERENCE_ORDER = (ValueKind.BOOL, ValueKind.INT, ValueKind.FLOAT, ValueKind.SEQUENCE)

HOOK_ARITY = {"randomize": 0, "next": 1}


@dataclass(frozen=True)
class Rule:
    """Compiled, immutable rule handle.

    Attributes:
        source: Script text the rule was compiled from
        code: Compiled module code object
        digest: SHA-256 of the source
        kind: Value kind the rule operates on
        hooks: Names of optional hooks the script defines
        max_steps: Per-call step budget
        time_limit: Per-call wall-clock budget in seconds
    """

    source: str
    code: object
    digest: str
    kind: ValueKind
    hooks: FrozenSet[str]
    max_steps: int
    time_limit: float

    def new_context(self, seed: Optional[int] = None) -> RuleContext:
        """Create an execution context loaded with this rule."""
        return RuleContext(self, seed)

    def has_hook(self, name: str) -> bool:
        return name in self.hooks

    def __repr__(self) -> str:
        return f"Rule({self.digest[:8]}, kind={self.kind.value}, hooks={sorted(self.hooks)})"


def _smoke_test(context: RuleContext, kind: ValueKind, neighbor_count: int) -> Optional[str]:
    """Evaluate ``update`` on default inputs; return a diagnostic on failure."""
    default = default_for(kind)
    try:
        result = context.evaluate(default, [default] * neighbor_count, 0)
    except RuleFault as e:
        return f"{ENTRY_POINT}() failed on default {kind.value} input: {e}"
    if result.kind is not kind:
        return f"{ENTRY_POINT}() returned {result.kind.value} for {kind.value} state"
    return None


def compile_rule(source: str,
                 kind: Union[ValueKind, str, None] = None,
                 neighbor_count: int = 8,
                 config: Optional[EngineConfig] = None) -> Rule:
    """Compile a rule script.

    Args:
        source: Script text defining ``update(self, neighbors[, generation])``
        kind: State kind; overrides inference but must agree with a ``KIND``
            the script declares
        neighbor_count: Neighbors passed to the smoke-test invocation
        config: Budgets to bake into the Rule (defaults if None)

    Returns:
        Compiled Rule

    Raises:
        CompileError: If the script is malformed, lacks the entry point, or
            doesn't produce a matching value for default inputs
    """
    config = config or EngineConfig(workers=1)
    code = compile_source(source)
    digest = hashlib.sha256(source.encode('utf-8')).hexdigest()
    trial = Rule(source, code, digest, ValueKind.BOOL, frozenset(),
                 config.max_steps, config.time_limit)

    try:
        context = trial.new_context(config.seed)
    except RuleFault as e:
        raise CompileError(f"module code failed: {e}") from e

    if context.update is None:
        raise CompileError(f"script must define {ENTRY_POINT}(self, neighbors[, generation])")
    if context.arity not in (2, 3):
        raise CompileError(f"{ENTRY_POINT}() must take 2 or 3 positional parameters, takes {context.arity}")
    for name, func in context.hooks.items():
        arity = getattr(func, "__code__").co_argcount
        if arity != HOOK_ARITY[name]:
            raise CompileError(f"{name}() must take {HOOK_ARITY[name]} parameters, takes {arity}")

    declared = context.namespace.get("KIND")
    if declared is not None:
        try:
            declared = ValueKind.parse(declared)
        except ValueError as e:
            raise CompileError(str(e)) from e
    if kind is not None:
        try:
            kind = ValueKind.parse(kind)
        except ValueError as e:
            raise CompileError(str(e)) from e
        if declared is not None and declared is not kind:
            raise CompileError(f"script declares KIND={declared.value!r} but {kind.value!r} was requested")
    kind = kind or declared

    if kind is not None:
        problem = _smoke_test(context, kind, neighbor_count)
        if problem:
            raise CompileError(problem)
    else:
        problems = []
        for candidate in INFERENCE_ORDER:
            problem = _smoke_test(context, candidate, neighbor_count)
            if problem is None:
                kind = candidate
                break
            problems.append(problem)
        else:
            raise CompileError("could not infer state kind; declare KIND. " + "; ".join(problems))

    rule = Rule(source, code, digest, kind, frozenset(context.hooks),
                config.max_steps, config.time_limit)
    logger.info(f"Compiled {rule!r}")
    return rule
