"""Per-thread execution context for a compiled Rule.

A RuleContext owns one sandbox namespace loaded with a Rule's code. Contexts are
cheap but not shareable across threads (the budget tracer and any module-level
state a script keeps are per-context), so the stepper keeps one per worker.
"""

import logging
from typing import Any, Callable, Optional, Sequence

from ..core.value import Value, from_native
from ..errors import RuleError, RuleTimeout
from .sandbox import Budget, make_namespace

logger = logging.getLogger(__name__)

ENTRY_POINT = "update"
HOOKS = ("randomize", "next")


def _arity(func: Any) -> Optional[int]:
    code = getattr(func, "__code__", None)
    if code is None:
        return None
    return code.co_argcount


class RuleContext:
    """Marshals cell Values into a rule script and its result back out.

    Attributes:
        rule: The compiled Rule this context executes
        update: Script's ``update`` function, or None if undefined
        arity: Positional parameter count of ``update`` (2 or 3)
        hooks: Optional hook functions found in the script, by name
    """

    def __init__(self, rule, seed: Optional[int] = None):
        """Load the rule's code into a fresh namespace.

        Args:
            rule: Compiled Rule
            seed: Seed for the script's ``random`` generator

        Raises:
            RuleTimeout: If module-level code exhausts the budget
            RuleError: If module-level code raises
        """
        self.rule = rule
        self.budget = Budget(rule.max_steps, rule.time_limit)
        self.namespace = make_namespace(rule.max_steps, seed)
        try:
            self.budget.run(exec, rule.code, self.namespace)
        except RuleTimeout:
            raise
        except Exception as e:
            raise RuleError(f"{type(e).__name__}: {e}") from e

        update = self.namespace.get(ENTRY_POINT)
        self.update: Optional[Callable[..., Any]] = update if callable(update) else None
        self.arity = _arity(self.update) if self.update is not None else None
        self.hooks = {name: self.namespace[name] for name in HOOKS
                      if callable(self.namespace.get(name))}
        logger.debug(f"Created rule context for {rule.digest[:8]} (seed={seed})")

    def _call(self, func: Callable[..., Any], *args: Any) -> Value:
        try:
            result = self.budget.run(func, *args)
        except RuleTimeout:
            raise
        except Exception as e:
            raise RuleError(f"{type(e).__name__}: {e}") from e
        return from_native(result)

    def evaluate(self, self_value: Value, neighbors: Sequence[Value], generation: int) -> Value:
        """Run the rule for one cell.

        Args:
            self_value: The cell's current Value
            neighbors: Neighbor Values in topology order
            generation: Index of the generation being computed from

        Returns:
            The cell's next Value

        Raises:
            RuleTimeout: Budget exhausted
            RuleError: Script raised
            UnsupportedKind: Result is not a recognized value
        """
        if self.update is None:
            raise RuleError(f"script does not define {ENTRY_POINT}()")
        args = [self_value.to_native(), [n.to_native() for n in neighbors]]
        if self.arity == 3:
            args.append(generation)
        return self._call(self.update, *args)

    def call_hook(self, name: str, *values: Value) -> Value:
        """Invoke an optional hook (``randomize()`` or ``next(self)``).

        Raises:
            RuleError: If the script doesn't define the hook or it raises
            RuleTimeout: Budget exhausted
            UnsupportedKind: Result is not a recognized value
        """
        func = self.hooks.get(name)
        if func is None:
            raise RuleError(f"script does not define {name}()")
        return self._call(func, *(v.to_native() for v in values))
