"""Dynamically-typed cell state.

A ``Value`` is a tagged union over four kinds: bool, int, float and an ordered
sequence of Values. Every cell of a grid holds a Value of the same kind for the
lifetime of a run; the kind's default is the "dead" state used to seed fresh
buffers and to stand in for failed or synthetic cells.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple, Union

import numpy as np

from ..errors import UnsupportedKind

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

Payload = Union[bool, int, float, Tuple["Value", ...]]


class ValueKind(Enum):
    """Recognized cell state kinds."""
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    SEQUENCE = "sequence"

    @classmethod
    def parse(cls, name: Union[str, "ValueKind"]) -> "ValueKind":
        """Resolve a kind from its name (case-insensitive) or pass one through."""
        if isinstance(name, ValueKind):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            known = ", ".join(k.value for k in cls)
            raise ValueError(f"Unknown value kind {name!r} (expected one of: {known})") from None


@dataclass(frozen=True)
class Value:
    """Immutable tagged cell state.

    Attributes:
        kind: Tag identifying which payload type is held
        payload: bool, int, float, or a tuple of Values for sequences
    """

    kind: ValueKind
    payload: Payload

    def to_native(self) -> Any:
        """Convert to the scripting environment's representation.

        Sequences become fresh lists on every call so a rule can never reach
        back into grid storage through a value it was handed.
        """
        if self.kind is ValueKind.SEQUENCE:
            return [item.to_native() for item in self.payload]
        return self.payload

    def __len__(self) -> int:
        if self.kind is not ValueKind.SEQUENCE:
            raise TypeError(f"{self.kind.value} value has no length")
        return len(self.payload)

    def __repr__(self) -> str:
        return f"Value({self.kind.value}, {self.to_native()!r})"


_DEFAULTS = {
    ValueKind.BOOL: Value(ValueKind.BOOL, False),
    ValueKind.INT: Value(ValueKind.INT, 0),
    ValueKind.FLOAT: Value(ValueKind.FLOAT, 0.0),
    ValueKind.SEQUENCE: Value(ValueKind.SEQUENCE, ()),
}


def default_for(kind: ValueKind) -> Value:
    """Default ("dead") Value for a kind."""
    return _DEFAULTS[kind]


def equals(a: Value, b: Value) -> bool:
    """Kind-aware equality.

    Values of different kinds are never equal, so ``Value(BOOL, True)`` does not
    equal ``Value(INT, 1)`` even though the payloads compare equal in Python.
    Floats follow IEEE semantics (NaN is not equal to itself).
    """
    if a.kind is not b.kind:
        return False
    if a.kind is ValueKind.SEQUENCE:
        return len(a.payload) == len(b.payload) and all(
            equals(x, y) for x, y in zip(a.payload, b.payload))
    return a.payload == b.payload


def kind_of(obj: Any) -> ValueKind:
    """Kind a native object would convert to.

    Raises:
        UnsupportedKind: If the object is not bool, int, float or a list/tuple
    """
    # bool is a subclass of int, check it first
    if isinstance(obj, (bool, np.bool_)):
        return ValueKind.BOOL
    if isinstance(obj, (int, np.integer)):
        return ValueKind.INT
    if isinstance(obj, (float, np.floating)):
        return ValueKind.FLOAT
    if isinstance(obj, (list, tuple)):
        return ValueKind.SEQUENCE
    raise UnsupportedKind(f"unsupported value type {type(obj).__name__}")


def from_native(obj: Any) -> Value:
    """Convert a native scripting value into a Value.

    Args:
        obj: bool, int, float (numpy scalars accepted) or a list/tuple thereof

    Returns:
        Equivalent Value

    Raises:
        UnsupportedKind: For any other type, or integers outside signed 64-bit range
    """
    kind = kind_of(obj)
    if kind is ValueKind.BOOL:
        return Value(kind, bool(obj))
    if kind is ValueKind.INT:
        number = int(obj)
        if not INT64_MIN <= number <= INT64_MAX:
            raise UnsupportedKind(f"integer {number} does not fit in 64 bits")
        return Value(kind, number)
    if kind is ValueKind.FLOAT:
        return Value(kind, float(obj))
    return Value(kind, tuple(from_native(item) for item in obj))


def coerce(obj: Any, kind: ValueKind) -> Value:
    """Convert ``obj`` and require it to be of ``kind``.

    Ints are accepted for float grids since user-entered literals such as ``1``
    are common when editing cells by hand.

    Raises:
        UnsupportedKind: If the object cannot be converted or has another kind
    """
    value = obj if isinstance(obj, Value) else from_native(obj)
    if value.kind is ValueKind.INT and kind is ValueKind.FLOAT:
        return Value(ValueKind.FLOAT, float(value.payload))
    if value.kind is not kind:
        raise UnsupportedKind(f"expected {kind.value} value, got {value.kind.value}")
    return value


# Storage dtypes for grid buffers
DTYPES = {
    ValueKind.BOOL: np.bool_,
    ValueKind.INT: np.int64,
    ValueKind.FLOAT: np.float64,
    ValueKind.SEQUENCE: object,
}
