from __future__ import annotations

import json
import math
from typing import Iterator, Mapping

from utils.errors import EvaluationError


class Environment(Mapping):
    """Immutable mapping from variable names to float values.

    One snapshot is built per request; ``extend`` returns a new snapshot and
    never modifies the receiver.  Summation indices and definite-integral
    bounds are bound this way.

    Examples
    --------
    >>> env = Environment({"x": 3})
    >>> env["x"]
    3.0
    >>> env.extend(y=1.5)["y"]
    1.5
    >>> "y" in env
    False
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, float] | None = None):
        checked = {}
        for name, value in (values or {}).items():
            checked[name] = _to_float(name, value)
        self._values = checked

    def __getitem__(self, name: str) -> float:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Environment({self._values!r})"

    def extend(self, values: Mapping[str, float] | None = None, **kwargs: float) -> "Environment":
        merged = dict(self._values)
        merged.update(values or {})
        merged.update(kwargs)
        return Environment(merged)

    def to_json(self) -> str:
        return json.dumps({"vars": self._values}, sort_keys=True)

    @classmethod
    def from_json(cls, text: str | None) -> "Environment":
        """Build an environment from ``{"vars": {"x": 3}}``.

        Unknown top-level fields are ignored and a missing ``vars`` field is
        an empty environment.  Malformed JSON or non-numeric values raise
        ``EvaluationError``.
        """
        if text is None or not text.strip():
            return cls()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise EvaluationError(f"Malformed environment JSON: {exc.msg}") from exc
        if not isinstance(payload, dict):
            raise EvaluationError("Environment JSON must be an object")
        values = payload.get("vars", {})
        if not isinstance(values, dict):
            raise EvaluationError("Environment field 'vars' must be an object")
        return cls(values)


def _to_float(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EvaluationError(f"Variable '{name}' must be bound to a number, got {value!r}")
    value = float(value)
    if math.isnan(value):
        raise EvaluationError(f"Variable '{name}' is bound to NaN")
    return value


EMPTY = Environment()
