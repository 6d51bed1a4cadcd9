"""
Declarative parameter checks for transaction builders.

A builder lists its inputs as ``Check`` entries; ``validate`` walks them in
order and raises ``ValidationError`` for the first one that fails. The order
is part of the contract: when several inputs are bad, the error names the
first listed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import ValidationError
from ..sigil.address import is_address, to_hex
from ..utils import is_hex, is_integer, is_valid_url

RESOURCES = ("BANDWIDTH", "ENERGY")


@dataclass(frozen=True)
class Check:
    """One input to validate.

    ``type`` selects the rule. Bounds (``gt``/``lt``/``gte``/``lte``) apply to
    integers, and to string lengths for ``string``. ``notEqual`` compares the
    already-checked values named in ``names``.
    """

    name: str
    type: str
    value: Any = None
    msg: Optional[str] = None
    optional: bool = False
    gt: Optional[int] = None
    lt: Optional[int] = None
    gte: Optional[int] = None
    lte: Optional[int] = None
    names: tuple[str, ...] = ()

    def message(self) -> str:
        if self.msg:
            return self.msg
        suffix = " address" if self.type == "address" else ""
        return f"Invalid {self.name}{suffix} provided"


def _in_bounds(check: Check, number: int) -> bool:
    if check.gt is not None and number <= check.gt:
        return False
    if check.lt is not None and number >= check.lt:
        return False
    if check.gte is not None and number < check.gte:
        return False
    if check.lte is not None and number > check.lte:
        return False
    return True


def _is_token_id(value: Any) -> bool:
    if is_integer(value):
        return value >= 0
    return isinstance(value, str) and value.isdigit()


_RULES: dict[str, Callable[[Check], bool]] = {
    "address": lambda c: is_address(c.value),
    "integer": lambda c: is_integer(c.value) and _in_bounds(c, c.value),
    "positive-integer": lambda c: is_integer(c.value) and c.value > 0,
    "tokenId": lambda c: _is_token_id(c.value),
    "notEmptyObject": lambda c: isinstance(c.value, dict) and bool(c.value),
    "resource": lambda c: c.value in RESOURCES,
    "url": lambda c: is_valid_url(c.value),
    "hex": lambda c: is_hex(c.value),
    "array": lambda c: isinstance(c.value, (list, tuple)),
    "not-empty-string": lambda c: isinstance(c.value, str) and bool(c.value),
    "boolean": lambda c: isinstance(c.value, bool),
    "string": lambda c: isinstance(c.value, str) and _in_bounds(c, len(c.value)),
}


def _skipped(check: Check) -> bool:
    if not check.optional:
        return False
    return check.value is None or (check.type != "boolean" and check.value is False)


def validate(*checks: Check) -> dict[str, Any]:
    """
    Run ``checks`` in order.

    Returns:
        The checked values by name; addresses normalized to prefixed hex

    Raises:
        ValidationError: For the first failing check
    """
    normalized: dict[str, Any] = {}
    for check in checks:
        if _skipped(check):
            continue
        if check.type == "notEqual":
            if not all(n in normalized for n in check.names):
                continue
            left, right = (normalized[n] for n in check.names)
            if left == right:
                raise ValidationError(check.msg or f"{check.names[0]} can not be equal to {check.names[1]}")
            continue
        rule = _RULES.get(check.type)
        if rule is None:
            raise ValueError(f"Unknown validation rule: {check.type}")
        if not rule(check):
            raise ValidationError(check.message())
        normalized[check.name] = to_hex(check.value) if check.type == "address" else check.value
    return normalized
