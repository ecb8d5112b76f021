"""Stable fingerprints for grouping equivalent errors into one incident.

A caller-supplied ``context["fingerprint"]`` always wins. Otherwise the
fingerprint is a djb2 hash of the error name, message and the first few
stack lines. The hash is 32-bit and unsalted so the value is identical
across processes and restarts (Python's built-in ``hash`` is not).
"""

from __future__ import annotations

from errorpulse.models.events import ErrorEvent

STACK_FRAMES = 3

_DJB2_SEED = 5381
_MASK_32 = 0xFFFFFFFF


def djb2(text: str) -> int:
    """Return the 32-bit unsigned djb2 hash of *text*."""
    value = _DJB2_SEED
    for char in text:
        value = ((value << 5) + value + ord(char)) & _MASK_32
    return value


def stack_signature(stack: str | None, frames: int = STACK_FRAMES) -> str:
    """Join the first *frames* lines of *stack*; empty when there is no stack."""
    if not stack:
        return ""
    return "".join(stack.split("\n")[:frames])


def compute_fingerprint(name: str, message: str, stack: str | None = None) -> str:
    """Derive a fingerprint from the error's name, message and stack."""
    return format(djb2(f"{name}{message}{stack_signature(stack)}"), "x")


def fingerprint(event: ErrorEvent) -> str:
    """Return the grouping key for *event*."""
    explicit = event.context.get("fingerprint")
    if explicit not in (None, ""):
        return str(explicit)
    return compute_fingerprint(event.name, event.message, event.stack)
