"""Coded diagnostics for rule documents and the policy that routes them."""

from __future__ import annotations

import warnings
from dataclasses import dataclass

from rulemesh.errors import ValidationError

DIAGNOSTICS: dict[str, str] = {
    "W01": "rule is unreachable from the root",
    "W02": "step replicates zero times",
    "W03": "rule has no steps",
}

KNOWN_CODES: frozenset[str] = frozenset(DIAGNOSTICS)


class RulemeshWarning(UserWarning):
    """Warning carrying one of the ``DIAGNOSTICS`` codes."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}")


@dataclass(frozen=True)
class WarningPolicy:
    """Per-code routing: drop, escalate to ``ValidationError``, or warn."""

    warn_as_error: frozenset[str] = frozenset()
    suppress: frozenset[str] = frozenset()

    @classmethod
    def from_options(cls, warn_as_error: str | None, suppress: str | None) -> WarningPolicy | None:
        """Build a policy from comma-separated CLI values; ``None`` when both are unset."""
        if warn_as_error is None and suppress is None:
            return None
        return cls(
            warn_as_error=parse_code_list(warn_as_error or ""),
            suppress=parse_code_list(suppress or ""),
        )


def emit_warning(code: str, message: str, *, policy: WarningPolicy | None = None) -> None:
    """Issue diagnostic ``code`` unless the policy drops or escalates it."""
    if code not in KNOWN_CODES:
        raise ValueError(f"Unknown warning code: {code!r}")
    if policy is not None:
        if code in policy.suppress:
            return
        if code in policy.warn_as_error:
            raise ValidationError(f"[{code}] {message}")

    warnings.warn(RulemeshWarning(code, message), stacklevel=2)


def parse_code_list(raw: str) -> frozenset[str]:
    """Split ``"W01, W03"`` into a set of known codes.

    Raises ``ValueError`` for codes outside ``KNOWN_CODES``.
    """
    tokens = {token.strip() for token in raw.split(",")} - {""}
    unknown = sorted(tokens - KNOWN_CODES)
    if unknown:
        raise ValueError(
            f"Unknown warning code: {unknown[0]!r} (known: {sorted(KNOWN_CODES)})"
        )
    return frozenset(tokens)
