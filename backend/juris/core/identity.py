"""Authenticated caller identity passed through the call chain."""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class CallerIdentity:
    """User on whose behalf a turn runs.

    Tools that touch user-owned data receive ``user_id`` injected into
    their parameters and must check ownership against it.
    """

    user_id: uuid.UUID

    def __str__(self) -> str:
        return str(self.user_id)


__all__ = ["CallerIdentity"]
