"""directory_shared.validation — Snapshot uniqueness checks.

These checks run against whatever store state the caller read just before,
so two producers racing on the same name or email can both see ``OK``. The
store enforces no constraint; a duplicate can still land if both intents are
applied.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Iterable, Optional


class ValidationOutcome(enum.Enum):
    OK = "ok"
    CONFLICT = "conflict"


def validate_organization_name(candidate_name: str, snapshot: Iterable[Dict[str, Any]]) -> ValidationOutcome:
    """Conflict when any organization in the snapshot already uses the name."""
    for org in snapshot:
        if org.get("name") == candidate_name:
            return ValidationOutcome.CONFLICT
    return ValidationOutcome.OK


def validate_user_email(
    org_id: str,
    candidate_email: str,
    excluded_user_id: Optional[str],
    snapshot: Iterable[Dict[str, Any]],
) -> ValidationOutcome:
    """Conflict when another user of ``org_id`` already uses the email.

    ``excluded_user_id`` lets an update keep its own email.
    """
    for user in snapshot:
        if user.get("orgId") != org_id:
            continue
        if excluded_user_id is not None and user.get("userId") == excluded_user_id:
            continue
        if user.get("email") == candidate_email:
            return ValidationOutcome.CONFLICT
    return ValidationOutcome.OK
