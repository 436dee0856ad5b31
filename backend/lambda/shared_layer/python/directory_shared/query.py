"""directory_shared.query — Read-only lookups served straight from DynamoDB."""

from __future__ import annotations

from typing import Any, Dict, List

from directory_shared.errors import NotFoundError
from directory_shared.store import RecordStore


class QueryService:
    def __init__(self, store: RecordStore):
        self._store = store

    def get_organization(self, org_id: str) -> Dict[str, Any]:
        org = self._store.get_organization(org_id)
        if org is None:
            raise NotFoundError(f"Organization '{org_id}' not found.")
        return org

    def get_all_organizations(self) -> List[Dict[str, Any]]:
        return self._store.scan_organizations()

    def get_user(self, org_id: str, user_id: str) -> Dict[str, Any]:
        # Users are keyed by userId alone; the org scope is checked here.
        user = self._store.get_user(user_id)
        if user is None or user.get("orgId") != org_id:
            raise NotFoundError(f"User '{user_id}' not found in organization '{org_id}'.")
        return user

    def get_all_users_by_organization(self, org_id: str) -> List[Dict[str, Any]]:
        self.get_organization(org_id)
        return self._store.query_users_by_organization(org_id)
