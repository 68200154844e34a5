"""
Credential resolver backed by the ``platform_credentials`` table.
"""

from __future__ import annotations

from typing import Optional

from shared.database.automation_models import PlatformCredential
from blueprint_engine.registry.credentials import Credential

ACTIVE_STATUS = "active"


def _to_credential(row: PlatformCredential) -> Credential:
    return Credential(
        platform=row.platform_name.lower(),
        values=dict(row.credentials or {}),
        credential_id=str(row.id),
    )


class TortoiseCredentialResolver:
    """
    Looks up the active credential for a platform, preferring a row scoped to
    the automation over a shared one. An explicit ``credential_id`` must point
    at an active row for the same platform.
    """

    async def resolve(
        self,
        automation_id: str,
        platform: str,
        *,
        credential_id: Optional[str] = None,
    ) -> Optional[Credential]:
        if credential_id is not None:
            if not credential_id.isdigit():
                return None
            row = await PlatformCredential.get_or_none(
                id=int(credential_id),
                platform_name__iexact=platform,
                status=ACTIVE_STATUS,
            )
            return _to_credential(row) if row else None

        row = (
            await PlatformCredential.filter(
                automation_id=automation_id,
                platform_name__iexact=platform,
                status=ACTIVE_STATUS,
            )
            .order_by("-updated_at")
            .first()
        )
        if row is None:
            row = (
                await PlatformCredential.filter(
                    automation_id__isnull=True,
                    platform_name__iexact=platform,
                    status=ACTIVE_STATUS,
                )
                .order_by("-updated_at")
                .first()
            )
        return _to_credential(row) if row else None
