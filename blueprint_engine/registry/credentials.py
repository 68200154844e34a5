"""
Credential lookup for platform actions.

The engine asks a CredentialResolver for the active credential of
``(automation_id, platform)`` before every action on a credentialed
integration. Resolvers never mutate state the engine can observe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple


@dataclass(frozen=True)
class Credential:
    platform: str
    values: Mapping[str, Any] = field(default_factory=dict)
    credential_id: Optional[str] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


class CredentialResolver(Protocol):
    async def resolve(
        self,
        automation_id: str,
        platform: str,
        *,
        credential_id: Optional[str] = None,
    ) -> Optional[Credential]:
        """Return the active credential, or None when none exists."""
        ...


class InMemoryCredentialResolver:
    """
    Dict-backed resolver. Credentials registered without an automation id are
    shared by every automation and used when no scoped credential exists.
    """

    def __init__(self) -> None:
        self._scoped: Dict[Tuple[Optional[str], str], Credential] = {}
        self._by_id: Dict[str, Credential] = {}

    def register(
        self,
        platform: str,
        values: Mapping[str, Any],
        *,
        automation_id: Optional[str] = None,
        credential_id: Optional[str] = None,
    ) -> Credential:
        credential = Credential(platform=platform.lower(), values=dict(values), credential_id=credential_id)
        self._scoped[(automation_id, credential.platform)] = credential
        if credential_id is not None:
            self._by_id[credential_id] = credential
        return credential

    def revoke(self, platform: str, *, automation_id: Optional[str] = None) -> None:
        credential = self._scoped.pop((automation_id, platform.lower()), None)
        if credential is not None and credential.credential_id is not None:
            self._by_id.pop(credential.credential_id, None)

    async def resolve(
        self,
        automation_id: str,
        platform: str,
        *,
        credential_id: Optional[str] = None,
    ) -> Optional[Credential]:
        if credential_id is not None:
            credential = self._by_id.get(credential_id)
            if credential is not None and credential.platform == platform.lower():
                return credential
            return None
        key = platform.lower()
        return self._scoped.get((automation_id, key)) or self._scoped.get((None, key))
