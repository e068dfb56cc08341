"""
UC: Éditer et synchroniser les permissions des utilisateurs.

Déroulement par utilisateur :
1) Chargement : la liste brute des noms détenus devient la référence
   (``current_names``) ; les noms reconnus du catalogue sont cochés
   (``selected_ids``), les autres restent hors de l'édition.
2) Édition : l'opérateur coche/décoche des ids du catalogue.
3) Sauvegarde : différence minimale (``diff_permissions``), puis un appel
   par ajout et par retrait, lancés en parallèle et tous attendus
   (``asyncio.gather(..., return_exceptions=True)``).

Remarques :
- Sans différence, aucun appel réseau n'est émis.
- En cas d'échec partiel rien n'est annulé : ``PermissionSyncError``
  décrit les réussites et les échecs, et la sélection locale est gardée
  telle quelle pour pouvoir relancer.
- En cas de réussite complète, la liste des utilisateurs est relue pour
  rafraîchir les références ; les sélections en cours des autres
  utilisateurs (différentes de leur référence) sont reportées telles quelles.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from equipements.domain.models import User
from equipements.domain.permissions import (
    diff_permissions,
    find_by_id,
    find_by_name,
    ids_for_names,
    names_for_ids,
)
from equipements.infra.api_client import ApiClient
from equipements.infra.envelopes import ResourceCollection
from equipements.infra.errors import PermissionSyncError
from equipements.infra.logger import log_permission_sync, log_system_event


@dataclass
class UserPermissionState:
    """État d'édition des permissions d'un utilisateur."""
    user: User
    current_names: List[str] = field(default_factory=list)
    selected_ids: Set[int] = field(default_factory=set)

    @classmethod
    def from_user(cls, user: User) -> "UserPermissionState":
        names = user.permission_names
        return cls(user=user, current_names=list(names), selected_ids=ids_for_names(names))

    @property
    def selected_names(self) -> List[str]:
        return names_for_ids(self.selected_ids)

    @property
    def has_pending_changes(self) -> bool:
        return self.selected_ids != ids_for_names(self.current_names)

    @property
    def unrecognized_names(self) -> List[str]:
        """Noms détenus hors catalogue (préservés lors des sauvegardes)."""
        return [n for n in self.current_names if find_by_name(n) is None]


@dataclass
class SyncResult:
    user_id: int
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def noop(self) -> bool:
        return not self.added and not self.removed


class PermissionEditor:
    """État des cases à cocher de chaque utilisateur, indépendant par utilisateur."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.states: Dict[int, UserPermissionState] = {}

    async def fetch_users(self) -> List[User]:
        """Lit les utilisateurs sans toucher à l'état d'édition."""
        envelope = await self.client.users.list()
        return ResourceCollection.from_envelope(envelope, User.from_api).items

    def apply(self, users: List[User]) -> None:
        """Remplace l'état d'édition de tous les utilisateurs."""
        self.states = {u.id: UserPermissionState.from_user(u) for u in users}

    async def load(self) -> List[User]:
        """(Re)charge les utilisateurs et réinitialise leur état d'édition."""
        users = await self.fetch_users()
        self.apply(users)
        return users

    def state(self, user_id: int) -> UserPermissionState:
        try:
            return self.states[user_id]
        except KeyError:
            raise KeyError(f"Utilisateur {user_id} non chargé") from None

    def toggle(self, user_id: int, permission_id: int, checked: bool) -> None:
        if find_by_id(permission_id) is None:
            raise ValueError(f"Permission inconnue du catalogue: {permission_id}")
        selected = self.state(user_id).selected_ids
        if checked:
            selected.add(permission_id)
        else:
            selected.discard(permission_id)

    def select(self, user_id: int, permission_ids: Set[int]) -> None:
        """Remplace toute la sélection d'un utilisateur."""
        unknown = [pid for pid in permission_ids if find_by_id(pid) is None]
        if unknown:
            raise ValueError(f"Permissions inconnues du catalogue: {unknown}")
        self.state(user_id).selected_ids = set(permission_ids)

    async def save(self, user_id: int) -> SyncResult:
        """Synchronise le serveur avec la sélection locale d'un utilisateur."""
        state = self.state(user_id)
        result = await sync_user_permissions(
            self.client, user_id, state.current_names, state.selected_names
        )
        if not result.noop:
            users = await self.fetch_users()
            pending = {
                uid: set(s.selected_ids)
                for uid, s in self.states.items()
                if uid != user_id and s.has_pending_changes
            }
            self.apply(users)
            for uid, selected in pending.items():
                if uid in self.states:
                    self.states[uid].selected_ids = selected
        return result


async def sync_user_permissions(
    client: ApiClient,
    user_id: int,
    current_names: List[str],
    selected_names: List[str],
) -> SyncResult:
    """Applique la différence entre permissions détenues et sélectionnées.

    Args:
        client: Client API authentifié.
        user_id: Utilisateur concerné.
        current_names: Noms détenus, tels que lus sur le serveur.
        selected_names: Noms cochés dans la console.

    Returns:
        ``SyncResult`` (``noop`` si aucune différence : zéro appel émis).

    Raises:
        PermissionSyncError: au moins un appel a échoué ; les autres ont
            tous été menés à terme.
    """
    diff = diff_permissions(current_names, selected_names)
    if diff.is_empty:
        log_system_event("permissions_noop", {"user_id": user_id})
        return SyncResult(user_id=user_id)

    operations: List[Tuple[str, str]] = (
        [("add", n) for n in diff.to_add] + [("remove", n) for n in diff.to_remove]
    )
    calls = [
        client.users.assign_permission(user_id, name) if action == "add"
        else client.users.remove_permission(user_id, name)
        for action, name in operations
    ]
    outcomes = await asyncio.gather(*calls, return_exceptions=True)

    succeeded: List[Tuple[str, str]] = []
    failed: List[Tuple[str, str, BaseException]] = []
    for (action, name), outcome in zip(operations, outcomes):
        if isinstance(outcome, BaseException):
            failed.append((action, name, outcome))
        else:
            succeeded.append((action, name))

    if failed:
        message = str(failed[0][2]) or "Erreur lors de la mise à jour des permissions"
        log_permission_sync(user_id, diff.to_add, diff.to_remove, error=message)
        raise PermissionSyncError(message, succeeded=succeeded, failed=failed)

    log_permission_sync(user_id, diff.to_add, diff.to_remove)
    return SyncResult(user_id=user_id, added=diff.to_add, removed=diff.to_remove)
