"""
Catalogue des permissions attribuables depuis la console.

Chaque permission est définie par (id, nom, description, catégorie).
L'identifiant est purement local : il sert à l'état des cases à cocher
et n'est jamais transmis au serveur, qui ne connaît que les noms
(convention ``"<action> <ressources>"``, ex. ``"edit domains"``).

Le serveur peut connaître d'autres permissions (attribuées hors console) ;
elles ne figurent pas ici, ne sont ni affichées ni modifiables, et le
calcul de différence (``diff_permissions``) ne les retire jamais.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set


class PermissionCategory:
    """Catégories d'affichage, dans l'ordre de la console."""
    DOMAINS = "Domaines"
    FAMILIES = "Familles"
    EQUIPMENT_TYPES = "Types d'équipements"
    BRANDS = "Marques"
    DOCUMENT_TYPES = "Types de documents"
    DOCUMENTS = "Documents"
    PRODUCTS = "Produits"
    INVENTORIES = "Inventaires"
    USERS = "Utilisateurs"


@dataclass(frozen=True)
class CatalogPermission:
    id: int
    name: str
    description: str
    category: str


_C = PermissionCategory

_DEFINITIONS = [
    # -- DOMAINES --
    (1, "view domains", "Voir la liste et les détails des domaines", _C.DOMAINS),
    (2, "create domains", "Créer de nouveaux domaines", _C.DOMAINS),
    (3, "edit domains", "Mettre à jour les domaines existants", _C.DOMAINS),
    (4, "delete domains", "Supprimer des domaines", _C.DOMAINS),

    # -- FAMILLES --
    (5, "view families", "Voir la liste et les détails des familles", _C.FAMILIES),
    (6, "create families", "Créer de nouvelles familles", _C.FAMILIES),
    (7, "edit families", "Mettre à jour les familles existantes", _C.FAMILIES),
    (8, "delete families", "Supprimer des familles", _C.FAMILIES),

    # -- TYPES D'ÉQUIPEMENTS --
    (9, "view equipment_types", "Voir la liste et les détails des types d'équipements", _C.EQUIPMENT_TYPES),
    (10, "create equipment_types", "Créer de nouveaux types d'équipements", _C.EQUIPMENT_TYPES),
    (11, "edit equipment_types", "Mettre à jour les types d'équipements existants", _C.EQUIPMENT_TYPES),
    (12, "delete equipment_types", "Supprimer des types d'équipements", _C.EQUIPMENT_TYPES),

    # -- MARQUES --
    (13, "view brands", "Voir la liste et les détails des marques", _C.BRANDS),
    (14, "create brands", "Créer de nouvelles marques", _C.BRANDS),
    (15, "edit brands", "Mettre à jour les marques existantes", _C.BRANDS),
    (16, "delete brands", "Supprimer des marques", _C.BRANDS),

    # -- TYPES DE DOCUMENTS --
    (17, "view document_types", "Voir la liste et les détails des types de documents", _C.DOCUMENT_TYPES),
    (18, "create document_types", "Créer de nouveaux types de documents", _C.DOCUMENT_TYPES),
    (19, "edit document_types", "Mettre à jour les types de documents existants", _C.DOCUMENT_TYPES),
    (20, "delete document_types", "Supprimer des types de documents", _C.DOCUMENT_TYPES),

    # -- DOCUMENTS --
    (21, "view documents", "Voir la liste et les détails des documents", _C.DOCUMENTS),
    (22, "create documents", "Créer de nouveaux documents", _C.DOCUMENTS),
    (23, "edit documents", "Mettre à jour les documents existants", _C.DOCUMENTS),
    (24, "delete documents", "Supprimer des documents", _C.DOCUMENTS),
    (25, "archive documents", "Archiver/désarchiver des documents", _C.DOCUMENTS),

    # -- PRODUITS --
    (26, "view products", "Voir la liste et les détails des produits", _C.PRODUCTS),
    (27, "create products", "Créer de nouveaux produits", _C.PRODUCTS),
    (28, "edit products", "Mettre à jour les produits existants", _C.PRODUCTS),
    (29, "delete products", "Supprimer des produits", _C.PRODUCTS),
    (30, "associate products", "Associer/dissocier des produits", _C.PRODUCTS),

    # -- INVENTAIRES --
    (31, "view inventories", "Voir la liste et les détails des inventaires", _C.INVENTORIES),
    (32, "create inventories", "Créer de nouveaux inventaires", _C.INVENTORIES),
    (33, "edit inventories", "Mettre à jour les inventaires existants", _C.INVENTORIES),
    (34, "delete inventories", "Supprimer des inventaires", _C.INVENTORIES),

    # -- UTILISATEURS --
    (35, "view users", "Voir la liste et les détails des utilisateurs", _C.USERS),
    (36, "create users", "Créer de nouveaux utilisateurs", _C.USERS),
    (37, "edit users", "Mettre à jour les utilisateurs existants", _C.USERS),
    (38, "delete users", "Supprimer des utilisateurs", _C.USERS),
    (39, "manage permissions", "Attribuer/retirer des rôles et des permissions", _C.USERS),
]

AVAILABLE_PERMISSIONS: List[CatalogPermission] = [CatalogPermission(*d) for d in _DEFINITIONS]

_BY_ID: Dict[int, CatalogPermission] = {p.id: p for p in AVAILABLE_PERMISSIONS}
_BY_NAME: Dict[str, CatalogPermission] = {p.name: p for p in AVAILABLE_PERMISSIONS}


def permissions_by_category() -> "OrderedDict[str, List[CatalogPermission]]":
    """Regroupe le catalogue par catégorie, dans l'ordre de définition."""
    categories: "OrderedDict[str, List[CatalogPermission]]" = OrderedDict()
    for permission in AVAILABLE_PERMISSIONS:
        categories.setdefault(permission.category, []).append(permission)
    return categories


def find_by_id(permission_id: int) -> Optional[CatalogPermission]:
    return _BY_ID.get(permission_id)


def find_by_name(name: str) -> Optional[CatalogPermission]:
    return _BY_NAME.get(name)


def ids_for_names(names: Iterable[str]) -> Set[int]:
    """Ids locaux des noms reconnus (correspondance exacte) ; les autres sont ignorés."""
    return {_BY_NAME[n].id for n in names if n in _BY_NAME}


def names_for_ids(ids: Iterable[int]) -> List[str]:
    """Noms canoniques des ids cochés, dans l'ordre du catalogue."""
    wanted = set(ids)
    return [p.name for p in AVAILABLE_PERMISSIONS if p.id in wanted]


@dataclass
class PermissionDiff:
    to_add: List[str]
    to_remove: List[str]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def diff_permissions(current_names: Iterable[str], selected_names: Iterable[str]) -> PermissionDiff:
    """Calcule les ajouts et retraits minimaux pour atteindre la sélection.

    Règles:
        - ``to_add = sélection − actuel`` et ``to_remove = actuel − sélection``,
          par égalité exacte des noms.
        - Les noms actuellement détenus mais absents du catalogue ne sont
          jamais retirés : la console ne les affiche pas, l'opérateur ne
          peut donc pas les avoir décochés.
        - L'ordre des entrées n'a pas d'importance ; les doublons sont
          ignorés.

    Args:
        current_names: Noms des permissions détenues (liste brute du serveur).
        selected_names: Noms des permissions cochées.

    Returns:
        Un ``PermissionDiff`` dont les listes suivent l'ordre d'apparition.
    """
    current = list(dict.fromkeys(current_names))
    selected = list(dict.fromkeys(selected_names))
    current_set = set(current)
    selected_set = set(selected)
    to_add = [n for n in selected if n not in current_set]
    to_remove = [n for n in current if n not in selected_set and n in _BY_NAME]
    return PermissionDiff(to_add=to_add, to_remove=to_remove)
