"""
UC: Tableau de bord (agrégation des compteurs du parc).

Déroulement :
1) Récupère en parallèle produits, documents, utilisateurs et inventaires.
2) Chaque récupération est indépendante : un échec ne fait tomber que sa
   section (compteurs à zéro) et est consigné dans ``errors``.
3) Calcule les totaux, les documents expirés / expirant bientôt et les
   équipements actifs / en maintenance. Les produits sont lus sur toutes
   leurs pages pour que les compteurs de statut portent sur tout le parc.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from equipements.domain.policies import EXPIRED, EXPIRING_SOON, classify_expiry, is_active_status
from equipements.infra.api_client import ApiClient
from equipements.infra.envelopes import ResourceCollection
from equipements.infra.logger import log_system_event


SECTIONS = ("products", "documents", "users", "inventories")


@dataclass
class DashboardStats:
    total_products: int = 0
    total_documents: int = 0
    total_users: int = 0
    total_inventories: int = 0
    expiring_documents: int = 0
    expired_documents: int = 0
    active_equipments: int = 0
    maintenance_equipments: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def has_alerts(self) -> bool:
        return self.expired_documents > 0 or self.expiring_documents > 0


def compute_stats(
    products: List[Dict[str, Any]],
    documents: List[Dict[str, Any]],
    users: List[Dict[str, Any]],
    inventories: List[Dict[str, Any]],
    today: Optional[date] = None,
    product_total: Optional[int] = None,
) -> DashboardStats:
    """Calcule les compteurs à partir des listes déjà récupérées."""
    expiry = [classify_expiry(d.get("expiry_date"), today) for d in documents]
    return DashboardStats(
        total_products=product_total if product_total is not None else len(products),
        total_documents=len(documents),
        total_users=len(users),
        total_inventories=len(inventories),
        expiring_documents=expiry.count(EXPIRING_SOON),
        expired_documents=expiry.count(EXPIRED),
        active_equipments=sum(1 for p in products if is_active_status(p.get("status"))),
        maintenance_equipments=sum(1 for p in products if p.get("status") == "maintenance"),
    )


async def load_dashboard(client: ApiClient, today: Optional[date] = None) -> DashboardStats:
    """Charge et agrège le tableau de bord sans jamais échouer sur une section.

    Returns:
        ``DashboardStats`` ; les sections en échec valent zéro et leur
        message figure dans ``errors``.
    """
    outcomes = await asyncio.gather(
        client.products.list_all(),
        client.documents.list(),
        client.users.list(),
        client.inventories.list(),
        return_exceptions=True,
    )

    collections: Dict[str, ResourceCollection] = {}
    errors: Dict[str, str] = {}
    for section, outcome in zip(SECTIONS, outcomes):
        if isinstance(outcome, Exception):
            errors[section] = str(outcome)
            collections[section] = ResourceCollection()
            log_system_event("dashboard_section_failed", {"section": section, "error": str(outcome)}, level="warning")
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            collections[section] = ResourceCollection.from_envelope(outcome)

    products = collections["products"]
    stats = compute_stats(
        products.items,
        collections["documents"].items,
        collections["users"].items,
        collections["inventories"].items,
        today=today,
        product_total=products.total if "products" not in errors else 0,
    )
    stats.errors = errors
    return stats
