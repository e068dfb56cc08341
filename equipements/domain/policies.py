"""
Politiques de classification et utilitaires d'affichage.

Ce module regroupe les règles métier appliquées côté console :
classification de validité des documents selon leur date d'expiration,
comptage des équipements actifs, et libellés des références pendantes.
Les fonctions sont utilisées par le tableau de bord et par la CLI.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional, Union

from equipements.config import DEFAULTS


EXPIRED = "expired"
EXPIRING_SOON = "expiring_soon"

UNDEFINED_LABEL = "Non défini"


def _to_date(val: Union[str, date, datetime, None]) -> Optional[date]:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    if not s:
        return None
    try:
        # "2024-06-15" ou "2024-06-15T00:00:00.000000Z"
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def classify_expiry(
    expiry_date: Union[str, date, datetime, None],
    today: Optional[date] = None,
    window_days: int = DEFAULTS.expiring_window_days,
) -> Optional[str]:
    """Classe un document selon sa date d'expiration.

    Seule la date d'expiration compte :

    Règles:
        - Pas de date (ou date illisible) → ``None`` (toujours valide).
        - ``expiry < today`` → ``'expired'``
        - ``expiry <= today + window_days`` → ``'expiring_soon'``
        - au-delà → ``None``

    Args:
        expiry_date: Date d'expiration (ISO, ``date`` ou ``datetime``).
        today: Date de référence (aujourd'hui par défaut).
        window_days: Largeur de la fenêtre "expire bientôt".

    Returns:
        ``'expired'``, ``'expiring_soon'`` ou ``None``.
    """
    expiry = _to_date(expiry_date)
    if expiry is None:
        return None
    ref = today or date.today()
    if expiry < ref:
        return EXPIRED
    if expiry <= ref + timedelta(days=window_days):
        return EXPIRING_SOON
    return None


def is_active_status(status: Optional[str]) -> bool:
    """Un produit sans statut est considéré comme actif."""
    return not status or status == "active"


def label_for(index: Mapping[Any, Any], ref_id: Any, attr: str = "name") -> str:
    """Libellé d'une entité référencée, ou ``'Non défini'`` si elle n'existe pas.

    Args:
        index: Dictionnaire id → entité (dict ou objet).
        ref_id: Identifiant référencé (peut être ``None``).
        attr: Attribut à afficher (``name`` ou ``title``).
    """
    if ref_id is None:
        return UNDEFINED_LABEL
    item = index.get(ref_id)
    if item is None:
        return UNDEFINED_LABEL
    value = item.get(attr) if isinstance(item, dict) else getattr(item, attr, None)
    return str(value) if value else UNDEFINED_LABEL


def format_file_size(size: Optional[int]) -> str:
    """Taille lisible : 0 → '0 B', 1536 → '1.5 KB'."""
    if not size:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    i = 0
    scaled = float(size)
    while scaled >= 1024 and i < len(units) - 1:
        scaled /= 1024
        i += 1
    value = round(scaled, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"
