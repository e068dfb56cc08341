"""
Chargement des feuilles d'inventaires (XLSX).

Ces fonctions :
- lisent la feuille avec pandas (toutes les cellules en texte) ;
- normalisent les en-têtes (accents, variantes, synonymes) ;
- renvoient une liste de dictionnaires prêts pour ``InventoryCreate``.

Remarques :
- Toute colonne non reconnue devient un champ supplémentaire de
  l'inventaire (clé = en-tête normalisé).
- Les dates sont converties en ISO (YYYY-MM-DD) quand c'est possible.
- Les lignes entièrement vides sont ignorées.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd


# ---------------------------
# utilitaires de normalisation
# ---------------------------

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _slug(s: str) -> str:
    """Normalise un en-tête : minuscules, sans accents, sans ponctuation."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    accents = dict(zip("áàâãäéèêëíìîïóòôõöúùûüç", "aaaaaeeeeiiiiooooouuuuc"))
    s = "".join(accents.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key) -> Optional[str]:
    """Valeur texte d'une cellule, ``None`` si vide ou NA."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def _to_int(val: Optional[str]) -> Optional[int]:
    if val is None:
        return None
    try:
        return int(float(str(val).replace(",", ".")))
    except ValueError:
        return None


def _to_date_iso(val: Optional[str]) -> Optional[str]:
    """Convertit '2024-03-05', '2024-03-05 00:00:00' ou '05/03/2024' en ISO."""
    if val is None:
        return None
    s = str(val).strip()
    if not s:
        return None
    if _ISO_RE.match(s):
        try:
            return date.fromisoformat(s[:10]).isoformat()
        except ValueError:
            return None
    for fmt in ("%d/%m/%Y", "%d-%m-%Y", "%d/%m/%y", "%d.%m.%Y"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    return None


_ALIASES = {
    "produit": "product_id",
    "produit id": "product_id",
    "id produit": "product_id",
    "product": "product_id",
    "product id": "product_id",
    "equipement": "product_id",

    "emplacement": "location",
    "localisation": "location",
    "lieu": "location",
    "location": "location",

    "marque": "brand_id",
    "marque id": "brand_id",
    "brand": "brand_id",
    "brand id": "brand_id",

    "date de mise en service": "commissioning_date",
    "mise en service": "commissioning_date",
    "date mise en service": "commissioning_date",
    "commissioning date": "commissioning_date",

    "notes": "notes",
    "note": "notes",
    "remarques": "notes",
    "commentaire": "notes",

    "quantite": "quantity",
    "qte": "quantity",
    "quantity": "quantity",
}

KNOWN_COLUMNS = set(_ALIASES.values())


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomme les colonnes connues ; les autres gardent leur slug."""
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = _ALIASES.get(key, key.replace(" ", "_"))
    return df.rename(columns=new_cols)


# ---------------------------
# chargeur public (XLSX)
# ---------------------------

def load_inventaires_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lit un XLSX d'inventaires et renvoie un enregistrement par ligne.

    Clés de sortie :
      - line: numéro de ligne dans la feuille (en-tête = ligne 1)
      - product_id: int | None
      - location: str | None
      - brand_id: int | None
      - commissioning_date: date ISO | None
      - notes: str | None
      - quantity: int (1 par défaut)
      - additional_fields: dict[str, str] (colonnes non reconnues)
    """
    df = pd.read_excel(path, dtype="string")
    df = _normalize_columns(df)
    extra_cols = [c for c in df.columns if c not in KNOWN_COLUMNS and c]
    out: List[Dict[str, Any]] = []
    for idx, row in df.iterrows():
        values = {c: _safe_get(row, c) for c in df.columns}
        if not any(v is not None for v in values.values()):
            continue
        rec = {
            "line": int(idx) + 2,
            "product_id": _to_int(values.get("product_id")),
            "location": values.get("location"),
            "brand_id": _to_int(values.get("brand_id")),
            "commissioning_date": _to_date_iso(values.get("commissioning_date")),
            "notes": values.get("notes"),
            "quantity": _to_int(values.get("quantity")) or 1,
            "additional_fields": {c: values[c] for c in extra_cols if values.get(c) is not None},
        }
        out.append(rec)
    return out
