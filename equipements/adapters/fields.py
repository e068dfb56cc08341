"""
Utilitaires de codage des champs supplémentaires (``additional_fields``).

Les types d'équipements déclarent un schéma de champs supplémentaires
(type, obligatoire, libellé) et les inventaires portent les valeurs
correspondantes. Côté API ces deux structures voyagent sous forme de
chaîne JSON ; en mémoire elles sont manipulées comme des dictionnaires.
Le codage et le décodage se font uniquement ici.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from equipements.domain.models import FIELD_TYPES, FieldSpec
from equipements.infra.logger import log_system_event


def encode_additional_fields(fields: Optional[Mapping[str, Any]]) -> str:
    """Sérialise un dictionnaire de champs en chaîne JSON.

    Les ``FieldSpec`` sont convertis en dictionnaires ``{type, required,
    label}`` ; les autres valeurs sont conservées telles quelles.

    Exemples:
        {"capacity": "5kg"}  → '{"capacity": "5kg"}'
        None                 → '{}'
    """
    if not fields:
        return "{}"
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        out[key] = value.to_dict() if isinstance(value, FieldSpec) else value
    return json.dumps(out, ensure_ascii=False)


def decode_additional_fields(raw: Any) -> Dict[str, Any]:
    """Désérialise la valeur reçue de l'API en dictionnaire.

    Accepte une chaîne JSON, un dictionnaire déjà décodé ou ``None``.
    Une valeur illisible (JSON invalide, liste, nombre...) donne un
    dictionnaire vide ; l'incident est journalisé mais jamais propagé.

    Args:
        raw: Valeur ``additional_fields`` telle que renvoyée par l'API.

    Returns:
        Un dictionnaire (éventuellement vide).
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return {}
        try:
            parsed = json.loads(s)
        except ValueError as e:
            log_system_event("additional_fields_decode_error", {"raw": raw[:200], "error": str(e)}, level="warning")
            return {}
        if isinstance(parsed, dict):
            return parsed
    log_system_event("additional_fields_unexpected_shape", {"type": type(raw).__name__}, level="warning")
    return {}


def decode_field_schema(raw: Any) -> Dict[str, FieldSpec]:
    """Décode le schéma de champs d'un type d'équipement.

    Chaque entrée est normalisée : type inconnu → ``string``, ``required``
    absent → ``False``, libellé absent → la clé elle-même.
    """
    schema: Dict[str, FieldSpec] = {}
    for key, config in decode_additional_fields(raw).items():
        if not isinstance(config, dict):
            config = {}
        field_type = config.get("type") or "string"
        if field_type not in FIELD_TYPES:
            field_type = "string"
        schema[key] = FieldSpec(
            type=field_type,
            required=bool(config.get("required", False)),
            label=config.get("label") or key,
        )
    return schema


def fields_from_pairs(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, str]:
    """Construit un dictionnaire de valeurs à partir de couples clé/valeur.

    Les couples dont la clé ou la valeur est vide sont ignorés, comme dans
    les formulaires de saisie des inventaires.
    """
    out: Dict[str, str] = {}
    for key, value in pairs:
        k = (key or "").strip()
        if not k or value is None:
            continue
        v = str(value).strip()
        if v:
            out[k] = v
    return out


def parse_pair(txt: str) -> Tuple[str, str]:
    """Interprète ``"clé=valeur"`` (utilisé par les options de la CLI)."""
    if "=" not in txt:
        raise ValueError(f"Format attendu clé=valeur: {txt!r}")
    key, value = txt.split("=", 1)
    return key.strip(), value.strip()


def missing_required_fields(schema: Mapping[str, FieldSpec], values: Mapping[str, Any]) -> List[str]:
    """Liste les champs obligatoires du schéma absents des valeurs.

    Purement indicatif : le serveur reste seul juge, la console se contente
    d'avertir l'opérateur.
    """
    return [
        key for key, spec in schema.items()
        if spec.required and not str(values.get(key) or "").strip()
    ]
