# equipements/usecases/inventaires.py
"""
UC: Enregistrer des INVENTAIRES (unitaire et par lot XLSX).

Remarque : l'import par lot ne s'arrête pas à la première ligne en erreur ;
chaque ligne est créée séparément et les échecs sont rapportés.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from equipements.adapters.fields import decode_field_schema, missing_required_fields
from equipements.adapters.xlsx_loader import load_inventaires_from_xlsx
from equipements.domain.models import InventoryCreate
from equipements.infra.api_client import ApiClient
from equipements.infra.envelopes import unwrap
from equipements.infra.errors import ApiError, SessionExpiredError
from equipements.infra.logger import log_file_operation, log_system_event, print_system


async def required_field_warnings(client: ApiClient, product_id: int, values: Dict[str, Any]) -> List[str]:
    """Champs obligatoires du type d'équipement absents des valeurs saisies.

    Indicatif seulement : le type est lu via le produit ; si l'un des deux
    est introuvable, aucune alerte n'est produite.
    """
    try:
        product = unwrap(await client.products.get(product_id)) or {}
        type_id = product.get("equipment_type_id")
        if type_id is None:
            return []
        equipment_type = unwrap(await client.equipment_types.get(type_id)) or {}
    except SessionExpiredError:
        raise
    except ApiError as e:
        log_system_event("schema_lookup_failed", {"product_id": product_id, "error": str(e)}, level="warning")
        return []
    schema = decode_field_schema(equipment_type.get("additional_fields"))
    return missing_required_fields(schema, values)


async def run_inventaire_unique(client: ApiClient, inventory: InventoryCreate) -> Dict[str, Any]:
    """Crée un inventaire et renvoie l'enregistrement persisté."""
    log_system_event("inventaire_unique_start", {"product_id": inventory.product_id})
    try:
        response = await client.inventories.create(inventory)
    except ApiError as e:
        log_system_event("inventaire_unique_error", {"error": str(e)}, level="error")
        raise
    log_system_event("inventaire_unique_success", {"product_id": inventory.product_id})
    return unwrap(response)


async def run_inventaire_lot(client: ApiClient, path: str) -> Dict[str, Any]:
    """Lit un XLSX d'inventaires et crée une entrée par ligne.

    Returns:
        ``{"fichier", "type", "total", "succes", "erreurs": [{"ligne", "message"}]}``

    Raises:
        SessionExpiredError: la session a expiré en cours d'import (les
            lignes suivantes échoueraient toutes).
    """
    log_system_event("inventaire_lot_start", {"file_path": path})
    rows = load_inventaires_from_xlsx(path)
    log_file_operation("import", path, rows_processed=len(rows))

    erreurs: List[Dict[str, Any]] = []
    succes = 0
    for row in rows:
        line: Optional[int] = row.get("line")
        if row.get("product_id") is None or not row.get("location"):
            erreurs.append({"ligne": line, "message": "Produit et emplacement obligatoires"})
            continue
        inventory = InventoryCreate(
            product_id=row["product_id"],
            location=row["location"],
            brand_id=row.get("brand_id"),
            commissioning_date=row.get("commissioning_date"),
            notes=row.get("notes"),
            additional_fields=row.get("additional_fields") or {},
            quantity=row.get("quantity") or 1,
        )
        try:
            await client.inventories.create(inventory)
        except SessionExpiredError:
            log_system_event("inventaire_lot_aborted", {"file_path": path, "line": line}, level="error")
            raise
        except ApiError as e:
            erreurs.append({"ligne": line, "message": e.message})
            continue
        succes += 1
        print_system(f">> Ligne {line} importée")

    result = {
        "fichier": path,
        "type": "Inventaires",
        "total": len(rows),
        "succes": succes,
        "erreurs": erreurs,
    }
    log_system_event("inventaire_lot_done", {"file_path": path, "total": len(rows), "succes": succes})
    return result
