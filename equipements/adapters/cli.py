# equipements/adapters/cli.py
"""
CLI de la console d'équipements (Typer).

Commandes principales :
- login / register / logout / whoami   -> session de l'opérateur
- dashboard                             -> compteurs du parc et alertes
- <ressource> list/show/create/update/delete
    (domains, families, equipment-types, brands, document-types,
     products, documents, inventories, users)
- documents upload/update/download/archive
- products associate/dissociate/attach-document/detach-document
- inventories import <xlsx>             -> inventaires par lot
- permissions catalog/show/set          -> permissions d'un utilisateur
- tui                                   -> éditeur de permissions (Textual)
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from equipements.adapters.fields import decode_additional_fields, decode_field_schema, fields_from_pairs, parse_pair
from equipements.domain.models import (
    FIELD_TYPES,
    PRODUCT_STATUSES,
    BrandCreate,
    BrandUpdate,
    DocumentForm,
    DocumentTypeCreate,
    DocumentTypeUpdate,
    DomainCreate,
    DomainUpdate,
    EquipmentTypeCreate,
    EquipmentTypeUpdate,
    FamilyCreate,
    FamilyUpdate,
    FieldSpec,
    InventoryCreate,
    InventoryUpdate,
    ProductCreate,
    ProductUpdate,
    User,
    UserCreate,
    UserUpdate,
)
from equipements.domain.permissions import find_by_name, ids_for_names, permissions_by_category
from equipements.domain.policies import (
    EXPIRED,
    EXPIRING_SOON,
    classify_expiry,
    format_file_size,
    label_for,
)
from equipements.infra import logger
from equipements.infra.api_client import ApiClient
from equipements.infra.envelopes import ResourceCollection, unwrap
from equipements.infra.errors import ApiError, PermissionSyncError, SessionExpiredError
from equipements.usecases.dashboard import load_dashboard
from equipements.usecases.inventaires import required_field_warnings, run_inventaire_lot, run_inventaire_unique
from equipements.usecases.permissions import UserPermissionState, sync_user_permissions


app = typer.Typer(help="Console d'administration du parc d'équipements")
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Active la journalisation (dossier logs/)"),
):
    """Console d'administration du parc d'équipements."""
    if verbose:
        logger.ENABLE_LOGGING = True


# -----------------------
# util
# -----------------------

def _make_client() -> ApiClient:
    return ApiClient()


def _run(action: Callable[[ApiClient], Awaitable[Any]]) -> Any:
    """Exécute ``action(client)`` dans une boucle asyncio et traduit les erreurs."""

    async def runner():
        async with _make_client() as api:
            return await action(api)

    try:
        return asyncio.run(runner())
    except PermissionSyncError as e:
        console.print(f"[bold red]❌ {e.message}[/]")
        for action_name, name in e.succeeded:
            console.print(f"[green]  ✔ {action_name} {name}[/]")
        for action_name, name, _err in e.failed:
            console.print(f"[red]  ✘ {action_name} {name}[/]")
        raise typer.Exit(code=1)
    except SessionExpiredError as e:
        console.print(f"[bold red]🔒 {e.message}[/]")
        raise typer.Exit(code=1)
    except ApiError as e:
        console.print(f"[bold red]❌ Erreur: {e.message}[/]")
        raise typer.Exit(code=1)


def _fail(message: str) -> None:
    console.print(f"[bold red]❌ {message}[/]")
    raise typer.Exit(code=1)


def _print_json(obj) -> None:
    """Repli : impression JSON brute."""
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2))


def _cell(val: Any) -> str:
    if val is None or val == "":
        return "-"
    if isinstance(val, bool):
        return "Oui" if val else "Non"
    if isinstance(val, (list, tuple)):
        return ", ".join(_cell(v) for v in val) or "-"
    if isinstance(val, dict):
        return ", ".join(f"{k}: {_cell(v)}" for k, v in val.items()) or "-"
    return str(val)


def _expiry_cell(expiry_date: Optional[str], today: Optional[date] = None) -> str:
    status = classify_expiry(expiry_date, today)
    if status == EXPIRED:
        return f"[bold red]{expiry_date} (expiré)[/]"
    if status == EXPIRING_SOON:
        return f"[bold yellow]{expiry_date} (expire bientôt)[/]"
    return _cell(expiry_date)


def _display_table(data: Dict[str, Any] | List[Dict[str, Any]], title: str = "Résultat") -> None:
    """Affiche les données sous forme de tableaux Rich."""
    if not data:
        console.print(Panel("Aucune donnée", title=title, border_style="yellow"))
        return

    # Liste d'enregistrements
    if isinstance(data, list) and isinstance(data[0], dict):
        table = Table(title=title, box=box.ROUNDED)
        columns = list(data[0].keys())
        for column in columns:
            if column.lower() in ("id", "quantite", "quantité", "taille"):
                table.add_column(column, justify="right")
            else:
                table.add_column(column)
        for row in data:
            table.add_row(*[_cell(row.get(col)) for col in columns])
        console.print(table)
        return

    # Import par lot
    if isinstance(data, dict) and "erreurs" in data and "total" in data:
        titre = f"{data['type']} par lot" if "type" in data else title
        panel_content = [
            f"Total de lignes: {data['total']}",
            f"Importées avec succès: {data.get('succes', 0)}",
        ]
        if data["erreurs"]:
            panel_content.append(f"Erreurs: {len(data['erreurs'])}")
        console.print(Panel("\n".join(panel_content), title=titre))

        if data["erreurs"]:
            erreurs_table = Table(title="Erreurs rencontrées")
            erreurs_table.add_column("Ligne")
            erreurs_table.add_column("Erreur")
            for err in data["erreurs"]:
                erreurs_table.add_row(str(err.get("ligne", "?")), err.get("message", "Erreur inconnue"))
            console.print(erreurs_table)
        return

    # Enregistrement unique : tableau champ / valeur
    if isinstance(data, dict):
        table = Table(title=title, box=box.ROUNDED)
        table.add_column("Champ")
        table.add_column("Valeur")
        for key, value in data.items():
            table.add_row(str(key), _cell(value))
        console.print(table)
        return

    _print_json(data)


# -----------------------
# ressources : vues de liste et de détail
# -----------------------

Column = Tuple[str, Callable[[Dict[str, Any], Dict[str, Dict[Any, Any]]], Any]]


def _col(key: str) -> Callable:
    return lambda row, refs: row.get(key)


def _ref(key: str, group: str, attr: str = "name") -> Callable:
    return lambda row, refs: label_for(refs.get(group, {}), row.get(key), attr)


@dataclass
class ResourceView:
    attr: str                # attribut de l'ApiClient
    label: str               # libellé singulier
    title: str               # titre des listes
    columns: List[Column]
    refs: Tuple[Tuple[str, str], ...] = ()  # (groupe, attribut de l'ApiClient)


VIEWS: Dict[str, ResourceView] = {
    "domains": ResourceView(
        "domains", "domaine", "Domaines",
        [("ID", _col("id")), ("Nom", _col("name")), ("Description", _col("description"))],
    ),
    "families": ResourceView(
        "families", "famille", "Familles",
        [("ID", _col("id")), ("Nom", _col("name")), ("Domaine", _ref("domain_id", "domains")),
         ("Description", _col("description"))],
        refs=(("domains", "domains"),),
    ),
    "equipment-types": ResourceView(
        "equipment_types", "type d'équipement", "Types d'équipements",
        [("ID", _col("id")), ("Titre", _col("title")), ("Sous-titre", _col("subtitle")),
         ("Famille", _ref("family_id", "families")),
         ("Inventaire requis", _col("inventory_required")),
         ("Champs", lambda row, refs: list(decode_field_schema(row.get("additional_fields"))))],
        refs=(("families", "families"),),
    ),
    "brands": ResourceView(
        "brands", "marque", "Marques",
        [("ID", _col("id")), ("Nom", _col("name")), ("Description", _col("description"))],
    ),
    "document-types": ResourceView(
        "document_types", "type de document", "Types de documents",
        [("ID", _col("id")), ("Nom", _col("name")), ("Description", _col("description"))],
    ),
    "products": ResourceView(
        "products", "produit", "Produits",
        [("ID", _col("id")), ("Nom", _col("name")), ("Référence", _col("reference")),
         ("Marque", _ref("brand_id", "brands")),
         ("Type", _ref("equipment_type_id", "equipment_types", "title")),
         ("Statut", _col("status"))],
        refs=(("brands", "brands"), ("equipment_types", "equipment_types")),
    ),
    "documents": ResourceView(
        "documents", "document", "Documents",
        [("ID", _col("id")), ("Nom", _col("name")), ("Type", _ref("document_type_id", "document_types")),
         ("Version", _col("version")), ("Expiration", lambda row, refs: _expiry_cell(row.get("expiry_date"))),
         ("Taille", lambda row, refs: format_file_size(row.get("file_size"))),
         ("Archivé", _col("is_archived")),
         ("Produits", lambda row, refs: [p.get("name") for p in row.get("products") or []])],
        refs=(("document_types", "document_types"),),
    ),
    "inventories": ResourceView(
        "inventories", "inventaire", "Inventaires",
        [("ID", _col("id")), ("Produit", _ref("product_id", "products")), ("Emplacement", _col("location")),
         ("Marque", _ref("brand_id", "brands")), ("Mise en service", _col("commissioning_date")),
         ("Quantité", _col("quantity")),
         ("Champs", lambda row, refs: decode_additional_fields(row.get("additional_fields")))],
        refs=(("products", "products"), ("brands", "brands")),
    ),
    "users": ResourceView(
        "users", "utilisateur", "Utilisateurs",
        [("ID", _col("id")), ("Nom", _col("name")), ("Email", _col("email")),
         ("Rôles", lambda row, refs: [r.get("name") for r in row.get("roles") or []]),
         ("Permissions", lambda row, refs: len(row.get("permissions") or []))],
    ),
}


async def _fetch_refs(api: ApiClient, view: ResourceView) -> Dict[str, Dict[Any, Any]]:
    """Index id → entité des ressources référencées (toutes pages) ; un échec donne un index vide."""
    if not view.refs:
        return {}
    outcomes = await asyncio.gather(
        *[getattr(api, attr).list_all() for _group, attr in view.refs],
        return_exceptions=True,
    )
    refs: Dict[str, Dict[Any, Any]] = {}
    for (group, _attr), outcome in zip(view.refs, outcomes):
        if isinstance(outcome, SessionExpiredError):
            raise outcome
        if isinstance(outcome, BaseException):
            refs[group] = {}
            continue
        refs[group] = {r.get("id"): r for r in ResourceCollection.from_envelope(outcome)}
    return refs


async def _list_rows(api: ApiClient, view: ResourceView, fetch: Awaitable[Any]) -> Tuple[List[Dict[str, str]], ResourceCollection]:
    envelope = await fetch
    collection = ResourceCollection.from_envelope(envelope)
    refs = await _fetch_refs(api, view)
    rows = [{header: getter(item, refs) for header, getter in view.columns} for item in collection]
    return rows, collection


def _render_list(view: ResourceView, fetch: Callable[[ApiClient], Awaitable[Any]], title: Optional[str] = None) -> None:
    rows, collection = _run(lambda api: _list_rows(api, view, fetch(api)))
    _display_table(rows, title=title or view.title)
    if collection.has_more:
        console.print(f"[dim]Page {collection.current_page}/{collection.last_page} ({collection.total} au total)[/dim]")


def _render_entity(data: Any, title: str) -> None:
    entity = unwrap(data)
    if not isinstance(entity, dict):
        _print_json(entity)
        return
    shown = dict(entity)
    if "additional_fields" in shown:
        shown["additional_fields"] = decode_additional_fields(shown["additional_fields"])
    if "file_size" in shown:
        shown["file_size"] = format_file_size(shown["file_size"])
    if "expiry_date" in shown:
        shown["expiry_date"] = _expiry_cell(shown["expiry_date"])
    for key in ("products", "associated_products", "documents", "inventories", "roles", "permissions"):
        if isinstance(shown.get(key), list):
            shown[key] = [
                (item.get("name") or item.get("location") or item.get("id")) if isinstance(item, dict) else item
                for item in shown[key]
            ]
    _display_table(shown, title=title)


def _register_show_delete(group: typer.Typer, view: ResourceView) -> None:
    @group.command("show")
    def cmd_show(item_id: int = typer.Argument(..., help="Identifiant")):
        """Affiche le détail d'un enregistrement."""
        data = _run(lambda api: getattr(api, view.attr).get(item_id))
        _render_entity(data, title=f"{view.label.capitalize()} {item_id}")

    @group.command("delete")
    def cmd_delete(
        item_id: int = typer.Argument(..., help="Identifiant"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Ne pas demander de confirmation"),
    ):
        """Supprime un enregistrement (après confirmation)."""
        if not yes and not typer.confirm(f"Supprimer le {view.label} {item_id} ?"):
            typer.echo("Suppression annulée.")
            raise typer.Exit(code=0)
        _run(lambda api: getattr(api, view.attr).delete(item_id))
        console.print(f"[green]✔ {view.label.capitalize()} {item_id} supprimé[/]")


def _created(data: Any, view: ResourceView) -> None:
    entity = unwrap(data)
    new_id = entity.get("id") if isinstance(entity, dict) else None
    console.print(f"[green]✔ {view.label.capitalize()} créé (id={_cell(new_id)})[/]")


def _updated(item_id: int, view: ResourceView) -> None:
    console.print(f"[green]✔ {view.label.capitalize()} {item_id} mis à jour[/]")


def _pairs(values: Optional[List[str]]) -> Dict[str, str]:
    """Options ``--field clé=valeur`` ; les valeurs vides sont ignorées."""
    pairs = []
    for txt in values or []:
        try:
            pairs.append(parse_pair(txt))
        except ValueError as e:
            _fail(str(e))
    return fields_from_pairs(pairs)


def _field_spec(txt: str) -> Tuple[str, FieldSpec]:
    """``clé:type[:required][:libellé]`` → (clé, FieldSpec)."""
    parts = [p.strip() for p in txt.split(":")]
    key = parts[0]
    if not key:
        _fail(f"Champ sans clé: {txt!r}")
    field_type = parts[1] if len(parts) > 1 and parts[1] else "string"
    if field_type not in FIELD_TYPES:
        _fail(f"Type de champ inconnu: {field_type} (attendu: {', '.join(FIELD_TYPES)})")
    required = len(parts) > 2 and parts[2].lower() in ("required", "obligatoire", "1", "oui", "true")
    label = parts[3] if len(parts) > 3 and parts[3] else key
    return key, FieldSpec(type=field_type, required=required, label=label)


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in PRODUCT_STATUSES:
        _fail(f"Statut inconnu: {status} (attendu: {', '.join(PRODUCT_STATUSES)})")


# -----------------------
# authentification
# -----------------------

@app.command("login")
def cmd_login(
    email: str = typer.Option(..., prompt=True, help="Adresse e-mail"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Mot de passe"),
):
    """Ouvre une session et conserve le jeton."""
    response = _run(lambda api: api.login(email, password))
    data = unwrap(response)
    user = data.get("user") if isinstance(data, dict) else None
    name = user.get("name") if isinstance(user, dict) else email
    console.print(f"[green]✔ Connecté en tant que {name}[/]")


@app.command("register")
def cmd_register(
    name: str = typer.Option(..., prompt=True, help="Nom"),
    email: str = typer.Option(..., prompt=True, help="Adresse e-mail"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Mot de passe"),
):
    """Crée un compte et ouvre une session."""
    _run(lambda api: api.register(name, email, password, password))
    console.print(f"[green]✔ Compte créé pour {email}[/]")


@app.command("logout")
def cmd_logout():
    """Ferme la session (le jeton local est effacé même si le serveur échoue)."""
    _run(lambda api: api.logout())
    console.print("[green]✔ Déconnecté[/]")


@app.command("whoami")
def cmd_whoami():
    """Affiche l'utilisateur connecté."""

    async def action(api: ApiClient):
        if not api.is_authenticated():
            return None
        return await api.get_current_user()

    data = _run(action)
    if data is None:
        _fail("Non connecté")
    _render_entity(data, title="Utilisateur connecté")


# -----------------------
# tableau de bord
# -----------------------

@app.command("dashboard")
def cmd_dashboard():
    """Compteurs du parc et alertes d'expiration des documents."""
    stats = _run(lambda api: load_dashboard(api))
    lines = [
        f"Équipements : {stats.total_products}",
        f"Documents : {stats.total_documents}",
        f"Utilisateurs : {stats.total_users}",
        f"Inventaires : {stats.total_inventories}",
        "",
        f"Équipements actifs : {stats.active_equipments}",
        f"En maintenance : {stats.maintenance_equipments}",
    ]
    console.print(Panel("\n".join(lines), title="Tableau de bord", box=box.ROUNDED))
    if stats.has_alerts:
        alerts = []
        if stats.expired_documents:
            alerts.append(f"[bold red]{stats.expired_documents} document(s) expiré(s)[/]")
        if stats.expiring_documents:
            alerts.append(f"[bold yellow]{stats.expiring_documents} document(s) expirant dans les 30 jours[/]")
        console.print(Panel("\n".join(alerts), title="Alertes", border_style="red"))
    for section, message in stats.errors.items():
        console.print(f"[yellow]⚠ {section} indisponible: {message}[/]")


# -----------------------
# domaines
# -----------------------

domains_app = typer.Typer(help="Domaines")
app.add_typer(domains_app, name="domains")
_register_show_delete(domains_app, VIEWS["domains"])


@domains_app.command("list")
def cmd_domains_list():
    """Liste les domaines."""
    _render_list(VIEWS["domains"], lambda api: api.domains.list())


@domains_app.command("create")
def cmd_domains_create(
    name: str = typer.Option(..., "--name", help="Nom"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Crée un domaine."""
    data = _run(lambda api: api.domains.create(DomainCreate(name=name, description=description)))
    _created(data, VIEWS["domains"])


@domains_app.command("update")
def cmd_domains_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Modifie un domaine (seuls les champs fournis sont envoyés)."""
    _run(lambda api: api.domains.update(item_id, DomainUpdate(name=name, description=description)))
    _updated(item_id, VIEWS["domains"])


# -----------------------
# familles
# -----------------------

families_app = typer.Typer(help="Familles")
app.add_typer(families_app, name="families")
_register_show_delete(families_app, VIEWS["families"])


@families_app.command("list")
def cmd_families_list(
    domain_id: Optional[int] = typer.Option(None, "--domain-id", help="Familles d'un domaine"),
):
    """Liste les familles (toutes ou celles d'un domaine)."""
    if domain_id is None:
        _render_list(VIEWS["families"], lambda api: api.families.list())
    else:
        _render_list(VIEWS["families"], lambda api: api.families.by_domain(domain_id),
                     title=f"Familles du domaine {domain_id}")


@families_app.command("create")
def cmd_families_create(
    name: str = typer.Option(..., "--name"),
    domain_id: int = typer.Option(..., "--domain-id"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Crée une famille dans un domaine."""
    data = _run(lambda api: api.families.create(FamilyCreate(name=name, domain_id=domain_id, description=description)))
    _created(data, VIEWS["families"])


@families_app.command("update")
def cmd_families_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    domain_id: Optional[int] = typer.Option(None, "--domain-id"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Modifie une famille."""
    partial = FamilyUpdate(name=name, domain_id=domain_id, description=description)
    _run(lambda api: api.families.update(item_id, partial))
    _updated(item_id, VIEWS["families"])


# -----------------------
# types d'équipements
# -----------------------

types_app = typer.Typer(help="Types d'équipements")
app.add_typer(types_app, name="equipment-types")
_register_show_delete(types_app, VIEWS["equipment-types"])


@types_app.command("list")
def cmd_types_list(
    family_id: Optional[int] = typer.Option(None, "--family-id", help="Types d'une famille"),
):
    """Liste les types d'équipements."""
    if family_id is None:
        _render_list(VIEWS["equipment-types"], lambda api: api.equipment_types.list())
    else:
        _render_list(VIEWS["equipment-types"], lambda api: api.equipment_types.by_family(family_id),
                     title=f"Types de la famille {family_id}")


@types_app.command("create")
def cmd_types_create(
    title: str = typer.Option(..., "--title"),
    family_id: int = typer.Option(..., "--family-id"),
    subtitle: Optional[str] = typer.Option(None, "--subtitle"),
    inventory_required: bool = typer.Option(False, "--inventory-required/--no-inventory-required"),
    fields: Optional[List[str]] = typer.Option(None, "--field", help="clé:type[:required][:libellé]"),
):
    """Crée un type d'équipement et son schéma de champs supplémentaires."""
    schema = dict(_field_spec(f) for f in fields or [])
    payload = EquipmentTypeCreate(
        title=title, family_id=family_id, subtitle=subtitle,
        inventory_required=inventory_required, additional_fields=schema,
    )
    data = _run(lambda api: api.equipment_types.create(payload))
    _created(data, VIEWS["equipment-types"])


@types_app.command("update")
def cmd_types_update(
    item_id: int = typer.Argument(...),
    title: Optional[str] = typer.Option(None, "--title"),
    family_id: Optional[int] = typer.Option(None, "--family-id"),
    subtitle: Optional[str] = typer.Option(None, "--subtitle"),
    inventory_required: Optional[bool] = typer.Option(None, "--inventory-required/--no-inventory-required"),
    fields: Optional[List[str]] = typer.Option(None, "--field", help="Remplace le schéma: clé:type[:required][:libellé]"),
):
    """Modifie un type d'équipement."""
    partial = EquipmentTypeUpdate(
        title=title, family_id=family_id, subtitle=subtitle,
        inventory_required=inventory_required,
        additional_fields=dict(_field_spec(f) for f in fields) if fields else None,
    )
    _run(lambda api: api.equipment_types.update(item_id, partial))
    _updated(item_id, VIEWS["equipment-types"])


# -----------------------
# marques et types de documents
# -----------------------

brands_app = typer.Typer(help="Marques")
app.add_typer(brands_app, name="brands")
_register_show_delete(brands_app, VIEWS["brands"])


@brands_app.command("list")
def cmd_brands_list():
    """Liste les marques."""
    _render_list(VIEWS["brands"], lambda api: api.brands.list())


@brands_app.command("create")
def cmd_brands_create(
    name: str = typer.Option(..., "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Crée une marque."""
    data = _run(lambda api: api.brands.create(BrandCreate(name=name, description=description)))
    _created(data, VIEWS["brands"])


@brands_app.command("update")
def cmd_brands_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Modifie une marque."""
    _run(lambda api: api.brands.update(item_id, BrandUpdate(name=name, description=description)))
    _updated(item_id, VIEWS["brands"])


doctypes_app = typer.Typer(help="Types de documents")
app.add_typer(doctypes_app, name="document-types")
_register_show_delete(doctypes_app, VIEWS["document-types"])


@doctypes_app.command("list")
def cmd_doctypes_list():
    """Liste les types de documents."""
    _render_list(VIEWS["document-types"], lambda api: api.document_types.list())


@doctypes_app.command("create")
def cmd_doctypes_create(
    name: str = typer.Option(..., "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Crée un type de document."""
    data = _run(lambda api: api.document_types.create(DocumentTypeCreate(name=name, description=description)))
    _created(data, VIEWS["document-types"])


@doctypes_app.command("update")
def cmd_doctypes_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Modifie un type de document."""
    _run(lambda api: api.document_types.update(item_id, DocumentTypeUpdate(name=name, description=description)))
    _updated(item_id, VIEWS["document-types"])


# -----------------------
# produits
# -----------------------

products_app = typer.Typer(help="Produits (équipements)")
app.add_typer(products_app, name="products")
_register_show_delete(products_app, VIEWS["products"])


@products_app.command("list")
def cmd_products_list(
    page: Optional[int] = typer.Option(None, "--page", help="Page (liste paginée)"),
    per_page: Optional[int] = typer.Option(None, "--per-page", help="Éléments par page"),
    brand_id: Optional[int] = typer.Option(None, "--brand-id", help="Produits d'une marque"),
    type_id: Optional[int] = typer.Option(None, "--type-id", help="Produits d'un type d'équipement"),
    associated_to: Optional[int] = typer.Option(None, "--associated-to", help="Produits associés à un produit"),
):
    """Liste les produits (paginée, ou filtrée par marque, type ou association)."""
    view = VIEWS["products"]
    if brand_id is not None:
        _render_list(view, lambda api: api.products.by_brand(brand_id), title=f"Produits de la marque {brand_id}")
    elif type_id is not None:
        _render_list(view, lambda api: api.products.by_equipment_type(type_id), title=f"Produits du type {type_id}")
    elif associated_to is not None:
        _render_list(view, lambda api: api.products.associated(associated_to),
                     title=f"Produits associés au produit {associated_to}")
    else:
        _render_list(view, lambda api: api.products.list(page=page, per_page=per_page))


@products_app.command("create")
def cmd_products_create(
    name: str = typer.Option(..., "--name"),
    brand_id: int = typer.Option(..., "--brand-id"),
    type_id: int = typer.Option(..., "--type-id"),
    reference: Optional[str] = typer.Option(None, "--reference"),
    description: Optional[str] = typer.Option(None, "--description"),
    status: Optional[str] = typer.Option(None, "--status", help="active | inactive | maintenance"),
    document_ids: Optional[List[int]] = typer.Option(None, "--document-id", help="Documents à lier"),
):
    """Crée un produit."""
    _check_status(status)
    payload = ProductCreate(
        name=name, brand_id=brand_id, equipment_type_id=type_id, reference=reference,
        description=description, status=status, document_ids=list(document_ids) if document_ids else None,
    )
    data = _run(lambda api: api.products.create(payload))
    _created(data, VIEWS["products"])


@products_app.command("update")
def cmd_products_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    brand_id: Optional[int] = typer.Option(None, "--brand-id"),
    type_id: Optional[int] = typer.Option(None, "--type-id"),
    reference: Optional[str] = typer.Option(None, "--reference"),
    description: Optional[str] = typer.Option(None, "--description"),
    status: Optional[str] = typer.Option(None, "--status"),
):
    """Modifie un produit."""
    _check_status(status)
    partial = ProductUpdate(
        name=name, brand_id=brand_id, equipment_type_id=type_id,
        reference=reference, description=description, status=status,
    )
    _run(lambda api: api.products.update(item_id, partial))
    _updated(item_id, VIEWS["products"])


@products_app.command("associate")
def cmd_products_associate(product_id: int = typer.Argument(...), other_id: int = typer.Argument(...)):
    """Associe deux produits."""
    _run(lambda api: api.products.associate(product_id, other_id))
    console.print(f"[green]✔ Produit {other_id} associé au produit {product_id}[/]")


@products_app.command("dissociate")
def cmd_products_dissociate(product_id: int = typer.Argument(...), other_id: int = typer.Argument(...)):
    """Retire une association entre deux produits."""
    _run(lambda api: api.products.dissociate(product_id, other_id))
    console.print(f"[green]✔ Produit {other_id} dissocié du produit {product_id}[/]")


@products_app.command("attach-document")
def cmd_products_attach(product_id: int = typer.Argument(...), document_id: int = typer.Argument(...)):
    """Lie un document à un produit."""
    _run(lambda api: api.products.attach_document(product_id, document_id))
    console.print(f"[green]✔ Document {document_id} lié au produit {product_id}[/]")


@products_app.command("detach-document")
def cmd_products_detach(product_id: int = typer.Argument(...), document_id: int = typer.Argument(...)):
    """Retire un document d'un produit."""
    _run(lambda api: api.products.detach_document(product_id, document_id))
    console.print(f"[green]✔ Document {document_id} retiré du produit {product_id}[/]")


# -----------------------
# documents
# -----------------------

documents_app = typer.Typer(help="Documents")
app.add_typer(documents_app, name="documents")
_register_show_delete(documents_app, VIEWS["documents"])


@documents_app.command("list")
def cmd_documents_list(
    product_id: Optional[int] = typer.Option(None, "--product-id", help="Documents d'un produit"),
):
    """Liste les documents avec leur état d'expiration."""
    if product_id is None:
        _render_list(VIEWS["documents"], lambda api: api.documents.list())
    else:
        _render_list(VIEWS["documents"], lambda api: api.documents.by_product(product_id),
                     title=f"Documents du produit {product_id}")


@documents_app.command("upload")
def cmd_documents_upload(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Fichier à téléverser"),
    name: str = typer.Option(..., "--name"),
    type_id: int = typer.Option(..., "--type-id", help="Type de document"),
    reference: str = typer.Option(..., "--reference"),
    version: str = typer.Option(..., "--version"),
    issue_date: str = typer.Option(..., "--issue-date", help="YYYY-MM-DD"),
    expiry_date: Optional[str] = typer.Option(None, "--expiry-date", help="YYYY-MM-DD"),
    product_ids: Optional[List[int]] = typer.Option(None, "--product-id", help="Produits liés"),
):
    """Crée un document avec son fichier (multipart)."""
    form = DocumentForm(
        name=name, document_type_id=type_id, reference=reference, version=version,
        issue_date=issue_date, expiry_date=expiry_date, product_ids=list(product_ids or []),
    )
    data = _run(lambda api: api.documents.create(form, str(file)))
    _created(data, VIEWS["documents"])


@documents_app.command("update")
def cmd_documents_update(
    item_id: int = typer.Argument(...),
    file: Optional[Path] = typer.Option(None, "--file", exists=True, dir_okay=False, help="Nouveau fichier"),
    name: Optional[str] = typer.Option(None, "--name"),
    type_id: Optional[int] = typer.Option(None, "--type-id"),
    reference: Optional[str] = typer.Option(None, "--reference"),
    version: Optional[str] = typer.Option(None, "--version"),
    issue_date: Optional[str] = typer.Option(None, "--issue-date"),
    expiry_date: Optional[str] = typer.Option(None, "--expiry-date"),
    product_ids: Optional[List[int]] = typer.Option(None, "--product-id"),
):
    """Modifie un document ; sans --file le fichier existant est conservé."""

    async def action(api: ApiClient):
        current = unwrap(await api.documents.get(item_id)) or {}
        form = DocumentForm(
            name=name if name is not None else current.get("name", ""),
            document_type_id=type_id if type_id is not None else current.get("document_type_id"),
            reference=reference if reference is not None else current.get("reference") or "",
            version=version if version is not None else current.get("version") or "",
            issue_date=issue_date if issue_date is not None else (current.get("issue_date") or "")[:10],
            expiry_date=expiry_date if expiry_date is not None else (current.get("expiry_date") or "")[:10] or None,
            product_ids=list(product_ids) if product_ids else [p.get("id") for p in current.get("products") or []],
        )
        return await api.documents.update(item_id, form, str(file) if file else None)

    _run(action)
    _updated(item_id, VIEWS["documents"])


@documents_app.command("download")
def cmd_documents_download(
    item_id: int = typer.Argument(...),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Fichier de destination"),
):
    """Télécharge le fichier d'un document."""

    async def action(api: ApiClient):
        target = output
        if target is None:
            meta = unwrap(await api.documents.get(item_id)) or {}
            target = Path(meta.get("file_name") or f"document-{item_id}")
        content = await api.documents.download(item_id)
        return target, content

    target, content = _run(action)
    target.write_bytes(content)
    console.print(f"[green]✔ {format_file_size(len(content))} écrits dans {target}[/]")


@documents_app.command("archive")
def cmd_documents_archive(item_id: int = typer.Argument(...)):
    """Archive un document."""
    _run(lambda api: api.documents.archive(item_id))
    console.print(f"[green]✔ Document {item_id} archivé[/]")


# -----------------------
# inventaires
# -----------------------

inventories_app = typer.Typer(help="Inventaires")
app.add_typer(inventories_app, name="inventories")
_register_show_delete(inventories_app, VIEWS["inventories"])


@inventories_app.command("list")
def cmd_inventories_list(
    product_id: Optional[int] = typer.Option(None, "--product-id", help="Inventaires d'un produit"),
):
    """Liste les inventaires."""
    if product_id is None:
        _render_list(VIEWS["inventories"], lambda api: api.inventories.list())
    else:
        _render_list(VIEWS["inventories"], lambda api: api.inventories.by_product(product_id),
                     title=f"Inventaires du produit {product_id}")


@inventories_app.command("create")
def cmd_inventories_create(
    product_id: int = typer.Option(..., "--product-id"),
    location: str = typer.Option(..., "--location"),
    brand_id: Optional[int] = typer.Option(None, "--brand-id"),
    commissioning_date: Optional[str] = typer.Option(None, "--commissioning-date", help="YYYY-MM-DD"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    quantity: int = typer.Option(1, "--quantity", min=1),
    fields: Optional[List[str]] = typer.Option(None, "--field", help="clé=valeur"),
):
    """Crée un inventaire ; avertit des champs obligatoires manquants."""
    values = _pairs(fields)
    inventory = InventoryCreate(
        product_id=product_id, location=location, brand_id=brand_id,
        commissioning_date=commissioning_date, notes=notes,
        additional_fields=values, quantity=quantity,
    )

    async def action(api: ApiClient):
        missing = await required_field_warnings(api, product_id, values)
        created = await run_inventaire_unique(api, inventory)
        return missing, created

    missing, created = _run(action)
    for key in missing:
        console.print(f"[yellow]⚠ Champ obligatoire non renseigné: {key}[/]")
    _created(created, VIEWS["inventories"])


@inventories_app.command("update")
def cmd_inventories_update(
    item_id: int = typer.Argument(...),
    product_id: Optional[int] = typer.Option(None, "--product-id"),
    location: Optional[str] = typer.Option(None, "--location"),
    brand_id: Optional[int] = typer.Option(None, "--brand-id"),
    commissioning_date: Optional[str] = typer.Option(None, "--commissioning-date"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    quantity: Optional[int] = typer.Option(None, "--quantity", min=1),
    fields: Optional[List[str]] = typer.Option(None, "--field", help="Remplace les champs: clé=valeur"),
):
    """Modifie un inventaire."""
    partial = InventoryUpdate(
        product_id=product_id, location=location, brand_id=brand_id,
        commissioning_date=commissioning_date, notes=notes, quantity=quantity,
        additional_fields=_pairs(fields) if fields else None,
    )
    _run(lambda api: api.inventories.update(item_id, partial))
    _updated(item_id, VIEWS["inventories"])


@inventories_app.command("import")
def cmd_inventories_import(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Fichier XLSX d'inventaires"),
):
    """Importe des inventaires depuis un XLSX (une création par ligne)."""
    info = _run(lambda api: run_inventaire_lot(api, str(path)))
    _display_table(info, title="Import d'inventaires")
    if info["erreurs"]:
        raise typer.Exit(code=1)


# -----------------------
# utilisateurs
# -----------------------

users_app = typer.Typer(help="Utilisateurs")
app.add_typer(users_app, name="users")
_register_show_delete(users_app, VIEWS["users"])


@users_app.command("list")
def cmd_users_list():
    """Liste les utilisateurs."""
    _render_list(VIEWS["users"], lambda api: api.users.list())


@users_app.command("create")
def cmd_users_create(
    name: str = typer.Option(..., "--name"),
    email: str = typer.Option(..., "--email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    role: Optional[str] = typer.Option(None, "--role"),
):
    """Crée un utilisateur."""
    payload = UserCreate(name=name, email=email, password=password, password_confirmation=password, role=role)
    data = _run(lambda api: api.users.create(payload))
    _created(data, VIEWS["users"])


@users_app.command("update")
def cmd_users_update(
    item_id: int = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    email: Optional[str] = typer.Option(None, "--email"),
):
    """Modifie un utilisateur."""
    _run(lambda api: api.users.update(item_id, UserUpdate(name=name, email=email)))
    _updated(item_id, VIEWS["users"])


@users_app.command("assign-role")
def cmd_users_assign_role(user_id: int = typer.Argument(...), role: str = typer.Argument(...)):
    """Attribue un rôle."""
    _run(lambda api: api.users.assign_role(user_id, role))
    console.print(f"[green]✔ Rôle {role} attribué à l'utilisateur {user_id}[/]")


@users_app.command("remove-role")
def cmd_users_remove_role(user_id: int = typer.Argument(...), role: str = typer.Argument(...)):
    """Retire un rôle."""
    _run(lambda api: api.users.remove_role(user_id, role))
    console.print(f"[green]✔ Rôle {role} retiré à l'utilisateur {user_id}[/]")


# -----------------------
# permissions
# -----------------------

permissions_app = typer.Typer(help="Permissions des utilisateurs")
app.add_typer(permissions_app, name="permissions")


@permissions_app.command("catalog")
def cmd_permissions_catalog():
    """Affiche le catalogue des permissions par catégorie."""
    for category, perms in permissions_by_category().items():
        table = Table(title=category, box=box.ROUNDED)
        table.add_column("ID", justify="right")
        table.add_column("Nom")
        table.add_column("Description")
        for p in perms:
            table.add_row(str(p.id), p.name, p.description)
        console.print(table)


@permissions_app.command("show")
def cmd_permissions_show(user_id: int = typer.Argument(...)):
    """Affiche les permissions détenues par un utilisateur."""
    data = _run(lambda api: api.users.get(user_id))
    state = UserPermissionState.from_user(User.from_api(unwrap(data)))
    for category, perms in permissions_by_category().items():
        table = Table(title=category, box=box.SIMPLE)
        table.add_column("")
        table.add_column("Permission")
        for p in perms:
            mark = "[green]✔[/]" if p.id in state.selected_ids else "[dim]·[/]"
            table.add_row(mark, p.name)
        console.print(table)
    if state.unrecognized_names:
        console.print(f"[dim]Hors catalogue (conservées): {', '.join(state.unrecognized_names)}[/dim]")


@permissions_app.command("set")
def cmd_permissions_set(
    user_id: int = typer.Argument(...),
    perms: Optional[List[str]] = typer.Option(None, "--perm", help="Nom de permission (répétable)"),
):
    """Remplace la sélection des permissions du catalogue d'un utilisateur."""
    selected = list(perms or [])
    unknown = [n for n in selected if find_by_name(n) is None]
    if unknown:
        _fail(f"Permissions inconnues: {', '.join(unknown)}")

    async def action(api: ApiClient):
        user = User.from_api(unwrap(await api.users.get(user_id)))
        state = UserPermissionState.from_user(user)
        state.selected_ids = ids_for_names(selected)
        return await sync_user_permissions(api, user_id, state.current_names, state.selected_names)

    result = _run(action)
    if result.noop:
        console.print("Aucune modification.")
        return
    for name in result.added:
        console.print(f"[green]+ {name}[/]")
    for name in result.removed:
        console.print(f"[red]- {name}[/]")
    console.print(f"[green]✔ Permissions de l'utilisateur {user_id} mises à jour[/]")


# -----------------------
# TUI
# -----------------------

@app.command("tui")
def cmd_tui():
    """Lance l'éditeur de permissions en mode terminal (Textual)."""
    from equipements.adapters.permissions_tui import main as tui_main
    try:
        tui_main()
    except KeyboardInterrupt:
        typer.echo("\n👋 Sortie de l'éditeur...")
        raise typer.Exit(0)


def main():
    app()


if __name__ == "__main__":
    main()
