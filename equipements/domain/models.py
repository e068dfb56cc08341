"""
Modèles (dataclasses) du domaine.

Observation importante :
- Le client API renvoie les enveloppes JSON telles quelles ; les
  dataclasses de lecture servent au typage et sont construites avec
  ``from_api`` là où un cas d'usage en a besoin.
- Les charges utiles de création omettent les champs attribués par le
  serveur (``id``, horodatages) ; celles de mise à jour n'envoient que les
  champs renseignés.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple


PRODUCT_STATUSES = ("active", "inactive", "maintenance")
FIELD_TYPES = ("string", "number", "date", "boolean")


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Ne garde que les clés correspondant aux champs de la dataclass."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


def _payload(obj) -> Dict[str, Any]:
    """Dictionnaire des champs renseignés (les ``None`` sont omis)."""
    return {f.name: getattr(obj, f.name) for f in fields(obj) if getattr(obj, f.name) is not None}


def _encode_fields(value: Dict[str, Any]) -> str:
    # import local : adapters.fields dépend de ce module
    from equipements.adapters.fields import encode_additional_fields

    return encode_additional_fields(value)


# -------------------------
# Droits
# -------------------------

@dataclass
class Role:
    id: int
    name: str
    guard_name: str = "web"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Role":
        return cls(**_known(cls, data))


@dataclass
class Permission:
    """Permission telle que connue du serveur (identifiée par son nom)."""
    id: int
    name: str
    guard_name: str = "web"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Permission":
        return cls(**_known(cls, data))


@dataclass
class User:
    id: int
    name: str
    email: str
    roles: List[Role] = field(default_factory=list)
    permissions: List[Permission] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            roles=[Role.from_api(r) for r in data.get("roles") or []],
            permissions=[Permission.from_api(p) for p in data.get("permissions") or []],
        )

    @property
    def permission_names(self) -> List[str]:
        return [p.name for p in self.permissions]


@dataclass
class UserCreate:
    name: str
    email: str
    password: str
    password_confirmation: str
    role: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class UserUpdate:
    name: Optional[str] = None
    email: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


# -------------------------
# Taxonomie : domaine > famille > type d'équipement
# -------------------------

@dataclass
class Domain:
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Domain":
        return cls(**_known(cls, data))


@dataclass
class DomainCreate:
    name: str
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class DomainUpdate:
    name: Optional[str] = None
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class Family:
    id: int
    name: str
    domain_id: int
    description: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Family":
        return cls(**_known(cls, data))


@dataclass
class FamilyCreate:
    name: str
    domain_id: int
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class FamilyUpdate:
    name: Optional[str] = None
    domain_id: Optional[int] = None
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class FieldSpec:
    """Déclaration d'un champ supplémentaire d'un type d'équipement."""
    type: str = "string"             # 'string' | 'number' | 'date' | 'boolean'
    required: bool = False
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "required": self.required, "label": self.label}


@dataclass
class EquipmentType:
    id: int
    title: str
    family_id: int
    subtitle: Optional[str] = None
    inventory_required: bool = False
    additional_fields: Dict[str, FieldSpec] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "EquipmentType":
        from equipements.adapters.fields import decode_field_schema

        values = _known(cls, data)
        values["inventory_required"] = bool(values.get("inventory_required") or False)
        values["additional_fields"] = decode_field_schema(data.get("additional_fields"))
        return cls(**values)


@dataclass
class EquipmentTypeCreate:
    title: str
    family_id: int
    subtitle: Optional[str] = None
    inventory_required: bool = False
    additional_fields: Dict[str, FieldSpec] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        out = _payload(self)
        out["additional_fields"] = _encode_fields(self.additional_fields)
        return out


@dataclass
class EquipmentTypeUpdate:
    title: Optional[str] = None
    family_id: Optional[int] = None
    subtitle: Optional[str] = None
    inventory_required: Optional[bool] = None
    additional_fields: Optional[Dict[str, FieldSpec]] = None

    def to_payload(self) -> Dict[str, Any]:
        out = _payload(self)
        if self.additional_fields is not None:
            out["additional_fields"] = _encode_fields(self.additional_fields)
        return out


# -------------------------
# Référentiels indépendants
# -------------------------

@dataclass
class Brand:
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Brand":
        return cls(**_known(cls, data))


@dataclass
class DocumentType:
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DocumentType":
        return cls(**_known(cls, data))


@dataclass
class NamedCreate:
    """Création d'une marque ou d'un type de document."""
    name: str
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class NamedUpdate:
    name: Optional[str] = None
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


BrandCreate = DocumentTypeCreate = NamedCreate
BrandUpdate = DocumentTypeUpdate = NamedUpdate


# -------------------------
# Produits (équipements) et documents
# -------------------------

@dataclass
class Product:
    id: int
    name: str
    brand_id: Optional[int] = None  # absent dans les listes imbriquées
    equipment_type_id: Optional[int] = None
    reference: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None     # 'active' | 'inactive' | 'maintenance'
    associated_products: List["Product"] = field(default_factory=list)
    documents: List["Document"] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Product":
        values = _known(cls, data)
        values["associated_products"] = [Product.from_api(p) for p in data.get("associated_products") or []]
        values["documents"] = [Document.from_api(d) for d in data.get("documents") or []]
        return cls(**values)


@dataclass
class ProductCreate:
    name: str
    brand_id: int
    equipment_type_id: int
    reference: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    document_ids: Optional[List[int]] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class ProductUpdate:
    name: Optional[str] = None
    brand_id: Optional[int] = None
    equipment_type_id: Optional[int] = None
    reference: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _payload(self)


@dataclass
class Document:
    id: int
    name: str
    document_type_id: Optional[int] = None
    version: str = ""
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    reference: str = ""
    is_archived: bool = False
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    products: List[Product] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Document":
        values = _known(cls, data)
        values["is_archived"] = bool(values.get("is_archived") or False)
        values["products"] = [Product.from_api(p) for p in data.get("products") or []]
        return cls(**values)


@dataclass
class DocumentForm:
    """Champs du formulaire multipart d'un document (sans le fichier)."""
    name: str
    document_type_id: int
    reference: str
    version: str
    issue_date: str
    expiry_date: Optional[str] = None
    product_ids: List[int] = field(default_factory=list)

    def to_form_fields(self) -> List[Tuple[str, str]]:
        """Champs ordonnés ; ``product_ids[]`` est répété par produit."""
        out = [
            ("name", self.name),
            ("document_type_id", str(self.document_type_id)),
            ("reference", self.reference),
            ("version", self.version),
            ("issue_date", self.issue_date),
        ]
        if self.expiry_date:
            out.append(("expiry_date", self.expiry_date))
        for pid in self.product_ids:
            out.append(("product_ids[]", str(pid)))
        return out


# -------------------------
# Inventaires
# -------------------------

@dataclass
class Inventory:
    id: int
    product_id: int
    location: str
    brand_id: Optional[int] = None
    commissioning_date: Optional[str] = None
    additional_fields: Dict[str, str] = field(default_factory=dict)
    notes: Optional[str] = None
    quantity: int = 1

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Inventory":
        from equipements.adapters.fields import decode_additional_fields

        values = _known(cls, data)
        values["additional_fields"] = decode_additional_fields(data.get("additional_fields"))
        if values.get("quantity") is None:
            values["quantity"] = 1
        return cls(**values)


@dataclass
class InventoryCreate:
    product_id: int
    location: str
    brand_id: Optional[int] = None
    commissioning_date: Optional[str] = None
    notes: Optional[str] = None
    additional_fields: Dict[str, str] = field(default_factory=dict)
    quantity: int = 1

    def to_payload(self) -> Dict[str, Any]:
        out = _payload(self)
        out["additional_fields"] = _encode_fields(self.additional_fields)
        return out


@dataclass
class InventoryUpdate:
    product_id: Optional[int] = None
    location: Optional[str] = None
    brand_id: Optional[int] = None
    commissioning_date: Optional[str] = None
    notes: Optional[str] = None
    additional_fields: Optional[Dict[str, str]] = None
    quantity: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        out = _payload(self)
        if self.additional_fields is not None:
            out["additional_fields"] = _encode_fields(self.additional_fields)
        return out
