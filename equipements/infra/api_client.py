# equipements/infra/api_client.py
"""
Client de l'API REST de gestion des équipements (httpx, asynchrone).

Point de contact unique avec le serveur :
- construit les en-têtes à chaque requête à partir de la ``Session``
  (``Accept`` JSON, ``Content-Type`` JSON hors multipart, jeton porteur) ;
- ferme la session locale sur toute réponse 401, quel que soit l'endpoint ;
- transforme les autres échecs en ``ApiError`` (message du serveur ou
  ``"<code> <raison>"``) et les échecs réseau en ``NetworkError`` ;
- renvoie les réponses JSON telles quelles (octets bruts pour le
  téléchargement d'un document).

Ressources exposées (un objet par ressource) :
    domains, families, equipment_types, brands, document_types,
    products, documents, inventories, users
"""

from __future__ import annotations

import mimetypes
from dataclasses import is_dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from equipements.config import API_BASE_URL, DEFAULTS
from equipements.domain.models import DocumentForm
from equipements.infra.envelopes import ResourceCollection
from equipements.infra.errors import (
    ApiError,
    NetworkError,
    NotFoundError,
    SessionExpiredError,
)
from equipements.infra.logger import log_api_call, log_system_event
from equipements.infra.session import Session


FileInput = Union[str, Path, Tuple[str, bytes, str]]


def _body(payload: Any) -> Any:
    """Charge utile JSON : dataclass (``to_payload``), dict ou ``None``."""
    if payload is None:
        return None
    if hasattr(payload, "to_payload"):
        return payload.to_payload()
    if is_dataclass(payload):
        return {k: v for k, v in asdict(payload).items() if v is not None}
    return dict(payload)


def _file_field(file: FileInput) -> Tuple[str, bytes, str]:
    """Normalise un fichier en ``(nom, contenu, type MIME)``."""
    if isinstance(file, tuple):
        return file
    path = Path(file)
    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return path.name, path.read_bytes(), mime


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"{response.status_code} {response.reason_phrase}".strip()


# -------------------------
# Ressources
# -------------------------

class ResourceEndpoint:
    """Opérations CRUD d'une ressource ``/<ressource>``."""

    def __init__(self, client: "ApiClient", path: str):
        self.client = client
        self.path = path

    async def list(self, **params) -> Any:
        return await self.client.request("GET", self.path, params={k: v for k, v in params.items() if v is not None} or None)

    async def list_all(self) -> Any:
        """Toutes les entrées de la ressource (une seule page hors produits)."""
        return await self.list()

    async def get(self, item_id: int) -> Any:
        return await self.client.request("GET", f"{self.path}/{item_id}")

    async def create(self, payload: Any) -> Any:
        return await self.client.request("POST", self.path, json=_body(payload))

    async def update(self, item_id: int, partial: Any) -> Any:
        return await self.client.request("PUT", f"{self.path}/{item_id}", json=_body(partial))

    async def delete(self, item_id: int) -> Any:
        return await self.client.request("DELETE", f"{self.path}/{item_id}")


class FamiliesEndpoint(ResourceEndpoint):
    async def by_domain(self, domain_id: int) -> Any:
        return await self.client.request("GET", f"/domains/{domain_id}/families")


class EquipmentTypesEndpoint(ResourceEndpoint):
    async def by_family(self, family_id: int) -> Any:
        return await self.client.request("GET", f"/families/{family_id}/equipment-types")


class ProductsEndpoint(ResourceEndpoint):
    async def list(self, page: Optional[int] = None, per_page: Optional[int] = None) -> Any:
        """Liste paginée : seule ressource acceptant ``page``/``per_page``."""
        params: Dict[str, int] = {}
        if page:
            params["page"] = page
        if per_page:
            params["per_page"] = per_page
        return await self.client.request("GET", self.path, params=params or None)

    async def list_all(self, per_page: Optional[int] = None) -> Dict[str, Any]:
        """Parcourt toutes les pages et renvoie ``{data, total}`` avec l'ensemble des produits."""
        collection = ResourceCollection.from_envelope(await self.list(per_page=per_page))
        items = list(collection.items)
        while collection.has_more:
            next_page = ResourceCollection.from_envelope(
                await self.list(page=collection.current_page + 1, per_page=per_page)
            )
            if next_page.current_page <= collection.current_page:
                break
            items.extend(next_page.items)
            collection = next_page
        return {"data": items, "total": max(collection.total, len(items))}

    async def by_brand(self, brand_id: int) -> Any:
        return await self.client.request("GET", f"/brands/{brand_id}/products")

    async def by_equipment_type(self, equipment_type_id: int) -> Any:
        return await self.client.request("GET", f"/equipment-types/{equipment_type_id}/products")

    async def associated(self, product_id: int) -> Any:
        return await self.client.request("GET", f"{self.path}/{product_id}/associated-products")

    async def associate(self, product_id: int, associated_product_id: int) -> Any:
        return await self.client.request(
            "POST", f"{self.path}/{product_id}/associate",
            json={"associated_product_id": associated_product_id},
        )

    async def dissociate(self, product_id: int, associated_product_id: int) -> Any:
        return await self.client.request("DELETE", f"{self.path}/{product_id}/dissociate/{associated_product_id}")

    async def attach_document(self, product_id: int, document_id: int) -> Any:
        return await self.client.request("POST", f"{self.path}/{product_id}/documents/{document_id}")

    async def detach_document(self, product_id: int, document_id: int) -> Any:
        return await self.client.request("DELETE", f"{self.path}/{product_id}/documents/{document_id}")


class DocumentsEndpoint(ResourceEndpoint):
    """Documents : création et mise à jour en multipart (fichier joint)."""

    async def list(self) -> Any:
        return await self.client.request("GET", self.path, params={"with": "products"})

    async def by_product(self, product_id: int) -> Any:
        return await self.client.request("GET", f"/products/{product_id}/documents")

    @staticmethod
    def _multipart(form: DocumentForm, file: Optional[FileInput], method_override: Optional[str] = None) -> List[Tuple[str, Any]]:
        # Les champs texte passent aussi par ``files`` (nom de fichier None)
        # pour que le corps reste multipart même sans fichier joint.
        parts: List[Tuple[str, Any]] = [(name, (None, value)) for name, value in form.to_form_fields()]
        if method_override:
            parts.append(("_method", (None, method_override)))
        if file is not None:
            parts.append(("file", _file_field(file)))
        return parts

    async def create(self, form: DocumentForm, file: FileInput) -> Any:
        if file is None:
            raise ValueError("Un fichier est obligatoire pour créer un document")
        return await self.client.request("POST", self.path, files=self._multipart(form, file))

    async def update(self, item_id: int, form: DocumentForm, file: Optional[FileInput] = None) -> Any:
        """Sans ``file``, le champ est omis et le serveur conserve le fichier existant."""
        return await self.client.request(
            "POST", f"{self.path}/{item_id}",
            files=self._multipart(form, file, method_override="PUT"),
        )

    async def archive(self, item_id: int) -> Any:
        return await self.client.request("PATCH", f"{self.path}/{item_id}/archive")

    async def download(self, item_id: int) -> bytes:
        return await self.client.request("GET", f"{self.path}/{item_id}/download", raw=True)


class InventoriesEndpoint(ResourceEndpoint):
    async def by_product(self, product_id: int) -> Any:
        return await self.client.request("GET", f"/products/{product_id}/inventories")


class UsersEndpoint(ResourceEndpoint):
    async def assign_permission(self, user_id: int, permission: str) -> Any:
        return await self.client.request("POST", f"{self.path}/{user_id}/assign-permission", json={"permission": permission})

    async def remove_permission(self, user_id: int, permission: str) -> Any:
        return await self.client.request("POST", f"{self.path}/{user_id}/remove-permission", json={"permission": permission})

    async def assign_role(self, user_id: int, role: str) -> Any:
        return await self.client.request("POST", f"{self.path}/{user_id}/assign-role", json={"role": role})

    async def remove_role(self, user_id: int, role: str) -> Any:
        return await self.client.request("POST", f"{self.path}/{user_id}/remove-role", json={"role": role})


# -------------------------
# Client
# -------------------------

class ApiClient:
    """
    Passerelle unique vers l'API.

    Usage:
        async with ApiClient() as api:
            await api.login("admin@example.com", "secret")
            domaines = await api.domains.list()
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        session: Optional[Session] = None,
        timeout: float = DEFAULTS.timeout,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else Session()
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

        self.domains = ResourceEndpoint(self, "/domains")
        self.families = FamiliesEndpoint(self, "/families")
        self.equipment_types = EquipmentTypesEndpoint(self, "/equipment-types")
        self.brands = ResourceEndpoint(self, "/brands")
        self.document_types = ResourceEndpoint(self, "/document-types")
        self.products = ProductsEndpoint(self, "/products")
        self.documents = DocumentsEndpoint(self, "/documents")
        self.inventories = InventoriesEndpoint(self, "/inventories")
        self.users = UsersEndpoint(self, "/users")

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, multipart: bool = False) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if not multipart:
            headers["Content-Type"] = "application/json"
        token = self.session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[List[Tuple[str, Any]]] = None,
        raw: bool = False,
    ) -> Any:
        """Envoie une requête et normalise la réponse.

        Raises:
            SessionExpiredError: réponse 401 (la session locale est vidée).
            NotFoundError: réponse 404.
            ApiError: toute autre réponse non 2xx, ou JSON illisible.
            NetworkError: la requête n'a pas pu aboutir.
        """
        try:
            response = await self._http.request(
                method,
                path,
                headers=self._headers(multipart=files is not None),
                json=json,
                params=params,
                files=files,
            )
        except httpx.TimeoutException as e:
            log_api_call(method, path, error=f"timeout: {e}")
            raise NetworkError("Délai d'attente dépassé", cause=e) from e
        except httpx.TransportError as e:
            log_api_call(method, path, error=str(e))
            raise NetworkError(cause=e) from e

        status = response.status_code
        if status == 401:
            log_api_call(method, path, status, error="unauthorized")
            self.session.clear()
            log_system_event("session_expired", {"path": path}, level="warning")
            raise SessionExpiredError()

        if not response.is_success:
            message = _error_message(response)
            log_api_call(method, path, status, error=message)
            error_cls = NotFoundError if status == 404 else ApiError
            raise error_cls(message, status=status, payload=response.content[:1000])

        log_api_call(method, path, status)
        if raw:
            return response.content
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError("Réponse illisible du serveur", status=status) from e

    # -----------------------
    # authentification
    # -----------------------

    def _store_token(self, response: Any) -> None:
        data = response.get("data") if isinstance(response, dict) else None
        token = (data or {}).get("token") if isinstance(data, dict) else None
        if not token and isinstance(response, dict):
            token = response.get("token")
        if not token:
            raise ApiError("Jeton absent de la réponse d'authentification")
        self.session.set_token(token)

    async def login(self, email: str, password: str) -> Any:
        response = await self.request("POST", "/login", json={"email": email, "password": password})
        self._store_token(response)
        log_system_event("login", {"email": email})
        return response

    async def register(self, name: str, email: str, password: str, password_confirmation: str) -> Any:
        response = await self.request(
            "POST", "/register",
            json={
                "name": name,
                "email": email,
                "password": password,
                "password_confirmation": password_confirmation,
            },
        )
        self._store_token(response)
        log_system_event("register", {"email": email})
        return response

    async def logout(self) -> None:
        """Invalide le jeton côté serveur ; le jeton local est effacé dans tous les cas."""
        try:
            await self.request("POST", "/logout")
        finally:
            self.session.clear()
            log_system_event("logout")

    async def get_current_user(self) -> Any:
        return await self.request("GET", "/user")

    def is_authenticated(self) -> bool:
        return self.session.is_authenticated()

    def set_token(self, token: str) -> None:
        self.session.set_token(token)

    def clear_token(self) -> None:
        self.session.clear()
