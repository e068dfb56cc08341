"""
Tests du client HTTP : en-têtes, erreurs, session, documents multipart
et pagination des produits.
"""

import httpx
import pytest

from conftest import RecordingHandler, call, make_client
from equipements.domain.models import DocumentForm, DomainCreate, DomainUpdate, InventoryCreate
from equipements.infra.errors import (
    SESSION_EXPIRED_MESSAGE,
    ApiError,
    NetworkError,
    NotFoundError,
    SessionExpiredError,
)


def _form(**overrides):
    values = dict(
        name="Notice",
        document_type_id=2,
        reference="NT-01",
        version="1.0",
        issue_date="2024-01-10",
        expiry_date="2025-01-10",
        product_ids=[4, 7],
    )
    values.update(overrides)
    return DocumentForm(**values)


RESOURCES = [
    "domains", "families", "equipment_types", "brands", "document_types",
    "products", "documents", "inventories", "users",
]

OPERATIONS = (
    [(f"{r}.list", lambda api, r=r: getattr(api, r).list()) for r in RESOURCES]
    + [(f"{r}.get", lambda api, r=r: getattr(api, r).get(1)) for r in RESOURCES]
    + [(f"{r}.delete", lambda api, r=r: getattr(api, r).delete(1)) for r in RESOURCES]
    + [(f"{r}.create", lambda api, r=r: getattr(api, r).create({"name": "x"}))
       for r in RESOURCES if r != "documents"]
    + [(f"{r}.update", lambda api, r=r: getattr(api, r).update(1, {"name": "x"}))
       for r in RESOURCES if r != "documents"]
    + [
        ("documents.create", lambda api: api.documents.create(_form(), ("a.pdf", b"%PDF", "application/pdf"))),
        ("documents.update", lambda api: api.documents.update(1, _form())),
        ("documents.download", lambda api: api.documents.download(1)),
        ("documents.archive", lambda api: api.documents.archive(1)),
        ("families.by_domain", lambda api: api.families.by_domain(1)),
        ("products.associate", lambda api: api.products.associate(1, 2)),
        ("users.assign_permission", lambda api: api.users.assign_permission(1, "view domains")),
        ("get_current_user", lambda api: api.get_current_user()),
    ]
)


@pytest.mark.parametrize("name,operation", OPERATIONS, ids=[o[0] for o in OPERATIONS])
def test_401_clears_session_on_every_endpoint(name, operation):
    handler = RecordingHandler(default=(401, {"message": "Unauthenticated."}))
    client, store = make_client(handler)

    with pytest.raises(SessionExpiredError) as exc:
        call(client, operation)

    assert exc.value.message == SESSION_EXPIRED_MESSAGE
    assert exc.value.status == 401
    assert client.is_authenticated() is False
    assert store.load() is None


def test_headers_carry_bearer_token_and_json_content_type():
    handler = RecordingHandler({("GET", "/api/domains"): (200, {"success": True, "data": []})})
    client, _ = make_client(handler, token="abc")

    call(client, lambda api: api.domains.list())

    request = handler.requests[0]
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Authorization"] == "Bearer abc"


def test_no_authorization_header_without_token():
    handler = RecordingHandler({("GET", "/api/brands"): (200, {"data": []})})
    client, _ = make_client(handler, token=None)

    call(client, lambda api: api.brands.list())

    assert "Authorization" not in handler.requests[0].headers


def test_logout_is_visible_to_next_request():
    handler = RecordingHandler({
        ("POST", "/api/logout"): (200, {"success": True}),
        ("GET", "/api/domains"): (200, {"data": []}),
    })
    client, _ = make_client(handler, token="abc")

    async def action(api):
        await api.logout()
        await api.domains.list()

    call(client, action)

    assert handler.requests[0].headers["Authorization"] == "Bearer abc"
    assert "Authorization" not in handler.requests[1].headers


def test_server_message_is_used_for_api_error():
    handler = RecordingHandler({
        ("POST", "/api/domains"): (422, {"message": "Le nom est obligatoire", "errors": {"name": ["requis"]}}),
    })
    client, store = make_client(handler)

    with pytest.raises(ApiError) as exc:
        call(client, lambda api: api.domains.create(DomainCreate(name="")))

    assert exc.value.message == "Le nom est obligatoire"
    assert exc.value.status == 422
    # seule une 401 ferme la session
    assert store.load() == "tok-123"


def test_status_line_is_used_when_body_has_no_message():
    handler = RecordingHandler({("GET", "/api/brands"): (500, b"boom")})
    client, _ = make_client(handler)

    with pytest.raises(ApiError) as exc:
        call(client, lambda api: api.brands.list())

    assert exc.value.message == "500 Internal Server Error"


def test_404_raises_not_found():
    handler = RecordingHandler()
    client, _ = make_client(handler)

    with pytest.raises(NotFoundError):
        call(client, lambda api: api.products.get(999))


def test_transport_failure_raises_network_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, store = make_client(boom)

    with pytest.raises(NetworkError):
        call(client, lambda api: api.domains.list())
    assert store.load() == "tok-123"


def test_timeout_raises_network_error():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = make_client(slow)

    with pytest.raises(NetworkError) as exc:
        call(client, lambda api: api.documents.list())
    assert "Délai" in exc.value.message


def test_success_returns_envelope_as_is():
    envelope = {"success": True, "data": [{"id": 1, "name": "Électrique"}]}
    handler = RecordingHandler({("GET", "/api/domains"): (200, envelope)})
    client, _ = make_client(handler)

    assert call(client, lambda api: api.domains.list()) == envelope


def test_empty_body_returns_none():
    handler = RecordingHandler({("DELETE", "/api/brands/3"): (204, b"")})
    client, _ = make_client(handler)

    assert call(client, lambda api: api.brands.delete(3)) is None


def test_update_sends_only_provided_fields():
    handler = RecordingHandler({("PUT", "/api/domains/5"): (200, {"success": True, "data": {"id": 5}})})
    client, _ = make_client(handler)

    call(client, lambda api: api.domains.update(5, DomainUpdate(description="Nouveau")))

    assert handler.json_bodies("PUT") == [{"description": "Nouveau"}]


def test_inventory_additional_fields_are_sent_as_json_string():
    handler = RecordingHandler({("POST", "/api/inventories"): (201, {"success": True, "data": {"id": 1}})})
    client, _ = make_client(handler)
    inventory = InventoryCreate(product_id=4, location="Atelier", additional_fields={"voltage": "220V"})

    call(client, lambda api: api.inventories.create(inventory))

    body = handler.json_bodies("POST")[0]
    assert body["additional_fields"] == '{"voltage": "220V"}'
    assert body["quantity"] == 1


def test_products_list_is_paginated():
    page = {"data": [{"id": 1}], "current_page": 2, "last_page": 3, "per_page": 10, "total": 25}
    handler = RecordingHandler({("GET", "/api/products"): (200, page)})
    client, _ = make_client(handler)

    result = call(client, lambda api: api.products.list(page=2, per_page=10))

    assert result == page
    params = handler.requests[0].url.params
    assert params["page"] == "2"
    assert params["per_page"] == "10"


def test_products_list_all_walks_every_page():
    def answer(request):
        page = int(request.url.params.get("page", 1))
        return httpx.Response(200, json={"data": [{"id": page}], "current_page": page, "last_page": 3, "total": 3})

    handler = RecordingHandler({("GET", "/api/products"): answer})
    client, _ = make_client(handler)

    result = call(client, lambda api: api.products.list_all())

    assert result == {"data": [{"id": 1}, {"id": 2}, {"id": 3}], "total": 3}
    assert [r.url.params.get("page") for r in handler.requests] == [None, "2", "3"]


def test_products_list_all_stops_when_page_does_not_advance():
    page = {"data": [{"id": 1}], "current_page": 1, "last_page": 4, "total": 4}
    handler = RecordingHandler({("GET", "/api/products"): (200, page)})
    client, _ = make_client(handler)

    result = call(client, lambda api: api.products.list_all())

    assert result["data"] == [{"id": 1}]
    assert result["total"] == 4
    assert len(handler.requests) == 2


def test_documents_list_includes_products():
    handler = RecordingHandler({("GET", "/api/documents"): (200, {"data": []})})
    client, _ = make_client(handler)

    call(client, lambda api: api.documents.list())

    assert handler.requests[0].url.params["with"] == "products"


def test_document_create_is_multipart_with_file():
    handler = RecordingHandler({("POST", "/api/documents"): (201, {"success": True, "data": {"id": 9}})})
    client, _ = make_client(handler)

    call(client, lambda api: api.documents.create(_form(), ("notice.pdf", b"%PDF-1.4", "application/pdf")))

    request = handler.requests[0]
    body = request.content.decode("latin-1")
    assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert request.headers["Accept"] == "application/json"
    assert 'name="file"; filename="notice.pdf"' in body
    assert body.count('name="product_ids[]"') == 2
    assert 'name="_method"' not in body


def test_document_create_requires_file():
    client, _ = make_client(RecordingHandler())

    with pytest.raises(ValueError):
        call(client, lambda api: api.documents.create(_form(), None))


def test_document_update_without_file_omits_file_field():
    handler = RecordingHandler({("POST", "/api/documents/9"): (200, {"success": True, "data": {"id": 9}})})
    client, _ = make_client(handler)

    call(client, lambda api: api.documents.update(9, _form(expiry_date=None)))

    request = handler.requests[0]
    body = request.content.decode("utf-8")
    assert request.method == "POST"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert 'name="file"' not in body
    assert 'name="_method"' in body and "PUT" in body
    assert 'name="expiry_date"' not in body
    assert 'name="reference"' in body


def test_document_update_with_file_from_path(tmp_path):
    pdf = tmp_path / "certificat.pdf"
    pdf.write_bytes(b"%PDF-1.7 certificat")
    handler = RecordingHandler({("POST", "/api/documents/9"): (200, {"success": True})})
    client, _ = make_client(handler)

    call(client, lambda api: api.documents.update(9, _form(), str(pdf)))

    body = handler.requests[0].content.decode("latin-1")
    assert 'filename="certificat.pdf"' in body
    assert "Content-Type: application/pdf" in body


def test_download_returns_raw_bytes():
    handler = RecordingHandler({("GET", "/api/documents/9/download"): (200, b"\x00\x01binary")})
    client, _ = make_client(handler)

    assert call(client, lambda api: api.documents.download(9)) == b"\x00\x01binary"


def test_archive_uses_patch():
    handler = RecordingHandler({("PATCH", "/api/documents/9/archive"): (200, {"success": True})})
    client, _ = make_client(handler)

    call(client, lambda api: api.documents.archive(9))

    assert handler.calls() == [("PATCH", "/api/documents/9/archive")]


def test_association_routes():
    handler = RecordingHandler(default=(200, {"success": True}))
    client, _ = make_client(handler)

    async def action(api):
        await api.products.associate(1, 2)
        await api.products.dissociate(1, 2)
        await api.products.attach_document(1, 5)
        await api.products.detach_document(1, 5)
        await api.products.associated(1)
        await api.inventories.by_product(1)

    call(client, action)

    assert handler.calls() == [
        ("POST", "/api/products/1/associate"),
        ("DELETE", "/api/products/1/dissociate/2"),
        ("POST", "/api/products/1/documents/5"),
        ("DELETE", "/api/products/1/documents/5"),
        ("GET", "/api/products/1/associated-products"),
        ("GET", "/api/products/1/inventories"),
    ]
    assert handler.json_bodies("POST")[0] == {"associated_product_id": 2}


def test_login_stores_token():
    handler = RecordingHandler({
        ("POST", "/api/login"): (200, {"success": True, "data": {"user": {"id": 1}, "token": "new-token"}}),
    })
    client, store = make_client(handler, token=None)

    call(client, lambda api: api.login("admin@example.com", "secret"))

    assert client.is_authenticated()
    assert store.load() == "new-token"
    assert handler.json_bodies("POST") == [{"email": "admin@example.com", "password": "secret"}]


def test_register_accepts_top_level_token():
    handler = RecordingHandler({("POST", "/api/register"): (201, {"token": "t2", "user": {"id": 2}})})
    client, store = make_client(handler, token=None)

    call(client, lambda api: api.register("Ana", "ana@example.com", "pw", "pw"))

    assert store.load() == "t2"


def test_login_failure_keeps_session_empty():
    handler = RecordingHandler({("POST", "/api/login"): (422, {"message": "Identifiants invalides"})})
    client, store = make_client(handler, token=None)

    with pytest.raises(ApiError, match="Identifiants invalides"):
        call(client, lambda api: api.login("x@example.com", "bad"))
    assert store.load() is None


def test_logout_clears_token_even_when_server_fails():
    handler = RecordingHandler({("POST", "/api/logout"): (500, {"message": "Erreur serveur"})})
    client, store = make_client(handler)

    with pytest.raises(ApiError):
        call(client, lambda api: api.logout())

    assert client.is_authenticated() is False
    assert store.load() is None
