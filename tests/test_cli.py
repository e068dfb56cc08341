"""
Tests de la CLI Typer, client API branché sur un transport simulé.
"""

import json
from unittest.mock import patch

import httpx
from typer.testing import CliRunner

from conftest import RecordingHandler, make_client
from equipements.adapters.cli import app

runner = CliRunner()


def invoke(handler, args, token="tok-123", **kwargs):
    client, store = make_client(handler, token=token)
    with patch("equipements.adapters.cli._make_client", return_value=client):
        result = runner.invoke(app, args, **kwargs)
    return result, store


def test_domains_list():
    handler = RecordingHandler({
        ("GET", "/api/domains"): (200, {"success": True, "data": [{"id": 1, "name": "Électrique"}]}),
    })
    result, _ = invoke(handler, ["domains", "list"])
    assert result.exit_code == 0, result.output
    assert "Électrique" in result.output


def test_dangling_reference_renders_undefined():
    handler = RecordingHandler({
        ("GET", "/api/families"): (200, {"data": [
            {"id": 1, "name": "Pesage", "domain_id": 1},
            {"id": 2, "name": "Orpheline", "domain_id": 99},
        ]}),
        ("GET", "/api/domains"): (200, {"data": [{"id": 1, "name": "Labo"}]}),
    })
    result, _ = invoke(handler, ["families", "list"])
    assert result.exit_code == 0, result.output
    assert "Labo" in result.output
    assert "Non défini" in result.output


def _paged_products(pages):
    def answer(request):
        page = int(request.url.params.get("page", 1))
        return httpx.Response(200, json={
            "data": pages[page - 1], "current_page": page, "last_page": len(pages),
            "total": sum(len(p) for p in pages),
        })
    return answer


def test_inventories_list_resolves_products_from_later_pages():
    handler = RecordingHandler({
        ("GET", "/api/inventories"): (200, {"data": [{"id": 5, "product_id": 2, "brand_id": 1, "location": "L"}]}),
        ("GET", "/api/products"): _paged_products([[{"id": 1, "name": "Balance"}], [{"id": 2, "name": "Etuve"}]]),
        ("GET", "/api/brands"): (200, {"data": [{"id": 1, "name": "Mettler"}]}),
    })
    result, _ = invoke(handler, ["inventories", "list"])
    assert result.exit_code == 0, result.output
    assert "Etuve" in result.output
    assert "Non défini" not in result.output
    assert len([c for c in handler.calls() if c == ("GET", "/api/products")]) == 2


def test_families_list_by_domain_uses_nested_route():
    handler = RecordingHandler({
        ("GET", "/api/domains/3/families"): (200, {"data": []}),
        ("GET", "/api/domains"): (200, {"data": []}),
    })
    result, _ = invoke(handler, ["families", "list", "--domain-id", "3"])
    assert result.exit_code == 0, result.output
    assert ("GET", "/api/domains/3/families") in handler.calls()


def test_delete_requires_confirmation():
    handler = RecordingHandler({("DELETE", "/api/brands/4"): (200, {"success": True})})
    result, _ = invoke(handler, ["brands", "delete", "4"], input="n\n")
    assert result.exit_code == 0
    assert handler.requests == []


def test_delete_after_confirmation():
    handler = RecordingHandler({("DELETE", "/api/brands/4"): (200, {"success": True})})
    result, _ = invoke(handler, ["brands", "delete", "4"], input="y\n")
    assert result.exit_code == 0, result.output
    assert handler.calls() == [("DELETE", "/api/brands/4")]


def test_delete_with_yes_skips_prompt():
    handler = RecordingHandler({("DELETE", "/api/domains/2"): (204, b"")})
    result, _ = invoke(handler, ["domains", "delete", "2", "--yes"])
    assert result.exit_code == 0, result.output
    assert handler.calls() == [("DELETE", "/api/domains/2")]


def test_session_expired_exits_with_message():
    handler = RecordingHandler(default=(401, {"message": "Unauthenticated."}))
    result, store = invoke(handler, ["products", "list"])
    assert result.exit_code == 1
    assert "Session expirée" in result.output
    assert store.load() is None


def test_api_error_is_reported():
    handler = RecordingHandler({("POST", "/api/domains"): (422, {"message": "Nom déjà utilisé"})})
    result, _ = invoke(handler, ["domains", "create", "--name", "Labo"])
    assert result.exit_code == 1
    assert "Nom déjà utilisé" in result.output


def test_update_sends_partial_payload():
    handler = RecordingHandler({("PUT", "/api/products/5"): (200, {"success": True})})
    result, _ = invoke(handler, ["products", "update", "5", "--status", "maintenance"])
    assert result.exit_code == 0, result.output
    assert handler.json_bodies("PUT") == [{"status": "maintenance"}]


def test_unknown_product_status_is_rejected():
    handler = RecordingHandler()
    result, _ = invoke(handler, ["products", "update", "5", "--status", "broken"])
    assert result.exit_code == 1
    assert handler.requests == []


def test_equipment_type_create_encodes_schema():
    handler = RecordingHandler({("POST", "/api/equipment-types"): (201, {"success": True, "data": {"id": 8}})})
    result, _ = invoke(handler, [
        "equipment-types", "create", "--title", "Balance", "--family-id", "2",
        "--field", "capacity:number:required:Capacité", "--field", "color",
    ])
    assert result.exit_code == 0, result.output
    body = handler.json_bodies("POST")[0]
    assert json.loads(body["additional_fields"]) == {
        "capacity": {"type": "number", "required": True, "label": "Capacité"},
        "color": {"type": "string", "required": False, "label": "color"},
    }


def test_permissions_set_applies_minimal_diff():
    user = {"id": 3, "name": "Ana", "email": "ana@example.com", "roles": [],
            "permissions": [{"id": 1, "name": "view domains"}, {"id": 2, "name": "legacy permission"}]}
    handler = RecordingHandler({
        ("GET", "/api/users/3"): (200, {"success": True, "data": user}),
        ("POST", "/api/users/3/assign-permission"): (200, {"success": True}),
        ("POST", "/api/users/3/remove-permission"): (200, {"success": True}),
    })
    result, _ = invoke(handler, ["permissions", "set", "3", "--perm", "edit domains"])
    assert result.exit_code == 0, result.output
    posted = sorted((path, body["permission"]) for (_, path), body in zip(handler.calls("POST"), handler.json_bodies("POST")))
    assert posted == [
        ("/api/users/3/assign-permission", "edit domains"),
        ("/api/users/3/remove-permission", "view domains"),
    ]


def test_permissions_set_rejects_unknown_names():
    handler = RecordingHandler()
    result, _ = invoke(handler, ["permissions", "set", "3", "--perm", "fly"])
    assert result.exit_code == 1
    assert handler.requests == []


def test_permissions_catalog():
    result = runner.invoke(app, ["permissions", "catalog"])
    assert result.exit_code == 0
    assert "view domains" in result.output
    assert "manage permissions" in result.output


def test_dashboard_reports_failed_section():
    handler = RecordingHandler({
        ("GET", "/api/products"): (200, {"data": [{"id": 1, "status": "active"}], "total": 1}),
        ("GET", "/api/documents"): (500, {"message": "Indisponible"}),
        ("GET", "/api/users"): (200, {"data": []}),
        ("GET", "/api/inventories"): (200, {"data": []}),
    })
    result, _ = invoke(handler, ["dashboard"])
    assert result.exit_code == 0, result.output
    assert "Tableau de bord" in result.output
    assert "Indisponible" in result.output


def test_documents_download_writes_file(tmp_path):
    target = tmp_path / "notice.pdf"
    handler = RecordingHandler({("GET", "/api/documents/9/download"): (200, b"%PDF-1.4 data")})
    result, _ = invoke(handler, ["documents", "download", "9", "--output", str(target)])
    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"%PDF-1.4 data"


def test_documents_update_keeps_existing_file():
    current = {"id": 9, "name": "Notice", "document_type_id": 2, "reference": "NT", "version": "1",
               "issue_date": "2024-01-10T00:00:00.000000Z", "expiry_date": None, "products": [{"id": 4}]}
    handler = RecordingHandler({
        ("GET", "/api/documents/9"): (200, {"success": True, "data": current}),
        ("POST", "/api/documents/9"): (200, {"success": True}),
    })
    result, _ = invoke(handler, ["documents", "update", "9", "--version", "2"])
    assert result.exit_code == 0, result.output
    body = handler.requests[-1].content.decode("utf-8")
    assert 'name="file"' not in body
    assert 'name="_method"' in body
    assert "2024-01-10" in body
    assert 'name="product_ids[]"' in body


def test_login_stores_token():
    handler = RecordingHandler({
        ("POST", "/api/login"): (200, {"success": True, "data": {"user": {"name": "Ana"}, "token": "fresh"}}),
    })
    result, store = invoke(handler, ["login", "--email", "ana@example.com"], token=None, input="secret\n")
    assert result.exit_code == 0, result.output
    assert "Ana" in result.output
    assert store.load() == "fresh"


def test_whoami_without_session():
    handler = RecordingHandler()
    result, _ = invoke(handler, ["whoami"], token=None)
    assert result.exit_code == 1
    assert handler.requests == []


def test_inventories_import_reports_errors(tmp_path):
    import pandas as pd

    path = tmp_path / "inventaires.xlsx"
    pd.DataFrame([{"Produit": 4, "Emplacement": "A"}, {"Produit": 5, "Emplacement": None}]).to_excel(path, index=False)

    def route(request):
        return httpx.Response(201, json={"success": True, "data": {"id": 1}})

    handler = RecordingHandler({("POST", "/api/inventories"): route})
    result, _ = invoke(handler, ["inventories", "import", str(path)])
    assert result.exit_code == 1
    assert "Importées avec succès: 1" in result.output
    assert len(handler.requests) == 1
