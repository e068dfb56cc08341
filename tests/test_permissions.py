"""
Tests du catalogue de permissions, du calcul de différence et de la synchronisation.
"""

import asyncio
import json

import httpx
import pytest

from conftest import RecordingHandler, call, make_client
from equipements.domain.permissions import (
    AVAILABLE_PERMISSIONS,
    diff_permissions,
    find_by_name,
    ids_for_names,
    names_for_ids,
    permissions_by_category,
)
from equipements.infra.errors import PermissionSyncError
from equipements.usecases.permissions import PermissionEditor, sync_user_permissions


def _user(uid, names):
    return {
        "id": uid,
        "name": f"User {uid}",
        "email": f"user{uid}@example.com",
        "roles": [{"id": 1, "name": "admin", "guard_name": "web"}],
        "permissions": [{"id": i, "name": n, "guard_name": "web"} for i, n in enumerate(names, 1)],
    }


# -------- catalogue --------

def test_catalog_ids_and_names_are_unique():
    ids = [p.id for p in AVAILABLE_PERMISSIONS]
    names = [p.name for p in AVAILABLE_PERMISSIONS]
    assert len(ids) == len(set(ids)) == 39
    assert len(names) == len(set(names))


def test_catalog_groups_by_category_in_order():
    categories = permissions_by_category()
    assert list(categories)[0] == "Domaines"
    assert [p.name for p in categories["Domaines"]] == [
        "view domains", "create domains", "edit domains", "delete domains",
    ]
    assert sum(len(v) for v in categories.values()) == len(AVAILABLE_PERMISSIONS)


def test_name_matching_is_exact():
    assert find_by_name("view domains") is not None
    assert find_by_name("View Domains") is None
    assert ids_for_names(["view domains", "legacy permission"]) == {find_by_name("view domains").id}


def test_names_for_ids_follow_catalog_order():
    ids = {find_by_name("edit domains").id, find_by_name("view domains").id}
    assert names_for_ids(ids) == ["view domains", "edit domains"]


# -------- diff --------

def test_diff_is_minimal():
    diff = diff_permissions(["view domains", "edit domains"], ["view domains", "delete domains"])
    assert diff.to_add == ["delete domains"]
    assert diff.to_remove == ["edit domains"]


def test_diff_ignores_order_and_duplicates():
    diff = diff_permissions(["edit domains", "view domains"], ["view domains", "edit domains", "view domains"])
    assert diff.is_empty


def test_unrecognized_held_permissions_are_never_removed():
    diff = diff_permissions(["view domains", "legacy permission"], [])
    assert diff.to_remove == ["view domains"]
    assert diff.to_add == []


# -------- synchronisation --------

def test_noop_issues_zero_calls():
    handler = RecordingHandler(default=(200, {"success": True}))
    client, _ = make_client(handler)

    result = call(client, lambda api: sync_user_permissions(api, 1, ["view domains"], ["view domains"]))

    assert result.noop
    assert handler.requests == []


def test_sync_issues_one_call_per_change():
    handler = RecordingHandler(default=(200, {"success": True}))
    client, _ = make_client(handler)

    result = call(client, lambda api: sync_user_permissions(
        api, 7, ["view domains", "edit domains"], ["view domains", "delete domains", "view families"],
    ))

    assert sorted(result.added) == ["delete domains", "view families"]
    assert result.removed == ["edit domains"]
    assert sorted(handler.calls()) == [
        ("POST", "/api/users/7/assign-permission"),
        ("POST", "/api/users/7/assign-permission"),
        ("POST", "/api/users/7/remove-permission"),
    ]
    sent = sorted(b["permission"] for b in handler.json_bodies())
    assert sent == ["delete domains", "edit domains", "view families"]


def test_partial_failure_reports_and_does_not_roll_back():
    def route(request):
        name = json.loads(request.content)["permission"]
        if name == "view families":
            return httpx.Response(500, json={"message": "Erreur lors de l'attribution"})
        return httpx.Response(200, json={"success": True})

    handler = RecordingHandler(default=route)
    client, _ = make_client(handler)

    with pytest.raises(PermissionSyncError) as exc:
        call(client, lambda api: sync_user_permissions(
            api, 3, ["edit domains"], ["delete domains", "view families"],
        ))

    err = exc.value
    assert err.message == "Erreur lors de l'attribution"
    assert sorted(err.succeeded) == [("add", "delete domains"), ("remove", "edit domains")]
    assert [(a, n) for a, n, _ in err.failed] == [("add", "view families")]
    # les trois appels ont été émis ; aucun appel compensatoire
    assert len(handler.requests) == 3


# -------- éditeur --------

def _editor_handler(users, after=None):
    answers = [users, after or users]

    def list_users(request):
        data = answers.pop(0) if len(answers) > 1 else answers[0]
        return httpx.Response(200, json={"success": True, "data": data})

    return RecordingHandler({
        ("GET", "/api/users"): list_users,
        ("POST", "/api/users/1/assign-permission"): (200, {"success": True}),
        ("POST", "/api/users/1/remove-permission"): (200, {"success": True}),
    })


def test_editor_state_is_independent_per_user():
    handler = _editor_handler([_user(1, ["view domains"]), _user(2, ["view domains", "legacy permission"])])
    client, _ = make_client(handler)
    editor = PermissionEditor(client)

    call(client, lambda api: editor.load())
    editor.toggle(1, find_by_name("edit domains").id, True)

    assert editor.state(1).selected_names == ["view domains", "edit domains"]
    assert editor.state(2).selected_names == ["view domains"]
    assert editor.state(2).unrecognized_names == ["legacy permission"]


def test_editor_rejects_unknown_ids_and_users():
    client, _ = make_client(_editor_handler([_user(1, [])]))
    editor = PermissionEditor(client)
    call(client, lambda api: editor.load())

    with pytest.raises(ValueError):
        editor.toggle(1, 999, True)
    with pytest.raises(KeyError):
        editor.state(42)


def test_editor_save_reloads_after_success():
    handler = _editor_handler([_user(1, ["view domains"])], after=[_user(1, ["edit domains"])])
    client, _ = make_client(handler)
    editor = PermissionEditor(client)

    async def action(api):
        await editor.load()
        editor.select(1, {find_by_name("edit domains").id})
        return await editor.save(1)

    result = call(client, action)

    assert result.added == ["edit domains"]
    assert result.removed == ["view domains"]
    assert handler.calls("GET") == [("GET", "/api/users"), ("GET", "/api/users")]
    assert editor.state(1).current_names == ["edit domains"]


def test_editor_save_keeps_pending_edits_of_other_users():
    handler = _editor_handler([_user(1, []), _user(2, [])], after=[_user(1, ["view families"]), _user(2, [])])
    client, _ = make_client(handler)
    editor = PermissionEditor(client)
    pending = find_by_name("edit domains").id

    async def action(api):
        await editor.load()
        editor.toggle(2, pending, True)
        editor.toggle(1, find_by_name("view families").id, True)
        await editor.save(1)

    call(client, action)

    assert pending in editor.state(2).selected_ids
    assert editor.state(2).current_names == []
    assert editor.state(1).selected_names == ["view families"]
    assert editor.state(2).has_pending_changes
    assert not editor.state(1).has_pending_changes
    assert ("POST", "/api/users/2/assign-permission") not in handler.calls("POST")


def test_fetch_users_leaves_editor_state_untouched():
    handler = _editor_handler([_user(1, ["view domains"])])
    client, _ = make_client(handler)
    editor = PermissionEditor(client)

    async def action(api):
        await editor.load()
        editor.toggle(1, find_by_name("edit domains").id, True)
        return await editor.fetch_users()

    users = call(client, action)

    assert [u.id for u in users] == [1]
    assert editor.state(1).selected_names == ["view domains", "edit domains"]


def test_editor_save_without_changes_sends_nothing():
    handler = _editor_handler([_user(1, ["view domains", "legacy permission"])])
    client, _ = make_client(handler)
    editor = PermissionEditor(client)

    async def action(api):
        await editor.load()
        return await editor.save(1)

    result = call(client, action)

    assert result.noop
    assert handler.calls() == [("GET", "/api/users")]


def test_editor_keeps_selection_after_partial_failure():
    handler = RecordingHandler({
        ("GET", "/api/users"): (200, {"data": [_user(1, [])]}),
        ("POST", "/api/users/1/assign-permission"): (500, {"message": "Refusé"}),
    })
    client, _ = make_client(handler)
    editor = PermissionEditor(client)
    wanted = {find_by_name("view domains").id}

    async def action(api):
        await editor.load()
        editor.select(1, wanted)
        with pytest.raises(PermissionSyncError):
            await editor.save(1)

    call(client, action)

    assert editor.state(1).selected_ids == wanted
    assert handler.calls("GET") == [("GET", "/api/users")]


def test_concurrent_saves_for_different_users_do_not_interfere():
    users = [_user(1, []), _user(2, [])]
    handler = RecordingHandler({
        ("GET", "/api/users"): (200, {"data": users}),
        ("POST", "/api/users/1/assign-permission"): (200, {"success": True}),
        ("POST", "/api/users/2/assign-permission"): (200, {"success": True}),
    })
    client, _ = make_client(handler)

    async def action(api):
        return await asyncio.gather(
            sync_user_permissions(api, 1, [], ["view domains"]),
            sync_user_permissions(api, 2, [], ["view families"]),
        )

    first, second = call(client, action)

    assert first.added == ["view domains"]
    assert second.added == ["view families"]
