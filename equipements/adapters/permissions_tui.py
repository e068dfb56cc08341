from __future__ import annotations

from typing import List, Optional

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical, ScrollableContainer
from textual.widgets import Button, Header, Footer, Static, Tree, Checkbox
from textual.screen import ModalScreen, Screen

from equipements.domain.models import User
from equipements.domain.permissions import PermissionDiff, diff_permissions, permissions_by_category
from equipements.infra.api_client import ApiClient
from equipements.infra.errors import ApiError, PermissionSyncError, SessionExpiredError
from equipements.infra.logger import LOGS_DIR, log_system_event, get_log_summary
from equipements.usecases.permissions import PermissionEditor


class OutputScreen(Screen):
    """Screen to display text output (logs)."""

    BINDINGS = [
        ("escape", "app.pop_screen", "Retour"),
        ("q", "app.pop_screen", "Retour"),
    ]

    def __init__(self, title: str, content: str) -> None:
        super().__init__()
        self.title = title
        self.content = content

    def compose(self) -> ComposeResult:
        yield Header()
        with ScrollableContainer():
            yield Static(f"📋 {self.title}", classes="output-title")
            yield Static(self.content, markup=False)
        yield Footer()


class UsersTree(Tree):
    """Navigation tree: one leaf per user."""

    def __init__(self) -> None:
        super().__init__("👥 Utilisateurs")

    def show_users(self, users: List[User]) -> None:
        self.root.remove_children()
        for user in users:
            self.root.add_leaf(f"{user.name} <{user.email}>", data=user.id)


class PermissionMatrix(ScrollableContainer):
    """Checkbox grid of the catalog, grouped by category."""

    def compose(self) -> ComposeResult:
        for category, perms in permissions_by_category().items():
            yield Static(category, classes="category-title")
            for permission in perms:
                yield Checkbox(permission.name, id=f"perm-{permission.id}", disabled=True)

    def show_selection(self, selected_ids: Optional[set]) -> None:
        """Coche les ids sélectionnés ; ``None`` désactive la grille."""
        for checkbox in self.query(Checkbox):
            permission_id = int(checkbox.id.split("-", 1)[1])
            with checkbox.prevent(Checkbox.Changed):
                checkbox.value = bool(selected_ids) and permission_id in selected_ids
            checkbox.disabled = selected_ids is None


class ConfirmSaveScreen(ModalScreen):
    """Modal summary of the changes before they are sent."""

    BINDINGS = [
        ("escape", "cancel", "Annuler"),
    ]

    def __init__(self, user_name: str, diff: PermissionDiff) -> None:
        super().__init__()
        self.user_name = user_name
        self.diff = diff

    def compose(self) -> ComposeResult:
        lines = [f"+ {n}" for n in self.diff.to_add] + [f"- {n}" for n in self.diff.to_remove]
        with Container(id="confirm-modal"):
            yield Static(f"💾 Permissions de {self.user_name}", classes="modal-title")
            with Vertical():
                yield Static("\n".join(lines), markup=False)
                with Horizontal():
                    yield Button("💾 Sauvegarder", variant="primary", id="confirm-btn")
                    yield Button("❌ Annuler", id="cancel-btn")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-btn")

    def action_cancel(self) -> None:
        self.dismiss(False)


class PermissionsApp(App):
    """Éditeur des permissions des utilisateurs."""

    CSS = """
    Screen {
        background: #001122;
    }

    .modal-title, .output-title {
        background: #003366;
        color: #ffffff;
        text-align: center;
        padding: 1;
        margin-bottom: 1;
    }

    .category-title {
        background: #004488;
        color: #ffffff;
        padding: 0 1;
        margin-top: 1;
    }

    Container#confirm-modal {
        background: #112233;
        border: solid #00aaff;
        width: 70;
        height: auto;
        margin: 2;
    }

    .left-panel {
        width: 40;
    }

    Tree {
        background: #001a33;
        color: #ccddff;
    }

    #status {
        background: #003366;
        color: #ffffff;
        padding: 1;
    }

    Button {
        margin: 1;
    }
    """

    TITLE = "🔐 Équipements - Permissions"
    BINDINGS = [
        ("q", "quit", "Quitter"),
        ("s", "save", "Sauvegarder"),
        ("r", "reload", "Recharger"),
        ("l", "show_logs", "Journaux"),
    ]

    def __init__(self, client: Optional[ApiClient] = None) -> None:
        super().__init__()
        self.client = client if client is not None else ApiClient()
        self.editor = PermissionEditor(self.client)
        self.current_user_id: Optional[int] = None
        self._generation = 0

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            with Container(classes="left-panel"):
                yield UsersTree()
            with Vertical():
                yield Static("Sélectionnez un utilisateur.", id="status")
                yield PermissionMatrix()
                with Horizontal():
                    yield Button("💾 Sauvegarder", variant="primary", id="save-btn")
                    yield Button("🔄 Recharger", id="reload-btn")
        yield Footer()

    async def on_mount(self) -> None:
        await self.action_reload()

    async def on_unmount(self) -> None:
        await self.client.aclose()

    async def action_reload(self) -> None:
        """Recharge les utilisateurs ; une réponse arrivée après un rechargement plus récent est ignorée."""
        self._generation += 1
        generation = self._generation
        log_system_event("tui_reload")
        try:
            users = await self.editor.fetch_users()
        except ApiError as e:
            if generation == self._generation:
                self.notify(f"❌ {e.message}", severity="error")
            return
        if generation != self._generation:
            return
        self.editor.apply(users)
        self.query_one(UsersTree).show_users(users)
        if self.current_user_id not in self.editor.states:
            self.current_user_id = None
        self.show_user()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        if event.node.data is None:
            return
        self.current_user_id = event.node.data
        self.show_user()

    def show_user(self) -> None:
        status = self.query_one("#status", Static)
        matrix = self.query_one(PermissionMatrix)
        if self.current_user_id is None:
            status.update("Sélectionnez un utilisateur.")
            matrix.show_selection(None)
            return
        state = self.editor.state(self.current_user_id)
        text = f"👤 {state.user.name} <{state.user.email}> - {len(state.selected_ids)} permission(s)"
        if state.unrecognized_names:
            text += f"\nHors catalogue (conservées): {', '.join(state.unrecognized_names)}"
        status.update(text)
        matrix.show_selection(state.selected_ids)

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        if self.current_user_id is None or not event.checkbox.id:
            return
        permission_id = int(event.checkbox.id.split("-", 1)[1])
        self.editor.toggle(self.current_user_id, permission_id, event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            self.action_save()
        elif event.button.id == "reload-btn":
            self.run_worker(self.action_reload(), exclusive=True)

    def action_save(self) -> None:
        if self.current_user_id is None:
            self.notify("Sélectionnez un utilisateur.", severity="warning")
            return
        user_id = self.current_user_id
        state = self.editor.state(user_id)
        diff = diff_permissions(state.current_names, state.selected_names)
        if diff.is_empty:
            self.notify("Aucune modification.", timeout=2)
            return

        def on_confirm(confirmed: Optional[bool]) -> None:
            if confirmed:
                self.run_worker(self.save_user(user_id), exclusive=True)

        self.push_screen(ConfirmSaveScreen(state.user.name, diff), on_confirm)

    async def save_user(self, user_id: int) -> None:
        try:
            result = await self.editor.save(user_id)
        except PermissionSyncError as e:
            self.notify(f"❌ {e.message} ({len(e.failed)} échec(s), {len(e.succeeded)} appliqué(s))", severity="error")
            return
        except SessionExpiredError as e:
            self.notify(f"🔒 {e.message}", severity="error")
            return
        except ApiError as e:
            self.notify(f"❌ {e.message}", severity="error")
            return
        self.notify(f"✅ {len(result.added)} ajout(s), {len(result.removed)} retrait(s)", timeout=3)
        self.query_one(UsersTree).show_users([s.user for s in self.editor.states.values()])
        if self.current_user_id not in self.editor.states:
            self.current_user_id = None
        self.show_user()

    def action_show_logs(self) -> None:
        content = get_log_summary("permissions", lines=500)
        if content is None:
            content = f"Journalisation désactivée (relancer avec --verbose).\nDossier: {LOGS_DIR}"
        self.push_screen(OutputScreen("Journal des permissions", content))


def main() -> None:
    """Run the permissions editor."""
    app = PermissionsApp()
    app.run()


if __name__ == "__main__":
    main()
