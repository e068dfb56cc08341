# equipements/infra/session.py
"""
Contexte de session : le jeton porteur courant et son stockage durable.

Le jeton est chargé depuis le fichier au démarrage puis modifié
uniquement par les transitions connexion, inscription, déconnexion et
``set_token``/``clear_token`` ; partout ailleurs il est lu seulement.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from equipements.config import TOKEN_PATH


class TokenStore:
    """Fichier texte contenant le jeton (une ligne)."""

    def __init__(self, path: str = TOKEN_PATH):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            # systèmes de fichiers sans permissions POSIX
            pass

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class MemoryTokenStore(TokenStore):
    """Stockage en mémoire, pour les tests et les sessions éphémères."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class Session:
    """Jeton courant, lu à chaque requête sortante."""

    def __init__(self, store: Optional[TokenStore] = None):
        self.store = store if store is not None else TokenStore()
        self._token: Optional[str] = self.store.load()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def is_authenticated(self) -> bool:
        return bool(self._token)

    def set_token(self, token: str) -> None:
        self._token = token
        self.store.save(token)

    def clear(self) -> None:
        self._token = None
        self.store.clear()
