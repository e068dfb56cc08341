# equipements/infra/errors.py
"""
Erreurs remontées par le client API.

Toutes dérivent de ``ApiError`` et portent un message lisible destiné à
l'opérateur ; la couche d'interface n'a qu'un type à intercepter.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple


SESSION_EXPIRED_MESSAGE = "Session expirée, veuillez vous reconnecter"
NETWORK_ERROR_MESSAGE = "Impossible de joindre le serveur"


class ApiError(Exception):
    """Réponse non 2xx (hors 401) ou échec d'appel."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload


class NotFoundError(ApiError):
    """404 : l'identifiant demandé n'existe pas (ou plus)."""


class SessionExpiredError(ApiError):
    """401 : le jeton a été refusé, la session locale a été fermée."""

    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE):
        super().__init__(message, status=401)


class NetworkError(ApiError):
    """La requête n'a pas abouti (connexion refusée, délai dépassé...)."""

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PermissionSyncError(ApiError):
    """Au moins un ajout ou retrait de permission a échoué.

    ``succeeded`` et ``failed`` listent les opérations ``(action, nom)``
    (``action`` vaut ``'add'`` ou ``'remove'``) ; les échecs sont
    accompagnés de leur exception.
    """

    def __init__(
        self,
        message: str,
        succeeded: List[Tuple[str, str]],
        failed: List[Tuple[str, str, BaseException]],
    ):
        super().__init__(message)
        self.succeeded = succeeded
        self.failed = failed
