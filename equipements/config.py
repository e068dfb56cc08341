# equipements/config.py
"""
Configurations globales et valeurs par défaut de la console d'équipements.
"""

import os
from dataclasses import dataclass
from pathlib import Path


# URL de base de l'API distante
API_BASE_URL = os.environ.get("EQUIPEMENTS_API_URL", "http://127.0.0.1:8000/api")

# Fichier où le jeton d'authentification est conservé entre deux lancements
TOKEN_PATH = os.environ.get(
    "EQUIPEMENTS_TOKEN_PATH",
    str(Path.home() / ".equipements" / "token"),
)


@dataclass
class DefaultConfig:
    """Valeurs par défaut des paramètres du client."""
    timeout: float = 30.0  # secondes par requête
    per_page: int = 15  # pagination des produits
    expiring_window_days: int = 30  # fenêtre "expire bientôt" des documents


# Instance globale des valeurs par défaut
DEFAULTS = DefaultConfig()
