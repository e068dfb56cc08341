# equipements/infra/logger.py
"""
Système de journalisation de la console d'équipements.

Ce module configure et fournit les loggers qui tracent les appels à
l'API distante, les synchronisations de permissions et les événements
système (connexion, déconnexion, erreurs de décodage, imports).
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional


# Flag global pour activer/désactiver la journalisation
ENABLE_LOGGING = False
# Flag global pour activer/désactiver les affichages
ENABLE_OUTPUT = False

def print_system(*args, **kwargs):
    """Print contrôlé par ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)

# Configuration de base des loggers
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configure un logger dédié avec son fichier de sortie.

    Le fichier n'est ouvert qu'à la première écriture, ce qui évite de
    créer des journaux vides quand la journalisation est désactivée.

    Args:
        name: Nom du logger
        log_file: Chemin du fichier de log
        level: Niveau de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger configuré
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    # Supprime les handlers existants (rechargement du module)
    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    file_handler.setFormatter(formatter)

    logger.addHandler(file_handler)

    return logger

# Répertoire des journaux (dans le dossier du paquet)
BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = BASE_DIR / "logs"

api_logger = setup_logger(
    'equipements.api',
    str(LOGS_DIR / 'api.log')
)

permissions_logger = setup_logger(
    'equipements.permissions',
    str(LOGS_DIR / 'permissions.log')
)

system_logger = setup_logger(
    'equipements.system',
    str(LOGS_DIR / 'system.log')
)

def log_api_call(method: str, path: str, status: Optional[int] = None, error: Optional[str] = None) -> None:
    """
    Enregistre un appel à l'API distante.

    Args:
        method: Verbe HTTP
        path: Chemin relatif à l'URL de base
        status: Code HTTP reçu (absent en cas d'échec réseau)
        error: Message d'erreur (optionnel)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    if error:
        api_logger.error(f"API_FAILED: {method} {path} - status={status} - {error}")
    else:
        api_logger.info(f"API_OK: {method} {path} - status={status}")

def log_permission_sync(user_id: int, added: list, removed: list, error: Optional[str] = None) -> None:
    """
    Enregistre une synchronisation de permissions d'un utilisateur.

    Args:
        user_id: Identifiant de l'utilisateur
        added: Noms des permissions accordées
        removed: Noms des permissions retirées
        error: Message d'erreur (optionnel)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {"user_id": user_id, "added": added, "removed": removed}
    if error:
        permissions_logger.error(f"SYNC_FAILED: {error} - {log_data}")
    else:
        permissions_logger.info(f"SYNC_SUCCESS: {log_data}")

def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Journal des événements système.

    Args:
        event: Description de l'événement
        details: Détails supplémentaires (optionnel)
        level: Niveau du log (info, warning, error)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "event": event,
        "details": details or {}
    }
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")

def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """
    Journal des opérations sur fichiers (import XLSX, téléchargement).

    Args:
        operation: Type d'opération (import, download)
        file_path: Chemin du fichier
        rows_processed: Nombre de lignes traitées
        **kwargs: Données supplémentaires
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "operation": operation,
        "file_path": file_path,
        "rows_processed": rows_processed,
        **kwargs
    }
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")

def get_log_summary(log_type: str = "api", lines: int = 100) -> Optional[str]:
    """
    Renvoie les dernières lignes d'un journal.

    Args:
        log_type: Type de journal (api, permissions, system)
        lines: Nombre de lignes à renvoyer

    Returns:
        Contenu du journal sous forme de chaîne
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return None

    log_files = {
        "api": LOGS_DIR / "api.log",
        "permissions": LOGS_DIR / "permissions.log",
        "system": LOGS_DIR / "system.log",
    }

    log_file = log_files.get(log_type)
    if not log_file or not log_file.exists():
        return f"Journal {log_type} introuvable."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            all_lines = f.readlines()
            recent_lines = all_lines[-lines:] if len(all_lines) > lines else all_lines
            return ''.join(recent_lines)
    except OSError as e:
        return f"Erreur de lecture du journal {log_type}: {str(e)}"
