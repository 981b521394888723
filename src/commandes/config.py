"""
Configuration lue depuis l'environnement, avec des valeurs par défaut
adaptées au développement local.
"""

import os


def get_db_uri() -> str:
    return os.environ.get("COMMANDES_DB_URI", "sqlite:///commandes.db")


def get_smtp_host_and_port() -> tuple[str, int]:
    host = os.environ.get("SMTP_HOST", "localhost")
    port = int(os.environ.get("SMTP_PORT", "587"))
    return host, port


def get_destination_alertes_stock() -> str:
    return os.environ.get("ALERTES_STOCK_DESTINATION", "stock@example.com")


def get_expéditeur_alertes_stock() -> str:
    return os.environ.get("ALERTES_STOCK_EXPEDITEUR", "commandes@example.com")


def get_log_level() -> str:
    return os.environ.get("COMMANDES_LOG_LEVEL", "INFO").upper()
