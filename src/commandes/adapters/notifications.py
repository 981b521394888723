"""
Adapter pour les alertes de stock.

Le handler décide quoi dire ; l'adapter décide comment le
transmettre. En production, un email par alerte via SMTP.
"""

from __future__ import annotations

import abc
import logging
import smtplib
from email.message import EmailMessage

from commandes import config

logger = logging.getLogger(__name__)


class AbstractNotifications(abc.ABC):
    @abc.abstractmethod
    def send(self, destination: str, sujet: str, message: str) -> None:
        raise NotImplementedError


class EmailNotifications(AbstractNotifications):
    """Alertes envoyées par email, une connexion SMTP par message."""

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        expéditeur: str | None = None,
    ):
        défaut_host, défaut_port = config.get_smtp_host_and_port()
        self.smtp_host = smtp_host or défaut_host
        self.smtp_port = smtp_port or défaut_port
        self.expéditeur = expéditeur or config.get_expéditeur_alertes_stock()

    def composer(self, destination: str, sujet: str, message: str) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self.expéditeur
        email["To"] = destination
        email["Subject"] = sujet
        email.set_content(message)
        return email

    def send(self, destination: str, sujet: str, message: str) -> None:
        email = self.composer(destination, sujet, message)
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as smtp:
            smtp.send_message(email)
        logger.info("Alerte envoyée à %s : %s", destination, sujet)
