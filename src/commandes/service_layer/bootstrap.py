"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances.
C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from commandes.adapters import notifications, orm
from commandes.domain import commands, events
from commandes.service_layer import handlers, messagebus, unit_of_work


def bootstrap(
    start_orm: bool = True,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    notifications_adapter: notifications.AbstractNotifications | None = None,
    horloge: Callable[[], datetime] | None = None,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes et l'heure
    système. En test, on injecte des fakes et une horloge figée.
    """
    if start_orm:
        orm.start_mappers()

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if notifications_adapter is None:
        notifications_adapter = notifications.EmailNotifications()

    dependencies: dict[str, Any] = {
        "notifications": notifications_adapter,
        "horloge": horloge or datetime.now,
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.Event], list] = {
    events.CommandeCréée: [handlers.publier_événement_commande],
    events.CommandeModifiée: [handlers.publier_événement_commande],
    events.StatutCommandeModifié: [handlers.publier_événement_commande],
    events.CommandeSupprimée: [handlers.publier_événement_commande],
    events.AlerteStock: [handlers.envoyer_alerte_stock],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CréerClient: handlers.créer_client,
    commands.CréerProduit: handlers.créer_produit,
    commands.AjusterStock: handlers.ajuster_stock,
    commands.EnregistrerFacture: handlers.enregistrer_facture,
    commands.CréerCommande: handlers.créer_commande,
    commands.ModifierCommande: handlers.modifier_commande,
    commands.SupprimerCommande: handlers.supprimer_commande,
    commands.ModifierStatutCommande: handlers.modifier_statut_commande,
}
