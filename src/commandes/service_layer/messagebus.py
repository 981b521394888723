"""
Message Bus.

Point central de dispatch des commands et events vers leurs handlers.

Une command a exactement un handler et son erreur remonte à l'appelant
(aucune écriture partielle : le unit of work du handler est annulé).
Un event peut avoir plusieurs handlers ; leurs erreurs sont journalisées
sans interrompre les autres.

Les events émis par les agrégats pendant un handler (CommandeCréée,
StatutCommandeModifié, AlerteStock...) sont collectés via le unit of
work puis traités à leur tour.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Union

from commandes.domain import commands, events
from commandes.service_layer import unit_of_work

logger = logging.getLogger(__name__)

Message = Union[commands.Command, events.Event]


class MessageBus:
    """
    Message Bus avec injection de dépendances.

    Les dépendances (uow, notifications, horloge) sont injectées
    à la construction et transmises aux handlers d'après les noms
    de paramètres de leur signature.
    """

    def __init__(
        self,
        uow: unit_of_work.AbstractUnitOfWork,
        event_handlers: dict[type[events.Event], list[Callable]],
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.dependencies = {"uow": uow, **(dependencies or {})}
        self.queue: list[Message] = []

    def handle(self, message: Message) -> list[Any]:
        """
        Traite un message et tous les events qui en découlent.

        Retourne les résultats des command handlers, dans l'ordre.
        """
        self.queue = [message]
        results: list[Any] = []
        while self.queue:
            message = self.queue.pop(0)
            if isinstance(message, events.Event):
                self._handle_event(message)
            elif isinstance(message, commands.Command):
                results.append(self._handle_command(message))
            else:
                raise ValueError(f"Message de type inconnu : {type(message)}")
        return results

    def _handle_event(self, event: events.Event) -> None:
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug("Event %s -> %s", type(event).__name__, handler.__name__)
                self._call_handler(handler, event)
                self.queue.extend(self.uow.collect_new_events())
            except Exception:
                logger.exception("Erreur lors du traitement de l'event %s", event)

    def _handle_command(self, command: commands.Command) -> Any:
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command).__name__}")
        logger.debug("Command %s -> %s", type(command).__name__, handler.__name__)
        result = self._call_handler(handler, command)
        self.queue.extend(self.uow.collect_new_events())
        return result

    def _call_handler(self, handler: Callable, message: Message) -> Any:
        """
        Appelle un handler avec le message en premier argument, puis
        les dépendances dont le nom correspond à ses autres paramètres.
        """
        _, *noms = inspect.signature(handler).parameters
        kwargs = {nom: self.dependencies[nom] for nom in noms if nom in self.dependencies}
        return handler(message, **kwargs)
