"""
Configuration partagée pour les tests.

Le mapping ORM est démarré une seule fois pour toute la session de tests.
Cela permet aux tests d'intégration et e2e d'utiliser SQLAlchemy
sans interférer avec les tests unitaires.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from commandes.adapters import notifications, orm
from commandes.domain.model import ContexteSession
from commandes.service_layer import bootstrap, unit_of_work

HORLOGE_FIGÉE = datetime(2025, 3, 15, 10, 0)


class FakeNotifications(notifications.AbstractNotifications):
    def __init__(self):
        self.envoyées = []

    def send(self, destination: str, sujet: str, message: str) -> None:
        self.envoyées.append({"destination": destination, "sujet": sujet, "message": message})


@pytest.fixture(scope="session", autouse=True)
def mappers():
    """Démarre le mapping ORM une fois pour toute la session."""
    orm.start_mappers()


@pytest.fixture
def contexte():
    return ContexteSession(id_acteur="u-1", nom_acteur="Amina", id_entreprise="ent-1")


@pytest.fixture
def session_factory():
    """Base SQLite en mémoire avec toutes les tables."""
    engine = create_engine("sqlite:///:memory:")
    orm.metadata.create_all(engine)
    return sessionmaker(bind=engine)


@pytest.fixture
def sqlite_bus(session_factory):
    """Message bus complet sur SQLite en mémoire, horloge figée."""
    return bootstrap.bootstrap(
        start_orm=False,
        uow=unit_of_work.SqlAlchemyUnitOfWork(session_factory=session_factory),
        notifications_adapter=FakeNotifications(),
        horloge=lambda: HORLOGE_FIGÉE,
    )
