"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique.
Il coordonne l'écriture en base de données et la collecte
des événements émis par les agrégats au cours de la transaction.

Une commande et ses mouvements de stock sont inscrits dans la même
transaction : soit tout est écrit, soit rien.

Le UoW agit comme un context manager :
    with uow:
        # ... opérations sur les repositories ...
        uow.commit()
"""

from __future__ import annotations

import abc

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from commandes import config
from commandes.adapters import repository

DEFAULT_ENGINE = create_engine(
    config.get_db_uri(),
    isolation_level="SERIALIZABLE",
)
DEFAULT_SESSION_FACTORY = sessionmaker(bind=DEFAULT_ENGINE)


class ErreurÉcriture(Exception):
    """Échec d'écriture côté persistance ; la transaction a été annulée."""
    pass


class AbstractUnitOfWork(abc.ABC):
    """
    Interface abstraite du Unit of Work.

    Fournit les repositories et gère commit/rollback.
    Le rollback est automatique si commit() n'est pas appelé
    (grâce au __exit__ du context manager).
    """

    commandes: repository.AbstractRepository
    produits: repository.AbstractProduitRepository
    clients: repository.AbstractClientRepository
    factures: repository.AbstractFactureRepository
    mouvements: repository.AbstractRegistreMouvements

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def commit(self) -> None:
        self._commit()

    def collect_new_events(self):
        """
        Collecte tous les événements émis par les agrégats vus
        pendant cette transaction (commandes et produits).
        """
        for commande in self.commandes.seen:
            while commande.événements:
                yield commande.événements.pop(0)
        for produit in self.produits.seen:
            while produit.événements:
                yield produit.événements.pop(0)

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Implémentation concrète du UoW avec SQLAlchemy.

    Crée une session à l'entrée du context manager,
    la ferme à la sortie. Rollback automatique si pas de commit.
    """

    def __init__(self, session_factory: sessionmaker = DEFAULT_SESSION_FACTORY):
        self.session_factory = session_factory

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session: Session = self.session_factory()
        self.commandes = repository.SqlAlchemyRepository(self.session)
        self.produits = repository.SqlAlchemyProduitRepository(self.session)
        self.clients = repository.SqlAlchemyClientRepository(self.session)
        self.factures = repository.SqlAlchemyFactureRepository(self.session)
        self.mouvements = repository.SqlAlchemyRegistreMouvements(self.session)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise ErreurÉcriture("Erreur lors de l'enregistrement") from e

    def rollback(self) -> None:
        self.session.rollback()
