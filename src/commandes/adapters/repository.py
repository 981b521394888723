"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance.
Il expose une interface de type collection (add, get) qui masque
les détails de l'accès aux données.

Toutes les lectures sont filtrées par id_entreprise : c'est la clé
de partition qui isole les données d'une entreprise des autres.

Le registre des mouvements de stock n'expose que add et des lectures :
un mouvement inscrit n'est jamais modifié ni supprimé.
"""

from __future__ import annotations

import abc
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from commandes.domain import model


def bornes_année(année: int) -> tuple[datetime, datetime]:
    return datetime(année, 1, 1), datetime(année + 1, 1, 1)


class AbstractRepository(abc.ABC):
    """
    Interface abstraite du repository des commandes.

    Le pattern Template Method est utilisé : les méthodes publiques
    (add, get) gèrent le tracking via `seen`, puis délèguent
    aux méthodes abstraites préfixées _ que les sous-classes implémentent.
    """

    seen: set[model.Commande]

    def __init__(self) -> None:
        # `seen` trace tous les agrégats consultés pendant la transaction,
        # ce qui permet au Unit of Work de collecter leurs événements.
        self.seen: set[model.Commande] = set()

    def add(self, commande: model.Commande) -> None:
        self._add(commande)
        self.seen.add(commande)

    def get(self, id_entreprise: str, id_commande: str) -> model.Commande | None:
        commande = self._get(id_entreprise, id_commande)
        if commande:
            self.seen.add(commande)
        return commande

    def supprimer(self, commande: model.Commande) -> None:
        """Supprime la commande ; elle reste dans `seen` pour ses événements."""
        self._supprimer(commande)
        self.seen.add(commande)

    def numéro_existe(self, id_entreprise: str, numéro: str) -> bool:
        return self._get_par_numéro(id_entreprise, numéro) is not None

    def compter_pour_année(self, id_entreprise: str, année: int) -> int:
        """Nombre de commandes dont la date de commande tombe dans l'année."""
        return self._compter_pour_année(id_entreprise, année)

    @abc.abstractmethod
    def _add(self, commande: model.Commande) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, id_entreprise: str, id_commande: str) -> model.Commande | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get_par_numéro(self, id_entreprise: str, numéro: str) -> model.Commande | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _supprimer(self, commande: model.Commande) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _compter_pour_année(self, id_entreprise: str, année: int) -> int:
        raise NotImplementedError


class AbstractProduitRepository(abc.ABC):
    """Produits du catalogue ; trackés pour collecter leurs AlerteStock."""

    seen: set[model.Produit]

    def __init__(self) -> None:
        self.seen: set[model.Produit] = set()

    def add(self, produit: model.Produit) -> None:
        self._add(produit)
        self.seen.add(produit)

    def get(self, id_entreprise: str, id_produit: str) -> model.Produit | None:
        produit = self._get(id_entreprise, id_produit)
        if produit:
            self.seen.add(produit)
        return produit

    @abc.abstractmethod
    def _add(self, produit: model.Produit) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, id_entreprise: str, id_produit: str) -> model.Produit | None:
        raise NotImplementedError


class AbstractClientRepository(abc.ABC):
    @abc.abstractmethod
    def add(self, client: model.Client) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, id_entreprise: str, id_client: str) -> model.Client | None:
        raise NotImplementedError


class AbstractFactureRepository(abc.ABC):
    @abc.abstractmethod
    def add(self, facture: model.Facture) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def compter_pour_année(self, id_entreprise: str, année: int) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def quantité_vendue(self, id_entreprise: str, nom_produit: str) -> Decimal:
        """Somme des quantités des lignes dont la description est le nom du produit."""
        raise NotImplementedError


class AbstractRegistreMouvements(abc.ABC):
    """Registre de stock en ajout seul."""

    @abc.abstractmethod
    def add(self, mouvement: model.MouvementDeStock) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def lister(
        self,
        id_entreprise: str,
        id_produit: str | None = None,
        référence: str | None = None,
    ) -> list[model.MouvementDeStock]:
        raise NotImplementedError

    @abc.abstractmethod
    def total_ajustements(self, id_entreprise: str, id_produit: str) -> Decimal:
        raise NotImplementedError


# --- Implémentations SQLAlchemy ---


class SqlAlchemyRepository(AbstractRepository):
    """Implémentation concrète du repository des commandes avec SQLAlchemy."""

    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, commande: model.Commande) -> None:
        self.session.add(commande)

    def _get(self, id_entreprise: str, id_commande: str) -> model.Commande | None:
        return (
            self.session.query(model.Commande)
            .filter_by(id_entreprise=id_entreprise, id=id_commande)
            .first()
        )

    def _get_par_numéro(self, id_entreprise: str, numéro: str) -> model.Commande | None:
        return (
            self.session.query(model.Commande)
            .filter_by(id_entreprise=id_entreprise, numéro=numéro)
            .first()
        )

    def _supprimer(self, commande: model.Commande) -> None:
        self.session.delete(commande)

    def _compter_pour_année(self, id_entreprise: str, année: int) -> int:
        début, fin = bornes_année(année)
        return (
            self.session.query(model.Commande)
            .filter(
                model.Commande.id_entreprise == id_entreprise,
                model.Commande.date_commande >= début,
                model.Commande.date_commande < fin,
            )
            .count()
        )


class SqlAlchemyProduitRepository(AbstractProduitRepository):
    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, produit: model.Produit) -> None:
        self.session.add(produit)

    def _get(self, id_entreprise: str, id_produit: str) -> model.Produit | None:
        return (
            self.session.query(model.Produit)
            .filter_by(id_entreprise=id_entreprise, id=id_produit)
            .first()
        )


class SqlAlchemyClientRepository(AbstractClientRepository):
    def __init__(self, session: Session):
        self.session = session

    def add(self, client: model.Client) -> None:
        self.session.add(client)

    def get(self, id_entreprise: str, id_client: str) -> model.Client | None:
        return (
            self.session.query(model.Client)
            .filter_by(id_entreprise=id_entreprise, id=id_client)
            .first()
        )


class SqlAlchemyFactureRepository(AbstractFactureRepository):
    def __init__(self, session: Session):
        self.session = session

    def add(self, facture: model.Facture) -> None:
        self.session.add(facture)

    def compter_pour_année(self, id_entreprise: str, année: int) -> int:
        début, fin = bornes_année(année)
        return (
            self.session.query(model.Facture)
            .filter(
                model.Facture.id_entreprise == id_entreprise,
                model.Facture.date >= début,
                model.Facture.date < fin,
            )
            .count()
        )

    def quantité_vendue(self, id_entreprise: str, nom_produit: str) -> Decimal:
        total = (
            self.session.query(func.coalesce(func.sum(model.LigneDeFacture.quantité), 0))
            .select_from(model.Facture)
            .join(model.Facture.lignes)
            .filter(
                model.Facture.id_entreprise == id_entreprise,
                model.LigneDeFacture.description == nom_produit,
            )
            .scalar()
        )
        return Decimal(str(total))


class SqlAlchemyRegistreMouvements(AbstractRegistreMouvements):
    def __init__(self, session: Session):
        self.session = session

    def add(self, mouvement: model.MouvementDeStock) -> None:
        self.session.add(mouvement)

    def lister(
        self,
        id_entreprise: str,
        id_produit: str | None = None,
        référence: str | None = None,
    ) -> list[model.MouvementDeStock]:
        requête = self.session.query(model.MouvementDeStock).filter_by(
            id_entreprise=id_entreprise
        )
        if id_produit is not None:
            requête = requête.filter_by(id_produit=id_produit)
        if référence is not None:
            requête = requête.filter_by(référence=référence)
        return requête.order_by(model.MouvementDeStock.horodatage).all()

    def total_ajustements(self, id_entreprise: str, id_produit: str) -> Decimal:
        total = (
            self.session.query(func.coalesce(func.sum(model.MouvementDeStock.quantité), 0))
            .filter(
                model.MouvementDeStock.id_entreprise == id_entreprise,
                model.MouvementDeStock.id_produit == id_produit,
                model.MouvementDeStock.type == model.AJUSTEMENT,
            )
            .scalar()
        )
        return Decimal(str(total))
