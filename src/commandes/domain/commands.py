"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.

Chaque command porte le ContexteSession de l'acteur : l'entreprise
(partition) et l'identité ne sont jamais lues depuis un état global.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from commandes.domain.model import ContexteSession


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class Ligne:
    """Ligne saisie (commande ou facture), avant résolution du produit."""

    quantité: Decimal
    prix_unitaire: Decimal
    taux_tva: Decimal = Decimal("0")
    id_produit: Optional[str] = None
    description: str = ""
    unité: Optional[str] = None


@dataclass(frozen=True)
class CréerClient(Command):
    contexte: ContexteSession
    nom: str
    ice: str = ""
    adresse: str = ""
    téléphone: str = ""
    email: str = ""


@dataclass(frozen=True)
class CréerProduit(Command):
    contexte: ContexteSession
    nom: str
    sku: str = ""
    catégorie: str = ""
    prix_achat: Decimal = Decimal("0")
    prix_vente: Decimal = Decimal("0")
    unité: str = "unité"
    stock_initial: Decimal = Decimal("0")
    stock_minimum: Decimal = Decimal("0")


@dataclass(frozen=True)
class AjusterStock(Command):
    """Rectification manuelle : ajout, retrait ou stock fixé."""

    contexte: ContexteSession
    id_produit: str
    type_ajustement: str
    quantité: Decimal
    motif: str
    horodatage: Optional[datetime] = None


@dataclass(frozen=True)
class EnregistrerFacture(Command):
    contexte: ContexteSession
    date: datetime
    lignes: tuple[Ligne, ...]
    id_client: Optional[str] = None


@dataclass(frozen=True)
class CréerCommande(Command):
    """Demande de création d'une commande."""

    contexte: ContexteSession
    type_client: str
    date_commande: datetime
    lignes: tuple[Ligne, ...]
    id_client: Optional[str] = None
    nom_client: Optional[str] = None
    date_livraison: Optional[datetime] = None
    livraison_planifiée: bool = False
    appliquer_tva: bool = False


@dataclass(frozen=True)
class ModifierCommande(Command):
    """
    Modifie les champs fournis dans `changements`.

    Les clés acceptées sont celles de model.CHAMPS_MODIFIABLES ;
    `lignes` est alors un tuple de Ligne.
    """

    contexte: ContexteSession
    id_commande: str
    changements: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SupprimerCommande(Command):
    contexte: ContexteSession
    id_commande: str


@dataclass(frozen=True)
class ModifierStatutCommande(Command):
    contexte: ContexteSession
    id_commande: str
    statut: str
