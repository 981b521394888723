"""
Events du domaine.

Les events représentent des faits qui se sont produits dans le système.
Ils sont immuables et nommés au passé (quelque chose s'est passé).
"""

from dataclasses import dataclass
from decimal import Decimal


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class CommandeCréée(Event):
    """Une commande a été créée avec son statut initial."""

    id_commande: str
    numéro: str
    statut: str


@dataclass(frozen=True)
class CommandeModifiée(Event):
    id_commande: str
    numéro: str


@dataclass(frozen=True)
class StatutCommandeModifié(Event):
    """Le statut d'une commande a changé ; `mouvements` mouvements de stock inscrits."""

    id_commande: str
    numéro: str
    ancien_statut: str
    nouveau_statut: str
    mouvements: int


@dataclass(frozen=True)
class CommandeSupprimée(Event):
    id_commande: str
    numéro: str
    mouvements: int


@dataclass(frozen=True)
class AlerteStock(Event):
    """Le stock d'un produit est passé sous son seuil minimum (ou à zéro)."""

    id_produit: str
    nom_produit: str
    stock: Decimal
    niveau: str
