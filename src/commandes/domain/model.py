"""
Modèle de domaine pour la gestion des commandes et du stock.

L'agrégat central est la Commande : elle dérive son statut initial
des dates, et produit les mouvements de stock (débit ou retour)
à chaque transition qui change son effet sur l'inventaire.

Le stock n'est jamais un compteur stocké : c'est un agrégat recalculé
à partir du registre des MouvementDeStock (ajout seul) et des factures.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from commandes.domain import events


class ErreurDeValidation(Exception):
    """Levée quand une entrée métier est invalide, avant toute écriture."""
    pass


# --- Constantes du domaine ---

EN_COURS_LIVRAISON = "en_cours_livraison"
LIVRE = "livre"
ANNULE = "annule"

STATUTS = (EN_COURS_LIVRAISON, LIVRE, ANNULE)
STATUTS_ACTIFS = frozenset({EN_COURS_LIVRAISON, LIVRE})

SOCIETE = "societe"
PERSONNE_PHYSIQUE = "personne_physique"

TYPES_CLIENT = (SOCIETE, PERSONNE_PHYSIQUE)

# Types de mouvement, tels que stockés dans le registre
SORTIE_COMMANDE = "order_out"
RETOUR_ANNULATION = "order_cancel_return"
AJUSTEMENT = "adjustment"
STOCK_INITIAL = "initial"

# Ligne d'historique issue d'une facture, jamais inscrite au registre
VENTE = "sale"

AJOUT = "ajout"
RETRAIT = "retrait"
FIXER = "fixer"

TYPES_AJUSTEMENT = (AJOUT, RETRAIT, FIXER)

RUPTURE = "rupture"
FAIBLE = "faible"
EN_STOCK = "en_stock"


def nouvel_id() -> str:
    return uuid.uuid4().hex


def est_actif(statut: str) -> bool:
    """Un statut actif signifie que le stock de la commande est débité."""
    return statut in STATUTS_ACTIFS


def statut_initial(date_livraison: Optional[datetime], maintenant: datetime) -> str:
    """
    Dérive le statut d'une commande au moment de sa création.

    - pas de date de livraison : livrée le jour même
    - date passée ou égale à maintenant : déjà livrée
    - date future : en cours de livraison
    """
    if date_livraison is None or date_livraison <= maintenant:
        return LIVRE
    return EN_COURS_LIVRAISON


def numéroter(préfixe: str, année: int, compteur: int) -> str:
    """Numéro lisible séquentiel par année, ex. CMD-2025-007."""
    return f"{préfixe}-{année}-{compteur:03d}"


def stock_restant(
    stock_initial: Decimal, total_ajustements: Decimal, total_ventes: Decimal
) -> Decimal:
    """Stock initial + rectifications - ventes."""
    return stock_initial + total_ajustements - total_ventes


def niveau_stock(stock: Decimal, stock_minimum: Decimal) -> str:
    if stock <= 0:
        return RUPTURE
    if stock <= stock_minimum:
        return FAIBLE
    return EN_STOCK


@dataclass(frozen=True)
class ContexteSession:
    """
    Identité de l'acteur et partition (entreprise) de la requête.

    Passé explicitement à chaque opération : aucune donnée de
    session n'est lue depuis un état global.
    """

    id_acteur: str
    nom_acteur: str
    id_entreprise: str


@dataclass
class LigneDeCommande:
    """Ligne d'une commande, possédée par sa Commande."""

    id_produit: str
    nom_produit: str
    quantité: Decimal
    prix_unitaire: Decimal
    taux_tva: Decimal = Decimal("0")
    unité: str = "unité"

    @property
    def total(self) -> Decimal:
        return self.quantité * self.prix_unitaire


@dataclass
class LigneDeFacture:
    description: str
    quantité: Decimal
    prix_unitaire: Decimal
    taux_tva: Decimal = Decimal("0")
    unité: str = "unité"

    @property
    def total(self) -> Decimal:
        return self.quantité * self.prix_unitaire


@dataclass
class MouvementDeStock:
    """
    Entrée du registre de stock.

    Une fois créé, un mouvement n'est jamais modifié ni supprimé ;
    la quantité est signée (négative pour une sortie).
    """

    id_entreprise: str
    id_produit: str
    nom_produit: str
    quantité: Decimal
    type: str
    motif: str
    référence: str
    id_acteur: str
    nom_acteur: str
    horodatage: datetime
    stock_précédent: Optional[Decimal] = None
    nouveau_stock: Optional[Decimal] = None
    id: str = field(default_factory=nouvel_id)


@dataclass
class Client:
    id: str
    id_entreprise: str
    nom: str
    ice: str = ""
    adresse: str = ""
    téléphone: str = ""
    email: str = ""
    créé_le: Optional[datetime] = None


def _totaux(
    lignes: Iterable[LigneDeCommande | LigneDeFacture], appliquer_tva: bool
) -> tuple[Decimal, Decimal, Decimal]:
    lignes = list(lignes)
    sous_total = sum((l.total for l in lignes), Decimal("0"))
    total_tva = Decimal("0")
    if appliquer_tva:
        total_tva = sum((l.total * l.taux_tva / 100 for l in lignes), Decimal("0"))
    return sous_total, total_tva, sous_total + total_tva


class Facture:
    """
    Facture enregistrée.

    Seules ses lignes comptent pour le domaine : elles fournissent
    les quantités vendues utilisées par l'agrégat de stock.
    """

    def __init__(
        self,
        id: str,
        id_entreprise: str,
        numéro: str,
        date: datetime,
        lignes: list[LigneDeFacture],
        id_client: Optional[str] = None,
        créée_le: Optional[datetime] = None,
    ):
        self.id = id
        self.id_entreprise = id_entreprise
        self.numéro = numéro
        self.date = date
        self.lignes = lignes
        self.id_client = id_client
        self.créée_le = créée_le
        self.sous_total, self.total_tva, self.total_ttc = _totaux(lignes, True)

    def __repr__(self) -> str:
        return f"<Facture {self.numéro}>"


class Produit:
    """
    Produit du catalogue.

    Porte le stock initial et le seuil d'alerte ; le stock courant
    est toujours recalculé (voir stock_restant).
    """

    def __init__(
        self,
        id: str,
        id_entreprise: str,
        nom: str,
        sku: str = "",
        catégorie: str = "",
        prix_achat: Decimal = Decimal("0"),
        prix_vente: Decimal = Decimal("0"),
        unité: str = "unité",
        stock_initial: Decimal = Decimal("0"),
        stock_minimum: Decimal = Decimal("0"),
        statut: str = "active",
        créé_le: Optional[datetime] = None,
    ):
        self.id = id
        self.id_entreprise = id_entreprise
        self.nom = nom
        self.sku = sku
        self.catégorie = catégorie
        self.prix_achat = prix_achat
        self.prix_vente = prix_vente
        self.unité = unité
        self.stock_initial = stock_initial
        self.stock_minimum = stock_minimum
        self.statut = statut
        self.créé_le = créé_le
        self.événements: list[events.Event] = []

    def __repr__(self) -> str:
        return f"<Produit {self.nom}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Produit):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def mouvement_initial(
        self, contexte: ContexteSession, horodatage: datetime
    ) -> MouvementDeStock:
        return MouvementDeStock(
            id_entreprise=self.id_entreprise,
            id_produit=self.id,
            nom_produit=self.nom,
            quantité=self.stock_initial,
            type=STOCK_INITIAL,
            motif="Stock initial",
            référence="",
            id_acteur=contexte.id_acteur,
            nom_acteur=contexte.nom_acteur,
            horodatage=horodatage,
        )

    def ajuster(
        self,
        type_ajustement: str,
        quantité: Decimal,
        stock_actuel: Decimal,
        motif: str,
        contexte: ContexteSession,
        horodatage: datetime,
    ) -> MouvementDeStock:
        """
        Rectifie le stock et retourne le mouvement d'ajustement.

        Le mouvement porte l'écart entre le nouveau stock et le stock
        actuel. Émet AlerteStock si le niveau résultant est faible
        ou en rupture.
        """
        if not motif or not motif.strip():
            raise ErreurDeValidation("Veuillez saisir un motif de rectification")
        if type_ajustement not in TYPES_AJUSTEMENT:
            raise ErreurDeValidation(f"Type d'ajustement inconnu : {type_ajustement}")
        if type_ajustement == FIXER and quantité < 0:
            raise ErreurDeValidation("Le stock ne peut pas être négatif")
        if type_ajustement == RETRAIT and quantité > stock_actuel:
            raise ErreurDeValidation("Impossible de retirer plus que le stock actuel")

        if type_ajustement == FIXER:
            nouveau_stock = quantité
        elif type_ajustement == AJOUT:
            nouveau_stock = stock_actuel + quantité
        else:
            nouveau_stock = max(Decimal("0"), stock_actuel - quantité)

        niveau = niveau_stock(nouveau_stock, self.stock_minimum)
        if niveau != EN_STOCK:
            self.événements.append(
                events.AlerteStock(
                    id_produit=self.id,
                    nom_produit=self.nom,
                    stock=nouveau_stock,
                    niveau=niveau,
                )
            )

        return MouvementDeStock(
            id_entreprise=self.id_entreprise,
            id_produit=self.id,
            nom_produit=self.nom,
            quantité=nouveau_stock - stock_actuel,
            type=AJUSTEMENT,
            motif=motif.strip(),
            référence="",
            id_acteur=contexte.id_acteur,
            nom_acteur=contexte.nom_acteur,
            horodatage=horodatage,
            stock_précédent=stock_actuel,
            nouveau_stock=nouveau_stock,
        )


class Commande:
    """
    Agrégat racine du cycle de vie d'une commande.

    Invariant : stock_débité est vrai si et seulement si le statut
    est actif (en_cours_livraison ou livre). Toutes les opérations
    qui changent le statut retournent les mouvements de stock à
    inscrire au registre dans la même transaction.
    """

    def __init__(
        self,
        id: str,
        numéro: str,
        id_entreprise: str,
        type_client: str,
        lignes: list[LigneDeCommande],
        date_commande: datetime,
        date_livraison: Optional[datetime] = None,
        id_client: Optional[str] = None,
        nom_client: Optional[str] = None,
        appliquer_tva: bool = True,
        statut: str = LIVRE,
        stock_débité: bool = False,
        créée_le: Optional[datetime] = None,
        mise_à_jour_le: Optional[datetime] = None,
    ):
        self.id = id
        self.numéro = numéro
        self.id_entreprise = id_entreprise
        self.type_client = type_client
        self.lignes = lignes
        self.date_commande = date_commande
        self.date_livraison = date_livraison
        self.id_client = id_client
        self.nom_client = nom_client
        self.appliquer_tva = appliquer_tva
        self.statut = statut
        self.stock_débité = stock_débité
        self.créée_le = créée_le
        self.mise_à_jour_le = mise_à_jour_le
        self.événements: list[events.Event] = []
        self.recalculer_totaux()

    def __repr__(self) -> str:
        return f"<Commande {self.numéro}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Commande):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def créer(
        cls,
        id: str,
        numéro: str,
        contexte: ContexteSession,
        type_client: str,
        lignes: list[LigneDeCommande],
        date_commande: datetime,
        maintenant: datetime,
        date_livraison: Optional[datetime] = None,
        livraison_planifiée: bool = False,
        id_client: Optional[str] = None,
        nom_client: Optional[str] = None,
        appliquer_tva: bool = False,
    ) -> Commande:
        """
        Crée une nouvelle commande avec son statut dérivé des dates.

        Le stock n'est pas encore débité : l'appelant récupère les
        mouvements via débiter_stock() quand le statut est actif.
        """
        if livraison_planifiée and date_livraison is None:
            raise ErreurDeValidation("Veuillez saisir la date de livraison")
        commande = cls(
            id=id,
            numéro=numéro,
            id_entreprise=contexte.id_entreprise,
            type_client=type_client,
            lignes=lignes,
            date_commande=date_commande,
            date_livraison=date_livraison,
            id_client=id_client,
            nom_client=nom_client,
            appliquer_tva=appliquer_tva,
            statut=statut_initial(date_livraison, maintenant),
            créée_le=maintenant,
        )
        commande.valider()
        commande.événements.append(
            events.CommandeCréée(
                id_commande=commande.id,
                numéro=commande.numéro,
                statut=commande.statut,
            )
        )
        return commande

    def valider(self) -> None:
        if self.type_client not in TYPES_CLIENT:
            raise ErreurDeValidation(f"Type de client inconnu : {self.type_client}")
        if self.type_client == SOCIETE:
            if not self.id_client:
                raise ErreurDeValidation("Veuillez sélectionner un client")
            # La TVA s'applique toujours aux sociétés
            self.appliquer_tva = True
        elif not self.nom_client or not self.nom_client.strip():
            raise ErreurDeValidation("Veuillez saisir le nom du client")
        if not self.lignes:
            raise ErreurDeValidation("La commande doit contenir au moins un article")
        if any(not ligne.id_produit for ligne in self.lignes):
            raise ErreurDeValidation("Veuillez sélectionner un produit pour chaque ligne")
        if self.statut not in STATUTS:
            raise ErreurDeValidation(f"Statut inconnu : {self.statut}")
        self.recalculer_totaux()

    def recalculer_totaux(self) -> None:
        self.sous_total, self.total_tva, self.total_ttc = _totaux(
            self.lignes, self.appliquer_tva
        )

    def modifier(self, maintenant: datetime, **changements: object) -> None:
        """
        Modifie les champs de la commande et recalcule les totaux.

        Ne touche jamais au registre de stock, même si les lignes
        ou les quantités changent : seules les transitions de statut
        déplacent du stock.
        """
        for nom, valeur in changements.items():
            if nom not in CHAMPS_MODIFIABLES:
                raise ErreurDeValidation(f"Champ non modifiable : {nom}")
            setattr(self, nom, valeur)
        if self.type_client == PERSONNE_PHYSIQUE:
            self.id_client = None
        self.valider()
        self.mise_à_jour_le = maintenant
        self.événements.append(
            events.CommandeModifiée(id_commande=self.id, numéro=self.numéro)
        )

    def débiter_stock(
        self, contexte: ContexteSession, maintenant: datetime
    ) -> list[MouvementDeStock]:
        """Une sortie négative par ligne ; marque le stock comme débité."""
        mouvements = self._mouvements(
            SORTIE_COMMANDE, -1, "Commande", contexte, maintenant
        )
        self.stock_débité = True
        return mouvements

    def réintégrer_stock(
        self, contexte: ContexteSession, maintenant: datetime
    ) -> list[MouvementDeStock]:
        """Un retour positif par ligne ; le stock n'est plus débité."""
        mouvements = self._mouvements(
            RETOUR_ANNULATION, 1, "Annulation commande", contexte, maintenant
        )
        self.stock_débité = False
        return mouvements

    def changer_statut(
        self,
        nouveau_statut: str,
        contexte: ContexteSession,
        maintenant: datetime,
    ) -> list[MouvementDeStock]:
        """
        Applique une transition de statut.

        | ancien actif | nouveau actif | action          |
        |--------------|---------------|-----------------|
        | non          | oui           | débit du stock  |
        | oui          | non           | retour du stock |
        | autres cas                   | aucune          |

        Le nouveau statut est toujours enregistré.
        """
        if nouveau_statut not in STATUTS:
            raise ErreurDeValidation(f"Statut inconnu : {nouveau_statut}")

        mouvements: list[MouvementDeStock] = []
        if est_actif(nouveau_statut) and not self.stock_débité:
            mouvements = self.débiter_stock(contexte, maintenant)
        elif not est_actif(nouveau_statut) and self.stock_débité:
            mouvements = self.réintégrer_stock(contexte, maintenant)

        ancien_statut = self.statut
        self.statut = nouveau_statut
        self.mise_à_jour_le = maintenant
        self.événements.append(
            events.StatutCommandeModifié(
                id_commande=self.id,
                numéro=self.numéro,
                ancien_statut=ancien_statut,
                nouveau_statut=nouveau_statut,
                mouvements=len(mouvements),
            )
        )
        return mouvements

    def préparer_suppression(
        self, contexte: ContexteSession, maintenant: datetime
    ) -> list[MouvementDeStock]:
        """
        Retourne les mouvements à inscrire avant la suppression.

        Le retour de stock doit précéder la suppression : un retour
        en double se rattrape, un retour perdu non.
        """
        mouvements: list[MouvementDeStock] = []
        if self.stock_débité:
            mouvements = self.réintégrer_stock(contexte, maintenant)
        self.événements.append(
            events.CommandeSupprimée(
                id_commande=self.id, numéro=self.numéro, mouvements=len(mouvements)
            )
        )
        return mouvements

    def _mouvements(
        self,
        type_mouvement: str,
        signe: int,
        motif: str,
        contexte: ContexteSession,
        maintenant: datetime,
    ) -> list[MouvementDeStock]:
        return [
            MouvementDeStock(
                id_entreprise=self.id_entreprise,
                id_produit=ligne.id_produit,
                nom_produit=ligne.nom_produit,
                quantité=signe * ligne.quantité,
                type=type_mouvement,
                motif=motif,
                référence=self.numéro,
                id_acteur=contexte.id_acteur,
                nom_acteur=contexte.nom_acteur,
                horodatage=maintenant,
            )
            for ligne in self.lignes
        ]


CHAMPS_MODIFIABLES = frozenset({
    "type_client",
    "id_client",
    "nom_client",
    "date_commande",
    "date_livraison",
    "lignes",
    "appliquer_tva",
})
