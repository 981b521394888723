"""
Handlers pour les commands et events.

Les handlers sont les fonctions qui traitent les commands et events
transitant par le message bus.

- Command handlers : exécutent une action (peuvent échouer)
- Event handlers : réagissent à un fait passé (ne doivent pas échouer)

Chaque command handler ouvre un seul unit of work : la commande et
les mouvements de stock qu'elle produit sont validés ensemble.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Iterable

from commandes import config
from commandes.domain import commands, events, model

if TYPE_CHECKING:
    from commandes.adapters.notifications import AbstractNotifications
    from commandes.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

Horloge = Callable[[], datetime]


# --- Exceptions ---


class Introuvable(Exception):
    """Levée quand l'identifiant demandé n'existe pas pour l'entreprise."""
    pass


class CommandeIntrouvable(Introuvable):
    pass


class ProduitIntrouvable(Introuvable):
    pass


# --- Helpers ---


def _décimal(valeur: object) -> Decimal:
    if isinstance(valeur, Decimal):
        return valeur
    return Decimal(str(valeur))


def _vérifier_client(uow: AbstractUnitOfWork, id_entreprise: str, id_client: str | None) -> None:
    if not id_client or uow.clients.get(id_entreprise, id_client) is None:
        raise model.ErreurDeValidation("Veuillez sélectionner un client")


def _lignes_de_commande(
    lignes: Iterable[commands.Ligne], id_entreprise: str, uow: AbstractUnitOfWork
) -> list[model.LigneDeCommande]:
    """Résout le produit de chaque ligne ; une ligne sans produit est refusée."""
    résultat = []
    for ligne in lignes:
        produit = None
        if ligne.id_produit:
            produit = uow.produits.get(id_entreprise, ligne.id_produit)
        if produit is None:
            raise model.ErreurDeValidation(
                "Veuillez sélectionner un produit pour chaque ligne"
            )
        résultat.append(
            model.LigneDeCommande(
                id_produit=produit.id,
                nom_produit=produit.nom,
                quantité=_décimal(ligne.quantité),
                prix_unitaire=_décimal(ligne.prix_unitaire),
                taux_tva=_décimal(ligne.taux_tva),
                unité=ligne.unité or produit.unité or "unité",
            )
        )
    return résultat


def _prochain_numéro(uow: AbstractUnitOfWork, id_entreprise: str, année: int) -> str:
    """
    CMD-<année>-<compteur>, compteur = commandes de l'année + 1.

    Si le numéro est déjà pris (création concurrente, suppression
    d'une commande antérieure), on avance jusqu'au premier libre.
    """
    compteur = uow.commandes.compter_pour_année(id_entreprise, année) + 1
    numéro = model.numéroter("CMD", année, compteur)
    while uow.commandes.numéro_existe(id_entreprise, numéro):
        compteur += 1
        numéro = model.numéroter("CMD", année, compteur)
    return numéro


def _inscrire(uow: AbstractUnitOfWork, mouvements: list[model.MouvementDeStock]) -> None:
    for mouvement in mouvements:
        uow.mouvements.add(mouvement)
        logger.info(
            "Mouvement de stock %s : %s %s (réf. %s)",
            mouvement.type, mouvement.nom_produit, mouvement.quantité, mouvement.référence,
        )


# --- Command Handlers : catalogue ---


def créer_client(
    cmd: commands.CréerClient,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> str:
    if not cmd.nom or not cmd.nom.strip():
        raise model.ErreurDeValidation("Le nom du client est obligatoire")
    client = model.Client(
        id=model.nouvel_id(),
        id_entreprise=cmd.contexte.id_entreprise,
        nom=cmd.nom.strip(),
        ice=cmd.ice,
        adresse=cmd.adresse,
        téléphone=cmd.téléphone,
        email=cmd.email,
        créé_le=horloge(),
    )
    id_client = client.id
    with uow:
        uow.clients.add(client)
        uow.commit()
    return id_client


def créer_produit(
    cmd: commands.CréerProduit,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> str:
    """
    Crée un produit et inscrit son stock initial au registre.

    Le mouvement `initial` sert à l'historique ; le calcul du stock
    part de Produit.stock_initial et ne le compte pas.
    """
    if not cmd.nom or not cmd.nom.strip():
        raise model.ErreurDeValidation("Le nom du produit est obligatoire")
    maintenant = horloge()
    produit = model.Produit(
        id=model.nouvel_id(),
        id_entreprise=cmd.contexte.id_entreprise,
        nom=cmd.nom.strip(),
        sku=cmd.sku,
        catégorie=cmd.catégorie,
        prix_achat=_décimal(cmd.prix_achat),
        prix_vente=_décimal(cmd.prix_vente),
        unité=cmd.unité,
        stock_initial=_décimal(cmd.stock_initial),
        stock_minimum=_décimal(cmd.stock_minimum),
        créé_le=maintenant,
    )
    id_produit = produit.id
    with uow:
        uow.produits.add(produit)
        uow.mouvements.add(produit.mouvement_initial(cmd.contexte, maintenant))
        uow.commit()
    return id_produit


def ajuster_stock(
    cmd: commands.AjusterStock,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> str:
    """
    Rectifie le stock d'un produit (ajout, retrait, ou stock fixé).

    Le stock actuel est recalculé depuis le registre et les factures
    avant d'appliquer la rectification.
    """
    id_entreprise = cmd.contexte.id_entreprise
    horodatage = cmd.horodatage or horloge()
    with uow:
        produit = uow.produits.get(id_entreprise, cmd.id_produit)
        if produit is None:
            raise ProduitIntrouvable(f"Produit introuvable : {cmd.id_produit}")
        stock_actuel = model.stock_restant(
            produit.stock_initial,
            uow.mouvements.total_ajustements(id_entreprise, produit.id),
            uow.factures.quantité_vendue(id_entreprise, produit.nom),
        )
        mouvement = produit.ajuster(
            type_ajustement=cmd.type_ajustement,
            quantité=_décimal(cmd.quantité),
            stock_actuel=stock_actuel,
            motif=cmd.motif,
            contexte=cmd.contexte,
            horodatage=horodatage,
        )
        id_mouvement = mouvement.id
        _inscrire(uow, [mouvement])
        uow.commit()
    return id_mouvement


def enregistrer_facture(
    cmd: commands.EnregistrerFacture,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> str:
    id_entreprise = cmd.contexte.id_entreprise
    if not cmd.lignes:
        raise model.ErreurDeValidation("La facture doit contenir au moins un article")
    with uow:
        lignes = []
        for ligne in cmd.lignes:
            description = ligne.description
            if not description and ligne.id_produit:
                produit = uow.produits.get(id_entreprise, ligne.id_produit)
                description = produit.nom if produit else ""
            if not description:
                raise model.ErreurDeValidation("Chaque ligne doit avoir une description")
            lignes.append(
                model.LigneDeFacture(
                    description=description,
                    quantité=_décimal(ligne.quantité),
                    prix_unitaire=_décimal(ligne.prix_unitaire),
                    taux_tva=_décimal(ligne.taux_tva),
                    unité=ligne.unité or "unité",
                )
            )
        compteur = uow.factures.compter_pour_année(id_entreprise, cmd.date.year) + 1
        facture = model.Facture(
            id=model.nouvel_id(),
            id_entreprise=id_entreprise,
            numéro=model.numéroter("FAC", cmd.date.year, compteur),
            date=cmd.date,
            lignes=lignes,
            id_client=cmd.id_client,
            créée_le=horloge(),
        )
        id_facture = facture.id
        uow.factures.add(facture)
        uow.commit()
    return id_facture


# --- Command Handlers : cycle de vie des commandes ---


def créer_commande(
    cmd: commands.CréerCommande,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> str:
    """
    Crée une commande, dérive son statut et débite le stock.

    Le statut initial est évalué une seule fois par rapport à
    maintenant. S'il est actif, la commande est enregistrée avec
    stock_débité=True et une sortie est inscrite par ligne, dans
    le même commit. Retourne l'id de la commande.
    """
    contexte = cmd.contexte
    maintenant = horloge()
    with uow:
        if cmd.type_client == model.SOCIETE:
            _vérifier_client(uow, contexte.id_entreprise, cmd.id_client)
        lignes = _lignes_de_commande(cmd.lignes, contexte.id_entreprise, uow)
        commande = model.Commande.créer(
            id=model.nouvel_id(),
            numéro=_prochain_numéro(uow, contexte.id_entreprise, maintenant.year),
            contexte=contexte,
            type_client=cmd.type_client,
            lignes=lignes,
            date_commande=cmd.date_commande,
            maintenant=maintenant,
            date_livraison=cmd.date_livraison,
            livraison_planifiée=cmd.livraison_planifiée,
            id_client=cmd.id_client if cmd.type_client == model.SOCIETE else None,
            nom_client=cmd.nom_client if cmd.type_client != model.SOCIETE else None,
            appliquer_tva=cmd.appliquer_tva,
        )
        mouvements: list[model.MouvementDeStock] = []
        if model.est_actif(commande.statut):
            mouvements = commande.débiter_stock(contexte, maintenant)
        id_commande = commande.id
        uow.commandes.add(commande)
        _inscrire(uow, mouvements)
        uow.commit()
    return id_commande


def modifier_commande(
    cmd: commands.ModifierCommande,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> None:
    """
    Modifie une commande sans toucher au registre de stock.

    Seules les transitions de statut déplacent du stock : modifier
    les lignes d'une commande débitée ne corrige pas le registre.
    """
    contexte = cmd.contexte
    with uow:
        commande = uow.commandes.get(contexte.id_entreprise, cmd.id_commande)
        if commande is None:
            raise CommandeIntrouvable(f"Commande introuvable : {cmd.id_commande}")
        changements = dict(cmd.changements)
        if "lignes" in changements:
            changements["lignes"] = _lignes_de_commande(
                changements["lignes"], contexte.id_entreprise, uow
            )
        if changements.get("type_client", commande.type_client) == model.SOCIETE:
            _vérifier_client(
                uow,
                contexte.id_entreprise,
                changements.get("id_client", commande.id_client),
            )
        commande.modifier(horloge(), **changements)
        uow.commit()


def supprimer_commande(
    cmd: commands.SupprimerCommande,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> None:
    """
    Supprime une commande, après avoir réintégré son stock si débité.

    Les retours sont inscrits avant la suppression, dans la même
    transaction.
    """
    contexte = cmd.contexte
    with uow:
        commande = uow.commandes.get(contexte.id_entreprise, cmd.id_commande)
        if commande is None:
            raise CommandeIntrouvable(f"Commande introuvable : {cmd.id_commande}")
        _inscrire(uow, commande.préparer_suppression(contexte, horloge()))
        uow.commandes.supprimer(commande)
        uow.commit()


def modifier_statut_commande(
    cmd: commands.ModifierStatutCommande,
    uow: AbstractUnitOfWork,
    horloge: Horloge,
) -> None:
    """
    Change le statut d'une commande et ajuste le stock en conséquence.

    Une commande inconnue est ignorée (avec un avertissement) :
    l'appelant doit vérifier son existence au préalable.
    """
    contexte = cmd.contexte
    with uow:
        commande = uow.commandes.get(contexte.id_entreprise, cmd.id_commande)
        if commande is None:
            logger.warning("Changement de statut ignoré, commande inconnue : %s", cmd.id_commande)
            return
        _inscrire(uow, commande.changer_statut(cmd.statut, contexte, horloge()))
        uow.commit()


# --- Event Handlers ---


def publier_événement_commande(event: events.Event) -> None:
    """
    Publie un événement du cycle de vie des commandes.

    Dans un système complet, cela publierait vers Redis, Kafka, etc.
    Ici l'événement est journalisé.
    """
    logger.info("Événement commande : %s", event)


def envoyer_alerte_stock(
    event: events.AlerteStock,
    notifications: AbstractNotifications,
) -> None:
    """Envoie une notification quand le stock est faible ou épuisé."""
    libellé = "Rupture de stock" if event.niveau == model.RUPTURE else "Stock faible"
    notifications.send(
        destination=config.get_destination_alertes_stock(),
        sujet=f"{libellé} : {event.nom_produit}",
        message=f"{libellé} pour {event.nom_produit} : {event.stock}",
    )
