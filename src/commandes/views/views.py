"""
Views (lecture) pour le pattern CQRS.

Les views sont des fonctions de lecture pure qui interrogent
directement la base de données, sans passer par le modèle de domaine.

C'est ici que sont calculés la liste paginée des commandes et
l'agrégat de stock d'un produit (stock initial + rectifications
- ventes), recalculé à chaque lecture.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_, select

from commandes.adapters import orm
from commandes.domain import model
from commandes.service_layer import unit_of_work

c = orm.commandes
cl = orm.clients
lc = orm.lignes_commande
p = orm.produits
m = orm.mouvements_stock
f = orm.factures
lf = orm.lignes_facture

NOM_CLIENT = func.coalesce(cl.c.nom, c.c.nom_client, "")

COLONNES_TRI = {
    "date": c.c.date_commande,
    "client": NOM_CLIENT,
    "total": c.c.total_ttc,
    "status": c.c.statut,
    "number": c.c.numero,
}

PÉRIODES = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


def _décimal(valeur) -> Decimal:
    return Decimal(str(valeur or 0))


def _requête_commandes(id_entreprise: str):
    return (
        select(
            c.c.id,
            c.c.numero.label("numéro"),
            c.c.type_client,
            c.c.client_id.label("id_client"),
            NOM_CLIENT.label("nom_client"),
            c.c.date_commande,
            c.c.date_livraison,
            c.c.sous_total,
            c.c.total_tva,
            c.c.total_ttc,
            c.c.statut,
            c.c.stock_debite.label("stock_débité"),
            c.c.appliquer_tva,
        )
        .select_from(
            c.outerjoin(
                cl, and_(cl.c.id == c.c.client_id, cl.c.entreprise_id == c.c.entreprise_id)
            )
        )
        .where(c.c.entreprise_id == id_entreprise)
    )


def commande(
    id_commande: str, id_entreprise: str, uow: unit_of_work.AbstractUnitOfWork
) -> Optional[dict]:
    """Détail d'une commande avec ses lignes, ou None si elle n'existe pas."""
    with uow:
        row = uow.session.execute(
            _requête_commandes(id_entreprise).where(c.c.id == id_commande)
        ).first()
        if row is None:
            return None
        résultat = dict(row._mapping)
        lignes = uow.session.execute(
            select(
                lc.c.produit_id.label("id_produit"),
                lc.c.nom_produit,
                lc.c.quantite.label("quantité"),
                lc.c.prix_unitaire,
                lc.c.taux_tva,
                lc.c.unite.label("unité"),
            )
            .where(lc.c.commande_id == id_commande)
            .order_by(lc.c.id)
        )
        résultat["lignes"] = [
            {**ligne._mapping, "total": ligne.quantité * ligne.prix_unitaire}
            for ligne in lignes
        ]
        return résultat


def lister_commandes(
    id_entreprise: str,
    uow: unit_of_work.AbstractUnitOfWork,
    recherche: str = "",
    statut: str = "all",
    période: str = "all",
    tri: str = "date",
    ordre: str = "desc",
    page: int = 1,
    par_page: int = 10,
    maintenant: Optional[datetime] = None,
) -> dict:
    """
    Liste filtrée, triée et paginée des commandes d'une entreprise.

    - recherche : numéro, nom du client ou nom d'un produit commandé
    - période : today, week (7 jours), month (30 jours) ou all
    - tri : date, client, total, status ou number
    """
    maintenant = maintenant or datetime.now()
    requête = _requête_commandes(id_entreprise)

    if recherche:
        motif = f"%{recherche.lower()}%"
        requête = requête.where(
            or_(
                func.lower(c.c.numero).like(motif),
                func.lower(NOM_CLIENT).like(motif),
                select(lc.c.id)
                .where(lc.c.commande_id == c.c.id, func.lower(lc.c.nom_produit).like(motif))
                .exists(),
            )
        )
    if statut and statut != "all":
        requête = requête.where(c.c.statut == statut)
    if période == "today":
        début = maintenant.replace(hour=0, minute=0, second=0, microsecond=0)
        requête = requête.where(
            c.c.date_commande >= début, c.c.date_commande < début + timedelta(days=1)
        )
    elif période in PÉRIODES:
        requête = requête.where(c.c.date_commande >= maintenant - PÉRIODES[période])

    colonne = COLONNES_TRI.get(tri, c.c.numero)
    sens = colonne.asc() if ordre == "asc" else colonne.desc()
    page = max(page, 1)

    with uow:
        total = uow.session.execute(
            select(func.count()).select_from(requête.subquery())
        ).scalar_one()
        rows = uow.session.execute(
            requête.order_by(sens, c.c.numero).limit(par_page).offset((page - 1) * par_page)
        )
        commandes = [dict(row._mapping) for row in rows]
        compteurs = dict.fromkeys(model.STATUTS, 0)
        for statut_, nombre in uow.session.execute(
            select(c.c.statut, func.count())
            .where(c.c.entreprise_id == id_entreprise)
            .group_by(c.c.statut)
        ):
            compteurs[statut_] = nombre

    return {
        "commandes": commandes,
        "total": total,
        "page": page,
        "pages": -(-total // par_page) if par_page else 0,
        "compteurs": compteurs,
    }


def mouvements(
    id_entreprise: str,
    uow: unit_of_work.AbstractUnitOfWork,
    id_produit: Optional[str] = None,
    référence: Optional[str] = None,
) -> list[dict]:
    """Historique des mouvements de stock, du plus récent au plus ancien."""
    requête = select(
        m.c.id,
        m.c.produit_id.label("id_produit"),
        m.c.nom_produit,
        m.c.quantite.label("quantité"),
        m.c.type,
        m.c.motif,
        m.c.reference.label("référence"),
        m.c.nom_acteur,
        m.c.horodatage,
        m.c.stock_precedent.label("stock_précédent"),
        m.c.nouveau_stock,
    ).where(m.c.entreprise_id == id_entreprise)
    if id_produit is not None:
        requête = requête.where(m.c.produit_id == id_produit)
    if référence is not None:
        requête = requête.where(m.c.reference == référence)
    with uow:
        rows = uow.session.execute(requête.order_by(m.c.horodatage.desc(), m.c.id))
        return [dict(row._mapping) for row in rows]


PÉRIODES_HISTORIQUE = {**PÉRIODES, "quarter": timedelta(days=90)}


def historique_stock(
    id_produit: str,
    id_entreprise: str,
    uow: unit_of_work.AbstractUnitOfWork,
    période: str = "all",
    début: Optional[date] = None,
    fin: Optional[date] = None,
    maintenant: Optional[datetime] = None,
) -> Optional[list[dict]]:
    """
    Historique du stock d'un produit, du plus récent au plus ancien.

    Fusionne le stock initial, les rectifications du registre et les
    ventes facturées (lignes dont la description est le nom du produit),
    soit exactement les termes de résumé_stock. Les sorties de commandes
    n'y figurent pas.

    Le stock avant/après est calculé dans l'ordre chronologique ; les
    rectifications gardent celui enregistré au moment de la saisie.
    Filtre : intervalle début-fin (jours inclus) si les deux bornes
    sont données, sinon période week (7 jours), month (30), quarter (90).
    """
    maintenant = maintenant or datetime.now()
    with uow:
        produit = uow.session.execute(
            select(p.c.nom).where(p.c.id == id_produit, p.c.entreprise_id == id_entreprise)
        ).first()
        if produit is None:
            return None
        registre = uow.session.execute(
            select(
                m.c.id,
                m.c.type,
                m.c.quantite.label("quantité"),
                m.c.motif,
                m.c.reference.label("référence"),
                m.c.nom_acteur,
                m.c.horodatage,
                m.c.stock_precedent.label("stock_précédent"),
                m.c.nouveau_stock,
            ).where(
                m.c.entreprise_id == id_entreprise,
                m.c.produit_id == id_produit,
                m.c.type.in_([model.STOCK_INITIAL, model.AJUSTEMENT]),
            )
        ).all()
        ventes = uow.session.execute(
            select(lf.c.id, lf.c.quantite, f.c.numero, f.c.date)
            .select_from(lf.join(f, lf.c.facture_id == f.c.id))
            .where(f.c.entreprise_id == id_entreprise, lf.c.description == produit.nom)
        ).all()

    entrées = [dict(row._mapping) for row in registre]
    entrées += [
        {
            "id": f"vente-{vente.id}",
            "type": model.VENTE,
            "quantité": -_décimal(vente.quantite),
            "motif": "Vente",
            "référence": vente.numero,
            "nom_acteur": "Système",
            "horodatage": vente.date,
            "stock_précédent": None,
            "nouveau_stock": None,
        }
        for vente in ventes
    ]
    entrées.sort(key=lambda e: (e["horodatage"], e["type"] != model.STOCK_INITIAL))

    stock = Decimal("0")
    for entrée in entrées:
        if entrée["type"] == model.AJUSTEMENT and entrée["nouveau_stock"] is not None:
            stock = _décimal(entrée["nouveau_stock"])
            continue
        entrée["stock_précédent"] = stock
        stock += _décimal(entrée["quantité"])
        entrée["nouveau_stock"] = stock

    if début is not None and fin is not None:
        entrées = [e for e in entrées if début <= e["horodatage"].date() <= fin]
    elif période in PÉRIODES_HISTORIQUE:
        depuis = maintenant - PÉRIODES_HISTORIQUE[période]
        entrées = [e for e in entrées if e["horodatage"] >= depuis]
    return entrées[::-1]


def résumé_stock(
    id_produit: str, id_entreprise: str, uow: unit_of_work.AbstractUnitOfWork
) -> Optional[dict]:
    """
    Agrégat de stock d'un produit, recalculé à chaque appel.

    stock_actuel = stock initial + Σ rectifications - Σ quantités
    facturées (lignes dont la description est le nom du produit).
    Les sorties de commandes n'entrent pas dans ce calcul.
    """
    with uow:
        produit = uow.session.execute(
            select(p).where(p.c.id == id_produit, p.c.entreprise_id == id_entreprise)
        ).first()
        if produit is None:
            return None

        total_ajustements = uow.session.execute(
            select(func.coalesce(func.sum(m.c.quantite), 0)).where(
                m.c.entreprise_id == id_entreprise,
                m.c.produit_id == id_produit,
                m.c.type == model.AJUSTEMENT,
            )
        ).scalar_one()
        total_ventes, nombre_factures = uow.session.execute(
            select(
                func.coalesce(func.sum(lf.c.quantite), 0),
                func.count(func.distinct(f.c.id)),
            )
            .select_from(lf.join(f, lf.c.facture_id == f.c.id))
            .where(f.c.entreprise_id == id_entreprise, lf.c.description == produit.nom)
        ).one()
        dernier_mouvement = uow.session.execute(
            select(func.max(m.c.horodatage)).where(
                m.c.entreprise_id == id_entreprise, m.c.produit_id == id_produit
            )
        ).scalar_one()

    stock_actuel = model.stock_restant(
        _décimal(produit.stock_initial), _décimal(total_ajustements), _décimal(total_ventes)
    )
    return {
        "id_produit": produit.id,
        "nom": produit.nom,
        "unité": produit.unite,
        "stock_initial": _décimal(produit.stock_initial),
        "total_ajustements": _décimal(total_ajustements),
        "total_ventes": _décimal(total_ventes),
        "nombre_factures": nombre_factures,
        "stock_actuel": stock_actuel,
        "stock_minimum": _décimal(produit.stock_minimum),
        "niveau": model.niveau_stock(stock_actuel, _décimal(produit.stock_minimum)),
        "dernier_mouvement": dernier_mouvement or produit.cree_le,
    }
