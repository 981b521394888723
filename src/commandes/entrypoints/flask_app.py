"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle se contente de
convertir les requêtes HTTP en commands, les envoie au
message bus, et convertit les résultats en réponses HTTP.

L'identité de l'acteur et son entreprise arrivent dans les en-têtes
X-Utilisateur-Id, X-Utilisateur-Nom et X-Entreprise-Id, posés par
le service d'authentification en amont.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import Flask, abort, jsonify, request
from flask.json.provider import DefaultJSONProvider

from commandes import config
from commandes.adapters import orm
from commandes.domain import commands, model
from commandes.service_layer import bootstrap, handlers, unit_of_work
from commandes.views import views

logging.basicConfig(
    level=config.get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


class JSONProvider(DefaultJSONProvider):
    """Montants en nombres, dates en ISO 8601."""

    @staticmethod
    def default(o):
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


app = Flask(__name__)
app.json = JSONProvider(app)
bus = bootstrap.bootstrap()


@app.cli.command("init-db")
def init_db_command():
    """Crée les tables dans la base configurée."""
    orm.metadata.create_all(unit_of_work.DEFAULT_ENGINE)
    print("Base initialisée.")


@app.errorhandler(model.ErreurDeValidation)
def erreur_de_validation(e):
    return jsonify({"message": str(e)}), 400


@app.errorhandler(handlers.Introuvable)
def introuvable(e):
    return jsonify({"message": str(e)}), 404


@app.errorhandler(unit_of_work.ErreurÉcriture)
def erreur_écriture(e):
    logger.error("Erreur d'écriture : %s", e.__cause__)
    return jsonify({"message": "Une erreur est survenue, veuillez réessayer"}), 500


# --- Helpers ---


def _contexte() -> model.ContexteSession:
    id_acteur = request.headers.get("X-Utilisateur-Id")
    id_entreprise = request.headers.get("X-Entreprise-Id")
    if not id_acteur or not id_entreprise:
        abort(401)
    return model.ContexteSession(
        id_acteur=id_acteur,
        nom_acteur=request.headers.get("X-Utilisateur-Nom", ""),
        id_entreprise=id_entreprise,
    )


def _date(valeur: str | None) -> datetime | None:
    """
    Date ISO 8601 ramenée à l'heure locale sans fuseau, comme l'horloge.

    Une date avec décalage (`+01:00`, `Z`) est convertie puis rendue naïve.
    """
    if not valeur:
        return None
    try:
        if isinstance(valeur, str) and valeur.endswith("Z"):
            valeur = valeur[:-1] + "+00:00"
        résultat = datetime.fromisoformat(valeur)
    except (TypeError, ValueError):
        raise model.ErreurDeValidation(f"Date invalide : {valeur}")
    if résultat.tzinfo is not None:
        résultat = résultat.astimezone().replace(tzinfo=None)
    return résultat


def _jour(valeur: str | None) -> date | None:
    if not valeur:
        return None
    try:
        return date.fromisoformat(valeur)
    except ValueError:
        raise model.ErreurDeValidation(f"Date invalide : {valeur}")


def _décimal(valeur: object, défaut: str = "0") -> Decimal:
    try:
        résultat = Decimal(str(valeur if valeur is not None else défaut))
    except InvalidOperation:
        raise model.ErreurDeValidation(f"Nombre invalide : {valeur}")
    if not résultat.is_finite():
        raise model.ErreurDeValidation(f"Nombre invalide : {valeur}")
    return résultat


def _lignes(données: object) -> tuple[commands.Ligne, ...]:
    if not isinstance(données, list) or not all(isinstance(l, dict) for l in données):
        raise model.ErreurDeValidation("Liste d'articles invalide")
    return tuple(
        commands.Ligne(
            id_produit=ligne.get("productId"),
            description=ligne.get("description", ""),
            quantité=_décimal(ligne.get("quantity")),
            prix_unitaire=_décimal(ligne.get("unitPrice")),
            taux_tva=_décimal(ligne.get("vatRate")),
            unité=ligne.get("unit"),
        )
        for ligne in données
    )


# --- Catalogue ---


@app.route("/clients", methods=["POST"])
def créer_client_endpoint():
    """POST /clients  Body JSON : { name, ice?, address?, phone?, email? }"""
    data = request.json
    cmd = commands.CréerClient(
        contexte=_contexte(),
        nom=data.get("name", ""),
        ice=data.get("ice", ""),
        adresse=data.get("address", ""),
        téléphone=data.get("phone", ""),
        email=data.get("email", ""),
    )
    [id_client] = bus.handle(cmd)
    return jsonify({"id": id_client}), 201


@app.route("/produits", methods=["POST"])
def créer_produit_endpoint():
    """
    POST /produits
    Body JSON : { name, sku?, category?, purchasePrice?, salePrice?,
                  unit?, initialStock?, minStock? }
    """
    data = request.json
    cmd = commands.CréerProduit(
        contexte=_contexte(),
        nom=data.get("name", ""),
        sku=data.get("sku", ""),
        catégorie=data.get("category", ""),
        prix_achat=_décimal(data.get("purchasePrice")),
        prix_vente=_décimal(data.get("salePrice")),
        unité=data.get("unit") or "unité",
        stock_initial=_décimal(data.get("initialStock")),
        stock_minimum=_décimal(data.get("minStock")),
    )
    [id_produit] = bus.handle(cmd)
    return jsonify({"id": id_produit}), 201


@app.route("/produits/<id_produit>/ajustements", methods=["POST"])
def ajuster_stock_endpoint(id_produit: str):
    """POST /produits/<id>/ajustements  Body JSON : { type: ajout|retrait|fixer, quantity, reason, dateTime? }"""
    data = request.json
    cmd = commands.AjusterStock(
        contexte=_contexte(),
        id_produit=id_produit,
        type_ajustement=data.get("type", model.AJOUT),
        quantité=_décimal(data.get("quantity")),
        motif=data.get("reason", ""),
        horodatage=_date(data.get("dateTime")),
    )
    [id_mouvement] = bus.handle(cmd)
    return jsonify({"id": id_mouvement}), 201


@app.route("/produits/<id_produit>/stock", methods=["GET"])
def stock_endpoint(id_produit: str):
    résumé = views.résumé_stock(id_produit, _contexte().id_entreprise, bus.uow)
    if résumé is None:
        return jsonify({"message": f"Produit introuvable : {id_produit}"}), 404
    return jsonify(résumé), 200


@app.route("/produits/<id_produit>/mouvements", methods=["GET"])
def mouvements_endpoint(id_produit: str):
    return jsonify(views.mouvements(_contexte().id_entreprise, bus.uow, id_produit=id_produit)), 200


@app.route("/produits/<id_produit>/historique", methods=["GET"])
def historique_endpoint(id_produit: str):
    """GET /produits/<id>/historique?period=all|week|month|quarter&startDate=&endDate="""
    args = request.args
    historique = views.historique_stock(
        id_produit,
        _contexte().id_entreprise,
        bus.uow,
        période=args.get("period", "all"),
        début=_jour(args.get("startDate")),
        fin=_jour(args.get("endDate")),
    )
    if historique is None:
        return jsonify({"message": f"Produit introuvable : {id_produit}"}), 404
    return jsonify(historique), 200


@app.route("/factures", methods=["POST"])
def enregistrer_facture_endpoint():
    """POST /factures  Body JSON : { date, clientId?, items: [{ description|productId, quantity, unitPrice, vatRate? }] }"""
    data = request.json
    cmd = commands.EnregistrerFacture(
        contexte=_contexte(),
        date=_date(data.get("date")) or datetime.now(),
        lignes=_lignes(data.get("items", [])),
        id_client=data.get("clientId"),
    )
    [id_facture] = bus.handle(cmd)
    return jsonify({"id": id_facture}), 201


# --- Commandes ---


@app.route("/commandes", methods=["POST"])
def créer_commande_endpoint():
    """
    POST /commandes
    Body JSON : { clientType, clientId?, clientName?, orderDate,
                  deliveryDate?, hasDeliveryDate?, applyVat?, items: [...] }

    Retourne l'id de la commande créée.
    """
    data = request.json
    cmd = commands.CréerCommande(
        contexte=_contexte(),
        type_client=data.get("clientType", model.SOCIETE),
        id_client=data.get("clientId"),
        nom_client=data.get("clientName"),
        date_commande=_date(data.get("orderDate")) or datetime.now(),
        date_livraison=_date(data.get("deliveryDate")),
        livraison_planifiée=bool(data.get("hasDeliveryDate", False)),
        appliquer_tva=bool(data.get("applyVat", False)),
        lignes=_lignes(data.get("items", [])),
    )
    [id_commande] = bus.handle(cmd)
    return jsonify({"id": id_commande}), 201


@app.route("/commandes", methods=["GET"])
def lister_commandes_endpoint():
    """GET /commandes?search=&status=&period=&sortBy=&sortOrder=&page=&perPage="""
    args = request.args
    résultat = views.lister_commandes(
        _contexte().id_entreprise,
        bus.uow,
        recherche=args.get("search", ""),
        statut=args.get("status", "all"),
        période=args.get("period", "all"),
        tri=args.get("sortBy", "date"),
        ordre=args.get("sortOrder", "desc"),
        page=args.get("page", 1, type=int),
        par_page=args.get("perPage", 10, type=int),
    )
    return jsonify(résultat), 200


@app.route("/commandes/<id_commande>", methods=["GET"])
def commande_endpoint(id_commande: str):
    résultat = views.commande(id_commande, _contexte().id_entreprise, bus.uow)
    if résultat is None:
        return jsonify({"message": f"Commande introuvable : {id_commande}"}), 404
    return jsonify(résultat), 200


CHAMPS_JSON = {
    "clientType": "type_client",
    "clientId": "id_client",
    "clientName": "nom_client",
    "orderDate": "date_commande",
    "deliveryDate": "date_livraison",
    "applyVat": "appliquer_tva",
    "items": "lignes",
}


@app.route("/commandes/<id_commande>", methods=["PATCH"])
def modifier_commande_endpoint(id_commande: str):
    """PATCH /commandes/<id>  Body JSON : champs à modifier (mêmes noms qu'à la création)"""
    data = request.json
    changements = {}
    for clé, champ in CHAMPS_JSON.items():
        if clé not in data:
            continue
        valeur = data[clé]
        if champ in ("date_commande", "date_livraison"):
            valeur = _date(valeur)
        elif champ == "lignes":
            valeur = _lignes(valeur)
        changements[champ] = valeur
    bus.handle(commands.ModifierCommande(
        contexte=_contexte(), id_commande=id_commande, changements=changements,
    ))
    return "", 204


@app.route("/commandes/<id_commande>", methods=["DELETE"])
def supprimer_commande_endpoint(id_commande: str):
    bus.handle(commands.SupprimerCommande(contexte=_contexte(), id_commande=id_commande))
    return "", 204


@app.route("/commandes/<id_commande>/statut", methods=["POST"])
def modifier_statut_endpoint(id_commande: str):
    """
    POST /commandes/<id>/statut  Body JSON : { status }

    Le handler ignore une commande inconnue ; l'existence est
    vérifiée ici pour répondre 404.
    """
    contexte = _contexte()
    if views.commande(id_commande, contexte.id_entreprise, bus.uow) is None:
        return jsonify({"message": f"Commande introuvable : {id_commande}"}), 404
    bus.handle(commands.ModifierStatutCommande(
        contexte=contexte, id_commande=id_commande, statut=request.json.get("status", ""),
    ))
    return "", 204
