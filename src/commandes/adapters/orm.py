"""
Mapping ORM avec SQLAlchemy (classical mapping).

On définit les tables séparément, puis on mappe les classes
du domaine sur ces tables. Cela permet au modèle de domaine
de rester ignorant de la persistance (persistence ignorance).

Les noms de colonnes SQL restent en ASCII pour la compatibilité,
le mapping traduit vers les attributs français du domaine.
Chaque table porte entreprise_id, la clé de partition multi-entreprise.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import registry, relationship

from commandes.domain import model

metadata = MetaData()
mapper_registry = registry(metadata=metadata)

MONTANT = Numeric(12, 2)
QUANTITE = Numeric(12, 3)

# --- Définition des tables ---

clients = Table(
    "clients",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("entreprise_id", String(255), nullable=False, index=True),
    Column("nom", String(255), nullable=False),
    Column("ice", String(64)),
    Column("adresse", String(255)),
    Column("telephone", String(64)),
    Column("email", String(255)),
    Column("cree_le", DateTime),
)

produits = Table(
    "produits",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("entreprise_id", String(255), nullable=False, index=True),
    Column("nom", String(255), nullable=False),
    Column("sku", String(255)),
    Column("categorie", String(255)),
    Column("prix_achat", MONTANT),
    Column("prix_vente", MONTANT),
    Column("unite", String(32)),
    Column("stock_initial", QUANTITE, nullable=False, server_default="0"),
    Column("stock_minimum", QUANTITE, nullable=False, server_default="0"),
    Column("statut", String(16), nullable=False, server_default="active"),
    Column("cree_le", DateTime),
)

commandes = Table(
    "commandes",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("entreprise_id", String(255), nullable=False, index=True),
    Column("numero", String(32), nullable=False),
    Column("type_client", String(32), nullable=False),
    Column("client_id", String(32), nullable=True),
    Column("nom_client", String(255), nullable=True),
    Column("date_commande", DateTime, nullable=False),
    Column("date_livraison", DateTime, nullable=True),
    Column("sous_total", MONTANT),
    Column("total_tva", MONTANT),
    Column("total_ttc", MONTANT),
    Column("statut", String(32), nullable=False),
    Column("stock_debite", Boolean, nullable=False, default=False),
    Column("appliquer_tva", Boolean, nullable=False, default=True),
    Column("cree_le", DateTime),
    Column("mis_a_jour_le", DateTime, nullable=True),
    UniqueConstraint("entreprise_id", "numero", name="uq_commandes_numero"),
)

lignes_commande = Table(
    "lignes_commande",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("commande_id", String(32), ForeignKey("commandes.id"), nullable=False),
    Column("produit_id", String(32), nullable=False),
    Column("nom_produit", String(255)),
    Column("quantite", QUANTITE, nullable=False),
    Column("prix_unitaire", MONTANT, nullable=False),
    Column("taux_tva", Numeric(5, 2), nullable=False, server_default="0"),
    Column("unite", String(32)),
)

factures = Table(
    "factures",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("entreprise_id", String(255), nullable=False, index=True),
    Column("numero", String(32), nullable=False),
    Column("client_id", String(32), nullable=True),
    Column("date", DateTime, nullable=False),
    Column("sous_total", MONTANT),
    Column("total_tva", MONTANT),
    Column("total_ttc", MONTANT),
    Column("cree_le", DateTime),
    UniqueConstraint("entreprise_id", "numero", name="uq_factures_numero"),
)

lignes_facture = Table(
    "lignes_facture",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("facture_id", String(32), ForeignKey("factures.id"), nullable=False),
    Column("description", String(255), nullable=False),
    Column("quantite", QUANTITE, nullable=False),
    Column("prix_unitaire", MONTANT, nullable=False),
    Column("taux_tva", Numeric(5, 2), nullable=False, server_default="0"),
    Column("unite", String(32)),
)

mouvements_stock = Table(
    "mouvements_stock",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("entreprise_id", String(255), nullable=False, index=True),
    Column("produit_id", String(32), nullable=False, index=True),
    Column("nom_produit", String(255)),
    Column("quantite", QUANTITE, nullable=False),
    Column("type", String(32), nullable=False),
    Column("motif", String(255)),
    Column("reference", String(32), index=True),
    Column("acteur_id", String(255)),
    Column("nom_acteur", String(255)),
    Column("horodatage", DateTime, nullable=False),
    Column("stock_precedent", QUANTITE, nullable=True),
    Column("nouveau_stock", QUANTITE, nullable=True),
)


def start_mappers() -> None:
    """
    Configure le mapping entre les classes du domaine et les tables SQL.

    Utilise le classical mapping : les classes du domaine ne connaissent
    pas SQLAlchemy. C'est ici qu'on fait le pont entre les attributs
    français du domaine et les colonnes de la base de données.

    Sans effet si le mapping est déjà en place.
    """
    if inspect(model.Commande, raiseerr=False) is not None:
        return

    mapper_registry.map_imperatively(
        model.Client,
        clients,
        properties={
            "id_entreprise": clients.c.entreprise_id,
            "téléphone": clients.c.telephone,
            "créé_le": clients.c.cree_le,
        },
    )
    mapper_registry.map_imperatively(
        model.Produit,
        produits,
        properties={
            "id_entreprise": produits.c.entreprise_id,
            "catégorie": produits.c.categorie,
            "unité": produits.c.unite,
            "créé_le": produits.c.cree_le,
        },
    )
    lignes_commande_mapper = mapper_registry.map_imperatively(
        model.LigneDeCommande,
        lignes_commande,
        properties={
            "id_produit": lignes_commande.c.produit_id,
            "quantité": lignes_commande.c.quantite,
            "unité": lignes_commande.c.unite,
        },
    )
    mapper_registry.map_imperatively(
        model.Commande,
        commandes,
        properties={
            "id_entreprise": commandes.c.entreprise_id,
            "numéro": commandes.c.numero,
            "id_client": commandes.c.client_id,
            "stock_débité": commandes.c.stock_debite,
            "créée_le": commandes.c.cree_le,
            "mise_à_jour_le": commandes.c.mis_a_jour_le,
            "lignes": relationship(
                lignes_commande_mapper,
                cascade="all, delete-orphan",
                order_by=lignes_commande.c.id,
            ),
        },
    )
    lignes_facture_mapper = mapper_registry.map_imperatively(
        model.LigneDeFacture,
        lignes_facture,
        properties={
            "quantité": lignes_facture.c.quantite,
            "unité": lignes_facture.c.unite,
        },
    )
    mapper_registry.map_imperatively(
        model.Facture,
        factures,
        properties={
            "id_entreprise": factures.c.entreprise_id,
            "numéro": factures.c.numero,
            "id_client": factures.c.client_id,
            "créée_le": factures.c.cree_le,
            "lignes": relationship(
                lignes_facture_mapper,
                cascade="all, delete-orphan",
                order_by=lignes_facture.c.id,
            ),
        },
    )
    mapper_registry.map_imperatively(
        model.MouvementDeStock,
        mouvements_stock,
        properties={
            "id_entreprise": mouvements_stock.c.entreprise_id,
            "id_produit": mouvements_stock.c.produit_id,
            "quantité": mouvements_stock.c.quantite,
            "référence": mouvements_stock.c.reference,
            "id_acteur": mouvements_stock.c.acteur_id,
            "stock_précédent": mouvements_stock.c.stock_precedent,
        },
    )


@event.listens_for(model.Commande, "load")
def receive_load_commande(commande: model.Commande, _: object) -> None:
    """Initialise la liste d'événements quand une Commande est chargée depuis la BDD."""
    commande.événements = []


@event.listens_for(model.Produit, "load")
def receive_load_produit(produit: model.Produit, _: object) -> None:
    produit.événements = []
