"""
Tests end-to-end de l'API Flask.

Ces tests vérifient le flux complet :
HTTP request → Flask → Message Bus → Handlers → Repository → SQLite

On utilise le test client Flask avec une base SQLite en mémoire,
ce qui donne des tests rapides tout en couvrant toute la chaîne.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from commandes.entrypoints.flask_app import app

EN_TÊTES = {
    "X-Utilisateur-Id": "u-1",
    "X-Utilisateur-Nom": "Amina",
    "X-Entreprise-Id": "ent-1",
}
AUTRE_ENTREPRISE = {**EN_TÊTES, "X-Entreprise-Id": "ent-2"}


@pytest.fixture
def client(sqlite_bus):
    """Client de test Flask avec le bus injecté."""
    import commandes.entrypoints.flask_app as flask_module

    original_bus = flask_module.bus
    flask_module.bus = sqlite_bus
    app.config["TESTING"] = True

    with app.test_client() as client:
        yield client

    flask_module.bus = original_bus


def créer_produit(client, nom="Ciment", stock_initial=100, stock_minimum=10):
    response = client.post("/produits", headers=EN_TÊTES, json={
        "name": nom,
        "unit": "sac",
        "salePrice": 10,
        "initialStock": stock_initial,
        "minStock": stock_minimum,
    })
    assert response.status_code == 201
    return response.get_json()["id"]


def créer_commande(client, items, **champs):
    body = {
        "clientType": "personne_physique",
        "clientName": "Youssef",
        "orderDate": "2025-03-15T09:00:00",
        "items": items,
        **champs,
    }
    return client.post("/commandes", headers=EN_TÊTES, json=body)


def mouvements(client, id_produit):
    return client.get(f"/produits/{id_produit}/mouvements", headers=EN_TÊTES).get_json()


class TestAuthentification:
    def test_sans_en_têtes_401(self, client):
        response = client.get("/commandes")
        assert response.status_code == 401

    def test_sans_entreprise_401(self, client):
        response = client.get("/commandes", headers={"X-Utilisateur-Id": "u-1"})
        assert response.status_code == 401


class TestCréerCommande:
    def test_créer_une_commande_livrée(self, client):
        id_produit = créer_produit(client)

        response = créer_commande(client, [{"productId": id_produit, "quantity": 5, "unitPrice": 10}])

        assert response.status_code == 201
        id_commande = response.get_json()["id"]
        détail = client.get(f"/commandes/{id_commande}", headers=EN_TÊTES).get_json()
        assert détail["numéro"] == "CMD-2025-001"
        assert détail["statut"] == "livre"
        assert détail["stock_débité"] is True
        assert détail["sous_total"] == 50
        assert détail["lignes"][0]["unité"] == "sac"
        sorties = [m for m in mouvements(client, id_produit) if m["type"] == "order_out"]
        assert [m["quantité"] for m in sorties] == [-5]

    def test_livraison_future_en_cours(self, client):
        id_produit = créer_produit(client)

        response = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}],
            hasDeliveryDate=True, deliveryDate="2025-03-20T10:00:00",
        )

        détail = client.get(f"/commandes/{response.get_json()['id']}", headers=EN_TÊTES).get_json()
        assert détail["statut"] == "en_cours_livraison"
        assert détail["date_livraison"] == "2025-03-20T10:00:00"

    def test_ligne_sans_produit_400(self, client):
        response = créer_commande(client, [{"quantity": 1, "unitPrice": 10}])

        assert response.status_code == 400
        assert "produit" in response.get_json()["message"]

    def test_société_sans_client_400(self, client):
        id_produit = créer_produit(client)

        response = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}],
            clientType="societe", clientName=None,
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Veuillez sélectionner un client"

    def test_date_invalide_400(self, client):
        id_produit = créer_produit(client)

        response = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}],
            orderDate="15/03/2025",
        )

        assert response.status_code == 400


class TestCycleDeVie:
    def test_annuler_puis_supprimer(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 3, "unitPrice": 10}]
        ).get_json()["id"]

        response = client.post(
            f"/commandes/{id_commande}/statut", headers=EN_TÊTES, json={"status": "annule"}
        )
        assert response.status_code == 204
        response = client.delete(f"/commandes/{id_commande}", headers=EN_TÊTES)
        assert response.status_code == 204

        assert client.get(f"/commandes/{id_commande}", headers=EN_TÊTES).status_code == 404
        commande = [m for m in mouvements(client, id_produit) if m["référence"] == "CMD-2025-001"]
        assert sorted(m["quantité"] for m in commande) == [-3, 3]

    def test_supprimer_une_commande_livrée_réintègre(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 4, "unitPrice": 10}]
        ).get_json()["id"]

        client.delete(f"/commandes/{id_commande}", headers=EN_TÊTES)

        commande = [m for m in mouvements(client, id_produit) if m["référence"] == "CMD-2025-001"]
        assert sum(m["quantité"] for m in commande) == 0
        assert {m["type"] for m in commande} == {"order_out", "order_cancel_return"}

    def test_modifier_une_commande(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 4, "unitPrice": 10}]
        ).get_json()["id"]

        response = client.patch(f"/commandes/{id_commande}", headers=EN_TÊTES, json={
            "clientName": "Salma",
            "items": [{"productId": id_produit, "quantity": 6, "unitPrice": 10}],
        })

        assert response.status_code == 204
        détail = client.get(f"/commandes/{id_commande}", headers=EN_TÊTES).get_json()
        assert détail["nom_client"] == "Salma"
        assert détail["sous_total"] == 60
        assert len([m for m in mouvements(client, id_produit) if m["type"] == "order_out"]) == 1

    def test_statut_inconnu_400(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}]
        ).get_json()["id"]

        response = client.post(
            f"/commandes/{id_commande}/statut", headers=EN_TÊTES, json={"status": "perdue"}
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("méthode, suffixe, body", [
        ("get", "", None),
        ("patch", "", {"clientName": "X"}),
        ("delete", "", None),
        ("post", "/statut", {"status": "annule"}),
    ])
    def test_commande_inconnue_404(self, client, méthode, suffixe, body):
        response = getattr(client, méthode)(
            f"/commandes/inconnue{suffixe}", headers=EN_TÊTES, json=body
        )
        assert response.status_code == 404

    def test_commande_d_une_autre_entreprise_404(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}]
        ).get_json()["id"]

        response = client.get(f"/commandes/{id_commande}", headers=AUTRE_ENTREPRISE)

        assert response.status_code == 404


class TestListe:
    def test_lister_les_commandes(self, client):
        id_produit = créer_produit(client)
        for _ in range(3):
            créer_commande(client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}])

        response = client.get(
            "/commandes?sortBy=number&sortOrder=asc&perPage=2&page=1", headers=EN_TÊTES
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert [c["numéro"] for c in data["commandes"]] == ["CMD-2025-001", "CMD-2025-002"]
        assert data["compteurs"]["livre"] == 3


class TestStock:
    def test_ajustement_facture_et_résumé(self, client):
        id_produit = créer_produit(client, "Ciment", stock_initial=50, stock_minimum=5)

        response = client.post(f"/produits/{id_produit}/ajustements", headers=EN_TÊTES, json={
            "type": "ajout", "quantity": 10, "reason": "Réception fournisseur",
        })
        assert response.status_code == 201
        response = client.post("/factures", headers=EN_TÊTES, json={
            "date": "2025-03-14T12:00:00",
            "items": [{"productId": id_produit, "quantity": 58, "unitPrice": 10}],
        })
        assert response.status_code == 201

        résumé = client.get(f"/produits/{id_produit}/stock", headers=EN_TÊTES).get_json()
        assert résumé["stock_actuel"] == 2
        assert résumé["niveau"] == "faible"
        assert résumé["nombre_factures"] == 1

    def test_ajustement_sans_motif_400(self, client):
        id_produit = créer_produit(client)

        response = client.post(f"/produits/{id_produit}/ajustements", headers=EN_TÊTES, json={
            "type": "retrait", "quantity": 1, "reason": " ",
        })

        assert response.status_code == 400

    def test_produit_inconnu_404(self, client):
        response = client.post("/produits/inconnu/ajustements", headers=EN_TÊTES, json={
            "type": "ajout", "quantity": 1, "reason": "Réception",
        })
        assert response.status_code == 404
        assert client.get("/produits/inconnu/stock", headers=EN_TÊTES).status_code == 404

    def test_créer_un_client(self, client):
        response = client.post("/clients", headers=EN_TÊTES, json={"name": "Atlas BTP"})
        assert response.status_code == 201

        response = client.post("/clients", headers=EN_TÊTES, json={"name": ""})
        assert response.status_code == 400


class TestSaisieInvalide:
    @pytest.mark.parametrize("date_livraison", [
        "2030-01-01T10:00:00+00:00",
        "2030-01-01T10:00:00Z",
        "2030-01-01T12:00:00+02:00",
    ])
    def test_date_de_livraison_avec_fuseau(self, client, date_livraison):
        id_produit = créer_produit(client)

        response = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}],
            hasDeliveryDate=True, deliveryDate=date_livraison,
        )

        assert response.status_code == 201
        détail = client.get(f"/commandes/{response.get_json()['id']}", headers=EN_TÊTES).get_json()
        assert détail["statut"] == "en_cours_livraison"
        assert détail["stock_débité"] is True

    @pytest.mark.parametrize("item", [
        {"quantity": "beaucoup", "unitPrice": 10},
        {"quantity": 1, "unitPrice": "gratuit"},
        {"quantity": 1, "unitPrice": "NaN"},
    ])
    def test_nombre_invalide_400(self, client, item):
        id_produit = créer_produit(client)

        response = créer_commande(client, [{"productId": id_produit, **item}])

        assert response.status_code == 400
        assert "Nombre invalide" in response.get_json()["message"]

    def test_articles_null_à_la_modification_400(self, client):
        id_produit = créer_produit(client)
        id_commande = créer_commande(
            client, [{"productId": id_produit, "quantity": 1, "unitPrice": 10}]
        ).get_json()["id"]

        response = client.patch(f"/commandes/{id_commande}", headers=EN_TÊTES, json={"items": None})

        assert response.status_code == 400
        détail = client.get(f"/commandes/{id_commande}", headers=EN_TÊTES).get_json()
        assert len(détail["lignes"]) == 1

    def test_stock_initial_invalide_400(self, client):
        response = client.post("/produits", headers=EN_TÊTES, json={
            "name": "Ciment", "initialStock": "dix",
        })
        assert response.status_code == 400


def commit_en_échec(session):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


class TestErreurÉcriture:
    def test_échec_du_commit_500_sans_détail(self, client, monkeypatch):
        monkeypatch.setattr(Session, "commit", commit_en_échec)

        response = client.post("/clients", headers=EN_TÊTES, json={"name": "Atlas BTP"})

        assert response.status_code == 500
        assert response.get_json() == {"message": "Une erreur est survenue, veuillez réessayer"}

    def test_rien_n_est_écrit(self, client, monkeypatch):
        id_produit = créer_produit(client)

        with monkeypatch.context() as m:
            m.setattr(Session, "commit", commit_en_échec)
            response = créer_commande(client, [{"productId": id_produit, "quantity": 2, "unitPrice": 10}])
        assert response.status_code == 500

        liste = client.get("/commandes", headers=EN_TÊTES).get_json()
        assert liste["total"] == 0
        assert [m["type"] for m in mouvements(client, id_produit)] == ["initial"]


class TestHistorique:
    def test_historique_avec_ventes(self, client):
        id_produit = créer_produit(client, "Ciment", stock_initial=20)
        client.post("/factures", headers=EN_TÊTES, json={
            "date": "2025-03-16T09:00:00",
            "items": [{"description": "Ciment", "quantity": 4, "unitPrice": 10}],
        })

        response = client.get(f"/produits/{id_produit}/historique", headers=EN_TÊTES)

        assert response.status_code == 200
        assert [(e["type"], e["nouveau_stock"]) for e in response.get_json()] == [
            ("sale", 16),
            ("initial", 20),
        ]

    def test_intervalle_de_dates(self, client):
        id_produit = créer_produit(client, "Ciment", stock_initial=20)
        client.post("/factures", headers=EN_TÊTES, json={
            "date": "2025-03-16T09:00:00",
            "items": [{"description": "Ciment", "quantity": 4, "unitPrice": 10}],
        })

        response = client.get(
            f"/produits/{id_produit}/historique?startDate=2025-03-16&endDate=2025-03-16",
            headers=EN_TÊTES,
        )

        assert [e["référence"] for e in response.get_json()] == ["FAC-2025-001"]

    def test_date_invalide_400(self, client):
        id_produit = créer_produit(client)

        response = client.get(
            f"/produits/{id_produit}/historique?startDate=hier&endDate=2025-03-16",
            headers=EN_TÊTES,
        )

        assert response.status_code == 400

    def test_produit_inconnu_404(self, client):
        assert client.get("/produits/inconnu/historique", headers=EN_TÊTES).status_code == 404
