from app.sommertheater.modules.dietary.service import dietary_strictness_label, dietary_style_label


def test_style_and_strictness_labels():
    assert dietary_style_label("vegan", None) == "Vegan"
    assert dietary_style_label("custom", "Ohne Zucker") == "Ohne Zucker"
    assert dietary_style_label("unbekannt", None) == "Allesesser:in"
    assert dietary_strictness_label("omnivore", "strict") == "Nicht relevant"
    assert dietary_strictness_label("vegan", "strict").startswith("Strikt")


def test_allergy_upsert_and_deactivate(login_as):
    c, _ = login_as("mia@example.com")
    r = c.post("/api/allergies", json={"allergen": "Haselnuss", "level": "MODERATE", "symptoms": "Ausschlag"})
    assert r.status_code == 200
    assert r.json["allergy"]["levelLabel"]

    r = c.post("/api/allergies", json={"allergen": " Haselnuss ", "level": "SEVERE"})
    assert r.json["allergy"]["level"] == "SEVERE"
    assert r.json["allergy"]["symptoms"] is None
    assert len(c.get("/api/allergies").json["allergies"]) == 1

    r = c.delete("/api/allergies?allergen=Haselnuss")
    assert r.json == {"ok": True}
    assert c.get("/api/allergies").json["allergies"] == []

    r = c.delete("/api/allergies?allergen=Haselnuss")
    assert r.status_code == 404

    r = c.delete("/api/allergies")
    assert r.status_code == 400

    # reactivated on the next upsert
    r = c.post("/api/allergies", json={"allergen": "Haselnuss", "level": "MILD"})
    assert r.json["allergy"]["isActive"] is True


def test_allergy_validation(login_as):
    c, _ = login_as("mia@example.com")
    r = c.post("/api/allergies", json={"allergen": "X", "level": "DEADLY"})
    assert r.status_code == 400
    assert r.json["details"] == ["Allergen muss mindestens 2 Zeichen lang sein.", "Ungültiger Schweregrad."]


def test_overview_for_kitchen_team(app, login_as):
    mia, _ = login_as("mia@example.com", first_name="Mia", last_name="Berger")
    mia.post("/api/allergies", json={"allergen": "Laktose", "level": "MILD"})
    lea, _ = login_as("lea@example.com", first_name="Lea", last_name="Albers")
    lea.post("/api/allergies", json={"allergen": "Laktose", "level": "LETHAL"})
    lea.post("/api/allergies", json={"allergen": "Erdnuss", "level": "SEVERE"})

    assert mia.get("/api/allergies/overview").status_code == 403

    board, _ = login_as("vorstand@example.com", ("board",))
    r = board.get("/api/allergies/overview")
    assert r.status_code == 200
    data = r.json
    assert [(row["allergen"], row["memberName"]) for row in data["restrictions"]] == [
        ("Erdnuss", "Lea Albers"),
        ("Laktose", "Lea Albers"),
        ("Laktose", "Mia Berger"),
    ]
    assert data["levelCounts"] == {"MILD": 1, "MODERATE": 0, "SEVERE": 1, "LETHAL": 1}
    assert data["memberCount"] == 2


def test_allergen_matching_ignores_case(login_as):
    c, _ = login_as("mia@example.com")
    first = c.post("/api/allergies", json={"allergen": "Nüsse", "level": "MILD"}).json["allergy"]
    r = c.post("/api/allergies", json={"allergen": "NÜSSE", "level": "SEVERE"})
    assert r.json["allergy"]["id"] == first["id"]
    assert r.json["allergy"]["allergen"] == "NÜSSE"

    allergies = c.get("/api/allergies").json["allergies"]
    assert [(a["allergen"], a["level"]) for a in allergies] == [("NÜSSE", "SEVERE")]

    assert c.delete("/api/allergies?allergen=nüsse").json == {"ok": True}
    assert c.get("/api/allergies").json["allergies"] == []
