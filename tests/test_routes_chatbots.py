"""Tests des routes /chatbots (création, édition versionnée, versions, accueil)."""

from __future__ import annotations

from tests.fakes import auth_header


def _create(client, seeded, **extra):
    body = {"creatorId": seeded["creator"].id, "title": "Art of War", **extra}
    return client.post("/chatbots", json=body, headers=auth_header("ext_owner"))


def test_create_chatbot_returns_version_one(client, seeded):
    r = _create(client, seeded, systemPrompt="Be Sun Tzu", ragSettingsJson={"topK": 4})
    assert r.status_code == 200
    data = r.json()
    assert data["chatbot"]["title"] == "Art of War"
    assert data["chatbot"]["currentVersionId"] == data["version"]["id"]
    assert data["version"]["versionNumber"] == 1
    assert data["version"]["systemPrompt"] == "Be Sun Tzu"
    assert data["version"]["ragSettingsJson"] == {"topK": 4}
    assert data["version"]["notes"] == "Initial version"


def test_create_chatbot_requires_auth(client, seeded):
    r = client.post("/chatbots", json={"creatorId": seeded["creator"].id, "title": "x"})
    assert r.status_code == 401
    assert r.json()["code"] == "UNAUTHORIZED"


def test_create_chatbot_forbidden_for_non_member(client, seeded):
    r = client.post(
        "/chatbots",
        json={"creatorId": seeded["creator"].id, "title": "x"},
        headers=auth_header("ext_visitor"),
    )
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


def test_create_chatbot_missing_title_is_400(client, seeded):
    r = client.post(
        "/chatbots", json={"creatorId": seeded["creator"].id}, headers=auth_header("ext_owner")
    )
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_patch_details_does_not_create_version(client, seeded):
    bot = _create(client, seeded).json()["chatbot"]
    r = client.patch(
        f"/chatbots/{bot['id']}", json={"title": "Renamed"}, headers=auth_header("ext_member")
    )
    assert r.status_code == 200
    assert r.json()["chatbot"]["title"] == "Renamed"
    assert r.json()["version"] is None
    versions = client.get(f"/chatbots/{bot['id']}/versions", headers=auth_header("ext_owner"))
    assert [v["versionNumber"] for v in versions.json()] == [1]


def test_patch_behaviour_creates_next_version(client, seeded):
    bot = _create(client, seeded, systemPrompt="v1", modelName="gpt-4o").json()["chatbot"]
    r = client.patch(
        f"/chatbots/{bot['id']}",
        json={"systemPrompt": "v2", "changelog": "tone"},
        headers=auth_header("ext_owner"),
    )
    assert r.status_code == 200
    version = r.json()["version"]
    assert version["versionNumber"] == 2
    assert version["systemPrompt"] == "v2"
    assert version["modelName"] == "gpt-4o"
    assert version["changelog"] == "tone"
    assert r.json()["chatbot"]["currentVersionId"] == version["id"]

    versions = client.get(f"/chatbots/{bot['id']}/versions", headers=auth_header("ext_owner"))
    listed = versions.json()
    assert [v["versionNumber"] for v in listed] == [1, 2]
    assert listed[0]["deactivatedAt"] is not None


def test_patch_notes_without_behaviour_change_is_rejected(client, seeded):
    bot = _create(client, seeded).json()["chatbot"]
    r = client.patch(
        f"/chatbots/{bot['id']}",
        json={"title": "Renamed", "changelog": "orphan"},
        headers=auth_header("ext_owner"),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    versions = client.get(f"/chatbots/{bot['id']}/versions", headers=auth_header("ext_owner"))
    assert [v["versionNumber"] for v in versions.json()] == [1]
    detail = client.patch(
        f"/chatbots/{bot['id']}", json={}, headers=auth_header("ext_owner")
    ).json()
    assert detail["chatbot"]["title"] != "Renamed"


def test_patch_forbidden_for_non_member(client, seeded):
    bot = _create(client, seeded).json()["chatbot"]
    r = client.patch(
        f"/chatbots/{bot['id']}", json={"systemPrompt": "x"}, headers=auth_header("ext_visitor")
    )
    assert r.status_code == 403


def test_patch_unknown_chatbot(client, seeded):
    r = client.patch("/chatbots/missing", json={"title": "x"}, headers=auth_header("ext_owner"))
    assert r.status_code == 404
    assert r.json()["error"] == "Chatbot not found"


def test_welcome_without_questions(client, seeded):
    bot = _create(client, seeded).json()["chatbot"]
    r = client.get(f"/chatbots/{bot['id']}/welcome")
    assert r.status_code == 200
    assert r.headers["Cache-Control"].startswith("no-store")
    data = r.json()
    assert data == {
        "chatbotName": "Art of War",
        "intakeCompleted": False,
        "hasQuestions": False,
        "gate": "chat",
    }


def test_welcome_with_questions_gates_to_intake(client, seeded):
    bot = _create(client, seeded).json()["chatbot"]
    client.post(
        "/intake/questions",
        json={
            "chatbotId": bot["id"],
            "slug": "goal",
            "questionText": "Your goal?",
            "responseType": "TEXT",
            "displayOrder": 1,
            "isRequired": True,
        },
        headers=auth_header("ext_owner"),
    )
    r = client.get(f"/chatbots/{bot['id']}/welcome", headers=auth_header("ext_visitor"))
    data = r.json()
    assert data["hasQuestions"] is True
    assert data["intakeCompleted"] is False
    assert data["gate"] == "intake"
    assert [q["slug"] for q in data["questions"]] == ["goal"]
    assert data["questions"][0]["isRequired"] is True


def test_welcome_unknown_chatbot(client):
    r = client.get("/chatbots/missing/welcome")
    assert r.status_code == 404
