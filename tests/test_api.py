import uuid

TEXT = "Photosynthesis converts light energy into chemical energy. Chlorophyll absorbs light."


def _create_source(api_client, **overrides):
    payload = {"source_type": "video", "title": "Plants lecture", "topic": "Photosynthesis", "text": TEXT}
    payload.update(overrides)
    response = api_client.post("/api/sources", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _generate(api_client, source, **options):
    response = api_client.post("/api/quizzes/generate", json={
        "source": {"source_type": source["source_type"], "source_id": source["id"]},
        "options": options,
    })
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_root(api_client):
    assert api_client.get("/health").json()["status"] == "healthy"
    assert api_client.get("/").json()["docs"] == "/docs"


def test_register_and_fetch_source(api_client):
    source = _create_source(api_client)
    assert source["characters"] == len(TEXT)

    fetched = api_client.get(f"/api/sources/{source['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Plants lecture"


def test_blank_source_is_rejected(api_client):
    response = api_client.post("/api/sources", json={"source_type": "course", "title": "Empty", "text": "   "})
    assert response.status_code == 422
    assert response.json()["error"] == "empty_content"


def test_upload_text_document(api_client):
    response = api_client.post(
        "/api/sources/upload",
        files={"file": ("notes.txt", TEXT.encode("utf-8"), "text/plain")},
        data={"topic": "Photosynthesis"},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["source_type"] == "document"
    assert body["title"] == "notes"
    assert body["mime_type"] == "text/plain"


def test_upload_rejects_overlong_title(api_client):
    response = api_client.post(
        "/api/sources/upload",
        files={"file": ("notes.txt", TEXT.encode("utf-8"), "text/plain")},
        data={"title": "t" * 256},
    )
    assert response.status_code == 422


def test_upload_rejects_other_files(api_client):
    response = api_client.post(
        "/api/sources/upload",
        files={"file": ("image.png", b"\x89PNG", "image/png")},
    )
    assert response.status_code == 400


def test_generate_and_fetch_quiz(api_client):
    source = _create_source(api_client)
    quiz = _generate(api_client, source, question_count=2, difficulty="beginner")

    assert len(quiz["questions"]) == 2
    assert quiz["passing_score"] == 70
    assert quiz["metadata"]["source_type"] == "video"

    fetched = api_client.get(f"/api/quizzes/{quiz['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == quiz


def test_generate_from_missing_source_is_404(api_client):
    response = api_client.post("/api/quizzes/generate", json={
        "source": {"source_type": "document", "source_id": str(uuid.uuid4())},
    })
    assert response.status_code == 404
    assert response.json()["error"] == "content_unavailable"


def test_submit_result_and_recommendation_flow(api_client):
    source = _create_source(api_client)
    quiz = _generate(api_client, source, title="Photosynthesis")
    first, second = quiz["questions"]

    submitted = api_client.post(f"/api/quizzes/{quiz['id']}/submit", json={
        "user_id": "learner-42",
        "answers": [
            {"question_id": first["id"], "answer": "Keratin"},
            {"question_id": second["id"], "answer": False},
        ],
    })
    assert submitted.status_code == 200, submitted.text
    result = submitted.json()
    assert result["aggregate_score"] == 0
    assert result["passed"] is False

    fetched = api_client.get(f"/api/attempts/{result['attempt_id']}/result")
    assert fetched.json() == result

    recommendations = api_client.get("/api/users/learner-42/recommendations").json()
    assert [r["priority"] for r in recommendations] == [1, 2]

    closed = api_client.patch(
        f"/api/recommendations/{recommendations[0]['id']}",
        json={"status": "completed", "effectiveness": 0.9},
    )
    assert closed.status_code == 204

    again = api_client.patch(f"/api/recommendations/{recommendations[0]['id']}", json={"status": "skipped"})
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_status_transition"

    invalid = api_client.patch(
        f"/api/recommendations/{recommendations[1]['id']}",
        json={"status": "skipped", "effectiveness": 0.3},
    )
    assert invalid.status_code == 422

    remaining = api_client.get("/api/users/learner-42/recommendations").json()
    assert [r["id"] for r in remaining] == [recommendations[1]["id"]]

    progress = api_client.get("/api/users/learner-42/progress").json()
    assert progress["total_attempts"] == 1
    assert progress["struggling_topics"] == ["Photosynthesis"]

    plan = api_client.get(f"/api/attempts/{result['attempt_id']}/study-suggestions")
    assert plan.status_code == 200
    assert plan.json()["weak_areas"]


def test_unknown_quiz_and_attempt_are_404(api_client):
    assert api_client.get(f"/api/quizzes/{uuid.uuid4()}").status_code == 404
    assert api_client.get(f"/api/attempts/{uuid.uuid4()}/result").status_code == 404
    response = api_client.post(f"/api/quizzes/{uuid.uuid4()}/submit", json={"user_id": "u", "answers": []})
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
