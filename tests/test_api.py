from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app.models import Project, Submission, SubmissionStatus


def register_and_login(client: TestClient, username: str, role: str):
    response = client.post(
        "/api/v2/auth/register",
        json={"username": username, "password": "password123", "name": username.title(), "role": role},
    )
    assert response.status_code == 201
    user_id = response.json()["id"]

    response = client.post(
        "/api/v2/auth/login", data={"username": username, "password": "password123"}
    )
    assert response.status_code == 200
    token = response.json()["access_token"]
    return user_id, {"Authorization": f"Bearer {token}"}


def submit(session, project: Project, student_id: int) -> Submission:
    submission = Submission(
        project_id=project.id,
        student_id=student_id,
        status=SubmissionStatus.SUBMITTED,
        submitted_data={"summary": "done"},
        submitted_at=datetime.now(timezone.utc),
    )
    session.add(submission)
    session.commit()
    return submission


# === 审阅 ===

def test_approve_flow(client: TestClient, session, world, notifier):
    _, teacher = register_and_login(client, "t1", "teacher")
    student_id, student = register_and_login(client, "s1", "student")
    submission = submit(session, world.project, student_id)

    response = client.post(
        f"/api/v2/reviews/submissions/{submission.id}/approve",
        json={"comment": "Well done", "grade": 92},
        headers=teacher,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "approved"
    assert data["grade"] == 92
    assert data["review_status"] == "approved"
    assert {s["skill_name"]: s["level"] for s in data["skills_generated"]} == {"Python": 3, "Teamwork": 1}
    assert notifier.approvals == [(student_id, "Weather Dashboard")]

    again = client.post(
        f"/api/v2/reviews/submissions/{submission.id}/approve", json={}, headers=teacher
    )
    assert again.status_code == 409
    assert "approved" in again.json()["detail"]

    wallet = client.get("/api/v2/skill-wallet/my-wallet", headers=student).json()
    assert wallet["total_skills"] == 2
    python = next(entry for entry in wallet["skills"] if entry["skill"]["name"] == "Python")
    assert (python["level"], python["progress"], python["maturity"]) == (3, 0, 3.0)


def test_student_cannot_approve(client: TestClient, session, world):
    student_id, student = register_and_login(client, "s2", "student")
    submission = submit(session, world.project, student_id)

    response = client.post(
        f"/api/v2/reviews/submissions/{submission.id}/approve", json={}, headers=student
    )
    assert response.status_code == 403
    assert client.post(f"/api/v2/reviews/submissions/{submission.id}/approve", json={}).status_code == 401


def test_reject_validation(client: TestClient, session, world):
    _, teacher = register_and_login(client, "t2", "teacher")
    student_id, _ = register_and_login(client, "s3", "student")
    submission = submit(session, world.project, student_id)
    url = f"/api/v2/reviews/submissions/{submission.id}/reject"

    assert client.post(url, json={"comment": ""}, headers=teacher).status_code == 422
    assert client.post(url, json={"comment": "   "}, headers=teacher).status_code == 400
    assert client.post(url, json={"comment": "ok", "grade": 101}, headers=teacher).status_code == 422

    response = client.post(url, json={"comment": "needs more detail", "grade": 45}, headers=teacher)
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["skills_generated"] is None


def test_comment_start_moderate_and_list(client: TestClient, session, world):
    _, teacher = register_and_login(client, "t3", "teacher")
    student_id, _ = register_and_login(client, "s4", "student")
    first = submit(session, world.project, student_id)
    second = submit(session, world.project, student_id)

    response = client.patch(
        f"/api/v2/reviews/submissions/{first.id}/comment", json={"comment": "Nice start"}, headers=teacher
    )
    assert response.status_code == 200
    assert response.json()["review_comment"] == "Nice start"

    response = client.post(f"/api/v2/reviews/submissions/{first.id}/start", headers=teacher)
    assert response.json()["status"] == "under_review"

    response = client.post(
        f"/api/v2/reviews/submissions/{second.id}/moderate", json={"status": "flagged"}, headers=teacher
    )
    assert response.json()["status"] == "flagged"

    listing = client.get("/api/v2/reviews/submissions", headers=teacher).json()
    assert listing["total"] == 1
    assert listing["submissions"][0]["id"] == first.id

    detail = client.get(f"/api/v2/reviews/submissions/{second.id}", headers=teacher)
    assert detail.status_code == 200
    assert client.get("/api/v2/reviews/submissions/9999", headers=teacher).status_code == 404


# === 评分标准评价 ===

def test_rubric_evaluation_routes(client: TestClient, session, world):
    _, teacher = register_and_login(client, "t4", "teacher")
    student_id, _ = register_and_login(client, "s5", "student")
    submission = submit(session, world.project, student_id)
    base = f"/api/v2/rubric-evaluation/submissions/{submission.id}"

    assert client.get(f"{base}/calculate-score", headers=teacher).json()["overall_score"] is None

    too_high = client.post(
        f"{base}/evaluate", json={"scores": {"Code Quality": {"score": 30}}}, headers=teacher
    )
    assert too_high.status_code == 400
    assert "Code Quality" in too_high.json()["detail"]

    created = client.post(
        f"{base}/evaluate",
        json={"scores": {"Code Quality": {"score": 20, "comment": "clean"}}, "overallScore": 80},
        headers=teacher,
    )
    assert created.status_code == 201
    assert created.json()["comments"] == {"Code Quality": "clean"}

    assert client.post(f"{base}/evaluate", json={}, headers=teacher).status_code == 400

    updated = client.patch(
        f"{base}/evaluation", json={"scores": {"Documentation": {"score": 5}}}, headers=teacher
    )
    assert updated.status_code == 200
    assert set(updated.json()["scores"]) == {"Code Quality", "Documentation"}

    rubric = client.get(f"{base}/rubric", headers=teacher).json()
    assert rubric["project_name"] == "Weather Dashboard"
    assert rubric["evaluation"]["overall_score"] == 80

    assert client.get(f"{base}/evaluation", headers=teacher).status_code == 200
    # (20 + 5) / (25 + 25)
    assert client.get(f"{base}/calculate-score", headers=teacher).json()["overall_score"] == 50.0


# === 技能钱包 ===

def test_wallet_is_read_only_for_everyone(client: TestClient, session, world):
    _, admin = register_and_login(client, "a1", "platform_admin")
    student_id, student = register_and_login(client, "s6", "student")
    _, parent = register_and_login(client, "p1", "parent")

    for headers in (admin, student, {}):
        assert client.put("/api/v2/skill-wallet/1", json={"level": 9}, headers=headers).status_code == 403
        assert client.patch("/api/v2/skill-wallet/1", json={"progress": 0}, headers=headers).status_code == 403
        assert client.delete("/api/v2/skill-wallet/1", headers=headers).status_code == 403
        assert client.post("/api/v2/skill-wallet", json={}, headers=headers).status_code == 403

    assert client.get(f"/api/v2/skill-wallet/student/{student_id}", headers=admin).status_code == 200
    assert client.get(f"/api/v2/skill-wallet/student/{student_id}", headers=parent).status_code == 403
    assert client.get("/api/v2/skill-wallet/student/9999", headers=admin).status_code == 404


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
