"""Tests for problem-solving endpoints (F6)."""

import pytest

from mentra.db import users_repository

CORRECT_STEP_ONE = "Find the sum of the two fractions."
REASONED_STEP_TWO = (
    "First I found a common denominator of 6. Then I added 3/6 and 2/6, "
    "so the answer is 5/6 because the denominators matched."
)

TEMPLATE_BODY = {
    "title": "Adding fractions",
    "problem_statement": "Add 1/2 and 1/3.",
    "subject": "math",
    "difficulty_level": "medium",
    "problem_type": "math",
    "hint_system": ["Look for a common denominator."],
    "scaffolding_steps": [
        {
            "title": "Understand",
            "prompt": "What is the problem asking?",
            "expected_response": "find the sum of the two fractions",
        },
        {"title": "Explain", "prompt": "Explain how you solved it."},
    ],
}


@pytest.fixture
def template(client, teacher, auth):
    response = client.post("/api/problems/templates", json=TEMPLATE_BODY, headers=auth(teacher))
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def session(client, student, auth, template):
    response = client.post("/api/problems/sessions", json={"template_id": template["id"]}, headers=auth(student))
    assert response.status_code == 201
    return response.json()


class TestTemplates:
    """Tests for template endpoints."""

    def test_create_and_list(self, client, student, auth, template):
        assert template["step_count"] == 2
        assert template["usage_count"] == 0

        data = client.get("/api/problems/templates", params={"subject": "math"}, headers=auth(student)).json()
        assert data["count"] == 1
        assert client.get(f"/api/problems/templates/{template['id']}", headers=auth(student)).status_code == 200

    def test_students_cannot_create(self, client, student, auth):
        response = client.post("/api/problems/templates", json=TEMPLATE_BODY, headers=auth(student))
        assert response.status_code == 403

    def test_empty_steps_rejected(self, client, teacher, auth):
        body = {**TEMPLATE_BODY, "scaffolding_steps": []}
        assert client.post("/api/problems/templates", json=body, headers=auth(teacher)).status_code == 422

    def test_missing_template(self, client, student, auth):
        response = client.get("/api/problems/templates/missing", headers=auth(student))
        assert response.status_code == 404


class TestSessions:
    """Tests for the step-by-step session flow."""

    def test_start(self, session):
        assert session["session_status"] == "active"
        assert session["current_step"] == 1
        assert session["progress"] == 0.0
        assert "expected_response" not in session["steps"][0]

    def test_start_missing_template(self, client, student, auth):
        response = client.post("/api/problems/sessions", json={"template_id": "missing"}, headers=auth(student))
        assert response.status_code == 404
        assert response.json() == {"error": "Problem template not found"}

    def test_wrong_answer_scaffolds(self, client, student, auth, session):
        response = client.post(
            f"/api/problems/sessions/{session['id']}/respond", json={"response": "banana"}, headers=auth(student)
        )
        data = response.json()
        assert data["quality"] == "incorrect"
        assert data["scaffolding"]
        assert data["session"]["mistakes_made"] == 1
        assert data["next_step"]["step_number"] == 1

    def test_full_session(self, client, student, auth, session):
        """Solving every step completes the session and awards the first-problem achievement."""
        headers = auth(student)
        url = f"/api/problems/sessions/{session['id']}/respond"

        first = client.post(url, json={"response": CORRECT_STEP_ONE}, headers=headers).json()
        assert first["is_correct"] is True
        assert first["next_step"]["step_number"] == 2

        last = client.post(url, json={"response": REASONED_STEP_TWO}, headers=headers).json()
        assert last["session_completed"] is True
        assert last["session"]["session_status"] == "completed"
        assert last["completion"]["achievements_earned"] == ["first_problem_solved"]
        assert last["completion"]["recommended_difficulty"] in ("easy", "medium", "hard")

        again = client.post(url, json={"response": "more"}, headers=headers)
        assert again.status_code == 409

        profile = client.get("/api/problems/profile", headers=headers).json()
        assert profile["sessions_analyzed"] == 1

    def test_other_student_forbidden(self, client, auth, make_user, session):
        other = make_user("student")
        response = client.post(
            f"/api/problems/sessions/{session['id']}/respond", json={"response": "x"}, headers=auth(other)
        )
        assert response.status_code == 403

    def test_hint_abandon_heartbeat(self, client, student, auth, session):
        headers = auth(student)
        base = f"/api/problems/sessions/{session['id']}"

        hint = client.post(f"{base}/hint", headers=headers).json()
        assert hint == {"hint": "Look for a common denominator.", "hints_used": 1, "source": "template"}

        heartbeat = client.post(f"{base}/heartbeat", json={"engagement_level": "high"}, headers=headers)
        assert heartbeat.status_code == 200
        assert 0.0 <= heartbeat.json()["engagement_score"] <= 1.0

        feedback = client.post(
            f"{base}/feedback", json={"emotional_state": "calm", "difficulty_perception": 3}, headers=headers
        )
        assert feedback.json()["success"] is True

        abandoned = client.post(f"{base}/abandon", headers=headers).json()
        assert abandoned["session_status"] == "abandoned"
        assert client.post(f"{base}/hint", headers=headers).status_code == 409

    def test_list_and_analytics(self, client, student, auth, session):
        headers = auth(student)
        data = client.get("/api/problems/sessions", params={"status": "active"}, headers=headers).json()
        assert [s["id"] for s in data["sessions"]] == [session["id"]]

        analytics = client.get(f"/api/problems/sessions/{session['id']}/analytics", headers=headers)
        assert analytics.status_code == 200

    def test_parent_needs_student_id(self, client, parent, auth):
        response = client.get("/api/problems/sessions", headers=auth(parent))
        assert response.status_code == 400
        assert response.json() == {"error": "student_id is required"}


class TestDifficulty:
    """Tests for difficulty recommendation and profiles."""

    def test_recommendation_without_profile(self, client, student, auth):
        data = client.get("/api/problems/recommended-difficulty", headers=auth(student)).json()
        assert data == {
            "student_id": student.id,
            "subject": "general",
            "recommended_difficulty": "medium",
            "has_profile": False,
        }

    def test_profile_missing(self, client, student, auth):
        response = client.get("/api/problems/profile", params={"subject": "math"}, headers=auth(student))
        assert response.status_code == 404

    def test_teacher_reads_assigned_student(self, client, student, teacher, auth):
        params = {"student_id": student.id}
        assert client.get("/api/problems/recommended-difficulty", params=params, headers=auth(teacher)).status_code == 403

        users_repository.assign_student_to_teacher(teacher.id, student.id)
        response = client.get("/api/problems/recommended-difficulty", params=params, headers=auth(teacher))
        assert response.status_code == 200

    def test_adapt_insufficient_data(self, client, student, auth):
        data = client.post("/api/problems/adapt-difficulty", json={"subject": "math"}, headers=auth(student)).json()
        assert data["status"] == "insufficient_data"
        assert data["analysis"] is None
