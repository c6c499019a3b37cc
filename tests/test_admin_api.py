"""Tests for administrative endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.core.schemas_assistant import EvaluationResult
from app.main import app
from tests.conftest import ADMIN_KEY
from tests.fakes.fake_llm import llm_returning

client = TestClient(app)
HEADERS = {"X-API-Key": ADMIN_KEY}


class TestAdminAuth:
    def test_missing_key_is_401(self, fake_db):
        assert client.get("/v1/admin/insights").status_code == 401

    def test_wrong_key_is_401(self, fake_db):
        assert client.get("/v1/admin/insights", headers={"X-API-Key": "nope"}).status_code == 401

    def test_non_ascii_key_is_401(self, fake_db):
        headers = {"X-API-Key": "cl\u00e9-secr\u00e8te".encode("utf-8")}
        assert client.get("/v1/admin/insights", headers=headers).status_code == 401

    def test_unconfigured_key_is_503(self, fake_db, settings, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_KEY", None)
        assert client.get("/v1/admin/insights", headers=HEADERS).status_code == 503


class TestKnowledgeIntake:
    def test_documents_and_training_pairs(self, fake_db):
        doc = client.post(
            "/v1/admin/knowledge/documents",
            json={"source_name": "resume.pdf", "content": "Nick is a product manager."},
            headers=HEADERS,
        )
        pair = client.post(
            "/v1/admin/knowledge/training-pairs",
            json={"question": "Where is Nick based?", "answer": "Columbus, Ohio"},
            headers=HEADERS,
        )

        assert doc.status_code == 201
        assert pair.status_code == 201
        assert fake_db.rows("training_pairs")[0]["category"] == "general"


class TestInsightEndpoints:
    def test_toggle_and_delete(self, fake_db):
        from app.db.insights import create_insight

        insight = create_insight("improvement", "Mention certifications", importance=5)

        toggled = client.patch(f"/v1/admin/insights/{insight['id']}", json={"is_active": False}, headers=HEADERS)
        assert toggled.status_code == 200
        assert toggled.json()["is_active"] is False

        active = client.get("/v1/admin/insights", params={"active_only": True}, headers=HEADERS)
        assert active.json() == []

        deleted = client.delete(f"/v1/admin/insights/{insight['id']}", headers=HEADERS)
        assert deleted.status_code == 204
        assert fake_db.rows("insights") == []

    def test_unknown_insight_is_404(self, fake_db):
        assert client.patch("/v1/admin/insights/nope", json={"is_active": True}, headers=HEADERS).status_code == 404
        assert client.delete("/v1/admin/insights/nope", headers=HEADERS).status_code == 404

    def test_extraction_and_deduplication_runs(self, fake_db):
        from app.core.assistant import submit_feedback
        from app.db.conversations import create_turn

        turn = create_turn("s", "q", "a")
        submit_feedback(turn["id"], "disapprove", "Nick also holds a PMP")

        extract = client.post("/v1/admin/insights/extract", headers=HEADERS)
        assert extract.json() == {"evaluation_insights": 0, "feedback_insights": 1}

        dedup = client.post("/v1/admin/insights/deduplicate", headers=HEADERS)
        assert dedup.json() == {"retired": 0}

        stats = client.get("/v1/admin/insights/stats", headers=HEADERS).json()
        assert stats["by_category"]["improvement"] == 1


class TestEvaluationEndpoints:
    def test_stats_and_turn_evaluations(self, fake_db):
        from app.db.conversations import create_turn
        from app.db.evaluations import create_evaluation

        turn = create_turn("s", "q", "a")
        create_evaluation(turn["id"], EvaluationResult(criterion_scores={"clarity": 0.8}, overall_score=0.8))

        stats = client.get("/v1/admin/evaluations/stats", headers=HEADERS).json()
        assert stats["count"] == 1
        assert stats["mean_per_criterion"] == {"clarity": 0.8}
        assert stats["last_week"] == 0.8

        per_turn = client.get(f"/v1/admin/turns/{turn['id']}/evaluations", headers=HEADERS)
        assert len(per_turn.json()) == 1
        assert client.get("/v1/admin/turns/missing/evaluations", headers=HEADERS).status_code == 404


class TestReEvaluation:
    def test_single_turn_adds_a_new_evaluation(self, fake_db):
        from app.db.conversations import create_turn
        from app.db.evaluations import create_evaluation

        turn = create_turn("s", "What does Nick do?", "Product manager at EY.")
        create_evaluation(turn["id"], EvaluationResult(criterion_scores={"clarity": 0.4}, overall_score=0.4))
        fresh = EvaluationResult(criterion_scores={"clarity": 0.9}, overall_score=0.9)

        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=fresh)):
            response = client.post(f"/v1/admin/turns/{turn['id']}/evaluate", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["overall_score"] == 0.9
        assert len(fake_db.rows("evaluations")) == 2

    def test_unknown_turn_is_404(self, fake_db):
        assert client.post("/v1/admin/turns/missing/evaluate", headers=HEADERS).status_code == 404

    def test_exhausted_retries_are_502_and_recorded(self, fake_db):
        from app.db.conversations import create_turn

        turn = create_turn("s", "q", "a")
        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(side_effect=RuntimeError("judge down"))):
            response = client.post(f"/v1/admin/turns/{turn['id']}/evaluate", headers=HEADERS)

        assert response.status_code == 502
        assert fake_db.rows("evaluation_failures")[0]["conversation_turn_id"] == turn["id"]

    def test_batch_evaluates_only_unevaluated_turns(self, fake_db):
        from app.db.conversations import create_turn
        from app.db.evaluations import create_evaluation

        scored = create_turn("s", "q1", "a1")
        create_turn("s", "q2", "a2")
        create_turn("s", "q3", "a3")
        create_evaluation(scored["id"], EvaluationResult(criterion_scores={"clarity": 0.8}, overall_score=0.8))
        result = EvaluationResult(criterion_scores={"clarity": 0.7}, overall_score=0.7)

        with patch("app.core.evaluation_runner.evaluate_answer", AsyncMock(return_value=result)) as evaluate:
            response = client.post("/v1/admin/evaluations/batch", headers=HEADERS)

        assert response.json() == {"total_turns": 3, "evaluated_before": 1, "newly_evaluated": 2, "failed": 0}
        assert evaluate.await_count == 2
        assert len(fake_db.rows("evaluations")) == 3


class TestFeedbackEndpoints:
    def test_lists_all_and_per_turn_feedback(self, fake_db):
        from app.core.assistant import submit_feedback
        from app.db.conversations import create_turn

        first = create_turn("s", "q1", "a1")
        second = create_turn("s", "q2", "a2")
        submit_feedback(first["id"], "approve")
        submit_feedback(second["id"], "disapprove", "Mention the PMP")

        everything = client.get("/v1/admin/feedback", headers=HEADERS)
        per_turn = client.get(f"/v1/admin/turns/{second['id']}/feedback", headers=HEADERS)

        assert everything.status_code == 200
        assert len(everything.json()) == 2
        assert [f["comment"] for f in per_turn.json()] == ["Mention the PMP"]
        assert per_turn.json()[0]["rating"] == "disapprove"

    def test_feedback_for_unknown_turn_is_404(self, fake_db):
        assert client.get("/v1/admin/turns/missing/feedback", headers=HEADERS).status_code == 404


class TestInstructionEndpoints:
    def test_suggestion_round_trip(self, fake_db):
        with patch("app.chains.synthesize_instruction.get_llm", return_value=llm_returning("Candidate.")):
            suggested = client.post("/v1/admin/instruction/suggestion", headers=HEADERS)
        assert suggested.json()["state"] == "suggested"

        approved = client.post(
            "/v1/admin/instruction/suggestion/approve", json={"text": "Edited."}, headers=HEADERS
        )
        assert approved.status_code == 200
        assert approved.json()["instruction"] == "Edited."
        assert approved.json()["is_override"] is True

        again = client.post("/v1/admin/instruction/suggestion/reject", headers=HEADERS)
        assert again.status_code == 409

    def test_override_and_formatting_rules(self, fake_db):
        client.put("/v1/admin/instruction/formatting-rules", json={"text": "One sentence only."}, headers=HEADERS)
        preview = client.get("/v1/admin/instruction/preview", headers=HEADERS).json()["instruction"]
        assert "One sentence only." in preview

        client.put("/v1/admin/instruction/override", json={"text": "Pinned."}, headers=HEADERS)
        status = client.get("/v1/admin/instruction", headers=HEADERS).json()
        assert status["instruction"] == "Pinned."
        assert status["suggestion"]["state"] == "idle"

        cleared = client.delete("/v1/admin/instruction/override", headers=HEADERS).json()
        assert cleared["is_override"] is False
        assert "One sentence only." in cleared["instruction"]
