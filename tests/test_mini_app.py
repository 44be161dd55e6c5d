from datetime import datetime, timedelta, timezone
import json
import os
import random
import tempfile
import unittest

from fastapi.testclient import TestClient

from core.database import Database
from core.quiz_service import QuizService
from mini_app.main import create_app

T0 = datetime(2026, 9, 1, 10, 15, 0, tzinfo=timezone.utc)

QUESTIONS = [
    {"id": "own-1", "category": "ownership", "difficulty": 1, "type": "will_compile",
     "code": "let a = 1;", "question": "Compiles?", "options": ["yes", "no"], "correct": 0,
     "explanation": "Plain binding."},
    {"id": "mac-1", "category": "macros", "difficulty": 4, "type": "predict_output",
     "code": "println!(\"{}\", 1);", "question": "Output?", "options": ["0", "1", "2"], "correct": 1,
     "explanation": "Prints one."},
]


class MiniAppTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        bundle = os.path.join(self._tmp.name, "questions.json")
        with open(bundle, "w", encoding="utf-8") as f:
            json.dump({"version": 1, "questions": QUESTIONS}, f)
        self.now = T0
        service = QuizService(Database(os.path.join(self._tmp.name, "quiz.db")), bundle,
                              rng=random.Random(0), clock=lambda: self.now)
        self.client = TestClient(create_app(service))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        self._tmp.cleanup()

    def test_next_question_hides_answer(self) -> None:
        r = self.client.get("/api/questions/next")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertIn(body["id"], {"own-1", "mac-1"})
        self.assertNotIn("correct", body)
        self.assertNotIn("explanation", body)

    def test_list_questions_by_category(self) -> None:
        r = self.client.get("/api/questions", params={"category": "macros"})
        self.assertEqual([q["id"] for q in r.json()], ["mac-1"])
        self.assertEqual(len(self.client.get("/api/questions").json()), 2)

    def test_answer_flow(self) -> None:
        r = self.client.post("/api/answer", json={"question_id": "own-1", "answer_index": 0})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertTrue(body["correct"])
        self.assertEqual(body["explanation"], "Plain binding.")
        self.assertEqual(body["progress"]["interval"], 1)
        self.assertEqual(body["progress"]["attempts"], 1)
        self.assertEqual(body["progress"]["next_review"], (T0 + timedelta(days=1)).isoformat())

        self.assertEqual(self.client.get("/api/questions/next").json()["id"], "mac-1")
        self.assertEqual(self.client.get("/api/progress/own-1").json()["correct_attempts"], 1)
        self.assertIsNone(self.client.get("/api/progress/mac-1").json())
        self.assertEqual(self.client.get("/api/stats").json()["total_questions"], 1)

    def test_answer_errors(self) -> None:
        r = self.client.post("/api/answer", json={"question_id": "zzz", "answer_index": 0})
        self.assertEqual(r.status_code, 404)
        r = self.client.post("/api/answer", json={"question_id": "own-1", "answer_index": 7})
        self.assertEqual(r.status_code, 422)
        self.assertEqual(self.client.get("/api/progress/zzz").status_code, 404)

    def test_report_json_and_text(self) -> None:
        self.client.post("/api/answer", json={"question_id": "mac-1", "answer_index": 0})

        r = self.client.get("/api/report")
        self.assertRegex(r.headers["content-disposition"],
                         r'attachment; filename="rustlens-report-\d{4}-\d{2}-\d{2}\.json"')
        report = r.json()
        self.assertEqual(report["summary"]["accuracy"], 0)

        r = self.client.get("/api/report", params={"format": "text"})
        self.assertEqual(r.status_code, 200)
        self.assertIn("RUSTLENS PERFORMANCE REPORT", r.text)
        self.assertRegex(r.headers["content-disposition"], r"rustlens-report-[\d-]+\.txt")
        self.assertEqual(self.client.get("/api/report", params={"format": "pdf"}).status_code, 422)

    def test_settings(self) -> None:
        self.assertTrue(self.client.get("/api/settings").json()["explanations_enabled"])

        r = self.client.put("/api/settings", json={"explanations_enabled": False})
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["explanations_enabled"])

        r = self.client.post("/api/answer", json={"question_id": "own-1", "answer_index": 0})
        self.assertIsNone(r.json()["explanation"])

        self.assertEqual(
            self.client.put("/api/settings", json={"time_per_question": 1000}).status_code, 422)

    def test_refresh(self) -> None:
        r = self.client.post("/api/questions/refresh")
        self.assertEqual(r.json(), {"success": True, "question_count": 2})


if __name__ == "__main__":
    unittest.main()
