from datetime import date, datetime, timedelta, timezone
import json
import unittest

from core.analytics_engine import (
    AnalyticsEngine, category_status, format_report_as_json, format_report_as_text,
    percent, report_filename,
)
from core.models import CategoryScore, Question, ReviewState, UserStats

T0 = datetime(2026, 9, 1, 10, 15, 0, tzinfo=timezone.utc)


def _question(qid, category, difficulty):
    return Question(id=qid, category=category, difficulty=difficulty, type="spot_error",
                    code="fn main() {}", question="?", options=["a", "b"], correct=0)


def _progress(qid, attempts, correct):
    return ReviewState(question_id=qid, attempts=attempts, correct_attempts=correct,
                       last_attempted=T0, next_review=T0 + timedelta(days=1))


class HelpersTestCase(unittest.TestCase):
    def test_percent_rounds_half_up(self) -> None:
        self.assertEqual(percent(1, 8), 13)   # 12.5
        self.assertEqual(percent(2, 3), 67)
        self.assertEqual(percent(0, 0), 0)

    def test_category_status_thresholds(self) -> None:
        self.assertEqual(category_status(0, 0), "not-attempted")
        self.assertEqual(category_status(5, 80), "strong")
        self.assertEqual(category_status(5, 79), "average")
        self.assertEqual(category_status(5, 60), "average")
        self.assertEqual(category_status(5, 59), "weak")
        self.assertEqual(category_status(1, 0), "weak")

    def test_report_filename(self) -> None:
        self.assertEqual(report_filename("text", date(2026, 9, 1)), "rustlens-report-2026-09-01.txt")
        self.assertEqual(report_filename("json", date(2026, 9, 1)), "rustlens-report-2026-09-01.json")


class GenerateReportTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.stats = UserStats(
            total_questions=20, correct_answers=11, current_streak=0, longest_streak=4,
            last_practice_date="2026-08-30",
        )
        self.stats.category_scores["ownership"] = CategoryScore(attempted=10, correct=9)
        self.stats.category_scores["lifetimes"] = CategoryScore(attempted=6, correct=2)
        self.stats.category_scores["macros"] = CategoryScore(attempted=4, correct=0)
        self.questions = [
            _question("own-1", "ownership", 1),
            _question("life-1", "lifetimes", 3),
            _question("mac-1", "macros", 3),
            _question("mac-2", "macros", 4),
        ]
        self.progress = [
            _progress("own-1", 10, 9),
            _progress("life-1", 6, 2),
            _progress("mac-1", 2, 0),
            _progress("mac-2", 2, 0),
            _progress("ghost", 3, 0),
        ]
        self.report = AnalyticsEngine.generate_report(self.stats, self.progress, self.questions)

    def test_summary(self) -> None:
        self.assertEqual(self.report["summary"], {
            "total_questions": 20, "correct_answers": 11, "accuracy": 55,
            "current_streak": 0, "longest_streak": 4,
        })

    def test_category_breakdown_covers_every_category(self) -> None:
        rows = {c["category"]: c for c in self.report["category_breakdown"]}
        self.assertEqual(len(rows), 10)
        self.assertEqual(rows["ownership"]["status"], "strong")
        self.assertEqual(rows["ownership"]["accuracy"], 90)
        self.assertEqual(rows["lifetimes"]["status"], "weak")
        self.assertEqual(rows["unsafe"]["status"], "not-attempted")

    def test_weak_areas_sorted_by_accuracy(self) -> None:
        self.assertEqual(self.report["weak_areas"], [
            {"category": "macros", "accuracy": 0, "questions_attempted": 4},
            {"category": "lifetimes", "accuracy": 33, "questions_attempted": 6},
        ])

    def test_weak_areas_require_more_than_two_attempts(self) -> None:
        self.stats.category_scores["unsafe"] = CategoryScore(attempted=2, correct=0)
        report = AnalyticsEngine.generate_report(self.stats, [], [])
        self.assertNotIn("unsafe", [w["category"] for w in report["weak_areas"]])

    def test_difficulty_breakdown_skips_unknown_questions(self) -> None:
        self.assertEqual(self.report["difficulty_breakdown"], [
            {"difficulty": 1, "attempted": 10, "correct": 9, "accuracy": 90},
            {"difficulty": 3, "attempted": 8, "correct": 2, "accuracy": 25},
            {"difficulty": 4, "attempted": 2, "correct": 0, "accuracy": 0},
        ])

    def test_recent_mistakes(self) -> None:
        mistakes = self.report["recent_mistakes"]
        self.assertEqual([m["question_id"] for m in mistakes], ["mac-1", "mac-2", "ghost", "life-1"])
        self.assertEqual(mistakes[2]["category"], "unknown")
        self.assertEqual(mistakes[3], {"question_id": "life-1", "category": "lifetimes",
                                       "attempts": 6, "correct_attempts": 2})

    def test_recent_mistakes_capped_at_ten(self) -> None:
        progress = [_progress(f"q{i}", 4, 1) for i in range(15)]
        report = AnalyticsEngine.generate_report(self.stats, progress, [])
        self.assertEqual(len(report["recent_mistakes"]), 10)

    def test_recommendations(self) -> None:
        recs = self.report["recommendations"]
        self.assertEqual(recs[0], "Focus on: macros, lifetimes")
        self.assertEqual(recs[1], "Difficulty 4 questions need more practice (0% accuracy)")
        self.assertTrue(recs[2].startswith("Try questions in: pattern matching, error handling"))
        self.assertIn("Start a daily practice streak to improve retention", recs)
        self.assertEqual(recs[-1], "Review explanations carefully to understand concepts better")

    def test_fresh_stats_only_suggest_starting(self) -> None:
        report = AnalyticsEngine.generate_report(UserStats(), [], [])
        self.assertEqual(report["summary"]["accuracy"], 0)
        self.assertEqual(report["weak_areas"], [])
        self.assertEqual(len(report["recommendations"]), 2)
        self.assertTrue(report["recommendations"][0].startswith("Try questions in: ownership"))

    def test_report_does_not_mutate_inputs(self) -> None:
        self.assertEqual(self.progress[0].attempts, 10)
        self.assertEqual(self.stats.total_questions, 20)


class FormatReportTestCase(unittest.TestCase):
    def setUp(self) -> None:
        stats = UserStats(total_questions=4, correct_answers=1, current_streak=2,
                          longest_streak=2, last_practice_date="2026-09-01")
        stats.category_scores["error_handling"] = CategoryScore(attempted=4, correct=1)
        self.report = AnalyticsEngine.generate_report(
            stats, [_progress("e1", 4, 1)], [_question("e1", "error_handling", 2)])

    def test_text_report_sections(self) -> None:
        text = format_report_as_text(self.report, T0)
        lines = text.splitlines()

        self.assertEqual(lines[1], "RUSTLENS PERFORMANCE REPORT")
        self.assertIn("Overall Accuracy: 25%", text)
        self.assertIn("Current Streak: 2 days", text)
        self.assertIn("1. error handling: 25% accuracy (4 questions)", text)
        self.assertIn("★★☆☆☆", text)
        self.assertIn("- error handling: 1 question(s) with low accuracy", text)
        self.assertIn("💡 RECOMMENDATIONS", text)
        self.assertIn("Generated: 2026-09-01 10:15:00 UTC", text)

    def test_category_rows_sorted_by_attempts(self) -> None:
        text = format_report_as_text(self.report, T0)
        header = text.index("Category                    Attempted")
        first_row = text[header:].splitlines()[2]
        self.assertTrue(first_row.startswith("error handling"))
        self.assertTrue(first_row.rstrip().endswith("WEAK"))

    def test_json_report_round_trips(self) -> None:
        self.assertEqual(json.loads(format_report_as_json(self.report)), self.report)


if __name__ == "__main__":
    unittest.main()
