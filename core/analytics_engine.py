import json
import math
from datetime import date, datetime
from typing import Dict, Iterable, List
from core.models import Question, ReviewState, UserStats

WEAK_AREA_ACCURACY = 70
WEAK_AREA_MIN_ATTEMPTS = 2
MISTAKE_ACCURACY = 0.5
MISTAKE_MIN_ATTEMPTS = 2
MAX_MISTAKES = 10
RULE = "-" * 60
BANNER = "=" * 60


def percent(correct: int, attempted: int) -> int:
    """Integer percentage, halves rounded up. 0 when nothing was attempted."""
    if attempted <= 0:
        return 0
    return int(math.floor(correct / attempted * 100 + 0.5))


def category_status(attempted: int, accuracy: int) -> str:
    if attempted == 0:
        return "not-attempted"
    if accuracy >= 80:
        return "strong"
    if accuracy >= 60:
        return "average"
    return "weak"


def _label(category: str) -> str:
    return category.replace("_", " ")


class AnalyticsEngine:

    @staticmethod
    def category_breakdown(stats: UserStats) -> List[dict]:
        rows = []
        for category, score in stats.category_scores.items():
            acc = percent(score.correct, score.attempted)
            rows.append({
                "category": category,
                "attempted": score.attempted,
                "correct": score.correct,
                "accuracy": acc,
                "status": category_status(score.attempted, acc),
            })
        return rows

    @staticmethod
    def difficulty_breakdown(progress: Iterable[ReviewState],
                             by_id: Dict[str, Question]) -> List[dict]:
        totals: Dict[int, Dict[str, int]] = {}
        for p in progress:
            q = by_id.get(p.question_id)
            if q is None:
                continue
            bucket = totals.setdefault(q.difficulty, {"attempted": 0, "correct": 0})
            bucket["attempted"] += p.attempts
            bucket["correct"] += p.correct_attempts
        return [
            {"difficulty": d, "attempted": t["attempted"], "correct": t["correct"],
             "accuracy": percent(t["correct"], t["attempted"])}
            for d, t in sorted(totals.items())
        ]

    @staticmethod
    def recent_mistakes(progress: Iterable[ReviewState],
                        by_id: Dict[str, Question]) -> List[dict]:
        struggling = [
            p for p in progress
            if p.attempts >= MISTAKE_MIN_ATTEMPTS and p.accuracy < MISTAKE_ACCURACY
        ]
        struggling.sort(key=lambda p: p.accuracy)
        out = []
        for p in struggling[:MAX_MISTAKES]:
            q = by_id.get(p.question_id)
            out.append({
                "question_id": p.question_id,
                "category": q.category if q else "unknown",
                "attempts": p.attempts,
                "correct_attempts": p.correct_attempts,
            })
        return out

    @staticmethod
    def recommendations(stats: UserStats, accuracy: int, categories: List[dict],
                        weak_areas: List[dict], difficulties: List[dict]) -> List[str]:
        recs = []
        if weak_areas:
            recs.append("Focus on: " + ", ".join(_label(w["category"]) for w in weak_areas))

        attempted = [d for d in difficulties if d["attempted"] > 0]
        if attempted:
            hardest = min(attempted, key=lambda d: d["accuracy"])
            if hardest["accuracy"] < 60:
                recs.append(
                    f"Difficulty {hardest['difficulty']} questions need more practice "
                    f"({hardest['accuracy']}% accuracy)"
                )

        untouched = [c for c in categories if c["status"] == "not-attempted"]
        if untouched:
            recs.append("Try questions in: " + ", ".join(_label(c["category"]) for c in untouched))

        if stats.current_streak == 0:
            recs.append("Start a daily practice streak to improve retention")

        if accuracy < 70 and stats.total_questions > 10:
            recs.append("Review explanations carefully to understand concepts better")
        return recs

    @staticmethod
    def generate_report(stats: UserStats, progress: Iterable[ReviewState],
                        questions: Iterable[Question]) -> dict:
        progress = list(progress)
        by_id = {q.id: q for q in questions}
        accuracy = percent(stats.correct_answers, stats.total_questions)

        categories = AnalyticsEngine.category_breakdown(stats)
        weak_areas = [
            {"category": c["category"], "accuracy": c["accuracy"],
             "questions_attempted": c["attempted"]}
            for c in sorted(categories, key=lambda c: c["accuracy"])
            if c["accuracy"] < WEAK_AREA_ACCURACY and c["attempted"] > WEAK_AREA_MIN_ATTEMPTS
        ]
        difficulties = AnalyticsEngine.difficulty_breakdown(progress, by_id)

        return {
            "summary": {
                "total_questions": stats.total_questions,
                "correct_answers": stats.correct_answers,
                "accuracy": accuracy,
                "current_streak": stats.current_streak,
                "longest_streak": stats.longest_streak,
            },
            "category_breakdown": categories,
            "weak_areas": weak_areas,
            "difficulty_breakdown": difficulties,
            "recent_mistakes": AnalyticsEngine.recent_mistakes(progress, by_id),
            "recommendations": AnalyticsEngine.recommendations(
                stats, accuracy, categories, weak_areas, difficulties),
        }


def format_report_as_text(report: dict, generated_at: datetime) -> str:
    s = report["summary"]
    lines = [
        BANNER, "RUSTLENS PERFORMANCE REPORT", BANNER, "",
        "📊 OVERALL PERFORMANCE", RULE,
        f"Total Questions Answered: {s['total_questions']}",
        f"Correct Answers: {s['correct_answers']}",
        f"Overall Accuracy: {s['accuracy']}%",
        f"Current Streak: {s['current_streak']} days",
        f"Longest Streak: {s['longest_streak']} days",
        "",
        "📚 CATEGORY BREAKDOWN", RULE,
        "Category                    Attempted  Correct  Accuracy  Status", RULE,
    ]
    for c in sorted(report["category_breakdown"], key=lambda c: -c["attempted"]):
        lines.append(
            f"{_label(c['category']):<26} {c['attempted']:>8} {c['correct']:>8} "
            f"{str(c['accuracy']) + '%':>8} {c['status'].upper():>12}"
        )
    lines.append("")

    if report["weak_areas"]:
        lines += ["⚠️  WEAK AREAS (Need Improvement)", RULE]
        for i, w in enumerate(report["weak_areas"], 1):
            lines.append(f"{i}. {_label(w['category'])}: {w['accuracy']}% accuracy "
                         f"({w['questions_attempted']} questions)")
        lines.append("")

    if report["difficulty_breakdown"]:
        lines += ["🎯 DIFFICULTY BREAKDOWN", RULE, "Difficulty  Attempted  Correct  Accuracy", RULE]
        for d in report["difficulty_breakdown"]:
            stars = "★" * d["difficulty"] + "☆" * (5 - d["difficulty"])
            lines.append(f"{stars:<11} {d['attempted']:>9} {d['correct']:>8} "
                         f"{str(d['accuracy']) + '%':>8}")
        lines.append("")

    if report["recent_mistakes"]:
        lines += ["❌ RECENT STRUGGLES", RULE]
        counts: Dict[str, int] = {}
        for m in report["recent_mistakes"]:
            counts[m["category"]] = counts.get(m["category"], 0) + 1
        for category, n in sorted(counts.items(), key=lambda kv: -kv[1]):
            lines.append(f"- {_label(category)}: {n} question(s) with low accuracy")
        lines.append("")

    if report["recommendations"]:
        lines += ["💡 RECOMMENDATIONS", RULE]
        lines += [f"{i}. {r}" for i, r in enumerate(report["recommendations"], 1)]
        lines.append("")

    lines += [BANNER, f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}", BANNER]
    return "\n".join(lines)


def format_report_as_json(report: dict) -> str:
    return json.dumps(report, ensure_ascii=False, indent=2)


def report_filename(fmt: str, day: date) -> str:
    ext = "txt" if fmt == "text" else "json"
    return f"rustlens-report-{day.isoformat()}.{ext}"


analytics = AnalyticsEngine()
