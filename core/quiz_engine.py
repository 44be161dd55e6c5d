import math
import random
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Collection, Dict, List, Mapping, Optional
from core.models import CategoryScore, ReviewState, UserStats

RELEARN_DELAY = timedelta(minutes=10)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SM2Engine:
    MIN_EASE = 1.3
    INITIAL_EASE = 2.5
    CORRECT_QUALITY = 5
    WRONG_QUALITY = 2

    @staticmethod
    def review(question_id: str, prior: Optional[ReviewState],
               was_correct: bool, now: datetime) -> ReviewState:
        """Compute the state that follows one answer. Pure: `now` is supplied by the caller."""
        if prior is None:
            if was_correct:
                interval, next_review = 1, now + timedelta(days=1)
            else:
                interval, next_review = 0, now + RELEARN_DELAY
            return ReviewState(
                question_id=question_id,
                attempts=1,
                correct_attempts=1 if was_correct else 0,
                last_attempted=now,
                next_review=next_review,
                ease_factor=SM2Engine.INITIAL_EASE,
                interval=interval,
            )

        quality = SM2Engine.CORRECT_QUALITY if was_correct else SM2Engine.WRONG_QUALITY
        ease = max(
            SM2Engine.MIN_EASE,
            prior.ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
        )

        if quality < 3:
            interval = 0
            next_review = now + RELEARN_DELAY
        else:
            if prior.interval == 0:
                interval = 1
            elif prior.interval == 1:
                interval = 6
            else:
                interval = _round_half_up(prior.interval * ease)
            next_review = now + timedelta(days=interval)

        return ReviewState(
            question_id=question_id,
            attempts=prior.attempts + 1,
            correct_attempts=prior.correct_attempts + (1 if was_correct else 0),
            last_attempted=now,
            next_review=next_review,
            ease_factor=ease,
            interval=interval,
        )

    @staticmethod
    def select(all_ids: Collection[str], states: Mapping[str, ReviewState],
               now: datetime, rng: random.Random) -> Optional[str]:
        """Pick the next question id: due first, then new, then weak-biased scheduled."""
        if not all_ids:
            return None

        due: List[str] = []
        new: List[str] = []
        scheduled: List[str] = []
        # sorted so a seeded rng gives the same pick whatever the set order
        for qid in sorted(all_ids):
            state = states.get(qid)
            if state is None:
                new.append(qid)
            elif state.next_review <= now:
                due.append(qid)
            else:
                scheduled.append(qid)

        if due:
            return rng.choice(due)
        if new:
            return rng.choice(new)

        ranked = sorted(scheduled, key=lambda qid: states[qid].accuracy)
        n = len(ranked)
        return rng.choices(ranked, weights=range(n, 0, -1), k=1)[0]


def compute_next_state(question_id: str, prior: Optional[ReviewState],
                       was_correct: bool, now: datetime) -> ReviewState:
    return SM2Engine.review(question_id, prior, was_correct, now)


def select_next(all_ids: Collection[str], states: Mapping[str, ReviewState],
                now: datetime, rng: Optional[random.Random] = None) -> Optional[str]:
    return SM2Engine.select(all_ids, states, now, rng or random.Random())


def record_answer(stats: UserStats, category: str, was_correct: bool, today: date) -> UserStats:
    """Fold one answer into the running stats. `today` is a UTC calendar day."""
    last = stats.last_practice_day
    if today == last:
        streak = stats.current_streak
    elif last == today - timedelta(days=1):
        streak = stats.current_streak + 1
    else:
        streak = 1

    scores: Dict[str, CategoryScore] = dict(stats.category_scores)
    prev = scores.get(category, CategoryScore())
    scores[category] = CategoryScore(
        attempted=prev.attempted + 1,
        correct=prev.correct + (1 if was_correct else 0),
    )

    return replace(
        stats,
        total_questions=stats.total_questions + 1,
        correct_answers=stats.correct_answers + (1 if was_correct else 0),
        current_streak=streak,
        longest_streak=max(stats.longest_streak, streak),
        last_practice_date=today.isoformat(),
        category_scores=scores,
    )

