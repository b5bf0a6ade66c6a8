"""
Test-attempt assembly: draws a per-level quota of questions from the bank and
persists a frozen snapshot of them as a new attempt.
"""
import logging
import random

from errors import NoQuestionsConfigured
from models import db, LEVELS, STATUS_IN_PROGRESS, Attempt, AttemptItem, Question


def fisher_yates_shuffle(items, rng=None):
    """Return a uniformly shuffled copy of `items`.

    `rng` is any object with `randrange` (normally `random.Random`); pass a
    seeded instance for a reproducible order.
    """
    rng = rng or random.SystemRandom()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def snapshot_question(question):
    """Copy of everything grading needs, options kept in stored display order."""
    return {
        'question_id': question.id,
        'tag': question.tag,
        'allow_multiple': bool(question.allow_multiple),
        'option_ids': [o.id for o in question.options],
        'correct_option_ids': [o.id for o in question.options if o.is_correct],
    }


def assemble_items(quotas, fetch_questions, rng=None):
    """Build the ordered snapshot list for one attempt.

    quotas: {level: int}; fetch_questions: callable(level) -> list of questions.
    Levels are visited in ladder order; a quota larger than the inventory
    takes everything available.
    """
    items = []
    for tag in LEVELS:
        need = quotas.get(tag, 0)
        if not need:
            continue
        questions = fetch_questions(tag)
        chosen = fisher_yates_shuffle(questions, rng)[:min(need, len(questions))]
        if len(chosen) < need:
            logging.info('[ASSEMBLER] Level %s quota %d exceeds inventory %d', tag, need, len(questions))
        items.extend(snapshot_question(q) for q in chosen)
    return items


def start_attempt(user_id, quotas, rng=None, fetch_questions=Question.for_tag):
    """Create an in-progress attempt for `user_id` and return it.

    Raises NoQuestionsConfigured when the quotas select nothing.
    """
    items = assemble_items(quotas, fetch_questions, rng)
    if not items:
        raise NoQuestionsConfigured()

    attempt = Attempt(user_id=user_id, status=STATUS_IN_PROGRESS)
    for position, it in enumerate(items):
        attempt.items.append(AttemptItem(
            position=position,
            question_id=it['question_id'],
            tag=it['tag'],
            allow_multiple=it['allow_multiple'],
            option_ids=it['option_ids'],
            correct_option_ids=it['correct_option_ids'],
        ))
    db.session.add(attempt)
    db.session.commit()
    logging.info('[ASSEMBLER] Attempt %s started for user %s with %d items', attempt.id, user_id, len(items))
    return attempt
