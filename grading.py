"""
Scoring of submitted attempts against the frozen item snapshot.
"""
import logging
from datetime import datetime, UTC

from sqlalchemy import update

from errors import Conflict, ValidationError
from models import db, LEVELS, STATUS_IN_PROGRESS, STATUS_SUBMITTED, Attempt

DEFAULT_PASS_RATIO = 0.6


def normalize_answers(attempt, raw_answers):
    """Validate `{position: [option ids]}` against the attempt's items.

    Returns {position(int): sorted list of option ids}. Raises ValidationError
    with per-position messages.
    """
    by_position = {item.position: item for item in attempt.items}
    answers = {}
    errors = {}
    for key, selected in (raw_answers or {}).items():
        try:
            position = int(key)
        except (TypeError, ValueError):
            errors[str(key)] = ['Unknown item.']
            continue
        item = by_position.get(position)
        if item is None:
            errors[str(key)] = ['Unknown item.']
            continue
        chosen = set(selected or [])
        if not chosen.issubset(set(item.option_ids)):
            errors[str(key)] = ['Option does not belong to this item.']
            continue
        if not item.allow_multiple and len(chosen) > 1:
            errors[str(key)] = ['Only one option may be selected.']
            continue
        answers[position] = sorted(chosen)
    if errors:
        raise ValidationError('Invalid answers', details={'fieldErrors': errors})
    return answers


def grade_items(items, answers):
    """Return (correct_count, {tag: [correct, total]})."""
    correct = 0
    per_tag = {}
    for item in items:
        tally = per_tag.setdefault(item.tag, [0, 0])
        tally[1] += 1
        if set(answers.get(item.position, [])) == set(item.correct_option_ids):
            correct += 1
            tally[0] += 1
    return correct, per_tag


def determine_level(per_tag, pass_ratio=DEFAULT_PASS_RATIO):
    """Highest level reached while every tested level up to it passes."""
    level = None
    for tag in LEVELS:
        if tag not in per_tag:
            continue
        right, total = per_tag[tag]
        if total and right / total >= pass_ratio:
            level = tag
        else:
            break
    return level


def submit_attempt(attempt, raw_answers, pass_ratio=DEFAULT_PASS_RATIO):
    if attempt.status != STATUS_IN_PROGRESS:
        raise Conflict('Attempt already submitted.', code='ATTEMPT_NOT_IN_PROGRESS')

    answers = normalize_answers(attempt, raw_answers)
    correct, per_tag = grade_items(attempt.items, answers)
    total = len(attempt.items)
    score = round(correct * 100.0 / total, 1) if total else 0.0
    level = determine_level(per_tag, pass_ratio)

    stmt = (
        update(Attempt)
        .where(Attempt.id == attempt.id, Attempt.status == STATUS_IN_PROGRESS)
        .values(
            status=STATUS_SUBMITTED,
            submitted_at=datetime.now(UTC),
            answers={str(k): v for k, v in answers.items()},
            score=score,
            level=level,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.commit()
    if not result.rowcount:
        raise Conflict('Attempt already submitted.', code='ATTEMPT_NOT_IN_PROGRESS')
    db.session.refresh(attempt)
    logging.info('[GRADING] Attempt %s submitted: score=%s level=%s', attempt.id, score, level)
    return attempt
