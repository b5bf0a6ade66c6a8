from types import SimpleNamespace

import pytest

from grading import determine_level, grade_items
from models import db, Attempt, STATUS_SUBMITTED


def _item(position, tag, correct):
    return SimpleNamespace(position=position, tag=tag, correct_option_ids=list(correct))


@pytest.mark.parametrize('per_tag, expected', [
    ({'A1': [2, 2], 'A2': [1, 2], 'B1': [2, 2]}, 'A1'),
    ({'A1': [3, 5], 'A2': [3, 5]}, 'A2'),
    ({'A1': [0, 2]}, None),
    ({'B2': [2, 2], 'A1': [1, 1]}, 'B2'),
    ({}, None),
])
def test_determine_level(per_tag, expected):
    assert determine_level(per_tag, 0.6) == expected


def test_grade_items_needs_exact_sets():
    items = [_item(0, 'A1', [1]), _item(1, 'B1', [5, 6]), _item(2, 'B1', [9])]
    correct, per_tag = grade_items(items, {0: [1], 1: [5], 2: [9]})
    assert correct == 2
    assert per_tag == {'A1': [1, 1], 'B1': [1, 2]}


def _start(app_client, seed, tag='A1', count=2):
    seed.user('cand@example.com')
    seed.questions(tag, count)
    seed.quotas(**{tag: count})
    seed.login(app_client, 'cand@example.com')
    return app_client.post('/api/candidate/attempts/start').get_json()['data']['attemptId']


def _correct_answers(app, attempt_id):
    with app.app_context():
        attempt = db.session.get(Attempt, attempt_id)
        return {str(it.position): list(it.correct_option_ids) for it in attempt.items}


def test_submit_scores_and_levels(app, app_client, seed):
    attempt_id = _start(app_client, seed)
    answers = _correct_answers(app, attempt_id)

    r = app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': answers})
    assert r.status_code == 200
    data = r.get_json()['data']
    assert data['status'] == STATUS_SUBMITTED
    assert data['score'] == 100.0
    assert data['level'] == 'A1'

    detail = app_client.get(f'/api/candidate/attempts/{attempt_id}').get_json()['data']
    assert detail['answers'] == answers
    assert all('isCorrect' not in opt for item in detail['items'] for opt in item['options'])


def test_partial_answers_score(app, app_client, seed):
    attempt_id = _start(app_client, seed, count=3)
    answers = _correct_answers(app, attempt_id)
    answers.pop('2')

    data = app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': answers}).get_json()['data']
    assert data['score'] == 66.7
    assert data['level'] == 'A1'


def test_second_submit_is_conflict(app, app_client, seed):
    attempt_id = _start(app_client, seed)
    first = app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': {}})
    assert first.status_code == 200
    assert first.get_json()['data']['level'] is None

    again = app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': {}})
    assert again.status_code == 409
    assert again.get_json()['error']['code'] == 'ATTEMPT_NOT_IN_PROGRESS'


def test_foreign_option_is_rejected(app, app_client, seed):
    attempt_id = _start(app_client, seed)
    r = app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': {'0': [999999]}})
    assert r.status_code == 422
    body = r.get_json()['error']
    assert body['code'] == 'VALIDATION_ERROR'
    assert '0' in body['details']['fieldErrors']

    with app.app_context():
        assert db.session.get(Attempt, attempt_id).status != STATUS_SUBMITTED


def test_certificate_after_submit(app, app_client, seed):
    attempt_id = _start(app_client, seed)
    pending = app_client.get(f'/api/candidate/attempts/{attempt_id}/certificate.pdf')
    assert pending.status_code == 409

    app_client.post(f'/api/candidate/attempts/{attempt_id}/submit', json={'answers': _correct_answers(app, attempt_id)})
    r = app_client.get(f'/api/candidate/attempts/{attempt_id}/certificate.pdf')
    assert r.status_code == 200
    assert r.mimetype == 'application/pdf'


def test_attempt_list_only_shows_own(app, app_client, seed):
    attempt_id = _start(app_client, seed)
    seed.user('other@example.com')
    other = app.test_client()
    seed.login(other, 'other@example.com')

    assert [a['id'] for a in app_client.get('/api/candidate/attempts').get_json()['data']['attempts']] == [attempt_id]
    assert other.get('/api/candidate/attempts').get_json()['data']['attempts'] == []
    assert other.get(f'/api/candidate/attempts/{attempt_id}').status_code == 404
