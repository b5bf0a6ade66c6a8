from models import db, User, IdentityVerification, ROLE_ADMIN, KYC_PENDING, KYC_APPROVED


def _admin(app, seed):
    seed.user('admin@example.com', role=ROLE_ADMIN)
    client = app.test_client()
    seed.login(client, 'admin@example.com')
    return client


def _pending_verification(app, seed, email='cand@example.com'):
    uid = seed.user(email)
    with app.app_context():
        user = db.session.get(User, uid)
        user.kyc_status = KYC_PENDING
        user.identity_verification = IdentityVerification(
            selfie_url='/uploads/selfie_x.png', id_doc_url='/uploads/id_x.pdf', status=KYC_PENDING,
        )
        db.session.commit()
        return user.identity_verification.id


def test_admin_routes_reject_candidates(app_client, seed):
    assert app_client.get('/api/admin/test-settings').status_code == 401
    seed.user('cand@example.com')
    seed.login(app_client, 'cand@example.com')
    r = app_client.put('/api/admin/test-settings', json={'criteria': {'A1': 1}})
    assert r.status_code == 401
    assert r.get_json()['error']['code'] == 'UNAUTHORIZED'


def test_test_settings_roundtrip(app, seed):
    client = _admin(app, seed)
    initial = client.get('/api/admin/test-settings').get_json()['data']['criteria']
    assert initial == {'A1': 0, 'A2': 0, 'B1': 0, 'B2': 0, 'C1': 0, 'C2': 0}

    r = client.put('/api/admin/test-settings', json={'criteria': {'A1': 4, 'C1': 2}})
    assert r.status_code == 200
    criteria = client.get('/api/admin/test-settings').get_json()['data']['criteria']
    assert criteria['A1'] == 4
    assert criteria['C1'] == 2
    assert criteria['B2'] == 0


def test_test_settings_validation(app, seed):
    client = _admin(app, seed)
    r = client.put('/api/admin/test-settings', json={'criteria': {'D1': 3}})
    assert r.status_code == 422
    assert 'criteria' in r.get_json()['error']['details']['fieldErrors']

    r = client.put('/api/admin/test-settings', json={'criteria': {'A1': -1}})
    assert r.status_code == 422


def test_create_and_list_questions(app, seed):
    client = _admin(app, seed)
    payload = {
        'tag': 'B1',
        'prompt': 'Choose the past tense of "go".',
        'options': [{'text': 'went', 'isCorrect': True}, {'text': 'goed'}, {'text': 'gone'}],
    }
    r = client.post('/api/admin/questions', json=payload)
    assert r.status_code == 201
    question = r.get_json()['data']['question']
    assert question['tag'] == 'B1'
    assert len(question['options']) == 3

    listed = client.get('/api/admin/questions?tag=b1').get_json()['data']['questions']
    assert [q['id'] for q in listed] == [question['id']]
    assert client.get('/api/admin/questions?tag=A1').get_json()['data']['questions'] == []


def test_question_needs_a_single_correct_option(app, seed):
    client = _admin(app, seed)
    base = {'tag': 'A1', 'prompt': 'Pick'}
    none_correct = client.post('/api/admin/questions', json={**base, 'options': [{'text': 'a'}, {'text': 'b'}]})
    assert none_correct.status_code == 422

    two_correct = [{'text': 'a', 'isCorrect': True}, {'text': 'b', 'isCorrect': True}]
    assert client.post('/api/admin/questions', json={**base, 'options': two_correct}).status_code == 422
    allowed = client.post('/api/admin/questions', json={**base, 'allowMultiple': True, 'options': two_correct})
    assert allowed.status_code == 201


def test_review_identity_verification_once(app, seed):
    verification_id = _pending_verification(app, seed)
    client = _admin(app, seed)

    pending = client.get('/api/admin/identity-verifications').get_json()['data']['verifications']
    assert [v['id'] for v in pending] == [verification_id]

    r = client.post(f'/api/admin/identity-verifications/{verification_id}/review', json={'decision': 'approved'})
    assert r.status_code == 200
    assert r.get_json()['data']['verification']['status'] == KYC_APPROVED

    again = client.post(f'/api/admin/identity-verifications/{verification_id}/review', json={'decision': 'REJECTED'})
    assert again.status_code == 409
    assert again.get_json()['error']['code'] == 'ALREADY_REVIEWED'

    with app.app_context():
        assert User.query.filter_by(email='cand@example.com').one().kyc_status == KYC_APPROVED
    assert client.get('/api/admin/identity-verifications').get_json()['data']['verifications'] == []


def test_review_unknown_verification(app, seed):
    client = _admin(app, seed)
    r = client.post('/api/admin/identity-verifications/999/review', json={'decision': 'APPROVED'})
    assert r.status_code == 404


def test_list_users(app, seed):
    seed.user('cand@example.com')
    client = _admin(app, seed)
    emails = {u['email'] for u in client.get('/api/admin/users').get_json()['data']['users']}
    assert emails == {'cand@example.com', 'admin@example.com'}
