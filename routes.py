"""
Public and candidate routes for the proficiency platform, using a Flask Blueprint.
"""
import logging

from flask import Blueprint, request, current_app, make_response, jsonify
from flask_login import login_required, current_user

from assembler import start_attempt
from auth import set_session_cookie, clear_session_cookie
from certificate import build_certificate_pdf, effective_level
from errors import BadRequest, Unauthorized, NotFound, Conflict
from grading import submit_attempt
from models import db, Attempt, Option, Registration, TestSettings, User, STATUS_SUBMITTED
from schemas import parse, RegistrationForm, LoginRequest, SubmissionIn
from uploads import is_present, read_upload, save_upload, discard_upload
from utils import ok, candidate_required, iso_utc, title_case_name

main_bp = Blueprint('main', __name__)

FORM_FIELDS = ('fullName', 'email', 'password', 'phone', 'country', 'city', 'consent')


def _owned_attempt(attempt_id, allow_admin=False):
    """Load an attempt visible to the current user.

    Someone else's attempt is reported exactly like a missing one.
    """
    attempt = db.session.get(Attempt, attempt_id)
    if attempt is None:
        raise NotFound()
    if attempt.user_id != current_user.id and not (allow_admin and current_user.is_admin):
        raise NotFound()
    return attempt


# Registration
@main_bp.route('/api/auth/register', methods=['POST'])
def register():
    if request.mimetype not in ('multipart/form-data', 'application/x-www-form-urlencoded'):
        raise BadRequest('Expected form-data')

    form = parse(RegistrationForm, {k: request.form.get(k, '') for k in FORM_FIELDS})

    selfie = request.files.get('selfie')
    id_doc = request.files.get('idDoc')
    if not is_present(selfie) or not is_present(id_doc):
        raise BadRequest('Selfie and ID document are required.', code='FILES_REQUIRED')

    if User.query.filter_by(email=form.email).first():
        raise Conflict('This email is already registered.', code='EMAIL_EXISTS')

    # Validate both files before writing either.
    selfie_data, selfie_ext = read_upload(selfie)
    id_doc_data, id_doc_ext = read_upload(id_doc)
    selfie_url = save_upload(selfie_data, selfie_ext, 'selfie')
    try:
        id_doc_url = save_upload(id_doc_data, id_doc_ext, 'id')
    except Exception:
        discard_upload(selfie_url)
        raise

    try:
        user = Registration.register_candidate(form, selfie_url, id_doc_url)
    except Exception:
        discard_upload(selfie_url)
        discard_upload(id_doc_url)
        raise

    logging.info('[REGISTER] Candidate %s registered (%s)', user.id, user.email)
    response = make_response(jsonify({'ok': True, 'data': {'user': user.to_public_dict()}}), 200)
    return set_session_cookie(response, user)


@main_bp.route('/api/auth/login', methods=['POST'])
def login():
    body = parse(LoginRequest, request.get_json(silent=True))
    user = User.query.filter_by(email=body.email).first()
    if not user or not user.check_password(body.password):
        logging.info('[LOGIN] Failed login for %s', body.email)
        raise Unauthorized('Invalid email or password', code='INVALID_CREDENTIALS')
    response = make_response(jsonify({'ok': True, 'data': {'user': user.to_public_dict()}}), 200)
    return set_session_cookie(response, user)


@main_bp.route('/api/auth/logout', methods=['POST'])
def logout():
    response = make_response(jsonify({'ok': True, 'data': None}), 200)
    return clear_session_cookie(response)


@main_bp.route('/api/auth/me')
@login_required
def me():
    return ok({'user': current_user.to_public_dict()})


# Attempts
@main_bp.route('/api/candidate/attempts/start', methods=['POST'])
@candidate_required
def attempt_start():
    quotas = TestSettings.load_quotas()
    attempt = start_attempt(current_user.id, quotas, rng=current_app.config.get('ATTEMPT_RNG'))
    return ok({'attemptId': attempt.id}, 201)


@main_bp.route('/api/candidate/attempts')
@candidate_required
def attempt_list():
    attempts = (
        Attempt.query.filter_by(user_id=current_user.id)
        .order_by(Attempt.started_at.desc())
        .all()
    )
    return ok({'attempts': [a.to_summary_dict() for a in attempts]})


@main_bp.route('/api/candidate/attempts/<attempt_id>')
@login_required
def attempt_detail(attempt_id):
    """Attempt with prompts and options in presented order. Correctness is never included."""
    attempt = _owned_attempt(attempt_id, allow_admin=True)
    option_ids = {oid for item in attempt.items for oid in item.option_ids}
    options = {o.id: o for o in Option.query.filter(Option.id.in_(option_ids)).all()} if option_ids else {}
    items = []
    for item in attempt.items:
        items.append({
            'position': item.position,
            'questionId': item.question_id,
            'tag': item.tag,
            'prompt': item.question.prompt if item.question else None,
            'allowMultiple': item.allow_multiple,
            'options': [
                {'id': oid, 'text': options[oid].text if oid in options else None}
                for oid in item.option_ids
            ],
        })
    data = attempt.to_summary_dict()
    data['items'] = items
    if attempt.status == STATUS_SUBMITTED:
        data['answers'] = attempt.answers or {}
    return ok(data)


@main_bp.route('/api/candidate/attempts/<attempt_id>/submit', methods=['POST'])
@candidate_required
def attempt_submit(attempt_id):
    attempt = _owned_attempt(attempt_id)
    body = parse(SubmissionIn, request.get_json(silent=True))
    attempt = submit_attempt(attempt, body.answers, pass_ratio=current_app.config.get('LEVEL_PASS_RATIO', 0.6))
    return ok({
        'attemptId': attempt.id,
        'status': attempt.status,
        'score': attempt.score,
        'level': attempt.level,
    })


@main_bp.route('/api/candidate/attempts/<attempt_id>/certificate.pdf')
@login_required
def attempt_certificate(attempt_id):
    attempt = _owned_attempt(attempt_id, allow_admin=True)
    if attempt.status != STATUS_SUBMITTED:
        raise Conflict('Attempt not submitted', code='ATTEMPT_NOT_SUBMITTED')

    certificate_id, pdf = build_certificate_pdf(attempt, current_app.config['PDF_RENDERER'])

    response = make_response(pdf)
    response.headers['Content-Type'] = 'application/pdf'
    response.headers['Content-Disposition'] = f'inline; filename="{certificate_id}.pdf"'
    response.headers['Cache-Control'] = 'private, no-store'
    return response


# Public verification
@main_bp.route('/verify/<slug>')
def verify(slug):
    attempt = Attempt.query.filter_by(verify_slug=slug).first()
    if attempt is None or not attempt.is_issued:
        raise NotFound('Certificate not found')
    return ok({
        'certificateId': attempt.certificate_id,
        'name': title_case_name(attempt.user.full_name),
        'level': effective_level(attempt.level),
        'issuedAt': iso_utc(attempt.issued_at),
        'region': attempt.region or current_app.config.get('CERT_DEFAULT_REGION'),
    })


@main_bp.route('/health')
def health():
    return ok({'status': 'ok'})
