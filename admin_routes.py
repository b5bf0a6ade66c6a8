from flask import Blueprint, request, current_app, send_from_directory
from flask_login import current_user
from datetime import datetime, UTC
import logging
import os

from sqlalchemy import update

from errors import Conflict, NotFound
from models import (
    db, IdentityVerification, Option, Question, TestSettings, User,
    LEVELS, KYC_PENDING, normalize_quotas,
)
from schemas import parse, QuestionIn, ReviewIn, TestSettingsIn
from utils import ok, admin_required

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

LIST_LIMIT = 500


@admin_bp.route('/test-settings', methods=['GET'])
@admin_required
def get_test_settings():
    return ok({'criteria': TestSettings.load_quotas()})


@admin_bp.route('/test-settings', methods=['PUT'])
@admin_required
def put_test_settings():
    body = parse(TestSettingsIn, request.get_json(silent=True))
    settings = TestSettings.get_or_create()
    settings.criteria = normalize_quotas(body.criteria)
    db.session.commit()
    logging.info('[ADMIN] user_id=%s updated test settings: %s', current_user.id, settings.criteria)
    return ok({'criteria': settings.criteria})


@admin_bp.route('/questions', methods=['GET'])
@admin_required
def list_questions():
    tag = (request.args.get('tag') or '').strip().upper()
    query = Question.query
    if tag:
        if tag not in LEVELS:
            return ok({'questions': []})
        query = query.filter_by(tag=tag)
    rows = query.order_by(Question.id.asc()).limit(LIST_LIMIT).all()
    return ok({'questions': [q.to_dict(include_answers=True) for q in rows]})


@admin_bp.route('/questions', methods=['POST'])
@admin_required
def create_question():
    body = parse(QuestionIn, request.get_json(silent=True))
    question = Question(tag=body.tag, prompt=body.prompt, allow_multiple=body.allow_multiple)
    for order, opt in enumerate(body.options):
        question.options.append(Option(display_order=order, text=opt.text, is_correct=opt.is_correct))
    db.session.add(question)
    db.session.commit()
    logging.info('[ADMIN] user_id=%s created question %s (%s)', current_user.id, question.id, question.tag)
    return ok({'question': question.to_dict(include_answers=True)}, 201)


@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    rows = User.query.order_by(User.created_at.desc()).limit(LIST_LIMIT).all()
    users = []
    for u in rows:
        data = u.to_public_dict()
        data['kycStatus'] = u.kyc_status
        data['country'] = u.country
        users.append(data)
    return ok({'users': users})


@admin_bp.route('/identity-verifications', methods=['GET'])
@admin_required
def list_identity_verifications():
    status = (request.args.get('status') or KYC_PENDING).upper()
    query = IdentityVerification.query
    if status != 'ALL':
        query = query.filter_by(status=status)
    rows = query.order_by(IdentityVerification.consent_at.asc()).limit(LIST_LIMIT).all()
    return ok({'verifications': [v.to_dict() for v in rows]})


@admin_bp.route('/identity-verifications/<int:verification_id>/review', methods=['POST'])
@admin_required
def review_identity_verification(verification_id):
    body = parse(ReviewIn, request.get_json(silent=True))
    verification = db.session.get(IdentityVerification, verification_id)
    if verification is None:
        raise NotFound()

    # Single conditional UPDATE so a second review cannot overwrite the first.
    stmt = (
        update(IdentityVerification)
        .where(IdentityVerification.id == verification_id, IdentityVerification.status == KYC_PENDING)
        .values(status=body.decision, reviewed_at=datetime.now(UTC), reviewed_by_id=current_user.id)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        db.session.rollback()
        raise Conflict('Verification already reviewed.', code='ALREADY_REVIEWED')
    verification.user.kyc_status = body.decision
    db.session.commit()
    db.session.refresh(verification)
    logging.info('[ADMIN] user_id=%s reviewed verification %s -> %s', current_user.id, verification_id, body.decision)
    return ok({'verification': verification.to_dict()})


@admin_bp.route('/uploads/<path:filename>', methods=['GET'])
@admin_required
def serve_upload(filename):
    folder = current_app.config['UPLOAD_FOLDER']
    if not os.path.isfile(os.path.join(folder, os.path.basename(filename))):
        raise NotFound()
    return send_from_directory(folder, os.path.basename(filename))
