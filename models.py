from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, UTC
from flask_login import UserMixin
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError
import uuid

db = SQLAlchemy()

# Proficiency ladder, lowest first. Iteration order matters for attempt assembly.
LEVELS = ('A1', 'A2', 'B1', 'B2', 'C1', 'C2')

ROLE_CANDIDATE = 'CANDIDATE'
ROLE_ADMIN = 'ADMIN'

STATUS_IN_PROGRESS = 'IN_PROGRESS'
STATUS_SUBMITTED = 'SUBMITTED'

KYC_PENDING = 'PENDING'
KYC_APPROVED = 'APPROVED'
KYC_REJECTED = 'REJECTED'


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(UTC)


class User(UserMixin, db.Model):
    __tablename__ = 'user'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_CANDIDATE)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    country = db.Column(db.String(100))
    city = db.Column(db.String(100))
    kyc_status = db.Column(db.String(20), nullable=False, default=KYC_PENDING)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    identity_verification = db.relationship(
        'IdentityVerification',
        back_populates='user',
        uselist=False,
        lazy=True,
        foreign_keys='IdentityVerification.user_id',
    )
    attempts = db.relationship('Attempt', back_populates='user', lazy=True)

    def get_id(self):
        return self.id

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def is_candidate(self):
        return self.role == ROLE_CANDIDATE

    def to_public_dict(self):
        return {
            'id': self.id,
            'role': self.role,
            'name': self.full_name,
            'email': self.email,
        }


class IdentityVerification(db.Model):
    __tablename__ = 'identity_verification'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, unique=True)
    selfie_url = db.Column(db.String(255), nullable=False)
    id_doc_url = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=KYC_PENDING)
    consent_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    reviewed_at = db.Column(db.DateTime(timezone=True))
    reviewed_by_id = db.Column(db.String(36), db.ForeignKey('user.id'))

    user = db.relationship('User', back_populates='identity_verification', foreign_keys=[user_id])
    reviewed_by = db.relationship('User', foreign_keys=[reviewed_by_id])

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'fullName': self.user.full_name if self.user else None,
            'email': self.user.email if self.user else None,
            'selfieUrl': self.selfie_url,
            'idDocUrl': self.id_doc_url,
            'status': self.status,
            'consentAt': self.consent_at.isoformat() if self.consent_at else None,
            'reviewedAt': self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


class Question(db.Model):
    __tablename__ = 'question'

    id = db.Column(db.Integer, primary_key=True)
    tag = db.Column(db.String(2), nullable=False, index=True)
    prompt = db.Column(db.Text, nullable=False)
    allow_multiple = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    options = db.relationship(
        'Option',
        back_populates='question',
        order_by='Option.display_order',
        cascade='all, delete-orphan',
        lazy=True,
    )

    @classmethod
    def for_tag(cls, tag):
        """All questions carrying `tag`, options eagerly loaded in display order."""
        return (
            cls.query.filter_by(tag=tag)
            .options(selectinload(cls.options))
            .order_by(cls.id.asc())
            .all()
        )

    def to_dict(self, include_answers=False):
        data = {
            'id': self.id,
            'tag': self.tag,
            'prompt': self.prompt,
            'allowMultiple': self.allow_multiple,
            'options': [o.to_dict(include_answers=include_answers) for o in self.options],
        }
        return data


class Option(db.Model):
    __tablename__ = 'option'

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship('Question', back_populates='options')

    def to_dict(self, include_answers=False):
        data = {'id': self.id, 'order': self.display_order, 'text': self.text}
        if include_answers:
            data['isCorrect'] = self.is_correct
        return data


class TestSettings(db.Model):
    """Singleton row (id=1) holding the per-level question quotas."""
    __tablename__ = 'test_settings'

    id = db.Column(db.Integer, primary_key=True)
    criteria = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    SINGLETON_ID = 1

    @classmethod
    def get_or_create(cls):
        settings = db.session.get(cls, cls.SINGLETON_ID)
        if settings is None:
            settings = cls(id=cls.SINGLETON_ID, criteria={})
            db.session.add(settings)
            db.session.flush()
        return settings

    @classmethod
    def load_quotas(cls):
        """Return {level: quota} for every level, coercing bad entries to zero."""
        settings = db.session.get(cls, cls.SINGLETON_ID)
        return normalize_quotas(settings.criteria if settings else None)


def normalize_quotas(criteria):
    quotas = {}
    criteria = criteria or {}
    for tag in LEVELS:
        try:
            need = int(criteria.get(tag) or 0)
        except (TypeError, ValueError):
            need = 0
        quotas[tag] = max(need, 0)
    return quotas


class Attempt(db.Model):
    __tablename__ = 'attempt'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_IN_PROGRESS)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True))
    answers = db.Column(db.JSON)
    score = db.Column(db.Float)
    level = db.Column(db.String(2))
    # Issuance triple: all set together, exactly once.
    certificate_id = db.Column(db.String(20), unique=True)
    verify_slug = db.Column(db.String(36), unique=True)
    issued_at = db.Column(db.DateTime(timezone=True))
    region = db.Column(db.String(100))

    user = db.relationship('User', back_populates='attempts')
    items = db.relationship(
        'AttemptItem',
        back_populates='attempt',
        order_by='AttemptItem.position',
        cascade='all, delete-orphan',
        lazy=True,
    )

    @property
    def is_issued(self):
        return bool(self.certificate_id and self.verify_slug and self.issued_at)

    def to_summary_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'submittedAt': self.submitted_at.isoformat() if self.submitted_at else None,
            'score': self.score,
            'level': self.level,
            'itemCount': len(self.items),
            'certificateId': self.certificate_id,
        }


class AttemptItem(db.Model):
    """Frozen copy of one selected question, correct answers included."""
    __tablename__ = 'attempt_item'

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(db.String(36), db.ForeignKey('attempt.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    tag = db.Column(db.String(2), nullable=False)
    allow_multiple = db.Column(db.Boolean, nullable=False, default=False)
    option_ids = db.Column(db.JSON, nullable=False)
    correct_option_ids = db.Column(db.JSON, nullable=False)

    attempt = db.relationship('Attempt', back_populates='items')
    question = db.relationship('Question')

    __table_args__ = (
        db.UniqueConstraint('attempt_id', 'position', name='uq_attempt_item_position'),
    )


class Registration:
    @staticmethod
    def register_candidate(form, selfie_url, id_doc_url):
        """Create a candidate and its pending identity verification in one transaction.

        `form` is a validated RegistrationForm. A unique violation on email at
        commit time is reported as Conflict(EMAIL_EXISTS).
        """
        from errors import Conflict

        user = User(
            email=form.email,
            role=ROLE_CANDIDATE,
            full_name=form.full_name,
            phone=form.phone,
            country=form.country,
            city=form.city,
            kyc_status=KYC_PENDING,
        )
        user.set_password(form.password)
        user.identity_verification = IdentityVerification(
            selfie_url=selfie_url,
            id_doc_url=id_doc_url,
            status=KYC_PENDING,
            consent_at=_utcnow(),
        )
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict('This email is already registered.', code='EMAIL_EXISTS')
        return user
