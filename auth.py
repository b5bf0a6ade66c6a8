"""
Session tokens: HS256 JWTs carried in an HTTP-only cookie.
A missing, expired or tampered token is treated as no session at all.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from models import db, User

COOKIE_NAME = 'access_token'
ALGORITHM = 'HS256'


def _secret():
    return current_app.config['JWT_ACCESS_SECRET']


def sign_access(user, ttl_minutes=None) -> str:
    ttl = ttl_minutes if ttl_minutes is not None else current_app.config.get('ACCESS_TOKEN_TTL_MINUTES', 15)
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user.id,
        'role': user.role,
        'name': user.full_name,
        'email': user.email,
        'iat': int(now.timestamp()),
        'exp': int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def read_token(token):
    """Return the decoded payload or None."""
    if not token:
        return None
    try:
        return jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def user_from_request(request):
    payload = read_token(request.cookies.get(COOKIE_NAME))
    if not payload or not payload.get('sub'):
        return None
    user = db.session.get(User, payload['sub'])
    if user is None:
        logging.info('[AUTH] Token for unknown user %s ignored', payload.get('sub'))
    return user


def set_session_cookie(response, user):
    response.set_cookie(
        COOKIE_NAME,
        sign_access(user),
        max_age=int(current_app.config.get('ACCESS_TOKEN_TTL_MINUTES', 15)) * 60,
        httponly=True,
        secure=bool(current_app.config.get('AUTH_COOKIE_SECURE', False)),
        samesite='Lax',
        path='/',
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(COOKIE_NAME, path='/', httponly=True, samesite='Lax')
    return response
