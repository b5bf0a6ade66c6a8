"""
Certificate issuance for submitted attempts.
Assigns the certificate id / verification slug / issue time exactly once,
then renders the certificate template to PDF with a verification QR code.
"""
import base64
import logging
import os
import re
import secrets
import uuid
from datetime import datetime, UTC
from io import BytesIO

import qrcode
from qrcode.image.pil import PilImage
from flask import current_app, render_template
from PIL import Image, ImageDraw, ImageFont
from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError

from errors import ApiError
from models import db, LEVELS, Attempt
from utils import title_case_name, iso_utc

CERTIFICATE_PREFIX = 'T-'
ISSUE_RETRIES = 5

LEVEL_DESCRIPTORS = {
    'A1': 'Can understand and use familiar everyday expressions and very basic phrases aimed at the satisfaction of needs of a concrete type.',
    'A2': 'Can communicate in simple and routine tasks requiring a simple and direct exchange of information on familiar topics and activities.',
    'B1': 'Can understand the main points of clear standard input on familiar matters regularly encountered in work, school, leisure, etc.',
    'B2': 'Can understand the main ideas of complex text on both concrete and abstract topics, including technical discussions in their field of specialization.',
    'C1': 'Can express ideas fluently and spontaneously without much obvious searching for expressions.',
    'C2': 'Can understand with ease virtually everything heard or read and can express themselves spontaneously, very fluently and precisely.',
}


def generate_certificate_id():
    return f"{CERTIFICATE_PREFIX}{secrets.randbelow(10_000_000):07d}"


def generate_verify_slug():
    return str(uuid.uuid4())


def effective_level(level):
    return level if level in LEVELS else 'A1'


def descriptor_for(level):
    return LEVEL_DESCRIPTORS[effective_level(level)]


def ensure_issuance(attempt):
    """Populate certificate_id / verify_slug / issued_at once and return the attempt.

    The write is conditional on the triple still being unset, so two
    concurrent first requests end up sharing whichever values landed first.
    """
    if attempt.is_issued:
        return attempt

    for _ in range(ISSUE_RETRIES):
        certificate_id = generate_certificate_id()
        stmt = (
            update(Attempt)
            .where(
                Attempt.id == attempt.id,
                or_(Attempt.certificate_id.is_(None), Attempt.verify_slug.is_(None), Attempt.issued_at.is_(None)),
            )
            .values(certificate_id=certificate_id, verify_slug=generate_verify_slug(), issued_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logging.warning('[CERTIFICATE] Certificate id %s already taken, retrying', certificate_id)
            continue
        db.session.refresh(attempt)
        if result.rowcount:
            logging.info('[CERTIFICATE] Issued %s for attempt %s', attempt.certificate_id, attempt.id)
        else:
            logging.info('[CERTIFICATE] Attempt %s was issued concurrently, reusing %s', attempt.id, attempt.certificate_id)
        return attempt

    raise ApiError('Could not allocate a certificate id.')


def verification_url(slug):
    base = (current_app.config.get('PUBLIC_BASE_URL') or '').rstrip('/')
    return f"{base}/verify/{slug}"


def _png_data_url(image):
    buf = BytesIO()
    image.save(buf, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buf.getvalue()).decode('ascii')


def qr_data_url(text):
    qr = qrcode.QRCode(border=1, box_size=6, image_factory=PilImage)
    qr.add_data(text)
    qr.make(fit=True)
    return _png_data_url(qr.make_image(fill_color='black', back_color='white').get_image())


def placeholder_logo_data_url(label='English Proficiency'):
    image = Image.new('RGB', (420, 120), '#0ea5e9')
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default(size=28)
    left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
    x = (image.width - (right - left)) // 2 - left
    y = (image.height - (bottom - top)) // 2 - top
    draw.text((x, y), label, fill='white', font=font)
    return _png_data_url(image)


def _file_data_url(path):
    ext = os.path.splitext(path)[1].lower()
    mime = 'image/svg+xml' if ext == '.svg' else 'image/png'
    with open(path, 'rb') as fh:
        return f"data:{mime};base64," + base64.b64encode(fh.read()).decode('ascii')


def resolve_logo_data_url():
    """Best effort: bundled logo, then CERT_LOGO_FILE, then CERT_LOGO_URL, else a placeholder."""
    try:
        bundled = os.path.join(current_app.static_folder or 'static', 'cert', 'logo.png')
        if os.path.exists(bundled):
            return _file_data_url(bundled)
        file_cfg = current_app.config.get('CERT_LOGO_FILE')
        if file_cfg:
            path = file_cfg if os.path.isabs(file_cfg) else os.path.join(current_app.root_path, file_cfg)
            if os.path.exists(path):
                return _file_data_url(path)
        url_cfg = current_app.config.get('CERT_LOGO_URL')
        if url_cfg and re.match(r'^https?://', url_cfg, re.IGNORECASE):
            return url_cfg
    except OSError:
        logging.warning('[CERTIFICATE] Logo could not be read, using placeholder', exc_info=True)
    return placeholder_logo_data_url()


def certificate_context(attempt):
    """Everything the certificate template needs, for an already-issued attempt."""
    level = effective_level(attempt.level)
    verify_url = verification_url(attempt.verify_slug)
    return {
        'platform': current_app.config.get('PLATFORM_NAME', 'English Proficiency Platform'),
        'logo_url': resolve_logo_data_url(),
        'name': title_case_name(attempt.user.full_name if attempt.user else ''),
        'level': level,
        'ladder': list(LEVELS),
        'certificate_id': attempt.certificate_id,
        'attempt_id': attempt.id,
        'issued_at': iso_utc(attempt.issued_at),
        'region': attempt.region or current_app.config.get('CERT_DEFAULT_REGION', 'European Union'),
        'descriptor': descriptor_for(attempt.level),
        'verify_url': verify_url,
        'qr_data_url': qr_data_url(verify_url),
    }


def build_certificate_pdf(attempt, renderer):
    """Issue (if needed) and render the certificate. Returns (certificate_id, pdf bytes)."""
    ensure_issuance(attempt)
    context = certificate_context(attempt)
    html = render_template('certificate.html', page_css=renderer.page_css(), **context)
    pdf = renderer.render(html)
    return attempt.certificate_id, pdf
