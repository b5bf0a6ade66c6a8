"""
Local storage for identity-verification uploads (selfie and ID document).
Files land in UPLOAD_FOLDER and are referenced by their public /uploads/ path.
"""
import logging
import math
import os
import uuid

from flask import current_app

from errors import UploadError

ALLOWED_MIME = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/webp': '.webp',
    'application/pdf': '.pdf',
}
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


def too_large_message(max_bytes):
    """Human limit for the error text, rounded up: 5242880 -> 5MB, 200 -> 200 bytes."""
    if max_bytes >= 1024 * 1024:
        limit = f"{math.ceil(max_bytes / (1024 * 1024))}MB"
    elif max_bytes >= 1024:
        limit = f"{math.ceil(max_bytes / 1024)}KB"
    else:
        limit = f"{max_bytes} bytes"
    return f"File too large (max {limit})."


def is_present(file_storage) -> bool:
    return file_storage is not None and bool(file_storage.filename)


def read_upload(file_storage):
    """Read and validate one upload; returns (bytes, extension)."""
    max_bytes = current_app.config.get('MAX_UPLOAD_BYTES', DEFAULT_MAX_BYTES)
    data = file_storage.read()
    if len(data) > max_bytes:
        raise UploadError(too_large_message(max_bytes))
    ext = ALLOWED_MIME.get(file_storage.mimetype)
    if ext is None:
        raise UploadError('Unsupported file type.')
    return data, ext


def save_upload(data, ext, prefix):
    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    filename = f'{prefix}_{uuid.uuid4()}{ext}'
    try:
        with open(os.path.join(folder, filename), 'wb') as fh:
            fh.write(data)
    except OSError as e:
        logging.exception('[UPLOAD] Failed writing %s', filename)
        raise UploadError() from e
    return f'/uploads/{filename}'


def discard_upload(url):
    if not url:
        return
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], os.path.basename(url))
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logging.warning('[UPLOAD] Could not remove orphaned upload %s', path, exc_info=True)
