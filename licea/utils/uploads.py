"""
Submission File Uploads

FLOW OVERVIEW
- save_submission_file(file, user_id)
  • Checks extension and MIME type, stores under UPLOAD_FOLDER/submissions as
    submission-<user>-<timestamp>-<random><ext>, returns the path relative to UPLOAD_FOLDER.
- resolve_upload_path(relative) / remove_upload(relative)

Size is bounded by MAX_CONTENT_LENGTH (Werkzeug raises RequestEntityTooLarge).
"""

import os
import logging
import secrets
import time

from flask import current_app
from werkzeug.utils import secure_filename

from .error_handlers import UploadError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    '.pdf': ('application/pdf',),
    '.jpg': ('image/jpeg',),
    '.jpeg': ('image/jpeg',),
    '.png': ('image/png',),
    '.gif': ('image/gif',),
    '.doc': ('application/msword',),
    '.docx': ('application/vnd.openxmlformats-officedocument.wordprocessingml.document',),
    '.txt': ('text/plain',),
}

SUBMISSIONS_DIR = 'submissions'


def _upload_root():
    return current_app.config.get('UPLOAD_FOLDER') or os.path.abspath('uploads')


def save_submission_file(file, user_id):
    """Validate and store an uploaded submission file"""
    if file is None or not file.filename:
        raise UploadError('No file provided', 'INVALID_FILE_FIELD')

    filename = secure_filename(file.filename)
    ext = os.path.splitext(filename)[1].lower()
    mimetype = (file.mimetype or '').lower()
    if ext not in ALLOWED_TYPES or (mimetype and mimetype != 'application/octet-stream'
                                    and mimetype not in ALLOWED_TYPES[ext]):
        raise UploadError('Invalid file type. Allowed: PDF, images, DOC, DOCX, TXT', 'FILE_UPLOAD_ERROR')

    directory = os.path.join(_upload_root(), SUBMISSIONS_DIR)
    os.makedirs(directory, exist_ok=True)

    stored_name = f'submission-{user_id}-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}'
    file.save(os.path.join(directory, stored_name))
    logger.info(f"Stored submission file {stored_name} for user {user_id}")
    return f'{SUBMISSIONS_DIR}/{stored_name}'


def resolve_upload_path(relative_path):
    root = os.path.abspath(_upload_root())
    full = os.path.abspath(os.path.join(root, relative_path))
    if not full.startswith(root + os.sep):
        raise UploadError('Invalid file path', 'FILE_UPLOAD_ERROR')
    return full


def remove_upload(relative_path):
    if not relative_path:
        return False
    path = resolve_upload_path(relative_path)
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
