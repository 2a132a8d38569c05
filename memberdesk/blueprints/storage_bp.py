"""
Storage Blueprint — short-lived signed downloads.

Endpoints:
    GET /api/v1/storage/download?token=...

The token (see ``memberdesk.storage.signed_url``) is the only credential:
the route is skipped by the JWT middleware.
"""

import io
import logging

import jwt as pyjwt
from flask import Blueprint, request, send_file

from memberdesk.services.jwt_service import decode_download_token
from memberdesk.storage import get_storage
from memberdesk.storage.exceptions import InvalidStorageKeyError, StorageFileNotFoundError
from memberdesk.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

storage_bp = Blueprint("storage", __name__, url_prefix="/api/v1/storage")
register_error_handlers(storage_bp, logger)


@storage_bp.route("/download", methods=["GET"])
def download():
    token = request.args.get("token", "")
    try:
        payload = decode_download_token(token)
    except pyjwt.ExpiredSignatureError:
        return api_error(E.UNAUTHORIZED, "Lien expiré.")
    except pyjwt.InvalidTokenError:
        return api_error(E.UNAUTHORIZED, "Lien invalide.")

    key = payload["path"]
    try:
        content = get_storage().download(key)
    except (StorageFileNotFoundError, InvalidStorageKeyError):
        return api_error(E.NOT_FOUND, "Fichier introuvable.")

    file_name = payload.get("name") or key.rsplit("/", 1)[-1]
    return send_file(io.BytesIO(content), download_name=file_name, as_attachment=True)
