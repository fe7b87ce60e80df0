"""
Bearer-token authentication for the trigger endpoints.

Token validation is delegated to the platform's introspection service, which
answers with the token's subject; that subject scopes the "-user" endpoints.
"""
from functools import wraps
import logging

import requests
from flask import g, jsonify, request

from config import AUTH_INTROSPECTION_URL, AUTH_TIMEOUT_SECS
from errors import AuthError

logger = logging.getLogger(__name__)


def introspect_token(token: str) -> str:
    """Return the subject identifier of ``token`` or raise AuthError."""
    try:
        resp = requests.post(
            AUTH_INTROSPECTION_URL,
            json={'token': token},
            headers={'Authorization': f'Bearer {token}'},
            timeout=AUTH_TIMEOUT_SECS,
        )
    except requests.exceptions.RequestException as exc:
        raise AuthError(f"Token introspection unavailable: {exc}") from exc

    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    if resp.status_code >= 400:
        raise AuthError(payload.get('message') or 'Invalid token')

    subject = payload.get('sub') or payload.get('subject')
    if payload.get('active') is False or not subject:
        raise AuthError('Invalid token')
    return subject


def require_auth(view):
    """Reject requests without a valid Bearer token; expose the subject as g.user_id."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header:
            return jsonify({'message': 'No credentials sent'}), 403
        if not auth_header.startswith('Bearer '):
            return jsonify({'message': 'Wrong authentication method'}), 403

        token = auth_header[len('Bearer '):]
        try:
            g.user_id = introspect_token(token)
        except AuthError as exc:
            logger.info("Rejected request to %s: %s", request.path, exc)
            return jsonify({'message': str(exc)}), exc.status
        return view(*args, **kwargs)
    return wrapper
