"""
User routes — the directory of actors that leads are created by and assigned to.
"""
import logging

from flask import Blueprint, jsonify
from sqlalchemy import select

from casedesk.config import DEFAULT_USER_ROLE
from casedesk.errors import NotFoundError, ValidationError
from casedesk.extensions import get_store
from casedesk.models.user import User
from casedesk.routes.common import json_body
from casedesk.services.normalizer import USER_FIELD_ALIASES, decode_user, encode_fields, map_fields

logger = logging.getLogger('routes.users')

bp = Blueprint('users', __name__)

USER_EXAMPLE = {'uid': 'u_001', 'email': 'reviewer@example.com', 'displayName': '王小明'}

# Identity and creation time are fixed once the row exists
_UPDATABLE_USER_ALIASES = {
    key: column for key, column in USER_FIELD_ALIASES.items()
    if column not in ('id', 'created_at')
}


@bp.route('/api/users')
def list_users():
    """All users as a {uid: user} mapping."""
    with get_store().session_scope() as session:
        users = session.scalars(select(User).order_by(User.created_at)).all()
        return jsonify({user.id: decode_user(user) for user in users})


@bp.route('/api/users', methods=['POST'])
def upsert_user():
    """Create a user, or overwrite the profile of an existing one."""
    values = encode_fields(map_fields(json_body(), USER_FIELD_ALIASES))
    for column in ('id', 'email', 'display_name'):
        if not values.get(column):
            raise ValidationError('uid, email and displayName are required', example=USER_EXAMPLE)

    with get_store().session_scope() as session:
        user = session.get(User, values['id'])
        created = user is None
        if created:
            user = User(id=values['id'], role=DEFAULT_USER_ROLE, is_active=True, is_online=False)
            if values.get('created_at'):
                user.created_at = values['created_at']
            session.add(user)
        for column, value in values.items():
            if column in ('id', 'created_at'):
                continue
            if value is not None:
                setattr(user, column, value)
        session.flush()
        session.refresh(user)
        body = decode_user(user)

    logger.info("%s user %s", 'Created' if created else 'Updated', body['uid'])
    return jsonify(body)


@bp.route('/api/users/<uid>')
def get_user(uid):
    with get_store().session_scope() as session:
        user = session.get(User, uid)
        if user is None:
            raise NotFoundError(uid, kind='user')
        return jsonify(decode_user(user))


@bp.route('/api/users/<uid>', methods=['PUT'])
def update_user(uid):
    """Partial profile update. Unknown and presence fields are ignored."""
    values = encode_fields(map_fields(json_body(), _UPDATABLE_USER_ALIASES))
    if not values:
        raise ValidationError('No updatable fields supplied', example={'displayName': '王小明'})

    with get_store().session_scope() as session:
        user = session.get(User, uid)
        if user is None:
            raise NotFoundError(uid, kind='user')
        for column, value in values.items():
            if value is None and column in ('email', 'display_name'):
                continue
            setattr(user, column, value)
        session.flush()
        session.refresh(user)
        body = decode_user(user)

    logger.info("Updated user %s: %s", uid, ', '.join(sorted(values)))
    return jsonify(body)
