from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import (create_access_token, set_access_cookies, unset_jwt_cookies,
                                jwt_required, current_user)
from werkzeug.security import check_password_hash, generate_password_hash

from eixo.database import get_db, log_audit
from eixo.services.permissoes import load_access_map
from eixo.utils import from_json_filter

bp = Blueprint('auth', __name__)


def user_public(user):
    data = dict(user)
    data.pop('password', None)
    data['filiais'] = from_json_filter(data.get('filiais'), default=[])
    data['must_change_password'] = bool(data.get('must_change_password'))
    data['is_active'] = bool(data.get('is_active'))
    return data

@bp.route('/api/auth/login', methods=['POST'])
def api_auth_login():
    data = request.json or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email e senha são obrigatórios'}), 400

    db = get_db()
    user = db.execute('SELECT * FROM users WHERE lower(email) = ?', (email,)).fetchone()

    if not user or not check_password_hash(user['password'], password):
        current_app.logger.info('Login failed for %s', email)
        return jsonify({'error': 'Email ou senha inválidos'}), 401

    # Check active status
    if not user['is_active']:
        log_audit(user['id'], 'LOGIN_FAILED', 'Inactive user tried to login')
        return jsonify({'error': 'Usuário desativado pelo administrador.'}), 403

    access_token = create_access_token(identity=str(user['id']))
    resp = jsonify({
        'success': True,
        'access_token': access_token,
        'user': user_public(user),
        'must_change_password': bool(user['must_change_password']),
    })
    set_access_cookies(resp, access_token)
    log_audit(user['id'], 'LOGIN_SUCCESS', 'User logged in')
    return resp

@bp.route('/api/auth/logout', methods=['POST'])
def api_auth_logout():
    resp = jsonify({'success': True})
    unset_jwt_cookies(resp)
    return resp

@bp.route('/api/auth/me', methods=['GET'])
@jwt_required()
def api_auth_me():
    db = get_db()
    return jsonify({
        'user': user_public(current_user),
        'permissions': load_access_map(db, current_user),
    })

@bp.route('/api/auth/change-password', methods=['POST'])
@jwt_required()
def api_auth_change_password():
    data = request.json or {}
    new_password = data.get('new_password') or ''
    if len(new_password) < 6:
        return jsonify({'error': 'A senha deve ter pelo menos 6 caracteres'}), 400

    # Troca obrigatória no primeiro acesso dispensa a senha atual
    if not current_user['must_change_password']:
        if not check_password_hash(current_user['password'], data.get('current_password') or ''):
            return jsonify({'error': 'Senha atual incorreta'}), 400

    db = get_db()
    db.execute(
        'UPDATE users SET password = ?, must_change_password = 0, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
        (generate_password_hash(new_password), current_user['id'])
    )
    db.commit()
    log_audit(current_user['id'], 'PASSWORD_CHANGED', 'User changed own password')
    return jsonify({'success': True})
