from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import MENU_KEYS, ACCESS_LEVELS, ROLES
from eixo.database import get_db, log_audit
from eixo.decorators import roles_required
from eixo.services.permissoes import load_access_map

bp = Blueprint('permissoes', __name__)


@bp.route('/api/permissoes/me', methods=['GET'])
@jwt_required()
def api_permissoes_me():
    return jsonify(load_access_map(get_db(), current_user))

@bp.route('/api/permissoes', methods=['GET'])
@roles_required('admin')
def api_permissoes_list():
    db = get_db()
    role_perms = db.execute('SELECT role, menu_key, access_level FROM role_menu_permissions ORDER BY role, menu_key').fetchall()
    overrides = db.execute('''
        SELECT o.user_id, u.nome, u.email, o.menu_key, o.access_level
        FROM user_menu_overrides o JOIN users u ON u.id = o.user_id
        ORDER BY u.nome, o.menu_key
    ''').fetchall()
    return jsonify({
        'menu_keys': MENU_KEYS,
        'roles': ROLES,
        'role_permissions': [dict(r) for r in role_perms],
        'user_overrides': [dict(r) for r in overrides],
    })

@bp.route('/api/permissoes/role', methods=['PUT'])
@roles_required('admin')
def api_permissoes_role():
    data = request.json or {}
    role, menu_key, level = data.get('role'), data.get('menu_key'), data.get('access_level')
    if role not in ROLES or menu_key not in MENU_KEYS or level not in ACCESS_LEVELS:
        return jsonify({'error': 'role, menu_key ou access_level inválido'}), 400

    db = get_db()
    if level == 'nenhum':
        db.execute('DELETE FROM role_menu_permissions WHERE role = ? AND menu_key = ?', (role, menu_key))
    else:
        db.execute('''
            INSERT INTO role_menu_permissions (role, menu_key, access_level) VALUES (?, ?, ?)
            ON CONFLICT(role, menu_key) DO UPDATE SET access_level = excluded.access_level
        ''', (role, menu_key, level))
    db.commit()
    log_audit(current_user['id'], 'PERMISSION_ROLE', f"{role} {menu_key} -> {level}")
    return jsonify({'success': True})

@bp.route('/api/permissoes/usuario', methods=['PUT'])
@roles_required('admin')
def api_permissoes_usuario():
    data = request.json or {}
    user_id, menu_key, level = data.get('user_id'), data.get('menu_key'), data.get('access_level')
    if menu_key not in MENU_KEYS or (level is not None and level not in ACCESS_LEVELS):
        return jsonify({'error': 'menu_key ou access_level inválido'}), 400

    db = get_db()
    if not db.execute('SELECT 1 FROM users WHERE id = ?', (user_id,)).fetchone():
        return jsonify({'error': 'Usuário não encontrado'}), 404

    # None remove o override e volta a valer a permissão do perfil
    if level is None:
        db.execute('DELETE FROM user_menu_overrides WHERE user_id = ? AND menu_key = ?', (user_id, menu_key))
    else:
        db.execute('''
            INSERT INTO user_menu_overrides (user_id, menu_key, access_level) VALUES (?, ?, ?)
            ON CONFLICT(user_id, menu_key) DO UPDATE SET access_level = excluded.access_level
        ''', (user_id, menu_key, level))
    db.commit()
    log_audit(current_user['id'], 'PERMISSION_USER', f"user {user_id} {menu_key} -> {level}")
    return jsonify({'success': True})
