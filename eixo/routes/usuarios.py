import sqlite3

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user
from werkzeug.security import generate_password_hash

from eixo.constants import ROLES
from eixo.database import get_db, log_audit
from eixo.decorators import roles_required
from eixo.routes.auth import user_public
from eixo.utils import to_json

bp = Blueprint('usuarios', __name__)

MANAGERS = ('admin', 'gerente_comercial', 'administrativo')


@bp.route('/api/usuarios', methods=['GET'])
@roles_required(*MANAGERS)
def api_usuarios_list():
    db = get_db()
    query = 'SELECT * FROM users WHERE 1=1'
    params = []
    if request.args.get('role'):
        query += ' AND role = ?'
        params.append(request.args['role'])
    if request.args.get('filial'):
        query += ' AND (filial = ? OR filiais LIKE ?)'
        params.extend([request.args['filial'], f'%"{request.args["filial"]}"%'])
    query += ' ORDER BY nome'
    users = db.execute(query, params).fetchall()
    return jsonify([user_public(u) for u in users])

@bp.route('/api/usuarios', methods=['POST'])
@jwt_required()
def api_usuarios_manage():
    requester_role = current_user['role']
    if requester_role not in MANAGERS:
        return jsonify({'error': 'Only admins, administrative and commercial managers can manage users'}), 403

    is_admin = requester_role == 'admin'
    is_gerente = requester_role == 'gerente_comercial'
    is_administrativo = requester_role == 'administrativo'

    data = request.json or {}
    action = data.get('action')
    current_app.logger.info('manage-users action: %s', action)
    db = get_db()

    try:
        if action == 'create':
            role = data.get('role') or 'vendedor'
            if is_gerente and role != 'vendedor':
                return jsonify({'error': 'Commercial managers can only create seller users'}), 403
            if is_administrativo and role == 'admin':
                return jsonify({'error': 'Administrative users cannot create admin users'}), 403
            if role not in ROLES:
                return jsonify({'error': 'Invalid role'}), 400

            email = (data.get('email') or '').strip().lower()
            password = data.get('password') or ''
            nome = (data.get('nome') or '').strip()
            if not email or not nome or len(password) < 6:
                return jsonify({'error': 'email, nome e senha (mínimo 6 caracteres) são obrigatórios'}), 400

            filiais = data.get('filiais') or None
            try:
                cur = db.execute('''
                    INSERT INTO users (email, nome, password, role, filial, filiais, telefone, must_change_password)
                    VALUES (?, ?, ?, ?, ?, ?, ?, 1)
                ''', (email, nome, generate_password_hash(password), role, data.get('filial') or None,
                      to_json(filiais), data.get('telefone') or None))
            except sqlite3.IntegrityError:
                return jsonify({'error': 'A user with this email address has already been registered'}), 400
            db.commit()
            log_audit(current_user['id'], 'USER_CREATE', f"Created user {email} ({role})")
            return jsonify({'success': True, 'user': {'id': cur.lastrowid, 'email': email}})

        if action == 'update':
            user_id = data.get('userId')
            role = data.get('role')
            if is_gerente and role and role != 'vendedor':
                return jsonify({'error': 'Commercial managers can only set seller role'}), 403
            if is_administrativo and role == 'admin':
                return jsonify({'error': 'Administrative users cannot set admin role'}), 403
            if role and role not in ROLES:
                return jsonify({'error': 'Invalid role'}), 400
            target = db.execute('SELECT role FROM users WHERE id = ?', (user_id,)).fetchone()
            if not target:
                return jsonify({'error': 'User not found'}), 404
            if target['role'] == 'admin' and not is_admin:
                return jsonify({'error': 'Only admins can change admin users'}), 403

            updates = []
            params = []
            if data.get('nome'):
                updates.append('nome = ?')
                params.append(data['nome'])
            if 'filial' in data:
                updates.append('filial = ?')
                params.append(data['filial'] or None)
            if 'filiais' in data:
                updates.append('filiais = ?')
                params.append(to_json(data['filiais']) if data['filiais'] else None)
            if 'telefone' in data:
                updates.append('telefone = ?')
                params.append(data['telefone'] or None)
            if 'is_active' in data and (is_admin or is_administrativo):
                updates.append('is_active = ?')
                params.append(1 if data['is_active'] else 0)
            # Só admin e administrativo trocam perfil
            if role and (is_admin or is_administrativo):
                updates.append('role = ?')
                params.append(role)

            if updates:
                params.append(user_id)
                db.execute(f'UPDATE users SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?', params)
                db.commit()
                log_audit(current_user['id'], 'USER_UPDATE', f"Updated user {user_id}")
            return jsonify({'success': True})

        if action == 'reset_password':
            user_id = data.get('userId')
            new_password = data.get('newPassword') or ''
            if len(new_password) < 6:
                return jsonify({'error': 'Password should be at least 6 characters'}), 400
            target = db.execute('SELECT role FROM users WHERE id = ?', (user_id,)).fetchone()
            if not target:
                return jsonify({'error': 'User not found'}), 404
            if target['role'] == 'admin' and not is_admin:
                return jsonify({'error': 'Only admins can reset admin passwords'}), 403
            db.execute(
                'UPDATE users SET password = ?, must_change_password = 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                (generate_password_hash(new_password), user_id)
            )
            db.commit()
            log_audit(current_user['id'], 'USER_RESET_PASSWORD', f"Reset password for user {user_id}")
            return jsonify({'success': True})

        if action == 'delete':
            user_id = data.get('userId')
            if str(user_id) == str(current_user['id']):
                return jsonify({'error': 'Cannot delete your own account'}), 400
            if is_gerente:
                return jsonify({'error': 'Commercial managers cannot delete users'}), 403
            target = db.execute('SELECT role FROM users WHERE id = ?', (user_id,)).fetchone()
            if not target:
                return jsonify({'error': 'User not found'}), 404
            if is_administrativo and target['role'] == 'admin':
                return jsonify({'error': 'Administrative users cannot delete admin users'}), 403
            db.execute('DELETE FROM users WHERE id = ?', (user_id,))
            db.commit()
            log_audit(current_user['id'], 'USER_DELETE', f"Deleted user {user_id}")
            return jsonify({'success': True})

        return jsonify({'error': 'Invalid action'}), 400
    except Exception as e:
        current_app.logger.exception('Error in manage-users')
        return jsonify({'error': str(e)}), 500
