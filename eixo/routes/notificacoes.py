from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required, current_user

from eixo.database import get_db

bp = Blueprint('notificacoes', __name__)

TABLES = {'projeto': 'project_notifications', 'manutencao': 'manutencao_notificacoes'}
VISIBLE = '(for_user_id = ? OR (for_user_id IS NULL AND for_role = ?))'


def _lida(origem):
    return f'''EXISTS (SELECT 1 FROM notificacao_leituras l
                       WHERE l.origem = '{origem}' AND l.notification_id = n.id AND l.user_id = ?)'''

@bp.route('/api/notificacoes', methods=['GET'])
@jwt_required()
def api_notificacoes_list():
    db = get_db()
    limit = request.args.get('limit', 50, type=int)
    params = (current_user['id'], current_user['id'], current_user['role'])
    rows = db.execute(f'''
        SELECT n.id, n.project_id, NULL AS chamado_id, NULL AS pendencia_id, n.type, n.title, n.message,
               {_lida('projeto')} AS read, n.created_at, 'projeto' AS origem
        FROM project_notifications n WHERE {VISIBLE}
        UNION ALL
        SELECT n.id, NULL, n.chamado_id, n.pendencia_id, 'manutencao', n.title, n.message,
               {_lida('manutencao')}, n.created_at, 'manutencao'
        FROM manutencao_notificacoes n WHERE {VISIBLE}
        ORDER BY read ASC, created_at DESC, id DESC
        LIMIT ?
    ''', params + params + (limit,)).fetchall()
    return jsonify([dict(n) for n in rows])

@bp.route('/api/notificacoes/contagem', methods=['GET'])
@jwt_required()
def api_notificacoes_contagem():
    db = get_db()
    params = (current_user['id'], current_user['role'], current_user['id'])
    row = db.execute(f'''
        SELECT (SELECT COUNT(*) FROM project_notifications n WHERE {VISIBLE} AND NOT {_lida('projeto')})
             + (SELECT COUNT(*) FROM manutencao_notificacoes n WHERE {VISIBLE} AND NOT {_lida('manutencao')})
          AS total
    ''', params + params).fetchone()
    return jsonify({'unread': row['total']})

@bp.route('/api/notificacoes/<origem>/<int:id>/lida', methods=['POST'])
@jwt_required()
def api_notificacao_lida(origem, id):
    table = TABLES.get(origem)
    if not table:
        return jsonify({'error': 'Origem inválida'}), 400
    db = get_db()
    visible = db.execute(f'SELECT 1 FROM {table} WHERE id = ? AND {VISIBLE}',
                         (id, current_user['id'], current_user['role'])).fetchone()
    if not visible:
        return jsonify({'error': 'Notificação não encontrada'}), 404
    db.execute('INSERT OR IGNORE INTO notificacao_leituras (origem, notification_id, user_id) VALUES (?, ?, ?)',
               (origem, id, current_user['id']))
    db.commit()
    return jsonify({'success': True})

@bp.route('/api/notificacoes/lidas', methods=['POST'])
@jwt_required()
def api_notificacoes_todas_lidas():
    db = get_db()
    for origem, table in TABLES.items():
        db.execute(f'''
            INSERT OR IGNORE INTO notificacao_leituras (origem, notification_id, user_id)
            SELECT ?, id, ? FROM {table} WHERE {VISIBLE}
        ''', (origem, current_user['id'], current_user['id'], current_user['role']))
    db.commit()
    return jsonify({'success': True})
