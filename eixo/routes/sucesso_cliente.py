from datetime import date, timedelta

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import ADMINISTRADOR_TIPOS
from eixo.database import get_db, log_audit
from eixo.services import nps
from eixo.utils import row_to_dict, rows_to_dicts

bp = Blueprint('sucesso_cliente', __name__)

ADMINISTRADOR_FIELDS = ['nome', 'tipo', 'telefone', 'email', 'inicio_mandato', 'fim_mandato']
PRIORIDADES = ('BAIXA', 'MEDIA', 'ALTA', 'URGENTE')


def _nota(value, maximo=10):
    try:
        nota = int(value)
    except (TypeError, ValueError):
        return None
    return nota if 0 <= nota <= maximo else None

def _customer_exists(db, customer_id):
    return customer_id is None or db.execute(
        'SELECT 1 FROM customer_portfolio WHERE id = ?', (customer_id,)).fetchone() is not None

def _customer_filter(table_alias='t'):
    query = ''
    params = []
    if request.args.get('customer_id'):
        query += f' AND {table_alias}.customer_id = ?'
        params.append(request.args['customer_id'])
    if request.args.get('filial'):
        query += f' AND {table_alias}.filial = ?'
        params.append(request.args['filial'])
    return query, params

# NPS

@bp.route('/api/sucesso-cliente/nps', methods=['GET'])
@jwt_required()
def api_nps_list():
    db = get_db()
    extra, params = _customer_filter()
    rows = rows_to_dicts(db.execute(f'''
        SELECT t.*, c.razao_social FROM customer_nps t
        LEFT JOIN customer_portfolio c ON c.id = t.customer_id
        WHERE 1=1 {extra}
        ORDER BY t.data_pesquisa DESC, t.id DESC
    ''', params).fetchall())
    for r in rows:
        r['categoria'] = nps.categoria(r['nota'])
    return jsonify(rows)

@bp.route('/api/sucesso-cliente/nps/resumo', methods=['GET'])
@jwt_required()
def api_nps_resumo():
    db = get_db()
    extra, params = _customer_filter()
    notas = [r['nota'] for r in db.execute(f'SELECT nota FROM customer_nps t WHERE 1=1 {extra}', params).fetchall()]

    por_filial = {}
    for r in db.execute('SELECT filial, nota FROM customer_nps').fetchall():
        por_filial.setdefault(r['filial'] or 'Sem filial', []).append(r['nota'])

    result = nps.resumo(notas)
    result['por_filial'] = {filial: nps.score(valores) for filial, valores in sorted(por_filial.items())}
    return jsonify(result)

@bp.route('/api/sucesso-cliente/nps', methods=['POST'])
@jwt_required()
def api_nps_create():
    data = request.json or {}
    nota = _nota(data.get('nota'))
    if nota is None:
        return jsonify({'error': 'Nota deve ser um número entre 0 e 10'}), 400

    db = get_db()
    if not _customer_exists(db, data.get('customer_id')):
        return jsonify({'error': 'Cliente não encontrado'}), 404
    cur = db.execute('''
        INSERT INTO customer_nps (customer_id, filial, nota, comentario, ponto_forte, ponto_fraco, data_pesquisa)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    ''', (data.get('customer_id'), data.get('filial'), nota, data.get('comentario'), data.get('ponto_forte'),
          data.get('ponto_fraco'), data.get('data_pesquisa') or date.today().isoformat()))
    db.commit()
    log_audit(current_user['id'], 'NPS_CREATE', f"NPS {nota} for customer {data.get('customer_id')}")
    return jsonify({'success': True, 'id': cur.lastrowid, 'categoria': nps.categoria(nota)}), 201

# Satisfação

@bp.route('/api/sucesso-cliente/satisfacao', methods=['GET'])
@jwt_required()
def api_satisfacao_list():
    db = get_db()
    extra, params = _customer_filter()
    rows = db.execute(f'''
        SELECT t.*, c.razao_social FROM customer_satisfacao t
        LEFT JOIN customer_portfolio c ON c.id = t.customer_id
        WHERE 1=1 {extra}
        ORDER BY t.data_pesquisa DESC, t.id DESC
    ''', params).fetchall()
    items = rows_to_dicts(rows)
    notas = [i['nota'] for i in items]
    return jsonify({
        'data': items,
        'media': round(sum(notas) / len(notas), 1) if notas else None,
    })

@bp.route('/api/sucesso-cliente/satisfacao', methods=['POST'])
@jwt_required()
def api_satisfacao_create():
    data = request.json or {}
    nota = _nota(data.get('nota'), maximo=5)
    if nota is None:
        return jsonify({'error': 'Nota deve ser um número entre 0 e 5'}), 400
    db = get_db()
    if not _customer_exists(db, data.get('customer_id')):
        return jsonify({'error': 'Cliente não encontrado'}), 404
    cur = db.execute('''
        INSERT INTO customer_satisfacao (customer_id, filial, nota, tipo, comentario, data_pesquisa)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (data.get('customer_id'), data.get('filial'), nota, data.get('tipo'), data.get('comentario'),
          data.get('data_pesquisa') or date.today().isoformat()))
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

# Depoimentos

@bp.route('/api/sucesso-cliente/depoimentos', methods=['GET'])
@jwt_required()
def api_depoimentos_list():
    db = get_db()
    query = '''
        SELECT t.*, c.razao_social FROM customer_depoimentos t
        LEFT JOIN customer_portfolio c ON c.id = t.customer_id
    '''
    params = []
    if request.args.get('customer_id'):
        query += ' WHERE t.customer_id = ?'
        params.append(request.args['customer_id'])
    return jsonify(rows_to_dicts(db.execute(query + ' ORDER BY t.created_at DESC, t.id DESC', params).fetchall()))

@bp.route('/api/sucesso-cliente/depoimentos', methods=['POST'])
@jwt_required()
def api_depoimentos_create():
    data = request.json or {}
    if not (data.get('autor') or '').strip() or not (data.get('texto') or '').strip():
        return jsonify({'error': 'Autor e texto são obrigatórios'}), 400
    db = get_db()
    if not _customer_exists(db, data.get('customer_id')):
        return jsonify({'error': 'Cliente não encontrado'}), 404
    cur = db.execute('''
        INSERT INTO customer_depoimentos (customer_id, autor, cargo, texto, video_url) VALUES (?, ?, ?, ?, ?)
    ''', (data.get('customer_id'), data['autor'].strip(), data.get('cargo'), data['texto'].strip(),
          data.get('video_url')))
    db.commit()
    log_audit(current_user['id'], 'DEPOIMENTO_CREATE', f"Depoimento {cur.lastrowid}")
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/sucesso-cliente/depoimentos/<int:id>', methods=['DELETE'])
@jwt_required()
def api_depoimentos_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM customer_depoimentos WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Depoimento não encontrado'}), 404
    log_audit(current_user['id'], 'DEPOIMENTO_DELETE', f"Depoimento {id}")
    return jsonify({'success': True})

# Chamados do cliente

@bp.route('/api/sucesso-cliente/chamados', methods=['GET'])
@jwt_required()
def api_cliente_chamados_list():
    db = get_db()
    query = '''
        SELECT t.*, c.razao_social FROM customer_chamados t
        LEFT JOIN customer_portfolio c ON c.id = t.customer_id WHERE 1=1
    '''
    params = []
    if request.args.get('customer_id'):
        query += ' AND t.customer_id = ?'
        params.append(request.args['customer_id'])
    if request.args.get('status'):
        query += ' AND t.status = ?'
        params.append(request.args['status'])
    return jsonify(rows_to_dicts(db.execute(query + ' ORDER BY t.created_at DESC, t.id DESC', params).fetchall()))

@bp.route('/api/sucesso-cliente/chamados', methods=['POST'])
@jwt_required()
def api_cliente_chamados_create():
    data = request.json or {}
    if not (data.get('titulo') or '').strip():
        return jsonify({'error': 'Título é obrigatório'}), 400
    prioridade = data.get('prioridade') or 'MEDIA'
    if prioridade not in PRIORIDADES:
        return jsonify({'error': 'Prioridade inválida'}), 400
    db = get_db()
    if not _customer_exists(db, data.get('customer_id')):
        return jsonify({'error': 'Cliente não encontrado'}), 404
    cur = db.execute('''
        INSERT INTO customer_chamados (customer_id, titulo, descricao, prioridade, status, aberto_por_user_id)
        VALUES (?, ?, ?, ?, 'ABERTO', ?)
    ''', (data.get('customer_id'), data['titulo'].strip(), data.get('descricao'), prioridade, current_user['id']))
    db.commit()
    log_audit(current_user['id'], 'CLIENTE_CHAMADO_CREATE', f"Chamado {cur.lastrowid}")
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/sucesso-cliente/chamados/<int:id>/resolver', methods=['POST'])
@jwt_required()
def api_cliente_chamados_resolver(id):
    data = request.json or {}
    db = get_db()
    cur = db.execute('''
        UPDATE customer_chamados SET status = 'RESOLVIDO', resolucao = ?, resolvido_at = CURRENT_TIMESTAMP
        WHERE id = ? AND status != 'RESOLVIDO'
    ''', (data.get('resolucao'), id))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Chamado não encontrado ou já resolvido'}), 404
    log_audit(current_user['id'], 'CLIENTE_CHAMADO_RESOLVE', f"Chamado {id}")
    return jsonify({'success': True})

# Administradores do condomínio

@bp.route('/api/sucesso-cliente/<int:customer_id>/administradores', methods=['GET'])
@jwt_required()
def api_administradores_list(customer_id):
    db = get_db()
    rows = db.execute('SELECT * FROM customer_administradores WHERE customer_id = ? ORDER BY tipo, nome',
                      (customer_id,)).fetchall()
    return jsonify(rows_to_dicts(rows))

@bp.route('/api/sucesso-cliente/<int:customer_id>/administradores', methods=['POST'])
@jwt_required()
def api_administradores_create(customer_id):
    data = request.json or {}
    if not (data.get('nome') or '').strip():
        return jsonify({'error': 'Nome é obrigatório'}), 400
    if data.get('tipo') not in ADMINISTRADOR_TIPOS:
        return jsonify({'error': 'Tipo de administrador inválido'}), 400
    db = get_db()
    if not _customer_exists(db, customer_id):
        return jsonify({'error': 'Cliente não encontrado'}), 404
    cur = db.execute(f'''
        INSERT INTO customer_administradores (customer_id, {", ".join(ADMINISTRADOR_FIELDS)})
        VALUES (?, {", ".join("?" for _ in ADMINISTRADOR_FIELDS)})
    ''', [customer_id] + [data.get(f) for f in ADMINISTRADOR_FIELDS])
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/sucesso-cliente/administradores/<int:id>', methods=['PUT'])
@jwt_required()
def api_administradores_update(id):
    data = request.json or {}
    if 'tipo' in data and data['tipo'] not in ADMINISTRADOR_TIPOS:
        return jsonify({'error': 'Tipo de administrador inválido'}), 400
    updates = []
    params = []
    for field in ADMINISTRADOR_FIELDS:
        if field in data:
            updates.append(f'{field} = ?')
            params.append(data[field])
    if not updates:
        return jsonify({'error': 'Nenhum campo para atualizar'}), 400
    db = get_db()
    params.append(id)
    cur = db.execute(f'UPDATE customer_administradores SET {", ".join(updates)} WHERE id = ?', params)
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Administrador não encontrado'}), 404
    return jsonify({'success': True})

@bp.route('/api/sucesso-cliente/administradores/<int:id>', methods=['DELETE'])
@jwt_required()
def api_administradores_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM customer_administradores WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Administrador não encontrado'}), 404
    return jsonify({'success': True})

# Visão do cliente

@bp.route('/api/sucesso-cliente/<int:customer_id>', methods=['GET'])
@jwt_required()
def api_sucesso_cliente_overview(customer_id):
    db = get_db()
    customer = row_to_dict(db.execute('SELECT * FROM customer_portfolio WHERE id = ?', (customer_id,)).fetchone())
    if not customer:
        return jsonify({'error': 'Cliente não encontrado'}), 404

    def fetch(query):
        return rows_to_dicts(db.execute(query, (customer_id,)).fetchall())

    nps_rows = fetch('SELECT * FROM customer_nps WHERE customer_id = ? ORDER BY data_pesquisa DESC, id DESC')
    chamados = fetch('SELECT * FROM customer_chamados WHERE customer_id = ? ORDER BY created_at DESC, id DESC')
    manutencoes = fetch('''
        SELECT id, tipo, status, data_agendada, data_conclusao FROM manutencao_chamados
        WHERE customer_id = ? ORDER BY data_agendada DESC, id DESC LIMIT 20
    ''')
    pendencias = fetch('''
        SELECT id, tipo, status, descricao, data_prazo FROM manutencao_pendencias
        WHERE customer_id = ? AND status NOT IN ('CONCLUIDO', 'CANCELADO') ORDER BY data_prazo
    ''')

    return jsonify({
        'customer': customer,
        'nps': {'respostas': nps_rows, **nps.resumo([r['nota'] for r in nps_rows])},
        'satisfacao': fetch('SELECT * FROM customer_satisfacao WHERE customer_id = ? ORDER BY data_pesquisa DESC'),
        'depoimentos': fetch('SELECT * FROM customer_depoimentos WHERE customer_id = ? ORDER BY created_at DESC'),
        'chamados': chamados,
        'chamados_abertos': sum(1 for c in chamados if c['status'] != 'RESOLVIDO'),
        'administradores': fetch('SELECT * FROM customer_administradores WHERE customer_id = ? ORDER BY tipo, nome'),
        'documents': fetch('SELECT * FROM customer_documents WHERE customer_id = ? ORDER BY created_at DESC'),
        'manutencoes': manutencoes,
        'pendencias_abertas': pendencias,
    })

@bp.route('/api/sucesso-cliente/nps/recentes', methods=['GET'])
@jwt_required()
def api_nps_recentes():
    dias = request.args.get('dias', 30, type=int)
    desde = (date.today() - timedelta(days=dias)).isoformat()
    notas = [r['nota'] for r in get_db().execute(
        'SELECT nota FROM customer_nps WHERE date(data_pesquisa) >= date(?)', (desde,)).fetchall()]
    return jsonify({'desde': desde, **nps.resumo(notas)})
