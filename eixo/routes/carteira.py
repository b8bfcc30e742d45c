from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required

from eixo.database import get_db
from eixo.decorators import api_key_required
from eixo.utils import as_bool, contains, ilike, row_to_dict, rows_to_dicts

bp = Blueprint('carteira', __name__)

CUSTOMER_COLUMNS = [
    'razao_social', 'contrato', 'filial', 'praca', 'cnpj', 'endereco', 'cidade', 'uf', 'segmento', 'consultor',
    'sistema', 'app', 'tipo', 'noc', 'leitores', 'transbordo', 'gateway', 'alarme_codigo', 'data_ativacao',
    'status_implantacao', 'mensalidade', 'taxa_ativacao', 'unidades', 'cameras', 'dvr_nvr', 'portoes', 'portas',
    'cancelas', 'catracas', 'totem_simples', 'totem_duplo', 'faciais_hik', 'faciais_avicam',
]
EXACT_FILTERS = ['filial', 'uf', 'sistema', 'app', 'tipo', 'noc']
CONTAINS_FILTERS = ['contrato', 'cnpj', 'cidade', 'segmento', 'consultor', 'leitores', 'alarme_codigo']
DOCUMENT_COLUMNS = 'id, customer_id, nome_arquivo, arquivo_url, tipo_arquivo, tamanho, created_at'


def _customer_values(body):
    values = {}
    for col in CUSTOMER_COLUMNS:
        if col in body:
            value = body[col]
            values[col] = (1 if as_bool(value) else 0) if col in ('transbordo', 'gateway') else value
    return values

def _documents_for(db, customer_ids):
    if not customer_ids:
        return {}
    marks = ', '.join('?' for _ in customer_ids)
    docs = db.execute(f'''
        SELECT {DOCUMENT_COLUMNS} FROM customer_documents
        WHERE customer_id IN ({marks}) ORDER BY created_at DESC, id DESC
    ''', customer_ids).fetchall()
    grouped = {}
    for doc in docs:
        grouped.setdefault(doc['customer_id'], []).append(dict(doc))
    return grouped

def _params():
    """Filtros vêm da query string (GET) ou do corpo (POST)."""
    if request.method == 'POST':
        body = request.get_json(silent=True) or {}
        return body, (lambda key: body.get(key) if body.get(key) is not None else None)
    args = request.args
    return args, (lambda key: as_bool(args[key]) if key in args else None)

@bp.route('/api/customer-portfolio', methods=['GET', 'POST'])
@api_key_required
def api_portfolio_query():
    source, get_bool = _params()
    db = get_db()

    customer_id = source.get('customer_id')
    if customer_id:
        customer = row_to_dict(db.execute('SELECT * FROM customer_portfolio WHERE id = ?', (customer_id,)).fetchone())
        if not customer:
            return jsonify({'error': 'Customer not found'}), 404
        customer['documents'] = _documents_for(db, [customer['id']]).get(customer['id'], [])
        return jsonify({'success': True, 'data': customer})

    where = ['1=1']
    params = []
    search = source.get('search')
    if search:
        where.append(ilike('razao_social', 'contrato', 'cnpj'))
        params.extend([contains(search)] * 3)
    for key in EXACT_FILTERS:
        if source.get(key):
            where.append(f'{key} = ?')
            params.append(source[key])
    for key in CONTAINS_FILTERS:
        if source.get(key):
            where.append(ilike(key))
            params.append(contains(source[key]))
    for key in ('transbordo', 'gateway'):
        value = get_bool(key)
        if value is not None:
            where.append(f'{key} = ?')
            params.append(1 if as_bool(value) else 0)
    if source.get('data_ativacao_inicio'):
        where.append('data_ativacao >= ?')
        params.append(source['data_ativacao_inicio'])
    if source.get('data_ativacao_fim'):
        where.append('data_ativacao <= ?')
        params.append(source['data_ativacao_fim'])

    try:
        limit = int(source.get('limit') or 100)
        offset = int(source.get('offset') or 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'limit e offset devem ser numéricos'}), 400

    clause = ' AND '.join(where)
    total = db.execute(f'SELECT COUNT(*) AS n FROM customer_portfolio WHERE {clause}', params).fetchone()['n']
    customers = rows_to_dicts(db.execute(
        f'SELECT * FROM customer_portfolio WHERE {clause} ORDER BY razao_social LIMIT ? OFFSET ?',
        params + [limit, offset]
    ).fetchall())
    current_app.logger.info('Returned %s customers out of %s total', len(customers), total)

    if as_bool(source.get('include_documents')):
        docs = _documents_for(db, [c['id'] for c in customers])
        for c in customers:
            c['documents'] = docs.get(c['id'], [])

    return jsonify({
        'success': True,
        'data': customers,
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'hasMore': offset + limit < total},
    })

@bp.route('/api/customer-portfolio', methods=['PUT'])
@api_key_required
def api_portfolio_create():
    body = request.json or {}
    if not body.get('razao_social') or not body.get('contrato') or not body.get('filial'):
        return jsonify({'error': 'Missing required fields: razao_social, contrato, filial'}), 400

    values = _customer_values(body)
    db = get_db()
    try:
        cur = db.execute(f'''
            INSERT INTO customer_portfolio ({", ".join(values)}) VALUES ({", ".join("?" for _ in values)})
        ''', list(values.values()))
        db.commit()
    except Exception as e:
        current_app.logger.exception('Insert customer error')
        return jsonify({'error': 'Failed to create customer', 'details': str(e)}), 500
    current_app.logger.info('Customer created: %s', cur.lastrowid)
    customer = row_to_dict(db.execute('SELECT * FROM customer_portfolio WHERE id = ?', (cur.lastrowid,)).fetchone())
    return jsonify({'success': True, 'data': customer}), 201

@bp.route('/api/customer-portfolio', methods=['PATCH'])
@api_key_required
def api_portfolio_update():
    body = request.json or {}
    customer_id = body.get('customer_id')
    if not customer_id:
        return jsonify({'error': 'Missing required field: customer_id'}), 400

    values = _customer_values(body)
    db = get_db()
    if not db.execute('SELECT 1 FROM customer_portfolio WHERE id = ?', (customer_id,)).fetchone():
        return jsonify({'error': 'Customer not found'}), 404
    if values:
        sets = ', '.join(f'{col} = ?' for col in values)
        db.execute(f'UPDATE customer_portfolio SET {sets}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                   list(values.values()) + [customer_id])
        db.commit()
    current_app.logger.info('Customer updated: %s', customer_id)
    customer = row_to_dict(db.execute('SELECT * FROM customer_portfolio WHERE id = ?', (customer_id,)).fetchone())
    return jsonify({'success': True, 'data': customer})

@bp.route('/api/customer-portfolio', methods=['DELETE'])
@api_key_required
def api_portfolio_delete():
    body = request.json or {}
    customer_id = body.get('customer_id')
    if not customer_id:
        return jsonify({'error': 'Missing required field: customer_id'}), 400

    db = get_db()
    db.execute('DELETE FROM customer_documents WHERE customer_id = ?', (customer_id,))
    cur = db.execute('DELETE FROM customer_portfolio WHERE id = ?', (customer_id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Customer not found'}), 404
    current_app.logger.info('Customer deleted: %s', customer_id)
    return jsonify({'success': True, 'message': 'Customer and documents deleted successfully'})

@bp.route('/api/customer-portfolio/documents', methods=['PUT'])
@api_key_required
def api_portfolio_document_create():
    body = request.json or {}
    if not body.get('customer_id') or not body.get('nome_arquivo') or not body.get('arquivo_url'):
        return jsonify({'error': 'Missing required fields: customer_id, nome_arquivo, arquivo_url'}), 400

    db = get_db()
    if not db.execute('SELECT 1 FROM customer_portfolio WHERE id = ?', (body['customer_id'],)).fetchone():
        return jsonify({'error': 'Customer not found'}), 404
    cur = db.execute('''
        INSERT INTO customer_documents (customer_id, nome_arquivo, arquivo_url, tipo_arquivo, tamanho)
        VALUES (?, ?, ?, ?, ?)
    ''', (body['customer_id'], body['nome_arquivo'], body['arquivo_url'], body.get('tipo_arquivo') or None,
          body.get('tamanho') or None))
    db.commit()
    current_app.logger.info('Document created: %s', cur.lastrowid)
    doc = row_to_dict(db.execute(f'SELECT {DOCUMENT_COLUMNS} FROM customer_documents WHERE id = ?',
                                 (cur.lastrowid,)).fetchone())
    return jsonify({'success': True, 'data': doc}), 201

@bp.route('/api/customer-portfolio/documents', methods=['DELETE'])
@api_key_required
def api_portfolio_document_delete():
    body = request.json or {}
    document_id = body.get('document_id')
    if not document_id:
        return jsonify({'error': 'Missing required field: document_id'}), 400

    db = get_db()
    cur = db.execute('DELETE FROM customer_documents WHERE id = ?', (document_id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Document not found'}), 404
    current_app.logger.info('Document deleted: %s', document_id)
    return jsonify({'success': True, 'message': 'Document deleted successfully'})

# Telas internas

@bp.route('/api/carteira', methods=['GET'])
@jwt_required()
def api_carteira_list():
    db = get_db()
    query = 'SELECT * FROM customer_portfolio WHERE 1=1'
    params = []
    filiais = [f for f in request.args.getlist('filial') if f]
    if filiais:
        query += f' AND filial IN ({", ".join("?" for _ in filiais)})'
        params.extend(filiais)
    if request.args.get('q'):
        query += ' AND ' + ilike('razao_social', 'contrato', 'cnpj', 'cidade')
        params.extend([contains(request.args['q'])] * 4)
    customers = rows_to_dicts(db.execute(query + ' ORDER BY razao_social', params).fetchall())
    return jsonify({
        'data': customers,
        'total': len(customers),
        'filiais': [r['filial'] for r in db.execute(
            'SELECT DISTINCT filial FROM customer_portfolio ORDER BY filial').fetchall()],
        'mensalidade_total': round(sum(c['mensalidade'] or 0 for c in customers), 2),
    })

@bp.route('/api/carteira/<int:id>', methods=['GET'])
@jwt_required()
def api_carteira_detail(id):
    db = get_db()
    customer = row_to_dict(db.execute('SELECT * FROM customer_portfolio WHERE id = ?', (id,)).fetchone())
    if not customer:
        return jsonify({'error': 'Cliente não encontrado'}), 404
    customer['documents'] = _documents_for(db, [id]).get(id, [])
    return jsonify(customer)
