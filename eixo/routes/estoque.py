import sqlite3
from datetime import date

from flask import Blueprint, request, jsonify, current_app, send_file
from flask_jwt_extended import jwt_required, current_user

from eixo.database import get_db, log_audit
from eixo.decorators import roles_required
from eixo.services import estoque_view
from eixo.services.importacao import ImportacaoError, importar, ler_planilha
from eixo.services.planilhas import gerar_xlsx

bp = Blueprint('estoque', __name__)

CRITICOS_COLUMNS = ['Código', 'Modelo', 'Cidade', 'Tipo', 'Local', 'Estoque Mínimo', 'Estoque Atual',
                    'Reposição Sugerida']


def _carregar(db):
    items = db.execute('SELECT id, codigo, modelo FROM estoque_itens ORDER BY codigo').fetchall()
    locais = [dict(l) for l in db.execute('SELECT * FROM locais_estoque ORDER BY cidade, tipo').fetchall()]
    niveis = db.execute('SELECT id, item_id, local_estoque_id, estoque_minimo, estoque_atual FROM estoque').fetchall()
    return estoque_view.agrupar(items, locais, niveis), locais

def _filtros():
    return request.args.get('cidade') or None, request.args.get('tipo') or None

@bp.route('/api/estoque', methods=['GET'])
@jwt_required()
def api_estoque_list():
    agrupados, locais = _carregar(get_db())
    cidade, tipo = _filtros()
    rows = estoque_view.filtrar(agrupados, locais, cidade, tipo,
                                status=request.args.get('status') or None,
                                busca=request.args.get('busca'))
    return jsonify({
        'rows': rows,
        'locais': estoque_view.filtrar_locais(locais, cidade, tipo) or locais,
        'cidades': sorted({l['cidade'] for l in locais}),
        'tipos': sorted({l['tipo'] for l in locais}),
        'stats': estoque_view.estatisticas(agrupados),
    })

@bp.route('/api/estoque/criticos', methods=['GET'])
@jwt_required()
def api_estoque_criticos():
    agrupados, locais = _carregar(get_db())
    cidade, tipo = _filtros()
    return jsonify(estoque_view.criticos(agrupados, locais, cidade, tipo))

@bp.route('/api/estoque/criticos.xlsx', methods=['GET'])
@jwt_required()
def api_estoque_criticos_xlsx():
    agrupados, locais = _carregar(get_db())
    cidade, tipo = _filtros()
    considerados = estoque_view.filtrar_locais(locais, cidade, tipo) or locais
    itens = estoque_view.criticos(agrupados, locais, cidade, tipo)
    linhas = estoque_view.linhas_criticas(itens, considerados)
    return send_file(
        gerar_xlsx(linhas, 'Estoque Crítico', columns=CRITICOS_COLUMNS),
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=f'estoque-critico-{date.today().isoformat()}.xlsx',
    )

@bp.route('/api/estoque/itens', methods=['POST'])
@jwt_required()
def api_estoque_item_create():
    data = request.json or {}
    codigo = str(data.get('codigo') or '').strip()
    modelo = (data.get('modelo') or '').strip()
    if not codigo or not modelo:
        return jsonify({'error': 'Código e modelo são obrigatórios'}), 400

    db = get_db()
    try:
        cur = db.execute('INSERT INTO estoque_itens (codigo, modelo) VALUES (?, ?)', (codigo, modelo))
    except sqlite3.IntegrityError:
        return jsonify({'error': 'Já existe um item com este código'}), 409
    db.commit()
    log_audit(current_user['id'], 'ESTOQUE_ITEM_CREATE', f"Created item {codigo}")
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/estoque/nivel', methods=['PUT'])
@jwt_required()
def api_estoque_nivel():
    data = request.json or {}
    item_id, local_id = data.get('item_id'), data.get('local_estoque_id')
    if 'estoque_atual' not in data and 'estoque_minimo' not in data:
        return jsonify({'error': 'Informe estoque_atual e/ou estoque_minimo'}), 400
    try:
        atual = int(data['estoque_atual']) if data.get('estoque_atual') is not None else None
        minimo = int(data['estoque_minimo']) if data.get('estoque_minimo') is not None else None
    except (TypeError, ValueError):
        return jsonify({'error': 'Quantidades devem ser números inteiros'}), 400
    if (atual is not None and atual < 0) or (minimo is not None and minimo < 0):
        return jsonify({'error': 'Quantidades não podem ser negativas'}), 400

    db = get_db()
    if not db.execute('SELECT 1 FROM estoque_itens WHERE id = ?', (item_id,)).fetchone():
        return jsonify({'error': 'Item não encontrado'}), 404
    if not db.execute('SELECT 1 FROM locais_estoque WHERE id = ?', (local_id,)).fetchone():
        return jsonify({'error': 'Local não encontrado'}), 404

    existing = db.execute('SELECT * FROM estoque WHERE item_id = ? AND local_estoque_id = ?',
                          (item_id, local_id)).fetchone()
    if existing:
        atual = existing['estoque_atual'] if atual is None else atual
        minimo = existing['estoque_minimo'] if minimo is None else minimo
        db.execute('''
            UPDATE estoque SET estoque_atual = ?, estoque_minimo = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?
        ''', (atual, minimo, existing['id']))
    else:
        atual, minimo = atual or 0, minimo or 0
        db.execute('INSERT INTO estoque (item_id, local_estoque_id, estoque_minimo, estoque_atual) VALUES (?, ?, ?, ?)',
                   (item_id, local_id, minimo, atual))
    db.commit()
    log_audit(current_user['id'], 'ESTOQUE_NIVEL', f"Item {item_id} local {local_id}: atual={atual} minimo={minimo}")
    return jsonify({'success': True, 'estoque_atual': atual, 'estoque_minimo': minimo,
                    'status': estoque_view.status_local(minimo, atual)})

@bp.route('/api/estoque/importar', methods=['POST'])
@roles_required('admin', 'administrativo')
def api_estoque_importar():
    try:
        if 'file' in request.files:
            upload = request.files['file']
            stock_rows = ler_planilha(upload)
            file_name = upload.filename
        else:
            data = request.json or {}
            stock_rows = data.get('stockRows')
            file_name = data.get('fileName')
    except ImportacaoError as e:
        return jsonify({'error': str(e)}), 400

    if not stock_rows or not isinstance(stock_rows, list):
        return jsonify({'error': 'Invalid or empty stock data'}), 400

    current_app.logger.info('Processing %s rows from %s', len(stock_rows), file_name)
    try:
        result = importar(get_db(), stock_rows, file_name, current_user['id'])
    except Exception as e:
        current_app.logger.exception('Error importing stock')
        return jsonify({'error': str(e)}), 500
    log_audit(current_user['id'], 'ESTOQUE_IMPORT', result['message'])
    return jsonify(result)

@bp.route('/api/estoque/importacoes', methods=['GET'])
@jwt_required()
def api_estoque_importacoes():
    db = get_db()
    rows = db.execute('''
        SELECT i.*, u.nome AS user_nome FROM estoque_importacoes i
        LEFT JOIN users u ON u.id = i.user_id
        ORDER BY i.created_at DESC, i.id DESC LIMIT 50
    ''').fetchall()
    return jsonify([dict(r) for r in rows])

@bp.route('/api/estoque/alertas', methods=['GET'])
@jwt_required()
def api_estoque_alertas():
    db = get_db()
    query = '''
        SELECT a.*, i.codigo, i.modelo, l.nome_local FROM estoque_alertas a
        JOIN estoque_itens i ON i.id = a.item_id
        JOIN locais_estoque l ON l.id = a.local_estoque_id
    '''
    if request.args.get('todos') != '1':
        query += ' WHERE a.lido = 0'
    rows = db.execute(query + ' ORDER BY a.created_at DESC, a.id DESC').fetchall()
    return jsonify([dict(r) for r in rows])

@bp.route('/api/estoque/alertas/<int:id>/lido', methods=['POST'])
@jwt_required()
def api_estoque_alerta_lido(id):
    db = get_db()
    cur = db.execute('UPDATE estoque_alertas SET lido = 1 WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Alerta não encontrado'}), 404
    return jsonify({'success': True})
