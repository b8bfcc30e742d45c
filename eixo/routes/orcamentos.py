import secrets

from flask import Blueprint, request, jsonify, current_app, Response, stream_with_context, send_file
from flask_jwt_extended import jwt_required, current_user, verify_jwt_in_request

from eixo.constants import REGRAS_PADRAO, SESSAO_STATUS
from eixo.database import get_db, log_audit
from eixo.decorators import roles_required
from eixo.services import gateway, precificacao, prompts, propostas
from eixo.services.planilhas import gerar_xlsx
from eixo.utils import as_bool, contains, ilike, row_to_dict, rows_to_dicts, to_json, from_json_filter, now_str

bp = Blueprint('orcamentos', __name__)

PRODUTO_FIELDS = ['id_produto', 'codigo', 'nome', 'categoria', 'subgrupo', 'unidade', 'descricao', 'preco_unitario',
                  'valor_minimo', 'valor_locacao', 'valor_minimo_locacao', 'valor_instalacao', 'qtd_max', 'ativo']
KIT_FIELDS = ['id_kit', 'codigo', 'nome', 'categoria', 'descricao', 'descricao_uso', 'palavras_chave',
              'regras_condicionais', 'ativo']
KIT_JSON_FIELDS = ('palavras_chave', 'regras_condicionais')
CATALOGO_ROLES = ('admin', 'gerente_comercial', 'administrativo')
MIDIA_TIPOS = ('foto', 'video', 'audio', 'documento')


def _field_value(field, value):
    if field == 'ativo':
        return 1 if as_bool(value) else 0
    if field in KIT_JSON_FIELDS:
        return to_json(value) if isinstance(value, (list, dict)) else value
    return value

def _insert(db, table, fields, data):
    cols = [f for f in fields if f in data]
    cur = db.execute(
        f'INSERT INTO {table} ({", ".join(cols)}) VALUES ({", ".join("?" for _ in cols)})',
        [_field_value(f, data[f]) for f in cols]
    )
    return cur.lastrowid

def _update(db, table, fields, data, id):
    cols = [f for f in fields if f in data]
    if not cols:
        return None
    return db.execute(
        f'UPDATE {table} SET {", ".join(f"{c} = ?" for c in cols)} WHERE id = ?',
        [_field_value(f, data[f]) for f in cols] + [id]
    ).rowcount

# Produtos

@bp.route('/api/orcamentos/produtos', methods=['GET'])
@jwt_required()
def api_produtos_list():
    db = get_db()
    query = 'SELECT * FROM orcamento_produtos WHERE 1=1'
    params = []
    if request.args.get('categoria'):
        query += ' AND categoria = ?'
        params.append(request.args['categoria'])
    if request.args.get('ativo') is not None:
        query += ' AND ativo = ?'
        params.append(1 if as_bool(request.args['ativo']) else 0)
    if request.args.get('q'):
        query += ' AND ' + ilike('nome', 'codigo')
        params.extend([contains(request.args['q'])] * 2)
    return jsonify(rows_to_dicts(db.execute(query + ' ORDER BY categoria, nome', params).fetchall()))

@bp.route('/api/orcamentos/produtos', methods=['POST'])
@roles_required(*CATALOGO_ROLES)
def api_produtos_create():
    data = request.json or {}
    if not (data.get('nome') or '').strip():
        return jsonify({'error': 'Nome é obrigatório'}), 400
    db = get_db()
    try:
        produto_id = _insert(db, 'orcamento_produtos', PRODUTO_FIELDS, data)
        db.commit()
    except Exception as e:
        current_app.logger.exception('Error creating product')
        return jsonify({'success': False, 'error': str(e)}), 500
    log_audit(current_user['id'], 'PRODUTO_CREATE', f"Created product {data['nome']}")
    return jsonify({'success': True, 'id': produto_id}), 201

@bp.route('/api/orcamentos/produtos/<int:id>', methods=['PUT'])
@roles_required(*CATALOGO_ROLES)
def api_produtos_update(id):
    data = request.json or {}
    db = get_db()
    rowcount = _update(db, 'orcamento_produtos', PRODUTO_FIELDS, data, id)
    if rowcount is None:
        return jsonify({'error': 'Nenhum campo para atualizar'}), 400
    if rowcount == 0:
        return jsonify({'error': 'Produto não encontrado'}), 404
    db.execute('UPDATE orcamento_produtos SET updated_at = CURRENT_TIMESTAMP WHERE id = ?', (id,))
    db.commit()
    log_audit(current_user['id'], 'PRODUTO_UPDATE', f"Updated product {id}")
    return jsonify({'success': True})

@bp.route('/api/orcamentos/produtos/<int:id>', methods=['DELETE'])
@roles_required(*CATALOGO_ROLES)
def api_produtos_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM orcamento_produtos WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Produto não encontrado'}), 404
    log_audit(current_user['id'], 'PRODUTO_DELETE', f"Deleted product {id}")
    return jsonify({'success': True})

# Kits

def _kit_totais(kit):
    return precificacao.totais_kit([{**i['produto'], 'quantidade': i['quantidade']} for i in kit['itens']])

def _salvar_itens_kit(db, kit_id, itens):
    db.execute('DELETE FROM orcamento_kit_itens WHERE kit_id = ?', (kit_id,))
    for item in itens:
        db.execute('INSERT INTO orcamento_kit_itens (kit_id, produto_id, quantidade) VALUES (?, ?, ?)',
                   (kit_id, item['produto_id'], item.get('quantidade') or 1))

def _recalcular_kit(db, kit_id):
    kit = next(k for k in prompts.carregar_kits(db, apenas_ativos=False) if k['id'] == kit_id)
    totais = _kit_totais(kit)
    db.execute('''
        UPDATE orcamento_kits SET preco_kit = ?, valor_minimo = ?, valor_locacao = ?, valor_minimo_locacao = ?,
                                  valor_instalacao = ?
        WHERE id = ?
    ''', (totais['preco_kit'], totais['valor_minimo'], totais['valor_locacao'], totais['valor_minimo_locacao'],
          totais['valor_instalacao'], kit_id))
    return totais

def _validar_itens(db, itens):
    if not isinstance(itens, list):
        return 'itens deve ser uma lista'
    for item in itens:
        if not isinstance(item, dict) or not item.get('produto_id'):
            return 'Cada item precisa de produto_id'
        if not db.execute('SELECT 1 FROM orcamento_produtos WHERE id = ?', (item['produto_id'],)).fetchone():
            return f"Produto {item['produto_id']} não encontrado"
    return None

@bp.route('/api/orcamentos/kits', methods=['GET'])
@jwt_required()
def api_kits_list():
    kits = prompts.carregar_kits(get_db(), apenas_ativos=as_bool(request.args.get('ativos', '0')))
    for k in kits:
        k['totais'] = _kit_totais(k)
    return jsonify(kits)

@bp.route('/api/orcamentos/kits', methods=['POST'])
@roles_required(*CATALOGO_ROLES)
def api_kits_create():
    data = request.json or {}
    if not (data.get('nome') or '').strip():
        return jsonify({'error': 'Nome é obrigatório'}), 400
    db = get_db()
    itens = data.get('itens') or []
    erro = _validar_itens(db, itens)
    if erro:
        return jsonify({'error': erro}), 400

    kit_id = _insert(db, 'orcamento_kits', KIT_FIELDS, data)
    _salvar_itens_kit(db, kit_id, itens)
    totais = _recalcular_kit(db, kit_id)
    db.commit()
    log_audit(current_user['id'], 'KIT_CREATE', f"Created kit {data['nome']}")
    return jsonify({'success': True, 'id': kit_id, 'totais': totais}), 201

@bp.route('/api/orcamentos/kits/<int:id>', methods=['PUT'])
@roles_required(*CATALOGO_ROLES)
def api_kits_update(id):
    data = request.json or {}
    db = get_db()
    if not db.execute('SELECT 1 FROM orcamento_kits WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Kit não encontrado'}), 404
    if 'itens' in data:
        erro = _validar_itens(db, data['itens'] or [])
        if erro:
            return jsonify({'error': erro}), 400
        _salvar_itens_kit(db, id, data['itens'] or [])

    _update(db, 'orcamento_kits', KIT_FIELDS, data, id)
    totais = _recalcular_kit(db, id)
    db.commit()
    log_audit(current_user['id'], 'KIT_UPDATE', f"Updated kit {id}")
    return jsonify({'success': True, 'totais': totais})

@bp.route('/api/orcamentos/kits/<int:id>', methods=['DELETE'])
@roles_required(*CATALOGO_ROLES)
def api_kits_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM orcamento_kits WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Kit não encontrado'}), 404
    log_audit(current_user['id'], 'KIT_DELETE', f"Deleted kit {id}")
    return jsonify({'success': True})

# Regras de precificação

@bp.route('/api/orcamentos/regras', methods=['GET'])
@jwt_required()
def api_regras_list():
    rows = get_db().execute('SELECT * FROM orcamento_regras_precificacao ORDER BY campo').fetchall()
    return jsonify(rows_to_dicts(rows))

@bp.route('/api/orcamentos/regras', methods=['PUT'])
@roles_required(*CATALOGO_ROLES)
def api_regras_save():
    data = request.json or {}
    regras = data.get('regras') or [data]
    db = get_db()
    for regra in regras:
        campo = regra.get('campo')
        if campo not in REGRAS_PADRAO:
            return jsonify({'error': f'Campo inválido: {campo}'}), 400
        try:
            percentual = float(regra.get('percentual'))
        except (TypeError, ValueError):
            return jsonify({'error': 'Percentual inválido'}), 400
        if percentual <= 0:
            return jsonify({'error': 'Percentual deve ser maior que zero'}), 400
        db.execute('''
            INSERT INTO orcamento_regras_precificacao (campo, percentual, base_campo, descricao) VALUES (?, ?, ?, ?)
            ON CONFLICT(campo) DO UPDATE SET percentual = excluded.percentual, updated_at = CURRENT_TIMESTAMP
        ''', (campo, percentual, REGRAS_PADRAO[campo][1], REGRAS_PADRAO[campo][2]))
    db.commit()
    log_audit(current_user['id'], 'REGRAS_SAVE', ', '.join(str(r.get('campo')) for r in regras))
    return jsonify({'success': True})

@bp.route('/api/orcamentos/regras/aplicar', methods=['POST'])
@roles_required(*CATALOGO_ROLES)
def api_regras_aplicar():
    data = request.json or {}
    tipo = data.get('tipo') or 'produtos'
    if tipo not in ('produtos', 'servicos'):
        return jsonify({'error': 'Tipo deve ser produtos ou servicos'}), 400

    db = get_db()
    regras = {r['campo']: r['percentual'] for r in
              db.execute('SELECT campo, percentual FROM orcamento_regras_precificacao').fetchall()}
    produtos = rows_to_dicts(db.execute('SELECT id, subgrupo, preco_unitario FROM orcamento_produtos').fetchall())
    updates = precificacao.aplicar(produtos, regras, tipo)
    for produto_id, valores in updates:
        db.execute('''
            UPDATE orcamento_produtos SET valor_minimo = ?, valor_locacao = ?, valor_minimo_locacao = ?,
                                          valor_instalacao = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (valores['valor_minimo'], valores['valor_locacao'], valores['valor_minimo_locacao'],
              valores['valor_instalacao'], produto_id))
    db.commit()
    log_audit(current_user['id'], 'REGRAS_APLICAR', f"{tipo}: {len(updates)} itens atualizados")
    return jsonify({'success': True, 'atualizados': len(updates)})

# Sessões

def _sessao_view(row):
    return row_to_dict(row, json_fields=('itens_proposta',))

def _buscar_sessao(db, id, extra=''):
    """Sessão pelo id; vendedores só enxergam as próprias."""
    query = f'SELECT * FROM orcamento_sessoes WHERE id = ?{extra}'
    params = [id]
    if current_user['role'] == 'vendedor':
        query += ' AND vendedor_user_id = ?'
        params.append(current_user['id'])
    return db.execute(query, params).fetchone()

@bp.route('/api/orcamentos/sessoes', methods=['POST'])
@jwt_required()
def api_sessoes_create():
    data = request.json or {}
    nome = (data.get('nome_cliente') or '').strip()
    if not nome:
        return jsonify({'error': 'Nome do condomínio é obrigatório'}), 400
    token = secrets.token_urlsafe(16)
    db = get_db()
    cur = db.execute('''
        INSERT INTO orcamento_sessoes (token, nome_cliente, endereco_condominio, email_cliente, telefone_cliente,
                                       vendedor_nome, vendedor_user_id, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, 'ativo')
    ''', (token, nome, data.get('endereco_condominio'), data.get('email_cliente'), data.get('telefone_cliente'),
          data.get('vendedor_nome') or current_user['nome'], current_user['id']))
    db.commit()
    log_audit(current_user['id'], 'SESSAO_CREATE', f"Sessão {cur.lastrowid} ({nome})")
    return jsonify({'success': True, 'id': cur.lastrowid, 'token': token}), 201

@bp.route('/api/orcamentos/sessoes', methods=['GET'])
@jwt_required()
def api_sessoes_list():
    db = get_db()
    query = '''
        SELECT s.id, s.token, s.nome_cliente, s.endereco_condominio, s.vendedor_nome, s.vendedor_user_id,
               s.status, s.proposta_gerada_at, s.created_at,
               (SELECT COUNT(*) FROM orcamento_mensagens m WHERE m.sessao_id = s.id) AS total_mensagens
        FROM orcamento_sessoes s WHERE 1=1
    '''
    params = []
    if current_user['role'] == 'vendedor':
        query += ' AND s.vendedor_user_id = ?'
        params.append(current_user['id'])
    if request.args.get('status') in SESSAO_STATUS:
        query += ' AND s.status = ?'
        params.append(request.args['status'])
    return jsonify(rows_to_dicts(db.execute(query + ' ORDER BY s.created_at DESC, s.id DESC', params).fetchall()))

@bp.route('/api/orcamentos/sessoes/<int:id>', methods=['GET'])
@jwt_required()
def api_sessoes_detail(id):
    db = get_db()
    sessao = _sessao_view(_buscar_sessao(db, id))
    if not sessao:
        return jsonify({'error': 'Sessão não encontrada'}), 404
    sessao['mensagens'] = rows_to_dicts(db.execute(
        'SELECT id, role, content, created_at FROM orcamento_mensagens WHERE sessao_id = ? ORDER BY created_at, id',
        (id,)).fetchall())
    sessao['midias'] = rows_to_dicts(db.execute(
        'SELECT * FROM orcamento_midias WHERE sessao_id = ? ORDER BY created_at, id', (id,)).fetchall())
    sessao['feedbacks'] = rows_to_dicts(db.execute(
        'SELECT * FROM orcamento_proposta_feedbacks WHERE sessao_id = ? ORDER BY created_at DESC', (id,)).fetchall())
    return jsonify(sessao)

@bp.route('/api/orcamentos/sessoes/<int:id>/cancelar', methods=['POST'])
@jwt_required()
def api_sessoes_cancelar(id):
    db = get_db()
    if not _buscar_sessao(db, id):
        return jsonify({'error': 'Sessão não encontrada'}), 404
    db.execute("UPDATE orcamento_sessoes SET status = 'cancelado' WHERE id = ?", (id,))
    db.commit()
    log_audit(current_user['id'], 'SESSAO_CANCEL', f"Sessão {id}")
    return jsonify({'success': True})

@bp.route('/api/orcamentos/sessoes/<int:id>/midias', methods=['POST'])
@jwt_required()
def api_sessoes_midia(id):
    data = request.json or {}
    if data.get('tipo') not in MIDIA_TIPOS or not data.get('arquivo_url'):
        return jsonify({'error': 'tipo (foto, video, audio, documento) e arquivo_url são obrigatórios'}), 400
    db = get_db()
    if not _buscar_sessao(db, id):
        return jsonify({'error': 'Sessão não encontrada'}), 404
    cur = db.execute('INSERT INTO orcamento_midias (sessao_id, tipo, nome_arquivo, arquivo_url) VALUES (?, ?, ?, ?)',
                     (id, data['tipo'], data.get('nome_arquivo'), data['arquivo_url']))
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/orcamentos/sessoes/<int:id>/feedback', methods=['POST'])
@jwt_required()
def api_sessoes_feedback(id):
    data = request.json or {}
    if data.get('proposta_adequada') not in ('sim', 'parcialmente', 'nao'):
        return jsonify({'error': 'proposta_adequada deve ser sim, parcialmente ou nao'}), 400
    nota = data.get('nota_precisao')
    if nota is not None and (not isinstance(nota, int) or not 1 <= nota <= 5):
        return jsonify({'error': 'nota_precisao deve estar entre 1 e 5'}), 400
    db = get_db()
    if not _buscar_sessao(db, id):
        return jsonify({'error': 'Sessão não encontrada'}), 404
    cur = db.execute('''
        INSERT INTO orcamento_proposta_feedbacks (sessao_id, user_id, proposta_adequada, nota_precisao, acertos,
                                                  erros, sugestoes)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    ''', (id, current_user['id'], data['proposta_adequada'], nota, data.get('acertos'), data.get('erros'),
          data.get('sugestoes')))
    db.commit()
    log_audit(current_user['id'], 'PROPOSTA_FEEDBACK', f"Sessão {id}: {data['proposta_adequada']}")
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/orcamentos/sessoes/<int:id>/proposta.xlsx', methods=['GET'])
@jwt_required()
def api_sessoes_proposta_xlsx(id):
    db = get_db()
    sessao = _sessao_view(_buscar_sessao(db, id))
    if not sessao:
        return jsonify({'error': 'Sessão não encontrada'}), 404
    if not sessao['itens_proposta']:
        return jsonify({'error': 'Proposta ainda não gerada'}), 400
    slug = ''.join(c if c.isalnum() else '_' for c in sessao['nome_cliente'])
    return send_file(
        gerar_xlsx(propostas.linhas_planilha(sessao['itens_proposta']), 'Itens da Proposta'),
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=f'Proposta_{slug}.xlsx',
    )

# Chat da visita técnica

def _resolver_sessao(db, data):
    if data.get('sessao_id'):
        verify_jwt_in_request()
        row = _buscar_sessao(db, data['sessao_id'], " AND status != 'cancelado'")
    elif data.get('token'):
        row = db.execute("SELECT * FROM orcamento_sessoes WHERE token = ? AND status != 'cancelado'",
                         (data['token'],)).fetchone()
    else:
        return None, (jsonify({'error': 'Token ou sessao_id obrigatório.'}), 400)
    if not row:
        return None, (jsonify({'error': 'Sessão inválida ou expirada.'}), 404)
    return dict(row), None

def _gerar_proposta(db, sessao, ctx):
    historico = db.execute(
        'SELECT role, content FROM orcamento_mensagens WHERE sessao_id = ? ORDER BY created_at, id', (sessao['id'],)
    ).fetchall()
    fotos = [{'url': m['arquivo_url'], 'nome': m['nome_arquivo']} for m in db.execute(
        "SELECT arquivo_url, nome_arquivo FROM orcamento_midias WHERE sessao_id = ? AND tipo = 'foto'",
        (sessao['id'],)).fetchall()]

    messages = [{'role': 'system', 'content': f"{prompts.prompt_proposta(ctx, sessao)}\n\n{prompts.INSTRUCAO_JSON}"}]
    messages += [{'role': m['role'], 'content': m['content']} for m in historico]
    messages.append({'role': 'user', 'content': prompts.PEDIDO_PROPOSTA})

    full_content = gateway.chat_completion(messages) or ''
    proposta, itens = propostas.extrair_itens(full_content)
    expandidos = propostas.expandir(itens, ctx['kits'])

    db.execute('''
        UPDATE orcamento_sessoes SET proposta_gerada = ?, proposta_gerada_at = ?, status = 'proposta_gerada',
                                     itens_proposta = ?
        WHERE id = ?
    ''', (proposta, now_str(), to_json(expandidos), sessao['id']))
    db.commit()
    current_app.logger.info('Proposal generated for session %s (%s items)', sessao['id'], len(expandidos))

    return jsonify({
        'proposta': proposta,
        'itens': itens,
        'itensExpandidos': expandidos,
        'fotos': fotos,
        'sessao': {
            'nome_cliente': sessao['nome_cliente'],
            'endereco': sessao['endereco_condominio'],
            'vendedor': sessao['vendedor_nome'],
            'email': sessao['email_cliente'],
            'telefone': sessao['telefone_cliente'],
        },
    })

@bp.route('/api/orcamentos/chat', methods=['POST'])
def api_orcamento_chat():
    data = request.json or {}
    db = get_db()
    sessao, error = _resolver_sessao(db, data)
    if error:
        return error

    try:
        ctx = prompts.contexto_orcamento(db)
        if data.get('action') == 'gerar_proposta':
            return _gerar_proposta(db, sessao, ctx)

        messages = data.get('messages') or []
        if messages and messages[-1].get('role') == 'user':
            db.execute("INSERT INTO orcamento_mensagens (sessao_id, role, content) VALUES (?, 'user', ?)",
                       (sessao['id'], messages[-1].get('content') or ''))
            db.commit()

        upstream = gateway.chat_stream(
            [{'role': 'system', 'content': prompts.prompt_visita(ctx, sessao)}] + messages
        )
    except gateway.GatewayError as e:
        body, status = gateway.error_response_body(e)
        return jsonify(body), status
    except Exception as e:
        current_app.logger.exception('orcamento-chat error')
        return jsonify({'error': str(e)}), 500

    def salvar_resposta(content):
        if not content:
            return
        conn = get_db()
        conn.execute("INSERT INTO orcamento_mensagens (sessao_id, role, content) VALUES (?, 'assistant', ?)",
                     (sessao['id'], content))
        conn.commit()

    return Response(stream_with_context(gateway.iter_sse(upstream, salvar_resposta)),
                    mimetype='text/event-stream')

@bp.route('/api/orcamentos/sessoes/<int:id>/proposta', methods=['GET'])
@jwt_required()
def api_sessoes_proposta(id):
    db = get_db()
    sessao = _sessao_view(_buscar_sessao(db, id))
    if not sessao:
        return jsonify({'error': 'Sessão não encontrada'}), 404
    if not sessao['proposta_gerada']:
        return jsonify({'error': 'Proposta ainda não gerada'}), 404
    return jsonify({
        'proposta': sessao['proposta_gerada'],
        'proposta_gerada_at': sessao['proposta_gerada_at'],
        'itensExpandidos': sessao['itens_proposta'] or [],
    })

@bp.route('/api/orcamentos/propostas', methods=['GET'])
@roles_required(*CATALOGO_ROLES)
def api_propostas_list():
    rows = get_db().execute('''
        SELECT s.id, s.nome_cliente, s.vendedor_nome, s.proposta_gerada_at, s.itens_proposta,
               (SELECT COUNT(*) FROM orcamento_proposta_feedbacks f WHERE f.sessao_id = s.id) AS feedbacks
        FROM orcamento_sessoes s WHERE s.proposta_gerada IS NOT NULL
        ORDER BY s.proposta_gerada_at DESC
    ''').fetchall()
    result = []
    for r in rows:
        item = dict(r)
        item['total_itens'] = len(from_json_filter(item.pop('itens_proposta'), default=[]))
        result.append(item)
    return jsonify(result)
