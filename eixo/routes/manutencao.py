from datetime import date, timedelta

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import (CHAMADO_TIPO_LABELS, CHAMADO_STATUS_LABELS, PENDENCIA_STATUS_LABELS,
                            PENDENCIA_TIPOS, FREQUENCIAS)
from eixo.database import get_db, log_audit
from eixo.services import prazos
from eixo.services.notificacoes import notificar_manutencao
from eixo.utils import contains, ilike, row_to_dict, rows_to_dicts, from_json_filter, to_json, now_str, parse_iso

bp = Blueprint('manutencao', __name__)

CHAMADO_FIELDS = ['customer_id', 'contrato', 'razao_social', 'praca', 'tipo', 'descricao', 'data_agendada',
                  'tecnico_responsavel', 'observacoes_conclusao']
AGENDA_FIELDS = ['customer_id', 'contrato', 'razao_social', 'praca', 'frequencia', 'proxima_execucao',
                 'descricao', 'tecnico_responsavel', 'ativo']


def _historico_entry(acao, status=None, observacao=None):
    return {
        'data': now_str(),
        'acao': acao,
        'status': status,
        'usuario': current_user['nome'],
        'observacao': observacao,
    }

def _data_execucao(value):
    """'YYYY-MM-DD' da data informada, ou None se não for uma data ISO."""
    try:
        parsed = parse_iso(value)
    except (TypeError, ValueError):
        return None
    return parsed.date().isoformat() if parsed else None

# Chamados

@bp.route('/api/manutencao/chamados', methods=['GET'])
@jwt_required()
def api_chamados_list():
    db = get_db()
    query = 'SELECT * FROM manutencao_chamados WHERE 1=1'
    params = []
    for arg in ('status', 'tipo', 'praca'):
        if request.args.get(arg):
            query += f' AND {arg} = ?'
            params.append(request.args[arg])
    if request.args.get('contrato'):
        query += ' AND ' + ilike('contrato')
        params.append(contains(request.args['contrato']))
    if request.args.get('inicio'):
        query += ' AND date(data_agendada) >= date(?)'
        params.append(request.args['inicio'])
    if request.args.get('fim'):
        query += ' AND date(data_agendada) <= date(?)'
        params.append(request.args['fim'])
    query += ' ORDER BY data_agendada DESC, id DESC'

    chamados = rows_to_dicts(db.execute(query, params).fetchall(), json_fields=('historico',))
    for c in chamados:
        c['tipo_label'] = CHAMADO_TIPO_LABELS.get(c['tipo'], c['tipo'])
        c['status_label'] = CHAMADO_STATUS_LABELS.get(c['status'], c['status'])
    return jsonify(chamados)

@bp.route('/api/manutencao/chamados', methods=['POST'])
@jwt_required()
def api_chamados_create():
    data = request.json or {}
    if not (data.get('razao_social') or '').strip():
        return jsonify({'error': 'Razão social é obrigatória'}), 400
    if data.get('tipo') not in CHAMADO_TIPO_LABELS:
        return jsonify({'error': 'Tipo de chamado inválido'}), 400

    db = get_db()
    try:
        historico = [_historico_entry('Chamado criado', 'AGENDADO')]
        cur = db.execute(f'''
            INSERT INTO manutencao_chamados ({", ".join(CHAMADO_FIELDS)}, status, historico, created_by_user_id)
            VALUES ({", ".join("?" for _ in CHAMADO_FIELDS)}, 'AGENDADO', ?, ?)
        ''', [data.get(f) for f in CHAMADO_FIELDS] + [to_json(historico), current_user['id']])
        if data['tipo'] == 'CORRETIVO':
            notificar_manutencao(db, 'Novo chamado corretivo', f"{data['razao_social']}: {data.get('descricao') or ''}",
                                 chamado_id=cur.lastrowid, for_role='supervisor_operacoes')
        db.commit()
        log_audit(current_user['id'], 'CHAMADO_CREATE', f"Created chamado {cur.lastrowid}")
        return jsonify({'success': True, 'id': cur.lastrowid}), 201
    except Exception as e:
        current_app.logger.exception('Error creating chamado')
        return jsonify({'success': False, 'error': str(e)}), 500

@bp.route('/api/manutencao/chamados/<int:id>', methods=['PUT'])
@jwt_required()
def api_chamados_update(id):
    data = request.json or {}
    db = get_db()
    chamado = db.execute('SELECT * FROM manutencao_chamados WHERE id = ?', (id,)).fetchone()
    if not chamado:
        return jsonify({'error': 'Chamado não encontrado'}), 404
    if 'tipo' in data and data['tipo'] not in CHAMADO_TIPO_LABELS:
        return jsonify({'error': 'Tipo de chamado inválido'}), 400
    new_status = data.get('status')
    if new_status and new_status not in CHAMADO_STATUS_LABELS:
        return jsonify({'error': 'Status inválido'}), 400

    updates = []
    params = []
    for field in CHAMADO_FIELDS:
        if field in data:
            updates.append(f'{field} = ?')
            params.append(data[field])

    historico = from_json_filter(chamado['historico'], default=[])
    if new_status and new_status != chamado['status']:
        updates.append('status = ?')
        params.append(new_status)
        if new_status == 'EM_ANDAMENTO' and not chamado['data_inicio']:
            updates.append('data_inicio = CURRENT_TIMESTAMP')
        if new_status == 'CONCLUIDO':
            updates.append('data_conclusao = CURRENT_TIMESTAMP')
        historico.append(_historico_entry(f"Status alterado para {CHAMADO_STATUS_LABELS[new_status]}",
                                          new_status, data.get('observacao')))
    elif updates:
        historico.append(_historico_entry('Chamado atualizado', chamado['status'], data.get('observacao')))

    if not updates:
        return jsonify({'success': True})
    updates.append('historico = ?')
    params.append(to_json(historico))
    params.append(id)
    db.execute(f'UPDATE manutencao_chamados SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
               params)
    db.commit()
    log_audit(current_user['id'], 'CHAMADO_UPDATE', f"Updated chamado {id}")
    return jsonify({'success': True, 'historico': historico})

@bp.route('/api/manutencao/chamados/<int:id>', methods=['DELETE'])
@jwt_required()
def api_chamados_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM manutencao_chamados WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Chamado não encontrado'}), 404
    log_audit(current_user['id'], 'CHAMADO_DELETE', f"Deleted chamado {id}")
    return jsonify({'success': True})

# Agendas preventivas

@bp.route('/api/manutencao/agendas', methods=['GET'])
@jwt_required()
def api_agendas_list():
    db = get_db()
    query = 'SELECT * FROM manutencao_agendas_preventivas WHERE 1=1'
    params = []
    if request.args.get('ativo') is not None:
        query += ' AND ativo = ?'
        params.append(1 if request.args['ativo'] in ('1', 'true') else 0)
    if request.args.get('praca'):
        query += ' AND praca = ?'
        params.append(request.args['praca'])
    agendas = rows_to_dicts(db.execute(query + ' ORDER BY proxima_execucao', params).fetchall())
    for a in agendas:
        a['dias_restantes'] = prazos.dias_restantes(a['proxima_execucao'])
    return jsonify(agendas)

@bp.route('/api/manutencao/agendas', methods=['POST'])
@jwt_required()
def api_agendas_create():
    data = request.json or {}
    if not (data.get('razao_social') or '').strip():
        return jsonify({'error': 'Razão social é obrigatória'}), 400
    if data.get('frequencia') not in FREQUENCIAS:
        return jsonify({'error': 'Frequência inválida'}), 400
    if not data.get('proxima_execucao'):
        return jsonify({'error': 'Informe a data da próxima execução'}), 400
    proxima = _data_execucao(data['proxima_execucao'])
    if proxima is None:
        return jsonify({'error': 'Data da próxima execução inválida'}), 400

    db = get_db()
    values = [proxima if f == 'proxima_execucao' else data.get(f) for f in AGENDA_FIELDS]
    values[AGENDA_FIELDS.index('ativo')] = 0 if data.get('ativo') is False else 1
    cur = db.execute(f'''
        INSERT INTO manutencao_agendas_preventivas ({", ".join(AGENDA_FIELDS)})
        VALUES ({", ".join("?" for _ in AGENDA_FIELDS)})
    ''', values)
    db.commit()
    log_audit(current_user['id'], 'AGENDA_CREATE', f"Created agenda {cur.lastrowid}")
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/manutencao/agendas/<int:id>', methods=['PUT'])
@jwt_required()
def api_agendas_update(id):
    data = request.json or {}
    if 'frequencia' in data and data['frequencia'] not in FREQUENCIAS:
        return jsonify({'error': 'Frequência inválida'}), 400
    if 'proxima_execucao' in data:
        data['proxima_execucao'] = _data_execucao(data['proxima_execucao'])
        if data['proxima_execucao'] is None:
            return jsonify({'error': 'Data da próxima execução inválida'}), 400
    db = get_db()
    updates = []
    params = []
    for field in AGENDA_FIELDS:
        if field in data:
            updates.append(f'{field} = ?')
            params.append((1 if data[field] else 0) if field == 'ativo' else data[field])
    if not updates:
        return jsonify({'error': 'Nenhum campo para atualizar'}), 400
    params.append(id)
    cur = db.execute(f'UPDATE manutencao_agendas_preventivas SET {", ".join(updates)} WHERE id = ?', params)
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Agenda não encontrada'}), 404
    log_audit(current_user['id'], 'AGENDA_UPDATE', f"Updated agenda {id}")
    return jsonify({'success': True})

@bp.route('/api/manutencao/agendas/<int:id>', methods=['DELETE'])
@jwt_required()
def api_agendas_delete(id):
    db = get_db()
    cur = db.execute('DELETE FROM manutencao_agendas_preventivas WHERE id = ?', (id,))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Agenda não encontrada'}), 404
    log_audit(current_user['id'], 'AGENDA_DELETE', f"Deleted agenda {id}")
    return jsonify({'success': True})

@bp.route('/api/manutencao/agendas/<int:id>/executar', methods=['POST'])
@jwt_required()
def api_agendas_executar(id):
    db = get_db()
    agenda = db.execute('SELECT * FROM manutencao_agendas_preventivas WHERE id = ?', (id,)).fetchone()
    if not agenda:
        return jsonify({'error': 'Agenda não encontrada'}), 404
    if not agenda['ativo']:
        return jsonify({'error': 'Agenda inativa'}), 400

    execucao = parse_iso(agenda['proxima_execucao']).date()
    proxima = prazos.proxima_execucao(agenda['frequencia'], execucao)
    historico = [_historico_entry('Chamado preventivo gerado pela agenda', 'AGENDADO')]
    cur = db.execute('''
        INSERT INTO manutencao_chamados (customer_id, agenda_id, contrato, razao_social, praca, tipo, status,
                                         descricao, data_agendada, tecnico_responsavel, historico, created_by_user_id)
        VALUES (?, ?, ?, ?, ?, 'PREVENTIVO', 'AGENDADO', ?, ?, ?, ?, ?)
    ''', (agenda['customer_id'], id, agenda['contrato'], agenda['razao_social'], agenda['praca'],
          agenda['descricao'], execucao.isoformat(), agenda['tecnico_responsavel'], to_json(historico),
          current_user['id']))
    db.execute('UPDATE manutencao_agendas_preventivas SET ultima_execucao = ?, proxima_execucao = ? WHERE id = ?',
               (execucao.isoformat(), proxima.isoformat(), id))
    db.commit()
    log_audit(current_user['id'], 'AGENDA_EXECUTAR', f"Agenda {id} -> chamado {cur.lastrowid}")
    return jsonify({'success': True, 'chamado_id': cur.lastrowid, 'proxima_execucao': proxima.isoformat()})

@bp.route('/api/manutencao/agendas/vencendo', methods=['GET'])
@jwt_required()
def api_agendas_vencendo():
    dias = request.args.get('dias', 7, type=int)
    limite = date.today() + timedelta(days=dias)
    db = get_db()
    rows = db.execute('''
        SELECT * FROM manutencao_agendas_preventivas
        WHERE ativo = 1 AND date(proxima_execucao) <= date(?)
        ORDER BY proxima_execucao
    ''', (limite.isoformat(),)).fetchall()
    agendas = rows_to_dicts(rows)
    for a in agendas:
        a['dias_restantes'] = prazos.dias_restantes(a['proxima_execucao'])
    return jsonify(agendas)

# Pendências

def _pendencia_view(p):
    p['tipo_label'] = PENDENCIA_TIPOS[p['tipo']][0] if p['tipo'] in PENDENCIA_TIPOS else p['tipo']
    p['status_label'] = PENDENCIA_STATUS_LABELS.get(p['status'], p['status'])
    p['atrasada'] = prazos.atrasada(p)
    p['dias_restantes'] = prazos.dias_restantes(p['data_prazo']) if p['status'] not in prazos.FECHADAS else None
    return p

@bp.route('/api/manutencao/pendencias', methods=['GET'])
@jwt_required()
def api_pendencias_list():
    db = get_db()
    query = 'SELECT * FROM manutencao_pendencias WHERE 1=1'
    params = []
    for arg in ('status', 'tipo', 'setor'):
        if request.args.get(arg):
            query += f' AND {arg} = ?'
            params.append(request.args[arg])
    if request.args.get('q'):
        query += ' AND ' + ilike('razao_social', 'contrato', 'numero_os')
        params.extend([contains(request.args['q'])] * 3)
    pendencias = [_pendencia_view(p) for p in rows_to_dicts(
        db.execute(query + ' ORDER BY data_prazo, id', params).fetchall())]
    if request.args.get('atrasadas') == '1':
        pendencias = [p for p in pendencias if p['atrasada']]
    return jsonify(pendencias)

@bp.route('/api/manutencao/pendencias/resumo', methods=['GET'])
@jwt_required()
def api_pendencias_resumo():
    rows = rows_to_dicts(get_db().execute('SELECT * FROM manutencao_pendencias').fetchall())
    return jsonify(prazos.resumo_pendencias(rows))

@bp.route('/api/manutencao/pendencias', methods=['POST'])
@jwt_required()
def api_pendencias_create():
    data = request.json or {}
    tipo = data.get('tipo')
    if tipo not in PENDENCIA_TIPOS:
        return jsonify({'error': 'Tipo de pendência inválido'}), 400
    if not (data.get('razao_social') or '').strip() or not (data.get('descricao') or '').strip():
        return jsonify({'error': 'Razão social e descrição são obrigatórias'}), 400
    try:
        abertura = parse_iso(data.get('data_abertura') or now_str())
        prazo = prazos.prazo_pendencia(tipo, abertura, data.get('data_prazo'))
    except ValueError:
        return jsonify({'error': 'Data de abertura ou prazo inválida'}), 400
    setor = prazos.setor(tipo)

    db = get_db()
    cur = db.execute('''
        INSERT INTO manutencao_pendencias (customer_id, contrato, razao_social, numero_os, tipo, setor, sla_dias,
                                           descricao, status, data_abertura, data_prazo, created_by_user_id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'ABERTO', ?, ?, ?)
    ''', (data.get('customer_id'), data.get('contrato'), data['razao_social'], data.get('numero_os'), tipo, setor,
          prazos.sla_dias(tipo), data['descricao'], abertura.strftime('%Y-%m-%d %H:%M:%S'),
          prazo.strftime('%Y-%m-%d %H:%M:%S'), current_user['id']))
    notificar_manutencao(db, f'Nova pendência: {PENDENCIA_TIPOS[tipo][0]}',
                         f"{data['razao_social']} - prazo {prazo.strftime('%d/%m/%Y')}",
                         pendencia_id=cur.lastrowid, for_role='supervisor_operacoes')
    db.commit()
    log_audit(current_user['id'], 'PENDENCIA_CREATE', f"Created pendencia {cur.lastrowid} ({tipo})")
    return jsonify({'success': True, 'id': cur.lastrowid, 'setor': setor,
                    'data_prazo': prazo.strftime('%Y-%m-%d %H:%M:%S')}), 201

@bp.route('/api/manutencao/pendencias/<int:id>', methods=['GET'])
@jwt_required()
def api_pendencias_detail(id):
    db = get_db()
    pendencia = row_to_dict(db.execute('SELECT * FROM manutencao_pendencias WHERE id = ?', (id,)).fetchone())
    if not pendencia:
        return jsonify({'error': 'Pendência não encontrada'}), 404
    pendencia = _pendencia_view(pendencia)
    pendencia['comentarios'] = rows_to_dicts(db.execute(
        'SELECT * FROM manutencao_pendencias_comentarios WHERE pendencia_id = ? ORDER BY created_at, id', (id,)
    ).fetchall())
    return jsonify(pendencia)

@bp.route('/api/manutencao/pendencias/<int:id>/status', methods=['POST'])
@jwt_required()
def api_pendencias_status(id):
    data = request.json or {}
    status = data.get('status')
    if status not in PENDENCIA_STATUS_LABELS:
        return jsonify({'error': 'Status inválido'}), 400
    db = get_db()
    pendencia = db.execute('SELECT * FROM manutencao_pendencias WHERE id = ?', (id,)).fetchone()
    if not pendencia:
        return jsonify({'error': 'Pendência não encontrada'}), 404

    conclusao = now_str() if status == 'CONCLUIDO' else None
    db.execute('UPDATE manutencao_pendencias SET status = ?, data_conclusao = ? WHERE id = ?',
               (status, conclusao, id))
    if pendencia['created_by_user_id'] and pendencia['created_by_user_id'] != current_user['id']:
        notificar_manutencao(db, f'Pendência {PENDENCIA_STATUS_LABELS[status]}',
                             f"{pendencia['razao_social']}: {pendencia['descricao'][:80]}",
                             pendencia_id=id, for_user_id=pendencia['created_by_user_id'])
    db.commit()
    log_audit(current_user['id'], 'PENDENCIA_STATUS', f"Pendencia {id} -> {status}")
    return jsonify({'success': True, 'status': status, 'data_conclusao': conclusao})

@bp.route('/api/manutencao/pendencias/<int:id>/comentarios', methods=['POST'])
@jwt_required()
def api_pendencias_comentario(id):
    data = request.json or {}
    texto = (data.get('texto') or '').strip()
    if not texto:
        return jsonify({'error': 'Comentário vazio'}), 400
    db = get_db()
    if not db.execute('SELECT 1 FROM manutencao_pendencias WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Pendência não encontrada'}), 404
    cur = db.execute('''
        INSERT INTO manutencao_pendencias_comentarios (pendencia_id, user_id, user_name, texto) VALUES (?, ?, ?, ?)
    ''', (id, current_user['id'], current_user['nome'], texto))
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/manutencao/pendencias/<int:id>/comentario-sucesso', methods=['POST'])
@jwt_required()
def api_pendencias_comentario_sucesso(id):
    data = request.json or {}
    db = get_db()
    cur = db.execute('UPDATE manutencao_pendencias SET comentario_sucesso = ? WHERE id = ?',
                     ((data.get('comentario') or '').strip() or None, id))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Pendência não encontrada'}), 404
    log_audit(current_user['id'], 'PENDENCIA_COMENTARIO_SUCESSO', f"Pendencia {id}")
    return jsonify({'success': True})
