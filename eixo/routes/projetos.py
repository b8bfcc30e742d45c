from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import (STATUS_LABELS, ENGINEERING_STATUS_LABELS, SALE_STATUS_LABELS,
                            IMPLANTACAO_STATUS_LABELS, ATTACHMENT_TYPE_LABELS)
from eixo.database import get_db, log_audit, get_setting
from eixo.decorators import roles_required
from eixo.services import change_tracking, mailer, prazos
from eixo.services.notificacoes import notificar
from eixo.utils import contains, ilike, row_to_dict, rows_to_dicts, to_json, now_str

bp = Blueprint('projetos', __name__)

PROJECT_FIELDS = ['cliente_condominio_nome', 'cliente_cidade', 'cliente_estado', 'endereco_condominio',
                  'numero_unidades', 'prazo_entrega_projeto', 'data_assembleia', 'observacoes']

TAP_FIELDS = ['portaria_virtual_atendimento_app', 'numero_blocos', 'interfonia',
              'controle_acessos_pedestre_descricao', 'controle_acessos_veiculo_descricao',
              'alarme_descricao', 'cftv_dvr_descricao', 'cftv_elevador_possui',
              'marcacao_croqui_confirmada', 'marcacao_croqui_itens', 'info_custo',
              'info_cronograma', 'info_adicionais']

SALE_FIELDS = ['produto', 'modalidade_portaria', 'qtd_apartamentos', 'qtd_blocos', 'qtd_portas_pedestre',
               'qtd_portas_bloco', 'qtd_portoes_deslizantes', 'qtd_portoes_pivotantes',
               'qtd_portoes_basculantes', 'metodo_acionamento_portoes', 'cftv_novo_qtd_total_cameras',
               'cftv_novo_qtd_dvr_4ch', 'cftv_novo_qtd_dvr_8ch', 'cftv_novo_qtd_dvr_16ch', 'cftv_elevador',
               'possui_cancela', 'cancela_qtd_sentido_unico', 'cancela_qtd_duplo_sentido',
               'possui_catraca', 'catraca_qtd_sentido_unico', 'catraca_qtd_duplo_sentido',
               'possui_totem', 'totem_qtd_simples', 'totem_qtd_duplo', 'alarme_tipo',
               'internet_exclusiva', 'observacoes']

STAFF_ROLES = ('admin', 'projetos', 'gerente_comercial')
ENGINEERING_ROLES = ('admin', 'projetos')
IMPLANTACAO_ROLES = ('admin', 'implantacao', 'supervisor_operacoes')
VENDEDOR_ENVIO_DE = ('RASCUNHO', 'PENDENTE_INFO')

ENGINEERING_TIMESTAMPS = {
    'EM_RECEBIMENTO': 'engineering_received_at',
    'EM_PRODUCAO': 'engineering_production_at',
    'CONCLUIDO': 'engineering_completed_at',
}


def _tap_values(tap):
    values = []
    for f in TAP_FIELDS:
        value = tap.get(f)
        if f == 'marcacao_croqui_itens':
            value = to_json(value) if isinstance(value, list) else value
        elif f in ('interfonia', 'marcacao_croqui_confirmada'):
            value = 1 if value else 0
        values.append(value)
    return values

def _tap_dict(row):
    tap = row_to_dict(row, json_fields=('marcacao_croqui_itens',))
    if tap:
        tap['interfonia'] = bool(tap['interfonia'])
        tap['marcacao_croqui_confirmada'] = bool(tap['marcacao_croqui_confirmada'])
    return tap

def _get_project(db, id):
    row = db.execute('SELECT * FROM projects WHERE id = ?', (id,)).fetchone()
    if not row:
        return None
    if current_user['role'] == 'vendedor' and row['created_by_user_id'] != current_user['id']:
        return None
    return dict(row)

def _save_tap(db, project_id, tap):
    existing = db.execute('SELECT id FROM tap_forms WHERE project_id = ?', (project_id,)).fetchone()
    if existing:
        sets = ', '.join(f'{f} = ?' for f in TAP_FIELDS)
        db.execute(f'UPDATE tap_forms SET {sets} WHERE project_id = ?', _tap_values(tap) + [project_id])
    else:
        cols = ', '.join(TAP_FIELDS)
        marks = ', '.join('?' for _ in TAP_FIELDS)
        db.execute(f'INSERT INTO tap_forms (project_id, {cols}) VALUES (?, {marks})',
                   [project_id] + _tap_values(tap))

def _record_status(db, project, to_status, reason=None):
    db.execute('''
        INSERT INTO project_status_history (project_id, from_status, to_status, reason, changed_by_user_id, changed_by_user_name)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (project['id'], project['status'], to_status, reason, current_user['id'], current_user['nome']))

def _notify_submitted(db, project):
    notificar(db, 'Novo projeto enviado',
              f"{project['cliente_condominio_nome']} enviado por {project['vendedor_nome']}",
              type='project_submitted', project_id=project['id'], for_role='projetos')

    recipients = get_setting('notificacao_projetos_emails')
    if recipients:
        to = [e.strip() for e in recipients.split(',') if e.strip()]
    else:
        to = [r['email'] for r in db.execute(
            "SELECT email FROM users WHERE role = 'projetos' AND is_active = 1").fetchall()]
    if not to:
        return False
    subject, html = mailer.submitted_email(project)
    try:
        mailer.send_email(to, subject, html, text='Novo projeto enviado')
    except mailer.EmailError as e:
        current_app.logger.warning('Submitted email not sent for project %s: %s', project['id'], e)
        return False
    return True

def _send_status_email(project, new_status, reason):
    subject, html = mailer.status_email(project['vendedor_nome'], project['cliente_condominio_nome'],
                                        project['id'], new_status, current_user['nome'], reason)
    try:
        mailer.send_email(project['vendedor_email'], subject, html)
    except mailer.EmailError as e:
        current_app.logger.warning('Status email not sent for project %s: %s', project['id'], e)
        return False
    return True

@bp.route('/api/projetos', methods=['GET'])
@jwt_required()
def api_projetos_list():
    db = get_db()
    query = 'SELECT * FROM projects WHERE 1=1'
    params = []
    if current_user['role'] == 'vendedor':
        query += ' AND created_by_user_id = ?'
        params.append(current_user['id'])
    for arg in ('status', 'engineering_status', 'sale_status', 'implantacao_status'):
        if request.args.get(arg):
            query += f' AND {arg} = ?'
            params.append(request.args[arg])
    if request.args.get('vendedor'):
        query += ' AND vendedor_email = ?'
        params.append(request.args['vendedor'])
    if request.args.get('q'):
        query += ' AND ' + ilike('cliente_condominio_nome', 'cliente_cidade')
        params.extend([contains(request.args['q'])] * 2)
    query += ' ORDER BY created_at DESC, id DESC'

    projects = rows_to_dicts(db.execute(query, params).fetchall())
    for p in projects:
        p['status_label'] = STATUS_LABELS.get(p['status'], p['status'])
        p.pop('dados_originais_pre_reenvio', None)
    return jsonify(projects)

@bp.route('/api/projetos', methods=['POST'])
@jwt_required()
def api_projetos_create():
    data = request.json or {}
    if not (data.get('cliente_condominio_nome') or '').strip():
        return jsonify({'error': 'Nome do condomínio é obrigatório'}), 400
    status = data.get('status', 'RASCUNHO')
    if status not in ('RASCUNHO', 'ENVIADO'):
        return jsonify({'error': 'Status inicial deve ser RASCUNHO ou ENVIADO'}), 400

    db = get_db()
    try:
        numero = db.execute('SELECT COALESCE(MAX(numero_projeto), 0) + 1 AS n FROM projects').fetchone()['n']
        cur = db.execute(f'''
            INSERT INTO projects (numero_projeto, created_by_user_id, vendedor_nome, vendedor_email, status,
                                  {", ".join(PROJECT_FIELDS)})
            VALUES (?, ?, ?, ?, ?, {", ".join("?" for _ in PROJECT_FIELDS)})
        ''', [numero, current_user['id'], current_user['nome'], current_user['email'], status]
             + [data.get(f) for f in PROJECT_FIELDS])
        project_id = cur.lastrowid
        if data.get('tap_form'):
            _save_tap(db, project_id, data['tap_form'])

        db.execute('''
            INSERT INTO project_status_history (project_id, from_status, to_status, changed_by_user_id, changed_by_user_name)
            VALUES (?, NULL, ?, ?, ?)
        ''', (project_id, status, current_user['id'], current_user['nome']))
        project = dict(db.execute('SELECT * FROM projects WHERE id = ?', (project_id,)).fetchone())
        if status == 'ENVIADO':
            _notify_submitted(db, project)
        db.commit()
        log_audit(current_user['id'], 'PROJECT_CREATE', f"Created project #{numero}")
        return jsonify({'success': True, 'id': project_id, 'numero_projeto': numero}), 201
    except Exception as e:
        current_app.logger.exception('Error creating project')
        return jsonify({'success': False, 'error': str(e)}), 500

@bp.route('/api/projetos/<int:id>', methods=['GET'])
@jwt_required()
def api_projeto_detail(id):
    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404

    tap = _tap_dict(db.execute('SELECT * FROM tap_forms WHERE project_id = ?', (id,)).fetchone())
    sale = row_to_dict(db.execute('SELECT * FROM sale_forms WHERE project_id = ?', (id,)).fetchone())

    comments_query = 'SELECT * FROM project_comments WHERE project_id = ?'
    if current_user['role'] == 'vendedor':
        comments_query += ' AND is_internal = 0'
    comments = rows_to_dicts(db.execute(comments_query + ' ORDER BY created_at, id', (id,)).fetchall())
    attachments = rows_to_dicts(db.execute(
        'SELECT * FROM project_attachments WHERE project_id = ? ORDER BY created_at, id', (id,)).fetchall())
    for a in attachments:
        a['tipo_label'] = ATTACHMENT_TYPE_LABELS.get(a['tipo'], a['tipo'])
    history = rows_to_dicts(db.execute(
        'SELECT * FROM project_status_history WHERE project_id = ? ORDER BY created_at, id', (id,)).fetchall())
    summary = db.execute(
        'SELECT summary, created_at FROM project_ai_summaries WHERE project_id = ? ORDER BY id DESC LIMIT 1', (id,)
    ).fetchone()

    engineering_due = prazos.prazo_engenharia(
        project['engineering_status'],
        project.get(ENGINEERING_TIMESTAMPS.get(project['engineering_status'], ''), None),
    )

    project['changed_fields'] = change_tracking.changed_fields(project, tap)
    project['status_label'] = STATUS_LABELS.get(project['status'], project['status'])
    project['tap_form'] = tap
    project['sale_form'] = sale
    project['comments'] = comments
    project['attachments'] = attachments
    project['status_history'] = history
    project['ai_summary'] = dict(summary) if summary else None
    project['engineering_due_at'] = engineering_due.strftime('%Y-%m-%d %H:%M:%S') if engineering_due else None
    project.pop('dados_originais_pre_reenvio', None)
    return jsonify(project)

@bp.route('/api/projetos/<int:id>', methods=['PUT'])
@jwt_required()
def api_projeto_update(id):
    data = request.json or {}
    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404
    if project['status'] in ('APROVADO_PROJETO', 'CANCELADO') and current_user['role'] != 'admin':
        return jsonify({'error': 'Projeto encerrado não pode ser editado'}), 400

    resend = bool(data.get('reenviar')) and project['status'] == 'PENDENTE_INFO'
    try:
        if resend:
            # Foto do projeto antes da edição, para destacar o que mudou no reenvio
            tap = _tap_dict(db.execute('SELECT * FROM tap_forms WHERE project_id = ?', (id,)).fetchone())
            db.execute('UPDATE projects SET dados_originais_pre_reenvio = ? WHERE id = ?',
                       (to_json(change_tracking.snapshot(project, tap)), id))

        updates = []
        params = []
        for field in PROJECT_FIELDS:
            if field in data:
                updates.append(f'{field} = ?')
                params.append(data[field])
        if updates:
            params.append(id)
            db.execute(f'UPDATE projects SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?', params)
        if 'tap_form' in data and data['tap_form'] is not None:
            _save_tap(db, id, data['tap_form'])

        if resend:
            _record_status(db, project, 'ENVIADO', data.get('reason') or 'Reenviado com as informações solicitadas')
            db.execute("UPDATE projects SET status = 'ENVIADO' WHERE id = ?", (id,))
            notificar(db, 'Projeto reenviado', f"{project['cliente_condominio_nome']} foi reenviado pelo vendedor",
                      type='project_resubmitted', project_id=id, for_role='projetos')
        db.commit()
        log_audit(current_user['id'], 'PROJECT_UPDATE', f"Updated project {id}")
        return jsonify({'success': True, 'status': 'ENVIADO' if resend else project['status']})
    except Exception as e:
        current_app.logger.exception('Error updating project %s', id)
        return jsonify({'success': False, 'error': str(e)}), 500

@bp.route('/api/projetos/<int:id>/status', methods=['POST'])
@jwt_required()
def api_projeto_status(id):
    data = request.json or {}
    new_status = data.get('status')
    reason = (data.get('reason') or '').strip() or None
    if new_status not in STATUS_LABELS:
        return jsonify({'error': 'Status inválido'}), 400
    if current_user['role'] not in STAFF_ROLES and new_status != 'ENVIADO':
        return jsonify({'error': 'Unauthorized'}), 403
    if new_status == 'PENDENTE_INFO' and not reason:
        return jsonify({'error': 'Informe quais informações estão pendentes'}), 400

    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404
    if project['status'] == new_status:
        return jsonify({'success': True, 'status': new_status, 'email_sent': False})
    if current_user['role'] not in STAFF_ROLES and project['status'] not in VENDEDOR_ENVIO_DE:
        return jsonify({'error': f"Projeto {STATUS_LABELS[project['status']]} não pode ser reenviado"}), 400

    _record_status(db, project, new_status, reason)
    db.execute('UPDATE projects SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?', (new_status, id))
    if new_status == 'ENVIADO' and project['status'] == 'RASCUNHO':
        _notify_submitted(db, {**project, 'status': new_status})
    if new_status == 'APROVADO_PROJETO' and not project['engineering_status']:
        db.execute('''
            UPDATE projects SET engineering_status = 'EM_RECEBIMENTO', engineering_received_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (id,))
    if project['created_by_user_id'] and project['created_by_user_id'] != current_user['id']:
        notificar(db, f"Projeto {STATUS_LABELS[new_status]}",
                  f"{project['cliente_condominio_nome']}: {reason or STATUS_LABELS[new_status]}",
                  type='status_change', project_id=id, for_user_id=project['created_by_user_id'])
    db.commit()
    log_audit(current_user['id'], 'PROJECT_STATUS', f"Project {id}: {project['status']} -> {new_status}")

    email_sent = False
    if current_user['email'] != project['vendedor_email']:
        email_sent = _send_status_email(project, new_status, reason)
    return jsonify({'success': True, 'status': new_status, 'email_sent': email_sent})

@bp.route('/api/projetos/<int:id>/engenharia', methods=['POST'])
@roles_required(*ENGINEERING_ROLES)
def api_projeto_engenharia(id):
    data = request.json or {}
    status = data.get('engineering_status')
    if status not in ENGINEERING_STATUS_LABELS:
        return jsonify({'error': 'Status de engenharia inválido'}), 400

    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404

    now = now_str()
    sets = ['engineering_status = ?']
    params = [status]
    if status in ENGINEERING_TIMESTAMPS:
        sets.append(f'{ENGINEERING_TIMESTAMPS[status]} = ?')
        params.append(now)
    if 'laudo_projeto' in data:
        sets.append('laudo_projeto = ?')
        params.append(data['laudo_projeto'])
    params.append(id)
    db.execute(f'UPDATE projects SET {", ".join(sets)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?', params)

    if project['created_by_user_id']:
        notificar(db, f"Engenharia: {ENGINEERING_STATUS_LABELS[status]}",
                  f"{project['cliente_condominio_nome']} agora está {ENGINEERING_STATUS_LABELS[status]}",
                  type='engineering_status', project_id=id, for_user_id=project['created_by_user_id'])
    db.commit()
    log_audit(current_user['id'], 'PROJECT_ENGINEERING', f"Project {id} engineering -> {status}")

    due = prazos.prazo_engenharia(status, now)
    return jsonify({
        'success': True,
        'engineering_status': status,
        'engineering_due_at': due.strftime('%Y-%m-%d %H:%M:%S') if due else None,
    })

@bp.route('/api/projetos/<int:id>/comentarios', methods=['POST'])
@jwt_required()
def api_projeto_comentario(id):
    data = request.json or {}
    texto = (data.get('texto') or '').strip()
    if not texto:
        return jsonify({'error': 'Comentário vazio'}), 400

    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404

    # Vendedor não cria comentários internos
    is_internal = 1 if data.get('is_internal') and current_user['role'] != 'vendedor' else 0
    cur = db.execute('''
        INSERT INTO project_comments (project_id, user_id, user_name, user_role, texto, is_internal)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (id, current_user['id'], current_user['nome'], current_user['role'], texto, is_internal))
    if not is_internal and project['created_by_user_id'] and project['created_by_user_id'] != current_user['id']:
        notificar(db, 'Novo comentário', f"{current_user['nome']} comentou em {project['cliente_condominio_nome']}",
                  type='comment', project_id=id, for_user_id=project['created_by_user_id'])
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/projetos/<int:id>/anexos', methods=['POST'])
@jwt_required()
def api_projeto_anexo(id):
    data = request.json or {}
    if data.get('tipo') not in ATTACHMENT_TYPE_LABELS:
        return jsonify({'error': 'Tipo de anexo inválido'}), 400
    if not data.get('nome_arquivo') or not data.get('arquivo_url'):
        return jsonify({'error': 'nome_arquivo e arquivo_url são obrigatórios'}), 400

    db = get_db()
    if not _get_project(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    cur = db.execute('''
        INSERT INTO project_attachments (project_id, tipo, nome_arquivo, arquivo_url, tamanho, uploaded_by_user_id)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', (id, data['tipo'], data['nome_arquivo'], data['arquivo_url'], data.get('tamanho'), current_user['id']))
    db.commit()
    return jsonify({'success': True, 'id': cur.lastrowid}), 201

@bp.route('/api/projetos/<int:id>/anexos/<int:anexo_id>', methods=['DELETE'])
@jwt_required()
def api_projeto_anexo_delete(id, anexo_id):
    db = get_db()
    if not _get_project(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    cur = db.execute('DELETE FROM project_attachments WHERE id = ? AND project_id = ?', (anexo_id, id))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Anexo não encontrado'}), 404
    log_audit(current_user['id'], 'PROJECT_ATTACHMENT_DELETE', f"Project {id} attachment {anexo_id}")
    return jsonify({'success': True})

@bp.route('/api/projetos/<int:id>/venda', methods=['PUT'])
@jwt_required()
def api_projeto_venda(id):
    data = request.json or {}
    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404
    if project['status'] != 'APROVADO_PROJETO':
        return jsonify({'error': 'O formulário de venda só pode ser preenchido após a aprovação do projeto'}), 400
    if project['sale_locked_at']:
        return jsonify({'error': 'Venda já concluída; formulário bloqueado'}), 400

    values = [data.get(f) for f in SALE_FIELDS]
    try:
        existing = db.execute('SELECT id FROM sale_forms WHERE project_id = ?', (id,)).fetchone()
        if existing:
            sets = ', '.join(f'{f} = ?' for f in SALE_FIELDS)
            db.execute(f'UPDATE sale_forms SET {sets}, updated_at = CURRENT_TIMESTAMP WHERE project_id = ?',
                       values + [id])
        else:
            db.execute(f'''
                INSERT INTO sale_forms (project_id, {", ".join(SALE_FIELDS)})
                VALUES (?, {", ".join("?" for _ in SALE_FIELDS)})
            ''', [id] + values)
        db.execute("UPDATE projects SET sale_status = 'EM_ANDAMENTO', updated_at = CURRENT_TIMESTAMP WHERE id = ?", (id,))
        db.commit()
        log_audit(current_user['id'], 'SALE_FORM_SAVE', f"Project {id}")
        return jsonify({'success': True, 'sale_status': 'EM_ANDAMENTO'})
    except Exception as e:
        current_app.logger.exception('Error saving sale form for project %s', id)
        return jsonify({'success': False, 'error': str(e)}), 500

@bp.route('/api/projetos/<int:id>/venda/concluir', methods=['POST'])
@jwt_required()
def api_projeto_venda_concluir(id):
    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404
    if not db.execute('SELECT 1 FROM sale_forms WHERE project_id = ?', (id,)).fetchone():
        return jsonify({'error': 'Preencha o formulário de venda antes de concluir'}), 400
    if project['sale_locked_at']:
        return jsonify({'error': 'Venda já concluída'}), 400

    db.execute('''
        UPDATE projects SET sale_status = 'CONCLUIDO', sale_locked_at = CURRENT_TIMESTAMP,
                            implantacao_status = 'A_EXECUTAR', updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    ''', (id,))
    notificar(db, 'Nova venda para implantação', f"{project['cliente_condominio_nome']} pronto para implantação",
              type='sale_completed', project_id=id, for_role='implantacao')
    db.commit()
    log_audit(current_user['id'], 'SALE_COMPLETE', f"Project {id}")
    return jsonify({'success': True, 'sale_status': 'CONCLUIDO', 'sale_status_label': SALE_STATUS_LABELS['CONCLUIDO'],
                    'implantacao_status': 'A_EXECUTAR'})

@bp.route('/api/projetos/<int:id>/implantacao', methods=['POST'])
@roles_required(*IMPLANTACAO_ROLES)
def api_projeto_implantacao(id):
    data = request.json or {}
    status = data.get('implantacao_status')
    if status not in IMPLANTACAO_STATUS_LABELS:
        return jsonify({'error': 'Status de implantação inválido'}), 400

    db = get_db()
    project = _get_project(db, id)
    if not project:
        return jsonify({'error': 'Projeto não encontrado'}), 404
    if project['sale_status'] != 'CONCLUIDO':
        return jsonify({'error': 'Implantação só começa após a venda concluída'}), 400

    sets = ['implantacao_status = ?']
    if status == 'EM_EXECUCAO' and not project['implantacao_started_at']:
        sets.append('implantacao_started_at = CURRENT_TIMESTAMP')
    if status == 'CONCLUIDO_IMPLANTACAO':
        sets.append('implantacao_completed_at = CURRENT_TIMESTAMP')
    db.execute(f'UPDATE projects SET {", ".join(sets)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?', (status, id))
    db.commit()
    log_audit(current_user['id'], 'IMPLANTACAO_STATUS', f"Project {id} -> {status}")
    return jsonify({'success': True, 'implantacao_status': status})
