import uuid
from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import CHECKLIST_TIPOS, ETAPAS_IMPLANTACAO, OPERACAO_ASSISTIDA_DIAS
from eixo.database import get_db, log_audit
from eixo.decorators import roles_required
from eixo.routes.projetos import IMPLANTACAO_ROLES
from eixo.utils import as_bool, now_str, row_to_dict, to_json

bp = Blueprint('implantacao', __name__)

ETAPA_FLAGS = [flag for _, flags in ETAPAS_IMPLANTACAO.values() for flag in flags]
ETAPA_TEXT_FIELDS = ['agendamento_visita_startup_data', 'agendamento_visita_comercial_data',
                     'laudo_visita_comercial_texto', 'operacao_assistida_inicio', 'operacao_assistida_fim',
                     'pesquisa_satisfacao_comentario', 'pesquisa_satisfacao_pontos_positivos',
                     'pesquisa_satisfacao_pontos_negativos', 'observacoes_manutencao']
# Etapas 1 a 9 contam para o progresso; a pesquisa de satisfação é posterior
ETAPAS_PROGRESSO = range(1, 10)


def _projeto(db, id):
    row = db.execute('SELECT id, created_by_user_id FROM projects WHERE id = ?', (id,)).fetchone()
    if not row:
        return None
    if current_user['role'] == 'vendedor' and row['created_by_user_id'] != current_user['id']:
        return None
    return row

# Checklists

def _itens_padrao(tipo):
    return [{'id': f'item-{i}', 'label': label, 'checked': False, 'observacao': ''}
            for i, label in enumerate(CHECKLIST_TIPOS[tipo][1])]

def _checklist_view(row):
    checklist = row_to_dict(row, json_fields=('dados', 'fotos'))
    checklist['titulo'] = CHECKLIST_TIPOS.get(checklist['tipo'], (checklist['tipo'],))[0]
    checklist['fotos'] = checklist['fotos'] or []
    return checklist

@bp.route('/api/projetos/<int:id>/implantacao/checklists', methods=['GET'])
@jwt_required()
def api_checklists_list(id):
    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    salvos = {r['tipo']: r for r in db.execute(
        'SELECT * FROM implantacao_checklists WHERE project_id = ?', (id,)).fetchall()}
    resumo = []
    for tipo, (titulo, _) in CHECKLIST_TIPOS.items():
        row = salvos.get(tipo)
        itens = _checklist_view(row)['dados']['items'] if row else []
        resumo.append({
            'tipo': tipo,
            'titulo': titulo,
            'preenchido': row is not None,
            'itens_marcados': sum(1 for i in itens if i.get('checked')),
            'total_itens': len(itens) if row else len(CHECKLIST_TIPOS[tipo][1]),
            'updated_at': row['updated_at'] if row else None,
        })
    return jsonify(resumo)

@bp.route('/api/projetos/<int:id>/implantacao/checklists/<tipo>', methods=['GET'])
@jwt_required()
def api_checklist_get(id, tipo):
    if tipo not in CHECKLIST_TIPOS:
        return jsonify({'error': 'Tipo de checklist inválido'}), 400
    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    row = db.execute('SELECT * FROM implantacao_checklists WHERE project_id = ? AND tipo = ?',
                     (id, tipo)).fetchone()
    if row:
        return jsonify(_checklist_view(row))
    # Ainda não salvo: itens padrão do tipo
    return jsonify({'id': None, 'project_id': id, 'tipo': tipo, 'titulo': CHECKLIST_TIPOS[tipo][0],
                    'dados': {'items': _itens_padrao(tipo)}, 'fotos': [], 'observacoes': None})

@bp.route('/api/projetos/<int:id>/implantacao/checklists/<tipo>', methods=['PUT'])
@roles_required(*IMPLANTACAO_ROLES)
def api_checklist_save(id, tipo):
    if tipo not in CHECKLIST_TIPOS:
        return jsonify({'error': 'Tipo de checklist inválido'}), 400
    data = request.json or {}
    itens = data.get('items', _itens_padrao(tipo))
    if not isinstance(itens, list) or not all(isinstance(i, dict) and i.get('label') for i in itens):
        return jsonify({'error': 'items deve ser uma lista de itens com label'}), 400
    fotos = data.get('fotos') or []
    if not isinstance(fotos, list) or not all(isinstance(f, str) for f in fotos):
        return jsonify({'error': 'fotos deve ser uma lista de URLs'}), 400

    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    dados = to_json({'items': [{**i, 'checked': bool(i.get('checked'))} for i in itens]})
    existing = db.execute('SELECT id FROM implantacao_checklists WHERE project_id = ? AND tipo = ?',
                          (id, tipo)).fetchone()
    if existing:
        db.execute('''
            UPDATE implantacao_checklists SET dados = ?, fotos = ?, observacoes = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (dados, to_json(fotos), data.get('observacoes'), existing['id']))
        status = 200
    else:
        db.execute('''
            INSERT INTO implantacao_checklists (project_id, tipo, dados, fotos, observacoes, created_by_user_id,
                                                created_by_name)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (id, tipo, dados, to_json(fotos), data.get('observacoes'), current_user['id'], current_user['nome']))
        status = 201
    db.commit()
    log_audit(current_user['id'], 'CHECKLIST_SAVE', f"Project {id}: {tipo}")
    row = db.execute('SELECT * FROM implantacao_checklists WHERE project_id = ? AND tipo = ?', (id, tipo)).fetchone()
    return jsonify(_checklist_view(row)), status

@bp.route('/api/projetos/<int:id>/implantacao/checklists/<tipo>', methods=['DELETE'])
@roles_required(*IMPLANTACAO_ROLES)
def api_checklist_delete(id, tipo):
    db = get_db()
    cur = db.execute('DELETE FROM implantacao_checklists WHERE project_id = ? AND tipo = ?', (id, tipo))
    db.commit()
    if cur.rowcount == 0:
        return jsonify({'error': 'Checklist não encontrado'}), 404
    log_audit(current_user['id'], 'CHECKLIST_DELETE', f"Project {id}: {tipo}")
    return jsonify({'success': True})

# Etapas

def _etapa_concluida(etapas, numero):
    if numero == 8:
        return len(etapas['operacao_assistida_interacoes']) > 0
    return all(etapas[flag] for flag in ETAPAS_IMPLANTACAO[numero][1])

def _etapas_view(row):
    etapas = row_to_dict(row, json_fields=('operacao_assistida_interacoes',))
    etapas['operacao_assistida_interacoes'] = etapas['operacao_assistida_interacoes'] or []
    for flag in ETAPA_FLAGS:
        etapas[flag] = bool(etapas[flag])
    if etapas['pesquisa_satisfacao_recomendaria'] is not None:
        etapas['pesquisa_satisfacao_recomendaria'] = bool(etapas['pesquisa_satisfacao_recomendaria'])
    lista = [{'numero': n, 'titulo': titulo, 'concluida': _etapa_concluida(etapas, n)}
             for n, (titulo, _) in ETAPAS_IMPLANTACAO.items()]
    etapas['progresso'] = {
        'etapas': lista,
        'concluidas': sum(1 for e in lista if e['concluida'] and e['numero'] in ETAPAS_PROGRESSO),
        'total': len(ETAPAS_PROGRESSO),
    }
    return etapas

def _get_or_create_etapas(db, id):
    row = db.execute('SELECT * FROM implantacao_etapas WHERE project_id = ?', (id,)).fetchone()
    if row:
        return row
    db.execute('INSERT INTO implantacao_etapas (project_id) VALUES (?)', (id,))
    db.commit()
    return db.execute('SELECT * FROM implantacao_etapas WHERE project_id = ?', (id,)).fetchone()

@bp.route('/api/projetos/<int:id>/implantacao/etapas', methods=['GET'])
@jwt_required()
def api_etapas_get(id):
    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    return jsonify(_etapas_view(_get_or_create_etapas(db, id)))

@bp.route('/api/projetos/<int:id>/implantacao/etapas', methods=['PUT'])
@roles_required(*IMPLANTACAO_ROLES)
def api_etapas_update(id):
    data = request.json or {}
    nota = data.get('pesquisa_satisfacao_nota')
    if nota is not None and (not isinstance(nota, int) or not 0 <= nota <= 10):
        return jsonify({'error': 'pesquisa_satisfacao_nota deve estar entre 0 e 10'}), 400
    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    atual = _get_or_create_etapas(db, id)

    updates = []
    params = []
    for flag in ETAPA_FLAGS:
        if flag in data:
            marcado = as_bool(data[flag])
            updates += [f'{flag} = ?', f'{flag}_at = ?']
            # Desmarcar limpa a data; remarcar mantém a original
            params += [1 if marcado else 0, (atual[f'{flag}_at'] or now_str()) if marcado else None]
    for field in ETAPA_TEXT_FIELDS:
        if field in data:
            updates.append(f'{field} = ?')
            params.append(data[field] or None)
    if 'pesquisa_satisfacao_nota' in data:
        updates.append('pesquisa_satisfacao_nota = ?')
        params.append(nota)
    if 'pesquisa_satisfacao_recomendaria' in data:
        value = data['pesquisa_satisfacao_recomendaria']
        updates.append('pesquisa_satisfacao_recomendaria = ?')
        params.append(None if value is None else (1 if as_bool(value) else 0))
    if not updates:
        return jsonify({'error': 'Nenhuma etapa para atualizar'}), 400

    params.append(id)
    db.execute(f'''
        UPDATE implantacao_etapas SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE project_id = ?
    ''', params)
    db.commit()
    log_audit(current_user['id'], 'ETAPAS_UPDATE', f"Project {id}: {', '.join(sorted(data))}")
    return jsonify(_etapas_view(_get_or_create_etapas(db, id)))

@bp.route('/api/projetos/<int:id>/implantacao/etapas/interacoes', methods=['POST'])
@roles_required(*IMPLANTACAO_ROLES)
def api_etapas_interacao(id):
    descricao = ((request.json or {}).get('descricao') or '').strip()
    if not descricao:
        return jsonify({'error': 'Descreva a interação'}), 400
    db = get_db()
    if not _projeto(db, id):
        return jsonify({'error': 'Projeto não encontrado'}), 404
    etapas = _etapas_view(_get_or_create_etapas(db, id))
    agora = datetime.now()
    interacoes = etapas['operacao_assistida_interacoes'] + [{
        'id': uuid.uuid4().hex,
        'data': agora.isoformat(timespec='seconds'),
        'descricao': descricao,
        'usuario': current_user['nome'] or 'Usuário',
    }]
    # Cada interação estende a operação assistida por mais OPERACAO_ASSISTIDA_DIAS
    db.execute('''
        UPDATE implantacao_etapas
        SET operacao_assistida_interacoes = ?, operacao_assistida_inicio = COALESCE(operacao_assistida_inicio, ?),
            operacao_assistida_fim = ?, updated_at = CURRENT_TIMESTAMP
        WHERE project_id = ?
    ''', (to_json(interacoes), agora.strftime('%Y-%m-%d %H:%M:%S'),
          (agora + timedelta(days=OPERACAO_ASSISTIDA_DIAS)).strftime('%Y-%m-%d %H:%M:%S'), id))
    db.commit()
    log_audit(current_user['id'], 'OPERACAO_ASSISTIDA', f"Project {id}: {len(interacoes)} interações")
    return jsonify(_etapas_view(_get_or_create_etapas(db, id))), 201
