from datetime import date, datetime, timedelta

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required, current_user

from eixo.constants import STATUS_LABELS, ENGINEERING_STATUS_LABELS
from eixo.database import get_db
from eixo.services import estoque_view, nps, prazos

bp = Blueprint('dashboard', __name__)

ENGINEERING_STARTED_AT = {
    'EM_RECEBIMENTO': 'engineering_received_at',
    'EM_PRODUCAO': 'engineering_production_at',
}


def engenharia_atrasados(projects, agora=None):
    agora = agora or datetime.now()
    atrasados = []
    for p in projects:
        coluna = ENGINEERING_STARTED_AT.get(p['engineering_status'])
        if not coluna:
            continue
        due = prazos.prazo_engenharia(p['engineering_status'], p[coluna])
        if due and due < agora:
            atrasados.append({'id': p['id'], 'cliente_condominio_nome': p['cliente_condominio_nome'],
                              'engineering_status': p['engineering_status'],
                              'engineering_due_at': due.strftime('%Y-%m-%d %H:%M:%S')})
    return atrasados

@bp.route('/api/dashboard', methods=['GET'])
@jwt_required()
def api_dashboard():
    db = get_db()

    project_filter = ''
    params = []
    if current_user['role'] == 'vendedor':
        project_filter = 'WHERE created_by_user_id = ?'
        params.append(current_user['id'])

    por_status = {s: 0 for s in STATUS_LABELS}
    por_engenharia = {s: 0 for s in ENGINEERING_STATUS_LABELS}
    projects = [dict(r) for r in db.execute(f'''
        SELECT id, cliente_condominio_nome, status, engineering_status, engineering_received_at,
               engineering_production_at
        FROM projects {project_filter}
    ''', params).fetchall()]
    for p in projects:
        por_status[p['status']] = por_status.get(p['status'], 0) + 1
        if p['engineering_status']:
            por_engenharia[p['engineering_status']] = por_engenharia.get(p['engineering_status'], 0) + 1

    chamados_abertos = db.execute(
        "SELECT COUNT(*) AS n FROM manutencao_chamados WHERE status IN ('AGENDADO', 'EM_ANDAMENTO', 'REAGENDADO')"
    ).fetchone()['n']

    items = db.execute('SELECT id, codigo, modelo FROM estoque_itens').fetchall()
    locais = [dict(l) for l in db.execute('SELECT * FROM locais_estoque').fetchall()]
    niveis = db.execute('SELECT id, item_id, local_estoque_id, estoque_minimo, estoque_atual FROM estoque').fetchall()
    estoque_stats = estoque_view.estatisticas(estoque_view.agrupar(items, locais, niveis))

    pendencias = [dict(r) for r in db.execute(
        'SELECT status, setor, data_abertura, data_prazo, data_conclusao FROM manutencao_pendencias').fetchall()]
    resumo = prazos.resumo_pendencias(pendencias)

    desde = (date.today() - timedelta(days=30)).isoformat()
    notas = [r['nota'] for r in db.execute(
        'SELECT nota FROM customer_nps WHERE date(COALESCE(data_pesquisa, created_at)) >= date(?)', (desde,)
    ).fetchall()]

    atrasados = engenharia_atrasados(projects)
    return jsonify({
        'projetos': {
            'total': len(projects),
            'por_status': por_status,
            'por_engenharia': por_engenharia,
            'engenharia_atrasados': len(atrasados),
            'engenharia_atrasados_lista': atrasados,
        },
        'manutencao': {
            'chamados_abertos': chamados_abertos,
            'pendencias_abertas': resumo['abertas'],
            'pendencias_atrasadas': resumo['atrasadas'],
        },
        'estoque': {
            'itens_criticos': estoque_stats['critico'],
            'total_itens': estoque_stats['total'],
        },
        'nps_30_dias': nps.resumo(notas),
    })
