"""Visão de estoque: cruza itens x locais e calcula o status de cada célula.

Funções puras sobre listas de dicts vindas das tabelas ``estoque_itens``,
``locais_estoque`` e ``estoque``.
"""
from ..constants import ESTOQUE_STATUS_LABELS


def status_local(minimo, atual):
    return 'CRITICO' if atual < minimo else 'OK'

def agrupar(items, locais, niveis):
    """
    Returns a list of:
    { id, codigo, modelo, estoques: { local_id: {id, minimo, atual, reposicao_sugerida, status} }, status_geral }
    """
    por_chave = {(n['item_id'], n['local_estoque_id']): n for n in niveis}
    result = []
    for item in items:
        estoques = {}
        tem_critico = False
        tem_base = False
        for local in locais:
            nivel = por_chave.get((item['id'], local['id']))
            if nivel:
                tem_base = True
                minimo = nivel['estoque_minimo'] or 0
                atual = nivel['estoque_atual'] or 0
                status = status_local(minimo, atual)
                if status == 'CRITICO':
                    tem_critico = True
                estoques[local['id']] = {
                    'id': nivel['id'],
                    'minimo': minimo,
                    'atual': atual,
                    'reposicao_sugerida': max(minimo - atual, 0),
                    'status': status,
                }
            else:
                estoques[local['id']] = {
                    'id': None,
                    'minimo': 0,
                    'atual': 0,
                    'reposicao_sugerida': 0,
                    'status': 'SEM_BASE',
                }

        if not tem_base:
            status_geral = 'SEM_BASE'
        elif tem_critico:
            status_geral = 'CRITICO'
        else:
            status_geral = 'OK'

        result.append({
            'id': item['id'],
            'codigo': item['codigo'],
            'modelo': item['modelo'],
            'estoques': estoques,
            'status_geral': status_geral,
        })
    return result

def filtrar_locais(locais, cidade=None, tipo=None):
    return [
        l for l in locais
        if (not cidade or l['cidade'] == cidade) and (not tipo or l['tipo'] == tipo)
    ]

def filtrar(agrupados, locais, cidade=None, tipo=None, status=None, busca=None):
    locais_filtrados = filtrar_locais(locais, cidade, tipo)
    considerados = locais_filtrados or locais
    termo = (busca or '').strip().lower()

    result = []
    for item in agrupados:
        if termo and termo not in item['codigo'].lower() and termo not in item['modelo'].lower():
            continue
        if status in ESTOQUE_STATUS_LABELS:
            statuses = [item['estoques'][l['id']]['status'] for l in considerados]
            if status == 'SEM_BASE':
                if not all(s == 'SEM_BASE' for s in statuses):
                    continue
            elif status not in statuses:
                continue
        result.append(item)
    return result

def criticos(agrupados, locais, cidade=None, tipo=None):
    """Itens com ao menos um local crítico entre os locais filtrados."""
    considerados = filtrar_locais(locais, cidade, tipo) or locais
    return [
        item for item in agrupados
        if any(item['estoques'][l['id']]['status'] == 'CRITICO' for l in considerados)
    ]

def estatisticas(agrupados):
    stats = {'total': len(agrupados), 'ok': 0, 'critico': 0, 'sem_base': 0}
    for item in agrupados:
        if item['status_geral'] == 'OK':
            stats['ok'] += 1
        elif item['status_geral'] == 'CRITICO':
            stats['critico'] += 1
        else:
            stats['sem_base'] += 1
    return stats

def linhas_criticas(agrupados, locais):
    """Achata os itens críticos em uma linha por local crítico dentre ``locais`` (para planilha)."""
    por_id = {l['id']: l for l in locais}
    linhas = []
    for item in agrupados:
        for local_id, celula in item['estoques'].items():
            local = por_id.get(local_id)
            if not local or celula['status'] != 'CRITICO':
                continue
            linhas.append({
                'Código': item['codigo'],
                'Modelo': item['modelo'],
                'Cidade': local['cidade'],
                'Tipo': local['tipo'],
                'Local': local['nome_local'],
                'Estoque Mínimo': celula['minimo'],
                'Estoque Atual': celula['atual'],
                'Reposição Sugerida': celula['reposicao_sugerida'],
            })
    return linhas
