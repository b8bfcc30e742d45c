"""Pós-processamento da proposta gerada pela IA.

A resposta traz a proposta em markdown e, ao final, um bloco ```json com os
itens estruturados (kits, avulsos, aproveitados, serviços). Os kits são
expandidos nos produtos que os compõem para a planilha de itens.
"""
import json
import re

from flask import current_app

JSON_BLOCK = re.compile(r'```json\s*([\s\S]*?)```')

ORIGENS = {
    'avulsos': 'Avulso',
    'aproveitados': 'Aproveitado (50%)',
    'servicos': 'Serviço',
}


def extrair_itens(full_content):
    """
    Returns (proposta_sem_json, itens_estruturados | None).
    Se o bloco não for JSON válido, a proposta volta intacta.
    """
    match = JSON_BLOCK.search(full_content)
    if not match:
        return full_content, None
    try:
        itens = json.loads(match.group(1).strip())
    except ValueError as e:
        current_app.logger.error('Failed to parse structured items JSON: %s', e)
        return full_content, None
    proposta = JSON_BLOCK.sub('', full_content, count=1).strip()
    return proposta, itens

def encontrar_kit(kit, kits):
    # id_kit, depois nome normalizado, depois código
    if kit.get('id_kit'):
        for k in kits:
            if k.get('id_kit') == kit['id_kit']:
                return k
    if kit.get('nome'):
        nome = str(kit['nome']).strip().lower()
        for k in kits:
            if (k.get('nome') or '').strip().lower() == nome:
                return k
    if kit.get('codigo'):
        for k in kits:
            if k.get('codigo') == kit['codigo']:
                return k
    return None

def expandir(itens, kits):
    """
    itens: dict com kits/avulsos/aproveitados/servicos vindo da IA.
    kits: kits do catálogo, cada um com 'itens' = [{quantidade, produto: {...}}].
    """
    if not itens:
        return []

    expandidos = []
    for kit in itens.get('kits') or []:
        kit_data = encontrar_kit(kit, kits)
        if not kit_data:
            continue
        for ki in kit_data.get('itens') or []:
            prod = ki.get('produto')
            if not prod:
                continue
            expandidos.append({
                'nome': prod.get('nome'),
                'codigo': prod.get('codigo'),
                'categoria': prod.get('categoria'),
                'qtd': (ki.get('quantidade') or 0) * (kit.get('qtd') or 0),
                'valor_unitario': prod.get('preco_unitario'),
                'valor_locacao': prod.get('valor_locacao') or 0,
                'valor_instalacao': prod.get('valor_instalacao') or 0,
                'origem': f"Kit: {kit.get('nome')}",
            })

    for grupo, origem in ORIGENS.items():
        for item in itens.get(grupo) or []:
            expandidos.append({**item, 'origem': origem})

    return mesclar(expandidos)

def mesclar(expandidos):
    merged = {}
    for item in expandidos:
        key = f"{item.get('codigo') or item.get('nome')}_{item['origem']}"
        if key in merged:
            merged[key]['qtd'] = (merged[key].get('qtd') or 0) + (item.get('qtd') or 0)
        else:
            merged[key] = dict(item)
    return list(merged.values())

def linhas_planilha(expandidos):
    return [{
        'Origem': i.get('origem'),
        'Código': i.get('codigo'),
        'Item': i.get('nome'),
        'Categoria': i.get('categoria'),
        'Quantidade': i.get('qtd'),
        'Valor Locação (un)': i.get('valor_locacao') or 0,
        'Valor Instalação (un)': i.get('valor_instalacao') or 0,
        'Locação Total': round((i.get('valor_locacao') or 0) * (i.get('qtd') or 0), 2),
        'Instalação Total': round((i.get('valor_instalacao') or 0) * (i.get('qtd') or 0), 2),
    } for i in expandidos]
