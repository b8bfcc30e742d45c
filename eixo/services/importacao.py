"""Importação de posição de estoque exportada pelo ERP."""
import math

import pandas as pd
from flask import current_app

from ..constants import LOCATION_CODE_MAP


class ImportacaoError(Exception):
    pass


# Cabeçalhos aceitos na planilha do ERP -> chave interna
COLUMN_ALIASES = {
    'codigo': 'codigo', 'código': 'codigo', 'cod': 'codigo', 'cod. produto': 'codigo',
    'modelo': 'modelo', 'descricao': 'modelo', 'descrição': 'modelo', 'produto': 'modelo',
    'local': 'localCode', 'localcode': 'localCode', 'cod. local': 'localCode', 'local estoque': 'localCode',
    'estoque': 'estoque', 'saldo': 'estoque', 'quantidade': 'estoque', 'qtd': 'estoque',
}


def _clean_code(value):
    if value is None:
        return ''
    if isinstance(value, float):
        if math.isnan(value):
            return ''
        if value.is_integer():
            value = int(value)
    return str(value).strip()

def _to_number(value):
    if value is None or value == '':
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace('.', '').replace(',', '.') if ',' in value else value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number

def ler_planilha(file_storage):
    """
    Lê um .xlsx/.xls/.csv com colunas codigo, modelo, local e estoque.
    Returns a list of { codigo, modelo, localCode, estoque }.
    """
    filename = (file_storage.filename or '').lower()
    try:
        if filename.endswith('.csv'):
            df = pd.read_csv(file_storage, sep=None, engine='python', dtype=str)
        else:
            df = pd.read_excel(file_storage, dtype=str)
    except Exception as e:
        raise ImportacaoError(f'Não foi possível ler a planilha: {e}') from e

    rename = {}
    for col in df.columns:
        key = str(col).strip().lower()
        if key in COLUMN_ALIASES:
            rename[col] = COLUMN_ALIASES[key]
    df = df.rename(columns=rename)

    missing = {'codigo', 'localCode', 'estoque'} - set(df.columns)
    if missing:
        raise ImportacaoError(f"Colunas obrigatórias ausentes: {', '.join(sorted(missing))}")
    if 'modelo' not in df.columns:
        df['modelo'] = None

    df = df.where(pd.notnull(df), None)
    return df[['codigo', 'modelo', 'localCode', 'estoque']].to_dict(orient='records')

def agrupar_linhas(stock_rows, location_ids):
    """
    Accumulates quantities per item code and stock location.
    location_ids: { (cidade, tipo): local_id }
    Returns ({ codigo: { 'modelo': str, 'estoques': { local_id: qty } } }, ignoradas)
    """
    item_map = {}
    ignoradas = 0
    for row in stock_rows:
        codigo = _clean_code(row.get('codigo'))
        if not codigo or codigo in ('undefined', 'null'):
            ignoradas += 1
            continue

        location_info = LOCATION_CODE_MAP.get(_clean_code(row.get('localCode')))
        if not location_info:
            current_app.logger.info('Código de local não mapeado: %s', row.get('localCode'))
            ignoradas += 1
            continue

        local_id = location_ids.get((location_info['cidade'], location_info['tipo']))
        if not local_id:
            current_app.logger.info('Local não encontrado para: %s_%s', location_info['cidade'], location_info['tipo'])
            ignoradas += 1
            continue

        item = item_map.setdefault(codigo, {'modelo': row.get('modelo') or 'Sem modelo', 'estoques': {}})
        item['estoques'][local_id] = item['estoques'].get(local_id, 0) + _to_number(row.get('estoque'))
    return item_map, ignoradas

def importar(db, stock_rows, file_name, user_id):
    locais = db.execute('SELECT id, cidade, tipo FROM locais_estoque').fetchall()
    location_ids = {(l['cidade'], l['tipo']): l['id'] for l in locais}

    item_map, ignoradas = agrupar_linhas(stock_rows, location_ids)

    items_processed = 0
    stock_records = 0
    alertas = 0
    for codigo, data in item_map.items():
        db.execute('''
            INSERT INTO estoque_itens (codigo, modelo) VALUES (?, ?)
            ON CONFLICT(codigo) DO UPDATE SET modelo = excluded.modelo
        ''', (codigo, str(data['modelo'])))
        item_id = db.execute('SELECT id FROM estoque_itens WHERE codigo = ?', (codigo,)).fetchone()['id']
        items_processed += 1

        for local_id, quantidade in data['estoques'].items():
            existing = db.execute(
                'SELECT estoque_minimo FROM estoque WHERE item_id = ? AND local_estoque_id = ?',
                (item_id, local_id)
            ).fetchone()
            minimo = existing['estoque_minimo'] if existing else 0
            atual = math.floor(quantidade)
            db.execute('''
                INSERT INTO estoque (item_id, local_estoque_id, estoque_minimo, estoque_atual, updated_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(item_id, local_estoque_id)
                DO UPDATE SET estoque_atual = excluded.estoque_atual, updated_at = CURRENT_TIMESTAMP
            ''', (item_id, local_id, minimo, atual))
            stock_records += 1

            if atual < minimo:
                db.execute('''
                    INSERT INTO estoque_alertas (item_id, local_estoque_id, estoque_minimo, estoque_atual, quantidade_faltante)
                    VALUES (?, ?, ?, ?, ?)
                ''', (item_id, local_id, minimo, atual, minimo - atual))
                alertas += 1

    db.execute(
        'INSERT INTO estoque_importacoes (arquivo_nome, registros_processados, registros_ignorados, user_id) VALUES (?, ?, ?, ?)',
        (file_name, items_processed, ignoradas, user_id)
    )
    db.commit()
    current_app.logger.info('Import completed: %s items, %s stock records', items_processed, stock_records)

    return {
        'success': True,
        'message': f'Importação concluída: {items_processed} produtos processados, {stock_records} registros de estoque criados/atualizados.',
        'itemsProcessed': items_processed,
        'stockRecordsCreated': stock_records,
        'ignoredRows': ignoradas,
        'alertas': alertas,
    }
