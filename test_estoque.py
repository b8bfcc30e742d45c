import io

import pandas as pd

from eixo.database import get_db
from eixo.services import estoque_view
from eixo.services.importacao import agrupar_linhas

LOCAIS = [
    {'id': 1, 'cidade': 'BH', 'tipo': 'INSTALACAO', 'nome_local': 'BH - Instalação'},
    {'id': 2, 'cidade': 'BH', 'tipo': 'MANUTENCAO', 'nome_local': 'BH - Manutenção'},
    {'id': 3, 'cidade': 'RIO', 'tipo': 'MANUTENCAO', 'nome_local': 'RIO - Manutenção'},
]
ITEMS = [
    {'id': 10, 'codigo': 'CAM-01', 'modelo': 'Câmera Bullet'},
    {'id': 11, 'codigo': 'FEC-02', 'modelo': 'Fechadura Magnética'},
    {'id': 12, 'codigo': 'TAG-03', 'modelo': 'Tag Veicular'},
]
NIVEIS = [
    {'id': 100, 'item_id': 10, 'local_estoque_id': 1, 'estoque_minimo': 5, 'estoque_atual': 2},
    {'id': 101, 'item_id': 10, 'local_estoque_id': 3, 'estoque_minimo': 1, 'estoque_atual': 4},
    {'id': 102, 'item_id': 11, 'local_estoque_id': 2, 'estoque_minimo': 3, 'estoque_atual': 3},
]


def _agrupados():
    return estoque_view.agrupar(ITEMS, LOCAIS, NIVEIS)

def test_agrupar_status_por_local_e_geral():
    cam, fec, tag = _agrupados()

    assert cam['estoques'][1] == {'id': 100, 'minimo': 5, 'atual': 2, 'reposicao_sugerida': 3, 'status': 'CRITICO'}
    assert cam['estoques'][3]['status'] == 'OK'
    assert cam['estoques'][3]['reposicao_sugerida'] == 0
    assert cam['estoques'][2]['status'] == 'SEM_BASE'
    assert cam['status_geral'] == 'CRITICO'

    assert fec['status_geral'] == 'OK'
    assert tag['status_geral'] == 'SEM_BASE'
    assert all(c['status'] == 'SEM_BASE' for c in tag['estoques'].values())

def test_filtrar_por_status_considera_locais_filtrados():
    agrupados = _agrupados()

    criticos = estoque_view.filtrar(agrupados, LOCAIS, status='CRITICO')
    assert [i['codigo'] for i in criticos] == ['CAM-01']

    # Só no RIO a câmera está OK
    no_rio = estoque_view.filtrar(agrupados, LOCAIS, cidade='RIO', status='CRITICO')
    assert no_rio == []

    sem_base = estoque_view.filtrar(agrupados, LOCAIS, status='SEM_BASE')
    assert [i['codigo'] for i in sem_base] == ['TAG-03']

    sem_base_rio = estoque_view.filtrar(agrupados, LOCAIS, cidade='RIO', status='SEM_BASE')
    assert [i['codigo'] for i in sem_base_rio] == ['FEC-02', 'TAG-03']

def test_status_desconhecido_nao_filtra():
    agrupados = _agrupados()
    assert len(estoque_view.filtrar(agrupados, LOCAIS, status='TODOS')) == 3

def test_filtrar_busca_ignora_maiusculas():
    agrupados = _agrupados()
    assert [i['codigo'] for i in estoque_view.filtrar(agrupados, LOCAIS, busca='fechadura')] == ['FEC-02']
    assert [i['codigo'] for i in estoque_view.filtrar(agrupados, LOCAIS, busca='tag-0')] == ['TAG-03']

def test_filtro_de_local_vazio_usa_todos_os_locais():
    agrupados = _agrupados()
    resultado = estoque_view.filtrar(agrupados, LOCAIS, cidade='VIX', status='CRITICO')
    assert [i['codigo'] for i in resultado] == ['CAM-01']

def test_estatisticas_e_linhas_criticas():
    agrupados = _agrupados()
    assert estoque_view.estatisticas(agrupados) == {'total': 3, 'ok': 1, 'critico': 1, 'sem_base': 1}

    linhas = estoque_view.linhas_criticas(estoque_view.criticos(agrupados, LOCAIS), LOCAIS)
    assert len(linhas) == 1
    assert linhas[0]['Local'] == 'BH - Instalação'
    assert linhas[0]['Reposição Sugerida'] == 3

def test_agrupar_linhas_acumula_e_ignora(app):
    rows = [
        {'codigo': 'A1', 'modelo': 'Câmera', 'localCode': '135000', 'estoque': '3'},
        {'codigo': 'A1', 'modelo': 'Câmera', 'localCode': '135000', 'estoque': 2.5},
        {'codigo': '', 'modelo': 'Sem código', 'localCode': '135000', 'estoque': 1},
        {'codigo': 'B2', 'modelo': 'Fonte', 'localCode': '999999', 'estoque': 1},
    ]
    with app.test_request_context():
        item_map, ignoradas = agrupar_linhas(rows, {('BH', 'INSTALACAO'): 7})
    assert ignoradas == 2
    assert item_map == {'A1': {'modelo': 'Câmera', 'estoques': {7: 5.5}}}

def _ids(app, codigo, cidade, tipo):
    with app.app_context():
        db = get_db()
        item_id = db.execute('SELECT id FROM estoque_itens WHERE codigo = ?', (codigo,)).fetchone()['id']
        local_id = db.execute('SELECT id FROM locais_estoque WHERE cidade = ? AND tipo = ?',
                              (cidade, tipo)).fetchone()['id']
    return item_id, local_id

def test_importar_mantem_minimo_e_gera_alerta(app, client, auth):
    _, admin = auth('admin')
    rows = [
        {'codigo': 'CAM-01', 'modelo': 'Câmera Bullet', 'localCode': '135000', 'estoque': '3'},
        {'codigo': 'CAM-01', 'modelo': 'Câmera Bullet', 'localCode': '135000', 'estoque': '4'},
        {'codigo': 'CAM-01', 'modelo': 'Câmera Bullet', 'localCode': '000', 'estoque': '4'},
    ]
    resp = client.post('/api/estoque/importar', json={'stockRows': rows, 'fileName': 'posicao.xlsx'}, headers=admin)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['itemsProcessed'] == 1
    assert body['stockRecordsCreated'] == 1
    assert body['ignoredRows'] == 1
    assert body['message'] == ('Importação concluída: 1 produtos processados, '
                               '1 registros de estoque criados/atualizados.')

    item_id, local_id = _ids(app, 'CAM-01', 'BH', 'INSTALACAO')
    resp = client.put('/api/estoque/nivel', json={'item_id': item_id, 'local_estoque_id': local_id,
                                                  'estoque_minimo': 10}, headers=admin)
    assert resp.get_json()['status'] == 'CRITICO'
    assert resp.get_json()['estoque_atual'] == 7

    resp = client.post('/api/estoque/importar', json={'stockRows': [
        {'codigo': 'CAM-01', 'modelo': 'Câmera Bullet', 'localCode': '135000', 'estoque': '2.9'},
    ]}, headers=admin)
    assert resp.get_json()['alertas'] == 1

    with app.app_context():
        nivel = get_db().execute('SELECT * FROM estoque WHERE item_id = ? AND local_estoque_id = ?',
                                 (item_id, local_id)).fetchone()
    assert nivel['estoque_minimo'] == 10
    assert nivel['estoque_atual'] == 2

    alertas = client.get('/api/estoque/alertas', headers=admin).get_json()
    assert len(alertas) == 1
    assert alertas[0]['quantidade_faltante'] == 8

    importacoes = client.get('/api/estoque/importacoes', headers=admin).get_json()
    assert len(importacoes) == 2

def test_importar_exige_perfil_e_dados(client, auth):
    _, vendedor = auth('vendedor')
    resp = client.post('/api/estoque/importar', json={'stockRows': [{'codigo': 'X'}]}, headers=vendedor)
    assert resp.status_code == 403

    _, admin = auth('admin')
    resp = client.post('/api/estoque/importar', json={'stockRows': []}, headers=admin)
    assert resp.status_code == 400

def test_importar_planilha_csv(client, auth):
    _, admin = auth('administrativo')
    csv = 'Código;Descrição;Local;Saldo\nCAM-01;Câmera;135000;5\nFEC-02;Fechadura;139000;2\n'
    resp = client.post('/api/estoque/importar', headers=admin, content_type='multipart/form-data',
                       data={'file': (io.BytesIO(csv.encode('utf-8')), 'posicao.csv')})
    assert resp.status_code == 200
    assert resp.get_json()['itemsProcessed'] == 2

def test_listagem_itens_e_planilha_de_criticos(app, client, auth):
    _, user = auth('projetos')
    assert client.post('/api/estoque/itens', json={'codigo': 'CAM-01', 'modelo': 'Câmera'},
                       headers=user).status_code == 201
    assert client.post('/api/estoque/itens', json={'codigo': 'CAM-01', 'modelo': 'Outra'},
                       headers=user).status_code == 409

    item_id, local_id = _ids(app, 'CAM-01', 'RIO', 'MANUTENCAO')
    client.put('/api/estoque/nivel', json={'item_id': item_id, 'local_estoque_id': local_id,
                                           'estoque_minimo': 4, 'estoque_atual': 1}, headers=user)

    body = client.get('/api/estoque?status=CRITICO', headers=user).get_json()
    assert [r['codigo'] for r in body['rows']] == ['CAM-01']
    assert body['stats'] == {'total': 1, 'ok': 0, 'critico': 1, 'sem_base': 0}
    assert 'RIO' in body['cidades']

    resp = client.get('/api/estoque/criticos.xlsx?cidade=RIO', headers=user)
    assert resp.status_code == 200
    df = pd.read_excel(io.BytesIO(resp.data))
    assert list(df['Código']) == ['CAM-01']
    assert list(df['Reposição Sugerida']) == [3]

def test_nivel_valida_quantidades(client, auth):
    _, user = auth('admin')
    resp = client.put('/api/estoque/nivel', json={'item_id': 1, 'local_estoque_id': 1, 'estoque_atual': -1},
                      headers=user)
    assert resp.status_code == 400
