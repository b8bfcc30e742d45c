import pytest


@pytest.fixture
def projeto(client, auth):
    _, vendedor = auth('vendedor')
    resp = client.post('/api/projetos', json={'cliente_condominio_nome': 'Condomínio Sol', 'status': 'RASCUNHO'},
                       headers=vendedor)
    return resp.get_json()['id']

def test_checklist_padrao_salvo_e_removido(client, auth, projeto):
    _, implantacao = auth('implantacao')
    _, vendedor = auth('vendedor')
    url = f'/api/projetos/{projeto}/implantacao/checklists'

    assert client.get(f'{url}/laudo_pintor', headers=implantacao).status_code == 400
    padrao = client.get(f'{url}/check_projeto', headers=implantacao).get_json()
    assert padrao['id'] is None
    assert padrao['titulo'] == 'Check de Projeto'
    assert len(padrao['dados']['items']) == 8
    assert padrao['dados']['items'][0] == {'id': 'item-0', 'label': 'Planta baixa conferida', 'checked': False,
                                           'observacao': ''}

    itens = padrao['dados']['items']
    itens[0]['checked'] = True
    itens[1]['observacao'] = 'Falta definir a guarita'
    assert client.put(f'{url}/check_projeto', json={'items': itens}, headers=vendedor).status_code == 403
    assert client.put(f'{url}/check_projeto', json={'items': [{'checked': True}]},
                      headers=implantacao).status_code == 400

    resp = client.put(f'{url}/check_projeto', json={'items': itens, 'observacoes': 'Visita ok',
                                                     'fotos': ['http://x/qdg.jpg']}, headers=implantacao)
    assert resp.status_code == 201
    salvo = resp.get_json()
    assert salvo['created_by_name'] == 'Implantacao'
    assert salvo['fotos'] == ['http://x/qdg.jpg']
    assert salvo['dados']['items'][1]['observacao'] == 'Falta definir a guarita'

    resp = client.put(f'{url}/check_projeto', json={'items': itens, 'observacoes': 'Revisado'}, headers=implantacao)
    assert resp.status_code == 200
    assert resp.get_json()['id'] == salvo['id']

    resumo = {c['tipo']: c for c in client.get(url, headers=vendedor).get_json()}
    assert len(resumo) == 7
    assert resumo['check_projeto']['preenchido'] is True
    assert resumo['check_projeto']['itens_marcados'] == 1
    assert resumo['laudo_conclusao']['total_itens'] == 10

    assert client.delete(f'{url}/check_projeto', headers=implantacao).status_code == 200
    assert client.delete(f'{url}/check_projeto', headers=implantacao).status_code == 404
    assert client.get(f'{url}/check_projeto', headers=implantacao).get_json()['id'] is None

def test_etapas_criadas_sob_demanda_com_datas(client, auth, projeto):
    _, implantacao = auth('implantacao')
    url = f'/api/projetos/{projeto}/implantacao/etapas'

    etapas = client.get(url, headers=implantacao).get_json()
    assert etapas['contrato_assinado'] is False
    assert etapas['operacao_assistida_interacoes'] == []
    assert etapas['progresso']['concluidas'] == 0
    assert etapas['progresso']['total'] == 9
    assert client.get(url, headers=implantacao).get_json()['id'] == etapas['id']

    assert client.put(url, json={}, headers=implantacao).status_code == 400
    assert client.put(url, json={'pesquisa_satisfacao_nota': 11}, headers=implantacao).status_code == 400

    etapas = client.put(url, json={'contrato_assinado': True, 'contrato_cadastrado': True,
                                   'agendamento_visita_startup_data': '2024-05-10'}, headers=implantacao).get_json()
    assert etapas['contrato_assinado'] is True
    assert etapas['contrato_assinado_at'] is not None
    assert etapas['agendamento_visita_startup_data'] == '2024-05-10'
    assert etapas['progresso']['concluidas'] == 2

    # Marcar de novo mantém a data original
    assinado_em = etapas['contrato_assinado_at']
    etapas = client.put(url, json={'contrato_assinado': True}, headers=implantacao).get_json()
    assert etapas['contrato_assinado_at'] == assinado_em

    etapas = client.put(url, json={'contrato_cadastrado': False, 'pesquisa_satisfacao_nota': 9,
                                   'pesquisa_satisfacao_recomendaria': True}, headers=implantacao).get_json()
    assert etapas['contrato_cadastrado_at'] is None
    assert etapas['pesquisa_satisfacao_recomendaria'] is True
    assert etapas['progresso']['concluidas'] == 1

def test_operacao_assistida_registra_interacoes(client, auth, projeto):
    _, supervisor = auth('supervisor_operacoes')
    _, vendedor = auth('vendedor')
    url = f'/api/projetos/{projeto}/implantacao/etapas/interacoes'

    assert client.post(url, json={'descricao': 'x'}, headers=vendedor).status_code == 403
    assert client.post(url, json={'descricao': ' '}, headers=supervisor).status_code == 400
    assert client.post('/api/projetos/999/implantacao/etapas/interacoes', json={'descricao': 'x'},
                       headers=supervisor).status_code == 404

    resp = client.post(url, json={'descricao': 'Síndico com dúvida no app'}, headers=supervisor)
    assert resp.status_code == 201
    etapas = resp.get_json()
    inicio = etapas['operacao_assistida_inicio']
    assert inicio is not None
    assert etapas['operacao_assistida_fim'] > inicio

    etapas = client.post(url, json={'descricao': 'Tags entregues'}, headers=supervisor).get_json()
    assert [i['descricao'] for i in etapas['operacao_assistida_interacoes']] == [
        'Síndico com dúvida no app', 'Tags entregues']
    assert etapas['operacao_assistida_interacoes'][0]['usuario'] == 'Supervisor_Operacoes'
    assert etapas['operacao_assistida_inicio'] == inicio
    assert {'numero': 8, 'titulo': 'Operação Assistida', 'concluida': True} in etapas['progresso']['etapas']

def test_vendedor_so_ve_implantacao_do_proprio_projeto(client, projeto, make_user, headers_for):
    outro = headers_for(make_user('vendedor', email='outro@teste.local'))
    assert client.get(f'/api/projetos/{projeto}/implantacao/etapas', headers=outro).status_code == 404
    assert client.get(f'/api/projetos/{projeto}/implantacao/checklists', headers=outro).status_code == 404
