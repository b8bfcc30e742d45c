import pytest

from eixo.services import mailer


@pytest.fixture
def emails(monkeypatch):
    sent = []

    def fake_send(to, subject, html, text='Atualização de projeto'):
        sent.append({'to': to, 'subject': subject, 'html': html})

    monkeypatch.setattr(mailer, 'send_email', fake_send)
    return sent

def _novo_projeto(client, headers, status='ENVIADO', **extra):
    payload = {
        'cliente_condominio_nome': 'Condomínio Sol',
        'cliente_cidade': 'BH',
        'cliente_estado': 'MG',
        'status': status,
        'tap_form': {'numero_blocos': 2, 'interfonia': True, 'marcacao_croqui_itens': ['CAMERAS_NOVAS']},
    }
    payload.update(extra)
    resp = client.post('/api/projetos', json=payload, headers=headers)
    assert resp.status_code == 201
    return resp.get_json()

def test_criar_projeto_valida_e_numera(client, auth, emails):
    _, vendedor = auth('vendedor')
    auth('projetos')

    assert client.post('/api/projetos', json={'cliente_condominio_nome': ' '}, headers=vendedor).status_code == 400
    assert client.post('/api/projetos', json={'cliente_condominio_nome': 'X', 'status': 'APROVADO_PROJETO'},
                       headers=vendedor).status_code == 400

    primeiro = _novo_projeto(client, vendedor, status='RASCUNHO')
    segundo = _novo_projeto(client, vendedor)
    assert (primeiro['numero_projeto'], segundo['numero_projeto']) == (1, 2)

    # Só o envio avisa a equipe de projetos
    assert len(emails) == 1
    assert emails[0]['to'] == ['projetos@teste.local']
    assert emails[0]['subject'] == 'Novo Projeto: Condomínio Sol'

    detalhe = client.get(f"/api/projetos/{segundo['id']}", headers=vendedor).get_json()
    assert detalhe['tap_form']['interfonia'] is True
    assert detalhe['tap_form']['marcacao_croqui_itens'] == ['CAMERAS_NOVAS']
    assert detalhe['status_history'][0]['from_status'] is None
    assert detalhe['status_history'][0]['to_status'] == 'ENVIADO'
    assert 'dados_originais_pre_reenvio' not in detalhe

def test_vendedor_so_enxerga_os_proprios_projetos(client, auth, make_user, headers_for):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    outro = headers_for(make_user('vendedor', email='outro@teste.local'))

    projeto = _novo_projeto(client, vendedor, status='RASCUNHO')
    assert client.get(f"/api/projetos/{projeto['id']}", headers=outro).status_code == 404
    assert client.get('/api/projetos', headers=outro).get_json() == []
    assert len(client.get('/api/projetos', headers=projetos).get_json()) == 1
    assert len(client.get('/api/projetos?q=sol', headers=projetos).get_json()) == 1
    assert client.get('/api/projetos?status=ENVIADO', headers=projetos).get_json() == []

def test_ciclo_pendente_reenvio_e_aprovacao(client, auth, emails):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    projeto_id = _novo_projeto(client, vendedor)['id']
    emails.clear()

    url = f'/api/projetos/{projeto_id}/status'
    assert client.post(url, json={'status': 'PENDENTE_INFO'}, headers=projetos).status_code == 400
    assert client.post(url, json={'status': 'INEXISTENTE'}, headers=projetos).status_code == 400
    assert client.post(url, json={'status': 'APROVADO_PROJETO'}, headers=vendedor).status_code == 403

    resp = client.post(url, json={'status': 'PENDENTE_INFO', 'reason': 'Falta a planta baixa'}, headers=projetos)
    assert resp.get_json() == {'success': True, 'status': 'PENDENTE_INFO', 'email_sent': True}
    assert emails[0]['to'] == 'vendedor@teste.local'
    assert emails[0]['subject'] == 'Ação Necessária: Projeto "Condomínio Sol" requer informações'
    assert 'Falta a planta baixa' in emails[0]['html']

    notificacoes = client.get('/api/notificacoes', headers=vendedor).get_json()
    assert notificacoes[0]['title'] == 'Projeto Pendente Info'

    resp = client.put(f'/api/projetos/{projeto_id}', json={'cliente_cidade': 'Contagem', 'reenviar': True},
                      headers=vendedor)
    assert resp.get_json()['status'] == 'ENVIADO'

    detalhe = client.get(f'/api/projetos/{projeto_id}', headers=projetos).get_json()
    assert detalhe['status'] == 'ENVIADO'
    assert detalhe['changed_fields'] == ['cliente_cidade']
    assert [h['to_status'] for h in detalhe['status_history']] == ['ENVIADO', 'PENDENTE_INFO', 'ENVIADO']

    resp = client.post(url, json={'status': 'APROVADO_PROJETO'}, headers=projetos)
    assert resp.status_code == 200
    detalhe = client.get(f'/api/projetos/{projeto_id}', headers=projetos).get_json()
    assert detalhe['engineering_status'] == 'EM_RECEBIMENTO'
    assert detalhe['engineering_due_at'] is not None

    # Projeto aprovado fica travado para o vendedor
    assert client.put(f'/api/projetos/{projeto_id}', json={'observacoes': 'x'}, headers=vendedor).status_code == 400

def test_status_sem_smtp_nao_envia_email(client, auth):
    _, vendedor = auth('vendedor')
    _, gerente = auth('gerente_comercial')
    projeto_id = _novo_projeto(client, vendedor, status='RASCUNHO')['id']

    resp = client.post(f'/api/projetos/{projeto_id}/status', json={'status': 'EM_ANALISE'}, headers=gerente)
    assert resp.status_code == 200
    assert resp.get_json()['email_sent'] is False

    resp = client.post(f'/api/projetos/{projeto_id}/status', json={'status': 'EM_ANALISE'}, headers=gerente)
    assert resp.get_json() == {'success': True, 'status': 'EM_ANALISE', 'email_sent': False}

def test_engenharia(client, auth, emails):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    projeto_id = _novo_projeto(client, vendedor)['id']
    url = f'/api/projetos/{projeto_id}/engenharia'

    assert client.post(url, json={'engineering_status': 'EM_PRODUCAO'}, headers=vendedor).status_code == 403
    assert client.post(url, json={'engineering_status': 'PRONTO'}, headers=projetos).status_code == 400

    resp = client.post(url, json={'engineering_status': 'EM_PRODUCAO', 'laudo_projeto': 'Laudo ok'}, headers=projetos)
    body = resp.get_json()
    assert body['engineering_status'] == 'EM_PRODUCAO'
    assert body['engineering_due_at'] is not None

    resp = client.post(url, json={'engineering_status': 'CONCLUIDO'}, headers=projetos)
    assert resp.get_json()['engineering_due_at'] is None
    detalhe = client.get(f'/api/projetos/{projeto_id}', headers=vendedor).get_json()
    assert detalhe['laudo_projeto'] == 'Laudo ok'
    assert detalhe['engineering_completed_at'] is not None

def test_comentarios_internos_e_anexos(client, auth, emails):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    projeto_id = _novo_projeto(client, vendedor)['id']
    url = f'/api/projetos/{projeto_id}/comentarios'

    assert client.post(url, json={'texto': ''}, headers=vendedor).status_code == 400
    assert client.post(url, json={'texto': 'Nota interna', 'is_internal': True}, headers=projetos).status_code == 201
    assert client.post(url, json={'texto': 'Pública', 'is_internal': False}, headers=projetos).status_code == 201
    assert client.post(url, json={'texto': 'Do vendedor', 'is_internal': True}, headers=vendedor).status_code == 201

    visto_vendedor = client.get(f'/api/projetos/{projeto_id}', headers=vendedor).get_json()
    assert [c['texto'] for c in visto_vendedor['comments']] == ['Pública', 'Do vendedor']
    visto_projetos = client.get(f'/api/projetos/{projeto_id}', headers=projetos).get_json()
    assert len(visto_projetos['comments']) == 3

    anexos = f'/api/projetos/{projeto_id}/anexos'
    assert client.post(anexos, json={'tipo': 'FOTO', 'nome_arquivo': 'a.png', 'arquivo_url': 'http://x/a.png'},
                       headers=vendedor).status_code == 400
    resp = client.post(anexos, json={'tipo': 'PLANTA_BAIXA', 'nome_arquivo': 'planta.pdf',
                                     'arquivo_url': 'http://x/planta.pdf', 'tamanho': 1024}, headers=vendedor)
    anexo_id = resp.get_json()['id']
    detalhe = client.get(f'/api/projetos/{projeto_id}', headers=vendedor).get_json()
    assert detalhe['attachments'][0]['tipo_label'] == 'Planta Baixa'

    assert client.delete(f'{anexos}/{anexo_id}', headers=vendedor).status_code == 200
    assert client.delete(f'{anexos}/{anexo_id}', headers=vendedor).status_code == 404

def test_venda_e_implantacao(client, auth, emails):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    _, implantacao = auth('implantacao')
    projeto_id = _novo_projeto(client, vendedor)['id']
    venda = f'/api/projetos/{projeto_id}/venda'

    assert client.put(venda, json={'produto': 'Portaria'}, headers=vendedor).status_code == 400
    assert client.post(f'{venda}/concluir', headers=vendedor).status_code == 400

    client.post(f'/api/projetos/{projeto_id}/status', json={'status': 'APROVADO_PROJETO'}, headers=projetos)
    resp = client.put(venda, json={'produto': 'Portaria', 'qtd_apartamentos': 48}, headers=vendedor)
    assert resp.get_json() == {'success': True, 'sale_status': 'EM_ANDAMENTO'}

    assert client.post(f'/api/projetos/{projeto_id}/implantacao', json={'implantacao_status': 'EM_EXECUCAO'},
                       headers=implantacao).status_code == 400

    resp = client.post(f'{venda}/concluir', headers=vendedor)
    assert resp.get_json()['implantacao_status'] == 'A_EXECUTAR'
    assert client.put(venda, json={'produto': 'Outro'}, headers=vendedor).status_code == 400
    assert client.post(f'{venda}/concluir', headers=vendedor).status_code == 400

    notificacoes = client.get('/api/notificacoes', headers=implantacao).get_json()
    assert notificacoes[0]['title'] == 'Nova venda para implantação'

    url = f'/api/projetos/{projeto_id}/implantacao'
    assert client.post(url, json={'implantacao_status': 'EM_EXECUCAO'}, headers=vendedor).status_code == 403
    assert client.post(url, json={'implantacao_status': 'X'}, headers=implantacao).status_code == 400
    assert client.post(url, json={'implantacao_status': 'EM_EXECUCAO'}, headers=implantacao).status_code == 200
    assert client.post(url, json={'implantacao_status': 'CONCLUIDO_IMPLANTACAO'},
                       headers=implantacao).status_code == 200

    detalhe = client.get(f'/api/projetos/{projeto_id}', headers=projetos).get_json()
    assert detalhe['sale_form']['qtd_apartamentos'] == 48
    assert detalhe['implantacao_started_at'] is not None
    assert detalhe['implantacao_completed_at'] is not None
    assert client.get('/api/projetos?implantacao_status=CONCLUIDO_IMPLANTACAO',
                      headers=projetos).get_json()[0]['id'] == projeto_id

def test_vendedor_nao_reabre_projeto_aprovado(client, auth, emails):
    _, vendedor = auth('vendedor')
    _, projetos = auth('projetos')
    aprovado = _novo_projeto(client, vendedor)['id']
    client.post(f'/api/projetos/{aprovado}/status', json={'status': 'APROVADO_PROJETO'}, headers=projetos)

    resp = client.post(f'/api/projetos/{aprovado}/status', json={'status': 'ENVIADO'}, headers=vendedor)
    assert resp.status_code == 400
    assert client.get(f'/api/projetos/{aprovado}', headers=vendedor).get_json()['status'] == 'APROVADO_PROJETO'

    rascunho = _novo_projeto(client, vendedor, status='RASCUNHO')['id']
    resp = client.post(f'/api/projetos/{rascunho}/status', json={'status': 'ENVIADO'}, headers=vendedor)
    assert resp.status_code == 200
    assert client.get(f'/api/projetos/{rascunho}', headers=vendedor).get_json()['status'] == 'ENVIADO'
