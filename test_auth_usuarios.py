from eixo.database import get_db
from eixo.services.notificacoes import notificar, notificar_manutencao


def test_login_com_admin_semeado(client):
    resp = client.post('/api/auth/login', json={'email': 'ADMIN@eixo.test', 'password': 'admin123'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['access_token']
    assert body['user']['role'] == 'admin'
    assert 'password' not in body['user']

    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.get_json()['permissions']['configuracoes/usuarios'] == 'completo'

def test_login_invalido_e_usuario_desativado(app, client, make_user):
    assert client.post('/api/auth/login', json={'email': 'admin@eixo.test', 'password': 'errada'}).status_code == 401
    assert client.post('/api/auth/login', json={'email': ''}).status_code == 400

    user_id = make_user('vendedor')
    with app.app_context():
        db = get_db()
        db.execute('UPDATE users SET is_active = 0 WHERE id = ?', (user_id,))
        db.commit()
    resp = client.post('/api/auth/login', json={'email': 'vendedor@teste.local', 'password': 'senha123'})
    assert resp.status_code == 403

def test_token_de_usuario_desativado_e_rejeitado(app, client, auth):
    user_id, headers = auth('vendedor')
    with app.app_context():
        db = get_db()
        db.execute('UPDATE users SET is_active = 0 WHERE id = ?', (user_id,))
        db.commit()
    assert client.get('/api/auth/me', headers=headers).status_code == 401
    assert client.get('/api/auth/me').status_code == 401

def test_troca_de_senha_obrigatoria_dispensa_senha_atual(client, make_user, headers_for):
    user_id = make_user('vendedor', must_change_password=1)
    headers = headers_for(user_id)
    assert client.post('/api/auth/change-password', json={'new_password': '123'}, headers=headers).status_code == 400
    assert client.post('/api/auth/change-password', json={'new_password': 'nova-senha'},
                       headers=headers).status_code == 200

    # Agora a senha atual passa a ser exigida
    resp = client.post('/api/auth/change-password', json={'new_password': 'outra-senha', 'current_password': 'x'},
                       headers=headers)
    assert resp.status_code == 400
    login = client.post('/api/auth/login', json={'email': 'vendedor@teste.local', 'password': 'nova-senha'})
    assert login.get_json()['must_change_password'] is False

def test_admin_gerencia_usuarios(client, auth):
    _, admin = auth('admin')
    resp = client.post('/api/usuarios', json={'action': 'create', 'email': 'Novo@Teste.local', 'nome': 'Novo',
                                              'password': 'senha123', 'role': 'projetos', 'filiais': ['BH']},
                       headers=admin)
    assert resp.status_code == 200
    new_id = resp.get_json()['user']['id']

    dup = client.post('/api/usuarios', json={'action': 'create', 'email': 'novo@teste.local', 'nome': 'Outro',
                                             'password': 'senha123'}, headers=admin)
    assert dup.status_code == 400

    users = client.get('/api/usuarios?filial=BH', headers=admin).get_json()
    assert [u['email'] for u in users] == ['novo@teste.local']
    assert users[0]['filiais'] == ['BH']
    assert users[0]['must_change_password'] is True

    assert client.post('/api/usuarios', json={'action': 'update', 'userId': new_id, 'is_active': False,
                                              'role': 'implantacao'}, headers=admin).status_code == 200
    user = client.get('/api/usuarios?role=implantacao', headers=admin).get_json()[0]
    assert user['is_active'] is False

    assert client.post('/api/usuarios', json={'action': 'reset_password', 'userId': 999,
                                              'newPassword': 'senha123'}, headers=admin).status_code == 404
    assert client.post('/api/usuarios', json={'action': 'delete', 'userId': new_id},
                       headers=admin).status_code == 200
    assert client.post('/api/usuarios', json={'action': 'bogus'}, headers=admin).status_code == 400

def test_gerente_comercial_so_cria_vendedores(client, auth):
    gerente_id, gerente = auth('gerente_comercial')
    resp = client.post('/api/usuarios', json={'action': 'create', 'email': 'a@teste.local', 'nome': 'A',
                                              'password': 'senha123', 'role': 'projetos'}, headers=gerente)
    assert resp.status_code == 403
    resp = client.post('/api/usuarios', json={'action': 'create', 'email': 'a@teste.local', 'nome': 'A',
                                              'password': 'senha123'}, headers=gerente)
    assert resp.status_code == 200
    resp = client.post('/api/usuarios', json={'action': 'delete', 'userId': resp.get_json()['user']['id']},
                       headers=gerente)
    assert resp.status_code == 403
    resp = client.post('/api/usuarios', json={'action': 'delete', 'userId': gerente_id}, headers=gerente)
    assert resp.status_code == 400

def test_administrativo_nao_mexe_em_admin(client, auth):
    admin_id, _ = auth('admin')
    _, administrativo = auth('administrativo')
    resp = client.post('/api/usuarios', json={'action': 'delete', 'userId': admin_id}, headers=administrativo)
    assert resp.status_code == 403

    _, vendedor = auth('vendedor')
    assert client.post('/api/usuarios', json={'action': 'create'}, headers=vendedor).status_code == 403
    assert client.get('/api/usuarios', headers=vendedor).status_code == 403

def test_so_admin_altera_ou_redefine_senha_de_admin(client, auth):
    _, gerente = auth('gerente_comercial')
    _, administrativo = auth('administrativo')
    admin_id = 1

    for headers in (gerente, administrativo):
        resp = client.post('/api/usuarios', json={'action': 'reset_password', 'userId': admin_id,
                                                  'newPassword': 'tomada123'}, headers=headers)
        assert resp.status_code == 403
        resp = client.post('/api/usuarios', json={'action': 'update', 'userId': admin_id, 'nome': 'Outro'},
                           headers=headers)
        assert resp.status_code == 403

    assert client.post('/api/auth/login', json={'email': 'admin@eixo.test',
                                                'password': 'tomada123'}).status_code == 401
    assert client.post('/api/auth/login', json={'email': 'admin@eixo.test',
                                                'password': 'admin123'}).status_code == 200

    vendedor_id, _ = auth('vendedor')
    assert client.post('/api/usuarios', json={'action': 'reset_password', 'userId': vendedor_id,
                                              'newPassword': 'nova1234'}, headers=gerente).status_code == 200

def test_permissoes_de_menu(client, auth):
    _, admin = auth('admin')
    vendedor_id, vendedor = auth('vendedor')

    assert client.get('/api/permissoes/me', headers=vendedor).get_json()['projetos'] == 'nenhum'

    assert client.put('/api/permissoes/role', json={'role': 'vendedor', 'menu_key': 'projetos',
                                                    'access_level': 'visualizacao'}, headers=admin).status_code == 200
    assert client.get('/api/permissoes/me', headers=vendedor).get_json()['projetos'] == 'visualizacao'

    assert client.put('/api/permissoes/usuario', json={'user_id': vendedor_id, 'menu_key': 'projetos',
                                                       'access_level': 'completo'}, headers=admin).status_code == 200
    assert client.get('/api/permissoes/me', headers=vendedor).get_json()['projetos'] == 'completo'

    client.put('/api/permissoes/usuario', json={'user_id': vendedor_id, 'menu_key': 'projetos',
                                                'access_level': None}, headers=admin)
    assert client.get('/api/permissoes/me', headers=vendedor).get_json()['projetos'] == 'visualizacao'

    listagem = client.get('/api/permissoes', headers=admin).get_json()
    assert {'role': 'vendedor', 'menu_key': 'projetos', 'access_level': 'visualizacao'} in listagem['role_permissions']

    assert client.put('/api/permissoes/role', json={'role': 'vendedor', 'menu_key': 'inexistente',
                                                    'access_level': 'completo'}, headers=admin).status_code == 400
    assert client.put('/api/permissoes/role', json={}, headers=vendedor).status_code == 403

def test_notificacoes_por_usuario_e_perfil(app, client, auth):
    vendedor_id, vendedor = auth('vendedor')
    _, supervisor = auth('supervisor_operacoes')
    with app.app_context():
        db = get_db()
        notificar(db, 'Projeto aprovado', 'Seu projeto foi aprovado', for_user_id=vendedor_id)
        notificar(db, 'Para projetos', 'Outro perfil', for_role='projetos')
        notificar_manutencao(db, 'Chamado corretivo', 'Novo chamado', for_role='supervisor_operacoes')
        db.commit()

    notificacoes = client.get('/api/notificacoes', headers=vendedor).get_json()
    assert [n['title'] for n in notificacoes] == ['Projeto aprovado']
    assert client.get('/api/notificacoes/contagem', headers=supervisor).get_json() == {'unread': 1}

    manutencao = client.get('/api/notificacoes', headers=supervisor).get_json()[0]
    assert manutencao['origem'] == 'manutencao'

    # Vendedor não enxerga notificação do supervisor
    assert client.post(f"/api/notificacoes/manutencao/{manutencao['id']}/lida",
                       headers=vendedor).status_code == 404
    assert client.post(f"/api/notificacoes/manutencao/{manutencao['id']}/lida",
                       headers=supervisor).status_code == 200
    assert client.get('/api/notificacoes/contagem', headers=supervisor).get_json() == {'unread': 0}

    assert client.post('/api/notificacoes/outra/1/lida', headers=vendedor).status_code == 400
    assert client.post('/api/notificacoes/lidas', headers=vendedor).status_code == 200
    assert client.get('/api/notificacoes/contagem', headers=vendedor).get_json() == {'unread': 0}

def test_notificacao_de_perfil_e_lida_por_cada_usuario(app, client, make_user, headers_for):
    primeiro = headers_for(make_user('projetos', email='p1@teste.local'))
    segundo = headers_for(make_user('projetos', email='p2@teste.local'))
    with app.app_context():
        db = get_db()
        notificar(db, 'Novo projeto', 'Projeto enviado para análise', for_role='projetos')
        db.commit()

    notificacao = client.get('/api/notificacoes', headers=primeiro).get_json()[0]
    assert notificacao['read'] == 0
    assert client.post(f"/api/notificacoes/projeto/{notificacao['id']}/lida", headers=primeiro).status_code == 200
    assert client.post(f"/api/notificacoes/projeto/{notificacao['id']}/lida", headers=primeiro).status_code == 200

    assert client.get('/api/notificacoes/contagem', headers=primeiro).get_json() == {'unread': 0}
    assert client.get('/api/notificacoes/contagem', headers=segundo).get_json() == {'unread': 1}
    assert client.get('/api/notificacoes', headers=segundo).get_json()[0]['read'] == 0
