import pytest

from eixo.database import get_db
from eixo.services import gateway, mailer


class FakeStream:
    def __init__(self, lines):
        self.lines = lines
        self.closed = False

    def iter_lines(self, decode_unicode=False):
        return iter(self.lines)

    def close(self):
        self.closed = True


@pytest.fixture
def downloads(monkeypatch):
    baixados = []

    def fake_download(url):
        baixados.append(url)
        return None if 'quebrado' in url else 'data:image/png;base64,AAAA'

    monkeypatch.setattr(gateway, 'download_as_data_url', fake_download)
    return baixados

def test_painel_chat(client, app, auth, monkeypatch):
    _, headers = auth('gerente_comercial')
    assert client.post('/api/ia/painel/chat', json={'messages': []}, headers=headers).get_json() == \
        {'error': 'Nenhuma mensagem enviada.'}

    chamadas = []
    stream = FakeStream(['data: {"choices": [{"delta": {"content": "3 projetos"}}]}', 'data: [DONE]'])

    def fake_stream(messages, model=None):
        chamadas.append((messages, model))
        return stream

    monkeypatch.setattr(gateway, 'chat_stream', fake_stream)
    resp = client.post('/api/ia/painel/chat', json={'messages': [{'role': 'user', 'content': 'Resumo?'}]},
                       headers=headers)
    assert '3 projetos' in resp.get_data(as_text=True)
    assert stream.closed
    messages, model = chamadas[0]
    assert model == app.config['AI_MODEL_PAINEL']
    assert messages[0]['role'] == 'system'
    assert messages[-1] == {'role': 'user', 'content': 'Resumo?'}

def test_extrair_equipamentos(client, auth, monkeypatch, downloads):
    _, headers = auth('projetos')
    url = '/api/ia/extrair-equipamentos'

    assert client.post(url, json={'fileUrls': 'http://x/a.png'}, headers=headers).status_code == 400
    assert client.post(url, json={'fileUrls': ['http://x/quebrado.png']}, headers=headers).get_json() == \
        {'error': 'Não foi possível processar os arquivos.'}

    enviados = []

    def fake_completion(messages, model=None, response_format=None):
        enviados.append((messages, response_format))
        return '```json\n{"equipamentos": [{"nome": "Câmera Bullet", "quantidade": 4}]}\n```'

    monkeypatch.setattr(gateway, 'chat_completion', fake_completion)
    downloads.clear()
    arquivos = [f'http://x/{n}.png' for n in range(7)]
    resp = client.post(url, json={'fileUrls': arquivos}, headers=headers)
    assert resp.get_json() == {'equipamentos': [{'nome': 'Câmera Bullet', 'quantidade': 4}]}
    assert downloads == arquivos[:5]

    messages, response_format = enviados[0]
    assert response_format == {'type': 'json_object'}
    assert len(messages[1]['content']) == 6

    monkeypatch.setattr(gateway, 'chat_completion', lambda *a, **kw: 'Não encontrei equipamentos.')
    assert client.post(url, json={'fileUrls': arquivos[:1]}, headers=headers).get_json() == {'equipamentos': []}

    def limite(*args, **kwargs):
        raise gateway.GatewayError(429, 'AI gateway error')

    monkeypatch.setattr(gateway, 'chat_completion', limite)
    resp = client.post(url, json={'fileUrls': arquivos[:1]}, headers=headers)
    assert resp.status_code == 429
    assert resp.get_json()['error'] == 'Limite de requisições excedido. Tente novamente em alguns minutos.'

def test_resumo_projeto(client, app, auth, monkeypatch):
    monkeypatch.setattr(mailer, 'send_email', lambda *args, **kwargs: None)
    _, vendedor = auth('vendedor')
    resp = client.post('/api/projetos', json={'cliente_condominio_nome': 'Condomínio Sol', 'cliente_cidade': 'BH',
                                              'status': 'RASCUNHO'}, headers=vendedor)
    projeto_id = resp.get_json()['id']
    url = '/api/ia/resumo-projeto'

    assert client.post(url, json={'project_id': 999}, headers=vendedor).status_code == 404
    assert client.post(url, json={'project_id': projeto_id}, headers=vendedor).get_json() == \
        {'error': 'Dados do formulário de venda são obrigatórios'}

    recebidos = []

    def fake_completion(messages, model=None, response_format=None):
        recebidos.append(messages)
        return 'Resumo: 48 apartamentos, portaria remota.'

    monkeypatch.setattr(gateway, 'chat_completion', fake_completion)
    resp = client.post(url, json={'project_id': projeto_id, 'saleFormData': {'qtd_apartamentos': 48}},
                       headers=vendedor)
    assert resp.get_json() == {'summary': 'Resumo: 48 apartamentos, portaria remota.'}
    assert 'Condomínio Sol' in recebidos[0][1]['content']

    with app.app_context():
        salvo = get_db().execute('SELECT summary FROM project_ai_summaries WHERE project_id = ?',
                                 (projeto_id,)).fetchone()
    assert salvo['summary'] == 'Resumo: 48 apartamentos, portaria remota.'

    def sem_creditos(*args, **kwargs):
        raise gateway.GatewayError(402, 'AI gateway error')

    monkeypatch.setattr(gateway, 'chat_completion', sem_creditos)
    resp = client.post(url, json={'saleFormData': {'produto': 'Portaria'}}, headers=vendedor)
    assert resp.status_code == 402
    assert resp.get_json() == {'error': 'Créditos insuficientes para geração de resumo.'}
