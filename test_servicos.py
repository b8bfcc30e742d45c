from datetime import date, datetime

from eixo.services import change_tracking, nps, permissoes, prazos, precificacao, propostas
from eixo.utils import date_format_filter, format_currency, from_json_filter, parse_iso, strip_code_fences


def test_add_months_ajusta_fim_de_mes():
    assert prazos.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert prazos.add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)
    assert prazos.add_months(date(2024, 12, 15), 12) == date(2025, 12, 15)

def test_proxima_execucao_por_frequencia():
    assert prazos.proxima_execucao('SEMANAL', date(2024, 3, 1)) == date(2024, 3, 8)
    assert prazos.proxima_execucao('QUINZENAL', '2024-03-01') == date(2024, 3, 15)
    assert prazos.proxima_execucao('QUADRIMESTRAL', '2024-01-15') == date(2024, 5, 15)
    assert prazos.proxima_execucao('ANUAL', datetime(2024, 2, 29, 8, 0)) == date(2025, 2, 28)

def test_prazo_pendencia_usa_sla_do_setor():
    assert prazos.setor('DEPT_COMPRAS') == 'Compras'
    assert prazos.prazo_pendencia('DEPT_COMPRAS', '2024-03-01 10:00:00') == datetime(2024, 3, 11, 10, 0)
    assert prazos.prazo_pendencia('DEPT_ALMOXARIFADO', '2024-03-01T10:00:00Z') == datetime(2024, 3, 2, 10, 0)

def test_prazo_pendencia_do_cliente_usa_prazo_informado_ou_30_dias():
    assert prazos.prazo_pendencia('CLIENTE_OBRA', '2024-03-01 10:00:00', '2024-04-01') == datetime(2024, 4, 1)
    assert prazos.prazo_pendencia('CLIENTE_AGENDA', '2024-03-01 10:00:00') == datetime(2024, 3, 31, 10, 0)

def test_resumo_pendencias():
    agora = datetime(2024, 3, 10, 12, 0)
    pendencias = [
        {'status': 'ABERTO', 'setor': 'Compras', 'data_abertura': '2024-03-01 10:00:00',
         'data_prazo': '2024-03-05 10:00:00', 'data_conclusao': None},
        {'status': 'EM_ANDAMENTO', 'setor': 'Fiscal', 'data_abertura': '2024-03-09 10:00:00',
         'data_prazo': '2024-03-11 08:00:00', 'data_conclusao': None},
        {'status': 'CONCLUIDO', 'setor': 'Fiscal', 'data_abertura': '2024-03-01 00:00:00',
         'data_prazo': '2024-03-03 00:00:00', 'data_conclusao': '2024-03-04 12:00:00'},
        {'status': 'CANCELADO', 'setor': 'Compras', 'data_abertura': '2024-03-01 00:00:00',
         'data_prazo': '2024-03-02 00:00:00', 'data_conclusao': None},
    ]
    resumo = prazos.resumo_pendencias(pendencias, agora)
    assert resumo == {
        'total': 4,
        'abertas': 2,
        'atrasadas': 1,
        'vencendo_24h': 1,
        'tempo_medio_resolucao_dias': 3.5,
        'por_setor': {'Compras': 1, 'Fiscal': 1},
    }

def test_prazo_engenharia():
    assert prazos.prazo_engenharia('EM_PRODUCAO', '2024-03-01 09:00:00') == datetime(2024, 3, 6, 9, 0)
    assert prazos.prazo_engenharia('RETORNAR', '2024-03-01 09:00:00') is None
    assert prazos.prazo_engenharia('EM_RECEBIMENTO', None) is None

def test_nps():
    assert [nps.categoria(n) for n in (10, 9, 8, 7, 6, 0)] == \
        ['promotor', 'promotor', 'neutro', 'neutro', 'detrator', 'detrator']
    assert nps.score([10, 9, 8, 3]) == 25
    assert nps.score([]) is None
    assert nps.resumo([10, 6, None]) == {
        'total': 2, 'promotores': 1, 'neutros': 0, 'detratores': 1, 'media': 8.0, 'nps': 0,
    }

def test_calcular_valores_com_regras_padrao():
    pcts = precificacao.percentuais({}, 'produtos')
    assert precificacao.calcular_valores(100, pcts) == {
        'valor_minimo': 90.0,
        'valor_locacao': 3.57,
        'valor_minimo_locacao': 3.21,
        'valor_instalacao': 10.0,
    }

def test_aplicar_separa_produtos_e_servicos():
    produtos = [
        {'id': 1, 'preco_unitario': 200, 'subgrupo': 'CFTV'},
        {'id': 2, 'preco_unitario': 100, 'subgrupo': 'Serviço'},
        {'id': 3, 'preco_unitario': 0, 'subgrupo': None},
    ]
    regras = {'valor_instalacao': 20, 'servico_valor_instalacao': 50}

    updates = precificacao.aplicar(produtos, regras, 'produtos')
    assert [pid for pid, _ in updates] == [1]
    assert updates[0][1]['valor_instalacao'] == 40.0

    updates = precificacao.aplicar(produtos, regras, 'servicos')
    assert updates == [(2, {'valor_minimo': 90.0, 'valor_locacao': 3.57,
                            'valor_minimo_locacao': 3.21, 'valor_instalacao': 50.0})]

def test_totais_kit():
    itens = [
        {'quantidade': 2, 'preco_unitario': 100, 'valor_locacao': 3.5, 'valor_instalacao': 10},
        {'quantidade': 1, 'preco_unitario': 40.5, 'valor_minimo': 36},
    ]
    totais = precificacao.totais_kit(itens)
    assert totais['preco_kit'] == 240.5
    assert totais['valor_locacao'] == 7.0
    assert totais['valor_instalacao'] == 20.0
    assert totais['valor_minimo'] == 36.0

PROPOSTA = '''# Proposta Condomínio Sol

Itens sugeridos abaixo.

```json
{"kits": [{"nome": "kit portaria", "qtd": 2}],
 "avulsos": [{"nome": "Câmera Dome", "codigo": "CAM-02", "qtd": 1, "valor_locacao": 10}],
 "servicos": [{"nome": "Configuração", "qtd": 1}]}
```
'''

KITS = [{
    'id_kit': 'K1', 'nome': 'Kit Portaria', 'codigo': 'KP',
    'itens': [
        {'quantidade': 1, 'produto': {'nome': 'Câmera Dome', 'codigo': 'CAM-02', 'categoria': 'CFTV',
                                      'preco_unitario': 300, 'valor_locacao': 10, 'valor_instalacao': 30}},
        {'quantidade': 3, 'produto': {'nome': 'Tag', 'codigo': 'TAG-01', 'categoria': 'Acesso',
                                      'preco_unitario': 5, 'valor_locacao': 0.5}},
    ],
}]


def test_extrair_itens_remove_bloco_json(app):
    with app.app_context():
        proposta, itens = propostas.extrair_itens(PROPOSTA)
    assert '```' not in proposta
    assert proposta.startswith('# Proposta Condomínio Sol')
    assert itens['kits'] == [{'nome': 'kit portaria', 'qtd': 2}]

def test_extrair_itens_com_json_invalido_mantem_texto(app):
    texto = 'Proposta\n```json\n{invalido\n```'
    with app.app_context():
        assert propostas.extrair_itens(texto) == (texto, None)
        assert propostas.extrair_itens('Sem itens') == ('Sem itens', None)

def test_expandir_kits_e_mesclar_por_origem(app):
    with app.app_context():
        _, itens = propostas.extrair_itens(PROPOSTA)
    expandidos = propostas.expandir(itens, KITS)

    por_chave = {(i['codigo'] if i.get('codigo') else i['nome'], i['origem']): i for i in expandidos}
    assert por_chave[('CAM-02', 'Kit: kit portaria')]['qtd'] == 2
    assert por_chave[('TAG-01', 'Kit: kit portaria')]['qtd'] == 6
    assert por_chave[('CAM-02', 'Avulso')]['qtd'] == 1
    assert por_chave[('Configuração', 'Serviço')]['qtd'] == 1
    assert len(expandidos) == 4

    linhas = propostas.linhas_planilha(expandidos)
    tags = [l for l in linhas if l['Código'] == 'TAG-01'][0]
    assert tags['Locação Total'] == 3.0
    assert tags['Instalação Total'] == 0

def test_encontrar_kit_por_id_nome_ou_codigo():
    assert propostas.encontrar_kit({'id_kit': 'K1'}, KITS) is KITS[0]
    assert propostas.encontrar_kit({'nome': '  KIT PORTARIA '}, KITS) is KITS[0]
    assert propostas.encontrar_kit({'codigo': 'KP'}, KITS) is KITS[0]
    assert propostas.encontrar_kit({'nome': 'Outro'}, KITS) is None

def test_changed_fields_compara_com_snapshot():
    project = {'cliente_condominio_nome': 'Cond. A', 'cliente_cidade': 'BH', 'numero_blocos': 2}
    tap = {'numero_blocos': 2, 'interfonia': 1}
    snap = change_tracking.snapshot(project, tap)

    alterado = dict(project, cliente_cidade='Contagem', dados_originais_pre_reenvio=snap)
    assert change_tracking.changed_fields(alterado, dict(tap, interfonia=0)) == ['cliente_cidade', 'interfonia']
    assert change_tracking.changed_fields(project, tap) == []

def test_resolve_access_precedencia():
    assert permissoes.resolve_access('vendedor', {'projetos': 'visualizacao'}, {'projetos': 'completo'},
                                     'projetos') == 'completo'
    assert permissoes.resolve_access('vendedor', {'projetos': 'visualizacao'}, {}, 'projetos') == 'visualizacao'
    assert permissoes.resolve_access('vendedor', {}, {}, 'dashboard') == 'nenhum'
    assert permissoes.resolve_access('admin', {}, {}, 'dashboard') == 'completo'

def test_utils():
    assert date_format_filter('2024-03-05 14:30:00') == '05/03/2024'
    assert date_format_filter('2024-03-05T14:30:00', include_time=True) == '05/03/2024 14:30'
    assert date_format_filter(None) == ''
    assert format_currency(1234.5) == 'R$ 1.234,50'
    assert format_currency(None) == 'R$ 0,00'
    assert from_json_filter('[1, 2]') == [1, 2]
    assert from_json_filter('{ruim', default=[]) == []
    assert parse_iso('2024-03-05') == datetime(2024, 3, 5)
    assert parse_iso('2024-03-05T10:00:00.000Z') == datetime(2024, 3, 5, 10, 0)
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
