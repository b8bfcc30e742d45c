"""Prompts de sistema enviados ao gateway de IA e o contexto que os alimenta."""
import json
from datetime import date

from ..utils import rows_to_dicts

PRODUTOS_TECNICOS = """### TIPOS DE PRODUTO (apresente nesta ordem):
1. **PORTARIA DIGITAL** - Autônoma. O visitante toca o leitor facial e a chamada vai por vídeo ao App do morador; sem resposta, redireciona para até 3 telefones. Não passa pela central.
2. **PORTARIA REMOTA** - Sem porteiro físico. A Central de Portaria atende via câmeras e interfone (leitor facial SIP).
3. **PORTARIA ASSISTIDA** - Porteiro físico usando o software para interfones, encomendas e visitantes. Pode incluir Kit Estação de Trabalho.
4. **PORTARIA EXPRESSA** - Leitor facial na portaria externa, até 20 apartamentos e no máximo 2 portas. Sem portão e sem CFTV; apenas alarme.

### TECNOLOGIAS:
- **CFTV**: analógico ou digital (câmeras, DVR/NVR). Câmeras de elevador são específicas.
- **Alarme perimetral**: IVA ou cerca elétrica, com cabo blindado até a central.
- **Acesso de pedestres**: sempre leitor facial. ECLUSA = porta externa + porta interna.
- **Acesso de veículos**: tag, controle 433MHz ou facial. Portões deslizante, pivotante, pivotante duplo, basculante, guilhotina.
- **Cancelas**, **catracas** (sempre facial) e **totens** simples ou duplos.

### INTERFONIA:
- **Híbrida**: central analógica (Comunic 16/48/80, CP92/112/192) + ATA KHOMP KAP 311-X + TDMI 300.
- **Digital**: TDMI 400 + ATA KHOMP 311x; monitores SIP opcionais."""

CHECKLIST_VISITA = """## CHECKLIST DA VISITA (siga esta ordem):
1. INFORMAÇÕES GERAIS - produto, blocos, unidades, andares, portaria e tipo de telefonia. Fotos: fachada.
2. ACESSO DE PEDESTRES - portas para a rua que iremos controlar, saída autenticada ou não, eclusas, portas dos blocos. Fotos: por dentro e por fora de cada porta.
3. ACESSO DE VEÍCULOS - portões que iremos controlar, tipo e método de abertura. Fotos: portões e motores.
4. CFTV - câmeras e DVRs atuais, aproveitamento (itens aproveitados custam 50% do valor), câmeras novas. Cada porta e portão controlado deve ter uma câmera.
5. PERÍMETRO - alarme perimetral, metros de cabo blindado.
6. INTERFONIA - quantidade e tipo (híbrida ou digital). Interfones NÃO são aproveitados; cobra-se apenas o serviço de manutenção de interfonia.
7. INFRAESTRUTURA - metros de eletroduto até o rack e do QDG até o rack."""

REGRAS_CATALOGO = """## REGRAS CRÍTICAS DE PRODUTOS E KITS:
- Só referencie produtos e kits que existem no catálogo acima, com o nome e o código exatos.
- Priorize KITS sobre produtos avulsos.
- Se não existir item no catálogo para a necessidade, diga que é preciso consultar a equipe técnica.
- Sempre que incluir um ATA, inclua também 1 NOBREAK 600VA e 100 metros de CABO UTP CAT 5."""

REGRAS_CONVERSA = """## REGRAS GERAIS:
- Faça apenas UMA pergunta por vez e use "iremos controlar" ao perguntar quantidades.
- Não peça confirmação para incluir itens: avise que incluiu e siga para a próxima pergunta.
- Peça fotos específicas em cada etapa; mensagens curtas, no máximo 2-3 linhas.
- Ao exibir resumos, separe Kits, Itens avulsos e Itens aproveitados (50% do valor).
- Quando todas as seções estiverem cobertas, instrua o vendedor a clicar em **Gerar Proposta**.
- Nunca pergunte dados já listados em "DADOS JÁ COLETADOS DA SESSÃO".
- Responda em português brasileiro."""

INSTRUCAO_JSON = """## INSTRUÇÃO ADICIONAL OBRIGATÓRIA:
Além da proposta em markdown, retorne ao final um bloco JSON delimitado por ```json e ``` no formato:
{
  "kits": [{"nome": "NOME DO KIT", "codigo": "CÓD", "id_kit": 123, "qtd": 1, "valor_locacao": 100.00, "valor_instalacao": 50.00}],
  "avulsos": [{"nome": "NOME DO PRODUTO", "codigo": "CÓD", "id_produto": 456, "qtd": 2, "valor_locacao": 30.00, "valor_instalacao": 20.00}],
  "aproveitados": [{"nome": "NOME DO PRODUTO", "codigo": "CÓD", "id_produto": 789, "qtd": 5, "valor_locacao": 15.00, "valor_instalacao": 10.00, "desconto": 50}],
  "servicos": [{"nome": "NOME DO SERVIÇO", "codigo": "CÓD", "id_produto": 101, "qtd": 1, "valor_locacao": 0, "valor_instalacao": 80.00}],
  "mensalidade_total": 999.00,
  "taxa_conexao_total": 999.00
}
- valor_locacao e valor_instalacao são UNITÁRIOS (aproveitados já com 50% aplicado).
- "servicos" são os produtos do subgrupo "Serviço".
- Use os preços EXATOS do catálogo."""

PEDIDO_PROPOSTA = ("Agora gere a proposta comercial completa baseada em tudo que coletamos na visita. "
                   "Inclua o bloco JSON estruturado ao final.")

RESUMO_PROJETO = """Você é um especialista em projetos de portaria digital e segurança condominial.
Seu papel é analisar os dados técnicos de um formulário de venda e gerar um resumo claro e profissional do escopo do projeto.

Regras:
- Escreva em português brasileiro formal
- Organize por tópicos (Infraestrutura, CFTV, Alarme, Controle de Acesso, etc.)
- Mencione apenas os itens preenchidos e use as quantidades disponíveis
- Destaque pontos de atenção e termine com um breve resumo do porte do projeto
- NÃO invente dados que não foram fornecidos"""

EXTRAIR_EQUIPAMENTOS = """Você é um especialista em análise de documentos técnicos de projetos de portaria digital e segurança condominial.

Extraia a LISTA DE EQUIPAMENTOS dos documentos fornecidos exatamente como constam, sem inventar itens ou quantidades.
Para cada equipamento: categoria (se houver), item, quantidade, unidade e observações.
Retorne APENAS JSON no formato:
{"equipamentos": [{"categoria": "CFTV", "item": "Câmera IP Bullet 2MP", "quantidade": 8, "unidade": "un", "observacoes": ""}]}
Se não encontrar lista de equipamentos, retorne {"equipamentos": []}."""

PEDIDO_EXTRACAO = "Extraia a lista completa de equipamentos dos documentos a seguir. Retorne APENAS o JSON estruturado."


def _dump(data, indent=None):
    return json.dumps(data, ensure_ascii=False, indent=indent, default=str)

def carregar_kits(db, apenas_ativos=True):
    """Kits com seus itens, cada item com o produto completo em 'produto'."""
    where = 'WHERE k.ativo = 1' if apenas_ativos else ''
    kits = rows_to_dicts(
        db.execute(f'SELECT k.* FROM orcamento_kits k {where} ORDER BY k.categoria, k.nome').fetchall(),
        json_fields=('palavras_chave', 'regras_condicionais'),
    )
    por_id = {k['id']: k for k in kits}
    for k in kits:
        k['itens'] = []
    if not kits:
        return kits
    placeholders = ','.join('?' for _ in por_id)
    rows = db.execute(f'''
        SELECT ki.id AS kit_item_id, ki.kit_id, ki.quantidade, p.*
        FROM orcamento_kit_itens ki
        JOIN orcamento_produtos p ON p.id = ki.produto_id
        WHERE ki.kit_id IN ({placeholders})
        ORDER BY p.nome
    ''', list(por_id)).fetchall()
    for r in rows:
        produto = dict(r)
        kit_id = produto.pop('kit_id')
        quantidade = produto.pop('quantidade')
        kit_item_id = produto.pop('kit_item_id')
        por_id[kit_id]['itens'].append({'id': kit_item_id, 'quantidade': quantidade, 'produto': produto})
    return kits

def contexto_orcamento(db):
    projects = rows_to_dicts(db.execute('''
        SELECT p.cliente_condominio_nome, p.cliente_cidade, p.cliente_estado, p.numero_unidades,
               s.qtd_apartamentos, s.qtd_blocos, s.qtd_portas_pedestre, s.qtd_portas_bloco,
               s.qtd_portoes_deslizantes, s.qtd_portoes_pivotantes, s.qtd_portoes_basculantes,
               s.cftv_novo_qtd_total_cameras, s.possui_cancela, s.possui_catraca, s.possui_totem,
               s.alarme_tipo, s.internet_exclusiva, s.produto
        FROM projects p JOIN sale_forms s ON s.project_id = p.id
        ORDER BY p.created_at DESC LIMIT 30
    ''').fetchall())
    portfolio = rows_to_dicts(db.execute('''
        SELECT razao_social, unidades, mensalidade, taxa_ativacao, cameras, portoes, portas, cancelas,
               catracas, totem_simples, totem_duplo, faciais_hik, faciais_avicam, tipo, sistema
        FROM customer_portfolio WHERE mensalidade IS NOT NULL
        ORDER BY created_at DESC LIMIT 30
    ''').fetchall())
    produtos = rows_to_dicts(db.execute(
        'SELECT * FROM orcamento_produtos WHERE ativo = 1 ORDER BY categoria, nome').fetchall())
    feedbacks = rows_to_dicts(db.execute('''
        SELECT acertos, erros, sugestoes, proposta_adequada, nota_precisao
        FROM orcamento_proposta_feedbacks ORDER BY created_at DESC LIMIT 20
    ''').fetchall())
    return {
        'projects': projects,
        'portfolio': portfolio,
        'produtos': produtos,
        'kits': carregar_kits(db),
        'feedbacks': feedbacks,
    }

def _catalogo_compacto(ctx):
    produtos = [{'id': p['id_produto'], 'c': p['codigo'], 'n': p['nome'], 'cat': p['categoria'],
                 'u': p['unidade'], 'p': p['preco_unitario'], 'min': p['valor_minimo'],
                 'loc': p['valor_locacao'], 'inst': p['valor_instalacao']} for p in ctx['produtos']]
    kits = [{'id': k['id_kit'], 'c': k['codigo'], 'n': k['nome'], 'cat': k['categoria'], 'p': k['preco_kit'],
             'min': k['valor_minimo'], 'loc': k['valor_locacao'], 'inst': k['valor_instalacao'],
             'uso': k.get('descricao_uso'), 'kw': k.get('palavras_chave') or [],
             'regras': k.get('regras_condicionais') or [],
             'itens': [{'n': i['produto']['nome'], 'q': i['quantidade']} for i in k['itens']]}
            for k in ctx['kits']]
    return produtos, kits

def dados_sessao(sessao):
    if not sessao:
        return ''
    linhas = ['## DADOS JÁ COLETADOS DA SESSÃO (NÃO pergunte novamente):',
              f"- Nome do Condomínio: {sessao['nome_cliente']}"]
    for campo, rotulo in (('endereco_condominio', 'Endereço'), ('email_cliente', 'Email do Cliente'),
                          ('telefone_cliente', 'Telefone do Cliente'), ('vendedor_nome', 'Vendedor')):
        if sessao.get(campo):
            linhas.append(f'- {rotulo}: {sessao[campo]}')
    return '\n'.join(linhas)

def prompt_visita(ctx, sessao):
    produtos, kits = _catalogo_compacto(ctx)
    carteira = [{'r': c['razao_social'], 'u': c['unidades'], 'm': c['mensalidade'], 't': c['taxa_ativacao']}
                for c in ctx['portfolio'][:5]]
    return f"""Você é um consultor técnico especialista em portaria digital e segurança condominial.

## DADOS INTERNOS PRIMEIRO
Sua principal fonte são os dados internos da plataforma (catálogo, kits, carteira de clientes, regras de precificação). Conhecimento externo é apenas complemento e deve ser identificado.

{dados_sessao(sessao)}

Você está guiando um VENDEDOR que está FISICAMENTE no condomínio fazendo uma visita técnica.

{PRODUTOS_TECNICOS}

{CHECKLIST_VISITA}

## CATÁLOGO DE PRODUTOS E KITS:

**Produtos:**
{_dump(produtos)}

**Kits (PRIORIZE kits sobre produtos avulsos):**
{_dump(kits)}

## REFERÊNCIAS DE PREÇOS DA CARTEIRA:
{_dump(carteira)}

{REGRAS_CATALOGO}

{REGRAS_CONVERSA}"""

def _linha_feedback(f):
    icone = {'sim': '[OK]', 'parcialmente': '[PARCIAL]'}.get(f.get('proposta_adequada'), '[ERRO]')
    partes = [f"- {icone} Nota {f.get('nota_precisao') or '?'}/5"]
    if f.get('acertos'):
        partes.append(f"Acertos: {f['acertos']}")
    if f.get('erros'):
        partes.append(f"Erros: {f['erros']}")
    if f.get('sugestoes'):
        partes.append(f"Sugestão: {f['sugestoes']}")
    return ' | '.join(partes)

def prompt_proposta(ctx, sessao, hoje=None):
    hoje = hoje or date.today()
    produtos = [{'id': p['id_produto'], 'codigo': p['codigo'], 'nome': p['nome'], 'categoria': p['categoria'],
                 'unidade': p['unidade'], 'preco_atual': p['preco_unitario'], 'preco_minimo': p['valor_minimo'],
                 'locacao': p['valor_locacao'], 'instalacao': p['valor_instalacao']} for p in ctx['produtos']]
    kits = [{'id_kit': k['id_kit'], 'codigo': k['codigo'], 'nome': k['nome'], 'categoria': k['categoria'],
             'preco_total': k['preco_kit'], 'minimo_total': k['valor_minimo'], 'locacao_total': k['valor_locacao'],
             'instalacao_total': k['valor_instalacao'], 'quando_usar': k.get('descricao_uso'),
             'palavras_chave': k.get('palavras_chave') or [], 'regras': k.get('regras_condicionais') or [],
             'itens': [{'produto': i['produto']['nome'], 'qtd': i['quantidade']} for i in k['itens']]}
            for k in ctx['kits']]
    carteira = [{'razao': c['razao_social'], 'unidades': c['unidades'], 'mensalidade': c['mensalidade'],
                 'taxa': c['taxa_ativacao'], 'cameras': c['cameras'], 'portoes': c['portoes'],
                 'portas': c['portas'], 'tipo': c['tipo']} for c in ctx['portfolio'][:15]]
    feedbacks = '\n'.join(_linha_feedback(f) for f in ctx['feedbacks']) or 'Nenhum feedback registrado ainda.'
    vendedor = (sessao or {}).get('vendedor_nome') or '[vendedor]'

    return f"""Você é um especialista em propostas comerciais de portaria digital e segurança condominial (OUTSOURCING PCI).

Use EXCLUSIVAMENTE os produtos, kits, preços e dados do catálogo interno abaixo.

Baseado no histórico da visita técnica com o vendedor, gere uma PROPOSTA COMERCIAL em markdown com esta estrutura:

# PROPOSTA
## OUTSOURCING PCI
- PROPOSTA / DATA: {hoje.strftime('%d/%m/%Y')}
- Cliente, telefone, contato, e-mail
- Consultor: {vendedor}
- Endereço de cobrança e de instalação

### PRODUTOS UTILIZADOS
| Qtde | Descrição |
(um produto ou kit por linha, com o NOME EXATO do catálogo em MAIÚSCULAS e quantidade com unidade, ex: "2.00un")

| **MONITORAMENTO 24 HORAS COM UNIDADE VOLANTE** | **R$ [valor]/mês** |
| **TAXA DE CONEXÃO** | **R$ [valor]** |

### Observações:
**ESTA PROPOSTA TEM VALIDADE DE 5 DIAS ÚTEIS.**

Use a carteira de clientes como referência para mensalidade e taxa; sem dados suficientes, escreva "Sob consulta". Se faltar informação, escreva "A definir".

## CATÁLOGO DE PRODUTOS:
{_dump(produtos, 2)}

## CATÁLOGO DE KITS:
{_dump(kits, 2)}

## CARTEIRA DE CLIENTES (referência de preços):
{_dump(carteira, 2)}

## PROJETOS VENDIDOS RECENTES (dimensionamento de referência):
{_dump(ctx['projects'][:10])}

## APRENDIZADO COM FEEDBACKS ANTERIORES:
{feedbacks}

Responda em português brasileiro."""

def contexto_painel(db):
    produtos = rows_to_dicts(db.execute('''
        SELECT id_produto, codigo, nome, categoria, subgrupo, unidade, preco_unitario, valor_minimo,
               valor_locacao, valor_minimo_locacao, valor_instalacao, descricao, qtd_max
        FROM orcamento_produtos WHERE ativo = 1 ORDER BY categoria, nome
    ''').fetchall())
    portfolio = rows_to_dicts(db.execute('''
        SELECT razao_social, contrato, unidades, mensalidade, taxa_ativacao, cameras, portoes, portas,
               cancelas, catracas, totem_simples, totem_duplo, faciais_hik, faciais_avicam, dvr_nvr,
               tipo, sistema, filial, praca, status_implantacao, data_ativacao
        FROM customer_portfolio ORDER BY created_at DESC LIMIT 50
    ''').fetchall())
    regras = rows_to_dicts(db.execute('SELECT campo, percentual, base_campo, descricao FROM orcamento_regras_precificacao').fetchall())
    sessoes = rows_to_dicts(db.execute('''
        SELECT id, nome_cliente, vendedor_nome, status, proposta_gerada_at, created_at, endereco_condominio
        FROM orcamento_sessoes ORDER BY created_at DESC LIMIT 15
    ''').fetchall())
    mensagens = rows_to_dicts(db.execute('''
        SELECT role, content, created_at, sessao_id FROM orcamento_mensagens
        ORDER BY created_at DESC, id DESC LIMIT 50
    ''').fetchall())
    counts = db.execute('''
        SELECT (SELECT COUNT(*) FROM orcamento_sessoes) AS sessoes,
               (SELECT COUNT(*) FROM orcamento_mensagens) AS mensagens,
               (SELECT COUNT(*) FROM orcamento_midias) AS midias,
               (SELECT COUNT(*) FROM orcamento_sessoes WHERE proposta_gerada IS NOT NULL) AS propostas
    ''').fetchone()
    return {
        'produtos': produtos,
        'kits': carregar_kits(db),
        'portfolio': portfolio,
        'regras': regras,
        'sessoes': sessoes,
        'mensagens': mensagens,
        'counts': dict(counts),
    }

def prompt_painel(ctx):
    counts = ctx['counts']
    kits = [{'id_kit': k['id_kit'], 'codigo': k['codigo'], 'nome': k['nome'], 'categoria': k['categoria'],
             'preco_kit': k['preco_kit'], 'valor_locacao': k['valor_locacao'],
             'valor_instalacao': k['valor_instalacao'], 'descricao_uso': k.get('descricao_uso'),
             'palavras_chave': k.get('palavras_chave') or [],
             'itens': [{'codigo': i['produto']['codigo'], 'nome': i['produto']['nome'], 'qtd': i['quantidade']}
                       for i in k['itens']]}
            for k in ctx['kits']]
    mensagens = [{'role': m['role'], 'content': (m['content'] or '')[:300], 'sessao_id': m['sessao_id']}
                 for m in ctx['mensagens']]
    return f"""Você é a IA da plataforma, especialista em portaria digital e segurança condominial. Você tem acesso em tempo real às fontes de dados abaixo. Responda com base EXCLUSIVAMENTE nesses dados reais, nunca invente dados.

## FONTES DE DADOS ATIVAS
1. Catálogo de Produtos: {len(ctx['produtos'])} produtos ativos
2. Kits de Equipamentos: {len(ctx['kits'])} kits ativos
3. Carteira de Clientes: {len(ctx['portfolio'])} clientes carregados
4. Regras de Precificação: {len(ctx['regras'])} regras
5. Histórico de Sessões: {counts['sessoes']} sessões de orçamento
6. Mensagens do Chat: {counts['mensagens']} mensagens
7. Mídias: {counts['midias']} fotos/vídeos de visitas
8. Propostas Geradas: {counts['propostas']} propostas

Quando perguntado sobre seu aprendizado, detalhe o que sabe de cada fonte, quantos registros e exemplos concretos.

{PRODUTOS_TECNICOS}

## PRODUTOS:
{_dump(ctx['produtos'])}

## KITS:
{_dump(kits)}

## REGRAS DE PRECIFICAÇÃO:
{_dump(ctx['regras'])}

## CARTEIRA DE CLIENTES:
{_dump(ctx['portfolio'])}

## SESSÕES RECENTES:
{_dump(ctx['sessoes'])}

## MENSAGENS RECENTES:
{_dump(mensagens)}

Responda em português brasileiro, de forma objetiva."""

def prompt_resumo_usuario(sale_form, project_info):
    info = ''
    if project_info:
        info = (f"- Condomínio: {project_info.get('nome')}\n"
                f"- Cidade: {project_info.get('cidade')}, {project_info.get('estado')}\n"
                f"- Vendedor: {project_info.get('vendedor')}")
    return f"""Gere um resumo executivo do escopo deste projeto de portaria digital:

**Informações do Projeto:**
{info}

**Dados do Formulário de Venda:**
{_dump(sale_form, 2)}

Gere o resumo do escopo do projeto baseado nesses dados."""
