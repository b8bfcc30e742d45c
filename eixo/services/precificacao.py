from ..constants import REGRAS_PADRAO

CAMPOS = ['valor_minimo', 'valor_locacao', 'valor_minimo_locacao', 'valor_instalacao']


def percentuais(regras, tipo='produtos'):
    """
    regras: { campo: percentual } como salvo em orcamento_regras_precificacao.
    Returns { campo: fração } para o tipo (produtos usa os campos puros, servicos o prefixo servico_).
    """
    prefix = '' if tipo == 'produtos' else 'servico_'
    result = {}
    for campo in CAMPOS:
        chave = prefix + campo
        percentual = regras.get(chave) or REGRAS_PADRAO[chave][0]
        result[campo] = percentual / 100
    return result

def calcular_valores(preco_unitario, pcts):
    va = float(preco_unitario)
    locacao = va * pcts['valor_locacao']
    return {
        'valor_minimo': round(va * pcts['valor_minimo'], 2),
        'valor_locacao': round(locacao, 2),
        'valor_minimo_locacao': round(locacao * pcts['valor_minimo_locacao'], 2),
        'valor_instalacao': round(va * pcts['valor_instalacao'], 2),
    }

def is_servico(produto):
    return (produto.get('subgrupo') or '') == 'Serviço'

def aplicar(produtos, regras, tipo='produtos'):
    """
    Recalcula os valores derivados dos produtos (ou serviços) com preço > 0.
    Returns a list of (produto_id, valores).
    """
    pcts = percentuais(regras, tipo)
    updates = []
    for produto in produtos:
        if (tipo == 'servicos') != is_servico(produto):
            continue
        if not produto.get('preco_unitario') or produto['preco_unitario'] <= 0:
            continue
        updates.append((produto['id'], calcular_valores(produto['preco_unitario'], pcts)))
    return updates

def totais_kit(itens):
    """Soma os valores dos produtos de um kit ponderados pela quantidade."""
    totais = {'preco_kit': 0.0, 'valor_minimo': 0.0, 'valor_locacao': 0.0,
              'valor_minimo_locacao': 0.0, 'valor_instalacao': 0.0}
    for item in itens:
        qtd = item.get('quantidade') or 0
        totais['preco_kit'] += (item.get('preco_unitario') or 0) * qtd
        for campo in CAMPOS:
            totais[campo] += (item.get(campo) or 0) * qtd
    return {k: round(v, 2) for k, v in totais.items()}
