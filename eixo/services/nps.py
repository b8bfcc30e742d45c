def categoria(nota):
    if nota >= 9:
        return 'promotor'
    if nota >= 7:
        return 'neutro'
    return 'detrator'

def score(notas):
    """NPS = % promotores - % detratores, arredondado. None sem respostas."""
    notas = [n for n in notas if n is not None]
    if not notas:
        return None
    promotores = sum(1 for n in notas if categoria(n) == 'promotor')
    detratores = sum(1 for n in notas if categoria(n) == 'detrator')
    return round((promotores - detratores) / len(notas) * 100)

def resumo(notas):
    notas = [n for n in notas if n is not None]
    contagem = {'promotor': 0, 'neutro': 0, 'detrator': 0}
    for n in notas:
        contagem[categoria(n)] += 1
    return {
        'total': len(notas),
        'promotores': contagem['promotor'],
        'neutros': contagem['neutro'],
        'detratores': contagem['detrator'],
        'media': round(sum(notas) / len(notas), 1) if notas else None,
        'nps': score(notas),
    }
