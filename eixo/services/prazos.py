import calendar
from datetime import datetime, timedelta

from ..constants import PENDENCIA_TIPOS, ENGINEERING_STATUS_DAYS
from ..utils import parse_iso

FREQUENCIA_SEMANAS = {'SEMANAL': 1, 'QUINZENAL': 2}
FREQUENCIA_MESES = {
    'MENSAL': 1,
    'BIMESTRAL': 2,
    'TRIMESTRAL': 3,
    'QUADRIMESTRAL': 4,
    'SEMESTRAL': 6,
    'ANUAL': 12,
}

FECHADAS = ('CONCLUIDO', 'CANCELADO')
PRAZO_CLIENTE_DIAS = 30


def add_months(base, months):
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    # 31/01 + 1 mês -> 28/02 (ou 29)
    day = min(base.day, calendar.monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)

def proxima_execucao(frequencia, base):
    """Próxima data de uma agenda preventiva a partir de ``base`` (date)."""
    if isinstance(base, str):
        base = parse_iso(base).date()
    elif isinstance(base, datetime):
        base = base.date()
    if frequencia in FREQUENCIA_SEMANAS:
        return base + timedelta(weeks=FREQUENCIA_SEMANAS[frequencia])
    return add_months(base, FREQUENCIA_MESES.get(frequencia, 1))

def sla_dias(tipo):
    info = PENDENCIA_TIPOS.get(tipo)
    return info[2] if info else 0

def setor(tipo):
    info = PENDENCIA_TIPOS.get(tipo)
    return info[1] if info else None

def prazo_pendencia(tipo, abertura, prazo_informado=None):
    """
    Prazo de uma pendência: abertura + SLA do setor.
    Tipos do cliente (SLA 0) usam o prazo informado ou abertura + PRAZO_CLIENTE_DIAS.
    """
    abertura = parse_iso(abertura)
    dias = sla_dias(tipo)
    if dias == 0:
        if prazo_informado:
            return parse_iso(prazo_informado)
        return abertura + timedelta(days=PRAZO_CLIENTE_DIAS)
    return abertura + timedelta(days=dias)

def atrasada(pendencia, agora=None):
    agora = agora or datetime.now()
    if pendencia['status'] in FECHADAS or not pendencia.get('data_prazo'):
        return False
    return parse_iso(pendencia['data_prazo']) < agora

def vence_em_24h(pendencia, agora=None):
    agora = agora or datetime.now()
    if pendencia['status'] in FECHADAS or not pendencia.get('data_prazo'):
        return False
    prazo = parse_iso(pendencia['data_prazo'])
    return agora <= prazo <= agora + timedelta(hours=24)

def dias_restantes(prazo, agora=None):
    if not prazo:
        return None
    agora = agora or datetime.now()
    return (parse_iso(prazo).date() - agora.date()).days

def resumo_pendencias(pendencias, agora=None):
    agora = agora or datetime.now()
    abertas = [p for p in pendencias if p['status'] not in FECHADAS]
    concluidas = [p for p in pendencias if p['status'] == 'CONCLUIDO' and p.get('data_conclusao')]

    tempo_medio = None
    if concluidas:
        total = sum(
            (parse_iso(p['data_conclusao']) - parse_iso(p['data_abertura'])).total_seconds()
            for p in concluidas
        )
        tempo_medio = round(total / len(concluidas) / 86400, 1)

    por_setor = {}
    for p in abertas:
        por_setor[p.get('setor') or 'Outros'] = por_setor.get(p.get('setor') or 'Outros', 0) + 1

    return {
        'total': len(pendencias),
        'abertas': len(abertas),
        'atrasadas': sum(1 for p in abertas if atrasada(p, agora)),
        'vencendo_24h': sum(1 for p in abertas if vence_em_24h(p, agora)),
        'tempo_medio_resolucao_dias': tempo_medio,
        'por_setor': por_setor,
    }

def prazo_engenharia(status, inicio):
    """Data limite da etapa de engenharia (None quando a etapa não tem prazo)."""
    dias = ENGINEERING_STATUS_DAYS.get(status, 0)
    if not dias or not inicio:
        return None
    return parse_iso(inicio) + timedelta(days=dias)
