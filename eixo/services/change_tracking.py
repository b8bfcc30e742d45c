"""Campos alterados desde a última devolução (PENDENTE_INFO -> reenvio)."""
from ..utils import from_json_filter

PROJECT_FIELDS = [
    'cliente_condominio_nome',
    'cliente_cidade',
    'cliente_estado',
    'endereco_condominio',
    'prazo_entrega_projeto',
    'data_assembleia',
]

TAP_FIELDS = [
    'portaria_virtual_atendimento_app',
    'numero_blocos',
    'interfonia',
    'controle_acessos_pedestre_descricao',
    'controle_acessos_veiculo_descricao',
    'alarme_descricao',
    'cftv_dvr_descricao',
    'cftv_elevador_possui',
    'marcacao_croqui_confirmada',
    'info_custo',
    'info_cronograma',
    'info_adicionais',
]


def snapshot(project, tap_form):
    data = {f: project.get(f) for f in PROJECT_FIELDS}
    data['tap_form'] = {f: tap_form.get(f) for f in TAP_FIELDS} if tap_form else None
    return data

def changed_fields(project, tap_form):
    original = from_json_filter(project.get('dados_originais_pre_reenvio'), default=None)
    if not original:
        return []

    changed = []
    for field in PROJECT_FIELDS:
        if field in original and original[field] != project.get(field):
            changed.append(field)

    original_tap = original.get('tap_form')
    if original_tap and tap_form:
        for field in TAP_FIELDS:
            if original_tap.get(field) != tap_form.get(field):
                changed.append(field)
    return changed
