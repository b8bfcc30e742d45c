"""Rótulos e enumerações fixas usados pelas telas e pelos handlers da API."""

ROLES = [
    'admin', 'vendedor', 'projetos', 'gerente_comercial', 'implantacao',
    'administrativo', 'sucesso_cliente', 'supervisor_operacoes',
]

ROLE_LABELS = {
    'admin': 'Administrador',
    'vendedor': 'Vendedor',
    'projetos': 'Projetos',
    'gerente_comercial': 'Gerente Comercial',
    'implantacao': 'Implantação',
    'administrativo': 'Administrativo',
    'sucesso_cliente': 'Sucesso do Cliente',
    'supervisor_operacoes': 'Supervisor de Operações',
}

# Projetos

STATUS_LABELS = {
    'RASCUNHO': 'Rascunho',
    'ENVIADO': 'Enviado',
    'EM_ANALISE': 'Em Análise',
    'PENDENTE_INFO': 'Pendente Info',
    'APROVADO_PROJETO': 'Aprovado',
    'CANCELADO': 'Cancelado',
}

# Cores usadas no email de mudança de status
STATUS_COLORS = {
    'RASCUNHO': '#6B7280',
    'ENVIADO': '#3B82F6',
    'EM_ANALISE': '#8B5CF6',
    'PENDENTE_INFO': '#F59E0B',
    'APROVADO_PROJETO': '#10B981',
    'CANCELADO': '#EF4444',
}

ENGINEERING_STATUS_LABELS = {
    'EM_RECEBIMENTO': 'Em Recebimento',
    'EM_PRODUCAO': 'Em Produção',
    'RETORNAR': 'Retornar',
    'CONCLUIDO': 'Concluído',
}

ENGINEERING_STATUS_DAYS = {
    'EM_RECEBIMENTO': 1,
    'EM_PRODUCAO': 5,
    'RETORNAR': 0,
    'CONCLUIDO': 0,
}

SALE_STATUS_LABELS = {
    'NAO_INICIADO': 'Não Iniciado',
    'EM_ANDAMENTO': 'Em Andamento',
    'CONCLUIDO': 'Concluído',
}

IMPLANTACAO_STATUS_LABELS = {
    'A_EXECUTAR': 'A Executar',
    'EM_EXECUCAO': 'Em Execução',
    'CONCLUIDO_IMPLANTACAO': 'Concluído',
}

CHECKLIST_TIPOS = {
    'check_projeto': ('Check de Projeto', [
        'Planta baixa conferida',
        'Posicionamento de câmeras definido',
        'Pontos de rede identificados',
        'Infraestrutura elétrica verificada',
        'Locais de instalação de equipamentos definidos',
        'Acesso ao QDG verificado',
        'Pontos de controle de acesso mapeados',
        'Portões e cancelas identificados',
    ]),
    'laudo_visita_startup': ('Laudo e Check-list de Visita de Start-up', [
        'Infraestrutura existente avaliada',
        'Condições do local verificadas',
        'Acesso para equipe técnica confirmado',
        'Materiais necessários listados',
        'Cronograma de execução definido',
        'Responsáveis identificados',
        'Fotos do local registradas',
        'Observações técnicas anotadas',
    ]),
    'laudo_instalador': ('Laudo e Check-list do Instalador', [
        'Cabeamento estruturado instalado',
        'Câmeras instaladas e posicionadas',
        'DVR/NVR instalado e configurado',
        'Pontos de rede testados',
        'Infraestrutura elétrica adequada',
        'Equipamentos de controle de acesso instalados',
        'Testes de funcionamento realizados',
        'Documentação técnica preenchida',
    ]),
    'laudo_vidraceiro': ('Laudo e Check-list do Vidraceiro', [
        'Medidas conferidas',
        'Vidros instalados corretamente',
        'Acabamentos finalizados',
        'Vedação adequada',
        'Limpeza realizada',
        'Funcionamento de portas/janelas testado',
        'Ferragens instaladas',
        'Qualidade do material verificada',
    ]),
    'laudo_serralheiro': ('Laudo e Check-list do Serralheiro', [
        'Estruturas metálicas instaladas',
        'Portões instalados e alinhados',
        'Cancelas instaladas',
        'Soldas e acabamentos conferidos',
        'Pintura/tratamento anticorrosivo aplicado',
        'Funcionamento mecânico testado',
        'Travas e fechaduras instaladas',
        'Automação compatível verificada',
    ]),
    'laudo_conclusao': ('Laudo e Check-list de Conclusão do Supervisor', [
        'Todos os equipamentos instalados',
        'Sistema de CFTV operacional',
        'Controle de acesso funcionando',
        'Interfonia operacional',
        'Alarme configurado e testado',
        'Integração com portaria virtual verificada',
        'Treinamento básico realizado',
        'Documentação entregue',
        'Limpeza do local realizada',
        'Aceite do cliente obtido',
    ]),
    'check_programacao': ('Check e Laudo de Programação', [
        'Sistema configurado no servidor',
        'Usuários cadastrados',
        'Permissões configuradas',
        'Câmeras integradas ao sistema',
        'Controle de acesso programado',
        'Tags/cartões cadastrados',
        'Alarme integrado',
        'Aplicativo configurado',
        'Testes de funcionamento realizados',
        'Backup configurado',
    ]),
}

# Etapas da execução; cada marcação guarda a data em <campo>_at
ETAPAS_IMPLANTACAO = {
    1: ('Contrato Assinado', ['contrato_assinado']),
    2: ('Contrato Cadastrado', ['contrato_cadastrado']),
    3: ('Boas Vindas', ['ligacao_boas_vindas', 'cadastro_gear', 'sindico_app', 'conferencia_tags']),
    4: ('Visita de Implantação', ['check_projeto', 'agendamento_visita_startup', 'laudo_visita_startup']),
    5: ('Laudos de Execução', ['laudo_instalador', 'laudo_vidraceiro', 'laudo_serralheiro',
                               'laudo_conclusao_supervisor']),
    6: ('Programação', ['check_programacao', 'confirmacao_ativacao_financeira']),
    7: ('Visita Comercial', ['agendamento_visita_comercial', 'laudo_visita_comercial']),
    8: ('Operação Assistida', []),
    9: ('Concluído', ['concluido']),
    10: ('Pesquisa de Satisfação', ['pesquisa_satisfacao_realizada']),
}

OPERACAO_ASSISTIDA_DIAS = 30

ATTACHMENT_TYPE_LABELS = {
    'PLANTA_BAIXA': 'Planta Baixa',
    'CROQUI': 'Croqui',
    'IMAGENS': 'Imagens',
    'FOTOS_EQUIP_APROVEITADOS': 'Fotos Equipamentos Aproveitados',
    'OUTROS': 'Outros',
    'PLANTA_CROQUI_DEVOLUCAO': 'Planta/Croqui (Devolução)',
    'LISTA_EQUIPAMENTOS': 'Lista de Equipamentos',
    'LISTA_ATIVIDADES': 'Lista de Atividades',
    'CENTRAL_PORTARIA_FOTOS': 'Fotos Central de Portaria',
    'QDG_FOTO': 'Foto QDG',
    'INTERFONIA_FOTO': 'Foto Interfonia',
    'PORTAS_FOTOS': 'Fotos das Portas',
    'PORTOES_FOTOS': 'Fotos dos Portões',
    'CFTV_CENTRAL_FOTO': 'Foto Central CFTV',
    'DVRS_FOTOS': 'Fotos dos DVRs',
    'CAMERAS_INSTALADAS_FOTOS': 'Fotos Câmeras Instaladas',
    'ALARME_CENTRAL_FOTO_IVA': 'Foto Central Alarme (IVA)',
    'ALARME_CENTRAL_FOTO_CERCA': 'Foto Central Alarme (Cerca)',
    'CHOQUE_FOTO': 'Foto Central de Choque',
    'CERCA_FOTOS': 'Fotos da Cerca Elétrica',
    'CANCELA_FOTOS': 'Fotos das Cancelas',
    'CATRACA_FOTOS': 'Fotos das Catracas',
    'TOTEM_FOTOS': 'Fotos dos Totens',
    'CAMERAS_NOVAS_FOTOS': 'Fotos Câmeras Novas',
}

CROQUI_ITEM_LABELS = {
    'CAMERAS_EXISTENTES': 'Câmeras Existentes',
    'CAMERAS_NOVAS': 'Câmeras Novas',
    'PONTOS_CAMERAS': 'Pontos de Câmeras',
    'ALARME_PERIMETRAL': 'Alarme Perimetral',
    'OUTROS': 'Outros',
}

PORTARIA_VIRTUAL_LABELS = {
    'SIM_SEM_TRANSBORDO': 'Sim, sem transbordo',
    'SIM_COM_TRANSBORDO': 'Sim, com transbordo',
    'NAO': 'Não',
}

MODALIDADE_PORTARIA_LABELS = {
    'VIRTUAL': 'Portaria Virtual',
    'PRESENCIAL': 'Portaria Presencial',
    'CA_MONITORADO': 'CA Monitorado',
    'VIRTUAL_APOIO': 'Virtual + Apoio',
}

CFTV_ELEVADOR_LABELS = {
    'POSSUI': 'Possui',
    'NAO_POSSUI': 'Não possui',
    'NAO_INFORMADO': 'Não informado',
}

METODO_ACIONAMENTO_LABELS = {
    'TAG_VEICULAR': 'Tag Veicular',
    'CONTROLE': 'Controle',
    'MULTIPLOS_ACIONAMENTOS': 'Múltiplos Acionamentos',
    'FACIAL_PAREDE': 'Facial na Parede',
    'FACIAL_TOTEM': 'Facial de Totem',
}

ALARME_TIPO_LABELS = {
    'IVA': 'IVA',
    'CERCA_ELETRICA': 'Cerca Elétrica',
    'NENHUM': 'Nenhum',
}

# Estoque

ESTOQUE_TIPO_LABELS = {
    'INSTALACAO': 'Instalação',
    'MANUTENCAO': 'Manutenção',
    'URGENCIA': 'Urgência',
}

ESTOQUE_STATUS_LABELS = {
    'OK': 'OK',
    'CRITICO': 'Crítico',
    'SEM_BASE': 'Sem Base',
}

# Código de local do ERP -> local de estoque
LOCATION_CODE_MAP = {
    '135000': {'cidade': 'BH', 'tipo': 'INSTALACAO', 'nome_local': 'BH - Instalação'},
    '139000': {'cidade': 'BH', 'tipo': 'MANUTENCAO', 'nome_local': 'BH - Manutenção'},
    '225104': {'cidade': 'VIX', 'tipo': 'MANUTENCAO', 'nome_local': 'VIX - Manutenção'},
    '2205900': {'cidade': 'RIO', 'tipo': 'MANUTENCAO', 'nome_local': 'RIO - Manutenção'},
    '2250800': {'cidade': 'CD_SR', 'tipo': 'INSTALACAO', 'nome_local': 'CD SR - Instalação'},
}

# Manutenção

CHAMADO_TIPO_LABELS = {
    'PREVENTIVO': 'Preventivo',
    'ELETIVO': 'Eletivo',
    'CORRETIVO': 'Corretivo',
}

CHAMADO_STATUS_LABELS = {
    'AGENDADO': 'Agendado',
    'EM_ANDAMENTO': 'Em Andamento',
    'CONCLUIDO': 'Concluído',
    'CANCELADO': 'Cancelado',
    'REAGENDADO': 'Reagendado',
}

PENDENCIA_STATUS_LABELS = {
    'ABERTO': 'Aberto',
    'EM_ANDAMENTO': 'Em Andamento',
    'CONCLUIDO': 'Concluído',
    'CANCELADO': 'Cancelado',
}

# tipo -> (rótulo, setor, SLA em dias)
PENDENCIA_TIPOS = {
    'CLIENTE_OBRA': ('Obra', 'Cliente', 0),
    'CLIENTE_AGENDA': ('Agenda do Cliente', 'Cliente', 0),
    'CLIENTE_LIMPEZA_VEGETACAO': ('Limpeza de Vegetação', 'Cliente', 0),
    'CLIENTE_CONTRATACAO_SERVICOS': ('Contratação de Serviços', 'Cliente', 0),
    'DEPT_COMPRAS': ('Compras', 'Compras', 10),
    'DEPT_CADASTRO': ('Cadastro', 'Cadastro', 2),
    'DEPT_ALMOXARIFADO': ('Almoxarifado', 'Almoxarifado', 1),
    'DEPT_FATURAMENTO': ('Faturamento', 'Faturamento', 1),
    'DEPT_CONTAS_RECEBER': ('Contas a Receber', 'Contas a Receber', 4),
    'DEPT_FISCAL': ('Fiscal', 'Fiscal', 2),
    'DEPT_IMPLANTACAO': ('Implantação', 'Implantação', 4),
}

FREQUENCIAS = [
    'SEMANAL', 'QUINZENAL', 'MENSAL', 'BIMESTRAL', 'TRIMESTRAL',
    'QUADRIMESTRAL', 'SEMESTRAL', 'ANUAL',
]

# Sucesso do cliente

ADMINISTRADOR_TIPOS = ['SINDICO', 'SUBSINDICO', 'CONSELHEIRO', 'ADMINISTRADORA', 'ZELADOR']

# Orçamentos

SESSAO_STATUS = ['ativo', 'proposta_gerada', 'cancelado']

# campo -> (percentual padrão, campo base, descrição)
REGRAS_PADRAO = {
    'valor_minimo': (90, 'preco_unitario', 'Valor mínimo sobre o valor atual'),
    'valor_locacao': (3.57, 'preco_unitario', 'Locação mensal sobre o valor atual'),
    'valor_minimo_locacao': (90, 'valor_locacao', 'Mínimo de locação sobre a locação'),
    'valor_instalacao': (10, 'preco_unitario', 'Instalação sobre o valor atual'),
    'servico_valor_minimo': (90, 'preco_unitario', 'Serviços: valor mínimo'),
    'servico_valor_locacao': (3.57, 'preco_unitario', 'Serviços: locação mensal'),
    'servico_valor_minimo_locacao': (90, 'valor_locacao', 'Serviços: mínimo de locação'),
    'servico_valor_instalacao': (10, 'preco_unitario', 'Serviços: instalação'),
}

# Permissões de menu

ACCESS_LEVELS = ['completo', 'visualizacao', 'nenhum']

MENU_KEYS = [
    'dashboard',
    'projetos',
    'projetos/novo',
    'projetos/informar-venda',
    'projetos/lista',
    'implantacao',
    'controle-estoque',
    'manutencao',
    'manutencao/preventivas',
    'manutencao/chamados',
    'manutencao/pendencias',
    'carteira-clientes',
    'sucesso-cliente',
    'orcamentos',
    'orcamentos/sessoes',
    'orcamentos/propostas',
    'orcamentos/produtos',
    'orcamentos/regras',
    'orcamentos/kit-regras',
    'painel-ia',
    'configuracoes',
    'configuracoes/usuarios',
]


def label_for(mapping, key):
    return mapping.get(key, key)
