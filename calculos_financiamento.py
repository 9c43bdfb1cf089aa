# ============================================================================
# SIMULADOR DE FINANCIAMENTO IMOBILIÁRIO - SISTEMA SAC
# Fórmulas usadas pelas rotas /casa do app.py
# ============================================================================

ESTRATEGIAS = ('permuta', 'venda_posterior')

MESES_AMOSTRA = [1, 12, 24, 60, 120, 180, 240, 300, 360]

TETO_SFH_ITBI = 226000
ALIQUOTA_ITBI_REDUZIDA = 0.005
ALIQUOTA_ITBI_PADRAO = 0.02
LIMITE_COMPROMETIMENTO = 0.3

PADROES = {
    'valores_imovel': [1960000, 1900000, 1800000],
    'valores_apartamento': [550000, 500000, 450000],
    'capital_disponivel': 700000,
    'reserva_emergencia': 100000,
    'haircut': 0.15,
    'taxa_anual': 0.115,
    'tr_mensal': 0.0015,
    'prazo_meses': 360,
    'aporte_extra': 10000,
    'renda_mensal': 45000,
    'custo_condominio_mensal': 1000,
    'seguros': 175,
}

CONFIGURACOES_PADRAO = {
    'cet_custo_adicional': 0.02,
    'opcoes_prazo': [240, 300, 360, 420],
    'sliders': {
        'taxa_anual': {'min': 9, 'max': 15, 'step': 0.1},
        'tr_mensal': {'min': 0, 'max': 0.5, 'step': 0.01},
        'haircut': {'min': 5, 'max': 30, 'step': 1},
        'aporte_extra': {'min': 0, 'max': 30000, 'step': 1000},
        'renda_mensal': {'min': 30000, 'max': 80000, 'step': 1000},
    },
}


# --- FORMATAÇÃO ---

def formatar_real(valor):
    return f"R$ {valor:,.2f}".replace(',', 'X').replace('.', ',').replace('X', '.')


def formatar_real_compacto(valor):
    """Formata em milhões (M) ou milhares (k) para exibição em cards."""
    if valor >= 1000000:
        return f"R$ {valor / 1000000:.2f}M"
    if valor >= 1000:
        return f"R$ {valor / 1000:.0f}k"
    return formatar_real(valor)


def formatar_percentual(valor):
    return f"{valor * 100:.2f}%"


# --- CÁLCULOS BÁSICOS ---

def calcular_taxa_mensal_efetiva(taxa_anual, tr_mensal):
    """Taxa mensal de juros somada à TR do mês."""
    return taxa_anual / 12 + tr_mensal


def calcular_entrada(capital_disponivel, reserva_emergencia):
    return capital_disponivel - reserva_emergencia


def calcular_valor_permuta(valor_apartamento, haircut):
    """Valor aceito pelo vendedor para o apartamento dado na permuta (com deságio)."""
    return valor_apartamento * (1 - haircut)


def calcular_valor_venda_posterior(valor_apartamento, valor_financiado_extra, taxa_mensal_efetiva,
                                   meses_carrego=6, custo_condominio_mensal=1000):
    """Valor líquido da venda do apartamento depois de carregá-lo por alguns meses."""
    juros_carrego = valor_financiado_extra * taxa_mensal_efetiva * meses_carrego
    custos_manutencao = custo_condominio_mensal * meses_carrego
    custo_total_carrego = juros_carrego + custos_manutencao
    return {
        'valor_bruto': valor_apartamento,
        'juros_carrego': juros_carrego,
        'custos_manutencao': custos_manutencao,
        'custo_total_carrego': custo_total_carrego,
        'valor_liquido': valor_apartamento - custo_total_carrego,
    }


def calcular_valor_financiado(valor_imovel, entrada, valor_apartamento, estrategia, haircut=0.15):
    if estrategia == 'permuta':
        valor_permuta = calcular_valor_permuta(valor_apartamento, haircut)
        entrada_total = entrada + valor_permuta
        return {
            'valor_financiado': max(0, valor_imovel - entrada_total),
            'entrada_total': entrada_total,
            'entrada_dinheiro': entrada,
            'valor_apartamento_usado': valor_permuta,
            'estrategia': 'permuta',
        }

    return {
        'valor_financiado': max(0, valor_imovel - entrada),
        'entrada_total': entrada,
        'entrada_dinheiro': entrada,
        'valor_apartamento_usado': 0,
        'estrategia': 'venda_posterior',
        'valor_apartamento_para_amortizar': valor_apartamento,
    }


# --- TABELAS SAC ---

def calcular_parcela_sac(saldo_devedor, amortizacao_mensal, taxa_mensal_efetiva, seguros=175):
    juros = saldo_devedor * taxa_mensal_efetiva
    return {
        'saldo_devedor': saldo_devedor,
        'amortizacao': amortizacao_mensal,
        'juros': juros,
        'seguros': seguros,
        'prestacao': amortizacao_mensal + juros + seguros,
        'novo_saldo': saldo_devedor - amortizacao_mensal,
    }


def gerar_tabela_sac(valor_financiado, prazo_meses, taxa_mensal_efetiva, seguros=175):
    """
    Gera a tabela completa do SAC: amortização constante, juros sobre o saldo
    e seguros fixos em todas as parcelas.
    """
    amortizacao_mensal = valor_financiado / prazo_meses
    parcelas = []
    saldo_devedor = valor_financiado
    total_juros = 0
    total_pago = 0

    for mes in range(1, prazo_meses + 1):
        parcela = calcular_parcela_sac(saldo_devedor, amortizacao_mensal, taxa_mensal_efetiva, seguros)
        parcelas.append({'mes': mes, **parcela})
        total_juros += parcela['juros']
        total_pago += parcela['prestacao']
        saldo_devedor = parcela['novo_saldo']

    return {
        'parcelas': parcelas,
        'resumo': {
            'valor_financiado': valor_financiado,
            'prazo_meses': prazo_meses,
            'amortizacao_mensal': amortizacao_mensal,
            'primeira_parcela': parcelas[0]['prestacao'] if parcelas else 0,
            'ultima_parcela': parcelas[-1]['prestacao'] if parcelas else 0,
            'total_juros': total_juros,
            'total_pago': total_pago,
            'custo_total': total_pago,
        },
    }


def calcular_com_amortizacao_extra(valor_financiado, prazo_meses, taxa_mensal_efetiva, aporte_extra, seguros=175):
    """SAC com aporte mensal extra abatendo o saldo (reduzindo prazo)."""
    amortizacao_mensal = valor_financiado / prazo_meses
    parcelas = []
    saldo_devedor = valor_financiado
    total_juros = 0
    total_pago = 0
    mes = 0

    while saldo_devedor > 0 and mes < prazo_meses:
        mes += 1
        juros = saldo_devedor * taxa_mensal_efetiva
        amortizacao_total = min(amortizacao_mensal + aporte_extra, saldo_devedor)
        prestacao_total = amortizacao_total + juros + seguros

        parcelas.append({
            'mes': mes,
            'saldo_devedor': saldo_devedor,
            'amortizacao': amortizacao_total,
            'juros': juros,
            'seguros': seguros,
            'prestacao': prestacao_total,
            'novo_saldo': max(0, saldo_devedor - amortizacao_total),
            'aporte_extra': min(aporte_extra, saldo_devedor - amortizacao_mensal),
        })

        total_juros += juros
        total_pago += prestacao_total
        saldo_devedor = max(0, saldo_devedor - amortizacao_total)

    return {
        'parcelas': parcelas,
        'resumo': {
            'valor_financiado': valor_financiado,
            'prazo_original': prazo_meses,
            'prazo_real': mes,
            'meses_economizados': prazo_meses - mes,
            'anos_economizados': f"{(prazo_meses - mes) / 12:.1f}",
            'total_juros': total_juros,
            'total_pago': total_pago,
        },
    }


def _parcela_fase(mes, fase, saldo_devedor, amortizacao_mensal, aporte_extra, taxa_mensal_efetiva, seguros):
    juros = saldo_devedor * taxa_mensal_efetiva
    amortizacao_total = min(amortizacao_mensal + aporte_extra, saldo_devedor)
    return {
        'mes': mes,
        'fase': fase,
        'saldo_devedor': saldo_devedor,
        'amortizacao': amortizacao_total,
        'juros': juros,
        'prestacao': amortizacao_total + juros + seguros,
    }


def calcular_cenario_venda_posterior(valor_financiado, prazo_meses, taxa_mensal_efetiva, aporte_extra,
                                     valor_apartamento, meses_ate_venda=6, custo_condominio_mensal=1000,
                                     seguros=175):
    """
    Fase 1: paga as parcelas (com aporte) enquanto o apartamento não é vendido.
    Venda: o valor líquido vira amortização extraordinária.
    Fase 2: segue com parcelas + aportes até quitar ou acabar o prazo.
    """
    amortizacao_mensal = valor_financiado / prazo_meses
    saldo_devedor = valor_financiado
    total_juros = 0
    total_pago = 0

    fase1 = []
    mes = 1
    while mes <= meses_ate_venda and saldo_devedor > 0:
        parcela = _parcela_fase(mes, 1, saldo_devedor, amortizacao_mensal, aporte_extra, taxa_mensal_efetiva, seguros)
        fase1.append(parcela)
        total_juros += parcela['juros']
        total_pago += parcela['prestacao']
        saldo_devedor = max(0, saldo_devedor - parcela['amortizacao'])
        mes += 1

    venda_apto = calcular_valor_venda_posterior(
        valor_apartamento,
        valor_financiado_extra=valor_apartamento,
        taxa_mensal_efetiva=taxa_mensal_efetiva,
        meses_carrego=meses_ate_venda,
        custo_condominio_mensal=custo_condominio_mensal,
    )

    amortizacao_extraordinaria = min(venda_apto['valor_liquido'], saldo_devedor)
    saldo_devedor = max(0, saldo_devedor - amortizacao_extraordinaria)

    fase2 = []
    mes_atual = meses_ate_venda
    while saldo_devedor > 0 and mes_atual < prazo_meses:
        mes_atual += 1
        parcela = _parcela_fase(mes_atual, 2, saldo_devedor, amortizacao_mensal, aporte_extra, taxa_mensal_efetiva, seguros)
        fase2.append(parcela)
        total_juros += parcela['juros']
        total_pago += parcela['prestacao']
        saldo_devedor = max(0, saldo_devedor - parcela['amortizacao'])

    return {
        'fase1': fase1,
        'fase2': fase2,
        'venda_apartamento': venda_apto,
        'amortizacao_extraordinaria': amortizacao_extraordinaria,
        'resumo': {
            'prazo_original': prazo_meses,
            'prazo_real': mes_atual,
            'meses_economizados': prazo_meses - mes_atual,
            'anos_economizados': f"{(prazo_meses - mes_atual) / 12:.1f}",
            'total_juros': total_juros,
            'total_pago': total_pago,
            'custo_carrego_apto': venda_apto['custo_total_carrego'],
        },
    }


# --- CUSTOS E RENDA ---

def calcular_custos_fechamento(valor_imovel, valor_financiado):
    """ITBI com alíquota reduzida na faixa SFH + registro, alienação e certidões."""
    faixa_beneficiada = min(TETO_SFH_ITBI, valor_financiado)
    faixa_financiada_restante = max(0, valor_financiado - TETO_SFH_ITBI)
    faixa_recursos_proprios = valor_imovel - valor_financiado

    itbi_beneficiado = faixa_beneficiada * ALIQUOTA_ITBI_REDUZIDA
    itbi_financiado = faixa_financiada_restante * ALIQUOTA_ITBI_PADRAO
    itbi_proprio = faixa_recursos_proprios * ALIQUOTA_ITBI_PADRAO
    itbi_total = itbi_beneficiado + itbi_financiado + itbi_proprio

    registro_compra = 4000
    registro_alienacao = 4000
    certidoes_taxas = 4000
    cartorio_total = registro_compra + registro_alienacao + certidoes_taxas

    return {
        'itbi': {
            'faixa_beneficiada': faixa_beneficiada,
            'faixa_financiada_restante': faixa_financiada_restante,
            'faixa_recursos_proprios': faixa_recursos_proprios,
            'itbi_beneficiado': itbi_beneficiado,
            'itbi_financiado': itbi_financiado,
            'itbi_proprio': itbi_proprio,
            'total': itbi_total,
        },
        'cartorio': {
            'registro_compra': registro_compra,
            'registro_alienacao': registro_alienacao,
            'certidoes_taxas': certidoes_taxas,
            'total': cartorio_total,
        },
        'total': itbi_total + cartorio_total,
    }


def calcular_comprometimento_renda(parcela, renda_mensal):
    percentual = parcela / renda_mensal
    limite = LIMITE_COMPROMETIMENTO
    return {
        'percentual': percentual,
        'percentual_formatado': formatar_percentual(percentual),
        'limite': limite,
        'limite_formatado': formatar_percentual(limite),
        'dentro_do_limite': percentual <= limite,
        'renda_necessaria': parcela / limite,
        'excesso': parcela - renda_mensal * limite if percentual > limite else 0,
    }


# --- CENÁRIOS ---

def gerar_cenario_completo(valor_imovel, capital_disponivel, reserva_emergencia, valor_apartamento, estrategia,
                           taxa_anual, tr_mensal, prazo_meses, aporte_extra, renda_mensal,
                           haircut=0.15, custo_condominio_mensal=1000, seguros=175):
    """
    Monta um cenário completo: tabela SAC padrão, cenário otimizado conforme a
    estratégia, custos de fechamento e comprometimento de renda.
    """
    entrada = calcular_entrada(capital_disponivel, reserva_emergencia)
    financiamento = calcular_valor_financiado(valor_imovel, entrada, valor_apartamento, estrategia, haircut)
    valor_financiado = financiamento['valor_financiado']
    taxa_mensal_efetiva = calcular_taxa_mensal_efetiva(taxa_anual, tr_mensal)

    tabela_padrao = gerar_tabela_sac(valor_financiado, prazo_meses, taxa_mensal_efetiva, seguros)
    resumo_padrao = tabela_padrao['resumo']

    if estrategia == 'venda_posterior':
        cenario_otimizado = calcular_cenario_venda_posterior(
            valor_financiado, prazo_meses, taxa_mensal_efetiva, aporte_extra, valor_apartamento,
            meses_ate_venda=6, custo_condominio_mensal=custo_condominio_mensal, seguros=seguros,
        )['resumo']
    else:
        cenario_otimizado = calcular_com_amortizacao_extra(
            valor_financiado, prazo_meses, taxa_mensal_efetiva, aporte_extra, seguros,
        )['resumo']

    custos_fechamento = calcular_custos_fechamento(valor_imovel, valor_financiado)
    comprometimento = calcular_comprometimento_renda(resumo_padrao['primeira_parcela'], renda_mensal)

    economia_juros = resumo_padrao['total_juros'] - cenario_otimizado['total_juros']
    economia_percentual = economia_juros / resumo_padrao['total_juros'] if resumo_padrao['total_juros'] else 0

    return {
        'id': f"{valor_imovel}-{valor_apartamento}-{estrategia}",
        'valor_imovel': valor_imovel,
        'valor_apartamento': valor_apartamento,
        'estrategia': estrategia,
        'entrada': entrada,
        'financiamento': financiamento,
        'taxa_anual': taxa_anual,
        'tr_mensal': tr_mensal,
        'taxa_mensal_efetiva': taxa_mensal_efetiva,
        'cet_estimado': taxa_anual + tr_mensal * 12 + CONFIGURACOES_PADRAO['cet_custo_adicional'],
        'aporte_extra': aporte_extra,
        'renda_mensal': renda_mensal,
        'tabela_padrao': resumo_padrao,
        'parcelas_amostra': [p for p in tabela_padrao['parcelas'] if p['mes'] in MESES_AMOSTRA],
        'cenario_otimizado': cenario_otimizado,
        'custos_fechamento': custos_fechamento,
        'comprometimento': comprometimento,
        'economia_juros': economia_juros,
        'economia_percentual': economia_percentual,
        'custo_total_padrao': valor_imovel + resumo_padrao['total_juros'] + custos_fechamento['total'],
        'custo_total_otimizado': valor_imovel + cenario_otimizado['total_juros'] + custos_fechamento['total'],
        'is_best': False,
    }


def gerar_matriz_cenarios(valores_imovel, valores_apartamento, capital_disponivel, reserva_emergencia, haircut,
                          taxa_anual, tr_mensal, prazo_meses, aporte_extra, renda_mensal,
                          custo_condominio_mensal, seguros):
    """Combina imóveis x apartamentos x estratégias, ordenando pelo menor juro otimizado."""
    cenarios = []
    for valor_imovel in valores_imovel:
        for valor_apartamento in valores_apartamento:
            for estrategia in ESTRATEGIAS:
                cenarios.append(gerar_cenario_completo(
                    valor_imovel=valor_imovel,
                    capital_disponivel=capital_disponivel,
                    reserva_emergencia=reserva_emergencia,
                    valor_apartamento=valor_apartamento,
                    estrategia=estrategia,
                    taxa_anual=taxa_anual,
                    tr_mensal=tr_mensal,
                    prazo_meses=prazo_meses,
                    aporte_extra=aporte_extra,
                    renda_mensal=renda_mensal,
                    haircut=haircut,
                    custo_condominio_mensal=custo_condominio_mensal,
                    seguros=seguros,
                ))

    cenarios.sort(key=lambda c: c['cenario_otimizado']['total_juros'])
    if cenarios:
        cenarios[0]['is_best'] = True
    return cenarios


# --- TOOLTIPS ---

def gerar_tooltips(reserva_emergencia=None, haircut_range=None, taxa_anual_range=None, tr_mensal_range=None,
                   opcoes_prazo=None, aporte_extra=None, economia_juros=None):
    sliders = CONFIGURACOES_PADRAO['sliders']
    if reserva_emergencia is None:
        reserva_emergencia = PADROES['reserva_emergencia']
    if aporte_extra is None:
        aporte_extra = PADROES['aporte_extra']
    haircut_range = haircut_range or sliders['haircut']
    taxa_anual_range = taxa_anual_range or sliders['taxa_anual']
    tr_mensal_range = tr_mensal_range or sliders['tr_mensal']
    opcoes_prazo = opcoes_prazo or CONFIGURACOES_PADRAO['opcoes_prazo']

    tr_anual_min = f"{tr_mensal_range['min'] * 12:.1f}"
    tr_anual_max = f"{tr_mensal_range['max'] * 12:.1f}"

    if economia_juros:
        texto_economia = (f"Com seu aporte de {formatar_real(aporte_extra)}/mês, você pode economizar "
                          f"{formatar_real_compacto(economia_juros)} em juros.")
    else:
        texto_economia = (f"Com aportes de {formatar_real(aporte_extra)}/mês, você pode economizar "
                          f"significativamente em juros.")

    return {
        'valor_imovel': "Valor de compra do imóvel. Negocie! Uma entrada robusta dá poder de barganha.",
        'capital_disponivel': "Total de recursos líquidos disponíveis para a operação (incluindo reserva).",
        'reserva_emergencia': (f"Valor reservado para custos de fechamento (ITBI, registro) e emergências. "
                               f"Recomendado: mínimo {formatar_real(reserva_emergencia)}."),
        'valor_apartamento': (f"Valor de mercado do apartamento secundário. Na permuta, espere um deságio de "
                              f"{haircut_range['min']}-{haircut_range['max']}%."),
        'estrategia': ("Permuta: usar o apto como parte da entrada (aceita com desconto). Venda Posterior: "
                       "financiar mais e vender o apto em até 180 dias para amortizar (isento de IR via Lei do Bem)."),
        'haircut': (f"Deságio típico na permuta. Construtoras/vendedores descontam "
                    f"{haircut_range['min']}-{haircut_range['max']}% para cobrir custos de revenda."),
        'taxa_anual': (f"Taxa de juros nominal anual. Taxas de balcão variam de {taxa_anual_range['min']}% a "
                       f"{taxa_anual_range['max']}% a.a."),
        'tr_mensal': (f"Taxa Referencial mensal. A TR oscila entre {tr_mensal_range['min']:.2f}% e "
                      f"{tr_mensal_range['max']:.2f}% ao mês, adicionando {tr_anual_min}% a {tr_anual_max}% "
                      f"ao ano ao custo real."),
        'prazo_meses': (f"Prazo total do financiamento. Recomendação: contratar o máximo "
                        f"({min(opcoes_prazo)}-{max(opcoes_prazo)} meses) para ter flexibilidade de aportes."),
        'aporte_extra': ("Valor extra mensal para amortização. SEMPRE escolha 'Reduzir Prazo' para maximizar "
                         "a economia de juros."),
        'renda_mensal': ("Renda mensal comprovável (pró-labore + distribuição de lucros). Bancos limitam parcela "
                         "a 30% da renda."),
        'comprometimento': ("Percentual da renda comprometido com a parcela. Acima de 30% pode dificultar "
                            "aprovação do crédito."),
        'economia_juros': texto_economia,
        'cet_estimado': ("Custo Efetivo Total estimado. Inclui juros, TR, seguros e taxas. Com base nas suas "
                         "configurações, calcule o CET considerando a taxa + TR + custos adicionais."),
        'sfh': ("Sistema Financeiro da Habitação. Novo teto de R$ 2,25 milhões em 2025, permitindo taxas "
                "reguladas e uso do FGTS."),
        'itbi': ("Imposto de Transmissão de Bens Imóveis. Em Florianópolis, 0,5% sobre até R$ 226k financiados "
                 "via SFH, 2% sobre o restante."),
        'lei_do_bem': ("Lei 11.196/2005: isenta ganho de capital na venda de imóvel se o valor for usado para "
                       "quitar/amortizar financiamento habitacional em até 180 dias."),
    }
