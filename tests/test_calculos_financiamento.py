import pytest

import calculos_financiamento as calc


def test_taxa_mensal_efetiva():
    assert calc.calcular_taxa_mensal_efetiva(0.12, 0.001) == pytest.approx(0.011)


def test_entrada_e_permuta():
    assert calc.calcular_entrada(700000, 100000) == 600000
    assert calc.calcular_valor_permuta(500000, 0.15) == pytest.approx(425000)


def test_valor_financiado_permuta():
    resultado = calc.calcular_valor_financiado(1960000, 600000, 550000, 'permuta', 0.15)
    assert resultado['valor_financiado'] == pytest.approx(892500)
    assert resultado['entrada_total'] == pytest.approx(1067500)
    assert resultado['valor_apartamento_usado'] == pytest.approx(467500)
    assert 'valor_apartamento_para_amortizar' not in resultado


def test_valor_financiado_venda_posterior():
    resultado = calc.calcular_valor_financiado(1960000, 600000, 550000, 'venda_posterior')
    assert resultado['valor_financiado'] == 1360000
    assert resultado['valor_apartamento_usado'] == 0
    assert resultado['valor_apartamento_para_amortizar'] == 550000


def test_valor_financiado_nunca_negativo():
    assert calc.calcular_valor_financiado(500000, 600000, 0, 'venda_posterior')['valor_financiado'] == 0


def test_venda_posterior_custo_de_carrego():
    venda = calc.calcular_valor_venda_posterior(500000, 500000, 0.01, meses_carrego=6, custo_condominio_mensal=1000)
    assert venda['juros_carrego'] == pytest.approx(30000)
    assert venda['custos_manutencao'] == 6000
    assert venda['valor_liquido'] == pytest.approx(464000)


def test_parcela_sac():
    parcela = calc.calcular_parcela_sac(120000, 10000, 0.01, seguros=175)
    assert parcela['juros'] == pytest.approx(1200)
    assert parcela['prestacao'] == pytest.approx(11375)
    assert parcela['novo_saldo'] == 110000


def test_tabela_sac():
    tabela = calc.gerar_tabela_sac(120000, 12, 0.01, seguros=175)
    resumo = tabela['resumo']
    assert len(tabela['parcelas']) == 12
    assert resumo['amortizacao_mensal'] == pytest.approx(10000)
    assert resumo['primeira_parcela'] == pytest.approx(11375)
    assert resumo['ultima_parcela'] == pytest.approx(10275)
    assert resumo['total_juros'] == pytest.approx(7800)
    assert resumo['total_pago'] == pytest.approx(120000 + 7800 + 12 * 175)
    assert resumo['custo_total'] == resumo['total_pago']
    assert tabela['parcelas'][-1]['novo_saldo'] == pytest.approx(0, abs=1e-6)


def test_amortizacao_extra_reduz_prazo():
    resultado = calc.calcular_com_amortizacao_extra(120000, 12, 0.01, 10000, seguros=175)
    resumo = resultado['resumo']
    assert resumo['prazo_real'] == 6
    assert resumo['meses_economizados'] == 6
    assert resumo['anos_economizados'] == '0.5'
    assert resumo['total_juros'] < calc.gerar_tabela_sac(120000, 12, 0.01)['resumo']['total_juros']
    assert resultado['parcelas'][0]['aporte_extra'] == 10000


def test_cenario_venda_posterior_fases():
    resultado = calc.calcular_cenario_venda_posterior(1000000, 360, 0.01, 0, 500000, meses_ate_venda=6)
    assert len(resultado['fase1']) == 6
    assert all(p['fase'] == 1 for p in resultado['fase1'])
    assert resultado['fase2'][0]['mes'] == 7
    assert resultado['amortizacao_extraordinaria'] == pytest.approx(resultado['venda_apartamento']['valor_liquido'])
    assert resultado['resumo']['custo_carrego_apto'] == pytest.approx(500000 * 0.01 * 6 + 6000)


def test_venda_quita_saldo():
    resultado = calc.calcular_cenario_venda_posterior(100000, 360, 0.01, 0, 500000, meses_ate_venda=6)
    assert resultado['fase2'] == []
    assert resultado['amortizacao_extraordinaria'] < 100000
    assert resultado['resumo']['prazo_real'] == 6


def test_custos_fechamento():
    custos = calc.calcular_custos_fechamento(1000000, 500000)
    assert custos['itbi']['itbi_beneficiado'] == pytest.approx(1130)
    assert custos['itbi']['itbi_financiado'] == pytest.approx(5480)
    assert custos['itbi']['itbi_proprio'] == pytest.approx(10000)
    assert custos['itbi']['total'] == pytest.approx(16610)
    assert custos['cartorio']['total'] == 12000
    assert custos['total'] == pytest.approx(28610)


def test_comprometimento_renda():
    acima = calc.calcular_comprometimento_renda(15000, 45000)
    assert acima['dentro_do_limite'] is False
    assert acima['excesso'] == pytest.approx(1500)
    assert acima['renda_necessaria'] == pytest.approx(50000)
    assert acima['limite_formatado'] == '30.00%'

    abaixo = calc.calcular_comprometimento_renda(9000, 45000)
    assert abaixo['dentro_do_limite'] is True
    assert abaixo['excesso'] == 0
    assert abaixo['percentual_formatado'] == '20.00%'


def test_formatacao():
    assert calc.formatar_real(1234.56) == 'R$ 1.234,56'
    assert calc.formatar_real(1960000) == 'R$ 1.960.000,00'
    assert calc.formatar_real_compacto(1960000) == 'R$ 1.96M'
    assert calc.formatar_real_compacto(550000) == 'R$ 550k'
    assert calc.formatar_real_compacto(500) == 'R$ 500,00'
    assert calc.formatar_percentual(0.115) == '11.50%'


def cenario(**kwargs):
    parametros = {campo: calc.PADROES[campo] for campo in (
        'capital_disponivel', 'reserva_emergencia', 'taxa_anual', 'tr_mensal', 'prazo_meses', 'aporte_extra',
        'renda_mensal')}
    parametros.update(valor_imovel=1960000, valor_apartamento=550000, estrategia='permuta')
    parametros.update(kwargs)
    return calc.gerar_cenario_completo(**parametros)


def test_cenario_completo():
    resultado = cenario()
    assert resultado['id'] == '1960000-550000-permuta'
    assert resultado['cet_estimado'] == pytest.approx(0.115 + 0.0015 * 12 + 0.02)
    assert [p['mes'] for p in resultado['parcelas_amostra']] == calc.MESES_AMOSTRA
    assert resultado['economia_juros'] == pytest.approx(
        resultado['tabela_padrao']['total_juros'] - resultado['cenario_otimizado']['total_juros'])
    assert 0 < resultado['economia_percentual'] < 1
    assert resultado['custo_total_padrao'] == pytest.approx(
        1960000 + resultado['tabela_padrao']['total_juros'] + resultado['custos_fechamento']['total'])
    assert resultado['is_best'] is False


def test_cenario_sem_financiamento():
    resultado = cenario(capital_disponivel=3000000)
    assert resultado['financiamento']['valor_financiado'] == 0
    assert resultado['economia_juros'] == 0
    assert resultado['economia_percentual'] == 0


def test_cenario_venda_posterior_usa_fases():
    resultado = cenario(estrategia='venda_posterior')
    assert 'custo_carrego_apto' in resultado['cenario_otimizado']
    assert resultado['financiamento']['valor_financiado'] == 1360000


def test_matriz_de_cenarios():
    p = calc.PADROES
    cenarios = calc.gerar_matriz_cenarios(
        p['valores_imovel'], p['valores_apartamento'], p['capital_disponivel'], p['reserva_emergencia'],
        p['haircut'], p['taxa_anual'], p['tr_mensal'], p['prazo_meses'], p['aporte_extra'], p['renda_mensal'],
        p['custo_condominio_mensal'], p['seguros'],
    )
    assert len(cenarios) == 18
    juros = [c['cenario_otimizado']['total_juros'] for c in cenarios]
    assert juros == sorted(juros)
    assert cenarios[0]['is_best'] is True
    assert not any(c['is_best'] for c in cenarios[1:])


def test_tooltips():
    padrao = calc.gerar_tooltips()
    assert 'R$ 100.000,00' in padrao['reserva_emergencia']
    assert 'significativamente' in padrao['economia_juros']
    assert '240-420 meses' in padrao['prazo_meses']

    personalizado = calc.gerar_tooltips(reserva_emergencia=50000, aporte_extra=5000, economia_juros=250000)
    assert 'R$ 50.000,00' in personalizado['reserva_emergencia']
    assert 'R$ 5.000,00/mês' in personalizado['economia_juros']
    assert 'R$ 250k' in personalizado['economia_juros']
