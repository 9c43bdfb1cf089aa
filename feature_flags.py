# ============================================================================
# FEATURE FLAGS
# Ordem de resolução: override em runtime > variável FF_<NOME> > padrão
# ============================================================================
import os

FLAGS_PADRAO = {
    'financing_simulator': False,  # rotas /casa
    'flood_forecast': False,
    'organizations': True,
    'public_collections': True,
    'map_provider': 'auto',  # google | leaflet | auto
}

_overrides = {}


def nome_variavel_ambiente(flag):
    return f"FF_{flag.upper()}"


def _ler_ambiente(flag):
    valor = os.environ.get(nome_variavel_ambiente(flag))
    if valor is None or valor == '':
        return None
    if isinstance(FLAGS_PADRAO[flag], bool):
        valor = valor.lower()
        if valor in ('true', '1', 'yes'):
            return True
        if valor in ('false', '0', 'no'):
            return False
        return None
    return valor


def obter_flag(flag):
    if flag not in FLAGS_PADRAO:
        raise KeyError(f"Feature flag desconhecida: {flag}")
    if flag in _overrides:
        return _overrides[flag]
    valor = _ler_ambiente(flag)
    if valor is not None:
        return valor
    return FLAGS_PADRAO[flag]


def todas_flags():
    return {flag: obter_flag(flag) for flag in FLAGS_PADRAO}


def definir_overrides(**overrides):
    _overrides.update(overrides)


def limpar_overrides():
    _overrides.clear()


def esta_ativa(flag):
    return obter_flag(flag) is True


def nomes_flags():
    return list(FLAGS_PADRAO)


def valor_padrao(flag):
    return FLAGS_PADRAO[flag]
