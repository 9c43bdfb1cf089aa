# ============================================================================
# ERROS DA API
# Hierarquia de exceções convertida em JSON pelos error handlers do app.py
# ============================================================================
from datetime import datetime, timezone

UNAUTHORIZED = 'UNAUTHORIZED'
FORBIDDEN = 'FORBIDDEN'
SESSION_EXPIRED = 'SESSION_EXPIRED'
VALIDATION_ERROR = 'VALIDATION_ERROR'
INVALID_INPUT = 'INVALID_INPUT'
MISSING_REQUIRED_FIELD = 'MISSING_REQUIRED_FIELD'
NOT_FOUND = 'NOT_FOUND'
ALREADY_EXISTS = 'ALREADY_EXISTS'
CONFLICT = 'CONFLICT'
RATE_LIMITED = 'RATE_LIMITED'
SERVICE_UNAVAILABLE = 'SERVICE_UNAVAILABLE'
EXTERNAL_SERVICE_ERROR = 'EXTERNAL_SERVICE_ERROR'
DATABASE_ERROR = 'DATABASE_ERROR'
INTERNAL_ERROR = 'INTERNAL_ERROR'
UNKNOWN_ERROR = 'UNKNOWN_ERROR'


class ErroAPI(Exception):
    """Erro com status HTTP e código estável para o front-end."""

    def __init__(self, mensagem, codigo=INTERNAL_ERROR, status=500, detalhes=None):
        super().__init__(mensagem)
        self.mensagem = mensagem
        self.codigo = codigo
        self.status = status
        self.detalhes = detalhes

    def to_dict(self):
        return {
            'erro': self.mensagem,
            'codigo': self.codigo,
            'detalhes': self.detalhes,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }


class NaoAutorizado(ErroAPI):
    def __init__(self, mensagem="Não autorizado", detalhes=None):
        super().__init__(mensagem, UNAUTHORIZED, 401, detalhes)


class Proibido(ErroAPI):
    def __init__(self, mensagem="Acesso negado", detalhes=None):
        super().__init__(mensagem, FORBIDDEN, 403, detalhes)


class NaoEncontrado(ErroAPI):
    def __init__(self, recurso="Recurso", detalhes=None):
        super().__init__(f"{recurso} não encontrado(a)", NOT_FOUND, 404, detalhes)


class ErroValidacao(ErroAPI):
    def __init__(self, mensagem, detalhes=None, codigo=VALIDATION_ERROR):
        super().__init__(mensagem, codigo, 400, detalhes)


class Conflito(ErroAPI):
    def __init__(self, mensagem, detalhes=None):
        super().__init__(mensagem, CONFLICT, 409, detalhes)


class LimiteRequisicoes(ErroAPI):
    def __init__(self, mensagem="Muitas requisições", detalhes=None):
        super().__init__(mensagem, RATE_LIMITED, 429, detalhes)


class ServicoIndisponivel(ErroAPI):
    def __init__(self, mensagem="Serviço indisponível", detalhes=None):
        super().__init__(mensagem, SERVICE_UNAVAILABLE, 503, detalhes)


class ErroInterno(ErroAPI):
    def __init__(self, mensagem="Erro interno", detalhes=None):
        super().__init__(mensagem, INTERNAL_ERROR, 500, detalhes)


def para_erro_api(exc):
    if isinstance(exc, ErroAPI):
        return exc
    return ErroInterno(str(exc) or "Erro interno")


# --- VALIDAÇÃO DE ENTRADA ---

def exigir_campo(dados, campo):
    valor = (dados or {}).get(campo)
    if valor is None:
        raise ErroValidacao(f"Campo obrigatório: {campo}", {'campo': campo}, MISSING_REQUIRED_FIELD)
    return valor


def exigir_texto(dados, campo):
    """Exige string não vazia e devolve o valor sem espaços nas pontas."""
    valor = exigir_campo(dados, campo)
    if not isinstance(valor, str) or not valor.strip():
        raise ErroValidacao(f"{campo} deve ser um texto não vazio", {'campo': campo}, INVALID_INPUT)
    return valor.strip()


def exigir_recurso(obj, recurso):
    if obj is None:
        raise NaoEncontrado(recurso)
    return obj


# --- MENSAGENS AMIGÁVEIS ---

_MENSAGENS = {
    UNAUTHORIZED: ("Please sign in to continue", "Por favor, faça login para continuar"),
    FORBIDDEN: ("You don't have permission to perform this action",
                "Você não tem permissão para realizar esta ação"),
    SESSION_EXPIRED: ("Your session has expired. Please sign in again",
                      "Sua sessão expirou. Por favor, faça login novamente"),
    INVALID_INPUT: ("Please check your input and try again", "Por favor, verifique seus dados e tente novamente"),
    MISSING_REQUIRED_FIELD: ("Please fill in all required fields", "Por favor, preencha todos os campos obrigatórios"),
    ALREADY_EXISTS: ("This resource already exists", "Este recurso já existe"),
    RATE_LIMITED: ("Too many requests. Please wait a moment and try again",
                   "Muitas requisições. Por favor, aguarde um momento e tente novamente"),
    SERVICE_UNAVAILABLE: ("Service is temporarily unavailable. Please try again later",
                          "Serviço temporariamente indisponível. Tente novamente mais tarde"),
    EXTERNAL_SERVICE_ERROR: ("An external service error occurred. Please try again later",
                             "Erro em serviço externo. Tente novamente mais tarde"),
    DATABASE_ERROR: ("A database error occurred. Please try again later",
                     "Erro no banco de dados. Tente novamente mais tarde"),
    INTERNAL_ERROR: ("An unexpected error occurred. Please try again later",
                     "Ocorreu um erro inesperado. Tente novamente mais tarde"),
    UNKNOWN_ERROR: ("An unknown error occurred. Please try again later",
                    "Ocorreu um erro desconhecido. Tente novamente mais tarde"),
}


def mensagem_amigavel(erro, idioma='pt'):
    """Mensagem para o usuário final. Validação, not found e conflito repassam a própria mensagem."""
    if erro.codigo in (VALIDATION_ERROR, NOT_FOUND, CONFLICT):
        return erro.mensagem
    en, pt = _MENSAGENS.get(erro.codigo, _MENSAGENS[UNKNOWN_ERROR])
    return en if idioma == 'en' else pt
