# ============================================================================
# BACKEND ANÚNCIOS + CASA
# Gerenciador de anúncios de imóveis (coleções, organizações, compartilhamento,
# assinaturas, addons e parsing por IA) e simulador de financiamento SAC.
# ============================================================================
import os
import re
import io
import json
import math
import hmac
import uuid
import string
import secrets
import traceback  # Importado para log de erros detalhado
import unicodedata
import urllib.request  # Para chamar API externa (nativo do Python)
import urllib.error  # Para tratamento de erros HTTP
from datetime import datetime, date, timedelta, timezone
from functools import wraps

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import func
from sqlalchemy.orm import joinedload
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib import colors
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet
from werkzeug.exceptions import HTTPException
# Imports de Autenticação
from werkzeug.security import generate_password_hash, check_password_hash
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, JWTManager, verify_jwt_in_request

import calculos_financiamento as calc
import feature_flags
from erros import (
    ErroAPI, NaoAutorizado, Proibido, NaoEncontrado, ErroValidacao, Conflito,
    LimiteRequisicoes, ServicoIndisponivel, ErroInterno, exigir_texto, exigir_campo, exigir_recurso, para_erro_api,
)

print("--- [LOG] Iniciando app.py ---")

app = Flask(__name__)

# --- CORS global canônico ---
CORS(app, resources={r'/*': {'origins': '*'}}, supports_credentials=False)


# --- Reforço universal de cabeçalhos CORS em todas as respostas ---
@app.after_request
def apply_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, X-Requested-With'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, PATCH, DELETE, OPTIONS'
    return response


# --- OPTIONS catch-all para QUALQUER rota (evita 404 em preflight) ---
@app.route('/<path:any_path>', methods=['OPTIONS'])
def global_options(any_path):
    return ('', 200)


print("--- [LOG] CORS configurado para permitir TODAS AS ORIGENS ---")

# --- CONFIGURAÇÃO DO JWT (JSON Web Token) ---
app.config["JWT_SECRET_KEY"] = os.environ.get('JWT_SECRET_KEY', 'chave-secreta-de-desenvolvimento-troque-em-producao')
app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', 24)))
app.config["JWT_ERROR_MESSAGE_KEY"] = "erro"
jwt = JWTManager(app)
print("--- [LOG] JWT Manager inicializado ---")

# --- CONFIGURAÇÕES GERAIS ---
app.config['OPENAI_API_KEY'] = os.environ.get('OPENAI_API_KEY')
app.config['OPENAI_MODEL'] = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
app.config['SHARE_MASTER_PASSWORD'] = os.environ.get('SHARE_MASTER_PASSWORD')
app.config['PUBLIC_APP_URL'] = os.environ.get('PUBLIC_APP_URL')


# --- CONFIGURAÇÃO DA CONEXÃO (COM VARIÁVEIS DE AMBIENTE) ---
def normalizar_database_url(url):
    """Corrige o prefixo antigo postgres:// usado por alguns provedores."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = normalizar_database_url(os.environ.get('DATABASE_URL', 'sqlite:///anuncios.db'))
app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URL
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
if DATABASE_URL.startswith('postgresql'):
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_pre_ping': True,
        'pool_recycle': 280,
        'pool_timeout': 20,
        'pool_size': 5,
        'max_overflow': 5,
    }
print(f"--- [LOG] Banco configurado: {DATABASE_URL.split('://')[0]} ---")

db = SQLAlchemy(app)
print("--- [LOG] SQLAlchemy inicializado ---")


# --- GERENCIAMENTO AUTOMÁTICO DE CONEXÕES ---
@app.teardown_appcontext
def shutdown_session(exception=None):
    """Fecha a sessão do banco após cada requisição para liberar conexões"""
    db.session.remove()


# --- TRATAMENTO DE ERROS ---
@app.errorhandler(ErroAPI)
def tratar_erro_api(e):
    db.session.rollback()
    print(f"--- [LOG] {request.path} ({request.method}) -> {e.status} {e.codigo}: {e.mensagem} ---")
    return jsonify(e.to_dict()), e.status


@app.errorhandler(Exception)
def tratar_erro_inesperado(e):
    if isinstance(e, HTTPException):
        return e
    db.session.rollback()
    erro = para_erro_api(e)
    error_details = traceback.format_exc()
    print(f"--- [ERRO] {request.path} ({request.method}): {erro.mensagem}\n{error_details} ---")
    return jsonify({"erro": erro.mensagem, "details": error_details}), erro.status


# ============================================================================
# MODELOS
# ============================================================================

def gerar_uuid():
    return str(uuid.uuid4())


def agora():
    """Datetime UTC sem tzinfo, como gravado nas colunas DateTime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(valor):
    return valor.isoformat() if valor else None


LIMITES_PADRAO = {
    'collections_limit': None,
    'listings_per_collection': None,
    'ai_parses_per_month': None,
    'can_share': True,
    'can_create_org': True,
}

STATUS_ASSINATURA = ('active', 'expired', 'cancelled')
PAPEIS_ORGANIZACAO = ('owner', 'admin', 'member')
PAPEIS_GESTORES = ('owner', 'admin')


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    image = db.Column(db.String(500))
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    collections = db.relationship('Colecao', backref='owner', cascade='all, delete-orphan',
                                  foreign_keys='Colecao.user_id')
    memberships = db.relationship('MembroOrganizacao', backref='user', cascade='all, delete-orphan')
    subscriptions = db.relationship('Assinatura', back_populates='user', cascade='all, delete-orphan',
                                    foreign_keys='Assinatura.user_id')
    addons = db.relationship('AddonUsuario', cascade='all, delete-orphan', foreign_keys='AddonUsuario.user_id')
    parse_usages = db.relationship('UsoParseIA', cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'image': self.image,
            'is_admin': self.is_admin,
            'email_verified': self.email_verified,
            'created_at': iso(self.created_at),
        }


class Plano(db.Model):
    __tablename__ = 'plans'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    name = db.Column(db.String(100), unique=True, nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    price_in_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    limits = db.Column(db.JSON, default=lambda: dict(LIMITES_PADRAO))
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'price_in_cents': self.price_in_cents,
            'is_active': self.is_active,
            'limits': {**LIMITES_PADRAO, **(self.limits or {})},
        }


class Assinatura(db.Model):
    __tablename__ = 'subscriptions'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    plan_id = db.Column(db.String(36), db.ForeignKey('plans.id', ondelete='RESTRICT'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')
    starts_at = db.Column(db.DateTime, nullable=False, default=agora)
    expires_at = db.Column(db.DateTime, nullable=False)
    granted_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    user = db.relationship('User', back_populates='subscriptions', foreign_keys=[user_id])
    plan = db.relationship('Plano')
    granted_by_user = db.relationship('User', foreign_keys=[granted_by])

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'plan_id': self.plan_id,
            'status': self.status,
            'starts_at': iso(self.starts_at),
            'expires_at': iso(self.expires_at),
            'granted_by': self.granted_by,
            'notes': self.notes,
            'plan': self.plan.to_dict() if self.plan else None,
            'created_at': iso(self.created_at),
        }


class Organizacao(db.Model):
    __tablename__ = 'organizations'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), unique=True, nullable=False)
    owner_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    members = db.relationship('MembroOrganizacao', backref='organization', cascade='all, delete-orphan')
    collections = db.relationship('Colecao', backref='organization', cascade='all, delete-orphan',
                                  foreign_keys='Colecao.org_id')
    addons = db.relationship('AddonOrganizacao', backref='organization', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'owner_id': self.owner_id,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class MembroOrganizacao(db.Model):
    __tablename__ = 'organization_members'
    __table_args__ = (db.UniqueConstraint('org_id', 'user_id', name='uq_organization_member'),)
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='member')
    joined_at = db.Column(db.DateTime, nullable=False, default=agora)

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'role': self.role,
            'joined_at': iso(self.joined_at),
            'user_name': self.user.name if self.user else None,
            'user_email': self.user.email if self.user else None,
            'user_image': self.user.image if self.user else None,
        }


class Colecao(db.Model):
    __tablename__ = 'collections'
    __table_args__ = (
        db.CheckConstraint('(user_id IS NULL) <> (org_id IS NULL)', name='ck_collection_single_owner'),
    )
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'))
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id', ondelete='CASCADE'))
    name = db.Column(db.String(255), nullable=False)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    share_token = db.Column(db.String(32), unique=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    listings = db.relationship('Anuncio', backref='collection', cascade='all, delete-orphan',
                               order_by='Anuncio.created_at')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'org_id': self.org_id,
            'name': self.name,
            'is_public': self.is_public,
            'share_token': self.share_token,
            'is_default': self.is_default,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class Anuncio(db.Model):
    __tablename__ = 'listings'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    collection_id = db.Column(db.String(36), db.ForeignKey('collections.id', ondelete='CASCADE'), nullable=False)
    data = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    updated_at = db.Column(db.DateTime, nullable=False, default=agora, onupdate=agora)

    def to_dict(self):
        return {
            'id': self.id,
            'collection_id': self.collection_id,
            'data': self.data,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class Addon(db.Model):
    __tablename__ = 'addons'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'slug': self.slug, 'description': self.description}


class _ConcessaoAddon:
    """Campos comuns das concessões de addon (por usuário ou por organização)."""

    def esta_ativo(self):
        return bool(self.enabled) and (self.expires_at is None or self.expires_at > agora())

    def _dict_base(self):
        return {
            'id': self.id,
            'addon_slug': self.addon_slug,
            'granted_at': iso(self.granted_at),
            'granted_by': self.granted_by,
            'enabled': self.enabled,
            'expires_at': iso(self.expires_at),
            'ativo': self.esta_ativo(),
            'addon': self.addon.to_dict() if self.addon else None,
        }


class AddonUsuario(_ConcessaoAddon, db.Model):
    __tablename__ = 'user_addons'
    __table_args__ = (db.UniqueConstraint('user_id', 'addon_slug', name='uq_user_addon'),)
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    addon_slug = db.Column(db.String(100), db.ForeignKey('addons.slug', ondelete='CASCADE'), nullable=False)
    granted_at = db.Column(db.DateTime, nullable=False, default=agora)
    granted_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime)

    addon = db.relationship('Addon')

    def to_dict(self):
        return {**self._dict_base(), 'user_id': self.user_id}


class AddonOrganizacao(_ConcessaoAddon, db.Model):
    __tablename__ = 'organization_addons'
    __table_args__ = (db.UniqueConstraint('org_id', 'addon_slug', name='uq_organization_addon'),)
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    addon_slug = db.Column(db.String(100), db.ForeignKey('addons.slug', ondelete='CASCADE'), nullable=False)
    granted_at = db.Column(db.DateTime, nullable=False, default=agora)
    granted_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime)

    addon = db.relationship('Addon')

    def to_dict(self):
        return {**self._dict_base(), 'org_id': self.org_id}


class CompartilhamentoColecao(db.Model):
    """Snapshot de coleção compartilhado por token (compartilhamento legado com senha mestre)."""
    __tablename__ = 'shared_collections'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    share_token = db.Column(db.String(12), unique=True, nullable=False)
    collection_name = db.Column(db.String(255), nullable=False)
    collection_data = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)
    accessed_count = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'share_token': self.share_token,
            'collection_name': self.collection_name,
            'collection_data': self.collection_data,
            'created_at': iso(self.created_at),
            'accessed_count': self.accessed_count,
        }


class UsoParseIA(db.Model):
    __tablename__ = 'ai_parse_usage'
    id = db.Column(db.String(36), primary_key=True, default=gerar_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=agora)


ADDONS_PADRAO = [
    {'name': 'Risco de Enchente', 'slug': 'flood',
     'description': 'Visualização 3D de risco de enchente para os imóveis da coleção'},
    {'name': 'Simulador de Financiamento', 'slug': 'financiamento',
     'description': 'Simulador SAC com comparação de cenários de permuta e venda posterior'},
]

PLANOS_PADRAO = [
    {'name': 'Teste', 'slug': 'teste', 'description': 'Plano de avaliação', 'price_in_cents': 0,
     'limits': {'collections_limit': 3, 'listings_per_collection': 50, 'ai_parses_per_month': 20,
                'can_share': False, 'can_create_org': False}},
    {'name': 'Plus', 'slug': 'plus', 'description': 'Uso completo do gerenciador de anúncios', 'price_in_cents': 2990,
     'limits': dict(LIMITES_PADRAO)},
]


def popular_dados_iniciais():
    """Cria addons e planos padrão que ainda não existem. Retorna quantos registros foram criados."""
    criados = 0
    for dados in ADDONS_PADRAO:
        if not Addon.query.filter_by(slug=dados['slug']).first():
            db.session.add(Addon(**dados))
            criados += 1
    for dados in PLANOS_PADRAO:
        if not Plano.query.filter_by(slug=dados['slug']).first():
            db.session.add(Plano(**dados))
            criados += 1
    db.session.commit()
    return criados


# ============================================================================
# FUNÇÕES AUXILIARES E DE PERMISSÃO
# ============================================================================

ALFANUMERICOS = string.ascii_letters + string.digits
SLUG_REGEX = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def token_aleatorio(tamanho, alfabeto=ALFANUMERICOS):
    return ''.join(secrets.choice(alfabeto) for _ in range(tamanho))


def dados_json():
    dados = request.get_json(silent=True)
    return dados if isinstance(dados, dict) else {}


def ler_bool(dados, campo):
    valor = dados.get(campo)
    if not isinstance(valor, bool):
        raise ErroValidacao(f"{campo} deve ser booleano", {'campo': campo})
    return valor


def ler_data_iso(valor, campo):
    if not isinstance(valor, str):
        raise ErroValidacao(f"{campo} deve ser uma data ISO válida", {'campo': campo})
    try:
        data_hora = datetime.fromisoformat(valor.replace('Z', '+00:00'))
    except ValueError:
        raise ErroValidacao(f"{campo} deve ser uma data ISO válida", {'campo': campo})
    if data_hora.tzinfo:
        data_hora = data_hora.astimezone(timezone.utc).replace(tzinfo=None)
    return data_hora


def url_base():
    return app.config.get('PUBLIC_APP_URL') or request.host_url.rstrip('/')


def get_current_user():
    user_id_str = get_jwt_identity()
    user = db.session.get(User, user_id_str) if user_id_str else None
    if not user:
        raise NaoAutorizado("Usuário não encontrado")
    return user


def admin_obrigatorio(fn):
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user.is_admin:
            return jsonify({"erro": "Acesso negado: apenas administradores."}), 403
        return fn(*args, **kwargs)
    return wrapper


def flag_obrigatoria(flag):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not feature_flags.esta_ativa(flag):
                return jsonify({"erro": "Recurso não disponível"}), 404
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def papel_na_organizacao(org_id, user_id):
    membro = MembroOrganizacao.query.filter_by(org_id=org_id, user_id=user_id).first()
    return membro.role if membro else None


def contar_proprietarios(org_id):
    return MembroOrganizacao.query.filter_by(org_id=org_id, role='owner').count()


# --- ASSINATURAS E LIMITES DE PLANO ---

def assinatura_ativa(user_id):
    return (Assinatura.query
            .filter(Assinatura.user_id == user_id, Assinatura.status == 'active', Assinatura.expires_at > agora())
            .order_by(Assinatura.expires_at.desc())
            .first())


def limites_do_usuario(user):
    """Limites do plano ativo. Admin não tem limite; sem assinatura não compartilha nem cria organização."""
    if user.is_admin:
        return dict(LIMITES_PADRAO)
    assinatura = assinatura_ativa(user.id)
    if not assinatura:
        return {**LIMITES_PADRAO, 'can_share': False, 'can_create_org': False}
    return {**LIMITES_PADRAO, **(assinatura.plan.limits or {})}


def verificar_permissao_plano(user, chave, mensagem):
    if not limites_do_usuario(user)[chave]:
        raise Proibido(mensagem, {'limite': chave})


def verificar_limite_plano(user, chave, uso_atual, mensagem):
    limite = limites_do_usuario(user)[chave]
    if limite is not None and uso_atual >= limite:
        raise Proibido(mensagem, {'limite': chave, 'valor': limite})


# --- COOKIE DE ASSINATURA ---
# Formato "status|expiresAtISO". O pipe evita conflito com os ":" da data ISO.

COOKIE_ASSINATURA = 'subscription-status'
ASSINATURA_ATIVA = 'active'
ASSINATURA_INATIVA = 'inactive'
ROTAS_COM_ASSINATURA = ['/collections', '/listings', '/parse', '/casa']
ROTAS_LIVRES_DE_ASSINATURA = ['/collections/public']
PAGINA_ASSINATURA = '/subscribe'


def ler_cookie_assinatura(valor):
    if not valor or '|' not in valor:
        return None
    status, expira_str = valor.split('|', 1)
    if not status or not expira_str:
        return None
    try:
        expira = datetime.fromisoformat(expira_str.replace('Z', '+00:00'))
    except ValueError:
        return None
    if expira.tzinfo is None:
        expira = expira.replace(tzinfo=timezone.utc)
    return {'status': status, 'expires_at': expira}


def criar_valor_cookie_assinatura(status, expires_at):
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return f"{status}|{expires_at.astimezone(timezone.utc).isoformat()}"


def cookie_assinatura_valido(valor):
    cookie = ler_cookie_assinatura(valor)
    if not cookie or cookie['status'] != ASSINATURA_ATIVA:
        return False
    return cookie['expires_at'] >= datetime.now(timezone.utc)


def _rota_coincide(path, rota):
    return path == rota or path.startswith(rota + '/')


def requer_assinatura(path):
    if any(_rota_coincide(path, rota) for rota in ROTAS_LIVRES_DE_ASSINATURA):
        return False
    return any(_rota_coincide(path, rota) for rota in ROTAS_COM_ASSINATURA)


def gravar_cookie_assinatura(resposta, user):
    assinatura = assinatura_ativa(user.id)
    if assinatura or user.is_admin:
        expira = assinatura.expires_at if assinatura else agora() + app.config['JWT_ACCESS_TOKEN_EXPIRES']
        valor = criar_valor_cookie_assinatura(ASSINATURA_ATIVA, expira)
    else:
        valor = criar_valor_cookie_assinatura(ASSINATURA_INATIVA, agora())
    resposta.set_cookie(COOKIE_ASSINATURA, valor, httponly=True, samesite='Lax',
                        max_age=int(app.config['JWT_ACCESS_TOKEN_EXPIRES'].total_seconds()))
    return resposta


@app.before_request
def verificar_assinatura():
    if request.method == 'OPTIONS' or not requer_assinatura(request.path):
        return None
    if _rota_coincide(request.path, '/casa') and not feature_flags.esta_ativa('financing_simulator'):
        return None
    verify_jwt_in_request()
    user = get_current_user()
    if user.is_admin or assinatura_ativa(user.id):
        return None
    raise Proibido("Assinatura ativa necessária", {'redirect': PAGINA_ASSINATURA})


# --- ADDONS ---

def tem_acesso_addon(user_id, slug, org_id=None):
    """Concessão própria do usuário primeiro; depois a da organização (se ele for membro)."""
    concessao = AddonUsuario.query.filter_by(user_id=user_id, addon_slug=slug).first()
    if concessao and concessao.esta_ativo():
        return True
    if org_id and papel_na_organizacao(org_id, user_id):
        concessao_org = AddonOrganizacao.query.filter_by(org_id=org_id, addon_slug=slug).first()
        return bool(concessao_org and concessao_org.esta_ativo())
    return False


def conceder_addon(modelo, filtro, dados, admin):
    """Cria ou atualiza (upsert) uma concessão de addon. Retorna (concessao, atualizado)."""
    slug = exigir_texto(dados, 'addon_slug')
    exigir_recurso(Addon.query.filter_by(slug=slug).first(), "Addon")
    expires_at = ler_data_iso(dados['expires_at'], 'expires_at') if dados.get('expires_at') else None
    enabled = ler_bool(dados, 'enabled') if 'enabled' in dados else True

    concessao = modelo.query.filter_by(addon_slug=slug, **filtro).first()
    atualizado = concessao is not None
    if concessao is None:
        concessao = modelo(addon_slug=slug, **filtro)
        db.session.add(concessao)
    concessao.enabled = enabled
    concessao.expires_at = expires_at
    concessao.granted_by = admin.id
    concessao.granted_at = agora()
    db.session.commit()
    return concessao, atualizado


# --- COLEÇÕES ---

def consulta_contexto(user_id, org_id):
    """Coleções do mesmo contexto: da organização ou pessoais do usuário."""
    if org_id:
        return Colecao.query.filter_by(org_id=org_id)
    return Colecao.query.filter(Colecao.user_id == user_id, Colecao.org_id.is_(None))


def desmarcar_padroes(colecao):
    outras = consulta_contexto(colecao.user_id, colecao.org_id).filter(
        Colecao.id != colecao.id, Colecao.is_default.is_(True))
    for outra in outras:
        outra.is_default = False


def obter_colecao_com_acesso(user_id, collection_id):
    """
    Retorna (colecao, pode_editar, papel).
    Coleção pessoal: só o dono. Coleção de organização: membros leem, owner/admin editam.
    Sem acesso é tratado como inexistente.
    """
    colecao = db.session.get(Colecao, collection_id)
    if colecao is None:
        raise NaoEncontrado("Coleção")
    if colecao.org_id is None:
        if colecao.user_id != user_id:
            raise NaoEncontrado("Coleção")
        return colecao, True, None
    papel = papel_na_organizacao(colecao.org_id, user_id)
    if papel is None:
        raise NaoEncontrado("Coleção")
    return colecao, papel in PAPEIS_GESTORES, papel


def exigir_edicao(pode_editar):
    if not pode_editar:
        raise Proibido("Você não tem permissão para editar esta coleção")


def gerar_token_compartilhamento(modelo, tamanho):
    token = token_aleatorio(tamanho)
    while modelo.query.filter_by(share_token=token).first():
        token = token_aleatorio(tamanho)
    return token


# --- ANÚNCIOS ---

def montar_dados_anuncio(dados):
    """Valida o documento do anúncio (titulo e endereco obrigatórios) e preenche adicionado_em."""
    if not isinstance(dados, dict):
        raise ErroValidacao("Dados do anúncio são obrigatórios")
    documento = dict(dados)
    documento['titulo'] = exigir_texto(documento, 'titulo')
    documento['endereco'] = exigir_texto(documento, 'endereco')
    if not documento.get('adicionado_em'):
        documento['adicionado_em'] = date.today().isoformat()
    return documento


def atualizar_dados_anuncio(anuncio, dados):
    if not isinstance(dados, dict) or not dados:
        raise ErroValidacao("Dados de atualização são obrigatórios")
    for campo in ('titulo', 'endereco'):
        if campo in dados:
            exigir_texto(dados, campo)
    # novo dict para o SQLAlchemy detectar a alteração na coluna JSON
    anuncio.data = {**(anuncio.data or {}), **dados}
    db.session.commit()
    return anuncio


def obter_anuncio_da_colecao(colecao, listing_id):
    anuncio = db.session.get(Anuncio, listing_id)
    if anuncio is None or anuncio.collection_id != colecao.id:
        raise NaoEncontrado("Anúncio")
    return anuncio


# --- ORGANIZAÇÕES ---

def gerar_slug(nome):
    texto = unicodedata.normalize('NFD', nome.lower())
    texto = ''.join(c for c in texto if not unicodedata.combining(c))
    texto = re.sub(r'[^a-z0-9]+', '-', texto).strip('-')
    return texto[:50].strip('-')


def obter_organizacao_como_membro(org_id, user_id):
    organizacao = exigir_recurso(db.session.get(Organizacao, org_id), "Organização")
    papel = papel_na_organizacao(org_id, user_id)
    if papel is None:
        raise Proibido("Você não é membro desta organização")
    return organizacao, papel


def exigir_gestor(papel):
    if papel not in PAPEIS_GESTORES:
        raise Proibido("Apenas proprietários e administradores podem realizar esta ação")


# ============================================================================
# ROTAS DA API
# ============================================================================

@app.route('/', methods=['GET'])
def home():
    print("--- [LOG] Rota / (home) acessada ---")
    return jsonify({"message": "Backend rodando com sucesso!", "status": "OK"}), 200


@app.route('/feature-flags', methods=['GET'])
def listar_feature_flags():
    return jsonify(feature_flags.todas_flags()), 200


# --- ROTAS DE AUTENTICAÇÃO (Públicas) ---
@app.route('/register', methods=['POST'])
def register():
    print("--- [LOG] Rota /register (POST) acessada ---")
    dados = dados_json()
    email = (dados.get('email') or '').strip().lower()
    password = dados.get('password')
    name = (dados.get('name') or '').strip()
    if not email or not password or not name:
        return jsonify({"erro": "Email, senha e nome são obrigatórios"}), 400
    if User.query.filter_by(email=email).first():
        raise Conflito("Email já cadastrado")
    novo_usuario = User(email=email, name=name)
    novo_usuario.set_password(password)
    db.session.add(novo_usuario)
    db.session.commit()
    print(f"--- [LOG] Usuário '{email}' criado ---")
    return jsonify(novo_usuario.to_dict()), 201


@app.route('/login', methods=['POST'])
def login():
    print("--- [LOG] Rota /login (POST) acessada ---")
    dados = dados_json()
    email = (dados.get('email') or '').strip().lower()
    password = dados.get('password')
    if not email or not password:
        return jsonify({"erro": "Email e senha são obrigatórios"}), 400
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        print(f"--- [LOG] Falha no login para '{email}' (usuário ou senha incorretos) ---")
        return jsonify({"erro": "Credenciais inválidas"}), 401
    additional_claims = {"email": user.email, "is_admin": user.is_admin}
    access_token = create_access_token(identity=user.id, additional_claims=additional_claims)
    print(f"--- [LOG] Login bem-sucedido para '{email}' ---")
    resposta = jsonify(access_token=access_token, user=user.to_dict())
    return gravar_cookie_assinatura(resposta, user)


@app.route('/me', methods=['GET'])
@jwt_required()
def me():
    user = get_current_user()
    assinatura = assinatura_ativa(user.id)
    return jsonify({**user.to_dict(), 'subscription': assinatura.to_dict() if assinatura else None}), 200


# ============================================================================
# COLEÇÕES
# ============================================================================

@app.route('/collections', methods=['GET'])
@jwt_required()
def listar_colecoes():
    print("--- [LOG] Rota /collections (GET) acessada ---")
    user = get_current_user()
    org_id = request.args.get('org_id')
    if org_id:
        if papel_na_organizacao(org_id, user.id) is None:
            raise Proibido("Você não é membro desta organização")
        consulta = Colecao.query.filter_by(org_id=org_id)
    else:
        consulta = consulta_contexto(user.id, None)
    colecoes = consulta.order_by(Colecao.created_at.asc()).all()
    return jsonify([c.to_dict() for c in colecoes]), 200


@app.route('/collections', methods=['POST'])
@jwt_required()
def criar_colecao():
    print("--- [LOG] Rota /collections (POST) acessada ---")
    user = get_current_user()
    dados = dados_json()
    nome = (dados.get('name') or '').strip() if isinstance(dados.get('name'), str) else ''
    if not nome:
        return jsonify({"erro": "Nome da coleção é obrigatório"}), 400
    org_id = dados.get('org_id')

    if org_id:
        exigir_gestor(papel_na_organizacao(org_id, user.id))
        colecao = Colecao(org_id=org_id, name=nome)
    else:
        verificar_limite_plano(user, 'collections_limit', consulta_contexto(user.id, None).count(),
                               "Limite de coleções do seu plano atingido")
        colecao = Colecao(user_id=user.id, name=nome)

    primeira = consulta_contexto(colecao.user_id, colecao.org_id).count() == 0
    colecao.is_default = primeira or dados.get('is_default') is True
    db.session.add(colecao)
    db.session.flush()
    if colecao.is_default:
        desmarcar_padroes(colecao)
    db.session.commit()
    print(f"--- [LOG] Coleção '{nome}' criada ({'org ' + org_id if org_id else 'pessoal'}) ---")
    return jsonify(colecao.to_dict()), 201


@app.route('/collections/<collection_id>', methods=['GET'])
@jwt_required()
def obter_colecao(collection_id):
    user = get_current_user()
    colecao, _, papel = obter_colecao_com_acesso(user.id, collection_id)
    listings_count = Anuncio.query.filter_by(collection_id=colecao.id).count()
    return jsonify({**colecao.to_dict(), 'listings_count': listings_count, 'user_role': papel}), 200


@app.route('/collections/<collection_id>', methods=['PUT'])
@jwt_required()
def atualizar_colecao(collection_id):
    print(f"--- [LOG] Rota /collections/{collection_id} (PUT) acessada ---")
    user = get_current_user()
    dados = dados_json()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    exigir_edicao(pode_editar)

    if 'name' in dados:
        nome = dados['name'].strip() if isinstance(dados['name'], str) else ''
        if not nome:
            return jsonify({"erro": "Nome da coleção não pode ser vazio"}), 400

    atualizou = False
    if 'name' in dados:
        colecao.name = dados['name'].strip()
        atualizou = True
    if 'is_public' in dados:
        colecao.is_public = ler_bool(dados, 'is_public')
        atualizou = True
    if 'is_default' in dados:
        colecao.is_default = ler_bool(dados, 'is_default')
        if colecao.is_default:
            desmarcar_padroes(colecao)
        atualizou = True
    if not atualizou:
        return jsonify({"erro": "Nenhum campo válido para atualizar"}), 400

    db.session.commit()
    return jsonify(colecao.to_dict()), 200


@app.route('/collections/<collection_id>', methods=['DELETE'])
@jwt_required()
def deletar_colecao(collection_id):
    print(f"--- [LOG] Rota /collections/{collection_id} (DELETE) acessada ---")
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    exigir_edicao(pode_editar)

    contexto = consulta_contexto(colecao.user_id, colecao.org_id)
    if colecao.is_default and contexto.count() <= 1:
        return jsonify({"erro": "Não é possível excluir a única coleção padrão"}), 400

    era_padrao = colecao.is_default
    db.session.delete(colecao)
    db.session.flush()
    if era_padrao:
        proxima = contexto.order_by(Colecao.created_at.asc()).first()
        if proxima:
            proxima.is_default = True
    db.session.commit()
    return jsonify({"sucesso": "Coleção excluída"}), 200


@app.route('/collections/<collection_id>/copy', methods=['POST'])
@jwt_required()
def copiar_colecao(collection_id):
    print(f"--- [LOG] Rota /collections/{collection_id}/copy (POST) acessada ---")
    user = get_current_user()
    dados = dados_json()
    origem, _, _ = obter_colecao_com_acesso(user.id, collection_id)

    target_org_id = dados.get('target_org_id')
    if target_org_id:
        exigir_recurso(db.session.get(Organizacao, target_org_id), "Organização")
        if papel_na_organizacao(target_org_id, user.id) not in PAPEIS_GESTORES:
            raise Proibido("Você precisa ser proprietário ou administrador da organização de destino")
        copia = Colecao(org_id=target_org_id)
    else:
        verificar_limite_plano(user, 'collections_limit', consulta_contexto(user.id, None).count(),
                               "Limite de coleções do seu plano atingido")
        copia = Colecao(user_id=user.id)

    novo_nome = dados.get('new_name')
    copia.name = novo_nome.strip() if isinstance(novo_nome, str) and novo_nome.strip() else f"{origem.name} (cópia)"
    copia.is_public = False
    copia.is_default = False
    db.session.add(copia)
    db.session.flush()

    copiados = 0
    if dados.get('include_listings', True) is not False:
        for anuncio in origem.listings:
            db.session.add(Anuncio(collection_id=copia.id, data=dict(anuncio.data or {})))
            copiados += 1
    db.session.commit()
    print(f"--- [LOG] Coleção {origem.id} copiada para {copia.id} ({copiados} anúncios) ---")
    return jsonify({'collection': copia.to_dict(), 'copied_listings_count': copiados}), 201


# --- COMPARTILHAMENTO POR TOKEN ---
@app.route('/collections/<collection_id>/share', methods=['GET'])
@jwt_required()
def status_compartilhamento(collection_id):
    user = get_current_user()
    colecao, _, _ = obter_colecao_com_acesso(user.id, collection_id)
    compartilhada = bool(colecao.share_token) and colecao.is_public
    return jsonify({
        'is_shared': compartilhada,
        'share_token': colecao.share_token,
        'share_url': f"{url_base()}/anuncios?share={colecao.share_token}" if compartilhada else None,
    }), 200


@app.route('/collections/<collection_id>/share', methods=['POST'])
@jwt_required()
def compartilhar_colecao(collection_id):
    print(f"--- [LOG] Rota /collections/{collection_id}/share (POST) acessada ---")
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    exigir_edicao(pode_editar)
    verificar_permissao_plano(user, 'can_share', "Seu plano não permite compartilhar coleções")

    if not colecao.share_token:
        colecao.share_token = gerar_token_compartilhamento(Colecao, 16)
    colecao.is_public = True
    db.session.commit()
    return jsonify({
        'share_token': colecao.share_token,
        'share_url': f"{url_base()}/anuncios?share={colecao.share_token}",
    }), 200


@app.route('/collections/<collection_id>/share', methods=['DELETE'])
@jwt_required()
def revogar_compartilhamento(collection_id):
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    exigir_edicao(pode_editar)
    colecao.share_token = None
    colecao.is_public = False
    db.session.commit()
    return jsonify({"sucesso": "Compartilhamento revogado"}), 200


def numero_ou_none(valor):
    if isinstance(valor, bool) or not isinstance(valor, (int, float)):
        return None
    return valor


# ROTA PARA EXPORTAR ANÚNCIOS DA COLEÇÃO EM PDF
@app.route('/collections/<collection_id>/exportar-pdf', methods=['GET'])
@jwt_required()
def exportar_colecao_pdf(collection_id):
    """Exporta os anúncios da coleção em uma tabela PDF"""
    user = get_current_user()
    colecao, _, _ = obter_colecao_com_acesso(user.id, collection_id)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), leftMargin=1.5*cm, rightMargin=1.5*cm,
                            topMargin=2*cm, bottomMargin=2*cm)
    elements = []
    styles = getSampleStyleSheet()

    elements.append(Paragraph(f"<b>Coleção - {colecao.name}</b>", styles['Title']))
    elements.append(Spacer(1, 0.5*cm))
    elements.append(Paragraph(f"Gerado em: {date.today().strftime('%d/%m/%Y')}", styles['Normal']))
    elements.append(Spacer(1, 1*cm))

    data = [['Título', 'Endereço', 'm² priv.', 'Quartos', 'Vagas', 'Preço', 'R$/m²']]
    for anuncio in colecao.listings:
        doc_anuncio = anuncio.data or {}
        titulo = doc_anuncio.get('titulo') or '-'
        endereco = doc_anuncio.get('endereco') or '-'
        area = numero_ou_none(doc_anuncio.get('m2_privado')) or numero_ou_none(doc_anuncio.get('m2_totais'))
        preco = numero_ou_none(doc_anuncio.get('preco'))
        preco_m2 = numero_ou_none(doc_anuncio.get('preco_m2')) or (preco / area if preco and area else None)
        data.append([
            titulo if len(titulo) <= 40 else titulo[:37] + '...',
            endereco if len(endereco) <= 40 else endereco[:37] + '...',
            f"{area:g}" if area else '-',
            str(doc_anuncio.get('quartos') or '-'),
            str(doc_anuncio.get('garagem') or '-'),
            calc.formatar_real(preco) if preco else '-',
            calc.formatar_real(preco_m2) if preco_m2 else '-',
        ])

    table = Table(data, colWidths=[6*cm, 6*cm, 2*cm, 2*cm, 2*cm, 3.5*cm, 3*cm], repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4CAF50')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (2, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 9),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('FONTSIZE', (0, 1), (-1, -1), 8),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 1*cm))
    elements.append(Paragraph(f"<b>Total de anúncios:</b> {len(data) - 1}", styles['Normal']))

    doc.build(elements)
    buffer.seek(0)
    print(f"--- [LOG] PDF da coleção {colecao.id} gerado ---")
    return send_file(
        buffer,
        as_attachment=True,
        download_name=f"Colecao_{colecao.name.replace(' ', '_')}_{date.today()}.pdf",
        mimetype='application/pdf'
    )


# ============================================================================
# COLEÇÕES PÚBLICAS E COMPARTILHADAS
# ============================================================================

@app.route('/collections/public', methods=['GET'])
@flag_obrigatoria('public_collections')
def listar_colecoes_publicas():
    print("--- [LOG] Rota /collections/public (GET) acessada ---")
    colecoes = (Colecao.query
                .options(joinedload(Colecao.owner), joinedload(Colecao.organization))
                .filter(Colecao.is_public.is_(True))
                .order_by(Colecao.updated_at.desc())
                .all())
    contagens = dict(db.session.query(Anuncio.collection_id, func.count(Anuncio.id))
                     .group_by(Anuncio.collection_id).all())
    resultado = []
    for colecao in colecoes:
        dono = colecao.organization.name if colecao.org_id else (colecao.owner.name if colecao.owner else None)
        resultado.append({**colecao.to_dict(), 'owner_name': dono, 'listings_count': contagens.get(colecao.id, 0)})
    return jsonify(resultado), 200


@app.route('/collections/public/<collection_id>', methods=['GET'])
@flag_obrigatoria('public_collections')
def obter_colecao_publica(collection_id):
    colecao = db.session.get(Colecao, collection_id)
    if colecao is None or not colecao.is_public:
        return jsonify({"erro": "Coleção não encontrada ou não é pública"}), 404
    anuncios = Anuncio.query.filter_by(collection_id=colecao.id).order_by(Anuncio.created_at.desc()).all()
    return jsonify({'collection': colecao.to_dict(), 'listings': [a.to_dict() for a in anuncios]}), 200


@app.route('/shared/<token>', methods=['GET'])
@flag_obrigatoria('public_collections')
def obter_colecao_compartilhada(token):
    print("--- [LOG] Rota /shared/<token> (GET) acessada ---")
    colecao = Colecao.query.filter_by(share_token=token).first()
    if colecao is None:
        return jsonify({"erro": "Coleção compartilhada não encontrada"}), 404
    if not colecao.is_public:
        return jsonify({"erro": "Esta coleção não está mais pública"}), 403
    anuncios = [a.to_dict() for a in colecao.listings]
    return jsonify({
        'collection': {
            'id': colecao.id,
            'name': colecao.name,
            'created_at': iso(colecao.created_at),
            'updated_at': iso(colecao.updated_at),
        },
        'listings': anuncios,
        'metadata': {'total_listings': len(anuncios)},
    }), 200


# --- COMPARTILHAMENTO LEGADO (snapshot com senha mestre) ---
@app.route('/share', methods=['POST'])
def criar_snapshot_compartilhado():
    print("--- [LOG] Rota /share (POST) acessada ---")
    dados = dados_json()
    senha = dados.get('password')
    if not senha:
        return jsonify({"erro": "Senha é obrigatória"}), 400
    colecao_dados = dados.get('collection_data')
    if not isinstance(colecao_dados, dict) or not colecao_dados.get('collection') \
            or colecao_dados.get('listings') is None:
        return jsonify({"erro": "Dados da coleção são obrigatórios"}), 400
    senha_mestre = app.config.get('SHARE_MASTER_PASSWORD')
    if not senha_mestre or not isinstance(senha, str) \
            or not hmac.compare_digest(senha.encode('utf-8'), senha_mestre.encode('utf-8')):
        return jsonify({"erro": "Senha incorreta"}), 401

    nome = (colecao_dados.get('collection') or {}).get('label') or "Coleção sem nome"
    snapshot = CompartilhamentoColecao(
        share_token=gerar_token_compartilhamento(CompartilhamentoColecao, 12),
        collection_name=nome,
        collection_data=colecao_dados,
    )
    db.session.add(snapshot)
    db.session.commit()
    return jsonify({
        'sucesso': True,
        'token': snapshot.share_token,
        'share_url': f"{url_base()}/anuncios?dbshare={snapshot.share_token}",
    }), 201


@app.route('/share/<token>', methods=['GET'])
def obter_snapshot_compartilhado(token):
    snapshot = CompartilhamentoColecao.query.filter_by(share_token=token).first()
    if snapshot is None:
        return jsonify({"erro": "Compartilhamento não encontrado"}), 404
    snapshot.accessed_count = (snapshot.accessed_count or 0) + 1
    db.session.commit()
    return jsonify(snapshot.to_dict()), 200


# ============================================================================
# ANÚNCIOS
# ============================================================================

@app.route('/collections/<collection_id>/listings', methods=['GET'])
@jwt_required()
def listar_anuncios(collection_id):
    user = get_current_user()
    colecao, _, _ = obter_colecao_com_acesso(user.id, collection_id)
    return jsonify([a.to_dict() for a in colecao.listings]), 200


@app.route('/collections/<collection_id>/listings', methods=['POST'])
@jwt_required()
def criar_anuncio(collection_id):
    print(f"--- [LOG] Rota /collections/{collection_id}/listings (POST) acessada ---")
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    exigir_edicao(pode_editar)
    documento = montar_dados_anuncio(dados_json().get('data'))
    verificar_limite_plano(user, 'listings_per_collection',
                           Anuncio.query.filter_by(collection_id=colecao.id).count(),
                           "Limite de anúncios por coleção do seu plano atingido")
    anuncio = Anuncio(collection_id=colecao.id, data=documento)
    db.session.add(anuncio)
    db.session.commit()
    return jsonify(anuncio.to_dict()), 201


@app.route('/collections/<collection_id>/listings/<listing_id>', methods=['GET'])
@jwt_required()
def obter_anuncio(collection_id, listing_id):
    user = get_current_user()
    colecao, _, _ = obter_colecao_com_acesso(user.id, collection_id)
    return jsonify(obter_anuncio_da_colecao(colecao, listing_id).to_dict()), 200


@app.route('/collections/<collection_id>/listings/<listing_id>', methods=['PUT'])
@jwt_required()
def atualizar_anuncio(collection_id, listing_id):
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    anuncio = obter_anuncio_da_colecao(colecao, listing_id)
    exigir_edicao(pode_editar)
    return jsonify(atualizar_dados_anuncio(anuncio, dados_json().get('data')).to_dict()), 200


@app.route('/collections/<collection_id>/listings/<listing_id>', methods=['DELETE'])
@jwt_required()
def deletar_anuncio(collection_id, listing_id):
    user = get_current_user()
    colecao, pode_editar, _ = obter_colecao_com_acesso(user.id, collection_id)
    anuncio = obter_anuncio_da_colecao(colecao, listing_id)
    exigir_edicao(pode_editar)
    db.session.delete(anuncio)
    db.session.commit()
    return jsonify({"sucesso": "Anúncio excluído"}), 200


def _anuncio_com_acesso(user_id, listing_id):
    anuncio = exigir_recurso(db.session.get(Anuncio, listing_id), "Anúncio")
    _, pode_editar, _ = obter_colecao_com_acesso(user_id, anuncio.collection_id)
    return anuncio, pode_editar


@app.route('/listings/<listing_id>', methods=['GET'])
@jwt_required()
def obter_anuncio_por_id(listing_id):
    user = get_current_user()
    anuncio, _ = _anuncio_com_acesso(user.id, listing_id)
    return jsonify(anuncio.to_dict()), 200


@app.route('/listings/<listing_id>', methods=['PUT'])
@jwt_required()
def atualizar_anuncio_por_id(listing_id):
    user = get_current_user()
    anuncio, pode_editar = _anuncio_com_acesso(user.id, listing_id)
    exigir_edicao(pode_editar)
    return jsonify(atualizar_dados_anuncio(anuncio, dados_json().get('data')).to_dict()), 200


@app.route('/listings/<listing_id>', methods=['DELETE'])
@jwt_required()
def deletar_anuncio_por_id(listing_id):
    user = get_current_user()
    anuncio, pode_editar = _anuncio_com_acesso(user.id, listing_id)
    exigir_edicao(pode_editar)
    db.session.delete(anuncio)
    db.session.commit()
    return jsonify({"sucesso": "Anúncio excluído"}), 200


# ============================================================================
# PARSING DE ANÚNCIOS COM IA (OpenAI)
# ============================================================================

OPENAI_API_URL = 'https://api.openai.com/v1/chat/completions'

SYSTEM_PROMPT = """Você é um especialista em extrair dados estruturados de anúncios de imóveis brasileiros.

Dado um texto de anúncio de imóvel (pode vir de sites como ZAP, OLX, VivaReal, QuintoAndar, etc.), extraia os seguintes dados:

1. **titulo**: Título ou descrição principal do imóvel
2. **endereco**: Endereço completo ou localização (bairro, cidade)
3. **m2_totais**: Área total do imóvel em metros quadrados (pode aparecer como "área total", "terreno", etc.)
4. **m2_privado**: Área privativa/útil em metros quadrados (pode aparecer como "área útil", "área privativa", etc.)
5. **quartos**: Número de quartos/dormitórios
6. **suites**: Número de suítes
7. **banheiros**: Número de banheiros
8. **garagem**: Número de vagas de garagem
9. **preco**: Preço do imóvel em reais (apenas números, sem formatação)
10. **piscina**: Se o imóvel possui piscina (true/false)
11. **porteiro_24h**: Se o imóvel possui porteiro 24 horas (true/false)
12. **academia**: Se o imóvel possui academia (true/false)
13. **vista_livre**: Se o imóvel possui vista livre (true/false)
14. **piscina_termica**: Se o imóvel possui piscina térmica (true/false)
15. **tipo_imovel**: Tipo do imóvel ("casa" ou "apartamento")
16. **contato_nome**: Nome do contato/corretor (se mencionado no anúncio)
17. **contato_numero**: Número de telefone/WhatsApp do contato (apenas dígitos, ex: "48996792216" para (48) 99679-2216)

Regras:
- Retorne SEMPRE um JSON válido
- Use null para campos não encontrados
- Para números, retorne apenas o valor numérico (sem R$, m², etc.)
- Para preço, considere valores como "1.500.000" ou "1500000" ou "1,5 milhão"
- Para m², considere variações como "150m²", "150 metros", "150 m2"
- Para quartos, considere "3 quartos", "3 dorms", "3 dormitórios"
- Para suítes, diferencie de quartos quando possível
- Para garagem, considere "X vagas", "garagem para X carros", "X vaga de garagem", "X vagas de garagem"
- Piscina: procure por "piscina", "área de lazer com piscina", etc.
- Porteiro 24h: procure por "porteiro 24h", "porteiro 24 horas", "portaria 24h", "portaria 24 horas", "vigilância 24h"
- Academia: procure por "academia", "academia de ginástica", "sala de ginástica", "fitness"
- Vista livre: procure por "vista livre", "vista desimpedida", "sem prédios na frente", "vista panorâmica"
- Piscina térmica: procure por "piscina térmica", "piscina aquecida", "piscina com aquecimento"
- tipo_imovel: infira se é "casa" ou "apartamento" baseado em palavras-chave:
  - "casa": casa, sobrado, residência, terreno com casa, chalé
  - "apartamento": apartamento, apto, ap., flat, studio, kitnet, cobertura, loft
  - Se não for possível determinar, use null
- contato_nome: procure por nomes de corretores, imobiliárias, ou contatos mencionados (ex: "Fale com João", "Contato: Maria Silva")
- contato_numero: procure por números de telefone ou WhatsApp mencionados no anúncio. Remova espaços, parênteses, hífens e outros caracteres não numéricos (ex: "(48) 99679-2216" vira "48996792216", "+55 48 99679-2216" vira "48996792216"). Se o número começar com 55, remova esse prefixo pois ele é adicionado automaticamente na URL do WhatsApp.

Responda APENAS com o JSON, sem explicações adicionais."""

CAMPOS_EXTRAIDOS = [
    'm2_totais', 'm2_privado', 'quartos', 'suites', 'banheiros', 'garagem', 'preco',
    'piscina', 'porteiro_24h', 'academia', 'vista_livre', 'piscina_termica',
    'tipo_imovel', 'contato_nome', 'contato_numero',
]


def chamar_openai(texto_bruto, api_key):
    """Chama o chat completions da OpenAI e devolve o conteúdo (string JSON) da resposta."""
    payload = {
        'model': app.config['OPENAI_MODEL'],
        'messages': [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': texto_bruto},
        ],
        'temperature': 0.1,
        'max_tokens': 500,
        'response_format': {'type': 'json_object'},
    }
    req = urllib.request.Request(
        OPENAI_API_URL,
        data=json.dumps(payload).encode('utf-8'),
        headers={'Content-Type': 'application/json', 'Authorization': f'Bearer {api_key}'},
        method='POST'
    )
    try:
        with urllib.request.urlopen(req, timeout=60) as response:
            resultado = json.loads(response.read().decode('utf-8'))
    except urllib.error.HTTPError as e:
        print(f"[PARSE-IA] Erro da API: {e.code}")
        if e.code == 401:
            raise ServicoIndisponivel("Chave da API OpenAI inválida")
        if e.code == 429:
            raise LimiteRequisicoes("Limite de requisições da OpenAI excedido. Tente novamente mais tarde.")
        raise ErroInterno("Falha ao interpretar o anúncio")
    except urllib.error.URLError as e:
        print(f"[PARSE-IA] Falha de conexão: {e.reason}")
        raise ErroInterno("Falha ao interpretar o anúncio")

    escolhas = resultado.get('choices') or [{}]
    return (escolhas[0].get('message') or {}).get('content')


@app.route('/parse', methods=['POST'])
@jwt_required()
def interpretar_anuncio():
    print("--- [LOG] Rota /parse (POST) acessada ---")
    user = get_current_user()
    texto_bruto = dados_json().get('raw_text')
    if not texto_bruto or not isinstance(texto_bruto, str):
        return jsonify({"erro": "Texto do anúncio é obrigatório"}), 400
    if not texto_bruto.strip():
        return jsonify({"erro": "Texto do anúncio não pode ser vazio"}), 400

    api_key = app.config.get('OPENAI_API_KEY')
    if not api_key:
        raise ServicoIndisponivel("Chave da API OpenAI não configurada no servidor")

    limite = limites_do_usuario(user)['ai_parses_per_month']
    if limite is not None:
        inicio_mes = agora().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        usados = UsoParseIA.query.filter(UsoParseIA.user_id == user.id, UsoParseIA.created_at >= inicio_mes).count()
        if usados >= limite:
            raise LimiteRequisicoes("Limite mensal de interpretações por IA atingido", {'limite': limite})

    conteudo = chamar_openai(texto_bruto, api_key)
    if not conteudo:
        raise ErroInterno("Resposta vazia da IA")
    try:
        extraido = json.loads(conteudo)
    except json.JSONDecodeError:
        raise ErroInterno("Resposta JSON inválida da IA")
    if not isinstance(extraido, dict):
        raise ErroInterno("Resposta JSON inválida da IA")

    documento = {
        'titulo': extraido.get('titulo') or "Sem título",
        'endereco': extraido.get('endereco') or "Endereço não informado",
        'preco_m2': None,  # calculado na interface
        'link': None,
        'adicionado_em': date.today().isoformat(),
    }
    for campo in CAMPOS_EXTRAIDOS:
        documento[campo] = extraido.get(campo)

    db.session.add(UsoParseIA(user_id=user.id))
    db.session.commit()
    print(f"--- [LOG] Anúncio interpretado por IA para '{user.email}' ---")
    return jsonify({'data': documento}), 200


# ============================================================================
# ORGANIZAÇÕES E MEMBROS
# ============================================================================

@app.route('/organizations', methods=['GET'])
@flag_obrigatoria('organizations')
@jwt_required()
def listar_organizacoes():
    user = get_current_user()
    membros = (MembroOrganizacao.query.options(joinedload(MembroOrganizacao.organization))
               .filter_by(user_id=user.id)
               .order_by(MembroOrganizacao.joined_at.asc())
               .all())
    return jsonify([
        {**m.organization.to_dict(), 'role': m.role, 'joined_at': iso(m.joined_at)} for m in membros
    ]), 200


@app.route('/organizations', methods=['POST'])
@flag_obrigatoria('organizations')
@jwt_required()
def criar_organizacao():
    print("--- [LOG] Rota /organizations (POST) acessada ---")
    user = get_current_user()
    nome = exigir_texto(dados_json(), 'name')
    verificar_permissao_plano(user, 'can_create_org', "Seu plano não permite criar organizações")

    base = gerar_slug(nome)
    if not SLUG_REGEX.match(base):
        return jsonify({"erro": "Não foi possível gerar um identificador válido a partir do nome"}), 400
    slug = base
    while Organizacao.query.filter_by(slug=slug).first():
        slug = f"{base}-{token_aleatorio(6, string.ascii_lowercase + string.digits)}"

    organizacao = Organizacao(name=nome, slug=slug, owner_id=user.id)
    db.session.add(organizacao)
    db.session.flush()
    db.session.add(MembroOrganizacao(org_id=organizacao.id, user_id=user.id, role='owner'))
    db.session.commit()
    print(f"--- [LOG] Organização '{nome}' ({slug}) criada ---")
    return jsonify(organizacao.to_dict()), 201


@app.route('/organizations/<org_id>', methods=['GET'])
@flag_obrigatoria('organizations')
@jwt_required()
def obter_organizacao(org_id):
    user = get_current_user()
    organizacao, papel = obter_organizacao_como_membro(org_id, user.id)
    return jsonify({
        **organizacao.to_dict(),
        'member_count': MembroOrganizacao.query.filter_by(org_id=org_id).count(),
        'collections_count': Colecao.query.filter_by(org_id=org_id).count(),
        'user_role': papel,
    }), 200


@app.route('/organizations/<org_id>', methods=['PUT'])
@flag_obrigatoria('organizations')
@jwt_required()
def atualizar_organizacao(org_id):
    user = get_current_user()
    organizacao, papel = obter_organizacao_como_membro(org_id, user.id)
    exigir_gestor(papel)
    organizacao.name = exigir_texto(dados_json(), 'name')
    db.session.commit()
    return jsonify(organizacao.to_dict()), 200


@app.route('/organizations/<org_id>', methods=['DELETE'])
@flag_obrigatoria('organizations')
@jwt_required()
def deletar_organizacao(org_id):
    print(f"--- [LOG] Rota /organizations/{org_id} (DELETE) acessada ---")
    user = get_current_user()
    organizacao = exigir_recurso(db.session.get(Organizacao, org_id), "Organização")
    if organizacao.owner_id != user.id:
        raise Proibido("Apenas o proprietário pode excluir a organização")
    db.session.delete(organizacao)
    db.session.commit()
    return jsonify({"sucesso": "Organização excluída"}), 200


@app.route('/organizations/<org_id>/members', methods=['GET'])
@flag_obrigatoria('organizations')
@jwt_required()
def listar_membros(org_id):
    user = get_current_user()
    obter_organizacao_como_membro(org_id, user.id)
    membros = (MembroOrganizacao.query.options(joinedload(MembroOrganizacao.user))
               .filter_by(org_id=org_id)
               .order_by(MembroOrganizacao.joined_at.asc())
               .all())
    return jsonify([m.to_dict() for m in membros]), 200


@app.route('/organizations/<org_id>/members', methods=['POST'])
@flag_obrigatoria('organizations')
@jwt_required()
def adicionar_membro(org_id):
    print(f"--- [LOG] Rota /organizations/{org_id}/members (POST) acessada ---")
    user = get_current_user()
    dados = dados_json()
    email = exigir_texto(dados, 'email').lower()
    papel_novo = dados.get('role', 'member')
    if papel_novo not in PAPEIS_ORGANIZACAO:
        return jsonify({"erro": "Papel inválido"}), 400

    _, papel = obter_organizacao_como_membro(org_id, user.id)
    exigir_gestor(papel)
    if papel_novo == 'owner' and papel != 'owner':
        raise Proibido("Apenas proprietários podem adicionar outros proprietários")

    convidado = exigir_recurso(User.query.filter_by(email=email).first(), "Usuário")
    if papel_na_organizacao(org_id, convidado.id):
        return jsonify({"erro": "Usuário já é membro desta organização"}), 400

    membro = MembroOrganizacao(org_id=org_id, user_id=convidado.id, role=papel_novo)
    db.session.add(membro)
    db.session.commit()
    return jsonify(membro.to_dict()), 201


def _obter_membro(org_id, user_id):
    return exigir_recurso(MembroOrganizacao.query.filter_by(org_id=org_id, user_id=user_id).first(), "Membro")


@app.route('/organizations/<org_id>/members/<user_id>', methods=['GET'])
@flag_obrigatoria('organizations')
@jwt_required()
def obter_membro(org_id, user_id):
    user = get_current_user()
    obter_organizacao_como_membro(org_id, user.id)
    return jsonify(_obter_membro(org_id, user_id).to_dict()), 200


@app.route('/organizations/<org_id>/members/<user_id>', methods=['PUT'])
@flag_obrigatoria('organizations')
@jwt_required()
def atualizar_membro(org_id, user_id):
    user = get_current_user()
    papel_novo = dados_json().get('role')
    if papel_novo not in PAPEIS_ORGANIZACAO:
        return jsonify({"erro": "Papel inválido"}), 400

    _, papel = obter_organizacao_como_membro(org_id, user.id)
    exigir_gestor(papel)
    alvo = _obter_membro(org_id, user_id)

    if (alvo.role == 'owner' or papel_novo == 'owner') and papel != 'owner':
        raise Proibido("Apenas proprietários podem alterar papéis de proprietário")
    if papel == 'admin' and alvo.role == 'admin' and alvo.user_id != user.id:
        raise Proibido("Administradores não podem alterar o papel de outros administradores")
    if alvo.role == 'owner' and papel_novo != 'owner' and contar_proprietarios(org_id) <= 1:
        return jsonify({"erro": "Não é possível rebaixar o último proprietário"}), 400

    alvo.role = papel_novo
    db.session.commit()
    return jsonify(alvo.to_dict()), 200


@app.route('/organizations/<org_id>/members/<user_id>', methods=['DELETE'])
@flag_obrigatoria('organizations')
@jwt_required()
def remover_membro(org_id, user_id):
    user = get_current_user()
    _, papel = obter_organizacao_como_membro(org_id, user.id)
    alvo = _obter_membro(org_id, user_id)

    if alvo.user_id != user.id:
        exigir_gestor(papel)
        if alvo.role in PAPEIS_GESTORES and papel != 'owner':
            raise Proibido("Apenas proprietários podem remover administradores ou proprietários")
    if alvo.role == 'owner' and contar_proprietarios(org_id) <= 1:
        return jsonify({"erro": "Não é possível remover o último proprietário"}), 400

    db.session.delete(alvo)
    db.session.commit()
    return jsonify({"sucesso": "Membro removido"}), 200


# --- ADDONS DA ORGANIZAÇÃO (visão dos membros) ---
@app.route('/organizations/<org_id>/addons', methods=['GET'])
@flag_obrigatoria('organizations')
@jwt_required()
def listar_addons_organizacao(org_id):
    user = get_current_user()
    obter_organizacao_como_membro(org_id, user.id)
    concessoes = AddonOrganizacao.query.filter_by(org_id=org_id).order_by(AddonOrganizacao.granted_at.asc()).all()
    return jsonify([c.to_dict() for c in concessoes]), 200


@app.route('/organizations/<org_id>/addons/<slug>', methods=['PATCH'])
@flag_obrigatoria('organizations')
@jwt_required()
def alternar_addon_organizacao(org_id, slug):
    user = get_current_user()
    dados = dados_json()
    _, papel = obter_organizacao_como_membro(org_id, user.id)
    exigir_gestor(papel)
    enabled = ler_bool(dados, 'enabled')
    concessao = exigir_recurso(AddonOrganizacao.query.filter_by(org_id=org_id, addon_slug=slug).first(), "Addon")
    concessao.enabled = enabled
    db.session.commit()
    return jsonify(concessao.to_dict()), 200


@app.route('/organizations/<org_id>/addons/<slug>', methods=['DELETE'])
@flag_obrigatoria('organizations')
@jwt_required()
def remover_addon_organizacao(org_id, slug):
    user = get_current_user()
    _, papel = obter_organizacao_como_membro(org_id, user.id)
    exigir_gestor(papel)
    concessao = exigir_recurso(AddonOrganizacao.query.filter_by(org_id=org_id, addon_slug=slug).first(), "Addon")
    db.session.delete(concessao)
    db.session.commit()
    return jsonify({"sucesso": "Addon removido da organização"}), 200


# ============================================================================
# ADDONS DO USUÁRIO
# ============================================================================

@app.route('/user/addons', methods=['GET'])
@jwt_required()
def listar_addons_usuario():
    user = get_current_user()
    concessoes = AddonUsuario.query.filter_by(user_id=user.id).order_by(AddonUsuario.granted_at.asc()).all()
    return jsonify([c.to_dict() for c in concessoes]), 200


@app.route('/user/addons/<slug>', methods=['PATCH'])
@jwt_required()
def alternar_addon_usuario(slug):
    user = get_current_user()
    enabled = ler_bool(dados_json(), 'enabled')
    concessao = exigir_recurso(AddonUsuario.query.filter_by(user_id=user.id, addon_slug=slug).first(), "Addon")
    concessao.enabled = enabled
    db.session.commit()
    return jsonify(concessao.to_dict()), 200


@app.route('/user/addons/<slug>/acesso', methods=['GET'])
@jwt_required()
def verificar_acesso_addon(slug):
    user = get_current_user()
    return jsonify({'tem_acesso': tem_acesso_addon(user.id, slug, request.args.get('org_id'))}), 200


# ============================================================================
# PLANOS E ASSINATURAS
# ============================================================================

@app.route('/plans', methods=['GET'])
def listar_planos():
    consulta = Plano.query
    if request.args.get('include_inactive') == 'true':
        verify_jwt_in_request(optional=True)
        identidade = get_jwt_identity()
        user = db.session.get(User, identidade) if identidade else None
        if not user or not user.is_admin:
            raise Proibido("Apenas administradores podem listar planos inativos")
    else:
        consulta = consulta.filter(Plano.is_active.is_(True))
    planos = consulta.order_by(Plano.price_in_cents.asc()).all()
    return jsonify([p.to_dict() for p in planos]), 200


@app.route('/subscriptions', methods=['GET'])
@jwt_required()
def obter_minha_assinatura():
    user = get_current_user()
    assinatura = assinatura_ativa(user.id)
    resposta = jsonify({'subscription': assinatura.to_dict() if assinatura else None})
    return gravar_cookie_assinatura(resposta, user)


@app.route('/subscriptions', methods=['POST'])
@admin_obrigatorio
def conceder_assinatura():
    print("--- [LOG] Rota /subscriptions (POST) acessada ---")
    admin = get_current_user()
    dados = dados_json()
    user_id = exigir_campo(dados, 'user_id')
    plan_id = exigir_campo(dados, 'plan_id')
    expires_at = ler_data_iso(exigir_campo(dados, 'expires_at'), 'expires_at')

    user = exigir_recurso(db.session.get(User, user_id), "Usuário")
    plano = exigir_recurso(db.session.get(Plano, plan_id), "Plano")
    if not plano.is_active:
        return jsonify({"erro": "Plano inativo"}), 400

    Assinatura.query.filter_by(user_id=user.id, status='active').update({'status': 'expired'})
    assinatura = Assinatura(user_id=user.id, plan_id=plano.id, status='active', starts_at=agora(),
                            expires_at=expires_at, granted_by=admin.id, notes=dados.get('notes'))
    db.session.add(assinatura)
    db.session.commit()
    print(f"--- [LOG] Assinatura '{plano.slug}' concedida para {user.email} até {expires_at.date()} ---")
    return jsonify(assinatura.to_dict()), 201


# ============================================================================
# ADMINISTRAÇÃO
# ============================================================================

@app.route('/admin/addons', methods=['GET'])
@admin_obrigatorio
def admin_listar_addons():
    return jsonify([a.to_dict() for a in Addon.query.order_by(Addon.name.asc()).all()]), 200


@app.route('/admin/users', methods=['GET'])
@admin_obrigatorio
def admin_listar_usuarios():
    resultado = []
    for user in User.query.order_by(User.created_at.desc()).all():
        assinatura = assinatura_ativa(user.id)
        resultado.append({**user.to_dict(), 'subscription': assinatura.to_dict() if assinatura else None})
    return jsonify(resultado), 200


@app.route('/admin/users/<user_id>', methods=['PATCH'])
@admin_obrigatorio
def admin_atualizar_usuario(user_id):
    admin = get_current_user()
    dados = dados_json()
    if 'is_admin' not in dados and 'name' not in dados:
        return jsonify({"erro": "Informe is_admin ou name"}), 400
    user = exigir_recurso(db.session.get(User, user_id), "Usuário")

    if 'name' in dados:
        nome = dados['name'].strip() if isinstance(dados['name'], str) else ''
        if not nome or len(nome) > 255:
            return jsonify({"erro": "Nome deve ter entre 1 e 255 caracteres"}), 400
        user.name = nome
    if 'is_admin' in dados:
        is_admin = ler_bool(dados, 'is_admin')
        if user.id == admin.id and not is_admin:
            return jsonify({"erro": "Você não pode remover seu próprio acesso de administrador"}), 400
        user.is_admin = is_admin
    db.session.commit()
    return jsonify(user.to_dict()), 200


@app.route('/admin/users/<user_id>', methods=['DELETE'])
@admin_obrigatorio
def admin_deletar_usuario(user_id):
    print(f"--- [LOG] Rota /admin/users/{user_id} (DELETE) acessada ---")
    admin = get_current_user()
    if user_id == admin.id:
        return jsonify({"erro": "Você não pode excluir a si mesmo"}), 400
    user = exigir_recurso(db.session.get(User, user_id), "Usuário")

    for organizacao in Organizacao.query.filter_by(owner_id=user.id).all():
        db.session.delete(organizacao)
    for modelo in (Assinatura, AddonUsuario, AddonOrganizacao):
        modelo.query.filter_by(granted_by=user.id).update({'granted_by': None})
    db.session.delete(user)
    db.session.commit()
    return jsonify({"sucesso": "Usuário excluído"}), 200


@app.route('/admin/stats', methods=['GET'])
@admin_obrigatorio
def admin_estatisticas():
    instante = agora()
    por_plano = (db.session.query(Plano.name, func.count(Assinatura.id))
                 .join(Assinatura, Assinatura.plan_id == Plano.id)
                 .filter(Assinatura.status == 'active', Assinatura.expires_at > instante)
                 .group_by(Plano.name)
                 .all())
    return jsonify({
        'total_users': User.query.count(),
        'total_admins': User.query.filter(User.is_admin.is_(True)).count(),
        'active_subscriptions': Assinatura.query.filter(
            Assinatura.status == 'active', Assinatura.expires_at > instante).count(),
        'total_collections': Colecao.query.count(),
        'total_listings': Anuncio.query.count(),
        'active_plans': Plano.query.filter(Plano.is_active.is_(True)).count(),
        'recent_users': User.query.filter(User.created_at >= instante - timedelta(days=30)).count(),
        'subscriptions_by_plan': [{'plan_name': nome, 'count': total} for nome, total in por_plano],
    }), 200


# --- ASSINATURAS (admin) ---
@app.route('/admin/subscriptions/<subscription_id>', methods=['GET'])
@admin_obrigatorio
def admin_obter_assinatura(subscription_id):
    assinatura = exigir_recurso(db.session.get(Assinatura, subscription_id), "Assinatura")
    return jsonify({**assinatura.to_dict(), 'user': assinatura.user.to_dict()}), 200


@app.route('/admin/subscriptions/<subscription_id>', methods=['PATCH'])
@admin_obrigatorio
def admin_atualizar_assinatura(subscription_id):
    assinatura = exigir_recurso(db.session.get(Assinatura, subscription_id), "Assinatura")
    dados = dados_json()
    if not any(campo in dados for campo in ('expires_at', 'status', 'notes')):
        return jsonify({"erro": "Informe expires_at, status ou notes"}), 400

    if 'expires_at' in dados:
        assinatura.expires_at = ler_data_iso(dados['expires_at'], 'expires_at')
    if 'status' in dados:
        if dados['status'] not in STATUS_ASSINATURA:
            return jsonify({"erro": "Status inválido"}), 400
        assinatura.status = dados['status']
    if 'notes' in dados:
        if dados['notes'] is not None and not isinstance(dados['notes'], str):
            return jsonify({"erro": "notes deve ser texto"}), 400
        assinatura.notes = dados['notes']
    db.session.commit()
    return jsonify(assinatura.to_dict()), 200


@app.route('/admin/subscriptions/<subscription_id>', methods=['DELETE'])
@admin_obrigatorio
def admin_deletar_assinatura(subscription_id):
    assinatura = exigir_recurso(db.session.get(Assinatura, subscription_id), "Assinatura")
    db.session.delete(assinatura)
    db.session.commit()
    return jsonify({"sucesso": "Assinatura excluída"}), 200


@app.route('/admin/subscriptions/user/<user_id>', methods=['GET'])
@admin_obrigatorio
def admin_historico_assinaturas(user_id):
    exigir_recurso(db.session.get(User, user_id), "Usuário")
    assinaturas = (Assinatura.query.options(joinedload(Assinatura.plan), joinedload(Assinatura.granted_by_user))
                   .filter_by(user_id=user_id)
                   .order_by(Assinatura.created_at.desc())
                   .all())
    return jsonify([
        {**a.to_dict(), 'granted_by_user': a.granted_by_user.to_dict() if a.granted_by_user else None}
        for a in assinaturas
    ]), 200


# --- ADDONS DE USUÁRIOS (admin) ---
@app.route('/admin/users/<user_id>/addons', methods=['GET'])
@admin_obrigatorio
def admin_listar_addons_usuario(user_id):
    exigir_recurso(db.session.get(User, user_id), "Usuário")
    concessoes = AddonUsuario.query.filter_by(user_id=user_id).order_by(AddonUsuario.granted_at.asc()).all()
    return jsonify([c.to_dict() for c in concessoes]), 200


@app.route('/admin/users/<user_id>/addons', methods=['POST'])
@admin_obrigatorio
def admin_conceder_addon_usuario(user_id):
    admin = get_current_user()
    exigir_recurso(db.session.get(User, user_id), "Usuário")
    concessao, atualizado = conceder_addon(AddonUsuario, {'user_id': user_id}, dados_json(), admin)
    print(f"--- [LOG] Addon '{concessao.addon_slug}' concedido ao usuário {user_id} ---")
    return jsonify({'grant': concessao.to_dict(), 'updated': atualizado}), 200 if atualizado else 201


@app.route('/admin/users/<user_id>/addons/<slug>', methods=['DELETE'])
@admin_obrigatorio
def admin_revogar_addon_usuario(user_id, slug):
    concessao = exigir_recurso(AddonUsuario.query.filter_by(user_id=user_id, addon_slug=slug).first(), "Addon")
    db.session.delete(concessao)
    db.session.commit()
    return jsonify({"sucesso": "Addon revogado"}), 200


# --- ADDONS DE ORGANIZAÇÕES (admin) ---
@app.route('/admin/organizations/addons', methods=['GET'])
@admin_obrigatorio
def admin_listar_addons_organizacoes():
    organizacoes = Organizacao.query.options(joinedload(Organizacao.addons)).order_by(Organizacao.name.asc()).all()
    return jsonify([
        {**o.to_dict(), 'addons': [c.to_dict() for c in o.addons]} for o in organizacoes
    ]), 200


@app.route('/admin/organizations/<org_id>/addons', methods=['GET'])
@admin_obrigatorio
def admin_listar_addons_organizacao(org_id):
    exigir_recurso(db.session.get(Organizacao, org_id), "Organização")
    concessoes = AddonOrganizacao.query.filter_by(org_id=org_id).order_by(AddonOrganizacao.granted_at.asc()).all()
    return jsonify([c.to_dict() for c in concessoes]), 200


@app.route('/admin/organizations/<org_id>/addons', methods=['POST'])
@admin_obrigatorio
def admin_conceder_addon_organizacao(org_id):
    admin = get_current_user()
    exigir_recurso(db.session.get(Organizacao, org_id), "Organização")
    concessao, atualizado = conceder_addon(AddonOrganizacao, {'org_id': org_id}, dados_json(), admin)
    print(f"--- [LOG] Addon '{concessao.addon_slug}' concedido à organização {org_id} ---")
    return jsonify({'grant': concessao.to_dict(), 'updated': atualizado}), 200 if atualizado else 201


@app.route('/admin/organizations/<org_id>/addons/<slug>', methods=['DELETE'])
@admin_obrigatorio
def admin_revogar_addon_organizacao(org_id, slug):
    concessao = exigir_recurso(AddonOrganizacao.query.filter_by(org_id=org_id, addon_slug=slug).first(), "Addon")
    db.session.delete(concessao)
    db.session.commit()
    return jsonify({"sucesso": "Addon revogado"}), 200


# ============================================================================
# CASA - SIMULADOR DE FINANCIAMENTO SAC
# ============================================================================

CAMPOS_NUMERICOS_CASA = (
    'capital_disponivel', 'reserva_emergencia', 'haircut', 'taxa_anual', 'tr_mensal', 'prazo_meses',
    'aporte_extra', 'renda_mensal', 'custo_condominio_mensal', 'seguros',
)
PRAZO_MAXIMO_MESES = 600


def ler_numero(dados, campo):
    valor = dados.get(campo)
    if isinstance(valor, bool) or not isinstance(valor, (int, float)):
        raise ErroValidacao(f"{campo} deve ser numérico", {'campo': campo})
    if not math.isfinite(valor):
        raise ErroValidacao(f"{campo} deve ser um número finito", {'campo': campo})
    if valor < 0:
        raise ErroValidacao(f"{campo} não pode ser negativo", {'campo': campo})
    return valor


def ler_parametros_casa(dados):
    """Parâmetros do simulador sobre os padrões, validados."""
    parametros = {campo: calc.PADROES[campo] for campo in CAMPOS_NUMERICOS_CASA}
    for campo in CAMPOS_NUMERICOS_CASA:
        if dados.get(campo) is not None:
            parametros[campo] = ler_numero(dados, campo)

    prazo = parametros['prazo_meses']
    if prazo != int(prazo) or not 0 < prazo <= PRAZO_MAXIMO_MESES:
        raise ErroValidacao(f"prazo_meses deve ser um inteiro entre 1 e {PRAZO_MAXIMO_MESES}")
    parametros['prazo_meses'] = int(prazo)
    if parametros['renda_mensal'] <= 0:
        raise ErroValidacao("renda_mensal deve ser maior que zero")
    return parametros


def ler_lista_valores(dados, campo):
    valores = dados.get(campo)
    if not isinstance(valores, list) or not valores:
        raise ErroValidacao(f"{campo} deve ser uma lista não vazia", {'campo': campo})
    return [ler_numero({campo: v}, campo) for v in valores]


def verificar_acesso_simulador(user, dados):
    if user.is_admin:
        return
    org_id = request.args.get('org_id') or dados.get('org_id')
    if not tem_acesso_addon(user.id, 'financiamento', org_id):
        raise Proibido("Seu acesso não inclui o Simulador de Financiamento", {'addon': 'financiamento'})


@app.route('/casa/padroes', methods=['GET'])
@flag_obrigatoria('financing_simulator')
@jwt_required()
def casa_padroes():
    user = get_current_user()
    verificar_acesso_simulador(user, {})
    return jsonify({
        'padroes': calc.PADROES,
        'configuracoes': calc.CONFIGURACOES_PADRAO,
        'tooltips': calc.gerar_tooltips(),
    }), 200


@app.route('/casa/cenario', methods=['POST'])
@flag_obrigatoria('financing_simulator')
@jwt_required()
def casa_cenario():
    print("--- [LOG] Rota /casa/cenario (POST) acessada ---")
    user = get_current_user()
    dados = dados_json()
    verificar_acesso_simulador(user, dados)

    parametros = ler_parametros_casa(dados)
    valor_imovel = ler_numero(dados, 'valor_imovel')
    valor_apartamento = ler_numero(dados, 'valor_apartamento')
    estrategia = dados.get('estrategia')
    if estrategia not in calc.ESTRATEGIAS:
        return jsonify({"erro": "estrategia deve ser 'permuta' ou 'venda_posterior'"}), 400

    cenario = calc.gerar_cenario_completo(
        valor_imovel=valor_imovel,
        valor_apartamento=valor_apartamento,
        estrategia=estrategia,
        **parametros,
    )
    return jsonify(cenario), 200


@app.route('/casa/matriz', methods=['POST'])
@flag_obrigatoria('financing_simulator')
@jwt_required()
def casa_matriz():
    print("--- [LOG] Rota /casa/matriz (POST) acessada ---")
    user = get_current_user()
    dados = dados_json()
    verificar_acesso_simulador(user, dados)
    parametros = ler_parametros_casa(dados)

    valores = {}
    for lista, base, multiplicadores in (
        ('valores_imovel', 'valor_imovel', 'multiplicadores_imovel'),
        ('valores_apartamento', 'valor_apartamento', 'multiplicadores_apartamento'),
    ):
        if lista in dados:
            valores[lista] = ler_lista_valores(dados, lista)
        elif base in dados:
            valor_base = ler_numero(dados, base)
            fatores = ler_lista_valores(dados, multiplicadores) if multiplicadores in dados else [1.0, 0.95]
            valores[lista] = [round(valor_base * fator) for fator in fatores]
        else:
            valores[lista] = list(calc.PADROES[lista])

    estrategias = dados.get('estrategias', list(calc.ESTRATEGIAS))
    if not isinstance(estrategias, list) or not estrategias or any(e not in calc.ESTRATEGIAS for e in estrategias):
        return jsonify({"erro": "estrategias deve conter 'permuta' e/ou 'venda_posterior'"}), 400

    cenarios = calc.gerar_matriz_cenarios(
        valores_imovel=valores['valores_imovel'],
        valores_apartamento=valores['valores_apartamento'],
        **parametros,
    )
    filtrados = [c for c in cenarios if c['estrategia'] in estrategias]
    melhor = next((c for c in filtrados if c['is_best']), filtrados[0] if filtrados else None)

    return jsonify({
        'cenarios': filtrados,
        'melhor': melhor,
        'taxa_mensal_efetiva': calc.calcular_taxa_mensal_efetiva(parametros['taxa_anual'], parametros['tr_mensal']),
        'cet_estimado': (parametros['taxa_anual'] + parametros['tr_mensal'] * 12
                         + calc.CONFIGURACOES_PADRAO['cet_custo_adicional']),
        'tooltips': calc.gerar_tooltips(
            reserva_emergencia=parametros['reserva_emergencia'],
            aporte_extra=parametros['aporte_extra'],
            economia_juros=melhor['economia_juros'] if melhor else None,
        ),
    }), 200


@app.route('/casa/tabela-sac', methods=['POST'])
@flag_obrigatoria('financing_simulator')
@jwt_required()
def casa_tabela_sac():
    user = get_current_user()
    dados = dados_json()
    verificar_acesso_simulador(user, dados)
    parametros = ler_parametros_casa(dados)
    valor_financiado = ler_numero(dados, 'valor_financiado')
    taxa = calc.calcular_taxa_mensal_efetiva(parametros['taxa_anual'], parametros['tr_mensal'])

    resposta = {
        'taxa_mensal_efetiva': taxa,
        'tabela': calc.gerar_tabela_sac(valor_financiado, parametros['prazo_meses'], taxa, parametros['seguros']),
        'amortizacao_extra': None,
    }
    aporte = dados.get('aporte_extra')
    if aporte is not None and parametros['aporte_extra'] > 0:
        resposta['amortizacao_extra'] = calc.calcular_com_amortizacao_extra(
            valor_financiado, parametros['prazo_meses'], taxa, parametros['aporte_extra'], parametros['seguros'])
    return jsonify(resposta), 200


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    print(f"--- [LOG] Iniciando servidor Flask na porta {port} ---")
    app.run(host='0.0.0.0', port=port, debug=True)
