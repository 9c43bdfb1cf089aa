import os

# configuração precisa existir antes do import do app
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET_KEY'] = 'chave-de-testes-com-tamanho-suficiente-para-hs256'
os.environ['SHARE_MASTER_PASSWORD'] = 'senha-mestre'
os.environ.pop('OPENAI_API_KEY', None)

from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

import app as app_module
import feature_flags
from app import db, User, Plano, Assinatura, Organizacao, MembroOrganizacao, AddonUsuario, agora


@pytest.fixture
def app():
    app_module.app.config.update(TESTING=True, OPENAI_API_KEY=None, PUBLIC_APP_URL='https://anuncios.test')
    feature_flags.limpar_overrides()
    with app_module.app.app_context():
        db.create_all()
        app_module.popular_dados_iniciais()
        yield app_module.app
        db.session.remove()
        db.drop_all()
    feature_flags.limpar_overrides()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def criar_usuario(app):
    """Fábrica de usuários. plano=None cria usuário sem assinatura."""
    def _criar(email='usuario@teste.com', name='Usuário Teste', password='senha123', is_admin=False,
               plano='plus', dias=30):
        user = User(email=email, name=name, is_admin=is_admin)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        if plano:
            plano_obj = Plano.query.filter_by(slug=plano).first()
            db.session.add(Assinatura(user_id=user.id, plan_id=plano_obj.id, status='active',
                                      expires_at=agora() + timedelta(days=dias)))
            db.session.commit()
        return user
    return _criar


@pytest.fixture
def auth(app):
    def _headers(user):
        token = create_access_token(identity=user.id, additional_claims={'email': user.email, 'is_admin': user.is_admin})
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def usuario(criar_usuario):
    return criar_usuario()


@pytest.fixture
def headers(usuario, auth):
    return auth(usuario)


@pytest.fixture
def admin(criar_usuario):
    return criar_usuario(email='admin@teste.com', name='Admin', is_admin=True, plano=None)


@pytest.fixture
def admin_headers(admin, auth):
    return auth(admin)


@pytest.fixture
def criar_organizacao(app):
    def _criar(dono, name='Imobiliária Teste', slug=None):
        org = Organizacao(name=name, slug=slug or app_module.gerar_slug(name), owner_id=dono.id)
        db.session.add(org)
        db.session.flush()
        db.session.add(MembroOrganizacao(org_id=org.id, user_id=dono.id, role='owner'))
        db.session.commit()
        return org
    return _criar


@pytest.fixture
def adicionar_membro(app):
    def _adicionar(org, user, role='member'):
        membro = MembroOrganizacao(org_id=org.id, user_id=user.id, role=role)
        db.session.add(membro)
        db.session.commit()
        return membro
    return _adicionar


@pytest.fixture
def conceder_addon_usuario(app):
    def _conceder(user, slug='financiamento', enabled=True, expires_at=None):
        concessao = AddonUsuario(user_id=user.id, addon_slug=slug, enabled=enabled, expires_at=expires_at)
        db.session.add(concessao)
        db.session.commit()
        return concessao
    return _conceder
