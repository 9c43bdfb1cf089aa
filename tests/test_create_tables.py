from app import db, User, Addon, Plano, popular_dados_iniciais
from create_tables import normalize_db_url, garantir_admin


def test_normalize_db_url():
    assert normalize_db_url('postgres://u:p@h/db') == 'postgresql://u:p@h/db?sslmode=require'
    assert normalize_db_url('postgresql://h/db?x=1') == 'postgresql://h/db?x=1&sslmode=require'
    assert normalize_db_url('postgresql://h/db?sslmode=disable') == 'postgresql://h/db?sslmode=disable'
    assert normalize_db_url('sqlite:///anuncios.db') == 'sqlite:///anuncios.db'


def test_popular_dados_iniciais_idempotente(app):
    assert popular_dados_iniciais() == 0
    assert Addon.query.count() == 2
    assert Plano.query.count() == 2


def test_garantir_admin_cria_e_promove(app, criar_usuario):
    novo, criado = garantir_admin(db, User, ' Root@Teste.com ', 'segredo')
    assert criado is True
    assert novo.email == 'root@teste.com'
    assert novo.is_admin is True
    assert novo.check_password('segredo')

    existente = criar_usuario(email='dev@teste.com', plano=None)
    promovido, criado = garantir_admin(db, User, 'dev@teste.com', 'outra')
    assert criado is False
    assert promovido.id == existente.id
    assert promovido.is_admin is True
    assert promovido.check_password('senha123')
