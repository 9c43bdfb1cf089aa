"""
Script para criar as tabelas do banco e popular addons e planos padrão.
Execute antes do primeiro deploy (é seguro rodar mais de uma vez).

Como executar:
python create_tables.py

Com ADMIN_EMAIL e ADMIN_PASSWORD definidos, também cria (ou promove) um administrador.
"""

import os
import sys


def normalize_db_url(url: str) -> str:
    """Corrige prefixo antigo e garante SSL no Postgres"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql") and "sslmode=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode=require"
    return url


def garantir_admin(db, User, email, password, name="Administrador"):
    """Cria o admin ou promove o usuário existente. Retorna (user, criado)."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    criado = user is None
    if criado:
        user = User(email=email, name=name)
        user.set_password(password)
        db.session.add(user)
    user.is_admin = True
    db.session.commit()
    return user, criado


def inicializar_banco(admin_email=None, admin_password=None):
    from app import db, app, User, popular_dados_iniciais
    from sqlalchemy import inspect

    with app.app_context():
        print("\n🔨 Criando tabelas...")
        db.create_all()
        print("✅ Tabelas criadas com sucesso!")

        criados = popular_dados_iniciais()
        print(f"🌱 Dados iniciais: {criados} registro(s) novo(s) (addons e planos)")

        if admin_email and admin_password:
            user, criado = garantir_admin(db, User, admin_email, admin_password)
            print(f"👤 Admin {'criado' if criado else 'promovido'}: {user.email}")

        tables = inspect(db.engine).get_table_names()
        print(f"\n📋 Tabelas no banco ({len(tables)}):")
        for table in tables:
            print(f"   • {table}")
        return tables


if __name__ == '__main__':
    DATABASE_URL = os.getenv("DATABASE_URL")
    if DATABASE_URL:
        # precisa estar no ambiente antes do import do app
        os.environ["DATABASE_URL"] = normalize_db_url(DATABASE_URL)

    print("=" * 60)
    print("INICIALIZANDO BANCO DE DADOS")
    print("=" * 60)
    print(f"\n📦 Conectando em: {os.environ.get('DATABASE_URL', 'sqlite:///anuncios.db')[:40]}...")

    try:
        inicializar_banco(os.getenv("ADMIN_EMAIL"), os.getenv("ADMIN_PASSWORD"))
        print("\n" + "=" * 60)
        print("✅ BANCO PRONTO! Agora você pode rodar o app.py")
        print("=" * 60)
    except Exception as e:
        print(f"\n❌ ERRO: {e}")
        print("\n💡 Dicas:")
        print("   1. Verifique se o DATABASE_URL está correto")
        print("   2. Verifique se o banco está acessível")
        sys.exit(1)
