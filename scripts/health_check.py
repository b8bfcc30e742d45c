import sys
import os
import sqlite3

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from eixo import create_app
from eixo.database import get_db

REQUIRED_TABLES = [
    'users', 'projects', 'tap_forms', 'sale_forms', 'implantacao_etapas', 'implantacao_checklists',
    'estoque_itens', 'locais_estoque', 'estoque',
    'manutencao_chamados', 'manutencao_pendencias', 'customer_portfolio', 'orcamento_sessoes',
]

REQUIRED_BLUEPRINTS = [
    'auth', 'usuarios', 'permissoes', 'projetos', 'implantacao', 'notificacoes', 'estoque', 'manutencao',
    'carteira', 'sucesso_cliente', 'orcamentos', 'ia', 'dashboard',
]


def check_schema(app):
    print("[-] Verifying Database Schema...")
    failures = 0
    with app.app_context():
        db = get_db()
        for table in REQUIRED_TABLES:
            try:
                db.execute(f"SELECT 1 FROM {table} LIMIT 1")
                print(f"  [OK] Table '{table}' exists.")
            except sqlite3.OperationalError:
                print(f"  [FAIL] Table '{table}' MISSING.")
                failures += 1

        locais = db.execute("SELECT COUNT(*) AS n FROM locais_estoque").fetchone()['n']
        print(f"  [{'OK' if locais else 'FAIL'}] {locais} stock locations seeded.")
        if not locais:
            failures += 1
    return failures

def check_routes(app):
    print("\n[-] Verifying Route Registration...")
    failures = 0
    for bp in REQUIRED_BLUEPRINTS:
        if bp in app.blueprints:
            print(f"  [OK] Blueprint '{bp}' registered.")
        else:
            print(f"  [FAIL] Blueprint '{bp}' NOT registered.")
            failures += 1
    return failures

def check_integrations(app):
    print("\n[-] Verifying Integrations...")
    for key in ('AI_API_KEY', 'CUSTOMER_API_KEY', 'SMTP_HOST'):
        state = 'OK' if app.config.get(key) else 'WARN'
        print(f"  [{state}] {key} {'configured' if state == 'OK' else 'not set'}.")

if __name__ == "__main__":
    print("=== SYSTEM HEALTH CHECK ===")
    app = create_app()
    failures = check_schema(app) + check_routes(app)
    check_integrations(app)
    print(f"\n=== {'ALL CHECKS PASSED' if not failures else f'{failures} CHECK(S) FAILED'} ===")
    sys.exit(1 if failures else 0)
