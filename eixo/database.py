import sqlite3
from flask import g, current_app
from werkzeug.security import generate_password_hash

from .constants import LOCATION_CODE_MAP, REGRAS_PADRAO
from .utils import casefold


def get_db():
    db = getattr(g, '_database', None)
    if db is None:
        db = g._database = sqlite3.connect(current_app.config['DATABASE'])
        db.row_factory = sqlite3.Row
        db.execute('PRAGMA foreign_keys = ON')
        db.create_function('casefold', 1, casefold, deterministic=True)
    return db

def close_connection(exception):
    # streamed responses push this context again after teardown; get_db must reopen
    db = g.pop('_database', None)
    if db is not None:
        db.close()

def init_db(app):
    with app.app_context():
        db = get_db()
        with app.open_resource('schema.sql', mode='r') as f:
            db.cursor().executescript(f.read())

        # Ensure Admin User
        try:
            db.execute(
                "INSERT INTO users (email, nome, password, role) VALUES (?, ?, ?, 'admin')",
                (app.config['ADMIN_EMAIL'], 'Administrador',
                 generate_password_hash(app.config['ADMIN_PASSWORD']))
            )
            app.logger.info("Admin user created: %s", app.config['ADMIN_EMAIL'])
        except sqlite3.IntegrityError:
            pass

        # Locais de estoque conhecidos pelo ERP
        for local in LOCATION_CODE_MAP.values():
            db.execute(
                'INSERT OR IGNORE INTO locais_estoque (cidade, tipo, nome_local) VALUES (?, ?, ?)',
                (local['cidade'], local['tipo'], local['nome_local'])
            )

        for campo, (percentual, base_campo, descricao) in REGRAS_PADRAO.items():
            db.execute(
                'INSERT OR IGNORE INTO orcamento_regras_precificacao (campo, percentual, base_campo, descricao) VALUES (?, ?, ?, ?)',
                (campo, percentual, base_campo, descricao)
            )
        db.commit()

def log_audit(user_id, action, details=''):
    db = get_db()
    db.execute('INSERT INTO audits (user_id, action, details) VALUES (?, ?, ?)',
               (user_id, action, details))
    db.commit()

def get_setting(key, default=None):
    row = get_db().execute('SELECT value FROM settings WHERE key = ?', (key,)).fetchone()
    return row['value'] if row and row['value'] is not None else default
