import os
import logging
from flask import Flask, jsonify, request
from flask_jwt_extended import JWTManager
from dotenv import load_dotenv

from .database import get_db, close_connection

load_dotenv()

def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)

    # Configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key'),
        JWT_SECRET_KEY=os.environ.get('JWT_SECRET_KEY', 'dev-jwt-secret'),
        JWT_TOKEN_LOCATION=['headers', 'cookies'],
        JWT_COOKIE_CSRF_PROTECT=False,
        DATABASE=os.environ.get('DATABASE', 'eixo.db'),
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),
        ADMIN_EMAIL=os.environ.get('ADMIN_EMAIL', 'admin@eixo.local'),
        ADMIN_PASSWORD=os.environ.get('ADMIN_PASSWORD', 'admin123'),
        AI_GATEWAY_URL=os.environ.get('AI_GATEWAY_URL', 'https://ai.gateway.lovable.dev/v1'),
        AI_API_KEY=os.environ.get('AI_API_KEY'),
        AI_MODEL=os.environ.get('AI_MODEL', 'google/gemini-2.5-flash'),
        AI_MODEL_PAINEL=os.environ.get('AI_MODEL_PAINEL', 'openai/gpt-5-mini'),
        AI_TIMEOUT=int(os.environ.get('AI_TIMEOUT', '120')),
        CUSTOMER_API_KEY=os.environ.get('CUSTOMER_API_KEY'),
        SMTP_HOST=os.environ.get('SMTP_HOST'),
        SMTP_PORT=int(os.environ.get('SMTP_PORT', '587')),
        SMTP_USER=os.environ.get('SMTP_USER'),
        SMTP_PASSWORD=os.environ.get('SMTP_PASSWORD'),
        SMTP_FROM=os.environ.get('SMTP_FROM', 'Eixo PCI <noreply@eixo.local>'),
        FRONTEND_URL=os.environ.get('FRONTEND_URL', 'http://localhost:5173'),
    )

    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    # Register Extensions
    jwt = JWTManager(app)

    # Register Database Teardown
    app.teardown_appcontext(close_connection)

    # JWT Callbacks
    @jwt.unauthorized_loader
    def custom_unauthorized_response(_err):
        return jsonify({"error": "Missing Authorization Header"}), 401

    @jwt.expired_token_loader
    def custom_expired_token_response(_hdr, _payload):
        return jsonify({"error": "token_expired", "msg": "Token has expired"}), 401

    @jwt.invalid_token_loader
    def custom_invalid_token_response(_err):
        return jsonify({"error": "Invalid Token"}), 401

    @jwt.user_lookup_loader
    def user_lookup_callback(_jwt_header, jwt_data):
        identity = jwt_data["sub"]
        db = get_db()
        return db.execute("SELECT * FROM users WHERE id = ? AND is_active = 1", (identity,)).fetchone()

    @jwt.user_lookup_error_loader
    def custom_user_lookup_error(_hdr, _payload):
        return jsonify({"error": "Usuário não encontrado ou desativado"}), 401

    @app.errorhandler(404)
    def not_found(_e):
        return jsonify({'error': 'Not found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return jsonify({'error': 'Method not allowed'}), 405

    # Register Blueprints (Import here to avoid circular dependencies)
    from .routes import (auth, usuarios, permissoes, projetos, notificacoes, estoque,
                         manutencao, carteira, sucesso_cliente, orcamentos, ia, dashboard, implantacao)

    app.register_blueprint(auth.bp)
    app.register_blueprint(usuarios.bp)
    app.register_blueprint(permissoes.bp)
    app.register_blueprint(projetos.bp)
    app.register_blueprint(implantacao.bp)
    app.register_blueprint(notificacoes.bp)
    app.register_blueprint(estoque.bp)
    app.register_blueprint(manutencao.bp)
    app.register_blueprint(carteira.bp)
    app.register_blueprint(sucesso_cliente.bp)
    app.register_blueprint(orcamentos.bp)
    app.register_blueprint(ia.bp)
    app.register_blueprint(dashboard.bp)

    return app
