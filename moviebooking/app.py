import logging

from flask import Flask, jsonify

from .admin import admin
from .api import api
from .config import Config
from .extensions import cache, cors, db, server_session
from .seed import init_data, seed_command


def create_app(config_object=None):
    """Application factory"""
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    db.init_app(app)
    cache.init_app(app)
    server_session.init_app(app)
    origins = app.config['CORS_ORIGINS']
    cors.init_app(
        app,
        supports_credentials='*' not in origins,
        resources={r'/api/*': {'origins': origins}},
    )

    app.register_blueprint(api)
    app.register_blueprint(admin)
    app.cli.add_command(seed_command)

    @app.route('/')
    def index():
        return jsonify({'message': 'Movie booking backend ready'})

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found', 'code': 'NOT_FOUND'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'code': 'METHOD_NOT_ALLOWED'}), 405

    with app.app_context():
        db.create_all()
        if app.config.get('SEED_DATA'):
            init_data()

    return app
