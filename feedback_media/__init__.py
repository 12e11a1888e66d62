import logging

from flask import Flask, jsonify
from flask_migrate import Migrate
from .extensions import db, login_manager, rq
from .errors import MediaError

migrate = Migrate()


def create_app(config_object='config.Config'):
    """App factory shared by the web process, the RQ worker and the CLI scripts."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    level = logging.getLevelName(str(app.config.get('LOG_LEVEL') or 'INFO').upper())
    if isinstance(level, int):
        app.logger.setLevel(level)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    rq.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from .models.user import User
        return db.session.get(User, str(user_id))

    @app.errorhandler(MediaError)
    def handle_media_error(e):
        if e.status_code >= 500:
            app.logger.error('%s: %s', e.__class__.__name__, e.message)
        return jsonify({'error': e.message}), e.status_code

    from .api.cron import bp as cron_bp
    from .api.dashboard import bp as dashboard_bp
    from .api.status import bp as status_bp
    app.register_blueprint(cron_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(status_bp)

    @app.get('/healthz')
    def healthz():
        return jsonify({'ok': True})

    return app
