from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from coopsync.main import main
    flask_app.register_blueprint(main)

    from coopsync.api.coop import coop
    flask_app.register_blueprint(coop, url_prefix='/api/coop')

    # Bind the subscription handlers to the initialized socketio instance
    from coopsync.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from coopsync.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-expired')
    def purge_expired_command():
        """Deletes expired matches, replay entries and markers."""
        from coopsync.services.match import store
        with flask_app.app_context():
            removed = store.purge_expired()
            store.commit()
            print(f'Removed {removed} expired rows')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_expired_command)

    return flask_app
