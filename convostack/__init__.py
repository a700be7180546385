import locale

from flask import Flask

from convostack.api import api_bp
from convostack.config import Config
from convostack.extensions import db, migrate


def configure_collation(app: Flask) -> None:
    collation = app.config.get("FOLDER_COLLATION_LOCALE")
    if collation is None:
        return
    try:
        locale.setlocale(locale.LC_COLLATE, collation)
    except locale.Error:
        app.logger.warning(
            "Unsupported collation locale %r, folders sort by %s",
            collation,
            locale.setlocale(locale.LC_COLLATE),
        )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_collation(app)

    db.init_app(app)
    migrate.init_app(app, db)

    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized ConvoStack folder database.")

    with app.app_context():
        db.create_all()

    return app
