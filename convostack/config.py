import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'convostack.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    FOLDER_NAME_MAX_LENGTH = int(os.environ.get("FOLDER_NAME_MAX_LENGTH", "100"))
    FOLDER_LIMIT = int(os.environ.get("FOLDER_LIMIT", "0"))
    FOLDER_REMOTE_TIMEOUT = float(os.environ.get("FOLDER_REMOTE_TIMEOUT", "10"))
    FOLDER_FETCH_THROTTLE_SECONDS = float(
        os.environ.get("FOLDER_FETCH_THROTTLE_SECONDS", "2")
    )
    FOLDER_DELETE_POLICY = os.environ.get("FOLDER_DELETE_POLICY", "cascade")
    FOLDER_API_URL = os.environ.get("FOLDER_API_URL", "http://127.0.0.1:8072/api/v1")
    # Sibling order follows this LC_COLLATE locale; "" means the host environment.
    FOLDER_COLLATION_LOCALE = os.environ.get("FOLDER_COLLATION_LOCALE", "")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    FOLDER_LIMIT = 0
    FOLDER_COLLATION_LOCALE = None
