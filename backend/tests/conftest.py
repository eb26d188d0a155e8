import pytest
from unittest.mock import patch
from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from base import Base
from app import BLUEPRINTS, register_error_handlers
from helpers import make_user, auth_headers
import schema

@pytest.fixture
def engine():
    """In-memory SQLite DB for fast testing."""
    _engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(_engine)
    yield _engine
    Base.metadata.drop_all(_engine)

@pytest.fixture
def db_session(engine):
    """Provides a database session bound to the test engine."""
    TestSession = sessionmaker(bind=engine, autoflush=False)
    s = TestSession()
    try:
        yield s
    finally:
        s.close()

@pytest.fixture
def app(engine):
    """Provides a Flask app with all blueprints registered and get_db patched."""
    TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def mock_get_db():
        s = TestSession()
        try:
            yield s
        finally:
            s.close()

    flask_app = Flask(__name__)
    for bp in BLUEPRINTS:
        flask_app.register_blueprint(bp, url_prefix="/api/v1")
    register_error_handlers(flask_app)
    flask_app.config["TESTING"] = True

    with patch("routes.auth.get_db", mock_get_db), \
         patch("routes.shipping.get_db", mock_get_db), \
         patch("routes.coupons.get_db", mock_get_db):
        yield flask_app

@pytest.fixture
def client(app):
    """Provides a Flask test client."""
    return app.test_client()

@pytest.fixture
def admin(db_session):
    return make_user(db_session, "admin", is_admin=True)

@pytest.fixture
def shopper(db_session):
    return make_user(db_session, "alice")

@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)

@pytest.fixture
def shopper_headers(shopper):
    return auth_headers(shopper)
