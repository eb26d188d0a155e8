import os
import logging
from typing import Any
from dotenv import load_dotenv

# Initialize environment configuration from local or project-level .env files
dotenv_paths = [
    os.path.join(os.path.dirname(__file__), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env.example')
]

for path in dotenv_paths:
    if os.path.exists(path):
        load_dotenv(path)
        break

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from db import init_db
from routes.auth import auth_bp
from routes.shipping import shipping_bp
from routes.coupons import coupons_bp
from routes.orders import orders_bp

# Configure high-level logging defaults for the backend application
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

BLUEPRINTS = (auth_bp, shipping_bp, coupons_bp, orders_bp)


def register_error_handlers(flask_app: Flask) -> None:
    """
    Turns storage failures into a JSON 500 so clients never receive a
    fabricated price.
    """
    @flask_app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        logger.exception("Database error: %s", error)
        return jsonify({"message": "Storage is unavailable, please retry"}), 500


app = Flask(__name__)
CORS(app)

for bp in BLUEPRINTS:
    app.register_blueprint(bp, url_prefix="/api/v1")
register_error_handlers(app)

@app.route("/api/v1/health")
def health() -> Any:
    """
    Verifies the operational status of the Flask application.

    Returns:
        A JSON response indicating the service is healthy.
    """
    return jsonify({"status": "ok"})

if __name__ == "__main__":
    # Ensure the database schema is initialized before accepting requests
    init_db()
    app.run(port=int(os.environ.get("FLASK_PORT", "8000")), debug=os.environ.get("FLASK_DEBUG", "false").lower() == "true")
