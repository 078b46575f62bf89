"""
Creates and returns the status flask app
"""

import threading

from flask import Flask, jsonify
from flask_cors import CORS

from .liquidation.routes import liquidation


def create_app(bot=None):
    """Create Flask app exposing the state of the given bot"""
    app = Flask(__name__)
    CORS(app)
    app.config["LIQUIDATION_BOT"] = bot

    @app.route("/health", methods=["GET"])
    def health_check():
        if bot is not None and bot.supervisor.failed:
            return jsonify({"status": "unhealthy", "reason": str(bot.supervisor.failure)}), 503
        return jsonify({"status": "healthy"}), 200

    app.register_blueprint(liquidation, url_prefix="/liquidation")

    return app


def start_status_server(bot, port: int) -> threading.Thread:
    """Serve the status app from a daemon thread so it never holds the process open"""
    app = create_app(bot)
    server_thread = threading.Thread(
        target=app.run,
        kwargs={"host": "0.0.0.0", "port": port, "debug": False, "use_reloader": False},
        name="status-server",
        daemon=True,
    )
    server_thread.start()
    return server_thread
