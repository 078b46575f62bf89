"""Module for handling API routes"""

from flask import Blueprint, current_app, jsonify, make_response

from .logging_config import setup_logger

logger = setup_logger()

liquidation = Blueprint("liquidation", __name__)


def _get_bot():
    """Get the bot instance registered on the app."""
    return current_app.config.get("LIQUIDATION_BOT")


@liquidation.route("/watched", methods=["GET"])
def get_watched_accounts():
    bot = _get_bot()
    if not bot:
        return jsonify({"error": "Bot not initialized"}), 500

    accounts = sorted(bot.ledger.snapshot())
    logger.info("API: Returning %s watched accounts", len(accounts))
    return make_response(jsonify({"count": len(accounts), "accounts": accounts}))


@liquidation.route("/in-flight", methods=["GET"])
def get_in_flight():
    bot = _get_bot()
    if not bot:
        return jsonify({"error": "Bot not initialized"}), 500

    return make_response(jsonify({"accounts": bot.engine.in_flight()}))


@liquidation.route("/records", methods=["GET"])
def get_execution_records():
    bot = _get_bot()
    if not bot:
        return jsonify({"error": "Bot not initialized"}), 500

    return make_response(jsonify([record.to_dict() for record in reversed(bot.engine.records)]))
