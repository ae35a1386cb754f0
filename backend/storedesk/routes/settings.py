# Overview: Flask API routes for store settings; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from ..services.settings_service import SettingsValidationError, load_store_config, update_store_settings

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    return {"settings": load_store_config().to_dict()}


@settings_bp.put("")
def update_settings_route():
    payload = request.get_json(silent=True) or {}
    try:
        config = update_store_settings(payload)
    except SettingsValidationError as e:
        return {"error": str(e)}, 400

    current_app.logger.info("Store settings updated: %s", ", ".join(sorted(payload.keys())))
    return {"settings": config.to_dict()}
