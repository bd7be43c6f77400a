"""SMS provider settings blueprint.

    GET    /api/v1/organizations/<org_id>/sms-settings
    PUT    /api/v1/organizations/<org_id>/sms-settings
    DELETE /api/v1/organizations/<org_id>/sms-settings

The auth token is write-only: responses carry ``has_auth_token`` instead.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import partnerhub.services.sms_settings_service as sms_svc
from partnerhub.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

sms_settings_bp = Blueprint("sms_settings", __name__, url_prefix="/api/v1")


@sms_settings_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({"error": f"{error.resource} not found"}), 404


@sms_settings_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": str(error), "details": error.details}), 422


@sms_settings_bp.errorhandler(RuntimeError)
def _handle_runtime(error: RuntimeError):
    # Raised by the crypto helpers when ENCRYPTION_KEY is missing
    logger.error("SMS settings unavailable: %s", error)
    return jsonify({"error": "SMS settings storage is not configured"}), 503


@sms_settings_bp.route("/organizations/<int:org_id>/sms-settings", methods=["GET"])
def get_settings(org_id: int):
    """Returns: config dict, or {"config": null} if not configured."""
    return jsonify({"config": sms_svc.get_settings(org_id)}), 200


@sms_settings_bp.route("/organizations/<int:org_id>/sms-settings", methods=["PUT"])
def save_settings(org_id: int):
    """Body: {account_sid, auth_token, phone_number, is_enabled?}"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "JSON object body required"}), 400
    config = sms_svc.save_settings(org_id, data)
    return jsonify({"config": config}), 200


@sms_settings_bp.route("/organizations/<int:org_id>/sms-settings", methods=["DELETE"])
def delete_settings(org_id: int):
    sms_svc.delete_settings(org_id)
    return jsonify({"deleted": True}), 200
