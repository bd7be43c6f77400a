"""
SMS settings service — per-organization SMS provider credentials.

  - Config management (Fernet-encrypted auth_token)
  - Credential lookup for the escalation SMS side-channel

Organization isolation: every function takes organization_id explicitly;
`SmsProviderConfig.organization_id` carries a unique constraint.
"""

from __future__ import annotations

import logging

from cryptography.fernet import InvalidToken
from sqlalchemy import select

from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.integrations.sms_gateway import SmsCredentials, is_valid_phone_number
from partnerhub.models import db
from partnerhub.models.organization import Organization
from partnerhub.models.scheduling import SmsProviderConfig
from partnerhub.utils.crypto import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)


def _get_config(organization_id: int) -> SmsProviderConfig | None:
    stmt = select(SmsProviderConfig).where(SmsProviderConfig.organization_id == organization_id)
    return db.session.execute(stmt).scalar_one_or_none()


# ═════════════════════════════════════════════════════════════════════════════
# Config management
# ═════════════════════════════════════════════════════════════════════════════


def save_settings(organization_id: int, data: dict) -> dict:
    """Create or update the SMS provider config for an organization.

    The `auth_token` in `data` is encrypted before storage. If absent on
    update, the existing encrypted value is preserved.

    Args:
        organization_id: Scoping organization.
        data: {
            account_sid: str (required for create),
            auth_token: str (required for create),
            phone_number: str (required for create),
            is_enabled: bool (optional, default True),
        }

    Returns:
        Serialised SmsProviderConfig dict (without the token).

    Raises:
        NotFoundError: Unknown organization.
        ValidationError: Missing required fields or invalid sender number.
        RuntimeError: If ENCRYPTION_KEY is not set.
    """
    if db.session.get(Organization, organization_id) is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)

    phone_number = data.get("phone_number")
    if phone_number and not is_valid_phone_number(phone_number):
        raise ValidationError("Invalid sender phone number", details={"phone_number": "10-15 digits"})

    config = _get_config(organization_id)
    is_create = config is None

    if is_create:
        required = ("account_sid", "auth_token", "phone_number")
        missing = [f for f in required if not data.get(f)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={f: "required" for f in missing},
            )
        config = SmsProviderConfig(organization_id=organization_id)
        db.session.add(config)

    if "account_sid" in data:
        config.account_sid = (data.get("account_sid") or "").strip() or None
    if phone_number:
        config.phone_number = phone_number
    if "is_enabled" in data:
        config.is_enabled = bool(data["is_enabled"])
    if data.get("auth_token"):
        config.auth_token_encrypted = encrypt_secret(data["auth_token"])

    db.session.commit()
    logger.info("SmsProviderConfig %s for organization=%s",
                "created" if is_create else "updated", organization_id)
    return config.to_dict()


def get_settings(organization_id: int) -> dict | None:
    """Return serialised config, or None if the organization has none."""
    config = _get_config(organization_id)
    return config.to_dict() if config else None


def delete_settings(organization_id: int) -> None:
    config = _get_config(organization_id)
    if config is None:
        raise NotFoundError(resource="SmsProviderConfig", organization_id=organization_id)
    db.session.delete(config)
    db.session.commit()
    logger.info("SmsProviderConfig deleted for organization=%s", organization_id)


# ═════════════════════════════════════════════════════════════════════════════
# Credential lookup
# ═════════════════════════════════════════════════════════════════════════════


def get_sms_credentials(organization_id: int | None) -> SmsCredentials | None:
    """Return decrypted credentials, or None when absent, partial or disabled.

    A token that no longer decrypts (key rotated) counts as absent and is
    logged, so the caller silently skips SMS.
    """
    if organization_id is None:
        return None
    config = _get_config(organization_id)
    if config is None or not config.is_enabled or not config.is_complete:
        return None
    try:
        token = decrypt_secret(config.auth_token_encrypted)
    except (InvalidToken, RuntimeError) as exc:
        logger.warning("SMS auth token unreadable for organization=%s: %s",
                       organization_id, type(exc).__name__)
        return None
    credentials = SmsCredentials(
        account_sid=config.account_sid,
        auth_token=token,
        phone_number=config.phone_number,
    )
    return credentials if credentials.is_complete else None
