"""Tests for per-organization SMS provider settings.

Coverage:
  1. save_settings encrypts the auth token (never stored plaintext)
  2. to_dict never leaks the token
  3. get_sms_credentials returns None for absent / partial / disabled /
     undecryptable configs
  4. Organization isolation
"""

import pytest
from cryptography.fernet import Fernet

import partnerhub.services.sms_settings_service as svc
from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.models import db
from partnerhub.models.scheduling import SmsProviderConfig
from partnerhub.utils.crypto import decrypt_secret

from conftest import make_org

_PAYLOAD = {"account_sid": "AC123", "auth_token": "super-secret", "phone_number": "+15005550006"}


class TestSaveSettings:
    def test_token_encrypted_at_rest(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        row = SmsProviderConfig.query.filter_by(organization_id=org.id).one()
        assert row.auth_token_encrypted != "super-secret"
        assert decrypt_secret(row.auth_token_encrypted) == "super-secret"

    def test_token_never_serialized(self, org):
        result = svc.save_settings(org.id, dict(_PAYLOAD))
        assert "auth_token" not in result
        assert "auth_token_encrypted" not in result
        assert result["has_auth_token"] is True
        assert result["is_complete"] is True

    def test_create_requires_all_fields(self, org):
        with pytest.raises(ValidationError) as exc:
            svc.save_settings(org.id, {"account_sid": "AC1"})
        assert set(exc.value.details) == {"auth_token", "phone_number"}

    def test_invalid_sender_number(self, org):
        with pytest.raises(ValidationError):
            svc.save_settings(org.id, {**_PAYLOAD, "phone_number": "12"})

    def test_update_keeps_token_when_omitted(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        svc.save_settings(org.id, {"phone_number": "+15005550007"})
        creds = svc.get_sms_credentials(org.id)
        assert creds.auth_token == "super-secret"
        assert creds.phone_number == "+15005550007"

    def test_unknown_organization(self):
        with pytest.raises(NotFoundError):
            svc.save_settings(555, dict(_PAYLOAD))


class TestCredentials:
    def test_returns_decrypted_credentials(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        creds = svc.get_sms_credentials(org.id)
        assert (creds.account_sid, creds.auth_token, creds.phone_number) == (
            "AC123", "super-secret", "+15005550006",
        )

    def test_none_without_config(self, org):
        assert svc.get_sms_credentials(org.id) is None
        assert svc.get_sms_credentials(None) is None

    def test_none_when_disabled(self, org):
        svc.save_settings(org.id, {**_PAYLOAD, "is_enabled": False})
        assert svc.get_sms_credentials(org.id) is None

    def test_none_when_incomplete(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        svc.save_settings(org.id, {"account_sid": ""})
        assert svc.get_sms_credentials(org.id) is None

    def test_none_when_token_encrypted_with_other_key(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        row = SmsProviderConfig.query.filter_by(organization_id=org.id).one()
        row.auth_token_encrypted = Fernet(Fernet.generate_key()).encrypt(b"x").decode()
        db.session.commit()
        assert svc.get_sms_credentials(org.id) is None

    def test_organization_isolation(self, org):
        other = make_org("Other", "other")
        svc.save_settings(org.id, dict(_PAYLOAD))
        assert svc.get_sms_credentials(other.id) is None
        assert svc.get_settings(other.id) is None


class TestDeleteSettings:
    def test_delete(self, org):
        svc.save_settings(org.id, dict(_PAYLOAD))
        svc.delete_settings(org.id)
        assert svc.get_settings(org.id) is None

    def test_delete_missing(self, org):
        with pytest.raises(NotFoundError):
            svc.delete_settings(org.id)
