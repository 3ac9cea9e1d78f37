from unittest.mock import MagicMock, patch

import pytest

from agenda.integrations.twilio_client import TwilioClient, to_e164


def test_to_e164_normalizes_digits():
    assert to_e164("351 912-345-678") == "+351912345678"
    assert to_e164("") == ""


@patch("agenda.integrations.twilio_client.Client")
def test_send_sms_uses_tenant_number_when_given(mock_client_cls):
    mock_client = MagicMock()
    mock_client_cls.return_value = mock_client

    client = TwilioClient("AC123", "secret", "+15550000000")
    client.send_sms("351912345678", "Olá", from_="+351210000000")

    mock_client_cls.assert_called_once_with("AC123", "secret")
    mock_client.messages.create.assert_called_once_with(
        to="+351912345678", from_="+351210000000", body="Olá"
    )


@patch("agenda.integrations.twilio_client.Client")
def test_send_sms_falls_back_to_default_number(mock_client_cls):
    client = TwilioClient("AC123", "secret", "+15550000000")
    client.send_sms("351912345678", "Olá")

    kwargs = mock_client_cls.return_value.messages.create.call_args.kwargs
    assert kwargs["from_"] == "+15550000000"


def test_missing_credentials_fail_before_any_request():
    with pytest.raises(RuntimeError):
        TwilioClient(None, None, "+15550000000").send_sms("351912345678", "Olá")


@patch("agenda.integrations.twilio_client.RequestValidator")
def test_validate_request_delegates_to_twilio_validator(mock_validator_cls):
    mock_validator_cls.return_value.validate.return_value = True
    client = TwilioClient("AC123", "secret", "+15550000000")

    assert client.validate_request("https://example.test/sms/incoming", {"Body": "SIM"}, "sig")
    mock_validator_cls.assert_called_once_with("secret")
    mock_validator_cls.return_value.validate.assert_called_once_with(
        "https://example.test/sms/incoming", {"Body": "SIM"}, "sig"
    )


def test_validate_request_without_token_rejects():
    assert TwilioClient("AC123", None, None).validate_request("https://x", {}, "sig") is False
