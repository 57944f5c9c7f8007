import json
import jwt
import pytest
import requests
from integrations.notify import client as notify
from integrations.notify import NotifyEmailTransport, NotifySMSTransport
from infrastructure.configuration import NotifySettings
from infrastructure.operations import OperationStatus
from unittest.mock import patch, MagicMock
from freezegun import freeze_time


# helper function to decode the token for testing
def decode_token(token, secret):
    return jwt.decode(
        token, key=secret, options={"verify_signature": True}, algorithms=["HS256"]
    )


def notify_response(status_code, body):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.headers = {}
    response.text = json.dumps(body)
    response.json.return_value = body
    return response


# Test that an exception is raised if the secret is missing
@patch("integrations.notify.client.logger")
def test_create_jwt_token_secret_missing(mock_logger):
    with pytest.raises(ValueError) as err:
        notify.create_jwt_token(None, "client_id")
    assert str(err.value) == "Missing secret key"
    mock_logger.error.assert_called_once_with(
        "jwt_token_creation_failed", error="Missing secret key"
    )


# Test that an exception is raised if the client_id is missing
@patch("integrations.notify.client.logger")
def test_create_jwt_token_client_id_missing(mock_logger):
    with pytest.raises(ValueError) as err:
        notify.create_jwt_token("secret", None)
    assert str(err.value) == "Missing client id"
    mock_logger.error.assert_called_once_with(
        "jwt_token_creation_failed", error="Missing client id"
    )


# Test that the token is created correctly and the type and alg headers are set correctly
def test_create_jwt_token_contains_correct_headers():
    token = notify.create_jwt_token("secret", "client_id")
    headers = jwt.get_unverified_header(token)
    assert headers["typ"] == "JWT"
    assert headers["alg"] == "HS256"


# Test that the claims headers are set correctly
def test_create_jwt_token_contains_correct_claims_headers():
    token = notify.create_jwt_token("secret", "client_id")
    decoded_token = decode_token(token, "secret")
    assert decoded_token["iss"] == "client_id"
    assert "iat" in decoded_token


# Test that the correct iat time in epoch seconds is set correctly
@freeze_time("2020-01-01 00:00:00")
def test_token_contains_correct_iat():
    token = notify.create_jwt_token("secret", "client_id")
    decoded_token = decode_token(token, "secret")
    assert decoded_token["iat"] == 1577836800


@patch("integrations.notify.client.logger")
@patch("integrations.notify.client.create_jwt_token")
def test_authorization_header_missing_client_id(jwt_token_mock, mock_logger):
    settings = NotifySettings(NOTIFY_CLIENT_ID="", NOTIFY_CLIENT_SECRET="foo")
    with pytest.raises(ValueError) as err:
        notify.create_authorization_header(settings)
    assert str(err.value) == "NOTIFY_CLIENT_ID is missing"
    mock_logger.error.assert_called_once_with(
        "authorization_header_creation_failed",
        error="NOTIFY_CLIENT_ID is missing",
    )
    jwt_token_mock.assert_not_called()


@patch("integrations.notify.client.logger")
@patch("integrations.notify.client.create_jwt_token")
def test_authorization_header_missing_secret(jwt_token_mock, mock_logger):
    settings = NotifySettings(NOTIFY_CLIENT_ID="foo", NOTIFY_CLIENT_SECRET="")
    with pytest.raises(ValueError) as err:
        notify.create_authorization_header(settings)
    assert str(err.value) == "NOTIFY_CLIENT_SECRET is missing"
    mock_logger.error.assert_called_once_with(
        "authorization_header_creation_failed",
        error="NOTIFY_CLIENT_SECRET is missing",
    )
    jwt_token_mock.assert_not_called()


# Test that the authorization header is created correctly and the correct header is generated
@patch("integrations.notify.client.create_jwt_token")
def test_successful_creation_of_header(mock_jwt_token, notify_settings):
    mock_jwt_token.return_value = "mocked_jwt_token"
    header_key, header_value = notify.create_authorization_header(notify_settings)

    assert header_key == "Authorization"
    assert header_value == "Bearer mocked_jwt_token"
    mock_jwt_token.assert_called_once_with(
        secret="test-secret", client_id="test-client-id"
    )


@patch("integrations.notify.client.requests.post")
@patch("integrations.notify.client.create_authorization_header")
def test_post_event(mock_auth_header, mock_post, notify_settings):
    mock_auth_header.return_value = ("Auth-Header", "auth-value")
    mock_response = mock_post.return_value
    test_payload = {"key1": "value1", "key2": "value2"}

    response = notify.post_event(notify_settings, notify.SMS_ENDPOINT, test_payload)

    assert response == mock_response
    mock_auth_header.assert_called_once_with(notify_settings)
    mock_post.assert_called_once_with(
        "https://api.notification.example.com/v2/notifications/sms",
        data=json.dumps(test_payload),
        headers={"Auth-Header": "auth-value", "Content-Type": "application/json"},
        timeout=60,
    )


@patch("integrations.notify.client.logger")
@patch("integrations.notify.client.requests.post")
def test_post_event_without_api_url(mock_post, mock_logger):
    with pytest.raises(ValueError) as err:
        notify.post_event(NotifySettings(NOTIFY_API_URL=""), notify.EMAIL_ENDPOINT, {})
    assert str(err.value) == "NOTIFY_API_URL is missing"
    mock_logger.error.assert_called_once_with(
        "notify_post_failed", error="NOTIFY_API_URL is missing"
    )
    mock_post.assert_not_called()


@patch("integrations.notify.client.requests.post")
def test_email_transport_sends_template_personalisation(mock_post, notify_settings):
    mock_post.return_value = notify_response(201, {"id": "notify-message-1"})

    result = NotifyEmailTransport(notify_settings).send(
        to="user@example.com",
        subject="Invoice ready",
        html_body="<p>Invoice due</p>",
        text_body="Invoice due",
    )

    assert result.is_success
    assert result.data == {"message_id": "notify-message-1"}
    url = mock_post.call_args[0][0]
    payload = json.loads(mock_post.call_args[1]["data"])
    assert url.endswith("/v2/notifications/email")
    assert payload == {
        "email_address": "user@example.com",
        "template_id": "email-template",
        "personalisation": {
            "subject": "Invoice ready",
            "body": "Invoice due",
            "html_body": "<p>Invoice due</p>",
        },
    }


@patch("integrations.notify.client.requests.post")
def test_sms_transport_sends_template_personalisation(mock_post, notify_settings):
    mock_post.return_value = notify_response(201, {"id": "notify-message-2"})

    result = NotifySMSTransport(notify_settings).send("+16135550123", "Invoice due")

    assert result.data == {"message_id": "notify-message-2"}
    payload = json.loads(mock_post.call_args[1]["data"])
    assert payload == {
        "phone_number": "+16135550123",
        "template_id": "sms-template",
        "personalisation": {"body": "Invoice due"},
    }


@patch("integrations.notify.client.requests.post")
def test_transport_maps_rejection_to_permanent_error(mock_post, notify_settings):
    mock_post.return_value = notify_response(
        400,
        {"errors": [{"error": "ValidationError", "message": "Not a valid number"}]},
    )

    result = NotifySMSTransport(notify_settings).send("+16135550123", "Invoice due")

    assert result.status == OperationStatus.PERMANENT_ERROR
    assert "Not a valid number" in result.message


@patch("integrations.notify.client.requests.post")
def test_transport_maps_server_error_to_transient(mock_post, notify_settings):
    mock_post.return_value = notify_response(503, {"errors": []})

    result = NotifyEmailTransport(notify_settings).send("a@b.ca", "s", "<p>b</p>", "b")

    assert result.is_retryable


@patch("integrations.notify.client.requests.post")
def test_transport_maps_timeout_to_transient(mock_post, notify_settings):
    mock_post.side_effect = requests.Timeout("read timed out")

    result = NotifySMSTransport(notify_settings).send("+16135550123", "Invoice due")

    assert result.is_retryable
    assert result.error_code == "TIMEOUT"


@patch("integrations.notify.client.requests.post")
def test_transport_without_configuration_is_permanent(mock_post):
    result = NotifySMSTransport(NotifySettings(NOTIFY_API_URL="")).send(
        "+16135550123", "Invoice due"
    )

    assert result.status == OperationStatus.PERMANENT_ERROR
    assert result.error_code == "NOTIFY_NOT_CONFIGURED"
    mock_post.assert_not_called()
