import base64
import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import CognitoConfig
from helpers import ChatStore
from schema import (
    AuthForm,
    LoginActionState,
    LoginStatus,
    RegisterActionState,
    RegisterStatus,
)

logger = logging.getLogger(__name__)

USER_PASSWORD_AUTH = "USER_PASSWORD_AUTH"
DEFAULT_CHAT_TITLE = "New Chat"
UNKNOWN_ERROR = "An unknown error occurred"


def secret_hash(username: str, config: CognitoConfig) -> str:
    """SECRET_HASH for app clients that have a client secret.

    base64(HMAC-SHA256(key=client_secret, msg=username + client_id))
    """
    msg = f"{username}{config.client_id}".encode("utf-8")
    key = config.client_secret.encode("utf-8")
    dig = hmac.new(key, msg, digestmod=hashlib.sha256).digest()
    return base64.b64encode(dig).decode()


# --- Identity provider ---
class IdentityProviderError(Exception):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class AuthenticationResult:
    access_token: Optional[str]
    id_token: Optional[str]
    refresh_token: Optional[str]
    expires_in: Optional[int] = None
    token_type: str = "Bearer"


class IdentityProvider(Protocol):
    def sign_up(self, client_id: str, username: str, password: str, secret_hash: str) -> None: ...

    def initiate_auth(
        self, auth_flow: str, client_id: str, auth_parameters: Dict[str, str]
    ) -> Optional[AuthenticationResult]: ...


class CognitoIdentityProvider:
    """IdentityProvider backed by the boto3 cognito-idp client."""

    def __init__(self, config: CognitoConfig, client: Any = None):
        self.config = config
        self.client = client or boto3.client("cognito-idp", region_name=config.region)

    def sign_up(self, client_id: str, username: str, password: str, secret_hash: str) -> None:
        try:
            self.client.sign_up(
                ClientId=client_id,
                Username=username,
                Password=password,
                SecretHash=secret_hash,
            )
        except ClientError as e:
            raise _provider_error(e) from e
        except BotoCoreError as e:
            raise IdentityProviderError("ServiceUnavailable", str(e)) from e

    def initiate_auth(
        self, auth_flow: str, client_id: str, auth_parameters: Dict[str, str]
    ) -> Optional[AuthenticationResult]:
        try:
            resp = self.client.initiate_auth(
                ClientId=client_id,
                AuthFlow=auth_flow,
                AuthParameters=auth_parameters,
            )
        except ClientError as e:
            raise _provider_error(e) from e
        except BotoCoreError as e:
            raise IdentityProviderError("ServiceUnavailable", str(e)) from e

        tokens = resp.get("AuthenticationResult")
        if not tokens:
            # A challenge (MFA, NEW_PASSWORD_REQUIRED, ...) instead of tokens
            logger.warning("initiate_auth returned challenge %s", resp.get("ChallengeName"))
            return None
        return AuthenticationResult(
            access_token=tokens.get("AccessToken"),
            id_token=tokens.get("IdToken"),
            refresh_token=tokens.get("RefreshToken"),
            expires_in=tokens.get("ExpiresIn"),
            token_type=tokens.get("TokenType", "Bearer"),
        )


def _provider_error(e: ClientError) -> IdentityProviderError:
    error = e.response.get("Error", {})
    return IdentityProviderError(error.get("Code", "Unknown"), error.get("Message", ""))


def _field(form: Mapping[str, Any], name: str) -> str:
    value = form.get(name)
    return value if isinstance(value, str) else ""


def _first_validation_message(e: ValidationError) -> str:
    err = e.errors()[0]
    cause = err.get("ctx", {}).get("error")
    return str(cause) if cause else err["msg"]


# --- Flows ---
def register(
    form: Mapping[str, Any], provider: IdentityProvider, config: CognitoConfig
) -> RegisterActionState:
    try:
        data = AuthForm(email=_field(form, "email"), password=_field(form, "password"))
    except ValidationError as e:
        return RegisterActionState(
            status=RegisterStatus.INVALID_DATA, message=_first_validation_message(e)
        )

    try:
        provider.sign_up(
            client_id=config.client_id,
            username=data.email,
            password=data.password,
            secret_hash=secret_hash(data.email, config),
        )
    except IdentityProviderError as e:
        if e.code == "UsernameExistsException":
            return RegisterActionState(
                status=RegisterStatus.USER_EXISTS, message="This email is already registered"
            )
        if e.code in ("InvalidPasswordException", "InvalidParameterException"):
            return RegisterActionState(status=RegisterStatus.INVALID_DATA, message=e.message)

        logger.error("Error during Cognito registration: %s: %s", e.code, e.message)
        return RegisterActionState(status=RegisterStatus.FAILED, message=e.message or UNKNOWN_ERROR)

    logger.info("Registered %s", data.email)
    return RegisterActionState(status=RegisterStatus.SUCCESS, message="Account created successfully!")


def login(
    form: Mapping[str, Any],
    provider: IdentityProvider,
    store: ChatStore,
    config: CognitoConfig,
) -> LoginActionState:
    email = _field(form, "email")
    password = _field(form, "password")

    if not email or not password:
        return LoginActionState(
            status=LoginStatus.INVALID_DATA, message="Email and password are required"
        )

    try:
        result = provider.initiate_auth(
            auth_flow=USER_PASSWORD_AUTH,
            client_id=config.client_id,
            auth_parameters={
                "USERNAME": email,
                "PASSWORD": password,
                "SECRET_HASH": secret_hash(email, config),
            },
        )
    except IdentityProviderError as e:
        if e.code == "NotAuthorizedException":
            return LoginActionState(
                status=LoginStatus.NOT_AUTHORIZED, message="Incorrect username or password"
            )
        if e.code == "UserNotFoundException":
            return LoginActionState(status=LoginStatus.USER_NOT_FOUND, message="User not found")

        logger.error("Error during Cognito login: %s: %s", e.code, e.message)
        return LoginActionState(status=LoginStatus.FAILED, message=e.message or UNKNOWN_ERROR)

    if result is None:
        return LoginActionState(status=LoginStatus.FAILED, message="Authentication failed")

    # TODO: reuse the latest empty chat instead of creating one per login once product confirms
    try:
        user = store.get_user(email)
        user_id = user.id if user else store.create_user(email, password)

        chat_id = str(uuid.uuid4())
        store.save_chat(id=chat_id, user_id=user_id, title=DEFAULT_CHAT_TITLE)
    except SQLAlchemyError as e:
        logger.error("Error persisting login for %s: %s", email, e)
        store.rollback()
        return LoginActionState(status=LoginStatus.FAILED, message=str(e) or UNKNOWN_ERROR)

    return LoginActionState(
        status=LoginStatus.SUCCESS,
        chat_id=chat_id,
        access_token=result.access_token,
        id_token=result.id_token,
        refresh_token=result.refresh_token,
    )
