"""Identity provider interface and AWS Cognito implementation."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import AuthenticationRequired, TransientNetworkFailure
from processor.models import User

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[User]], None]


class IdentityProvider(ABC):
    """Source of the signed-in identity."""

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def current_user(self) -> Optional[User]:
        """Return the signed-in user, or None."""
        ...

    @abstractmethod
    def reload(self) -> Optional[User]:
        """Refresh the user from the provider, e.g. after email verification."""
        ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register a sign-in state listener.

        Returns:
            Function removing the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, user: Optional[User]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}", exc_info=True)


class CognitoIdentityProvider(IdentityProvider):
    """Identity backed by an AWS Cognito user pool app client."""

    def __init__(self, client_id: Optional[str], region_name: Optional[str] = None, client=None):
        """
        Initialize the provider.

        Args:
            client_id: Cognito app client id allowing USER_PASSWORD_AUTH
            region_name: AWS region of the user pool
            client: Preconfigured cognito-idp client
        """
        super().__init__()
        self.client_id = client_id
        self.client = client or boto3.client('cognito-idp', region_name=region_name)
        self._access_token: Optional[str] = None
        self._user: Optional[User] = None

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def sign_in(self, username: str, password: str) -> User:
        """
        Authenticate with username and password.

        Args:
            username: User name or email registered in the pool
            password: Password

        Returns:
            Signed-in User

        Raises:
            AuthenticationRequired: If the credentials are rejected
        """
        try:
            response = self.client.initiate_auth(
                ClientId=self.client_id,
                AuthFlow='USER_PASSWORD_AUTH',
                AuthParameters={'USERNAME': username, 'PASSWORD': password},
            )
        except ClientError as e:
            logger.warning(f"Sign-in failed for {username}: {e}")
            raise AuthenticationRequired("Sign-in failed. Check your email and password.")

        result = response.get('AuthenticationResult') or {}
        self._access_token = result.get('AccessToken')
        if not self._access_token:
            raise AuthenticationRequired("Sign-in requires an additional challenge.")

        user = self._fetch_user()
        self._set_user(user)
        logger.info(f"Signed in user {user.uid}")
        return user

    def sign_out(self) -> None:
        if self._access_token:
            try:
                self.client.global_sign_out(AccessToken=self._access_token)
            except ClientError as e:
                logger.warning(f"Remote sign-out failed: {e}")
        self._access_token = None
        self._set_user(None)

    def reload(self) -> Optional[User]:
        """
        Fetch fresh attributes for the signed-in user.

        Returns:
            Updated User, or None when nobody is signed in

        Raises:
            TransientNetworkFailure: If the provider cannot be reached
        """
        if not self._access_token:
            return None

        try:
            user = self._fetch_user()
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code == 'NotAuthorizedException':
                logger.info("Access token is no longer valid, signing out")
                self._access_token = None
                self._set_user(None)
                return None
            raise TransientNetworkFailure(f"Failed to reload user: {code or e}")
        except BotoCoreError as e:
            logger.warning(f"Identity provider unreachable: {e}")
            raise TransientNetworkFailure(f"Failed to reload user: {e}")

        self._set_user(user)
        return user

    def _fetch_user(self) -> User:
        response = self.client.get_user(AccessToken=self._access_token)
        attributes = {
            attribute['Name']: attribute['Value']
            for attribute in response.get('UserAttributes', [])
        }
        return User(
            uid=attributes.get('sub') or response['Username'],
            email=attributes.get('email'),
            email_verified=str(attributes.get('email_verified', 'false')).lower() == 'true',
        )

    def _set_user(self, user: Optional[User]) -> None:
        changed = user != self._user
        self._user = user
        if changed:
            self._notify(user)
