"""Entitlement checks applied before every command and media handler."""

import logging
from dataclasses import dataclass
from enum import Enum

from teleweb_bot.domain.models import UserRecord
from teleweb_bot.errors import AuthorizationDenied, TransientDependencyFailure
from teleweb_bot.services.storage import UserStorage
from teleweb_bot.services.users import UserService

logger = logging.getLogger(__name__)

NOT_REGISTERED_MESSAGE = (
    "You are not registered yet. "
    "Ask an administrator to register your Telegram ID: {telegram_user_id}."
)
INACTIVE_MESSAGE = "Your account is inactive. Please contact an administrator."
ADMIN_ONLY_MESSAGE = "This command is only available to administrators."
FEATURE_DENIED_MESSAGE = "You don't have access to the {feature} feature."
DIRECTORY_UNAVAILABLE_MESSAGE = (
    "Access checks are unavailable right now. Please try again in a moment."
)


class AccessLevel(Enum):
    """How strict a handler's access policy is."""

    OPTIONAL = "optional"
    REGISTERED = "registered"
    ADMIN = "admin"
    FEATURE = "feature"


@dataclass(frozen=True)
class Access:
    """Access policy attached to a command or handler."""

    level: AccessLevel
    feature: str | None = None

    @classmethod
    def optional(cls) -> "Access":
        return cls(AccessLevel.OPTIONAL)

    @classmethod
    def registered(cls) -> "Access":
        return cls(AccessLevel.REGISTERED)

    @classmethod
    def admin(cls) -> "Access":
        return cls(AccessLevel.ADMIN)

    @classmethod
    def for_feature(cls, feature: str) -> "Access":
        return cls(AccessLevel.FEATURE, feature)


@dataclass(frozen=True)
class RequestContext:
    """Identity and resolved user for one inbound update."""

    telegram_user_id: int
    chat_id: int
    user: UserRecord | None = None

    def has_feature(self, feature: str) -> bool:
        return self.user is not None and self.user.has_feature(feature)


@dataclass
class EntitlementGate:
    """Resolve the caller and enforce an access policy.

    Guards run in a fixed order: registered, then admin, then feature. Any
    failure to reach the user directory denies access, except for the
    optional policy which continues anonymously.
    """

    user_service: UserService
    storage: UserStorage

    def authorize(
        self, telegram_user_id: int, chat_id: int, access: Access
    ) -> RequestContext:
        """Return a request context or raise ``AuthorizationDenied``."""
        try:
            user = self.user_service.resolve_user(telegram_user_id)
        except TransientDependencyFailure:
            logger.exception(
                "User lookup failed",
                extra={"telegram_user_id": telegram_user_id},
            )
            if access.level is AccessLevel.OPTIONAL:
                return RequestContext(telegram_user_id, chat_id)
            raise AuthorizationDenied(DIRECTORY_UNAVAILABLE_MESSAGE) from None

        if access.level is AccessLevel.OPTIONAL:
            if user is not None and user.is_active:
                self._after_pass(user)
                return RequestContext(telegram_user_id, chat_id, user)
            return RequestContext(telegram_user_id, chat_id)

        if user is None:
            raise AuthorizationDenied(
                NOT_REGISTERED_MESSAGE.format(telegram_user_id=telegram_user_id)
            )
        if not user.is_active:
            raise AuthorizationDenied(INACTIVE_MESSAGE)
        if access.level is AccessLevel.ADMIN and not user.is_admin:
            raise AuthorizationDenied(ADMIN_ONLY_MESSAGE)
        if access.level is AccessLevel.FEATURE and not user.has_feature(
            access.feature or ""
        ):
            raise AuthorizationDenied(
                FEATURE_DENIED_MESSAGE.format(feature=access.feature)
            )

        self._after_pass(user)
        return RequestContext(telegram_user_id, chat_id, user)

    def _after_pass(self, user: UserRecord) -> None:
        try:
            self.storage.initialize_user_dirs(user.telegram_user_id)
        except OSError:
            logger.warning(
                "Could not initialize user directories",
                extra={"telegram_user_id": user.telegram_user_id},
            )
        try:
            self.user_service.touch_last_active(user)
        except Exception:
            logger.warning(
                "Could not update last activity",
                extra={"telegram_user_id": user.telegram_user_id},
            )
