"""Archive password acquisition, including Bitwarden CLI sessions.

Opening a Bitwarden session may log in or unlock the vault. What was done is
recorded in a SessionAdjustment so that exactly that action can be undone
once the backup finishes, whatever its outcome.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Iterator

from rich.console import Console
from rich.markup import escape

from packback.config import ResolvedSettings
from packback.errors import (
    BackupCancelled,
    ConfigError,
    PackbackError,
    SecretError,
    ToolError,
)
from packback.prompts import Prompter
from packback.tools import run_tool

logger = logging.getLogger(__name__)
console = Console(stderr=True)

SESSION_VARIABLE = "BW_SESSION"
MASTER_PASSWORD_VARIABLE = "BW_PASSWORD"
API_KEY_VARIABLES = ("BW_CLIENTID", "BW_CLIENTSECRET")

STATUS_UNLOCKED = "unlocked"
STATUS_LOCKED = "locked"
STATUS_UNAUTHENTICATED = "unauthenticated"
STATUS_UNKNOWN = "unknown"

FALLBACK_RETRY = "retry"
FALLBACK_MANUAL = "manual"
FALLBACK_UNENCRYPTED = "unencrypted"
FALLBACK_CANCEL = "cancel"
FALLBACK_CHOICES = [FALLBACK_RETRY, FALLBACK_MANUAL, FALLBACK_UNENCRYPTED, FALLBACK_CANCEL]


class SecretValue:
    """Holds a password in a mutable buffer that can be wiped after use."""

    __slots__ = ("_buffer",)

    def __init__(self, value: str | bytes):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._buffer = bytearray(value)

    @property
    def cleared(self) -> bool:
        return not self._buffer

    def reveal(self) -> str:
        """Return the plaintext for the single call that needs it."""
        if self.cleared:
            raise SecretError("Password was already cleared.")
        return self._buffer.decode("utf-8")

    def clear(self) -> None:
        for index in range(len(self._buffer)):
            self._buffer[index] = 0
        self._buffer = bytearray()

    def __bool__(self) -> bool:
        return not self.cleared

    def __repr__(self) -> str:
        return "SecretValue(<cleared>)" if self.cleared else "SecretValue(***)"

    __str__ = __repr__

    def __enter__(self) -> SecretValue:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.clear()


@dataclass(frozen=True)
class SessionAdjustment:
    """What acquisition changed to reach an unlocked vault."""

    did_login: bool = False
    did_unlock: bool = False
    used_injected_token: bool = False
    previous_session_token: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, text: str) -> SessionAdjustment:
        data = json.loads(text)
        return cls(
            did_login=bool(data.get("did_login")),
            did_unlock=bool(data.get("did_unlock")),
            used_injected_token=bool(data.get("used_injected_token")),
            previous_session_token=data.get("previous_session_token"),
        )


@dataclass
class VaultSession:
    """An unlocked vault: the session token plus the record of how it was reached."""

    token: str | None
    adjustment: SessionAdjustment

    def environment(self) -> dict[str, str]:
        """Environment for bw calls that need this session."""
        environment = dict(os.environ)
        if self.token:
            environment[SESSION_VARIABLE] = self.token
        return environment


@dataclass
class SecretResult:
    """Outcome of a provider lookup. The message never contains the secret."""

    success: bool
    secret: SecretValue | None = None
    adjustment: str | None = None
    message: str = ""


def restore_session_variable(previous: str | None) -> None:
    """Put BW_SESSION back to the value it had before acquisition."""
    if previous is None:
        os.environ.pop(SESSION_VARIABLE, None)
    else:
        os.environ[SESSION_VARIABLE] = previous


class BitwardenProvider:
    """Password provider backed by the Bitwarden CLI (``bw``)."""

    name = "bitwarden"

    def __init__(self, executable: str = "bw", session_token: str | None = None):
        self.executable = executable
        self.session_token = session_token

    @classmethod
    def from_settings(
        cls, settings: dict[str, Any], session_token: str | None = None
    ) -> BitwardenProvider:
        executable = settings.get("executable") or "bw"
        return cls(executable=executable, session_token=session_token)

    def _run(self, arguments: list[str], env: dict[str, str] | None = None, capture: str = "all"):
        return run_tool([self.executable, *arguments], tool="bw", env=env, capture=capture)

    def status(self, env: dict[str, str] | None = None) -> str:
        """Return the vault status reported by ``bw status``."""
        try:
            result = self._run(["status"], env=env)
            data = json.loads(result.stdout)
        except (ToolError, json.JSONDecodeError) as error:
            logger.warning("Could not read Bitwarden status: %s", error)
            return STATUS_UNKNOWN
        if not isinstance(data, dict):
            return STATUS_UNKNOWN
        return str(data.get("status") or STATUS_UNKNOWN)

    def _login(self, env: dict[str, str], non_interactive: bool) -> str | None:
        """Log in. Returns a session token when the login already unlocked the vault."""
        if non_interactive:
            missing = [name for name in API_KEY_VARIABLES if not os.environ.get(name)]
            if missing:
                raise SecretError(
                    "Bitwarden is logged out and cannot log in unattended; set "
                    + " and ".join(missing)
                )
            # API key logins leave the vault locked
            self._run(["login", "--apikey"], env=env)
            return None
        result = self._run(["login", "--raw"], env=env, capture="stdout")
        return result.stdout.strip() or None

    def _unlock(self, env: dict[str, str], non_interactive: bool) -> str:
        if non_interactive:
            if not os.environ.get(MASTER_PASSWORD_VARIABLE):
                raise SecretError(
                    f"Bitwarden vault is locked; set {MASTER_PASSWORD_VARIABLE} to unlock unattended."
                )
            result = self._run(
                ["unlock", "--raw", "--passwordenv", MASTER_PASSWORD_VARIABLE], env=env
            )
        else:
            result = self._run(["unlock", "--raw"], env=env, capture="stdout")
        token = result.stdout.strip()
        if not token:
            raise SecretError("Bitwarden unlock returned no session token.")
        return token

    def open_session(self, non_interactive: bool = False) -> VaultSession:
        """Bring the vault to an unlocked state and record what that took."""
        previous = os.environ.get(SESSION_VARIABLE)

        if self.session_token:
            logger.info("Using injected Bitwarden session token")
            return VaultSession(
                token=self.session_token,
                adjustment=SessionAdjustment(
                    used_injected_token=True, previous_session_token=previous
                ),
            )

        environment = dict(os.environ)
        status = self.status(environment)
        logger.info("Bitwarden status: %s", status)

        if status == STATUS_UNLOCKED:
            return VaultSession(
                token=previous, adjustment=SessionAdjustment(previous_session_token=previous)
            )

        if status == STATUS_LOCKED:
            token = self._unlock(environment, non_interactive)
            return VaultSession(
                token=token,
                adjustment=SessionAdjustment(did_unlock=True, previous_session_token=previous),
            )

        if status == STATUS_UNAUTHENTICATED:
            token = self._login(environment, non_interactive)
            if token is None:
                try:
                    token = self._unlock(environment, non_interactive)
                except PackbackError:
                    self.close_session(
                        SessionAdjustment(did_login=True, previous_session_token=previous)
                    )
                    raise
            return VaultSession(
                token=token,
                adjustment=SessionAdjustment(
                    did_login=True, did_unlock=True, previous_session_token=previous
                ),
            )

        try:
            token = self._unlock(environment, non_interactive)
        except PackbackError as error:
            raise SecretError(f"Bitwarden status is '{status}' and unlock failed: {error}") from error
        return VaultSession(
            token=token,
            adjustment=SessionAdjustment(did_unlock=True, previous_session_token=previous),
        )

    def get_password(self, session: VaultSession, item: str) -> SecretValue:
        """Fetch the password field of a vault item by name or id."""
        if not item:
            raise SecretError("No Bitwarden item name or id was given.")
        try:
            result = self._run(["get", "password", item], env=session.environment())
        except ToolError as error:
            detail = error.output or f"exit code {error.returncode}"
            raise SecretError(f"Could not get password for Bitwarden item '{item}': {detail}") from error
        value = result.stdout.rstrip("\r\n")
        if not value:
            raise SecretError(f"Bitwarden item '{item}' has an empty password.")
        return SecretValue(value)

    def close_session(self, adjustment: SessionAdjustment) -> None:
        """Undo exactly what open_session did. Failures are only logged."""
        try:
            if adjustment.used_injected_token:
                logger.debug("Injected Bitwarden session left untouched")
            elif adjustment.did_login:
                self._run(["logout"])
            elif adjustment.did_unlock:
                self._run(["lock"])
        except PackbackError as error:
            logger.warning("Bitwarden session cleanup failed: %s", error)
        finally:
            restore_session_variable(adjustment.previous_session_token)

    @contextmanager
    def session(self, non_interactive: bool = False) -> Iterator[VaultSession]:
        """Open a session for the duration of a with-block."""
        vault_session = self.open_session(non_interactive)
        try:
            yield vault_session
        finally:
            self.close_session(vault_session.adjustment)

    def acquire(self, item: str, non_interactive: bool = False) -> tuple[SecretValue, str]:
        """Return the item's password and the serialized session adjustment.

        The caller must pass the adjustment to release() exactly once.
        """
        vault_session = self.open_session(non_interactive)
        try:
            secret = self.get_password(vault_session, item)
        except BaseException:
            self.close_session(vault_session.adjustment)
            raise
        return secret, vault_session.adjustment.to_json()

    def release(self, serialized_adjustment: str) -> None:
        self.close_session(SessionAdjustment.from_json(serialized_adjustment))

    def get_secret(self, item: str, non_interactive: bool = False) -> SecretResult:
        """Provider contract: look up an item and report success or failure."""
        try:
            secret, adjustment = self.acquire(item, non_interactive)
        except (SecretError, ToolError) as error:
            logger.warning("Password lookup failed for item '%s'", item)
            return SecretResult(success=False, message=str(error))
        return SecretResult(success=True, secret=secret, adjustment=adjustment)


PROVIDERS = {"bitwarden": BitwardenProvider}


def create_provider(
    name: str, settings: dict[str, Any] | None = None, session_token: str | None = None
) -> BitwardenProvider:
    """Instantiate a password provider by its config name."""
    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        raise ConfigError(f"Unknown password manager: {name}")
    return provider_class.from_settings(settings or {}, session_token=session_token)


@dataclass
class PasswordAcquisition:
    """A password plus whatever must be undone once the backup is over."""

    secret: SecretValue | None
    provider: BitwardenProvider | None = None
    adjustment: str | None = None

    @property
    def encrypt(self) -> bool:
        return self.secret is not None

    def release(self) -> None:
        """Wipe the password and close the provider session, once."""
        if self.secret is not None:
            self.secret.clear()
        if self.provider is not None and self.adjustment is not None:
            adjustment, self.adjustment = self.adjustment, None
            self.provider.release(adjustment)


def _prompt_manual_password(prompter: Prompter) -> SecretValue:
    text = prompter.ask_text("Archive password", secret=True)
    if not text:
        raise SecretError("Password must not be empty.")
    return SecretValue(text)


def obtain_password(
    settings: ResolvedSettings,
    prompter: Prompter,
    explicit_password: SecretValue | None = None,
) -> PasswordAcquisition:
    """Obtain the archive password.

    Tries the explicit password, then the configured password manager, then a
    manual prompt. Unattended runs never prompt: anything short of a password
    is an immediate SecretError. Interactive runs may fall back to another
    item, manual entry or an unencrypted archive after a failed lookup.

    Raises:
        SecretError: If no password can be obtained.
        BackupCancelled: If the user cancels at the fallback prompt.
    """
    if explicit_password is not None:
        if not explicit_password:
            raise SecretError("Password must not be empty.")
        return PasswordAcquisition(secret=explicit_password)

    non_interactive = not prompter.interactive

    if settings.password_manager != "none":
        provider = create_provider(
            settings.password_manager,
            settings.provider_settings(),
            session_token=settings.session_token,
        )
        item = settings.item
        while True:
            if not item:
                if non_interactive:
                    raise SecretError(
                        f"No {settings.password_manager} item configured; "
                        "set password_managers.<name>.item or pass --item."
                    )
                item = prompter.ask_text("Password manager item (name or id)")

            result = provider.get_secret(item, non_interactive=non_interactive)
            if result.success:
                return PasswordAcquisition(
                    secret=result.secret, provider=provider, adjustment=result.adjustment
                )
            if non_interactive:
                raise SecretError(result.message)

            console.print(f"[red]{escape(result.message)}[/red]")
            choice = prompter.ask_choice(
                "Password lookup failed. Retry with another item, enter it manually, "
                "back up without encryption, or cancel?",
                FALLBACK_CHOICES,
                default=FALLBACK_RETRY,
            )
            if choice == FALLBACK_RETRY:
                item = prompter.ask_text("Password manager item (name or id)", default=item)
                continue
            if choice == FALLBACK_MANUAL:
                return PasswordAcquisition(secret=_prompt_manual_password(prompter))
            if choice == FALLBACK_UNENCRYPTED:
                logger.warning("Continuing without encryption at user request")
                return PasswordAcquisition(secret=None)
            raise BackupCancelled("Backup cancelled.")

    if non_interactive:
        raise SecretError(
            "Encryption is enabled but no password is available; "
            "pass --password or configure a password manager."
        )
    return PasswordAcquisition(secret=_prompt_manual_password(prompter))
