"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..core.media import IMAGE_SAVE_MODES, IMAGE_SIZES

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "IMAGE_SIZES",
    "IMAGE_SAVE_MODES",
    "SEARCH_ENGINES",
    "SECRET_FIELDS",
    "redact_secret",
    "redacted_settings",
    "validate_choice",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".aicommander"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_CIPHERTEXT_SUFFIX = "_ciphertext"
SEARCH_ENGINES: tuple[str, ...] = ("bing", "serpapi")
SECRET_FIELDS: tuple[str, ...] = ("api_key", "search_api_key", "prompt_enhancer_key")
_CHOICES: Mapping[str, tuple[str, ...]] = {
    "image_size": IMAGE_SIZES,
    "image_save_mode": IMAGE_SAVE_MODES,
    "search_engine": SEARCH_ENGINES,
}
_ENV_OVERRIDES: Mapping[str, str] = {
    "AICOMMANDER_API_KEY": "api_key",
    "AICOMMANDER_BASE_URL": "base_url",
    "AICOMMANDER_MODEL": "model",
    "AICOMMANDER_SEARCH_API_KEY": "search_api_key",
    "AICOMMANDER_PROMPT_ENHANCER_KEY": "prompt_enhancer_key",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "AICOMMANDER_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "AICOMMANDER_REQUEST_TIMEOUT": "request_timeout",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    model: str = "gpt-3.5-turbo"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    image_model: str = "dall-e-2"
    image_size: str = "256x256"
    image_save_mode: str = "attachment"
    transcription_model: str = "whisper-1"
    use_search_engine: bool = False
    search_engine: str = "bing"
    search_api_key: str = ""
    search_result_count: int = 20
    use_prompt_enhancer: bool = False
    prompt_enhancer_key: str = ""
    prompts_for_selected: str = ""
    prompts_for_pdf: str = ""
    max_prompt_chars: int = 16_000
    request_timeout: float = 90.0
    debug_logging: bool = False


class SecretVault:
    """Encrypts and decrypts credentials with a Fernet key stored on disk."""

    name = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def strategy(self) -> str:
        return self.name

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return f"{self.name}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if not payload:
            prefix, payload = self.name, token
        if prefix != self.name:
            raise ValueError(f"Unknown secret token prefix {prefix!r}")
        try:
            return self._get_fernet().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(
        self,
        *,
        overrides: Mapping[str, Any] | None = None,
        apply_env: bool = True,
    ) -> Settings:
        """Load settings merged over defaults, then apply CLI/environment overrides.

        Pass ``apply_env=False`` when the result will be saved again, so values
        that only exist in the environment never reach the settings file.
        """

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            secrets, migrated = self._decrypt_secrets(payload)
            needs_migration = migrated
            data = _filter_fields(payload)
            data.update(secrets)
            data, normalized = _normalize_choices(data)
            needs_migration = needs_migration or normalized
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - depends on filesystem
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        if not apply_env:
            return settings
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist the full settings object with an atomic file write."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        for name in SECRET_FIELDS:
            plaintext = data.pop(name, "") or ""
            if plaintext:
                data[name + _CIPHERTEXT_SUFFIX] = self._vault.encrypt(plaintext)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self._vault.strategy
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _decrypt_secrets(self, payload: Dict[str, Any]) -> tuple[Dict[str, str], bool]:
        secrets: Dict[str, str] = {}
        migrated = False
        for name in SECRET_FIELDS:
            ciphertext = payload.pop(name + _CIPHERTEXT_SUFFIX, None)
            legacy_plaintext = payload.pop(name, None)
            if ciphertext:
                try:
                    secrets[name] = self._vault.decrypt(ciphertext)
                except ValueError as exc:
                    LOGGER.warning("Unable to decrypt %s: %s", name, exc)
                    secrets[name] = ""
            elif legacy_plaintext:
                LOGGER.info("Detected plaintext %s; migrating to encrypted storage.", name)
                secrets[name] = str(legacy_plaintext)
                migrated = True
        return secrets, migrated

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered = {
            key: value
            for key, value in overrides.items()
            if key in allowed and value is not None
        }
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def validate_choice(name: str, value: Any) -> Any:
    """Raise ``ValueError`` when ``value`` is not an accepted choice for ``name``."""

    choices = _CHOICES.get(name)
    if choices is not None and value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}; got {value!r}")
    return value


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - set(SECRET_FIELDS)
    return {key: value for key, value in payload.items() if key in allowed}


def _normalize_choices(data: Dict[str, Any]) -> tuple[Dict[str, Any], bool]:
    defaults = Settings()
    changed = False
    for name in _CHOICES:
        if name not in data:
            continue
        try:
            validate_choice(name, data[name])
        except ValueError:
            default = getattr(defaults, name)
            LOGGER.warning("Unknown %s %r; defaulting to %s.", name, data[name], default)
            data[name] = default
            changed = True
    return data, changed


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"


def redacted_settings(settings: Settings) -> Dict[str, Any]:
    """Return ``settings`` as a dict with every credential masked."""

    payload = asdict(settings)
    for name in SECRET_FIELDS:
        payload[name] = redact_secret(payload.get(name, ""))
    return payload
