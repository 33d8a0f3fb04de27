from __future__ import annotations
"""Saved connection profiles; secret keys are kept in the OS keychain."""
from dataclasses import dataclass
import json
import logging
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from .config import S3Configuration
from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)


@dataclass
class ConnectionProfile:
    """A named S3 endpoint plus the access key used to reach it."""

    name: str
    region: str
    access_key: str
    secret_key: str = ""
    endpoint_url: str = ""
    default_bucket: str = ""

    def to_configuration(self) -> S3Configuration:
        if not self.secret_key:
            raise ConfigurationError(f"No secret key stored for profile '{self.name}'")
        return S3Configuration(
            access_key_id=self.access_key,
            secret_access_key=self.secret_key,
            region=self.region,
            default_bucket=self.default_bucket or None,
            endpoint=self.endpoint_url or None,
        )


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "pys3lite"):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError as exc:
            LOGGER.warning("Keychain lookup failed for %s: %s", profile_name, exc)
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError as exc:
            LOGGER.warning("Unable to store secret for %s: %s", profile_name, exc)

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON-backed store for connection profiles."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3lite_connections.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_data()
        profiles: list[ConnectionProfile] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                secret_key = entry.get("secret_key", "")
                if secret_key:
                    saw_plaintext = True
                    self._keychain.set_secret(name, secret_key)
                else:
                    secret_key = self._keychain.get_secret(name)
                profiles.append(
                    ConnectionProfile(
                        name=name,
                        region=entry["region"],
                        access_key=entry["access_key"],
                        secret_key=secret_key,
                        endpoint_url=entry.get("endpoint_url", ""),
                        default_bucket=entry.get("default_bucket", ""),
                    )
                )
            except (KeyError, TypeError, AttributeError):
                continue
        if saw_plaintext:
            self._write_data([self._serialize(profile) for profile in profiles])
        return profiles

    def get(self, name: str) -> ConnectionProfile:
        for profile in self.load():
            if profile.name == name:
                return profile
        raise ConfigurationError(f"Profile '{name}' does not exist")

    def upsert(self, profile: ConnectionProfile) -> None:
        profiles = [existing for existing in self.load() if existing.name != profile.name]
        profiles.append(profile)
        self.save(profiles)

    def remove(self, name: str) -> None:
        profiles = self.load()
        remaining = [profile for profile in profiles if profile.name != name]
        if len(remaining) == len(profiles):
            raise ConfigurationError(f"Profile '{name}' does not exist")
        self.save(remaining)

    def save(self, profiles: list[ConnectionProfile]) -> None:
        existing_names = {entry.get("name") for entry in self._read_data() if isinstance(entry, dict)}
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            if isinstance(name, str) and name:
                self._keychain.delete_secret(name)
        self._write_data([self._serialize(profile) for profile in profiles])

    @staticmethod
    def _serialize(profile: ConnectionProfile) -> dict[str, str]:
        return {
            "name": profile.name,
            "region": profile.region,
            "access_key": profile.access_key,
            "endpoint_url": profile.endpoint_url,
            "default_bucket": profile.default_bucket,
        }

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
