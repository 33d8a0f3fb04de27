from __future__ import annotations
"""Client settings persistence helpers."""

from dataclasses import dataclass
import json
from pathlib import Path

from .signer import MAX_PRESIGN_EXPIRES


@dataclass
class ClientSettings:
    """Defaults applied by the command line client."""

    max_keys: int = 1000
    presign_expires_in: int = 3600


def _positive_int(value: object, default: int, upper: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    if upper is not None and number > upper:
        return default
    return number


class SettingsStorage:
    """JSON-backed persistence for :class:`ClientSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3lite_settings.json"
        self._path = Path(storage_path)

    def load(self) -> ClientSettings:
        if not self._path.exists():
            return ClientSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return ClientSettings()
        if not isinstance(data, dict):
            return ClientSettings()
        return ClientSettings(
            max_keys=_positive_int(data.get("max_keys"), ClientSettings.max_keys, upper=1000),
            presign_expires_in=_positive_int(
                data.get("presign_expires_in"),
                ClientSettings.presign_expires_in,
                upper=MAX_PRESIGN_EXPIRES,
            ),
        )

    def save(self, settings: ClientSettings) -> None:
        payload = {
            "max_keys": min(max(int(settings.max_keys), 1), 1000),
            "presign_expires_in": min(max(int(settings.presign_expires_in), 1), MAX_PRESIGN_EXPIRES),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
