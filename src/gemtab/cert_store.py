"""
Certificate trust store for trust-on-first-use pinning.

Stores one public-key pin per hostname in a JSON file, writing through to
disk after every mutation. The store is shared by every tab and may be
consulted from several connection handshakes at once, so all access goes
through a single lock.
"""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .certificate import public_key_pin
from .enums import ErrorCode, PinStatus
from .event_logger import EventLogger
from .exceptions import CertChangedError, PersistenceError


@dataclass(frozen=True)
class PinResult:
    """Outcome of a successful check."""

    status: PinStatus
    persisted: bool = True
    error: Optional[PersistenceError] = None


class CertStore:
    """
    Persistent TOFU pin storage.

    A host seen for the first time (or checked with force_repin) is pinned
    to the presented key. Later checks compare against that pin and raise
    CertChangedError on mismatch.
    """

    COMPONENT = "cert_store"

    def __init__(
        self,
        file_path: Path,
        pins: Optional[dict[str, str]] = None,
        logger: Optional[EventLogger] = None,
        fingerprint: Callable[[bytes], str] = public_key_pin,
    ) -> None:
        """
        Initialize the store.

        Args:
            file_path: Path to the pin file (JSON format)
            pins: Initial host -> pin mapping
            logger: Optional event logger
            fingerprint: Maps a DER certificate to its pin
        """
        self._file_path = file_path
        self._pins: dict[str, str] = dict(pins or {})
        self._logger = logger
        self._fingerprint = fingerprint
        self._lock = threading.Lock()

    @classmethod
    def load(
        cls,
        file_path: Path,
        logger: Optional[EventLogger] = None,
        fingerprint: Callable[[bytes], str] = public_key_pin,
    ) -> "CertStore":
        """
        Load pins from file. A missing file yields an empty store.

        Raises:
            PersistenceError: If the file cannot be read or parsed
        """
        if not file_path.exists():
            return cls(file_path, logger=logger, fingerprint=fingerprint)

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code=ErrorCode.DECODE_ERROR.value,
                message=f"Failed to parse certificate file: {e}",
                details={"file_path": str(file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code=ErrorCode.IO_ERROR.value,
                message=f"Failed to read certificate file: {e}",
                details={"file_path": str(file_path)},
            )

        certificates = raw_data.get("Certificates") if isinstance(raw_data, dict) else None
        if certificates is None:
            certificates = {}
        if not isinstance(certificates, dict):
            raise PersistenceError(
                code=ErrorCode.DECODE_ERROR.value,
                message="Certificates entry is not an object",
                details={"file_path": str(file_path)},
            )

        return cls(
            file_path,
            pins={str(host): str(pin) for host, pin in certificates.items()},
            logger=logger,
            fingerprint=fingerprint,
        )

    def check(self, host: str, cert_der: bytes, force_repin: bool = False) -> PinResult:
        """
        Check a presented certificate against the pin for host.

        Args:
            host: Hostname that was dialed
            cert_der: Server leaf certificate in DER form
            force_repin: Overwrite an existing pin instead of comparing

        Returns:
            PinResult; persisted is False when writing the pin failed,
            which does not change the trust decision

        Raises:
            CertChangedError: If host is pinned to a different key
        """
        host = host.lower()
        presented = self._fingerprint(cert_der)

        with self._lock:
            pinned = self._pins.get(host)
            if pinned is not None and not force_repin:
                if pinned == presented:
                    return PinResult(status=PinStatus.TRUSTED)
                if self._logger:
                    self._logger.warn(self.COMPONENT, "Certificate changed", {"host": host})
                raise CertChangedError(host)

            status = PinStatus.PINNED if pinned is None else PinStatus.REPINNED
            self._pins[host] = presented
            try:
                self._save_locked()
            except PersistenceError as e:
                if self._logger:
                    self._logger.log_error(self.COMPONENT, "Pin not persisted", error=e,
                                           additional_data={"host": host})
                return PinResult(status=status, persisted=False, error=e)

        if self._logger:
            self._logger.info(self.COMPONENT, f"Host {status.value}", {"host": host})
        return PinResult(status=status)

    def forget(self, host: str) -> bool:
        """
        Remove the pin for host.

        Returns:
            True if a pin was removed

        Raises:
            PersistenceError: If the file cannot be written
        """
        with self._lock:
            if self._pins.pop(host.lower(), None) is None:
                return False
            self._save_locked()
            return True

    def hosts(self) -> list[str]:
        with self._lock:
            return sorted(self._pins)

    def pin_for(self, host: str) -> Optional[str]:
        with self._lock:
            return self._pins.get(host.lower())

    def save(self) -> None:
        """
        Raises:
            PersistenceError: If the file cannot be written
        """
        with self._lock:
            self._save_locked()

    def _save_locked(self) -> None:
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump({"Certificates": self._pins}, f, indent=2, sort_keys=True)
        except OSError as e:
            raise PersistenceError(
                code=ErrorCode.IO_ERROR.value,
                message=f"Failed to write certificate file: {e}",
                details={"file_path": str(self._file_path)},
            )

    @property
    def file_path(self) -> Path:
        return self._file_path
