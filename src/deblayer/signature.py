"""OpenPGP verification of Release files.

Provides a thin wrapper around python-gnupg that verifies detached signatures
against an isolated keyring holding only the distribution's trusted keys.
"""

import logging
import tempfile
from pathlib import Path

import gnupg

from deblayer.errors import SignatureVerificationError

logger = logging.getLogger(__name__)


class ReleaseVerifier:
    """Verifies Release files against a trusted keyring.

    A fresh GNUPGHOME is used for every verification so nothing from the build
    user's own keyring can vouch for a Release file.
    """

    def __init__(self, keyring_path: Path, gpg_binary: str = "gpg"):
        self.keyring_path = keyring_path
        self.gpg_binary = gpg_binary

    def _load_keyring(self) -> bytes:
        try:
            key_data = self.keyring_path.read_bytes()
        except OSError as e:
            raise SignatureVerificationError(f"Unable to read trusted keyring {self.keyring_path}: {e}") from e
        if not key_data.strip():
            raise SignatureVerificationError(f"Trusted keyring {self.keyring_path} is empty")
        return key_data

    def verify(self, data: bytes, signature: bytes | None, source: str = "Release") -> str:
        """Verify a detached signature over data.

        Args:
            data: The signed bytes (the Release file)
            signature: The detached signature (Release.gpg), None if it could not be fetched
            source: Name used in error messages

        Returns:
            Fingerprint of the key that made the signature

        Raises:
            SignatureVerificationError: If the signature is missing, corrupt, or not from a trusted key
        """
        if not signature:
            raise SignatureVerificationError(f"No signature found for {source}")

        key_data = self._load_keyring()

        with tempfile.TemporaryDirectory(prefix="deblayer-gnupg-") as gnupghome:
            try:
                gpg = gnupg.GPG(gnupghome=gnupghome, gpgbinary=self.gpg_binary)
            except (OSError, ValueError) as e:
                raise SignatureVerificationError(f"GnuPG is not available: {e}") from e

            imported = gpg.import_keys(key_data)
            if not imported.count:
                raise SignatureVerificationError(f"No usable keys in trusted keyring {self.keyring_path}")
            logger.debug(f"Imported {imported.count} trusted keys from {self.keyring_path}")

            signature_path = Path(gnupghome) / "Release.gpg"
            signature_path.write_bytes(signature)
            verified = gpg.verify_data(str(signature_path), data)

        if not verified.valid:
            status = verified.status or "unknown error"
            key_id = f" (key {verified.key_id})" if verified.key_id else ""
            raise SignatureVerificationError(f"Signature verification failed for {source}{key_id}: {status}")

        logger.debug(f"Verified {source} signed by {verified.fingerprint}")
        return verified.fingerprint
