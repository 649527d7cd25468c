from __future__ import annotations
import os
from typing import Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

SECRETS_DIR = os.path.join(os.path.abspath("."), "secrets")
NONCE_LEN = 12
STORE_KEY_INFO = b"measurement-store"

def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass

class KeyManager:
    """
    Dev-friendly sealed file fallback:
      - 32-byte master key stored in <secrets_dir>/master.key with 0600 perms
    Swap this for OS keystore later (DPAPI/Keychain).
    """
    def __init__(self, secrets_dir: str = SECRETS_DIR):
        self.secrets_dir = secrets_dir
        self.master_key_file = os.path.join(secrets_dir, "master.key")

    def load_or_create_master(self) -> bytes:
        if os.path.exists(self.master_key_file):
            with open(self.master_key_file, "rb") as f:
                return f.read()
        _ensure_dir(self.secrets_dir)
        key = os.urandom(32)
        with open(self.master_key_file, "wb") as f:
            f.write(key)
        try:
            os.chmod(self.master_key_file, 0o600)
        except OSError:
            pass
        return key

    def derive_store_key(self, salt: bytes = b"\x00" * 16) -> bytes:
        master = self.load_or_create_master()
        hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=STORE_KEY_INFO)
        return hkdf.derive(master)

class RecordSealer:
    """
    ChaCha20-Poly1305 sealing for stored measurements.
    The signal name is bound as AAD so a row cannot be replayed under another signal.
    """
    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("RecordSealer needs a 32-byte key")
        self._aead = ChaCha20Poly1305(key)

    @classmethod
    def from_key_manager(cls, km: KeyManager) -> "RecordSealer":
        return cls(km.derive_store_key())

    def seal(self, plaintext: bytes, aad: bytes) -> Tuple[bytes, bytes]:
        nonce = os.urandom(NONCE_LEN)
        return self._aead.encrypt(nonce, plaintext, aad), nonce

    def open(self, ciphertext: bytes, nonce: bytes, aad: bytes) -> bytes:
        # raises cryptography.exceptions.InvalidTag on tamper / wrong key
        return self._aead.decrypt(nonce, ciphertext, aad)
