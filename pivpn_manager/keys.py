import base64
import binascii
import hmac
import logging
import os
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .errors import FileError, ParseError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
_ZERO = bytes(KEY_LENGTH)

KEY_FILE_MODE = 0o600


@dataclass(frozen=True)
class Key:
    """A 32-byte WireGuard key. The all-zero value means "not set"."""

    raw: bytes = _ZERO

    def __post_init__(self) -> None:
        if len(self.raw) != KEY_LENGTH:
            raise ValueError(f"keys must be exactly {KEY_LENGTH} bytes, got {len(self.raw)}")

    def __str__(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")

    def __repr__(self) -> str:
        # never echo key material into tracebacks or logs
        return f"Key(<{len(self.raw)} bytes>)"

    def __bytes__(self) -> bytes:
        return self.raw

    def is_zero(self) -> bool:
        return hmac.compare_digest(self.raw, _ZERO)

    def public(self) -> "Key":
        """Derive the X25519 public key for this private key."""
        pub = (
            X25519PrivateKey.from_private_bytes(self.raw)
            .public_key()
            .public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
        )
        return Key(pub)


def parse_key_base64(value: str) -> Key:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParseError(f"Invalid key: {e}", value) from e
    if len(raw) != KEY_LENGTH:
        raise ParseError("Keys must decode to exactly 32 bytes", value)
    return Key(raw)


def generate_preshared_key() -> Key:
    """32 random bytes from the OS CSPRNG."""
    return Key(os.urandom(KEY_LENGTH))


def generate_private_key() -> Key:
    """A fresh random key clamped for use as a curve25519 scalar."""
    k = bytearray(generate_preshared_key().raw)
    k[0] &= 248
    k[31] = (k[31] & 127) | 64
    return Key(bytes(k))


@dataclass()
class KeySet:
    """The private and preshared key pair owned by one client (or the server)."""

    name: str
    private_key: Key = field(default_factory=generate_private_key)
    preshared_key: Key = field(default_factory=generate_preshared_key)

    @property
    def public_key(self) -> Key:
        return self.private_key.public()

    def file_paths(self, keys_dir: str) -> dict:
        base = os.path.join(keys_dir, self.name)
        return {
            "priv": base + "_priv",
            "pub": base + "_pub",
            "psk": base + "_psk",
        }

    def write_out(self, keys_dir: str, uid: int = 0, gid: int = 0) -> None:
        paths = self.file_paths(keys_dir)
        write_key_file(paths["priv"], self.private_key, uid, gid)
        write_key_file(paths["pub"], self.public_key, uid, gid)
        write_key_file(paths["psk"], self.preshared_key, uid, gid)

    @classmethod
    def read(cls, name: str, keys_dir: str) -> "KeySet":
        base = os.path.join(keys_dir, name)
        return cls(
            name=name,
            private_key=read_key_file(base + "_priv"),
            preshared_key=read_key_file(base + "_psk"),
        )


def write_key_file(path: str, key: Key, uid: int = 0, gid: int = 0) -> None:
    try:
        with open(path, "w", encoding="ascii") as f:
            f.write(str(key))
        os.chmod(path, KEY_FILE_MODE)
        os.chown(path, uid, gid)
    except OSError as e:
        raise FileError(path, e) from e
    logger.debug("wrote key file %s", path)


def read_key_file(path: str) -> Key:
    try:
        with open(path, "r", encoding="ascii") as f:
            text = f.read()
    except OSError as e:
        raise FileError(path, e) from e
    try:
        return parse_key_base64(text.strip())
    except ParseError as e:
        raise FileError(path, e) from e
