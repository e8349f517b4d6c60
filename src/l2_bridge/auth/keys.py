"""Secondary (off-chain identity) keypair — P-256 ECDSA sign/verify.

The secondary keypair is the off-chain half of the dual signature:
- A P-256 signing key (``pub``/``priv``) signing the canonical message
- A P-256 encryption key (``epub``/``epriv``) held for relay-side encryption
- Keys are derived deterministically from a wallet signature over a fixed
  derivation message, so the same wallet always yields the same keypair
- Key material lives in memory only and is never persisted or logged

Encodings follow the relay wire format: public keys are ``x.y`` with each
coordinate base64url (no padding); signatures are base64url ``r || s``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass, field

from ecdsa import BadSignatureError, NIST256p, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigdecode_string, sigencode_string

_CURVE = NIST256p
_CURVE_ORDER = _CURVE.order
_COORD_LEN = 32

# Domain separators for the two derived keys
_SIGN_DOMAIN = b"l2-bridge/secondary/sign"
_ENCRYPT_DOMAIN = b"l2-bridge/secondary/encrypt"

#: Message the wallet signs to derive the secondary keypair.
DERIVATION_MESSAGE = (
    "Sign this message to derive your L2 bridge identity key.\n"
    "This signature does not authorize any transaction."
)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def encode_public_key(vk: VerifyingKey) -> str:
    """Encode a verifying key as ``x.y`` (base64url coordinates)."""
    raw = vk.to_string()
    return f"{_b64url(raw[:_COORD_LEN])}.{_b64url(raw[_COORD_LEN:])}"


def decode_public_key(pub: str) -> VerifyingKey:
    """Decode an ``x.y`` public key string.

    Raises:
        ValueError: If the string is not a valid P-256 point.
    """
    parts = pub.split(".")
    if len(parts) != 2:  # noqa: PLR2004
        msg = "public key must be formatted as x.y"
        raise ValueError(msg)
    x, y = (_b64url_decode(p) for p in parts)
    if len(x) != _COORD_LEN or len(y) != _COORD_LEN:
        msg = "public key coordinates must be 32 bytes"
        raise ValueError(msg)
    return VerifyingKey.from_string(x + y, curve=_CURVE, hashfunc=hashlib.sha256)


def _scalar_from_seed(seed: bytes, domain: bytes) -> int:
    digest = hmac.new(domain, seed, hashlib.sha256).digest()
    return int.from_bytes(digest, "big") % (_CURVE_ORDER - 1) + 1


# ---------------------------------------------------------------------------
# Keypair
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SecondaryKeypair:
    """In-memory secondary keypair.

    Attributes:
        pub: Signing public key (``x.y``).
        epub: Encryption public key (``x.y``).
    """

    pub: str
    epub: str
    _signing_key: SigningKey = field(repr=False, compare=False)
    _encryption_key: SigningKey = field(repr=False, compare=False)

    @classmethod
    def from_seed(cls, seed: bytes) -> SecondaryKeypair:
        """Derive both keys deterministically from *seed*.

        Raises:
            ValueError: If *seed* is empty.
        """
        if not seed:
            msg = "seed must not be empty"
            raise ValueError(msg)
        sk = SigningKey.from_secret_exponent(
            _scalar_from_seed(seed, _SIGN_DOMAIN), curve=_CURVE, hashfunc=hashlib.sha256
        )
        ek = SigningKey.from_secret_exponent(
            _scalar_from_seed(seed, _ENCRYPT_DOMAIN), curve=_CURVE, hashfunc=hashlib.sha256
        )
        return cls(
            pub=encode_public_key(sk.get_verifying_key()),
            epub=encode_public_key(ek.get_verifying_key()),
            _signing_key=sk,
            _encryption_key=ek,
        )

    @classmethod
    def from_wallet_signature(cls, signature: str) -> SecondaryKeypair:
        """Derive the keypair from a hex wallet signature over ``DERIVATION_MESSAGE``."""
        raw = signature[2:] if signature.startswith("0x") else signature
        return cls.from_seed(bytes.fromhex(raw))

    @property
    def priv(self) -> str:
        """Signing private scalar (base64url)."""
        return _b64url(self._signing_key.to_string())

    @property
    def epriv(self) -> str:
        """Encryption private scalar (base64url)."""
        return _b64url(self._encryption_key.to_string())

    def sign(self, message: str) -> str:
        """Deterministically sign the UTF-8 bytes of *message* (RFC 6979)."""
        sig = self._signing_key.sign_deterministic(
            message.encode("utf-8"),
            hashfunc=hashlib.sha256,
            sigencode=sigencode_string,
        )
        return _b64url(sig)


def verify_secondary_signature(pub: str, message: str, signature: str) -> bool:
    """Verify a secondary signature over *message* against public key *pub*."""
    try:
        vk = decode_public_key(pub)
        return vk.verify(
            _b64url_decode(signature),
            message.encode("utf-8"),
            hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string,
        )
    except (BadSignatureError, MalformedPointError, ValueError):
        return False
