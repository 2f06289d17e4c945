"""SuiSigner: Sui key decoding, address derivation and transaction signing.

Ed25519 (signature scheme flag 0x00) and secp256k1 (flag 0x01) keys are
supported. A key can be given as:
    - a Bech32 ``suiprivkey1...`` string (as exported by ``sui keytool``)
    - base64 of ``flag || secret`` (the ``sui.keystore`` line format)
    - a 0x-prefixed hex secret (assumed secp256k1)

Signing follows the Sui intent scheme: the transaction bytes are prefixed by
the transaction intent and hashed with Blake2b-256. Ed25519 signs the digest
directly; secp256k1 signs it with ECDSA over SHA-256.
"""

from __future__ import annotations

import base64
import binascii
import hashlib

import bech32
from eth_keys import keys
from nacl.signing import SigningKey

SUI_PRIVATE_KEY_PREFIX = "suiprivkey"

# Signature scheme flags
ED25519_FLAG = 0x00
SECP256K1_FLAG = 0x01

# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = bytes([0, 0, 0])


def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def bech32_to_bytes(value: str, expected_hrp: str = SUI_PRIVATE_KEY_PREFIX) -> bytes:
    """Decode a Bech32 string to raw bytes.

    :param value: Bech32-encoded string (e.g., "suiprivkey1...").
    :param expected_hrp: Required human-readable part.
    :returns: Decoded payload bytes.
    :raises ValueError: If the value is invalid bech32 or has the wrong prefix.
    """
    hrp, data = bech32.bech32_decode(value)
    if data is None:
        raise ValueError("Invalid bech32 private key")
    if hrp != expected_hrp:
        raise ValueError(f"Unexpected bech32 prefix '{hrp}', expected '{expected_hrp}'")

    # Convert 5-bit groups to bytes
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None:
        raise ValueError("Failed to convert bech32 private key to bytes")

    return bytes(raw)


def decode_private_key(value: str) -> tuple[int, bytes]:
    """Decode a private key string into (scheme flag, 32-byte secret).

    :param value: Key in any of the supported formats.
    :returns: Tuple of signature scheme flag and secret bytes.
    :raises ValueError: If the key cannot be decoded.
    """
    value = value.strip()
    if not value:
        raise ValueError("Private key is empty")

    if value.lower().startswith(SUI_PRIVATE_KEY_PREFIX):
        raw = bech32_to_bytes(value.lower())
    elif value.startswith("0x"):
        try:
            secret = bytes.fromhex(value[2:])
        except ValueError as e:
            raise ValueError("Invalid hex private key") from e
        raw = bytes([SECP256K1_FLAG]) + secret
    else:
        try:
            raw = base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError("Private key is neither bech32, hex nor base64") from e

    if len(raw) != 33:
        raise ValueError(f"Private key must be 1 flag byte and 32 secret bytes, got {len(raw)} bytes")
    return raw[0], raw[1:]


def normalize_sui_address(address: str) -> str:
    """Normalize a Sui address or object id to 0x + 64 lowercase hex chars.

    :param address: Address, possibly in short form (e.g., "0x2").
    :returns: Normalized address.
    :raises ValueError: If the value is not a valid hex address.
    """
    hex_part = address.strip().lower()
    if hex_part.startswith("0x"):
        hex_part = hex_part[2:]
    if not hex_part or len(hex_part) > 64:
        raise ValueError(f"Invalid Sui address '{address}'")
    try:
        int(hex_part, 16)
    except ValueError as e:
        raise ValueError(f"Invalid Sui address '{address}'") from e
    return "0x" + hex_part.rjust(64, "0")


class SuiSigner:
    """Signs Sui transactions with an Ed25519 or secp256k1 key.

    :ivar flag: Signature scheme flag of the key.
    :ivar public_key: Public key bytes (32 for Ed25519, 33 compressed for secp256k1).
    :ivar address: Sui address derived from the flag and public key.
    """

    def __init__(self, private_key: str) -> None:
        """Initialize the signer.

        :param private_key: Private key in a supported format.
        :raises ValueError: If the key is invalid or uses an unsupported scheme.
        """
        flag, secret = decode_private_key(private_key)
        if flag == ED25519_FLAG:
            self._key = SigningKey(secret)
            self.public_key = bytes(self._key.verify_key)
        elif flag == SECP256K1_FLAG:
            try:
                self._key = keys.PrivateKey(secret)
            except Exception as e:
                raise ValueError(f"Invalid secp256k1 private key: {e}") from e
            self.public_key = self._key.public_key.to_compressed_bytes()
        else:
            raise ValueError(f"Unsupported signature scheme flag {flag:#04x}")

        self.flag = flag
        self.address = "0x" + blake2b256(bytes([flag]) + self.public_key).hex()

    def sign_transaction(self, tx_bytes: bytes) -> str:
        """Sign BCS transaction bytes.

        :param tx_bytes: Transaction data bytes as returned by the node.
        :returns: Base64 serialized signature (flag || signature || public key).
        """
        digest = blake2b256(TRANSACTION_INTENT + tx_bytes)
        if self.flag == ED25519_FLAG:
            raw = self._key.sign(digest).signature
        else:
            signature = self._key.sign_msg_hash(hashlib.sha256(digest).digest())
            raw = signature.r.to_bytes(32, "big") + signature.s.to_bytes(32, "big")
        serialized = bytes([self.flag]) + raw + self.public_key
        return base64.b64encode(serialized).decode("ascii")
