"""
Core cryptographic functions for the exchange.
"""
import msgpack
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization
from cryptography.exceptions import InvalidSignature

ZERO_ADDRESS = b'\x00' * 20


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    from Crypto.Hash import keccak
    return keccak.new(digest_bits=256, data=data).digest()

def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair (SECP256k1)."""
    private_key = ec.generate_private_key(ec.SECP256K1())
    public_key = private_key.public_key()
    return private_key, public_key

def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serializes a public key object into PEM format (string)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    """Deserializes a public key from a PEM formatted string."""
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))

def public_key_to_address(public_key_pem: str) -> bytes:
    """
    Derives a 20-byte address from a public key PEM string.

    The address is the last 20 bytes of the Keccak-256 hash of the
    uncompressed curve point (without the 0x04 prefix).
    """
    public_key = deserialize_public_key(public_key_pem)
    point = public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    return generate_hash(point[1:])[12:]

def sign(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """Signs byte data using ECDSA with SHA256."""
    return private_key.sign(data, ec.ECDSA(hashes.SHA256()))

def verify_signature(public_key_pem: str, signature: bytes, data: bytes) -> bool:
    """Verifies an ECDSA/SHA256 signature."""
    try:
        public_key = deserialize_public_key(public_key_pem)
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        return False


class Signature:
    """
    An off-line authorization: the signer's public key plus the DER encoded
    ECDSA signature over a typed digest.
    """

    def __init__(self, public_key: str, signature: bytes):
        self.public_key = public_key
        self.signature = signature

    @classmethod
    def from_dict(cls, data: dict) -> 'Signature':
        return cls(public_key=data['public_key'], signature=data['signature'])

    def to_dict(self) -> dict:
        return {
            'public_key': self.public_key,
            'signature': self.signature,
        }

    def to_bytes(self) -> bytes:
        """Canonical byte form, used when a signature is itself signed over."""
        return msgpack.packb(self.to_dict(), use_bin_type=True)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self.public_key == other.public_key and self.signature == other.signature

    def __repr__(self) -> str:
        return f"Signature(signer={format_address(self.signer_address)}, sig={self.signature.hex()[:16]}...)"

    @property
    def signer_address(self) -> bytes:
        return public_key_to_address(self.public_key)


def sign_digest(private_key: ec.EllipticCurvePrivateKey, digest: bytes) -> Signature:
    """Signs a 32-byte typed digest and bundles the signer's public key."""
    public_key_pem = serialize_public_key(private_key.public_key())
    return Signature(public_key_pem, sign(private_key, digest))

def recover_signer(digest: bytes, signature: Signature) -> bytes | None:
    """
    Returns the address that produced `signature` over `digest`, or None
    when the signature does not verify.
    """
    if signature is None or not signature.signature:
        return None
    try:
        if not verify_signature(signature.public_key, signature.signature, digest):
            return None
        return public_key_to_address(signature.public_key)
    except (ValueError, TypeError):
        # Malformed PEM
        return None

def create2_address(deployer: bytes, salt: bytes, init_code_hash: bytes) -> bytes:
    """Content-addressed deployment: keccak(0xff ++ deployer ++ salt ++ code_hash)[12:]."""
    if len(deployer) != 20 or len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("create2 expects a 20-byte deployer, 32-byte salt and 32-byte code hash")
    return generate_hash(b'\xff' + deployer + salt + init_code_hash)[12:]

def create_address(deployer: bytes, nonce: int) -> bytes:
    """Sequential deployment address derived from the deployer and its deploy count."""
    return generate_hash(msgpack.packb([deployer, nonce], use_bin_type=True))[12:]

def format_address(address: bytes) -> str:
    return '0x' + address.hex()

def parse_address(value: str) -> bytes:
    value = value[2:] if value.startswith(('0x', '0X')) else value
    address = bytes.fromhex(value)
    if len(address) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(address)}")
    return address
