"""
Canonical encodings for typed signed payloads and router call data.

Struct hashing follows the typed-data scheme: a struct hash is the Keccak-256
of the msgpack encoding of `[typehash, field_1, ..., field_n]`, where every
unsigned integer is encoded as a 32-byte big-endian word.
"""
import msgpack
from metaswap.crypto import generate_hash

UINT256_MAX = 2 ** 256 - 1
TYPED_DATA_PREFIX = b'\x19\x01'
DOMAIN_TYPE = 'EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)'


class CallDataError(ValueError):
    """Raised when call data cannot be decoded."""


def encode_uint(value: int) -> bytes:
    """Encode an unsigned integer as a 32-byte big-endian word."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"Expected int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return value.to_bytes(32, 'big')

def decode_uint(word: bytes) -> int:
    if len(word) != 32:
        raise ValueError("uint256 words are 32 bytes")
    return int.from_bytes(word, 'big')

def pack(obj) -> bytes:
    return msgpack.packb(obj, use_bin_type=True)

def unpack(data: bytes):
    return msgpack.unpackb(data, raw=False)

def type_hash(type_signature: str) -> bytes:
    return generate_hash(type_signature.encode('utf-8'))

def _encode_field(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return encode_uint(value)
    if isinstance(value, str):
        return generate_hash(value.encode('utf-8'))
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise TypeError(f"Unsupported struct field type: {type(value).__name__}")

def hash_struct(type_signature: str, fields: list) -> bytes:
    """Hash a typed struct given its type signature and ordered field values."""
    encoded = [type_hash(type_signature)] + [_encode_field(f) for f in fields]
    return generate_hash(pack(encoded))

def hash_address_list(addresses: list[bytes]) -> bytes:
    """Tightly packed hash of an address array (used for swap paths)."""
    return generate_hash(b''.join(addresses))

def domain_separator(name: str, chain_id: int, verifying_contract: bytes, version: str = '1') -> bytes:
    return hash_struct(DOMAIN_TYPE, [name, version, chain_id, verifying_contract])

def typed_digest(separator: bytes, struct_hash: bytes) -> bytes:
    return generate_hash(TYPED_DATA_PREFIX + separator + struct_hash)

def function_selector(signature: str) -> bytes:
    return generate_hash(signature.encode('utf-8'))[:4]

def encode_call(signature: str, payload: dict) -> bytes:
    return function_selector(signature) + pack(payload)

def decode_call(data: bytes) -> tuple[bytes, dict]:
    """Split call data into its 4-byte selector and decoded payload."""
    if not isinstance(data, (bytes, bytearray)) or len(data) < 4:
        raise CallDataError("Call data too short")
    try:
        payload = unpack(bytes(data[4:]))
    except (ValueError, TypeError) as e:
        raise CallDataError(f"Malformed call data: {e}") from e
    if not isinstance(payload, dict):
        raise CallDataError("Call data payload must be a map")
    return bytes(data[:4]), payload
