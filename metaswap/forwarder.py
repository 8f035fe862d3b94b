"""
Meta-transaction forwarder.

A relayer submits an envelope signed off-line by a user. The forwarder
checks the relayer, the deadline, the fee bound, the signer's nonce and
signature, consumes the nonce, then dispatches the embedded call on the
user's behalf. A failing dispatch is contained: only the inner action is
rolled back, the nonce stays consumed and no fee is taken. On success the
fee is collected in the user's chosen token and paid to the fee holder.
"""
import logging
from dataclasses import dataclass

from metaswap.crypto import ZERO_ADDRESS, Signature, format_address, generate_hash, recover_signer
from metaswap.errors import (
    Expired,
    FeeExceedsAuthorization,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidCallData,
    InvalidNonce,
    InvalidSignature,
    PayloadMismatch,
    Unauthorized,
    UnauthorizedRelayer,
)
from metaswap.ledger import Contract, ReentrancyGuard, external
from metaswap.utils.encoding import CallDataError, decode_call, domain_separator, hash_struct, typed_digest

logger = logging.getLogger(__name__)

FORWARDER_TYPE = (
    'Forwarder(address from,address feeToken,uint256 maxTokenAmount,uint256 deadline,'
    'uint256 nonce,bytes data,bytes32 hashedPayload)'
)

# Default overheads, in fee units, charged on top of the relay's offset
DEFAULT_BASE_OVERHEAD = 21_000
DEFAULT_TRANSFER_OVERHEAD = 30_000


@dataclass
class MetaTx:
    from_address: bytes
    fee_token: bytes
    max_token_amount: int
    deadline: int
    nonce: int
    data: bytes
    hashed_payload: bytes

    def hash(self) -> bytes:
        return hash_struct(FORWARDER_TYPE, [
            self.from_address,
            self.fee_token,
            self.max_token_amount,
            self.deadline,
            self.nonce,
            generate_hash(self.data),
            self.hashed_payload,
        ])

    def to_dict(self) -> dict:
        return {
            'from': self.from_address,
            'fee_token': self.fee_token,
            'max_token_amount': str(self.max_token_amount),
            'deadline': self.deadline,
            'nonce': self.nonce,
            'data': self.data,
            'hashed_payload': self.hashed_payload,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MetaTx':
        return cls(
            from_address=data['from'],
            fee_token=data['fee_token'],
            max_token_amount=int(data['max_token_amount']),
            deadline=int(data['deadline']),
            nonce=int(data['nonce']),
            data=data['data'],
            hashed_payload=data['hashed_payload'],
        )


class Forwarder(Contract):
    """
    Base for contracts that accept relayed calls. Subclasses provide
    _hash_payload() and _dispatch() for the selectors they understand.
    """

    INIT_CODE = b'metaswap.forwarder.Forwarder/v1'

    def __init__(self, ledger, address):
        super().__init__(ledger, address)
        self._meta_guard = ReentrancyGuard('Forwarder')

    def constructor(self, owner: bytes,
                    base_overhead: int = DEFAULT_BASE_OVERHEAD,
                    transfer_overhead: int = DEFAULT_TRANSFER_OVERHEAD):
        self.ledger.state.put(self._key('owner'), owner)
        self.ledger.state.put(self._key('fee_holder'), owner)
        self.ledger.state.put_int(self._key('base_overhead'), base_overhead)
        self.ledger.state.put_int(self._key('transfer_overhead'), transfer_overhead)

    # --- views ---

    def owner(self) -> bytes:
        return self.ledger.state.get(self._key('owner'))

    def fee_holder(self) -> bytes:
        return self.ledger.state.get(self._key('fee_holder'))

    def is_relayer(self, relayer: bytes) -> bool:
        return self.ledger.state.get(self._key('relayer', relayer)) == b'\x01'

    def nonces(self, signer: bytes) -> int:
        return self.ledger.state.get_int(self._key('nonce', signer))

    def fee_overheads(self) -> tuple[int, int]:
        return (
            self.ledger.state.get_int(self._key('base_overhead')),
            self.ledger.state.get_int(self._key('transfer_overhead')),
        )

    def domain_separator(self, domain_name: str) -> bytes:
        return domain_separator(domain_name, self.ledger.chain_id, self.address)

    def get_digest(self, meta: MetaTx, domain_name: str) -> bytes:
        return typed_digest(self.domain_separator(domain_name), meta.hash())

    def compute_fee(self, unit_price: int, fee_offset: int = 0) -> int:
        """Fee in fee-token units; never rounds down to zero."""
        if unit_price < 0 or fee_offset < 0:
            raise ValueError(f"Negative fee parameters: unit_price={unit_price}, fee_offset={fee_offset}")
        base, transfer = self.fee_overheads()
        return max(1, unit_price * (base + transfer + fee_offset))

    # --- administration ---

    @external
    def set_relayer(self, sender: bytes, relayer: bytes, allowed: bool):
        self._only_owner(sender)
        self.ledger.state.put(self._key('relayer', relayer), b'\x01' if allowed else None)
        self._emit('RelayerUpdated', relayer=relayer, allowed=allowed)
        logger.info(f"Relayer {format_address(relayer)} {'allowed' if allowed else 'removed'}")

    @external
    def set_fee_holder(self, sender: bytes, fee_holder: bytes):
        self._only_owner(sender)
        if fee_holder == ZERO_ADDRESS:
            raise ValueError("Fee holder cannot be the zero address")
        self.ledger.state.put(self._key('fee_holder'), fee_holder)
        self._emit('FeeHolderUpdated', fee_holder=fee_holder)
        logger.info(f"Fee holder set to {format_address(fee_holder)}")

    @external
    def set_fee_overheads(self, sender: bytes, base_overhead: int, transfer_overhead: int):
        self._only_owner(sender)
        if base_overhead < 0 or transfer_overhead < 0:
            raise ValueError("Fee overheads cannot be negative")
        self.ledger.state.put_int(self._key('base_overhead'), base_overhead)
        self.ledger.state.put_int(self._key('transfer_overhead'), transfer_overhead)
        self._emit('FeeOverheadsUpdated', base_overhead=base_overhead, transfer_overhead=transfer_overhead)

    @external
    def transfer_ownership(self, sender: bytes, new_owner: bytes):
        self._only_owner(sender)
        if new_owner == ZERO_ADDRESS:
            raise ValueError("New owner is the zero address")
        self.ledger.state.put(self._key('owner'), new_owner)
        self._emit('OwnershipTransferred', previous_owner=sender, new_owner=new_owner)
        logger.info(f"Ownership of {self!r} transferred to {format_address(new_owner)}")

    # --- relay ---

    @external
    def execute_meta_tx(self, sender: bytes, meta: MetaTx, domain_name: str,
                        unit_price: int, fee_offset: int, signature: Signature) -> bool:
        """
        Verify and execute a relayed call.

        Returns:
            True if the embedded call succeeded, False if it failed and was
            contained (reported through a MetaStatus event).

        Raises:
            AuthorizationError, FeeExceedsAuthorization or ResourceError when
            the envelope itself is rejected, and ValueError for negative fee
            parameters; nothing is consumed in that case.
        """
        with self._meta_guard:
            if not self.is_relayer(sender):
                raise UnauthorizedRelayer(f"Unauthorized relayer {format_address(sender)}")
            if self.now > meta.deadline:
                raise Expired("Meta transaction expired")

            fee = self.compute_fee(unit_price, fee_offset)
            if fee > meta.max_token_amount:
                raise FeeExceedsAuthorization(f"Fee {fee} exceeds max {meta.max_token_amount}")
            fee_token = self._contract(meta.fee_token)
            if fee_token.balance_of(meta.from_address) < fee:
                raise InsufficientBalance("Insufficient fee token balance")
            if fee_token.allowance(meta.from_address, self.address) < fee:
                raise InsufficientAllowance("Insufficient fee token allowance")

            nonce = self.nonces(meta.from_address)
            if meta.nonce != nonce:
                raise InvalidNonce(f"Invalid nonce: expected {nonce}, got {meta.nonce}")
            signer = recover_signer(self.get_digest(meta, domain_name), signature)
            if signer is None or signer != meta.from_address:
                raise InvalidSignature("Invalid signature")

            self.ledger.state.put_int(self._key('nonce', meta.from_address), nonce + 1)

            try:
                with self.ledger.atomic():
                    selector, payload = self._decode(meta.data)
                    if self._hash_payload(selector, payload) != meta.hashed_payload:
                        raise PayloadMismatch("Payload hash does not match call data")
                    self._dispatch(meta.from_address, selector, payload)
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
                logger.warning(f"Meta tx from {format_address(meta.from_address)} failed: {reason}")
                self._emit('MetaStatus', signer=meta.from_address, success=False, reason=reason,
                           fee_token=meta.fee_token, fee=0)
                return False

            fee_token.transfer_from(self.address, meta.from_address, self.fee_holder(), fee)
            self._emit('MetaStatus', signer=meta.from_address, success=True, reason='',
                       fee_token=meta.fee_token, fee=fee)
            logger.info(f"Meta tx from {format_address(meta.from_address)} executed, fee {fee}")
            return True

    # --- hooks ---

    def _decode(self, data: bytes) -> tuple[bytes, dict]:
        try:
            return decode_call(data)
        except CallDataError as e:
            raise InvalidCallData(str(e)) from e

    def _hash_payload(self, selector: bytes, payload: dict) -> bytes:
        raise InvalidCallData("Invalid function signature")

    def _dispatch(self, signer: bytes, selector: bytes, payload: dict):
        raise InvalidCallData("Invalid function signature")

    def _only_owner(self, sender: bytes):
        if sender != self.owner():
            raise Unauthorized("Ownable: caller is not the owner")
