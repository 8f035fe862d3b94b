"""
Fungible tokens held on the ledger.

ERC20 keeps balances and allowances in contract storage. Token adds an
owner-controlled mint used for faucets and tests; ShareToken adds signed
permits (approval by off-line signature); FeeOnTransferToken delivers less
than the nominal amount of every transfer.
"""
import logging

from metaswap.crypto import ZERO_ADDRESS, format_address, recover_signer, Signature
from metaswap.errors import (
    Expired,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidSignature,
    Unauthorized,
)
from metaswap.ledger import Contract, external
from metaswap.utils.encoding import UINT256_MAX, domain_separator, hash_struct, typed_digest

logger = logging.getLogger(__name__)

PERMIT_TYPE = 'Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)'


class ERC20(Contract):
    INIT_CODE = b'metaswap.erc20.ERC20/v1'

    def constructor(self, name: str, symbol: str, decimals: int = 18):
        self.ledger.state.put_obj(self._key('meta'), {
            'name': name,
            'symbol': symbol,
            'decimals': decimals,
        })

    @property
    def name(self) -> str:
        return self.ledger.state.get_obj(self._key('meta'))['name']

    @property
    def symbol(self) -> str:
        return self.ledger.state.get_obj(self._key('meta'))['symbol']

    @property
    def decimals(self) -> int:
        return self.ledger.state.get_obj(self._key('meta'))['decimals']

    def total_supply(self) -> int:
        return self.ledger.state.get_int(self._key('total_supply'))

    def balance_of(self, owner: bytes) -> int:
        return self.ledger.state.get_int(self._key('balance', owner))

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self.ledger.state.get_int(self._key('allowance', owner, spender))

    @external
    def approve(self, sender: bytes, spender: bytes, value: int) -> bool:
        self._approve(sender, spender, value)
        return True

    @external
    def transfer(self, sender: bytes, to: bytes, value: int) -> bool:
        self._transfer(sender, to, value)
        return True

    @external
    def transfer_from(self, sender: bytes, owner: bytes, to: bytes, value: int) -> bool:
        allowed = self.allowance(owner, sender)
        if allowed != UINT256_MAX:
            if allowed < value:
                raise InsufficientAllowance(
                    f"{self.symbol}: allowance {allowed} < {value} for {format_address(sender)}"
                )
            self._approve(owner, sender, allowed - value)
        self._transfer(owner, to, value)
        return True

    def _approve(self, owner: bytes, spender: bytes, value: int):
        self.ledger.state.put_int(self._key('allowance', owner, spender), value)
        self._emit('Approval', owner=owner, spender=spender, value=value)

    def _set_balance(self, owner: bytes, value: int):
        self.ledger.state.put_int(self._key('balance', owner), value)

    def _transfer(self, owner: bytes, to: bytes, value: int):
        if value < 0:
            raise ValueError("Negative transfer amount")
        balance = self.balance_of(owner)
        if balance < value:
            raise InsufficientBalance(
                f"{self.symbol}: balance {balance} < {value} for {format_address(owner)}"
            )
        self._set_balance(owner, balance - value)
        delivered = self._deliver(owner, to, value)
        self._emit('Transfer', sender=owner, to=to, value=delivered)
        self._after_transfer(owner, to, delivered)

    def _deliver(self, owner: bytes, to: bytes, value: int) -> int:
        """Credit the recipient; returns the amount actually delivered."""
        self._set_balance(to, self.balance_of(to) + value)
        return value

    def _after_transfer(self, owner: bytes, to: bytes, value: int):
        """Hook run after every transfer, once balances have settled."""

    def _mint(self, to: bytes, value: int):
        self.ledger.state.put_int(self._key('total_supply'), self.total_supply() + value)
        self._set_balance(to, self.balance_of(to) + value)
        self._emit('Transfer', sender=ZERO_ADDRESS, to=to, value=value)

    def _burn(self, owner: bytes, value: int):
        balance = self.balance_of(owner)
        if balance < value:
            raise InsufficientBalance(f"{self.symbol}: burn amount exceeds balance")
        self._set_balance(owner, balance - value)
        self.ledger.state.put_int(self._key('total_supply'), self.total_supply() - value)
        self._emit('Transfer', sender=owner, to=ZERO_ADDRESS, value=value)


class Token(ERC20):
    """ERC20 with an owner-only mint."""

    INIT_CODE = b'metaswap.erc20.Token/v1'

    def constructor(self, name: str, symbol: str, decimals: int = 18, owner: bytes = ZERO_ADDRESS):
        super().constructor(name, symbol, decimals)
        self.ledger.state.put_obj(self._key('owner'), owner)

    def owner(self) -> bytes:
        return self.ledger.state.get_obj(self._key('owner'))

    @external
    def mint(self, sender: bytes, to: bytes, value: int) -> bool:
        if sender != self.owner():
            raise Unauthorized(f"{self.symbol}: caller is not the owner")
        self._mint(to, value)
        return True


class FeeOnTransferToken(Token):
    """Burns `fee_bps` basis points of every transfer."""

    INIT_CODE = b'metaswap.erc20.FeeOnTransferToken/v1'

    def constructor(self, name: str, symbol: str, decimals: int = 18,
                    owner: bytes = ZERO_ADDRESS, fee_bps: int = 100):
        super().constructor(name, symbol, decimals, owner)
        self.ledger.state.put_int(self._key('fee_bps'), fee_bps)

    def fee_bps(self) -> int:
        return self.ledger.state.get_int(self._key('fee_bps'))

    def _deliver(self, owner: bytes, to: bytes, value: int) -> int:
        fee = value * self.fee_bps() // 10_000
        delivered = value - fee
        self._set_balance(to, self.balance_of(to) + delivered)
        if fee:
            self.ledger.state.put_int(self._key('total_supply'), self.total_supply() - fee)
        return delivered


class ShareToken(ERC20):
    """ERC20 whose approvals can also be granted by a signed permit."""

    INIT_CODE = b'metaswap.erc20.ShareToken/v1'

    def nonces(self, owner: bytes) -> int:
        return self.ledger.state.get_int(self._key('permit_nonce', owner))

    def domain_separator(self) -> bytes:
        return domain_separator(self.name, self.ledger.chain_id, self.address)

    def permit_digest(self, owner: bytes, spender: bytes, value: int, nonce: int, deadline: int) -> bytes:
        struct_hash = hash_struct(PERMIT_TYPE, [owner, spender, value, nonce, deadline])
        return typed_digest(self.domain_separator(), struct_hash)

    @external
    def permit(self, sender: bytes, owner: bytes, spender: bytes, value: int,
               deadline: int, signature: Signature) -> None:
        if self.now > deadline:
            raise Expired(f"{self.symbol}: permit expired")
        nonce = self.nonces(owner)
        digest = self.permit_digest(owner, spender, value, nonce, deadline)
        signer = recover_signer(digest, signature)
        if signer is None or signer != owner:
            raise InvalidSignature(f"{self.symbol}: invalid permit signature")
        self.ledger.state.put_int(self._key('permit_nonce', owner), nonce + 1)
        self._approve(owner, spender, value)
