"""
Router: the user-facing entry point for liquidity and swaps.

Every action is deadline-gated, bound to its `user`, and protected against
fee-on-transfer tokens by measuring what the receiving side actually got.
Actions arrive either directly (when the dispatch mode allows it) or
relayed through execute_meta_tx, inherited from Forwarder.
"""
import logging
from enum import Enum

from metaswap import amm_state
from metaswap.actions import (
    ADD_LIQUIDITY_SELECTOR,
    REMOVE_LIQUIDITY_WITH_PERMIT_SELECTOR,
    SWAP_EXACT_TOKENS_FOR_TOKENS_SELECTOR,
    SWAP_TOKENS_FOR_EXACT_TOKENS_SELECTOR,
    AddLiquidity,
    RemoveLiquidity,
    Swap,
)
from metaswap.crypto import ZERO_ADDRESS, Signature, format_address
from metaswap.errors import (
    DirectCallForbidden,
    ExcessiveInputAmount,
    Expired,
    InconsistentTransfer,
    InsufficientAmount,
    InsufficientOutputAmount,
    InvalidCallData,
    InvalidPath,
    SenderMismatch,
)
from metaswap.forwarder import DEFAULT_BASE_OVERHEAD, DEFAULT_TRANSFER_OVERHEAD, Forwarder
from metaswap.ledger import ReentrancyGuard, external

logger = logging.getLogger(__name__)


class DispatchMode(Enum):
    DIRECT = 'direct'
    RELAY_ONLY = 'relay_only'


class Router(Forwarder):
    INIT_CODE = b'metaswap.router.Router/v1'

    def __init__(self, ledger, address):
        super().__init__(ledger, address)
        self._guard = ReentrancyGuard('Router')

    def constructor(self, owner: bytes, factory: bytes, meta_enabled: bool = True,
                    base_overhead: int = DEFAULT_BASE_OVERHEAD,
                    transfer_overhead: int = DEFAULT_TRANSFER_OVERHEAD):
        super().constructor(owner, base_overhead, transfer_overhead)
        self.ledger.state.put(self._key('factory'), factory)
        mode = DispatchMode.RELAY_ONLY if meta_enabled else DispatchMode.DIRECT
        self.ledger.state.put_obj(self._key('mode'), mode.value)

    # --- views ---

    def factory(self) -> bytes:
        return self.ledger.state.get(self._key('factory'))

    def dispatch_mode(self) -> DispatchMode:
        return DispatchMode(self.ledger.state.get_obj(self._key('mode')))

    @property
    def meta_enabled(self) -> bool:
        return self.dispatch_mode() is DispatchMode.RELAY_ONLY

    def pair_for(self, token_a: bytes, token_b: bytes) -> bytes:
        pair = self._registry().get_pair(token_a, token_b)
        if pair == ZERO_ADDRESS:
            raise InvalidPath(f"No pair for {format_address(token_a)}/{format_address(token_b)}")
        return pair

    def get_reserves(self, token_a: bytes, token_b: bytes) -> tuple[int, int]:
        """Reserves ordered as (token_a, token_b); zero for a pair that does not exist yet."""
        token0, _ = amm_state.sort_tokens(token_a, token_b)
        pair = self._registry().get_pair(token_a, token_b)
        if pair == ZERO_ADDRESS:
            return 0, 0
        reserve0, reserve1, _ = self._contract(pair).get_reserves()
        return (reserve0, reserve1) if token_a == token0 else (reserve1, reserve0)

    def quote(self, amount_a: int, reserve_a: int, reserve_b: int) -> int:
        return amm_state.quote(amount_a, reserve_a, reserve_b)

    def get_amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        return amm_state.get_amount_out(amount_in, reserve_in, reserve_out)

    def get_amount_in(self, amount_out: int, reserve_in: int, reserve_out: int) -> int:
        return amm_state.get_amount_in(amount_out, reserve_in, reserve_out)

    def get_amounts_out(self, amount_in: int, path: list[bytes]) -> list[int]:
        return amm_state.get_amounts_out(amount_in, self._path_reserves(path))

    def get_amounts_in(self, amount_out: int, path: list[bytes]) -> list[int]:
        return amm_state.get_amounts_in(amount_out, self._path_reserves(path))

    # --- administration ---

    @external
    def meta_switch(self, sender: bytes) -> DispatchMode:
        """Toggle between relay-only and direct dispatch."""
        mode = DispatchMode.DIRECT if self.meta_enabled else DispatchMode.RELAY_ONLY
        self.set_dispatch_mode(sender, mode)
        return mode

    @external
    def set_dispatch_mode(self, sender: bytes, mode: DispatchMode):
        self._only_owner(sender)
        self.ledger.state.put_obj(self._key('mode'), mode.value)
        self._emit('MetaModeChanged', mode=mode.value)
        logger.info(f"Router dispatch mode set to {mode.value}")

    # --- direct entry points ---

    @external
    def add_liquidity(self, sender: bytes, action: AddLiquidity) -> tuple[int, int, int]:
        with self._guard:
            self._require_direct()
            return self._add_liquidity(sender, action)

    @external
    def remove_liquidity_with_permit(self, sender: bytes, action: RemoveLiquidity,
                                     permit: Signature) -> tuple[int, int]:
        with self._guard:
            self._require_direct()
            return self._remove_liquidity_with_permit(sender, action, permit)

    @external
    def swap_exact_tokens_for_tokens(self, sender: bytes, action: Swap) -> list[int]:
        with self._guard:
            self._require_direct()
            return self._swap_exact_tokens_for_tokens(sender, action)

    @external
    def swap_tokens_for_exact_tokens(self, sender: bytes, action: Swap) -> list[int]:
        with self._guard:
            self._require_direct()
            return self._swap_tokens_for_exact_tokens(sender, action)

    # --- relayed dispatch ---

    def _parse(self, selector: bytes, payload: dict):
        try:
            if selector == ADD_LIQUIDITY_SELECTOR:
                return AddLiquidity.from_dict(payload['action']), None
            if selector in (SWAP_EXACT_TOKENS_FOR_TOKENS_SELECTOR, SWAP_TOKENS_FOR_EXACT_TOKENS_SELECTOR):
                return Swap.from_dict(payload['action']), None
            if selector == REMOVE_LIQUIDITY_WITH_PERMIT_SELECTOR:
                return (
                    RemoveLiquidity.from_dict(payload['action']),
                    Signature.from_dict(payload['permit']),
                )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidCallData(f"Malformed action: {e}") from e
        raise InvalidCallData("Invalid function signature")

    def _hash_payload(self, selector: bytes, payload: dict) -> bytes:
        action, permit = self._parse(selector, payload)
        if isinstance(action, RemoveLiquidity):
            return action.hash(permit)
        return action.hash()

    def _dispatch(self, signer: bytes, selector: bytes, payload: dict):
        action, permit = self._parse(selector, payload)
        with self._guard:
            if selector == ADD_LIQUIDITY_SELECTOR:
                return self._add_liquidity(signer, action)
            if selector == SWAP_EXACT_TOKENS_FOR_TOKENS_SELECTOR:
                return self._swap_exact_tokens_for_tokens(signer, action)
            if selector == SWAP_TOKENS_FOR_EXACT_TOKENS_SELECTOR:
                return self._swap_tokens_for_exact_tokens(signer, action)
            return self._remove_liquidity_with_permit(signer, action, permit)

    # --- actions ---

    def _add_liquidity(self, sender: bytes, a: AddLiquidity) -> tuple[int, int, int]:
        self._ensure(a.deadline)
        self._check_sender(sender, a.user)

        registry = self._registry()
        if registry.get_pair(a.token_a, a.token_b) == ZERO_ADDRESS:
            registry.create_pair(self.address, a.token_a, a.token_b)

        amount_a, amount_b = self._optimal_amounts(a)
        pair = self._contract(registry.get_pair(a.token_a, a.token_b))
        self._transfer_checked(a.token_a, a.user, pair.address, amount_a)
        self._transfer_checked(a.token_b, a.user, pair.address, amount_b)
        liquidity = pair.mint(self.address, a.user)
        return amount_a, amount_b, liquidity

    def _optimal_amounts(self, a: AddLiquidity) -> tuple[int, int]:
        reserve_a, reserve_b = self.get_reserves(a.token_a, a.token_b)
        if reserve_a == 0 and reserve_b == 0:
            return a.amount_a_desired, a.amount_b_desired

        amount_b_optimal = amm_state.quote(a.amount_a_desired, reserve_a, reserve_b)
        if amount_b_optimal <= a.amount_b_desired:
            if amount_b_optimal < a.amount_b_min:
                raise InsufficientAmount("Router: INSUFFICIENT_B_AMOUNT")
            return a.amount_a_desired, amount_b_optimal

        amount_a_optimal = amm_state.quote(a.amount_b_desired, reserve_b, reserve_a)
        if amount_a_optimal < a.amount_a_min:
            raise InsufficientAmount("Router: INSUFFICIENT_A_AMOUNT")
        return amount_a_optimal, a.amount_b_desired

    def _remove_liquidity_with_permit(self, sender: bytes, r: RemoveLiquidity,
                                      permit: Signature) -> tuple[int, int]:
        self._ensure(r.deadline)
        self._check_sender(sender, r.user)

        pair = self._contract(self.pair_for(r.token_a, r.token_b))
        pair.permit(self.address, r.user, self.address, r.liquidity, r.deadline, permit)
        pair.transfer_from(self.address, r.user, pair.address, r.liquidity)
        amount0, amount1 = pair.burn(self.address, r.user)

        token0, _ = amm_state.sort_tokens(r.token_a, r.token_b)
        amount_a, amount_b = (amount0, amount1) if r.token_a == token0 else (amount1, amount0)
        if amount_a < r.amount_a_min:
            raise InsufficientAmount("Router: INSUFFICIENT_A_AMOUNT")
        if amount_b < r.amount_b_min:
            raise InsufficientAmount("Router: INSUFFICIENT_B_AMOUNT")
        return amount_a, amount_b

    def _swap_exact_tokens_for_tokens(self, sender: bytes, s: Swap) -> list[int]:
        self._ensure(s.deadline)
        self._check_sender(sender, s.user)

        amounts = self.get_amounts_out(s.amount0, s.path)
        if amounts[-1] < s.amount1:
            raise InsufficientOutputAmount("Router: INSUFFICIENT_OUTPUT_AMOUNT")
        self._contract(s.path[0]).transfer_from(
            self.address, s.user, self.pair_for(s.path[0], s.path[1]), amounts[0]
        )
        self._swap(amounts, s.path, s.user)
        return amounts

    def _swap_tokens_for_exact_tokens(self, sender: bytes, s: Swap) -> list[int]:
        self._ensure(s.deadline)
        self._check_sender(sender, s.user)

        amounts = self.get_amounts_in(s.amount0, s.path)
        if amounts[0] > s.amount1:
            raise ExcessiveInputAmount("Router: EXCESSIVE_INPUT_AMOUNT")
        self._contract(s.path[0]).transfer_from(
            self.address, s.user, self.pair_for(s.path[0], s.path[1]), amounts[0]
        )
        self._swap(amounts, s.path, s.user)
        return amounts

    def _swap(self, amounts: list[int], path: list[bytes], to: bytes):
        """Run each hop, sending its output straight to the next pair."""
        for i in range(len(path) - 1):
            token_in, token_out = path[i], path[i + 1]
            token0, _ = amm_state.sort_tokens(token_in, token_out)
            amount_out = amounts[i + 1]
            amount0_out, amount1_out = (0, amount_out) if token_in == token0 else (amount_out, 0)
            recipient = self.pair_for(token_out, path[i + 2]) if i < len(path) - 2 else to

            output = self._contract(token_out)
            before = output.balance_of(recipient)
            self._contract(self.pair_for(token_in, token_out)).swap(
                self.address, amount0_out, amount1_out, recipient
            )
            if output.balance_of(recipient) - before != amount_out:
                raise InconsistentTransfer("Router: Transfer amount does not match output amount")

    # --- helpers ---

    def _registry(self):
        return self._contract(self.factory())

    def _path_reserves(self, path: list[bytes]) -> list[tuple[int, int]]:
        if len(path) < 2:
            raise InvalidPath("Router: INVALID_PATH")
        return [self.get_reserves(path[i], path[i + 1]) for i in range(len(path) - 1)]

    def _transfer_checked(self, token: bytes, owner: bytes, to: bytes, amount: int):
        contract = self._contract(token)
        before = contract.balance_of(to)
        contract.transfer_from(self.address, owner, to, amount)
        if contract.balance_of(to) - before != amount:
            raise InconsistentTransfer("Router: Transfer amount does not match input amount")

    def _ensure(self, deadline: int):
        if self.now > deadline:
            raise Expired("Router: EXPIRED")

    def _check_sender(self, sender: bytes, user: bytes):
        if sender != user:
            raise SenderMismatch("Router: Sender does not match token recipient")

    def _require_direct(self):
        if self.dispatch_mode() is DispatchMode.RELAY_ONLY:
            raise DirectCallForbidden("Router: FORBIDDEN! Meta only")
