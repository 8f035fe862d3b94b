"""
Error taxonomy for the exchange and relay.

Every failure raised by a contract call derives from ValidationError. The
immediate subclasses group failures by how callers are expected to treat them.
"""


class ValidationError(Exception):
    """Raised when a contract call is rejected."""


# --- Authorization ---

class AuthorizationError(ValidationError):
    """Bad signature, nonce, deadline or caller."""

class InvalidSignature(AuthorizationError):
    pass

class InvalidNonce(AuthorizationError):
    pass

class Expired(AuthorizationError):
    pass

class UnauthorizedRelayer(AuthorizationError):
    pass

class Unauthorized(AuthorizationError):
    """Caller is not the owner of the contract."""

class Forbidden(AuthorizationError):
    """Caller lacks the role required for a privileged call."""

class DirectCallForbidden(AuthorizationError):
    """Direct call while the router only accepts relayed calls."""


# --- Economic invariants ---

class EconomicInvariantError(ValidationError):
    pass

class KInvariantViolation(EconomicInvariantError):
    pass

class InsufficientAmount(EconomicInvariantError):
    pass

class InconsistentTransfer(InsufficientAmount):
    """Amount actually delivered differs from the quoted amount."""

class InsufficientOutputAmount(EconomicInvariantError):
    pass

class ExcessiveInputAmount(EconomicInvariantError):
    pass

class InsufficientInputAmount(EconomicInvariantError):
    pass

class InsufficientLiquidity(EconomicInvariantError):
    pass

class InsufficientLiquidityMinted(InsufficientLiquidity):
    pass

class InsufficientLiquidityBurned(InsufficientLiquidity):
    pass

class FeeExceedsAuthorization(EconomicInvariantError):
    pass


# --- Integrity ---

class IntegrityError(ValidationError):
    pass

class PayloadMismatch(IntegrityError):
    pass

class SenderMismatch(IntegrityError):
    pass

class InvalidCallData(IntegrityError):
    pass

class InvalidRecipient(IntegrityError):
    """Swap output sent to one of the pair's own tokens."""


# --- Resources ---

class ResourceError(ValidationError):
    pass

class InsufficientBalance(ResourceError):
    pass

class InsufficientAllowance(ResourceError):
    pass


# --- Registry / routing ---

class RegistryError(ValidationError):
    pass

class PairExists(RegistryError):
    pass

class IdenticalAddresses(RegistryError):
    pass

class ZeroAddress(RegistryError):
    pass

class InvalidPath(RegistryError):
    pass


class ReentrantCall(ValidationError):
    """Nested entry into a guarded call sequence."""


class DeploymentError(ValidationError):
    pass
