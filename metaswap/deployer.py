"""
Deployment of the exchange.

1. Preflight: compare the code digests of the contract classes against a
   pinned release manifest and refuse to deploy on any mismatch
2. Deploy the pair registry and router at content-addressed (salted)
   addresses, so every environment gets the same addresses
3. Wire them: authorize the router in the registry, allow the relayer,
   set the fee holder, and hand both contracts to the final owner
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from metaswap.amm_state import PAIR_INIT_CODE_HASH
from metaswap.crypto import create2_address, format_address, generate_hash
from metaswap.errors import DeploymentError
from metaswap.factory import PairRegistry
from metaswap.forwarder import DEFAULT_BASE_OVERHEAD, DEFAULT_TRANSFER_OVERHEAD
from metaswap.router import Router

logger = logging.getLogger(__name__)

FACTORY_SALT = generate_hash(b'metaswap.factory')
ROUTER_SALT = generate_hash(b'metaswap.router')

RELEASE_CONTRACTS = {
    'PairRegistry': PairRegistry,
    'Router': Router,
}


@dataclass
class Deployment:
    registry: PairRegistry
    router: Router

    def to_dict(self) -> dict:
        return {
            'registry': format_address(self.registry.address),
            'router': format_address(self.router.address),
        }


def code_digests() -> dict[str, str]:
    """Hex code digests of every released contract, pair included."""
    digests = {name: cls.code_hash().hex() for name, cls in RELEASE_CONTRACTS.items()}
    digests['ReservePair'] = PAIR_INIT_CODE_HASH.hex()
    return digests


def write_release_manifest(path: str) -> dict[str, str]:
    digests = code_digests()
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(path, 'w') as f:
        json.dump(digests, f, indent=2, sort_keys=True)
    logger.info(f"Release manifest written to {path}")
    return digests


def load_release_manifest(path: str) -> dict[str, str]:
    with open(path, 'r') as f:
        return json.load(f)


def verify_release(expected: dict[str, str]):
    """
    Raises:
        DeploymentError: if any pinned digest is missing or differs
    """
    actual = code_digests()
    mismatched = [
        name for name, digest in actual.items()
        if expected.get(name) != digest
    ]
    if mismatched:
        raise DeploymentError(
            f"Compiled code does not match the release manifest: {', '.join(sorted(mismatched))}"
        )
    logger.info("Release manifest verified")


def expected_addresses(deployer: bytes) -> dict[str, bytes]:
    """Addresses deploy_system() will use for `deployer`, computed offline."""
    return {
        'registry': create2_address(deployer, FACTORY_SALT, PairRegistry.code_hash()),
        'router': create2_address(deployer, ROUTER_SALT, Router.code_hash()),
    }


def deploy_system(ledger, deployer: bytes, owner: Optional[bytes] = None,
                  relayer: Optional[bytes] = None, fee_holder: Optional[bytes] = None,
                  manifest: Optional[dict] = None, config=None) -> Deployment:
    """
    Deploy and wire the registry and router.

    Args:
        ledger: Ledger to deploy into
        deployer: Account that deploys; it administers both contracts until
            ownership moves to `owner`
        owner: Final owner of the router and admin of the registry
        relayer: Relayer to allow on the router
        fee_holder: Recipient of relay fees
        manifest: Pinned code digests; deployment aborts on mismatch
        config: Optional Config supplying router mode and fee overheads
    """
    if manifest is not None:
        verify_release(manifest)

    meta_enabled = config.router.meta_enabled if config is not None else True
    base_overhead = config.fees.base_overhead_units if config is not None else DEFAULT_BASE_OVERHEAD
    transfer_overhead = config.fees.transfer_overhead_units if config is not None else DEFAULT_TRANSFER_OVERHEAD

    with ledger.atomic():
        registry = ledger.deploy(PairRegistry, deployer, deployer, salt=FACTORY_SALT)
        router = ledger.deploy(
            Router, deployer, deployer, registry.address,
            meta_enabled=meta_enabled,
            base_overhead=base_overhead,
            transfer_overhead=transfer_overhead,
            salt=ROUTER_SALT,
        )
        registry.set_router(deployer, router.address)

        if relayer is not None:
            router.set_relayer(deployer, relayer, True)
        if fee_holder is not None:
            router.set_fee_holder(deployer, fee_holder)
        if owner is not None and owner != deployer:
            router.transfer_ownership(deployer, owner)
            registry.set_fee_to_setter(deployer, owner)

    logger.info(
        f"Exchange deployed: registry {format_address(registry.address)}, "
        f"router {format_address(router.address)}"
    )
    return Deployment(registry=registry, router=router)
