"""
Configuration for the exchange: execution host, relay fee policy, router
mode, state store and metrics endpoint. Stored as one JSON document with a
section per dataclass below.
"""
import json
import os
from typing import Optional
from dataclasses import dataclass, asdict, fields


@dataclass
class ChainConfig:
    chain_id: int = 1
    genesis_timestamp: Optional[int] = None  # None: wall clock at startup


@dataclass
class FeeConfig:
    """Relay fee overheads, in fee units, charged on top of the relay's offset."""
    base_overhead_units: int = 21_000
    transfer_overhead_units: int = 30_000


@dataclass
class RouterConfig:
    meta_enabled: bool = True  # relay-only dispatch
    domain_name: str = "MetaSwap Router"


@dataclass
class DatabaseConfig:
    path: str = "./metaswap_data"
    write_buffer_size: int = 64 * 1024 * 1024
    max_open_files: int = 1000


@dataclass
class MonitoringConfig:
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    chain: ChainConfig
    fees: FeeConfig
    router: RouterConfig
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        return cls.from_dict({})

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build a config from its dict form; absent sections and keys keep their defaults."""
        sections = {}
        for section in fields(cls):
            sections[section.name] = section.type(**data.get(section.name, {}))
        config = cls(**sections)
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_file(self, path: str):
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        return {section.name: asdict(getattr(self, section.name)) for section in fields(self)}

    def validate(self):
        """
        Raises:
            ValueError: on a setting the exchange cannot run with
        """
        if self.chain.chain_id <= 0:
            raise ValueError(f"chain_id must be positive, got {self.chain.chain_id}")
        if self.fees.base_overhead_units < 0 or self.fees.transfer_overhead_units < 0:
            raise ValueError("Fee overheads cannot be negative")
        if not self.router.domain_name:
            raise ValueError("Router domain name is required")
        if not 0 < self.monitoring.port < 65536:
            raise ValueError(f"Invalid monitoring port {self.monitoring.port}")
