# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="metaswap",
    version="0.1.0",
    packages=find_namespace_packages(include=["metaswap", "metaswap.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",           # state and call data encoding
        "cryptography",      # ECDSA signatures
        "pycryptodome",      # keccak
        "plyvel",            # LevelDB state store
        "prometheus_client", # metrics
        "psutil",            # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "metaswap=metaswap.cli:main",
        ],
    },
)
