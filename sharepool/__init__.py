"""Building blocks for a decentralized mining pool node: hashes, difficulties, wallets and stratum."""

__version__ = "0.1.0"