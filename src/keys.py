"""Unique identifiers and SSH key pairs for test resources."""

import random
import string
from dataclasses import dataclass, field
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

BASE62_CHARS = string.digits + string.ascii_uppercase + string.ascii_lowercase


class UniqueIdGenerator:
    """Generates short random tokens for naming test resources.

    Each test holds its own generator; pass a seeded random.Random for
    reproducible ids. Collisions between concurrent runs are only as unlikely
    as the id length makes them.
    """

    def __init__(self, length: int = 6, rng: Optional[random.Random] = None):
        if length <= 0:
            raise ValueError(f"length must be positive, got {length}")
        self.length = length
        self.rng = rng or random.SystemRandom()

    def __call__(self) -> str:
        return ''.join(self.rng.choice(BASE62_CHARS) for _ in range(self.length))


@dataclass
class KeyPair:
    """An RSA key pair held in memory only.

    public_key is in OpenSSH format (what EC2 import_key_pair expects),
    private_key is an unencrypted PEM.
    """
    public_key: str
    private_key: str = field(repr=False)


def generate_rsa_key_pair(bits: int = 2048) -> KeyPair:
    """Generate an RSA key pair of the given size."""
    private = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    private_pem = private.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_openssh = private.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    return KeyPair(public_key=public_openssh.decode(), private_key=private_pem.decode())
