"""AWS EC2 operations used to prepare test resources."""

import logging
import random
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from errors import CloudError

logger = logging.getLogger(__name__)

KEY_PAIR_NOT_FOUND = 'InvalidKeyPair.NotFound'


def get_random_region(regions: list[str], rng: Optional[random.Random] = None) -> str:
    """Pick a region from the given pool."""
    if not regions:
        raise CloudError("Region pool is empty")
    return (rng or random.SystemRandom()).choice(list(regions))


def error_code(error: ClientError) -> str:
    """Extract the AWS error code from a ClientError."""
    return error.response.get('Error', {}).get('Code', '')


class Ec2Cloud:
    """Thin wrapper over per-region EC2 clients.

    Each instance owns its own boto3 session; create one per test rather
    than sharing across threads.
    """

    def __init__(self, session: Optional[boto3.session.Session] = None):
        self.session = session or boto3.session.Session()
        self._clients: dict = {}

    def client(self, region: str):
        """Return the EC2 client for a region, creating it on first use."""
        if region not in self._clients:
            self._clients[region] = self.session.client('ec2', region_name=region)
        return self._clients[region]

    def create_ec2_key_pair(self, region: str, name: str, public_key: str) -> str:
        """Import a public key as an EC2 key pair. Returns the key pair id."""
        logger.info(f"Creating EC2 key pair {name} in {region}...")
        response = self.client(region).import_key_pair(
            KeyName=name,
            PublicKeyMaterial=public_key.encode(),
        )
        # Older API versions return only the fingerprint
        return response.get('KeyPairId') or response.get('KeyFingerprint', '')

    def delete_ec2_key_pair(self, region: str, name: str) -> bool:
        """Delete an EC2 key pair.

        Returns False when the key pair was already absent.
        """
        logger.info(f"Deleting EC2 key pair {name} in {region}...")
        try:
            self.client(region).delete_key_pair(KeyName=name)
        except ClientError as e:
            if error_code(e) == KEY_PAIR_NOT_FOUND:
                logger.debug(f"Key pair {name} already absent in {region}")
                return False
            raise
        return True

    def get_ami_id(self, region: str, owner: str, name_filter: str) -> str:
        """Return the newest available image matching owner and name filter."""
        response = self.client(region).describe_images(
            Owners=[owner],
            Filters=[
                {'Name': 'name', 'Values': [name_filter]},
                {'Name': 'state', 'Values': ['available']},
            ],
        )
        images = response.get('Images', [])
        if not images:
            raise CloudError(f"No AMI matching {name_filter} (owner {owner}) in {region}")
        newest = max(images, key=lambda image: image.get('CreationDate', ''))
        logger.debug(f"Resolved AMI {newest['ImageId']} ({newest.get('Name', '?')}) in {region}")
        return newest['ImageId']
