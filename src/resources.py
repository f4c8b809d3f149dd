"""Random resource collections for infrastructure tests.

A collection bundles the prerequisites a fixture needs before it can be
applied: a region, a registered EC2 key pair, an AMI and a unique id used to
name instances. Collections are created atomically and destroyed exactly once.

Typical use:

    with random_resource_collection() as rand:
        options = new_apply_options()
        options.vars = rand.terraform_vars()
        ...
"""

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from cloud import Ec2Cloud, get_random_region
from config import HarnessConfig, load_harness_config
from errors import ProvisioningError, TeardownError
from keys import KeyPair, UniqueIdGenerator, generate_rsa_key_pair

logger = logging.getLogger(__name__)


@dataclass
class Ec2KeyPair:
    """A key pair registered in EC2 under name in region."""
    name: str
    region: str
    key_pair: KeyPair
    key_pair_id: str = ''

    @property
    def public_key(self) -> str:
        return self.key_pair.public_key

    @property
    def private_key(self) -> str:
        return self.key_pair.private_key


@dataclass
class RandomResourceCollection:
    """Ephemeral cloud prerequisites owned by a single test."""
    aws_region: str
    unique_id: str
    key_pair: Ec2KeyPair
    ami_id: str
    cloud: Ec2Cloud = field(repr=False)
    destroyed: bool = False
    teardown_error: Optional[TeardownError] = field(default=None, repr=False)

    def terraform_vars(self) -> dict[str, str]:
        """Variables the bundled fixtures expect."""
        return {
            'aws_region': self.aws_region,
            'ec2_key_name': self.key_pair.name,
            'ec2_instance_name': self.unique_id,
            'ec2_image': self.ami_id,
        }

    def destroy_resources(self) -> None:
        """Delete the registered key pair. Safe to call more than once."""
        if self.destroyed:
            logger.debug(f"Resources for {self.unique_id} already destroyed")
            return
        try:
            self.cloud.delete_ec2_key_pair(self.aws_region, self.key_pair.name)
        except Exception as e:
            raise TeardownError(
                f"Failed to delete key pair {self.key_pair.name} in {self.aws_region}: {e}"
            ) from e
        self.destroyed = True


def create_random_resource_collection(
    cloud: Optional[Ec2Cloud] = None,
    id_generator: Optional[UniqueIdGenerator] = None,
    config: Optional[HarnessConfig] = None,
    rng: Optional[random.Random] = None,
) -> RandomResourceCollection:
    """Select a region, register a fresh key pair and resolve an AMI.

    Raises ProvisioningError if any step fails. A key pair registered before
    the failure is deleted first, so nothing is left behind.
    """
    config = config or load_harness_config()
    cloud = cloud or Ec2Cloud()
    id_generator = id_generator or UniqueIdGenerator(length=config.unique_id_length, rng=rng)

    try:
        region = get_random_region(config.candidate_regions, rng)
        unique_id = id_generator()
        key_pair = generate_rsa_key_pair(config.key_size)
    except Exception as e:
        raise ProvisioningError(f"Failed to prepare resource collection: {e}") from e

    key_name = f'{config.key_name_prefix}{unique_id}'
    try:
        key_pair_id = cloud.create_ec2_key_pair(region, key_name, key_pair.public_key)
    except Exception as e:
        raise ProvisioningError(f"Failed to create key pair {key_name} in {region}: {e}") from e

    try:
        ami_id = cloud.get_ami_id(region, config.ami_owner, config.ami_name_filter)
    except Exception as e:
        logger.warning(f"AMI lookup failed in {region}, rolling back key pair {key_name}")
        try:
            cloud.delete_ec2_key_pair(region, key_name)
        except Exception as cleanup_error:
            logger.error(f"Rollback of key pair {key_name} in {region} failed: {cleanup_error}")
        raise ProvisioningError(f"Failed to resolve AMI in {region}: {e}") from e

    logger.info(f"Created resource collection {unique_id} in {region} (ami: {ami_id})")
    return RandomResourceCollection(
        aws_region=region,
        unique_id=unique_id,
        key_pair=Ec2KeyPair(name=key_name, region=region, key_pair=key_pair, key_pair_id=key_pair_id),
        ami_id=ami_id,
        cloud=cloud,
    )


@contextmanager
def random_resource_collection(
    cloud: Optional[Ec2Cloud] = None,
    id_generator: Optional[UniqueIdGenerator] = None,
    config: Optional[HarnessConfig] = None,
    rng: Optional[random.Random] = None,
) -> Iterator[RandomResourceCollection]:
    """Create a collection and release it on every exit path.

    Teardown failures are logged and stored on the collection rather than
    raised, so they never mask the body's own outcome.
    """
    collection = create_random_resource_collection(
        cloud=cloud, id_generator=id_generator, config=config, rng=rng
    )
    try:
        yield collection
    finally:
        try:
            collection.destroy_resources()
        except TeardownError as e:
            logger.error(f"Teardown of resource collection {collection.unique_id} failed: {e}")
            collection.teardown_error = e
