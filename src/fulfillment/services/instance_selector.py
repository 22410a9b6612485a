"""Choice of the acquisition instance that services a request."""

from collections.abc import Sequence

from loguru import logger

from fulfillment.errors import NoInstancesConfigured
from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.state import ServiceType


def candidate_instances(
    instances: Sequence[AcquisitionInstance],
    is_4k: bool,
    service_type: ServiceType,
) -> list[AcquisitionInstance]:
    """
    Instances eligible for a request, in preference order.

    Instances whose high-resolution flag matches the request come first. When
    none match, every configured instance is eligible: a working profile of the
    wrong tier is preferred over failing the request.

    Raises:
        NoInstancesConfigured: If no instance of `service_type` exists.
    """

    if not instances:
        raise NoInstancesConfigured(service_type.value)

    matching = [instance for instance in instances if instance.is_4k == is_4k]

    if not matching:
        logger.warning(
            f"No {service_type.value} instance matches is_4k={is_4k}, "
            f"falling back to all {len(instances)} configured instance(s)"
        )
        return list(instances)

    return matching


def select_instance(
    instances: Sequence[AcquisitionInstance],
    is_4k: bool,
    service_type: ServiceType,
) -> AcquisitionInstance:
    """First eligible instance; see `candidate_instances`."""

    instance = candidate_instances(instances, is_4k, service_type)[0]

    logger.debug(
        f"Using {service_type.value} instance {instance.name} "
        f"(is_4k={instance.is_4k}, root={instance.root_folder_path}, profile={instance.quality_profile})"
    )

    return instance
