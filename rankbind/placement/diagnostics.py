from dataclasses import asdict, dataclass

from rankbind.placement.allocator import rplaces_per_device, utilized_cus, utilized_devices
from rankbind.placement.context import MaskPolicy


@dataclass
class Diagnostics:
    """
    Node-wide utilization summary, printed by local rank 0 in verbose mode.
    """

    devices_found: int
    devices_utilized: int
    devices_wasted: int
    ranks: int
    rplaces_per_device: int
    cus_per_device: int
    cus_per_placement: int
    cus_utilized: int
    cus_wasted: int
    utilization: float  # Percent of the node's compute units

    def to_dict(self):
        return asdict(self)


def summarize(devices, context, placement) -> Diagnostics:
    """
    Summarize how much of the node the ranks use.

    The accounting assumes every device has as many compute units as the
    device rank 0 lands on. Nodes with mixed devices are reported inexactly.
    """
    count = len(devices)
    ranks = context.total_local_ranks
    used_devices = utilized_devices(count, ranks)
    rplaces = rplaces_per_device(count, ranks)

    cus_per_device = 0
    if placement.device_indices:
        cus_per_device = devices[placement.device_indices[0]].cu_count
    elif devices:
        cus_per_device = devices[0].cu_count

    # Multi-device sets use whole devices
    if context.is_multi_device:
        used_devices = min(count, ranks * context.devices_per_set)
        used_per_device = cus_per_device
    elif placement.policy == MaskPolicy.MUTEX:
        used_per_device = utilized_cus(cus_per_device, rplaces)
    else:
        used_per_device = cus_per_device

    total_cus = count * cus_per_device
    cus_utilized = used_devices * used_per_device
    utilization = round(100.0 * cus_utilized / total_cus, 1) if total_cus else 0.0

    return Diagnostics(
        devices_found=count,
        devices_utilized=used_devices,
        devices_wasted=count - used_devices,
        ranks=ranks,
        rplaces_per_device=rplaces,
        cus_per_device=cus_per_device,
        cus_per_placement=placement.cus_per_placement,
        cus_utilized=cus_utilized,
        cus_wasted=total_cus - cus_utilized,
        utilization=utilization,
    )
