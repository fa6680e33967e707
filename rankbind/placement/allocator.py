import logging
from dataclasses import dataclass

import rankbind.placement.mask as masks
import rankbind.utils as utils
from rankbind.errors import ValidationError
from rankbind.placement.context import MaskPolicy

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """
    Where one rank runs: device(s), compute unit subrange and CPU locality.
    """

    local_rank: int
    policy: MaskPolicy
    device_indices: tuple  # Positions in the canonical device table
    identities: tuple  # Device identities, in device order
    cus_per_placement: int = None
    cu_mask: str = None  # e.g., 0:0x0000ffff (mutex only)
    cu_mask_width: int = None
    cu_mask_offset: int = None
    numa_nodes: tuple = ()
    cpu_cores: tuple = ()
    rplaces_per_device: int = None
    utilized_cus: int = None
    warnings: tuple = ()

    @property
    def visible_devices(self) -> str:
        return ",".join(str(identity) for identity in self.identities)

    @property
    def numa_string(self) -> str:
        return utils.format_range(self.numa_nodes)

    @property
    def cpu_string(self) -> str:
        return utils.format_range(self.cpu_cores)

    def to_dict(self):
        result = {
            "local_rank": self.local_rank,
            "policy": self.policy.value,
            "devices": list(self.device_indices),
            "visible_devices": self.visible_devices,
            "cus_per_placement": self.cus_per_placement,
        }
        if self.cu_mask is not None:
            result["cu_mask"] = self.cu_mask
        if self.cu_mask_width is not None:
            result["cu_range"] = [self.cu_mask_offset, self.cu_mask_offset + self.cu_mask_width]
        result["numa_nodes"] = self.numa_string
        result["cpu_cores"] = self.cpu_string
        return result


def merge_locality(devices):
    """
    Union of NUMA nodes and CPU cores over devices, first-seen order.
    """
    numa_nodes = utils.unique(device.numa_node for device in devices)
    cpu_cores = utils.unique(core for device in devices for core in device.cpu_cores)
    return tuple(numa_nodes), tuple(cpu_cores)


def utilized_devices(device_count: int, total_ranks: int) -> int:
    return min(device_count, total_ranks)


def rplaces_per_device(device_count: int, total_ranks: int) -> int:
    """
    How many ranks share each utilized device (ceiling division).
    """
    return -(-total_ranks // utilized_devices(device_count, total_ranks))


def utilized_cus(cu_count: int, rplaces: int) -> int:
    """
    The largest CU count <= cu_count that divides evenly among rplaces ranks.

    Surplus compute units are left unassigned rather than given to some ranks.
    """
    return cu_count - cu_count % rplaces


def allocate(devices, context):
    """
    Compute the placement of one rank. This is a pure function of the device
    table and the rank context: every rank on the node computes it
    independently and the placements fit together without coordination.
    """
    if context.preset_devices and context.is_multi_device:
        raise ValidationError(
            f"A preset device list ({','.join(context.preset_devices)}) cannot be combined "
            f"with multi-device sets of {context.devices_per_set}."
        )
    if context.is_preset:
        return allocate_preset(devices, context)
    if not devices:
        raise ValidationError("There are no devices to place ranks on.")
    if context.is_multi_device:
        return allocate_device_set(devices, context)
    return allocate_single(devices, context)


def allocate_preset(devices, context):
    """
    Echo preset values back verbatim.
    """
    identities = tuple(context.preset_devices or ())
    matched = []
    for identity in identities:
        for position, device in enumerate(devices):
            if device.identity == identity or (identity.isdigit() and device.index == int(identity)):
                matched.append(position)
                break

    # Prefer the width of the preset mask, then the preset device
    cus = None
    mask = masks.parse_cu_mask(context.preset_cu_mask)
    if mask:
        cus = bin(mask).count("1")
    elif devices:
        cus = devices[matched[0] if matched else 0].cu_count

    numa_nodes, cpu_cores = merge_locality([devices[i] for i in matched])
    return Placement(
        local_rank=context.local_rank,
        policy=MaskPolicy.PRESET,
        device_indices=tuple(matched),
        identities=identities,
        cus_per_placement=cus,
        cu_mask=context.preset_cu_mask or None,
        numa_nodes=numa_nodes,
        cpu_cores=cpu_cores,
    )


def allocate_single(devices, context):
    """
    Place a rank on one device, subdividing its compute units under mutex.
    """
    count = len(devices)
    total = context.total_local_ranks
    rank = context.local_rank
    policy = context.mask_policy
    rplaces = rplaces_per_device(count, total)

    # Mutex keeps blocks of rplaces ranks together so their masks tile the device
    if policy == MaskPolicy.MUTEX:
        position = (rank // rplaces + context.device_bias) % count
    else:
        position = (rank + context.device_bias) % count
    device = devices[position]

    budget = count * device.cu_count
    if total > budget:
        raise ValidationError(
            f"{total} local ranks exceed the {budget} compute units available "
            f"({count} device(s) x {device.cu_count} CUs)."
        )

    numa_nodes, cpu_cores = merge_locality([device])
    if policy != MaskPolicy.MUTEX:
        return Placement(
            local_rank=rank,
            policy=policy,
            device_indices=(position,),
            identities=(device.identity,),
            cus_per_placement=device.cu_count,
            numa_nodes=numa_nodes,
            cpu_cores=cpu_cores,
            rplaces_per_device=rplaces,
            utilized_cus=device.cu_count,
        )

    used = utilized_cus(device.cu_count, rplaces)
    cus = used // rplaces

    # A whole device needs no mask
    mask = width = offset = None
    if cus != device.cu_count:
        width = cus
        offset = (rank % rplaces) * width
        mask = masks.render_cu_mask(masks.cu_mask(width, offset), used)

    return Placement(
        local_rank=rank,
        policy=policy,
        device_indices=(position,),
        identities=(device.identity,),
        cus_per_placement=cus,
        cu_mask=mask,
        cu_mask_width=width,
        cu_mask_offset=offset,
        numa_nodes=numa_nodes,
        cpu_cores=cpu_cores,
        rplaces_per_device=rplaces,
        utilized_cus=used,
    )


def allocate_device_set(devices, context):
    """
    Place a rank on a contiguous (wrapping) run of whole devices.
    """
    count = len(devices)
    per_set = context.devices_per_set
    total = context.total_local_ranks
    rank = context.local_rank

    if per_set < 1:
        raise ValidationError(f"Devices per set must be at least 1, got {per_set}.")
    if per_set > count:
        raise ValidationError(
            f"Devices per set ({per_set}) exceeds the {count} device(s) on this node."
        )

    start = (rank * per_set) % count
    positions = tuple((start + i) % count for i in range(per_set))
    assigned = [devices[i] for i in positions]

    warnings = []
    if rank == 0 and total * per_set > count:
        warnings.append(
            f"{total} ranks x {per_set} devices per set exceeds the {count} devices on this node, device sets will overlap."
        )

    numa_nodes, cpu_cores = merge_locality(assigned)
    return Placement(
        local_rank=rank,
        policy=MaskPolicy.NOMASK,
        device_indices=positions,
        identities=tuple(device.identity for device in assigned),
        cus_per_placement=sum(device.cu_count for device in assigned),
        numa_nodes=numa_nodes,
        cpu_cores=cpu_cores,
        warnings=tuple(warnings),
    )
