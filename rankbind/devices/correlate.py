import logging
from collections import Counter

from rankbind.devices.device import GpuDevice
from rankbind.errors import CorrelationError

log = logging.getLogger(__name__)


def correlate(descriptors, records) -> tuple:
    """
    Join bus descriptors against listing records into the canonical device table.

    The table keeps bus order. A descriptor joins on its unique id when it has
    one and no two listing records share it. Otherwise it joins on PCI address,
    and the row takes the listing record's ordinal as its identity, since the
    hardware id is missing or ambiguous (e.g., partitioned devices).

    A descriptor with a usable id that no visible listing record reports is
    not dropped on that key alone: it gets a second chance on PCI address,
    and is only dropped when that also finds nothing.
    """
    # Duplicates are counted over every GPU record, not just the visible ones
    uid_counts = Counter(record.uid for record in records if record.uid)
    candidates = [record for record in records if record.visible]
    joined = set()

    table = []
    for descriptor in descriptors:
        uid = descriptor.uid
        match = None
        key = "identity"
        if uid and uid_counts[uid] <= 1:
            match = next(
                (r for r in candidates if r.uid == uid and r.index not in joined), None
            )
            identity = match.unique_id if match else None

        # No usable id, or the listing did not report it for this device
        if match is None:
            key = "pci"
            address = descriptor.pci_address.lower()
            match = next(
                (
                    r
                    for r in candidates
                    if r.pci_address and r.pci_address.lower() == address and r.index not in joined
                ),
                None,
            )
            identity = str(match.index) if match else None

        if match is None:
            log.debug(f"Bus device {descriptor.pci_address} has no listing match ({key}), dropping.")
            continue

        if match.cu_count <= 0:
            log.warning(
                f"GPU {match.index} ({match.arch_class}) at {descriptor.pci_address} reports no compute units, dropping."
            )
            continue

        joined.add(match.index)
        log.debug(f"Joined bus device {descriptor.pci_address} to GPU {match.index} by {key}.")
        table.append(
            GpuDevice(
                index=match.index,
                arch_class=match.arch_class,
                cu_count=match.cu_count,
                pci_address=descriptor.pci_address,
                numa_node=descriptor.numa_node,
                cpu_cores=tuple(descriptor.cpu_cores),
                identity=identity,
                visible=match.visible,
                name=match.name,
            )
        )

    if not table:
        arches = ", ".join(sorted({r.arch_class for r in candidates})) or "none"
        raise CorrelationError(
            f"None of the {len(descriptors)} bus device(s) matched the {len(candidates)} listed GPU(s) ({arches})."
        )
    return tuple(table)
