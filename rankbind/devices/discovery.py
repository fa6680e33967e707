import logging

from rankbind.devices.bus import BusEnumerator
from rankbind.devices.commands import RocminfoCommand
from rankbind.devices.correlate import correlate
from rankbind.devices.listing import DeviceListingParser

log = logging.getLogger(__name__)


def discover(allow=None, sysfs_root=None, drivers=None, rocminfo=None, listing=None) -> tuple:
    """
    Build the canonical device table for this node.

    Every rank runs this independently. The result only depends on the
    hardware enumeration order, so all ranks see the same table.
    A listing (raw rocminfo text) can be provided to skip running the command.
    """
    if listing is None:
        listing = RocminfoCommand(rocminfo).get_listing()
    records = DeviceListingParser(allow=allow).parse_text(listing)
    descriptors = BusEnumerator(root=sysfs_root, drivers=drivers).enumerate()
    table = correlate(descriptors, records)
    log.debug(
        f"Canonical device table has {len(table)} device(s) from {len(records)} listed GPU(s) and {len(descriptors)} bus device(s)."
    )
    return table
