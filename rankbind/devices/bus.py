import logging
import os

import rankbind.defaults as defaults
import rankbind.utils as utils
from rankbind.devices.device import BusDescriptor
from rankbind.errors import DiscoveryError

log = logging.getLogger(__name__)


def read_attribute(path, default=None):
    """
    Read a single sysfs attribute, returning default if it does not exist.
    """
    try:
        with open(path, "r") as fd:
            return fd.read().strip()
    except (FileNotFoundError, NotADirectoryError):
        return default


class BusEnumerator:
    """
    Walk the PCI bus registry for devices bound to an accelerator driver.
    """

    def __init__(self, root=None, drivers=None):
        self.root = root or defaults.sysfs_root
        self.drivers = list(drivers or defaults.drivers)

    @property
    def devices_dir(self):
        return os.path.join(self.root, "devices")

    def driver_for(self, path):
        """
        The name of the driver bound to a device, or None if unbound.
        """
        link = os.path.join(path, "driver")
        if not os.path.exists(link):
            return None
        return os.path.basename(os.path.realpath(link))

    def describe(self, address) -> BusDescriptor:
        """
        Read the NUMA node, local CPU list and unique id of one device.
        """
        path = os.path.join(self.devices_dir, address)

        numa = read_attribute(os.path.join(path, "numa_node"), "0")
        try:
            numa_node = int(numa)
        except ValueError:
            log.warning(f"Device {address} has an unreadable NUMA node '{numa}', using 0.")
            numa_node = 0

        # The kernel reports -1 when the platform does not know the locality
        if numa_node < 0:
            numa_node = 0

        cpulist = read_attribute(os.path.join(path, "local_cpulist"), "")
        return BusDescriptor(
            pci_address=address.lower(),
            numa_node=numa_node,
            cpu_cores=tuple(utils.parse_range(cpulist)),
            unique_id=read_attribute(os.path.join(path, "unique_id"), ""),
            driver=self.driver_for(path),
        )

    def enumerate(self) -> list:
        """
        Return a descriptor for every matching device, in registry order.
        """
        if not os.path.isdir(self.devices_dir):
            raise DiscoveryError(f"Bus registry {self.devices_dir} does not exist.")

        descriptors = []
        for address in sorted(os.listdir(self.devices_dir)):
            driver = self.driver_for(os.path.join(self.devices_dir, address))
            if driver not in self.drivers:
                continue
            descriptor = self.describe(address)
            log.debug(
                f"Bus device {descriptor.pci_address}: driver={driver} numa={descriptor.numa_node} uid='{descriptor.unique_id}'"
            )
            descriptors.append(descriptor)

        if not descriptors:
            raise DiscoveryError(
                f"No devices bound to driver(s) {self.drivers} found under {self.devices_dir}."
            )
        log.debug(f"Found {len(descriptors)} accelerator(s) on the bus.")
        return descriptors
