import os
import shutil
import tempfile
import unittest

from rankbind.devices.bus import BusEnumerator
from rankbind.errors import DiscoveryError


def make_sysfs(root, devices):
    """
    Fabricate a PCI bus registry. Each device is a dict with an address,
    an optional driver, and optional attribute files.
    """
    for device in devices:
        path = os.path.join(root, "devices", device["address"])
        os.makedirs(path)
        driver = device.get("driver")
        if driver:
            driver_dir = os.path.join(root, "drivers", driver)
            os.makedirs(driver_dir, exist_ok=True)
            os.symlink(driver_dir, os.path.join(path, "driver"))
        for name in ["numa_node", "local_cpulist", "unique_id"]:
            if name in device:
                with open(os.path.join(path, name), "w") as fd:
                    fd.write(device[name] + "\n")


class TestBusEnumerator(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp(prefix="rankbind-sysfs-")

    def tearDown(self):
        shutil.rmtree(self.root)

    def test_01_enumerate_accelerators(self):
        """
        Test: Only amdgpu devices are kept, in registry order.
        """
        print("\n--- Testing: bus enumeration ---")
        make_sysfs(
            self.root,
            [
                {
                    "address": "0000:c6:00.0",
                    "driver": "amdgpu",
                    "numa_node": "-1",
                    "local_cpulist": "0-3,8-11",
                },
                {"address": "0000:00:01.0", "driver": "pcieport", "numa_node": "0"},
                {"address": "0000:44:00.0"},
                {
                    "address": "0000:c1:00.0",
                    "driver": "amdgpu",
                    "numa_node": "3",
                    "local_cpulist": "48-63",
                    "unique_id": "3a2f8b1c9d4e5f60",
                },
            ],
        )
        descriptors = BusEnumerator(root=self.root).enumerate()
        self.assertEqual([d.pci_address for d in descriptors], ["0000:c1:00.0", "0000:c6:00.0"])

        first, second = descriptors
        self.assertEqual(first.numa_node, 3)
        self.assertEqual(first.cpu_cores, tuple(range(48, 64)))
        self.assertEqual(first.uid, "3a2f8b1c9d4e5f60")
        self.assertEqual(first.driver, "amdgpu")

        # -1 means unknown locality, and the unique id is missing on this device
        self.assertEqual(second.numa_node, 0)
        self.assertEqual(second.cpu_cores, (0, 1, 2, 3, 8, 9, 10, 11))
        self.assertEqual(second.uid, "")

    def test_02_other_drivers(self):
        make_sysfs(
            self.root,
            [{"address": "0000:41:00.0", "driver": "nvidia", "numa_node": "1"}],
        )
        descriptors = BusEnumerator(root=self.root, drivers=["nvidia"]).enumerate()
        self.assertEqual(len(descriptors), 1)
        self.assertEqual(descriptors[0].numa_node, 1)
        self.assertEqual(descriptors[0].cpu_cores, ())

    def test_03_no_accelerators(self):
        make_sysfs(self.root, [{"address": "0000:00:01.0", "driver": "pcieport"}])
        with self.assertRaisesRegex(DiscoveryError, "amdgpu"):
            BusEnumerator(root=self.root).enumerate()

    def test_04_missing_registry(self):
        with self.assertRaises(DiscoveryError):
            BusEnumerator(root=os.path.join(self.root, "nope")).enumerate()


if __name__ == "__main__":
    unittest.main()
