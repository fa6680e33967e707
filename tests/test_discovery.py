import argparse
import io
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest import mock

import yaml

import rankbind.cli as cli
import rankbind.cli.devices as devices_action
import rankbind.cli.launch as run_action
import rankbind.cli.show as show_action
from rankbind.devices import discover
from rankbind.devices.commands import RocminfoCommand
from rankbind.errors import DiscoveryError

here = os.path.dirname(os.path.abspath(__file__))

TEST_ROCMINFO_FILE = os.path.join(here, "data", "rocminfo.txt")


def make_sysfs(root):
    """
    The bus registry that goes with the captured rocminfo listing.
    """
    devices = [
        ("0000:03:00.0", "0", "0-15", None),
        ("0000:c1:00.0", "3", "48-63", "3a2f8b1c9d4e5f60"),
        ("0000:c6:00.0", "2", "32-47", "7c6d5e4f3a2b1c0d"),
        ("0000:00:01.0", "0", "0-63", None),
    ]
    driver_dir = os.path.join(root, "drivers", "amdgpu")
    os.makedirs(driver_dir)
    for address, numa, cpulist, uid in devices:
        path = os.path.join(root, "devices", address)
        os.makedirs(path)
        if address != "0000:00:01.0":
            os.symlink(driver_dir, os.path.join(path, "driver"))
        attributes = {"numa_node": numa, "local_cpulist": cpulist}
        if uid:
            attributes["unique_id"] = uid
        for name, value in attributes.items():
            with open(os.path.join(path, name), "w") as fd:
                fd.write(value + "\n")


class TestDiscovery(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp(prefix="rankbind-sysfs-")
        make_sysfs(self.root)
        with open(TEST_ROCMINFO_FILE, "r") as fd:
            self.listing = fd.read()

    def tearDown(self):
        shutil.rmtree(self.root)

    def get_args(self, **kwargs):
        values = {
            "config": None,
            "allow": None,
            "sysfs_root": self.root,
            "rocminfo": None,
            "listing": TEST_ROCMINFO_FILE,
            "mask_policy": None,
            "device_bias": None,
            "devices_per_set": None,
            "local_size": None,
            "local_rank": None,
            "cpu_bind": None,
            "verbose": False,
        }
        values.update(kwargs)
        return argparse.Namespace(**values)

    def test_01_canonical_table(self):
        """
        Test: The listing and the bus registry merge into the canonical table.
        """
        print("\n--- Testing: canonical device table ---")
        table = discover(listing=self.listing, sysfs_root=self.root)
        self.assertEqual([d.pci_address for d in table], ["0000:03:00.0", "0000:c1:00.0", "0000:c6:00.0"])
        self.assertEqual(
            [d.identity for d in table], ["2", "GPU-3a2f8b1c9d4e5f60", "GPU-7c6d5e4f3a2b1c0d"]
        )
        self.assertEqual([d.arch_class for d in table], ["gfx908", "gfx90a", "gfx90a"])
        self.assertEqual([d.numa_node for d in table], [0, 3, 2])
        self.assertEqual(len({d.identity for d in table}), len(table))

        # Every rank recomputes the same table
        self.assertEqual(table, discover(listing=self.listing, sysfs_root=self.root))

    def test_02_allow_list(self):
        table = discover(allow=["gfx90a"], listing=self.listing, sysfs_root=self.root)
        self.assertEqual([d.index for d in table], [0, 1])

    def test_03_command_failure(self):
        command = RocminfoCommand(os.path.join(self.root, "no-such-rocminfo"))
        with self.assertRaisesRegex(RuntimeError, "Command not found"):
            command.get_listing()

    def test_04_no_bus_devices(self):
        with self.assertRaises(DiscoveryError):
            discover(listing=self.listing, sysfs_root=os.path.join(self.root, "drivers"))

    def test_05_run_without_command(self):
        """
        Test: Nothing to execute is a success and allocates nothing.
        """
        with mock.patch("rankbind.cli.launch.discover_devices") as discover_devices:
            self.assertEqual(run_action.main(self.get_args(), extra=[]), 0)
        discover_devices.assert_not_called()

    def test_06_run_launches_placement(self):
        env = {"MPI_LOCALNRANKS": "6", "MPI_LOCALRANKID": "3"}
        with mock.patch.dict(os.environ, env, clear=True):
            with mock.patch("rankbind.launcher.launch") as launch:
                run_action.main(self.get_args(cpu_bind="cores"), extra=["./app", "-n", "4"])

        placement, command = launch.call_args[0]
        self.assertEqual(command, ["./app", "-n", "4"])
        self.assertEqual(launch.call_args[1], {"cpu_bind": "cores"})

        # Six ranks on three devices, rank 3 is the second rank on the second device
        self.assertEqual(placement.identities, ("GPU-3a2f8b1c9d4e5f60",))
        self.assertEqual(placement.cus_per_placement, 55)
        self.assertEqual(placement.cu_mask_offset, 55)
        self.assertEqual(placement.numa_nodes, (3,))

    def test_07_show_all_ranks(self):
        """
        Test: show prints every local rank's placement as yaml.
        """
        print("\n--- Testing: show ---")
        env = {"OMPI_COMM_WORLD_LOCAL_SIZE": "3", "OMPI_COMM_WORLD_LOCAL_RANK": "0"}
        out = io.StringIO()
        with mock.patch.dict(os.environ, env, clear=True), redirect_stdout(out):
            show_action.main(self.get_args(mask_policy="nomask", verbose=True), extra=[])

        result = yaml.safe_load(out.getvalue())
        self.assertEqual(len(result["ranks"]), 3)
        self.assertEqual(
            [r["visible_devices"] for r in result["ranks"]],
            ["2", "GPU-3a2f8b1c9d4e5f60", "GPU-7c6d5e4f3a2b1c0d"],
        )
        self.assertEqual(result["ranks"][1]["cpu_cores"], "48-63")
        self.assertEqual(result["diagnostics"]["devices_found"], 3)

    def test_08_devices(self):
        out = io.StringIO()
        with mock.patch.dict(os.environ, {}, clear=True), redirect_stdout(out):
            devices_action.main(self.get_args(allow=["gfx908"]), extra=[])
        result = yaml.safe_load(out.getvalue())
        self.assertEqual(len(result["devices"]), 1)
        self.assertEqual(result["devices"][0]["cus"], 120)
        self.assertEqual(result["devices"][0]["cores"], list(range(16)))

    def test_09_run_preset_mask_only(self):
        """
        Test: A preset CU mask reaches the child unchanged and no device list is made up.
        """
        print("\n--- Testing: run with a preset environment ---")
        env = {"MPI_LOCALNRANKS": "2", "MPI_LOCALRANKID": "1", "HSA_CU_MASK": "0:0xff"}
        with mock.patch.dict(os.environ, env, clear=True):
            with mock.patch("rankbind.launcher.os.execvpe") as execvpe:
                run_action.main(self.get_args(cpu_bind="none"), extra=["./app"])

        executable, argv, child_env = execvpe.call_args[0]
        self.assertEqual(argv, ["./app"])
        self.assertNotIn("ROCR_VISIBLE_DEVICES", child_env)
        self.assertEqual(child_env["HSA_CU_MASK"], "0:0xff")
        self.assertEqual(child_env["RANKBIND_CUS_PER_PLACEMENT"], "8")

    def test_10_run_preset_devices(self):
        env = {
            "MPI_LOCALNRANKS": "2",
            "MPI_LOCALRANKID": "0",
            "ROCR_VISIBLE_DEVICES": "GPU-7c6d5e4f3a2b1c0d",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            with mock.patch("rankbind.launcher.os.execvpe") as execvpe:
                run_action.main(self.get_args(cpu_bind="none"), extra=["./app"])

        child_env = execvpe.call_args[0][2]
        self.assertEqual(child_env["ROCR_VISIBLE_DEVICES"], "GPU-7c6d5e4f3a2b1c0d")
        self.assertNotIn("HSA_CU_MASK", child_env)
        self.assertEqual(child_env["RANKBIND_CUS_PER_PLACEMENT"], "110")
        self.assertEqual(child_env["RANKBIND_NUMA_NODES"], "2")

    def test_11_missing_command_exits(self):
        """
        Test: A command that cannot be executed is a one line error, not a traceback.
        """
        argv = [
            "rankbind",
            "run",
            "--listing",
            TEST_ROCMINFO_FILE,
            "--sysfs-root",
            self.root,
            "--cpu-bind",
            "none",
            "--",
            os.path.join(self.root, "no-such-app"),
        ]
        with mock.patch.dict(os.environ, {}, clear=True), mock.patch.object(sys, "argv", argv):
            with self.assertRaises(SystemExit) as raised:
                cli.run()
        self.assertEqual(raised.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
