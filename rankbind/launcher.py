import logging
import os

import rankbind.defaults as defaults
from rankbind.devices.commands import NumactlCommand

log = logging.getLogger(__name__)


def build_environment(placement, env=None) -> dict:
    """
    Return a copy of the environment with the placement exported.
    """
    env = dict(os.environ if env is None else env)
    # An empty device list would hide every device, so unset stays unset
    if placement.identities:
        env[defaults.visible_devices_envar] = placement.visible_devices
    if placement.cu_mask:
        env[defaults.cu_mask_envar] = placement.cu_mask
    if placement.cus_per_placement is not None:
        env[defaults.cus_envar] = str(placement.cus_per_placement)
    env[defaults.numa_envar] = placement.numa_string
    env[defaults.cores_envar] = placement.cpu_string
    return env


def build_command(placement, command, cpu_bind=None, numactl=None) -> list:
    """
    Prefix the command with numactl so CPU affinity follows the device.
    """
    cpu_bind = cpu_bind or defaults.cpu_bind
    command = list(command)
    if cpu_bind == "none":
        return command

    numactl = numactl or NumactlCommand()
    if not numactl.which():
        log.warning(f"{numactl.path} was not found on the PATH, CPU affinity will not be set.")
        return command

    if cpu_bind == "cores" and placement.cpu_cores:
        prefix = numactl.prefix(cpu_cores=placement.cpu_string)
    elif placement.numa_nodes:
        prefix = numactl.prefix(numa_nodes=placement.numa_string)
    else:
        log.warning(f"Local rank {placement.local_rank} has no CPU locality to bind to.")
        return command
    return prefix + command


def launch(placement, command, cpu_bind=None, env=None):
    """
    Replace the current process with the command, bound to the placement.
    """
    argv = build_command(placement, command, cpu_bind=cpu_bind)
    env = build_environment(placement, env)
    log.debug(f"Executing {' '.join(argv)}")
    os.execvpe(argv[0], argv, env)
