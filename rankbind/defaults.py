# Environment variables set by launchers for the node-local geometry.
# The first one that is set wins.
local_size_envars = [
    "OMPI_COMM_WORLD_LOCAL_SIZE",
    "MPI_LOCALNRANKS",
    "PALS_LOCAL_SIZE",
    "SLURM_NTASKS_PER_NODE",
]
local_rank_envars = [
    "OMPI_COMM_WORLD_LOCAL_RANK",
    "MPI_LOCALRANKID",
    "PALS_LOCAL_RANKID",
    "SLURM_LOCALID",
    "FLUX_TASK_LOCAL_ID",
]

# Preset values that short-circuit allocation (and are exported to the child)
visible_devices_envar = "ROCR_VISIBLE_DEVICES"
cu_mask_envar = "HSA_CU_MASK"

# Our own surface
envar_prefix = "RANKBIND_"
config_envar = "RANKBIND_CONFIG"
cus_envar = "RANKBIND_CUS_PER_PLACEMENT"
numa_envar = "RANKBIND_NUMA_NODES"
cores_envar = "RANKBIND_CPU_CORES"

sysfs_root = "/sys/bus/pci"
drivers = ["amdgpu"]
rocminfo = "rocminfo"
numactl = "numactl"

mask_policy = "mutex"
cpu_bind = "numa"
cpu_bind_modes = ["numa", "cores", "none"]

# Compute unit group selector that prefixes a rendered CU mask
cu_mask_group = "0"
