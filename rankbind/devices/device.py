from dataclasses import dataclass


def normalize_uid(uid) -> str:
    """
    Reduce a unique id to a comparable form.

    rocminfo reports 'GPU-1f2e...' (or 'GPU-XX' when the attribute is not
    available) while sysfs reports the bare hex value, with or without 0x.
    """
    if uid is None:
        return ""
    uid = str(uid).strip().lower()
    for prefix in ["gpu-", "0x"]:
        if uid.startswith(prefix):
            uid = uid[len(prefix) :]
    if uid in ["", "xx", "n/a"] or not uid.strip("0"):
        return ""
    return uid


def pci_address_from_bdfid(bdfid: int, domain: int = 0) -> str:
    """
    Derive a bus address (dddd:bb:dd.f) from a packed bus/device/function id.
    """
    bus = (bdfid >> 8) & 0xFF
    device = (bdfid >> 3) & 0x1F
    function = bdfid & 0x7
    return f"{domain:04x}:{bus:02x}:{device:02x}.{function:x}"


@dataclass
class ListingRecord:
    """
    A GPU record finalized by the device listing parser.
    """

    index: int  # Ordinal among every GPU record, counted before filtering
    arch_class: str  # e.g., gfx90a
    cu_count: int
    unique_id: str  # Raw value (e.g., GPU-1f2e...), empty when unavailable
    pci_function: int  # Packed bus/device/function id, None when not reported
    name: str
    pci_domain: int = 0
    visible: bool = True

    @property
    def pci_address(self) -> str:
        if self.pci_function is None:
            return None
        return pci_address_from_bdfid(self.pci_function, self.pci_domain)

    @property
    def uid(self) -> str:
        return normalize_uid(self.unique_id)


@dataclass
class BusDescriptor:
    """
    An accelerator found in the bus registry.
    """

    pci_address: str  # The registry entry's own name, e.g., 0000:c1:00.0
    numa_node: int
    cpu_cores: tuple
    unique_id: str = ""
    driver: str = None

    @property
    def uid(self) -> str:
        return normalize_uid(self.unique_id)


@dataclass(frozen=True)
class GpuDevice:
    """
    One row of the canonical device table.
    """

    index: int
    arch_class: str
    cu_count: int
    pci_address: str
    numa_node: int
    cpu_cores: tuple
    identity: str
    visible: bool = True
    name: str = None

    def to_dict(self):
        return {
            "index": self.index,
            "identity": self.identity,
            "arch": self.arch_class,
            "name": self.name,
            "cus": self.cu_count,
            "pci": self.pci_address,
            "numa": self.numa_node,
            "cores": list(self.cpu_cores),
        }
