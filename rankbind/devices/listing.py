import logging
import re

from rankbind.devices.device import ListingRecord
from rankbind.errors import DiscoveryError

log = logging.getLogger(__name__)

# "  Compute Unit:            110"
field_regex = re.compile(r"^\s*(?P<label>[A-Za-z][\w ()/.-]*?):\s*(?P<value>.*?)\s*$")
agent_regex = re.compile(r"^\s*Agent\s+\d+\s*$")

# The labels we care about, in the relative order the parser expects them.
# Name is terminal: the record is finalized when it is seen.
marker_label = "Device Type"
name_label = "Name"
record_labels = [marker_label, "Compute Unit", "Uuid", "BDFID", "Domain", name_label]


def records_from_rocminfo(text: str) -> list:
    """
    Turn raw rocminfo output into an ordered list of (label, value) records.

    rocminfo prints one block per agent, with the agent name first and the
    ISA names last. We emit the interesting fields of each block in a fixed
    order so the device type marker always comes first and the device's
    primary ISA name always comes last.
    """
    blocks = []
    current = None
    for line in text.splitlines():
        if agent_regex.match(line):
            current = []
            blocks.append(current)
            continue
        # Anything before the first agent is system information.
        if current is None:
            continue
        match = field_regex.match(line)
        if match:
            current.append((match.group("label"), match.group("value")))

    records = []
    for block in blocks:
        fields = {}
        names = []
        for label, value in block:
            if label == name_label:
                names.append(value)
            elif label in record_labels and label not in fields:
                fields[label] = value

        if marker_label not in fields:
            continue

        # The agent name comes first, then one name per ISA. The first ISA is
        # the device's own; later ones are generic targets (e.g., gfx9-4-generic)
        if names:
            fields[name_label] = names[1] if len(names) > 1 else names[0]
        for label in record_labels:
            if label in fields:
                records.append((label, fields[label]))
    return records


def arch_class_from_name(name: str) -> str:
    """
    Derive the microarchitecture from an ISA name.

    amdgcn-amd-amdhsa--gfx90a:sramecc+:xnack- -> gfx90a
    """
    tokens = name.strip().split("-")
    if len(tokens) > 4 and tokens[4]:
        return tokens[4].split(":")[0]
    return name.strip().split(":")[0]


class DeviceListingParser:
    """
    A small state machine over (label, value) records.

    The state is the most recently seen device type marker. Fields seen while
    that marker is GPU accumulate into a pending record, and the record is
    finalized the moment the name field arrives. Everything seen under any
    other marker is discarded.
    """

    fields = {
        "Compute Unit": "cu_count",
        "Uuid": "unique_id",
        "BDFID": "pci_function",
        "Domain": "pci_domain",
    }
    integer_fields = ["cu_count", "pci_function", "pci_domain"]

    def __init__(self, allow=None):
        self.allow = [a.strip() for a in (allow or []) if a and a.strip()]
        self.reset()

    def reset(self):
        self.marker = None
        self.pending = {}
        self.records = []
        self.types_seen = []

    @property
    def in_gpu(self):
        return self.marker == "GPU"

    def is_allowed(self, arch_class: str) -> bool:
        if not self.allow:
            return True
        return any(allowed in arch_class for allowed in self.allow)

    def feed(self, label, value):
        """
        Advance the state machine by one record.
        """
        label = label.strip()
        value = value.strip()

        if label == marker_label:
            self.marker = value.upper()
            self.pending = {}
            if self.marker not in self.types_seen:
                self.types_seen.append(self.marker)
            return

        if not self.in_gpu:
            return

        if label == name_label:
            self.finalize(value)
        elif label in self.fields:
            key = self.fields[label]
            if key in self.integer_fields:
                value = self.parse_integer(label, value)
            self.pending[key] = value

    def parse_integer(self, label, value):
        try:
            return int(value, 0) if value.lower().startswith("0x") else int(value)
        except ValueError:
            raise DiscoveryError(f"Device listing field '{label}' is not an integer: '{value}'")

    def finalize(self, name):
        arch_class = arch_class_from_name(name)
        record = ListingRecord(
            index=len(self.records),
            arch_class=arch_class,
            cu_count=self.pending.get("cu_count", 0),
            unique_id=self.pending.get("unique_id", ""),
            pci_function=self.pending.get("pci_function"),
            pci_domain=self.pending.get("pci_domain", 0),
            name=name,
            visible=self.is_allowed(arch_class),
        )
        log.debug(
            f"Found GPU {record.index}: {arch_class} with {record.cu_count} CUs at {record.pci_address} (visible={record.visible})"
        )
        self.records.append(record)
        self.pending = {}

    def parse(self, records) -> list:
        """
        Parse an ordered stream of (label, value) records into listing records.
        """
        self.reset()
        for label, value in records:
            self.feed(label, value)

        if not self.records:
            seen = ", ".join(self.types_seen) or "none"
            raise DiscoveryError(
                f"No GPU devices found in the device listing (device types seen: {seen})."
            )

        if not any(record.visible for record in self.records):
            arches = ", ".join(sorted({record.arch_class for record in self.records}))
            raise DiscoveryError(
                f"Found {len(self.records)} GPU device(s) ({arches}) but none match the allow-list {self.allow}."
            )
        return self.records

    def parse_text(self, text: str) -> list:
        """
        Parse raw rocminfo output.
        """
        return self.parse(records_from_rocminfo(text))
