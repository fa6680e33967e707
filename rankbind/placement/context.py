from dataclasses import dataclass
from enum import Enum

from rankbind.errors import ValidationError


class MaskPolicy(str, Enum):
    """
    How a device's compute units are shared by the ranks placed on it.
    """

    MUTEX = "mutex"  # Disjoint CU subranges per co-located rank
    NOMASK = "nomask"  # Whole device, no subdivision
    PRESET = "preset"  # Externally supplied, not recomputed

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValidationError(f"Unknown mask policy '{value}'. Must be one of {choices}.")


@dataclass(frozen=True)
class RankContext:
    """
    The per-invocation parameters of one rank.
    """

    total_local_ranks: int = 1
    local_rank: int = 0
    device_bias: int = 0
    mask_policy: MaskPolicy = MaskPolicy.MUTEX
    preset_devices: tuple = None  # Identity strings, e.g., from ROCR_VISIBLE_DEVICES
    preset_cu_mask: str = None
    devices_per_set: int = None  # Multi-device mode when set

    def __post_init__(self):
        object.__setattr__(self, "mask_policy", MaskPolicy.parse(self.mask_policy))
        if self.preset_devices is not None:
            object.__setattr__(self, "preset_devices", tuple(self.preset_devices))
        self.validate()

    def validate(self):
        if self.total_local_ranks < 1:
            raise ValidationError(
                f"The local rank count must be at least 1, got {self.total_local_ranks}."
            )
        if not 0 <= self.local_rank < self.total_local_ranks:
            raise ValidationError(
                f"local rank ({self.local_rank}) must be >= 0 and < the local rank count ({self.total_local_ranks})."
            )

    @property
    def is_preset(self):
        return bool(self.preset_devices) or bool(self.preset_cu_mask)

    @property
    def is_multi_device(self):
        return self.devices_per_set is not None
