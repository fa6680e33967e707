import rankbind.defaults as defaults


def cu_mask(width: int, offset: int) -> int:
    """
    A contiguous run of width set bits, shifted left by offset.

    Python integers are arbitrary precision, so devices with more compute
    units than a machine word are fine.
    """
    if width < 0 or offset < 0:
        raise ValueError(f"Mask width ({width}) and offset ({offset}) must be non-negative.")
    return ((1 << width) - 1) << offset


def mask_digits(total_cus: int) -> int:
    """
    Number of hex digits needed for a mask over total_cus compute units.
    """
    return max(1, -(-total_cus // 4))


def render_cu_mask(mask: int, total_cus: int, group=None) -> str:
    """
    Render a mask as '<group>:0x<hex>', zero padded to cover total_cus.

    Every rank on a device pads to the same width, so every rank renders a
    string of identical length.
    """
    group = defaults.cu_mask_group if group is None else group
    return f"{group}:0x{mask:0{mask_digits(total_cus)}x}"


def parse_cu_mask(value: str):
    """
    Parse a rendered mask back to an integer, or None if it is not hex.

    Only the '<group>:0x<hex>' and bare hex forms are understood. Other
    forms (e.g., CU ranges) are passed through untouched by the allocator.
    """
    if not value:
        return None
    value = value.strip()
    if ":" in value:
        value = value.split(":", 1)[1]
    try:
        return int(value, 16)
    except ValueError:
        return None
