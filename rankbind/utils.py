import logging
import os

import yaml


def read_yaml(filename):
    """
    Read yaml from file
    """
    with open(filename, "r") as fd:
        content = yaml.safe_load(fd)
    return content


def write_yaml(obj):
    """
    Render an object as block-style yaml, keeping insertion order.
    """
    return yaml.safe_dump(obj, default_flow_style=False, sort_keys=False)


def setup_logging(debug=False):
    """
    Setup logging, honoring debug if user provides from client.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="[%(levelname)s] %(message)s",
        force=True,
    )


def parse_range(range_str) -> list:
    """
    Parse a kernel style list like '0-7,12,15' into an ordered list of integers.

    Duplicates are dropped, first occurrence wins.
    """
    indices = []
    for part in str(range_str).strip().split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = map(int, part.split("-"))
            values = range(start, end + 1)
        else:
            values = [int(part)]
        for value in values:
            if value not in indices:
                indices.append(value)
    return indices


def format_range(values) -> str:
    """
    The inverse of parse_range: [0, 1, 2, 3, 8] -> '0-3,8'.

    Runs are only compressed when they are ascending and contiguous, so
    the order of the input is kept.
    """
    parts = []
    start = previous = None
    for value in values:
        if start is not None and value == previous + 1:
            previous = value
            continue
        if start is not None:
            parts.append(str(start) if start == previous else f"{start}-{previous}")
        start = previous = value
    if start is not None:
        parts.append(str(start) if start == previous else f"{start}-{previous}")
    return ",".join(parts)


def unique(items) -> list:
    """
    De-duplicate, preserving first-seen order.
    """
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def first_envar(names, env=None):
    """
    Return (name, value) for the first set environment variable, or (None, None).
    """
    env = os.environ if env is None else env
    for name in names:
        value = env.get(name)
        if value not in [None, ""]:
            return name, value
    return None, None
