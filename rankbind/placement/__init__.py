from .allocator import Placement, allocate
from .context import MaskPolicy, RankContext
from .diagnostics import Diagnostics, summarize
