class RankbindError(Exception):
    """
    Base for every fatal error raised while placing a rank.
    """


class DiscoveryError(RankbindError):
    """
    A required enumeration source yielded no usable devices.
    """


class CorrelationError(DiscoveryError):
    """
    The device listing and the bus registry had no device in common.
    """


class ValidationError(RankbindError):
    """
    The requested rank geometry cannot be placed on this node.
    """
