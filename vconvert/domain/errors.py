class VConvertError(Exception):
    """Base class for all vconvert errors."""
    pass


class ProbeError(VConvertError):
    """The external prober could not be run or exited with an error."""
    pass


class EncoderError(VConvertError):
    """The external encoder could not be started."""
    pass


class QueueError(VConvertError):
    """The pending-work database could not be opened or queried."""
    pass


class ConfigError(VConvertError):
    """The configuration file is unreadable or invalid."""
    pass
