"""Exception types raised across the netquality core."""


class NetQualityError(Exception):
    """Base class for netquality errors."""


class ProbeUnavailableError(NetQualityError):
    """The probe backend itself cannot be invoked (missing driver, broken bridge)."""


class MeasurementError(NetQualityError):
    """A measurement run could not be completed at all.

    Degraded or partial measurements never raise this; they come back as
    records with absent fields.
    """
