"""
Exceptions raised by netbooks analyses
"""


class NetbooksError(Exception):
    """Base class for netbooks errors"""


class SampleAlignmentError(NetbooksError, ValueError):
    """Matrix columns and metadata rows do not describe the same samples"""


class DesignError(NetbooksError, ValueError):
    """The linear model design cannot be fitted"""
