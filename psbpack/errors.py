class PsbPackError(Exception):
    """Base class for psbpack-specific errors."""


class MissingDependency(PsbPackError):
    """An optional capability (decompressor, compressor, filter) is required but was not supplied."""


# Format/consistency
class InvalidFormat(PsbPackError, ValueError):
    """The data does not describe a valid archive."""


class DescriptorDecodeError(InvalidFormat):
    pass


class CompressedFormatError(InvalidFormat):
    pass


class FilterError(InvalidFormat):
    pass


class FilterRequired(MissingDependency):
    """The descriptor body was filtered and no filter was supplied."""
