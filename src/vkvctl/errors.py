"""Error types raised by the path-tree engine / 트리 변환 오류."""


class VkvError(Exception):
    """Base class for vkvctl errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class MalformedTreeError(VkvError):
    """A node mixes leaf values with sub-trees, or a path is both leaf and parent."""


class AmbiguousRootError(VkvError):
    """The input has zero or several top-level keys."""


class UnsupportedFormatError(VkvError):
    """Unknown output format."""


class ParseError(VkvError):
    """Input is neither valid JSON nor valid YAML."""


class InvalidFlagCombinationError(VkvError):
    """Mutually exclusive command options were combined."""
