class NsFixError(Exception):
    """Base class for every error raised by i18n-nsfix."""


class ConfigError(NsFixError):
    """Primary locale missing or configuration unusable. Fatal to analyze()."""


class FileReadError(NsFixError):
    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}" if reason else f"Cannot read {path}")


class FileWriteError(NsFixError):
    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write {path}: {reason}" if reason else f"Cannot write {path}")


class TextMismatchError(NsFixError):
    """An edit's expected text is no longer present at its offset."""

    def __init__(self, offset: int, expected: str, found: str) -> None:
        self.offset = offset
        self.expected = expected
        self.found = found
        super().__init__(f"Text mismatch at {offset}: expected {expected!r} but found {found!r}")


class UnresolvableAmbiguity(NsFixError):
    """A call site's governing scope cannot be determined with confidence."""


class OverlappingEditError(NsFixError):
    """Two edits in one batch touch the same span. Programming error."""


class NoSelectionError(NsFixError):
    """apply_fixes() was called without any fixable id selected."""
