from __future__ import annotations


class GramcheckError(Exception):
    """Base class for gramcheck failures."""


class SegmentationError(GramcheckError):
    """Input could not be segmented (not a string)."""


class CorrectorError(GramcheckError):
    pass


class CorrectorUnavailable(CorrectorError):
    """The corrector could not produce a correction (network, model, schema)."""


class CorrectorTimeout(CorrectorError):
    """The corrector did not answer within the per-sentence budget."""


class DiffComputationError(GramcheckError):
    pass


class UnsupportedLanguage(GramcheckError):
    def __init__(self, language: str, supported: tuple[str, ...] = ()):
        self.language = language
        self.supported = supported
        allowed = ", ".join(supported) if supported else "none"
        super().__init__(f"Unsupported language: {language!r}. Supported: {allowed}")


class CheckCancelled(GramcheckError):
    pass
