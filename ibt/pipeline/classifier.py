import logging
from pathlib import Path
from typing import Optional, Sequence
from ibt.domain.models import ClassificationResult, Confidence, ContentSignature, UNKNOWN_TYPE
from ibt.domain.signatures import HEADER_BYTES, SIGNATURES, TEXT_EXTENSIONS


class ContentClassifier:
    """Identifies file content from magic bytes, falling back to the extension.

    Signatures are evaluated in the order given; the default table is already
    sorted by priority (see ``ibt.domain.signatures``).
    """

    def __init__(self, signatures: Sequence[ContentSignature] = SIGNATURES):
        self.signatures = tuple(signatures)
        self.logger = logging.getLogger(__name__)

    def classify(self, header: bytes, path: Path) -> ClassificationResult:
        for signature in self.signatures:
            if signature.matches(header):
                return ClassificationResult(
                    content_type=signature.name,
                    confidence=Confidence.HIGH,
                    description=signature.description,
                )
        return self.classify_extension(Path(path).suffix)

    def classify_extension(self, extension: Optional[str]) -> ClassificationResult:
        """Low-confidence lookup by extension (with or without the leading dot)."""
        ext = (extension or "").lower().lstrip(".")
        if not ext:
            return ClassificationResult()
        for signature in self.signatures:
            if ext in signature.extensions:
                return ClassificationResult(
                    content_type=signature.name,
                    confidence=Confidence.LOW,
                    description=signature.description,
                )
        if ext in TEXT_EXTENSIONS:
            name, description = TEXT_EXTENSIONS[ext]
            return ClassificationResult(content_type=name, confidence=Confidence.LOW, description=description)
        return ClassificationResult(content_type=UNKNOWN_TYPE, confidence=Confidence.NONE)

    def classify_file(self, path: Path) -> ClassificationResult:
        """Reads at most the first 64 bytes of ``path`` and classifies them.

        Raises OSError (FileNotFoundError included) when the file cannot be read.
        """
        with open(path, "rb") as f:
            header = f.read(HEADER_BYTES)
        result = self.classify(header, path)
        self.logger.debug(f"CLASSIFY: {Path(path).name} type={result.content_type} confidence={result.confidence.value}")
        return result
