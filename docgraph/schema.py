"""Input schemas for parsed documents handed to the graph builder.

The upstream parser produces these; the builder never touches PDF bytes.
Character offsets are local to each page's text. Inverted or out-of-range
offsets are accepted here and repaired by the builder.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class DocumentMetadata(BaseModel):
    """Document-level facts from the parser.

    Attributes:
        title: Document title (None if unknown)
        author: Author name
        subject: Subject line
        keywords: Keyword list
        language: Language code
        page_count: Number of pages reported by the parser
        file_size: Source file size in bytes
    """

    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    language: Optional[str] = None
    page_count: int = 0
    file_size: int = 0

    @field_validator("page_count", "file_size")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Ensure counts are not negative."""
        if v < 0:
            raise ValueError("page_count and file_size must be >= 0")
        return v


class TextRun(BaseModel):
    """A positioned run of text. ``y`` grows down the page."""

    text: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class ParsedParagraph(BaseModel):
    """A paragraph as segmented by the parser."""

    id: Optional[str] = None
    page_number: int = 1
    content: str
    start: int = 0
    end: int = 0
    line_count: int = 1
    confidence: float = 0.8

    @field_validator("page_number")
    @classmethod
    def validate_page(cls, v: int) -> int:
        """Ensure page numbers are 1-indexed."""
        if v < 1:
            raise ValueError("page_number must be >= 1")
        return v

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        """Ensure confidence is in valid range."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")
        return v


class ParsedPage(BaseModel):
    """One page: raw text, paragraphs and (optionally) layout runs."""

    page_number: int
    text: str = ""
    paragraphs: list[ParsedParagraph] = Field(default_factory=list)
    text_runs: list[TextRun] = Field(default_factory=list)

    @field_validator("page_number")
    @classmethod
    def validate_page(cls, v: int) -> int:
        """Ensure page numbers are 1-indexed."""
        if v < 1:
            raise ValueError("page_number must be >= 1")
        return v


class TableCandidate(BaseModel):
    """A table found by the parser.

    Attributes:
        content: Table text (rows joined by newlines)
        page: First page of the table
        start: Offset in the first page's text
        end: End offset in the first page's text
        end_page: Last page when the table continues onto later pages
        row_count: Number of rows
        col_count: Number of columns
        confidence: Extraction confidence (0.0-1.0)
        extraction_method: Name of the extractor that found it
        caption: Caption text, if any
        number: Explicit table number ("4", "A.1"), if known
    """

    content: str
    page: int = 1
    start: int = 0
    end: int = 0
    end_page: Optional[int] = None
    row_count: int = 0
    col_count: int = 0
    confidence: float = 0.7
    extraction_method: str = "unknown"
    caption: Optional[str] = None
    number: Optional[str] = None

    @field_validator("page")
    @classmethod
    def validate_page(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page must be >= 1")
        return v

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")
        return v


class ImageCandidate(BaseModel):
    """An image or figure found by the parser."""

    caption: str = ""
    page: int = 1
    start: int = 0
    end: int = 0
    end_page: Optional[int] = None
    width: int = 0
    height: int = 0
    confidence: float = 0.6
    extraction_method: str = "unknown"
    number: Optional[str] = None

    @field_validator("page")
    @classmethod
    def validate_page(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page must be >= 1")
        return v

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")
        return v


class ParsedDocument(BaseModel):
    """Complete parser output for one document."""

    document_id: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    pages: list[ParsedPage] = Field(default_factory=list)
    tables: list[TableCandidate] = Field(default_factory=list)
    images: list[ImageCandidate] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        """Pages actually present, falling back to the reported count."""
        return len(self.pages) or self.metadata.page_count
