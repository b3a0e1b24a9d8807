"""Pydantic schemas for the web API."""

from pydantic import BaseModel, Field, model_validator


class CreateAnnotationRequest(BaseModel):
    """Request to anchor a new annotation to a line range."""

    path: str
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    text: str = ""
    emoticon: str = "smile"

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_line < self.start_line:
            raise ValueError("end_line must not be before start_line")
        return self


class ToggleRequest(BaseModel):
    """Request to toggle a smile on a single line."""

    path: str
    line: int = Field(ge=1)
    emoticon: str = "smile"
    text: str = ""


class AddressSchema(BaseModel):
    """One revision-relative slice of an annotation."""

    sequence: int
    revision: str
    file_checksum: str
    start_line_number: int
    end_line_number: int


class AnnotationSchema(BaseModel):
    """An annotation and where it sits in the working tree."""

    id: str | None
    text: str
    emoticon: str
    code_snippet: str
    start_line: int | None  # None when the lines no longer exist
    end_line: int | None
    error: str | None = None
    addresses: list[AddressSchema]


class AnnotationsResponse(BaseModel):
    """Annotations for one file."""

    path: str
    annotations: list[AnnotationSchema]
    skipped: bool = False
    error: str | None = None


class CreateAnnotationResponse(BaseModel):
    id: str


class DeleteAnnotationResponse(BaseModel):
    id: str
    deleted: bool


class ToggleResponse(BaseModel):
    action: str
    annotation_ids: list[str]
