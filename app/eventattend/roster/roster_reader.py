import csv
from typing import Iterator, Optional, TextIO

from pydantic import BaseModel, field_validator


class RosterRow(BaseModel):
    """One line of a roster file. year_level holds the year level id."""
    id_number: str = ""
    department: str = ""
    course: str = ""
    block: str = ""
    year_level: str = ""
    first_name: str = ""
    middle_name: Optional[str] = None
    last_name: str = ""
    suffix: Optional[str] = None

    @field_validator("id_number", "department", "course", "block", "year_level", "first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return (value or "").strip()

    @field_validator("middle_name", "suffix", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        value = (value or "").strip()
        return value or None


def normalize_header(header: str) -> str:
    return "_".join((header or "").strip().lower().split())


def read_roster(stream: TextIO) -> Iterator[RosterRow]:
    """
    Lazily yields roster rows from a CSV text stream. Header names are
    lowercased with spaces turned into underscores ("ID Number" -> "id_number").
    The stream is consumed as rows are pulled, so a second pass needs a
    freshly opened source.
    """
    reader = csv.DictReader(stream)
    if reader.fieldnames is None:
        return
    reader.fieldnames = [normalize_header(name) for name in reader.fieldnames]
    for raw in reader:
        yield RosterRow(**{key: value for key, value in raw.items() if key in RosterRow.model_fields})
