"""Domain models for the harvester database layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Project:
    id: str
    slug: str
    name: str = ""
    created_at: str | None = None


@dataclass
class Document:
    id: str
    project_id: str
    uri: str
    title: str = "Untitled"
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Chunk:
    document_id: str
    ord: int
    text: str
    token_count: int = 0
    section_path: str = ""
    created_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks
