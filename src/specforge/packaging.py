"""Download packaging for generated documents.

The default ZipPackager builds the archive in memory:

    SPEC.md                  rendered document
    README.md                project summary and archive contents
    gates/gate_N.json        one file per gate
    research/<name>.json     each research payload that exists
"""

from __future__ import annotations

import io
import json
import zipfile
from dataclasses import dataclass, field
from typing import Any, Protocol

from specforge.database.models.document import GeneratedDocument
from specforge.database.models.project import Project
from specforge.database.models.research import PHASE_COLUMNS, ResearchArtifact


@dataclass
class PackagedArtifact:
    """A downloadable archive.

    Attributes:
        filename: Suggested attachment filename
        content: Archive bytes
        included_files: Paths inside the archive, in write order
    """

    filename: str
    content: bytes
    included_files: list[str] = field(default_factory=list)
    media_type: str = "application/zip"

    @property
    def size(self) -> int:
        return len(self.content)


class Packager(Protocol):
    """Turns a project's generated output into a downloadable artifact."""

    def package(
        self,
        project: Project,
        document: GeneratedDocument,
        research: ResearchArtifact | None = None,
    ) -> PackagedArtifact:
        ...


def _json(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True)


def _readme(project: Project, document: GeneratedDocument, files: list[str]) -> str:
    lines = [
        f"# {project.name}",
        "",
        f"Version {project.version}",
        "",
    ]
    if project.description:
        lines += [project.description, ""]
    lines += [
        f"- Quality score: {document.quality_score}",
        f"- Complexity: {document.complexity_rating or 'unknown'}",
        f"- Entities: {document.entity_count}",
        f"- State changes: {document.state_change_count}",
    ]
    if document.build_hours_min is not None and document.build_hours_max is not None:
        lines.append(
            f"- Estimated build: {document.build_hours_min}-{document.build_hours_max} hours"
        )
    lines += ["", "## Contents", ""]
    lines += [f"- `{name}`" for name in files]
    return "\n".join(lines) + "\n"


class ZipPackager:
    """Packages a document (and its research) as an in-memory zip archive."""

    def package(
        self,
        project: Project,
        document: GeneratedDocument,
        research: ResearchArtifact | None = None,
    ) -> PackagedArtifact:
        entries: list[tuple[str, str]] = [("SPEC.md", document.full_document or "")]

        for number in range(6):
            gate = getattr(document, f"gate_{number}")
            if gate is not None:
                entries.append((f"gates/gate_{number}.json", _json(gate)))

        if research is not None:
            for phase, column in PHASE_COLUMNS.items():
                payload = research.payload(phase)
                if payload is not None:
                    entries.append((f"research/{column}.json", _json(payload)))

        names = [name for name, _ in entries]
        entries.append(("README.md", _readme(project, document, names + ["README.md"])))

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, text in entries:
                archive.writestr(name, text)

        return PackagedArtifact(
            filename=f"{project.slug}-v{project.version}.zip",
            content=buffer.getvalue(),
            included_files=[name for name, _ in entries],
        )
