"""
Review Exporter

Exports a stored review run as JSON, Markdown or HTML.
"""

import html
import json
import logging
from pathlib import Path
from typing import List

from ..models.review import ReviewDocument


logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "md", "html")


class ReviewExporter:
    """
    Writes review documents to an output directory.

    JSON exports carry the document and its diff; Markdown and HTML exports
    are single human-readable files.
    """

    def __init__(self, title: str = "AI Diff Review"):
        self.title = title

    def export(self, document: ReviewDocument, diff_text: str, fmt: str, out_dir: str) -> List[Path]:
        """
        Export a run.

        Args:
            document: Review document
            diff_text: Raw diff the review was built from
            fmt: 'json', 'md' or 'html'
            out_dir: Output directory (created if missing)

        Returns:
            Paths of the written files
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unknown export format: {fmt} (use {'|'.join(EXPORT_FORMATS)})")

        output_dir = Path(out_dir).resolve()
        output_dir.mkdir(parents=True, exist_ok=True)
        run_id = document.run_id

        if fmt == "json":
            review_path = output_dir / f"{run_id}.json"
            diff_path = output_dir / f"{run_id}.diff.patch"
            review_path.write_text(json.dumps(document.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
            diff_path.write_text(diff_text, encoding="utf-8")
            written = [review_path, diff_path]
        elif fmt == "md":
            md_path = output_dir / f"{run_id}.md"
            md_path.write_text(self.to_markdown(document), encoding="utf-8")
            written = [md_path]
        else:
            html_path = output_dir / f"{run_id}.html"
            html_path.write_text(self.to_html(document), encoding="utf-8")
            written = [html_path]

        logger.info(f"Exported run {run_id} as {fmt} to {output_dir}")
        return written

    def to_markdown(self, document: ReviewDocument) -> str:
        sections = [f"# {self.title} {document.run_id}"]

        if document.ai.fallback_reason:
            sections.append(f"> Heuristic fallback: {document.ai.fallback_reason}")

        stats = document.stats
        sections.append(
            f"{stats.files_changed} files changed, "
            f"{stats.insertions} insertions(+), {stats.deletions} deletions(-)"
        )

        for group in document.groups:
            lines = [f"## {group.title}", group.rationale, f"Risk: {group.risk}"]
            if group.review_focus:
                lines.extend(f"- {focus}" for focus in group.review_focus)
            sections.append("\n".join(lines))

        notes = "\n\n".join(
            f"- **{note.title}**\n\n{note.body_markdown}" for note in document.context_notes
        )
        sections.append(f"## Context notes\n{notes}")

        findings = "\n".join(
            f"- **{finding.title}** ({finding.kind}, {finding.confidence})" for finding in document.findings
        )
        sections.append(f"## Findings\n{findings}")

        return "\n\n".join(sections) + "\n"

    def to_html(self, document: ReviewDocument) -> str:
        esc = html.escape

        groups = "\n".join(
            f"<section><h2>{esc(group.title)}</h2><p>{esc(group.rationale)}</p>"
            f"<p>Risk: {esc(group.risk)}</p></section>"
            for group in document.groups
        )
        notes = "\n".join(
            f"<article><h3>{esc(note.title)}</h3>"
            f"<p>{esc(note.body_markdown).replace(chr(10), '<br/>')}</p></article>"
            for note in document.context_notes
        )
        findings = "\n".join(
            f"<li><strong>{esc(finding.title)}</strong> ({esc(finding.kind)}, {finding.confidence})</li>"
            for finding in document.findings
        )

        return (
            "<!doctype html><html><head><meta charset=\"utf-8\"/>"
            f"<title>{esc(self.title)} {esc(document.run_id)}</title></head><body>"
            f"<h1>{esc(self.title)}</h1>{groups}"
            f"<h2>Context notes</h2>{notes}"
            f"<h2>Findings</h2><ul>{findings}</ul>"
            "</body></html>\n"
        )
