"""Command-line entry point: load a DOCX, summarize it and optionally round-trip it."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from docx_builder.document import Document
from docx_builder.utils.debug import DebugDumper
from docx_builder.utils.logger import get_logger

LOGGER = get_logger(__name__)


def load_document(docx_path: Path) -> Document:
    """Open a DOCX package and parse its main body."""
    return Document.open(docx_path)


def summarize(document: Document) -> Dict[str, int]:
    return {
        "paragraphs": len(document.paragraphs),
        "tables": len(document.tables),
        "sections": len(document.sections),
        "unresolved_numbering": len(document.unresolved_numbering()),
    }


def roundtrip(docx_path: Path, output_path: Path) -> Path:
    """Parse ``docx_path`` and write it back out through the serializer."""
    with load_document(docx_path) as document:
        return document.save(output_path)


def main(docx_file: str, dump_dir: Optional[str] = None, output: Optional[str] = None) -> Dict[str, int]:
    docx_path = Path(docx_file).resolve()
    if not docx_path.exists():
        raise FileNotFoundError(f"DOCX file not found: {docx_path}")

    LOGGER.info("Loading %s", docx_path.name)
    with load_document(docx_path) as document:
        summary = summarize(document)
        LOGGER.info(
            "%s: %d paragraphs, %d tables, %d sections",
            docx_path.name,
            summary["paragraphs"],
            summary["tables"],
            summary["sections"],
        )
        if dump_dir is not None:
            target = DebugDumper(Path(dump_dir).resolve()).dump(document.elements)
            LOGGER.info("Wrote model dump to %s", target)
        if output is not None:
            saved = document.save(Path(output).resolve())
            LOGGER.info("Re-saved document to %s", saved)
    return summary


if __name__ == "__main__":  # pragma: no cover
    import argparse

    parser = argparse.ArgumentParser(description="Inspect a DOCX file and round-trip it through the document model")
    parser.add_argument("docx_file", help="Path to the input .docx file")
    parser.add_argument("--dump", help="Directory to write the JSON model dump")
    parser.add_argument("--output", help="Path to write the re-serialized .docx")

    args = parser.parse_args()
    main(args.docx_file, dump_dir=args.dump, output=args.output)
