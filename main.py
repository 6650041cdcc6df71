import argparse
import logging
import sys

from inkpatch import InkpatchError, __version__
from inkpatch.config import ExportSettings
from inkpatch.core.session import EditorSession

logger = logging.getLogger("inkpatch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bake a saved annotation file into an exported copy of a PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py report.pdf report.json report-edited.pdf
  python main.py report.pdf report.json out.pdf --keep-annotations -v
        """,
    )
    parser.add_argument("source", help="Source PDF file")
    parser.add_argument("annotations", help="Annotation JSON file (pages + annotations)")
    parser.add_argument("output", help="Output PDF file")
    parser.add_argument("--fallback-font", help="Unicode fallback font file")
    parser.add_argument("--keep-annotations", action="store_true",
                        help="Keep annotations already present in the source PDF")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    """
    Export a saved annotation file without starting the editor.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    settings = ExportSettings(strip_existing_annotations=not args.keep_annotations)
    if args.fallback_font:
        settings.fallback_font_path = args.fallback_font

    session = EditorSession(export_settings=settings)
    try:
        session.open_document(args.source)
        count = session.load_annotations(args.annotations)
    except (InkpatchError, OSError) as e:
        logger.error("%s", e)
        return 1

    logger.info("Exporting %d annotations on %d pages", count, len(session.pages))

    results = []
    worker = session.export_to_file(args.output, start=False)
    worker.finished.connect(lambda ok, message: results.append((ok, message)))
    # Run in this thread; there is no event loop to hand results back to
    worker.run()

    ok, message = results[-1] if results else (False, "Export did not finish")
    if not ok:
        logger.error("%s", message)
        return 1

    logger.info("%s", message)
    return 0


if __name__ == '__main__':
    sys.exit(main())
