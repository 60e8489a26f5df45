#!/usr/bin/env python3
import os
import argparse
import logging
import sys
from pathlib import Path

from doc_ingest.chunker import ChunkAssembler
from doc_ingest.exceptions import ParseFailure
from doc_ingest.models import ChunkingConfig, document_name_from_path
from doc_ingest.transcript import extract_youtube_id

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("doc_ingest.log")
    ]
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Document ingestion: repair, chunk and embed documents for retrieval"
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "-i", "--input",
        help="Path to the input file (PDF, DOCX, TXT, MD, image) or a folder of page images"
    )
    source.add_argument(
        "--youtube",
        help="YouTube video URL or id; requires --transcript"
    )

    parser.add_argument("--transcript", help="Transcript file (.srt or .txt) for --youtube")
    parser.add_argument(
        "-o", "--output",
        help="Path to save the output JSON file. If not provided, will use the input name with _chunks.json in ./output."
    )
    parser.add_argument("--title", default="", help="Title for every chunk (documents) or the video title (transcripts)")
    parser.add_argument("--domains", default="", help="Comma-separated domain tags, e.g. finance,legal")
    parser.add_argument("--chunks-per-page", type=int, help="Maximum chunks per page")
    parser.add_argument("--chunk-overlap", type=float, help="Overlap between chunks as a fraction in [0, 1)")
    parser.add_argument("--no-boundaries", action="store_true", help="Slice fixed windows instead of respecting structure")
    parser.add_argument("--no-headings", action="store_true", help="Do not keep headings attached to their content")
    parser.add_argument("--no-titles", action="store_true", help="Skip title generation")
    parser.add_argument("--no-summaries", action="store_true", help="Skip summary generation")
    parser.add_argument("--enhance", action="store_true", help="Store an AI-enhanced version of each chunk")
    parser.add_argument("--ingest", action="store_true", help="Store chunks in the configured vector store")
    parser.add_argument("--replace", action="store_true", help="Replace chunks already stored for the same document")
    return parser


def chunking_config_from_args(args) -> ChunkingConfig:
    options = {
        "respect_boundaries": not args.no_boundaries,
        "preserve_headings": not args.no_headings,
        "generate_titles": not args.no_titles,
        "generate_summaries": not args.no_summaries,
        "enhance_content": args.enhance,
    }
    if args.chunks_per_page is not None:
        options["chunks_per_page"] = args.chunks_per_page
    if args.chunk_overlap is not None:
        options["chunk_overlap"] = args.chunk_overlap
    return ChunkingConfig.from_dict(options)


def default_output_path(name: str) -> str:
    output_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "output")
    return os.path.join(output_dir, f"{name}_chunks.json")


def main(argv=None):
    """
    Main entry point for the document ingestion pipeline.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.youtube and not args.transcript:
        parser.error("--youtube requires --transcript")

    try:
        chunking_config = chunking_config_from_args(args)
    except ValueError as e:
        parser.error(str(e))
    domains = [d.strip() for d in args.domains.split(",") if d.strip()]

    source_path = os.path.abspath(args.input or args.transcript)
    if not os.path.exists(source_path):
        logger.error(f"Input not found: {source_path}")
        sys.exit(1)

    if args.input:
        name = document_name_from_path(source_path)
    else:
        name = f"youtube_{extract_youtube_id(args.youtube) or args.youtube}"
    output_path = os.path.abspath(args.output) if args.output else default_output_path(name)

    logger.info(f"Starting ingestion of {source_path}")
    logger.info(f"Output will be saved to {output_path}")

    assembler = ChunkAssembler(chunking_config=chunking_config)
    source_metadata = {}
    try:
        if args.input:
            chunks = assembler.process_document(source_path, domains=domains, document_title=args.title)
            source_metadata = assembler.parser.get_metadata(source_path)
            if args.ingest:
                assembler.ingest(chunks, replace_existing=args.replace)
        else:
            transcript = Path(source_path).read_text(encoding="utf-8")
            if args.ingest:
                chunks = assembler.ingest_transcript(
                    transcript, args.youtube, args.title or None, domains or None, replace_existing=args.replace
                )
            else:
                chunks = assembler.assemble_transcript(transcript, args.youtube, args.title or None, domains or None)
    except ParseFailure as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid input: {str(e)}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error during processing: {str(e)}", exc_info=True)
        sys.exit(1)

    assembler.save_chunks(chunks, output_path, source_metadata)
    logger.info(f"Processing complete. {len(chunks)} chunks saved to {output_path}")


if __name__ == "__main__":
    main()
