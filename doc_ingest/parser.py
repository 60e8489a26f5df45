"""
Parsing of source documents into ordered, 1-indexed pages.

Supports PDF (text layer with OCR fallback), DOCX, plain text and markdown,
single images and folders of page images.
"""

import logging
import mimetypes
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import ParseFailure
from .models import Page
from .utils.pdf import PDFExtractor, ocr_image

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIMES = ("text/plain", "text/markdown")
IMAGE_MIMES = ("image/png", "image/jpeg", "image/jpg", "image/tiff")

_EXTENSION_MIMES = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

# Header/footer detection for scanned page folders
EDGE_LINES = 3
REPEAT_RATIO = 0.3
MIN_REPEATS = 2

PAGE_NUMBER_PATTERNS = [
    re.compile(r"^\s*\d+\s*$"),
    re.compile(r"^[\-–—]\s*\d+\s*[\-–—]$"),
    re.compile(r"^Page\s+\d+(\s+of\s+\d+)?$", re.IGNORECASE),
    re.compile(r"^Trang\s+\d+(\s+của\s+\d+)?$", re.IGNORECASE),
]

_FILENAME_PAGE_RE = re.compile(r"-(\d+)\.[^.]+$")
_ANY_NUMBER_RE = re.compile(r"\d+")


def infer_mime_type(path: Union[str, Path]) -> Optional[str]:
    suffix = Path(path).suffix.lower()
    if suffix in _EXTENSION_MIMES:
        return _EXTENSION_MIMES[suffix]
    return mimetypes.guess_type(str(path))[0]


def page_number_from_filename(path: Union[str, Path]) -> int:
    """
    Page number encoded in an image file name.

    ``scan-007.png`` gives 7. Without a ``-N`` suffix the first number in the
    name is used, and 0 when there is none.
    """
    name = Path(path).name
    match = _FILENAME_PAGE_RE.search(name)
    if match:
        return int(match.group(1))
    match = _ANY_NUMBER_RE.search(name)
    return int(match.group(0)) if match else 0


def is_page_number_line(line: str) -> bool:
    return any(pattern.match(line.strip()) for pattern in PAGE_NUMBER_PATTERNS)


def find_repeated_edge_lines(page_texts: List[str]) -> set:
    """
    Lines among the first and last few lines of a page that repeat across
    enough pages to be running headers or footers.
    """
    counts: Counter = Counter()
    for text in page_texts:
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        # A line counts once per page even when it is both header and footer
        counts.update(set(lines[:EDGE_LINES] + lines[-EDGE_LINES:]))

    threshold = max(MIN_REPEATS, REPEAT_RATIO * len(page_texts))
    return {line for line, count in counts.items() if count >= threshold}


def remove_headers_footers(page_texts: List[str]) -> List[str]:
    """
    Strip running headers, footers and page numbers from page texts.

    Only lines at the top or bottom edge of a page are candidates, so a
    repeated phrase inside the body is left alone.
    """
    repeated = find_repeated_edge_lines(page_texts) if len(page_texts) >= MIN_REPEATS else set()

    cleaned = []
    for text in page_texts:
        lines = [line for line in text.split("\n")]
        content_indexes = [i for i, line in enumerate(lines) if line.strip()]
        edge = set(content_indexes[:EDGE_LINES] + content_indexes[-EDGE_LINES:])
        kept = [
            line for i, line in enumerate(lines)
            if not (i in edge and (line.strip() in repeated or is_page_number_line(line)))
        ]
        cleaned.append("\n".join(kept).strip())
    return cleaned


class DocumentParser:
    """
    Turns source files into lists of Page objects.

    Unreadable or unsupported input raises ParseFailure.
    """

    def __init__(self, pdf_extractor: Optional[PDFExtractor] = None, ocr_lang: str = "eng+vie"):
        self.pdf_extractor = pdf_extractor or PDFExtractor(ocr_lang=ocr_lang)
        self.ocr_lang = ocr_lang

    def parse_to_pages(self, path: Union[str, Path], mime_type: Optional[str] = None) -> List[Page]:
        """
        Parse a document into pages.

        Args:
            path: Path to a file, or to a folder of page images
            mime_type: MIME type, inferred from the extension when omitted

        Returns:
            Ordered pages, numbered from 1
        """
        path = Path(path)
        if path.is_dir():
            return self.parse_image_folder(path)
        if not path.exists():
            raise ParseFailure(str(path), "file not found")

        mime_type = mime_type or infer_mime_type(path)
        logger.info(f"Parsing {path.name} as {mime_type}")

        try:
            if mime_type == PDF_MIME:
                texts = self.pdf_extractor.extract_page_texts(path)
            elif mime_type == DOCX_MIME:
                texts = [self._read_docx(path)]
            elif mime_type in TEXT_MIMES:
                texts = path.read_text(encoding="utf-8").split("\f")
            elif mime_type in IMAGE_MIMES:
                texts = [self._ocr_file(path)]
            else:
                raise ParseFailure(str(path), f"unsupported file type: {mime_type}")
        except ParseFailure:
            raise
        except ImportError:
            raise
        except Exception as e:
            logger.error(f"Error parsing {path}: {str(e)}")
            raise ParseFailure(str(path), str(e)) from e

        pages = [Page(page_number=i, content=text.strip()) for i, text in enumerate(texts, start=1)]
        if not any(page.content for page in pages):
            raise ParseFailure(str(path), "no text could be extracted")

        logger.info(f"Parsed {len(pages)} pages from {path.name}")
        return pages

    def parse_image_folder(self, folder: Union[str, Path]) -> List[Page]:
        """
        OCR a folder of page images into pages.

        Images are ordered by the page number in their file names and
        running headers and footers are removed.
        """
        folder = Path(folder)
        images = [
            p for p in folder.iterdir()
            if p.is_file() and infer_mime_type(p) in IMAGE_MIMES
        ]
        if not images:
            raise ParseFailure(str(folder), "no images found in folder")

        images.sort(key=page_number_from_filename)
        logger.info(f"Processing {len(images)} page images from {folder}")

        texts = []
        for image_path in images:
            try:
                texts.append(self._ocr_file(image_path))
            except ImportError:
                raise
            except Exception as e:
                logger.error(f"Error processing image {image_path.name}: {str(e)}")
                raise ParseFailure(str(image_path), str(e)) from e

        texts = remove_headers_footers(texts)
        return [Page(page_number=i, content=text) for i, text in enumerate(texts, start=1)]

    def get_metadata(self, path: Union[str, Path]) -> Dict[str, Any]:
        """Basic document metadata. Only PDFs carry more than the page count."""
        if infer_mime_type(path) == PDF_MIME:
            return self.pdf_extractor.get_pdf_metadata(path)
        return {"title": Path(path).stem}

    def _ocr_file(self, path: Path) -> str:
        from PIL import Image

        with Image.open(path) as img:
            return ocr_image(img, lang=self.ocr_lang)

    @staticmethod
    def _read_docx(path: Path) -> str:
        try:
            import docx
        except ImportError:
            raise ImportError(
                "python-docx package not installed. "
                "Install it with: pip install python-docx"
            )

        blocks = []
        for paragraph in docx.Document(str(path)).paragraphs:
            text = paragraph.text.strip()
            if not text:
                continue
            style = paragraph.style.name if paragraph.style is not None else ""
            match = re.match(r"Heading\s*(\d)", style)
            if match:
                text = "#" * int(match.group(1)) + " " + text
            elif style == "Title":
                text = "# " + text
            blocks.append(text)
        return "\n\n".join(blocks)
