"""
PDF utility functions for extracting page text and metadata.
"""

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

logger = logging.getLogger(__name__)

# Pages with less extracted text than this are treated as scans
MIN_TEXT_CHARS = 20

PDF_INFO_FIELDS = ("title", "author", "subject", "creator", "producer")


def ocr_image(image, lang: str = "eng+vie") -> str:
    """
    Run Tesseract OCR on a PIL image.

    Args:
        image: PIL Image
        lang: Tesseract language codes

    Returns:
        Recognized text, stripped
    """
    try:
        import pytesseract
    except ImportError:
        raise ImportError(
            "pytesseract package not installed. "
            "Install it with: pip install pytesseract"
        )
    return pytesseract.image_to_string(image, lang=lang).strip()


class PDFExtractor:
    """
    Extracts per-page text from PDF documents.

    This class is responsible for:
    1. Reading the text layer of every page
    2. Falling back to OCR for pages without a usable text layer
    3. Extracting basic metadata from PDFs
    """

    def __init__(self, zoom: float = 2.0, ocr_lang: str = "eng+vie"):
        """
        Initialize the PDF extractor.

        Args:
            zoom: Render scale for OCR'd pages (default: 2x)
            ocr_lang: Tesseract language codes used for scanned pages
        """
        self.zoom = zoom
        self.ocr_lang = ocr_lang

    def extract_page_texts(self, pdf_path: Union[str, Path]) -> List[str]:
        """
        Extract the text of each page of a PDF document.

        Args:
            pdf_path: Path to the PDF document

        Returns:
            One string per page, in page order
        """
        try:
            import fitz  # PyMuPDF
        except ImportError:
            raise ImportError(
                "PyMuPDF package not installed. "
                "Install it with: pip install pymupdf"
            )

        pdf_path = Path(pdf_path)
        logger.info(f"Extracting text from PDF: {pdf_path}")

        texts = []
        with fitz.open(pdf_path) as pdf_document:
            for page_number, page in enumerate(pdf_document, start=1):
                text = page.get_text().strip()
                if len(text) < MIN_TEXT_CHARS:
                    logger.info(f"Page {page_number} has no usable text layer, running OCR")
                    text = self._ocr_page(page, fitz)
                texts.append(text)

        logger.info(f"Extracted text from {len(texts)} PDF pages")
        return texts

    def _ocr_page(self, page, fitz) -> str:
        from PIL import Image

        pix = page.get_pixmap(matrix=fitz.Matrix(self.zoom, self.zoom))
        img = Image.open(io.BytesIO(pix.tobytes("png")))
        return ocr_image(img, lang=self.ocr_lang)

    def get_pdf_metadata(self, pdf_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Document information fields and page count of a PDF.

        Missing information fields are None. A PDF that cannot be read
        yields ``{"error": message}`` so that output files still get written.
        """
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError(
                "pypdf package not installed. "
                "Install it with: pip install pypdf"
            )

        try:
            reader = PdfReader(str(pdf_path))
            info = reader.metadata
            metadata: Dict[str, Any] = {name: getattr(info, name, None) or None for name in PDF_INFO_FIELDS}
            metadata["page_count"] = len(reader.pages)
        except Exception as e:
            logger.error(f"Could not read PDF metadata from {pdf_path}: {str(e)}")
            return {"error": str(e)}

        logger.debug(f"PDF metadata for {pdf_path}: {metadata}")
        return metadata
