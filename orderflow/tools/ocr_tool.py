import io
import logging
from typing import List, Tuple
from PIL import Image, ImageFilter, ImageOps
import pytesseract
import pdf2image

logger = logging.getLogger(__name__)

BINARIZE_THRESHOLD = 150

class OCRTool:
    """Tesseract OCR over rendered PDF pages or a single image. Blocking; call from a worker thread."""

    def __init__(self, languages: str = "spa+eng", dpi: int = 300):
        self.languages = languages
        self.dpi = dpi

    def render(self, content: bytes, mime_type: str) -> List[Image.Image]:
        if mime_type == "application/pdf":
            return pdf2image.convert_from_bytes(content, dpi=self.dpi)
        image = Image.open(io.BytesIO(content))
        image.load()
        return [image]

    @staticmethod
    def preprocess(image: Image.Image) -> Image.Image:
        """grayscale -> autocontrast -> sharpen -> binarize"""
        image = ImageOps.grayscale(image)
        image = ImageOps.autocontrast(image)
        image = image.filter(ImageFilter.SHARPEN)
        return image.point(lambda p: 255 if p > BINARIZE_THRESHOLD else 0)

    def _read_page(self, image: Image.Image) -> Tuple[List[str], List[float]]:
        data = pytesseract.image_to_data(image, lang=self.languages, output_type=pytesseract.Output.DICT)
        lines: dict = {}
        confidences = []
        for i, word in enumerate(data["text"]):
            word = (word or "").strip()
            conf = float(data["conf"][i])
            if not word or conf < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)
            confidences.append(conf)
        return [" ".join(words) for words in lines.values()], confidences

    def recognize(self, content: bytes, mime_type: str) -> Tuple[str, float]:
        """Returns (text, confidence in [0, 1])."""
        page_texts = []
        confidences: List[float] = []
        for page in self.render(content, mime_type):
            lines, page_conf = self._read_page(self.preprocess(page))
            page_texts.append("\n".join(lines))
            confidences.extend(page_conf)

        confidence = (sum(confidences) / len(confidences) / 100) if confidences else 0.0
        logger.debug(f"OCR read {len(confidences)} words, mean confidence {confidence:.2f}")
        return "\n\n".join(page_texts).strip(), min(1.0, confidence)
