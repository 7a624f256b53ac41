# app/lib/pdf.py
from io import BytesIO
from typing import Optional

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app import logger
from app.features.storybook.schemas import Story
from app.lib.imaging import fetch_image_bytes

log = logger.get_logger(__name__)

MARGIN = 48
BODY_FONT = "Helvetica"
BODY_SIZE = 16
LINE_HEIGHT = 22

def _load_image(image_url: Optional[str]) -> Optional[Image.Image]:
    data = fetch_image_bytes(image_url)
    if not data:
        return None
    try:
        img = Image.open(BytesIO(data))
        img.load()
        return img.convert("RGB")
    except (OSError, ValueError) as e:
        log.warning(f"could not decode illustration: {e}")
        return None

def _draw_centered_lines(c: canvas.Canvas, text: str, *, top: float, font: str, size: int, width: float) -> float:
    c.setFont(font, size)
    y = top
    for line in simpleSplit(text, font, size, width):
        c.drawCentredString(A4[0] / 2, y, line)
        y -= size * 1.4
    return y

def _draw_title_page(c: canvas.Canvas, story: Story) -> None:
    w, h = A4
    usable = w - 2 * MARGIN
    y = _draw_centered_lines(c, story.title, top=h * 0.62, font="Helvetica-Bold", size=32, width=usable)
    y = _draw_centered_lines(c, story.theme, top=y - 24, font="Helvetica-Oblique", size=16, width=usable)
    _draw_centered_lines(c, f"“{story.moral}”", top=y - 24, font="Helvetica-Oblique", size=14, width=usable)
    c.showPage()

def _draw_story_page(c: canvas.Canvas, page, img: Optional[Image.Image]) -> None:
    w, h = A4
    usable_w = w - 2 * MARGIN
    image_box_h = h * 0.6
    top = h - MARGIN

    if img is not None:
        img_ratio = img.width / img.height
        if usable_w / image_box_h > img_ratio:
            ih = image_box_h
            iw = ih * img_ratio
        else:
            iw = usable_w
            ih = iw / img_ratio
        x = (w - iw) / 2
        c.drawImage(ImageReader(img), x, top - ih, iw, ih)
        text_top = top - ih - 36
    else:
        text_top = top - image_box_h - 36

    c.setFont(BODY_FONT, BODY_SIZE)
    y = text_top
    for line in simpleSplit(page.text, BODY_FONT, BODY_SIZE, usable_w):
        c.drawString(MARGIN, y, line)
        y -= LINE_HEIGHT

    c.setFont(BODY_FONT, 10)
    c.drawCentredString(w / 2, MARGIN / 2, str(page.page_number))
    c.showPage()

def make_storybook_pdf(story: Story, pdf_name: str = "storybook.pdf") -> str:
    """
    Title page (title, theme, moral), then one A4 page per story page with its
    illustration on top and the text below. Pages whose illustration cannot be
    resolved are rendered text-only.
    """
    log.info(f"Rendering {len(story.pages)} pages into PDF: {pdf_name}")
    c = canvas.Canvas(pdf_name, pagesize=A4)
    c.setTitle(story.title)
    _draw_title_page(c, story)
    for page in story.pages:
        _draw_story_page(c, page, _load_image(page.image_url))
    c.save()
    log.info(f"Storybook saved as {pdf_name}")
    return pdf_name
