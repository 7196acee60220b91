#!/usr/bin/env python3
"""
Create a printable PDF of a Spot It deck.

Cards are laid out nine per US letter page (3 x 3). Each card is a square
region; symbol placements are scaled from the layout canvas to that region,
so the print matches the rendered previews exactly.
"""

import argparse
import io
import logging
import os
from typing import Callable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from generate_card import DEFAULT_CANVAS_SIZE, Placement

logger = logging.getLogger(__name__)

# Constants
PDF_OUTPUT = "spot_it_cards_printable.pdf"
BACKGROUND_PDF = "background.pdf"

# US letter page in inches
PAGE_WIDTH_IN = 8.5
PAGE_HEIGHT_IN = 11.0
MARGIN_IN = 0.5

CARDS_PER_ROW = 3
CARDS_PER_COL = 3
CARDS_PER_PAGE = CARDS_PER_ROW * CARDS_PER_COL

CARD_FILL_FRAC = 0.95  # card square as a fraction of its grid cell
CARD_CORNER_RADIUS_IN = 0.1
SYMBOL_PADDING_FRAC = 0.05

# Cut border
CUT_LINE_GRAY = 180 / 255
CUT_LINE_WIDTH_IN = 0.01
CUT_LINE_DASH_IN = (0.08, 0.04)

ProgressCallback = Callable[[int, int, str], None]


def page_count(card_count: int) -> int:
    return (card_count + CARDS_PER_PAGE - 1) // CARDS_PER_PAGE


def calculate_card_layout() -> Tuple[float, float, float]:
    """
    Calculate the grid cell and card size for a page.

    Returns:
        Tuple of (cell_width, cell_height, card_size) in inches
    """
    cell_width = (PAGE_WIDTH_IN - 2 * MARGIN_IN) / CARDS_PER_ROW
    cell_height = (PAGE_HEIGHT_IN - 2 * MARGIN_IN) / CARDS_PER_COL
    card_size = min(cell_width, cell_height) * CARD_FILL_FRAC
    return cell_width, cell_height, card_size


def card_origin(position_on_page: int) -> Tuple[float, float]:
    """Top-left corner (inches, measured from the page's top-left) of a card slot."""
    cell_width, cell_height, card_size = calculate_card_layout()
    row = position_on_page // CARDS_PER_ROW
    col = position_on_page % CARDS_PER_ROW
    x = MARGIN_IN + col * cell_width + (cell_width - card_size) / 2
    y = MARGIN_IN + row * cell_height + (cell_height - card_size) / 2
    return x, y


def scale_placement(
    placement: Placement,
    card_x: float,
    card_y: float,
    card_size: float,
    layout_canvas_size: float = DEFAULT_CANVAS_SIZE,
) -> Placement:
    """
    Map a layout placement into a card region, clamped inside its padding.

    All values are in the card region's units with a top-left origin.
    """
    scaled = placement.scaled(card_size / layout_canvas_size)
    padding = card_size * SYMBOL_PADDING_FRAC
    x = card_x + scaled.x
    y = card_y + scaled.y
    x = max(card_x + padding, min(x, card_x + card_size - padding - scaled.size))
    y = max(card_y + padding, min(y, card_y + card_size - padding - scaled.size))
    return Placement(x, y, scaled.size, scaled.rotation)


def prepare_image(artwork: Optional[bytes]) -> Optional[ImageReader]:
    """Decode artwork to an RGBA ImageReader; None if absent or unreadable."""
    if artwork is None:
        return None
    try:
        with Image.open(io.BytesIO(artwork)) as img:
            return ImageReader(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("Could not decode artwork: %s", e)
        return None


def draw_card(
    c: canvas.Canvas,
    card: Sequence[int],
    layout: Sequence[Placement],
    images: Sequence[Optional[ImageReader]],
    x_in: float,
    y_in: float,
    size_in: float,
    layout_canvas_size: float = DEFAULT_CANVAS_SIZE,
) -> int:
    """Draw one card at (x_in, y_in) from the page's top-left. Returns symbols drawn."""
    x_pt = x_in * inch
    y_pt = (PAGE_HEIGHT_IN - y_in - size_in) * inch
    size_pt = size_in * inch
    radius_pt = CARD_CORNER_RADIUS_IN * inch

    # White fill with a thin dashed cut border
    c.setFillColorRGB(1, 1, 1)
    c.setStrokeColorRGB(CUT_LINE_GRAY, CUT_LINE_GRAY, CUT_LINE_GRAY)
    c.setLineWidth(CUT_LINE_WIDTH_IN * inch)
    c.setDash(CUT_LINE_DASH_IN[0] * inch, CUT_LINE_DASH_IN[1] * inch)
    c.roundRect(x_pt, y_pt, size_pt, size_pt, radius_pt, stroke=1, fill=1)
    c.setDash()

    drawn = 0
    for position, symbol_index in enumerate(card):
        image = images[symbol_index] if symbol_index < len(images) else None
        if image is None or position >= len(layout):
            logger.debug("Skipping symbol %d: no artwork or placement", symbol_index)
            continue

        p = scale_placement(layout[position], x_in, y_in, size_in, layout_canvas_size)
        half_pt = p.size * inch / 2
        center_x = (p.x + p.size / 2) * inch
        center_y = (PAGE_HEIGHT_IN - p.y - p.size / 2) * inch

        c.saveState()
        c.translate(center_x, center_y)
        # Layout rotation is clockwise on a top-left-origin canvas
        c.rotate(-p.rotation)
        c.drawImage(image, -half_pt, -half_pt, 2 * half_pt, 2 * half_pt, mask="auto", preserveAspectRatio=True, anchor="c")
        c.restoreState()
        drawn += 1

    return drawn


def add_cutting_guides(canvas_obj: canvas.Canvas) -> None:
    """Draw light dashed lines along the grid cell boundaries."""
    cell_width, cell_height, _ = calculate_card_layout()

    canvas_obj.saveState()
    canvas_obj.setStrokeColorRGB(0.7, 0.7, 0.7)
    canvas_obj.setLineWidth(0.5)
    canvas_obj.setDash(2, 2)

    for col in range(CARDS_PER_ROW + 1):
        x = (MARGIN_IN + col * cell_width) * inch
        canvas_obj.line(x, MARGIN_IN * inch, x, (PAGE_HEIGHT_IN - MARGIN_IN) * inch)

    for row in range(CARDS_PER_COL + 1):
        y = (PAGE_HEIGHT_IN - MARGIN_IN - row * cell_height) * inch
        canvas_obj.line(MARGIN_IN * inch, y, (PAGE_WIDTH_IN - MARGIN_IN) * inch, y)

    canvas_obj.restoreState()


def create_pdf_with_cards(
    cards: Sequence[Sequence[int]],
    layouts: Sequence[Sequence[Placement]],
    artworks: Sequence[Optional[bytes]],
    output_pdf: str = PDF_OUTPUT,
    layout_canvas_size: float = DEFAULT_CANVAS_SIZE,
    add_guides: bool = False,
    on_progress: Optional[ProgressCallback] = None,
) -> int:
    """
    Create a PDF with all the cards arranged for printing.

    Args:
        cards: Symbol indices per card
        layouts: Placements per card, aligned with cards
        artworks: Artwork bytes per symbol index; None entries are skipped
        output_pdf: Output PDF filename
        layout_canvas_size: Canvas size the layouts were generated for
        add_guides: Whether to draw cutting guides on each page
        on_progress: Called with (page, total_pages, status)

    Returns:
        Number of pages written
    """
    if len(layouts) < len(cards):
        raise ValueError(f"Got {len(layouts)} layouts for {len(cards)} cards")

    if on_progress:
        on_progress(0, 1, "Preparing images for PDF...")
    images = [prepare_image(artwork) for artwork in artworks]
    valid = sum(1 for img in images if img is not None)
    logger.info("PDF generation: %d/%d valid images", valid, len(images))

    _, _, card_size = calculate_card_layout()
    total_pages = page_count(len(cards))

    c = canvas.Canvas(output_pdf, pagesize=letter)
    print(f"Creating PDF with {len(cards)} cards on {total_pages} pages...")

    for page_num in range(total_pages):
        if on_progress:
            on_progress(page_num + 1, total_pages, f"Generating page {page_num + 1} of {total_pages}...")

        if add_guides:
            add_cutting_guides(c)

        start_idx = page_num * CARDS_PER_PAGE
        end_idx = min(start_idx + CARDS_PER_PAGE, len(cards))
        for card_index in range(start_idx, end_idx):
            x_in, y_in = card_origin(card_index - start_idx)
            draw_card(c, cards[card_index], layouts[card_index], images, x_in, y_in, card_size, layout_canvas_size)

        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica", 8)
        c.drawString(MARGIN_IN * inch, MARGIN_IN * inch / 2, f"Page {page_num + 1} of {total_pages}")
        c.showPage()

    c.save()
    if on_progress:
        on_progress(total_pages, total_pages, "PDF ready!")
    print(f"PDF created successfully: {output_pdf}")
    return total_pages


def add_background_pages(cards_pdf_path: str, background_pdf_path: str, output_pdf: str) -> int:
    """
    Insert a card-back page after each card page for double-sided printing.

    Args:
        cards_pdf_path: Path to the PDF with card pages
        background_pdf_path: PDF whose first page is the card back
        output_pdf: Output PDF filename with backs inserted

    Returns:
        Number of pages written
    """
    print("Adding background pages for double-sided printing...")

    cards_reader = PdfReader(cards_pdf_path)
    background_page = PdfReader(background_pdf_path).pages[0]

    writer = PdfWriter()
    for page in cards_reader.pages:
        writer.add_page(page)
        writer.add_page(background_page)

    with open(output_pdf, "wb") as output_file:
        writer.write(output_file)

    print(f"Background pages added successfully: {output_pdf}")
    return len(writer.pages)


def main():
    """Main function to create the printable PDF."""
    from artwork_cache import ArtworkCache
    from generate_all_cards import DEFAULT_ORDER, create_spot_it_combinations, get_symbols_per_card, get_total_symbols
    from generate_card import generate_all_layouts

    parser = argparse.ArgumentParser(description="Create a printable PDF of a Spot It deck")
    parser.add_argument("--output", "-o", default=PDF_OUTPUT, help="Output PDF filename")
    parser.add_argument("--order", "-n", type=int, default=DEFAULT_ORDER, help="Projective plane order (2, 3, 5 or 7)")
    parser.add_argument("--images", "-i", default="images", help="Directory containing numbered artwork")
    parser.add_argument("--canvas", type=float, default=DEFAULT_CANVAS_SIZE, help="Layout canvas size")
    parser.add_argument("--add-guides", action="store_true", help="Add cutting guide lines")
    parser.add_argument("--add-backs", action="store_true",
                        help="Insert a back page after each card page for double-sided printing")
    parser.add_argument("--backs-file", default=BACKGROUND_PDF, help="PDF whose first page is the card back")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        cards = create_spot_it_combinations(args.order)
        layouts = generate_all_layouts(len(cards), get_symbols_per_card(args.order), args.canvas)
        artworks = ArtworkCache(args.images).get_all(get_total_symbols(args.order))
        missing = sum(1 for a in artworks if a is None)
        if missing:
            print(f"Warning: {missing}/{len(artworks)} symbols have no artwork; their slots stay blank.")

        if args.add_backs and not os.path.exists(args.backs_file):
            print(f"Warning: {args.backs_file} not found. Creating PDF without backs.")
            args.add_backs = False

        cards_pdf = args.output + ".cards.tmp" if args.add_backs else args.output
        pages = create_pdf_with_cards(
            cards, layouts, artworks, cards_pdf,
            layout_canvas_size=args.canvas,
            add_guides=args.add_guides,
        )

        if args.add_backs:
            pages = add_background_pages(cards_pdf, args.backs_file, args.output)
            os.remove(cards_pdf)

        print("\nPDF created successfully!")
        print(f"Output file: {args.output}")
        print(f"Total cards: {len(cards)}")
        print(f"Pages: {pages}")
        print(f"Cards per page: {CARDS_PER_PAGE}")

    except Exception as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
