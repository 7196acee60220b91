import argparse
import io
import logging
import math
import os
import random
from typing import List, NamedTuple, Optional, Sequence

from PIL import Image, ImageDraw, UnidentifiedImageError

logger = logging.getLogger(__name__)

# =========================
# Constants Section
# =========================

# Layout canvas (placements are expressed in these units)
DEFAULT_CANVAS_SIZE = 200
MIN_SYMBOLS_PER_CARD = 3
MAX_SYMBOLS_PER_CARD = 8

# Rendered card image
DEFAULT_OUTPUT_SIZE = 1200
DEFAULT_BG_COLOR = "#FFFFFF"
CARD_CORNER_RADIUS_FRAC = 0.05

# Card base drawing
EDGE_STROKE_COLOR = (210, 210, 210, 255)
EDGE_STROKE_WIDTH = 4
EDGE_STROKE_INSET = 2

# Radial scatter placement
# Size categories as a fraction of the canvas: large, medium-large, medium,
# medium-small, small, smallest. Shuffled per card.
SIZE_CATEGORIES = [0.42, 0.38, 0.34, 0.30, 0.26, 0.22]
BASE_RADIUS_FRAC = 0.28
EDGE_PADDING_FRAC = 0.02
ANGLE_JITTER_RAD = 0.2
SIZE_VARIATION = 0.15  # +/- 7.5%
DIST_VARIATION_MIN = 0.6
DIST_VARIATION_RANGE = 0.25
DIST_BASE_FACTOR = 1.2
CENTER_PULL = 0.4

# Seed layout: card_index * SEED_STRIDE, placement seeds in [0, 32),
# shuffle seeds in [SHUFFLE_SEED_OFFSET, SHUFFLE_SEED_OFFSET + 6)
SEED_STRIDE = 100
SEEDS_PER_PLACEMENT = 4
SHUFFLE_SEED_OFFSET = 50

# Debug overlay
DEBUG_OVERLAY_PLACEMENT_OUTLINE = (255, 0, 0, 120)
DEBUG_OVERLAY_PLACEMENT_WIDTH = 2
DEBUG_OVERLAY_CROSSHAIR_COLOR = (255, 0, 0, 180)
DEBUG_OVERLAY_CROSSHAIR_WIDTH = 2
DEBUG_OVERLAY_CROSSHAIR_SIZE = 6

# =========================
# End of Constants Section
# =========================


class Placement(NamedTuple):
    """Square slot for one symbol, top-left origin, in layout canvas units."""

    x: float
    y: float
    size: float
    rotation: float

    def scaled(self, factor: float) -> "Placement":
        return Placement(self.x * factor, self.y * factor, self.size * factor, self.rotation)


def seeded_random(seed: int) -> float:
    """Deterministic value in [0, 1) for an integer seed."""
    return random.Random(seed).random()


def shuffled_size_categories(card_index: int) -> List[float]:
    sizes = SIZE_CATEGORIES.copy()
    base_seed = card_index * SEED_STRIDE + SHUFFLE_SEED_OFFSET
    # Fisher-Yates driven by the seeded function
    for i in range(len(sizes) - 1, 0, -1):
        swap_idx = int(seeded_random(base_seed + i) * (i + 1))
        sizes[i], sizes[swap_idx] = sizes[swap_idx], sizes[i]
    return sizes


def validate_layout_args(symbols_per_card: int, canvas_size: float) -> None:
    if not MIN_SYMBOLS_PER_CARD <= symbols_per_card <= MAX_SYMBOLS_PER_CARD:
        raise ValueError(
            f"symbols_per_card must be between {MIN_SYMBOLS_PER_CARD} and "
            f"{MAX_SYMBOLS_PER_CARD}, got {symbols_per_card}"
        )
    if canvas_size <= 0:
        raise ValueError(f"canvas_size must be positive, got {canvas_size}")


def generate_layout(card_index: int, symbols_per_card: int, canvas_size: float = DEFAULT_CANVAS_SIZE) -> List[Placement]:
    validate_layout_args(symbols_per_card, canvas_size)

    center = canvas_size / 2.0
    base_radius = canvas_size * BASE_RADIUS_FRAC
    padding = canvas_size * EDGE_PADDING_FRAC
    largest = max(SIZE_CATEGORIES)
    sizes = shuffled_size_categories(card_index)

    placements: List[Placement] = []
    for i in range(symbols_per_card):
        seed = card_index * SEED_STRIDE + i * SEEDS_PER_PLACEMENT

        angle_offset = seeded_random(seed) * 2 * ANGLE_JITTER_RAD - ANGLE_JITTER_RAD
        angle = (i / symbols_per_card) * 2.0 * math.pi + angle_offset

        base_ratio = sizes[i % len(sizes)]
        size_variation = 1.0 + (seeded_random(seed + 2) * SIZE_VARIATION - SIZE_VARIATION / 2)
        size = canvas_size * base_ratio * size_variation

        # Larger symbols sit slightly closer to the center
        size_influence = base_ratio / largest
        dist_variation = seeded_random(seed + 1) * DIST_VARIATION_RANGE + DIST_VARIATION_MIN
        dist = base_radius * dist_variation * (DIST_BASE_FACTOR - size_influence * CENTER_PULL)

        x = center + math.cos(angle) * dist - size / 2.0
        y = center + math.sin(angle) * dist - size / 2.0
        # Keep the whole square inside the padded canvas
        x = max(padding, min(x, canvas_size - padding - size))
        y = max(padding, min(y, canvas_size - padding - size))

        rotation = seeded_random(seed + 3) * 360.0
        placements.append(Placement(x, y, size, rotation))

    return placements


def generate_all_layouts(
    card_count: int,
    symbols_per_card: int = MAX_SYMBOLS_PER_CARD,
    canvas_size: float = DEFAULT_CANVAS_SIZE,
) -> List[List[Placement]]:
    """
    Generate one layout per card.

    Placements depend only on the card index, the position within the card,
    symbols_per_card and canvas_size, so preview and print output computed
    separately always agree.

    Args:
        card_count: Number of cards to lay out
        symbols_per_card: Symbols on each card (3 to 8)
        canvas_size: Side of the square layout canvas

    Returns:
        List of card_count layouts, each a list of symbols_per_card placements
    """
    if card_count < 0:
        raise ValueError(f"card_count must not be negative, got {card_count}")
    validate_layout_args(symbols_per_card, canvas_size)
    return [generate_layout(card_index, symbols_per_card, canvas_size) for card_index in range(card_count)]


def load_artwork(artwork: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(artwork)).convert("RGBA")
    # Auto-crop transparent borders so the subject fills its slot
    bbox = img.split()[-1].getbbox()
    if bbox is not None:
        img = img.crop(bbox)
    return img


def draw_card_base(output_size: int, background_color: str = DEFAULT_BG_COLOR) -> Image.Image:
    canvas = Image.new("RGBA", (output_size, output_size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    radius = int(output_size * CARD_CORNER_RADIUS_FRAC)
    bounds = [0, 0, output_size - 1, output_size - 1]
    draw.rounded_rectangle(bounds, radius=radius, fill=background_color)

    # Subtle edge stroke
    draw.rounded_rectangle(
        [
            bounds[0] + EDGE_STROKE_INSET,
            bounds[1] + EDGE_STROKE_INSET,
            bounds[2] - EDGE_STROKE_INSET,
            bounds[3] - EDGE_STROKE_INSET,
        ],
        radius=radius,
        outline=EDGE_STROKE_COLOR,
        width=EDGE_STROKE_WIDTH,
    )
    return canvas


def fit_to_square(img: Image.Image, side: int) -> Image.Image:
    scale = side / max(img.width, img.height)
    width = max(1, int(round(img.width * scale)))
    height = max(1, int(round(img.height * scale)))
    return img.resize((width, height), resample=Image.BICUBIC)


def render_card(
    card: Sequence[int],
    layout: Sequence[Placement],
    artworks: Sequence[Optional[bytes]],
    layout_canvas_size: float = DEFAULT_CANVAS_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE,
    background_color: str = DEFAULT_BG_COLOR,
) -> Image.Image:
    if len(layout) < len(card):
        raise ValueError(f"Layout has {len(layout)} placements for a card of {len(card)} symbols")

    result = draw_card_base(output_size, background_color)
    scale = output_size / layout_canvas_size

    for position, symbol_index in enumerate(card):
        artwork = artworks[symbol_index] if symbol_index < len(artworks) else None
        if artwork is None:
            continue
        try:
            img = load_artwork(artwork)
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("Skipping unreadable artwork for symbol %d: %s", symbol_index, e)
            continue

        p = layout[position].scaled(scale)
        scaled = fit_to_square(img, max(1, int(round(p.size))))
        # Layout rotation is clockwise; PIL rotates counter-clockwise
        rotated = scaled.rotate(-p.rotation, resample=Image.BICUBIC, expand=True)
        x = int(round(p.x + p.size / 2.0 - rotated.width / 2.0))
        y = int(round(p.y + p.size / 2.0 - rotated.height / 2.0))
        result.paste(rotated, (x, y), rotated)

    return result


def render_debug_overlay(
    layout: Sequence[Placement],
    layout_canvas_size: float = DEFAULT_CANVAS_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE,
) -> Image.Image:
    overlay = Image.new("RGBA", (output_size, output_size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    scale = output_size / layout_canvas_size
    for placement in layout:
        p = placement.scaled(scale)
        draw.rectangle(
            [p.x, p.y, p.x + p.size, p.y + p.size],
            outline=DEBUG_OVERLAY_PLACEMENT_OUTLINE,
            width=DEBUG_OVERLAY_PLACEMENT_WIDTH,
        )
        # crosshair
        x = int(round(p.x + p.size / 2.0))
        y = int(round(p.y + p.size / 2.0))
        draw.line([x - DEBUG_OVERLAY_CROSSHAIR_SIZE, y, x + DEBUG_OVERLAY_CROSSHAIR_SIZE, y], fill=DEBUG_OVERLAY_CROSSHAIR_COLOR, width=DEBUG_OVERLAY_CROSSHAIR_WIDTH)
        draw.line([x, y - DEBUG_OVERLAY_CROSSHAIR_SIZE, x, y + DEBUG_OVERLAY_CROSSHAIR_SIZE], fill=DEBUG_OVERLAY_CROSSHAIR_COLOR, width=DEBUG_OVERLAY_CROSSHAIR_WIDTH)
    return overlay


def generate_card(
    card: Sequence[int],
    card_index: int,
    artworks: Sequence[Optional[bytes]],
    output_path: str,
    canvas_size: float = DEFAULT_CANVAS_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE,
    background_color: str = DEFAULT_BG_COLOR,
    verbose: bool = False,
    debug_overlay_path: Optional[str] = None,
) -> str:
    layout = generate_layout(card_index, len(card), canvas_size)
    composed = render_card(card, layout, artworks, canvas_size, output_size, background_color)

    if debug_overlay_path is not None:
        render_debug_overlay(layout, canvas_size, output_size).save(debug_overlay_path)

    if verbose:
        print(f"Card {card_index}: symbols {list(card)}")
        print("Placements (pos symbol x y size rot_deg has_art):")
        for pos, (symbol_index, p) in enumerate(zip(card, layout)):
            has_art = symbol_index < len(artworks) and artworks[symbol_index] is not None
            print(f"  {pos:02d}  #{symbol_index:02d}  x={p.x:7.2f}  y={p.y:7.2f}  size={p.size:6.2f}  rot={p.rotation:06.2f}°  {'yes' if has_art else 'MISSING'}")

    # Ensure output directory exists
    out_dir = os.path.dirname(output_path)
    if out_dir and not os.path.exists(out_dir):
        os.makedirs(out_dir, exist_ok=True)

    composed.save(output_path)
    return output_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a single Spot It card from cached symbol artwork.")
    parser.add_argument("card_index", type=int, help="Zero-based index of the card to render")
    parser.add_argument("--order", dest="order", type=int, default=7, help="Projective plane order (2, 3, 5 or 7)")
    parser.add_argument("--images", dest="images", default="images", help="Artwork directory (1.png, 2.png, ...)")
    parser.add_argument("--out", dest="out", default=os.path.join("output", "card.png"), help="Output image path (PNG recommended)")
    parser.add_argument("--canvas", dest="canvas", type=float, default=DEFAULT_CANVAS_SIZE, help="Layout canvas size")
    parser.add_argument("--size", dest="size", type=int, default=DEFAULT_OUTPUT_SIZE, help="Output size in pixels (square)")
    parser.add_argument("--bg", dest="bg", default=DEFAULT_BG_COLOR, help="Card background color (hex)")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="Print placement diagnostics")
    parser.add_argument("--debug-overlay", dest="debug_overlay", default=None, help="Optional path to save a debug overlay PNG")
    return parser.parse_args()


def main() -> int:
    from artwork_cache import ArtworkCache
    from generate_all_cards import create_spot_it_combinations, get_total_symbols

    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    try:
        cards = create_spot_it_combinations(args.order)
        if not 0 <= args.card_index < len(cards):
            raise ValueError(f"card_index must be in [0, {len(cards)}), got {args.card_index}")
        artworks = ArtworkCache(args.images).get_all(get_total_symbols(args.order))
        out_path = generate_card(
            card=cards[args.card_index],
            card_index=args.card_index,
            artworks=artworks,
            output_path=args.out,
            canvas_size=args.canvas,
            output_size=args.size,
            background_color=args.bg,
            verbose=args.verbose,
            debug_overlay_path=args.debug_overlay,
        )
    except Exception as e:
        print(f"Error: {e}")
        return 1

    print(f"Saved: {out_path}")
    return 0


if __name__ == "__main__":
    exit(main())
