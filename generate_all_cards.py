import argparse
import logging
import os
from typing import Dict, List, Optional, Sequence

from artwork_cache import ArtworkCache
from generate_card import DEFAULT_CANVAS_SIZE, DEFAULT_OUTPUT_SIZE, generate_card

# =========================
# Constants Section
# =========================

# Supported projective plane orders mapped to their symbol counts (n² + n + 1)
SUPPORTED_ORDERS: Dict[int, int] = {2: 7, 3: 13, 5: 31, 7: 57}
DEFAULT_ORDER = 7

# Output settings
OUTPUT_DIR = "output"
IMAGE_DIR = "images"
CARD_PREFIX = "card_"

# =========================
# End of Constants Section
# =========================


def validate_order(order: int) -> None:
    if order not in SUPPORTED_ORDERS:
        supported = ", ".join(str(n) for n in sorted(SUPPORTED_ORDERS))
        raise ValueError(f"Unsupported order {order}; supported orders are {supported}")


def get_total_symbols(order: int = DEFAULT_ORDER) -> int:
    """Number of distinct symbols (and of cards) for a plane of this order."""
    validate_order(order)
    return order * order + order + 1


def get_symbols_per_card(order: int = DEFAULT_ORDER) -> int:
    validate_order(order)
    return order + 1


def order_for_symbol_count(symbol_count: int) -> int:
    """Map a supported symbol count (7, 13, 31, 57) back to its order."""
    for order, count in SUPPORTED_ORDERS.items():
        if count == symbol_count:
            return order
    supported = ", ".join(str(c) for c in sorted(SUPPORTED_ORDERS.values()))
    raise ValueError(f"Unsupported symbol count {symbol_count}; supported counts are {supported}")


def create_spot_it_combinations(order: int = DEFAULT_ORDER) -> List[List[int]]:
    """
    Create the cards of a finite projective plane of the given order.

    Each card is a line of the plane and each symbol a point:
    - There are n² + n + 1 cards and n² + n + 1 symbols
    - Each card holds n + 1 symbols
    - Any two cards share exactly one symbol

    Card order is fixed: the card holding symbols 0..n, then the n cards
    through symbol 0, then the n² cards (i, j) in row-major order.

    Args:
        order: Plane order n, one of SUPPORTED_ORDERS

    Returns:
        List of n² + n + 1 cards, each a list of n + 1 symbol indices
    """
    validate_order(order)
    n = order
    cards: List[List[int]] = []

    # First card: symbols 0 to n
    cards.append(list(range(n + 1)))

    # Next n cards: symbol 0 plus one block of n symbols each
    for i in range(n):
        cards.append([0] + [n + 1 + i * n + j for j in range(n)])

    # Remaining n² cards: symbol i + 1 plus one symbol from every block
    for i in range(n):
        for j in range(n):
            card = [i + 1]
            for k in range(n):
                card.append(n + 1 + k * n + ((i * k + j) % n))
            cards.append(card)

    return cards


def cards_are_valid(cards: Sequence[Sequence[int]]) -> bool:
    """Return True when every pair of distinct cards shares exactly one symbol."""
    card_sets = [set(card) for card in cards]
    for i in range(len(card_sets)):
        for j in range(i + 1, len(card_sets)):
            if len(card_sets[i] & card_sets[j]) != 1:
                return False
    return True


def verify_spot_it_properties(cards: Sequence[Sequence[int]], order: int = DEFAULT_ORDER) -> None:
    """
    Verify that the cards satisfy spot-it game properties.

    Args:
        cards: List of cards, each containing symbol indices
        order: Plane order the cards were built for

    Raises:
        ValueError: On the first property that does not hold
    """
    total_symbols = get_total_symbols(order)
    symbols_per_card = get_symbols_per_card(order)
    print("Verifying spot-it properties...")

    if len(cards) != total_symbols:
        raise ValueError(f"Generated {len(cards)} cards, expected {total_symbols}")

    # Check each card has exactly n + 1 distinct, in-range symbols
    for i, card in enumerate(cards):
        if len(card) != symbols_per_card:
            raise ValueError(f"Card {i} has {len(card)} symbols, expected {symbols_per_card}")
        if len(set(card)) != symbols_per_card:
            raise ValueError(f"Card {i} has duplicate symbols")
        out_of_range = [s for s in card if not 0 <= s < total_symbols]
        if out_of_range:
            raise ValueError(f"Card {i} has symbols outside [0, {total_symbols}): {out_of_range}")

    # Check any two cards share exactly one symbol
    card_sets = [set(card) for card in cards]
    pair_count = 0
    for i in range(len(card_sets)):
        for j in range(i + 1, len(card_sets)):
            intersection = card_sets[i] & card_sets[j]
            pair_count += 1
            if len(intersection) != 1:
                raise ValueError(f"Cards {i} and {j} share {len(intersection)} symbols, expected 1")

    # Check each symbol appears on exactly n + 1 cards
    symbol_card_count = [0] * total_symbols
    for card in cards:
        for symbol_index in card:
            symbol_card_count[symbol_index] += 1

    for i, count in enumerate(symbol_card_count):
        if count != symbols_per_card:
            raise ValueError(f"Symbol {i} appears on {count} cards, expected {symbols_per_card}")

    print(f"✓ Generated {len(cards)} cards")
    print(f"✓ Each card has exactly {symbols_per_card} symbols")
    print(f"✓ Any two cards share exactly 1 symbol ({pair_count} pairs checked)")
    print(f"✓ Each symbol appears on exactly {symbols_per_card} cards")


def generate_all_cards(
    order: int = DEFAULT_ORDER,
    output_dir: str = OUTPUT_DIR,
    image_dir: str = IMAGE_DIR,
    canvas_size: float = DEFAULT_CANVAS_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE,
    background_color: str = "#FFFFFF",
    artworks: Optional[Sequence[Optional[bytes]]] = None,
    verbose: bool = False,
) -> List[str]:
    """
    Render every card of the deck to a PNG file.

    Args:
        order: Plane order n, one of SUPPORTED_ORDERS
        output_dir: Directory to save generated cards
        image_dir: Artwork directory (1.png, 2.png, ...) used when artworks is None
        canvas_size: Layout canvas size placements are computed in
        output_size: Side of each rendered card in pixels
        background_color: Background color for cards
        artworks: Artwork per symbol index; missing entries are left blank
        verbose: Whether to print per-card detail

    Returns:
        List of paths to generated card files
    """
    total_symbols = get_total_symbols(order)

    os.makedirs(output_dir, exist_ok=True)

    if artworks is None:
        if not os.path.isdir(image_dir):
            raise FileNotFoundError(f"Image directory not found: {image_dir}")
        artworks = ArtworkCache(image_dir).get_all(total_symbols)

    missing = [i for i in range(total_symbols) if i >= len(artworks) or artworks[i] is None]
    if missing:
        print(f"Warning: {len(missing)}/{total_symbols} symbols have no artwork and will be left blank: {[i + 1 for i in missing]}")
    else:
        print(f"Found artwork for all {total_symbols} symbols")

    print("Generating spot-it card combinations...")
    cards = create_spot_it_combinations(order)
    verify_spot_it_properties(cards, order)

    print(f"\nGenerating {len(cards)} cards...")
    generated_paths = []

    for i, card in enumerate(cards):
        if verbose:
            print(f"Generating card {i+1}/{len(cards)} with symbols: {[idx+1 for idx in card]}")
        else:
            print(f"Generating card {i+1}/{len(cards)}...")

        output_path = os.path.join(output_dir, f"{CARD_PREFIX}{i+1:02d}.png")
        try:
            generated_paths.append(
                generate_card(
                    card=card,
                    card_index=i,
                    artworks=artworks,
                    output_path=output_path,
                    canvas_size=canvas_size,
                    output_size=output_size,
                    background_color=background_color,
                )
            )
        except Exception as e:
            print(f"Error generating card {i+1}: {e}")
            raise

    print(f"\nSuccessfully generated {len(generated_paths)} cards in {output_dir}")
    return generated_paths


def main():
    """Main function to generate all spot-it cards."""
    parser = argparse.ArgumentParser(description="Generate every card of a Spot It deck")
    parser.add_argument("--order", "-n", type=int, default=DEFAULT_ORDER, help="Projective plane order (2, 3, 5 or 7)")
    parser.add_argument("--output", "-o", default=OUTPUT_DIR, help="Output directory for generated cards")
    parser.add_argument("--images", "-i", default=IMAGE_DIR, help="Directory containing numbered artwork (1.png, 2.png, ...)")
    parser.add_argument("--canvas", type=float, default=DEFAULT_CANVAS_SIZE, help="Layout canvas size")
    parser.add_argument("--size", "-s", type=int, default=DEFAULT_OUTPUT_SIZE, help="Card size in pixels (square)")
    parser.add_argument("--bg", default="#FFFFFF", help="Card background color (hex)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        generated_paths = generate_all_cards(
            order=args.order,
            output_dir=args.output,
            image_dir=args.images,
            canvas_size=args.canvas,
            output_size=args.size,
            background_color=args.bg,
            verbose=args.verbose,
        )

        print(f"\nAll cards generated successfully!")
        print(f"Output directory: {args.output}")
        print(f"Total cards: {len(generated_paths)}")

    except Exception as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
