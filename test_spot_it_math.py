#!/usr/bin/env python3
"""
Tests for the mathematical properties of spot-it card combinations.
These check the construction independently of any artwork or rendering.
"""

from itertools import combinations

import pytest

from generate_all_cards import (
    SUPPORTED_ORDERS,
    cards_are_valid,
    create_spot_it_combinations,
    get_symbols_per_card,
    get_total_symbols,
    order_for_symbol_count,
    verify_spot_it_properties,
)

ORDERS = sorted(SUPPORTED_ORDERS)

# Order 2 deck, small enough to check by hand
ORDER_2_CARDS = [
    [0, 1, 2],
    [0, 3, 4],
    [0, 5, 6],
    [1, 3, 5],
    [1, 4, 6],
    [2, 3, 6],
    [2, 4, 5],
]


@pytest.mark.parametrize("order", ORDERS)
def test_card_and_symbol_counts(order):
    cards = create_spot_it_combinations(order)
    total = order * order + order + 1

    assert len(cards) == total
    for card in cards:
        assert len(card) == order + 1
        assert len(set(card)) == order + 1
        assert all(0 <= symbol < total for symbol in card)


@pytest.mark.parametrize("order", ORDERS)
def test_every_pair_of_cards_shares_exactly_one_symbol(order):
    cards = create_spot_it_combinations(order)

    for a, b in combinations(range(len(cards)), 2):
        shared = set(cards[a]) & set(cards[b])
        assert len(shared) == 1, f"Cards {a} and {b} share {sorted(shared)}"


@pytest.mark.parametrize("order", ORDERS)
def test_every_symbol_appears_on_order_plus_one_cards(order):
    cards = create_spot_it_combinations(order)
    counts = [0] * get_total_symbols(order)
    for card in cards:
        for symbol in card:
            counts[symbol] += 1

    assert counts == [order + 1] * len(counts)


@pytest.mark.parametrize("order", ORDERS)
def test_verify_accepts_generated_cards(order, capsys):
    cards = create_spot_it_combinations(order)

    verify_spot_it_properties(cards, order)
    assert cards_are_valid(cards)
    assert "Any two cards share exactly 1 symbol" in capsys.readouterr().out


def test_order_7_pair_count():
    cards = create_spot_it_combinations(7)
    assert len(list(combinations(cards, 2))) == 1596


def test_order_2_matches_hand_built_deck():
    assert create_spot_it_combinations(2) == ORDER_2_CARDS


def test_card_ordering():
    n = 3
    cards = create_spot_it_combinations(n)

    assert cards[0] == [0, 1, 2, 3]
    # Cards 1..n go through symbol 0 and one block each
    assert cards[1] == [0, 4, 5, 6]
    assert cards[n] == [0, 10, 11, 12]
    # Card (i, j) = (1, 2) sits at n + 1 + i * n + j
    assert cards[n + 1 + 1 * n + 2] == [2, 4 + 2, 7 + 0, 10 + 1]


def test_generation_is_pure():
    assert create_spot_it_combinations(5) == create_spot_it_combinations(5)


@pytest.mark.parametrize("order", [0, 1, 4, 6, 8, 11, -3])
def test_unsupported_order_rejected(order):
    with pytest.raises(ValueError, match="Unsupported order"):
        create_spot_it_combinations(order)


@pytest.mark.parametrize("order,count", sorted(SUPPORTED_ORDERS.items()))
def test_symbol_count_mapping(order, count):
    assert get_total_symbols(order) == count
    assert get_symbols_per_card(order) == order + 1
    assert order_for_symbol_count(count) == order


@pytest.mark.parametrize("count", [0, 8, 21, 56, 58, 133])
def test_unsupported_symbol_count_rejected(count):
    with pytest.raises(ValueError, match="Unsupported symbol count"):
        order_for_symbol_count(count)


def test_verify_rejects_cards_sharing_two_symbols():
    broken = [card.copy() for card in ORDER_2_CARDS]
    broken[1] = [0, 1, 4]

    assert not cards_are_valid(broken)
    with pytest.raises(ValueError, match="share 2 symbols"):
        verify_spot_it_properties(broken, 2)


def test_verify_rejects_duplicate_symbols():
    broken = [card.copy() for card in ORDER_2_CARDS]
    broken[0] = [0, 0, 2]

    with pytest.raises(ValueError, match="duplicate"):
        verify_spot_it_properties(broken, 2)


def test_verify_rejects_missing_card():
    with pytest.raises(ValueError, match="expected 7"):
        verify_spot_it_properties(ORDER_2_CARDS[:-1], 2)
