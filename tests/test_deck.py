from multirole.deck import Deck


def test_empty_deck_defaults():
    deck = Deck()
    assert deck.main == () and deck.extra == () and deck.side == ()
    assert deck.error == 0
    assert deck.code_map() == {}


def test_code_map_counts_across_piles():
    deck = Deck(main=[10, 10, 20], extra=[30], side=[10, 30])
    assert deck.code_map() == {10: 3, 20: 1, 30: 2}


def test_code_map_is_sorted_by_code():
    deck = Deck(main=[99, 5, 42], extra=[7], side=[1])
    assert list(deck.code_map()) == sorted([99, 5, 42, 7, 1])


def test_code_map_total_matches_card_count():
    deck = Deck(main=[1, 2, 2, 3], extra=[4, 4], side=[1])
    assert sum(deck.code_map().values()) == len(deck.main) + len(deck.extra) + len(deck.side)


def test_lists_are_stored_as_tuples_and_error_kept():
    main = [1, 2]
    deck = Deck(main=main, error=7)
    main.append(3)
    assert deck.main == (1, 2)
    assert deck.error == 7