import pytest

from leadsheet.sheets.columns import (
    a1_range,
    cell_range,
    column_range,
    index_to_letter,
    letter_to_index,
    quote_worksheet,
)


@pytest.mark.parametrize(
    "letters, index",
    [("A", 0), ("B", 1), ("Z", 25), ("AA", 26), ("AB", 27), ("AZ", 51), ("BA", 52), ("ZZ", 701), ("AAA", 702)],
)
def test_letter_to_index_known_values(letters, index):
    assert letter_to_index(letters) == index
    assert index_to_letter(index) == letters


def test_index_to_letter_is_left_inverse_and_order_is_strict():
    previous = -1
    for i in range(0, 2000):
        letters = index_to_letter(i)
        assert letter_to_index(letters) == i
        assert letter_to_index(letters) > previous
        previous = letter_to_index(letters)


def test_letter_to_index_accepts_lowercase_and_whitespace():
    assert letter_to_index(" az ") == 51


@pytest.mark.parametrize("bad", ["", "A1", "1", "Ä", "A-B", None])
def test_letter_to_index_rejects_non_letters(bad):
    with pytest.raises(ValueError):
        letter_to_index(bad)


def test_index_to_letter_rejects_negative():
    with pytest.raises(ValueError):
        index_to_letter(-1)


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Sheet", "Sheet"),
        ("Sheet_2", "Sheet_2"),
        ("MASTER DATA", "'MASTER DATA'"),
        ("Bob's Leads", "'Bob''s Leads'"),
    ],
)
def test_quote_worksheet(title, expected):
    assert quote_worksheet(title) == expected


def test_range_helpers():
    assert a1_range("Sheet", "A2:AZ10000") == "Sheet!A2:AZ10000"
    assert cell_range("Sheet", "b", 3) == "Sheet!B3"
    assert column_range("MASTER DATA", "A", 2, 10000) == "'MASTER DATA'!A2:A10000"
    with pytest.raises(ValueError):
        cell_range("Sheet", "B", 0)
    with pytest.raises(ValueError):
        quote_worksheet("  ")
