import pytest

from splitogram.core.utils import format_amount, split_equally


@pytest.mark.parametrize("micro, expected", [
    (0, "$0.00"),
    (1_500_000, "$1.50"),
    (12_345_678, "$12.35"),
    (5_000, "$0.01"),
    (4_999, "$0.00"),
])
def test_format_amount(micro, expected):
    assert format_amount(micro) == expected


def test_split_evenly():
    assert split_equally(9, [4, 5, 6]) == [(4, 3), (5, 3), (6, 3)]


def test_first_participant_takes_remainder():
    shares = split_equally(100, [3, 1, 2])

    assert shares == [(3, 34), (1, 33), (2, 33)]
    assert sum(amount for _, amount in shares) == 100


def test_amount_smaller_than_participants():
    assert split_equally(1, [1, 2, 3]) == [(1, 1), (2, 0), (3, 0)]
