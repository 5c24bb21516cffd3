from datetime import date, datetime, timedelta, timezone

import pytest

from moviebooking.showtimes import (FIXED_SHOWTIMES, SEAT_PRICES, SHOWTIME_FORMATS,
                                    catalog_entry_for, generate_showtime_id,
                                    normalize_date, showtimes_for_date, string_hash)


def test_string_hash_small_values():
    assert string_hash('') == 0
    assert string_hash('a') == 97
    assert string_hash('ab') == 97 * 31 + 98


def test_string_hash_wraps_to_signed_32_bits():
    value = string_hash('12-7-2024-06-01-10:00 PM' * 4)
    assert -2 ** 31 <= value < 2 ** 31


def test_generate_showtime_id_is_deterministic():
    first = generate_showtime_id(12, 3, '2024-06-01', '7:00 PM')
    second = generate_showtime_id(12, 3, '2024-06-01', '7:00 PM')
    assert first == second


def test_generate_showtime_id_accepts_string_and_int_ids_alike():
    assert generate_showtime_id(12, 3, '2024-06-01', '7:00 PM') == \
        generate_showtime_id('12', '3', '2024-06-01', '7:00 PM')


@pytest.mark.parametrize('value', [
    '2024-06-01',
    '2024-06-01T00:00:00.000Z',
    '2024-06-01T18:45:10Z',
    '2024-06-01T18:45:10+00:00',
    date(2024, 6, 1),
    datetime(2024, 6, 1, 21, 30),
    datetime(2024, 6, 1, 21, 30, tzinfo=timezone.utc),
])
def test_equivalent_dates_hash_identically(value):
    assert generate_showtime_id(5, 9, value, '10:00 AM') == \
        generate_showtime_id(5, 9, '2024-06-01', '10:00 AM')


def test_offset_timestamps_are_normalized_to_utc_day():
    assert normalize_date('2024-06-01T23:30:00-05:00') == date(2024, 6, 2)


@pytest.mark.parametrize('movie_id', range(1, 40))
def test_generated_ids_stay_in_range(movie_id):
    day = date(2024, 1, 1) + timedelta(days=movie_id * 7)
    for entry in FIXED_SHOWTIMES:
        showtime_id = generate_showtime_id(movie_id, movie_id * 3, day, entry.time)
        assert 1000 <= showtime_id < 1001000


@pytest.mark.parametrize('value', ['', 'not-a-date', '2024-13-45', None, 20240601])
def test_invalid_dates_are_rejected(value):
    with pytest.raises(ValueError):
        normalize_date(value)


def test_catalog_is_five_ascending_slots():
    assert [entry.time for entry in FIXED_SHOWTIMES] == \
        ['10:00 AM', '1:00 PM', '4:00 PM', '7:00 PM', '10:00 PM']
    prices = [entry.price for entry in FIXED_SHOWTIMES]
    assert prices == sorted(prices)
    assert all(entry.format in SHOWTIME_FORMATS for entry in FIXED_SHOWTIMES)


def test_catalog_is_read_only():
    with pytest.raises(TypeError):
        FIXED_SHOWTIMES[0] = ('9:00 AM', 'standard', 100)
    with pytest.raises(AttributeError):
        FIXED_SHOWTIMES[0].price = 1


def test_catalog_lookup_by_time():
    assert catalog_entry_for('7:00 pm').format == 'imax'
    assert catalog_entry_for(' 10:00 PM ').price == 220
    assert catalog_entry_for('11:15 AM') is None
    assert catalog_entry_for(None) is None


def test_every_day_uses_the_catalog():
    assert showtimes_for_date(date(2030, 12, 25)) == FIXED_SHOWTIMES
    assert SEAT_PRICES['vip'] == 220


@pytest.mark.parametrize('movie_id, theater_id, show_date, time, expected', [
    (1, 1, '2024-06-01', '10:00 AM', 753683),
    (12, 3, '2024-06-01T00:00:00.000Z', '7:00 PM', 322518),
    (999, 77, '2031-12-31', '10:00 PM', 49957),
    (5, 9, '2024-02-29', '4:00 PM', 411981),
])
def test_generated_ids_match_existing_clients(movie_id, theater_id, show_date, time, expected):
    assert generate_showtime_id(movie_id, theater_id, show_date, time) == expected
