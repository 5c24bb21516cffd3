from datetime import timedelta

import pytest

from moviebooking.errors import ValidationError
from moviebooking.extensions import db
from moviebooking.models import Booking, Showtime
from moviebooking.serialization import encode_seats
from moviebooking.showtimes import (FIXED_SHOWTIMES, ShowtimeMaterializer,
                                    clear_unbooked_showtimes, generate_showtime_id)

from .conftest import START, make_movie, make_theater, make_user


def test_materializes_fourteen_days_of_catalog_slots(movie, theater):
    result = ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 14, start=START)

    assert result.success
    assert result.created == 14 * len(FIXED_SHOWTIMES) == 70
    showtimes = Showtime.query.filter_by(movie_id=movie.id, theater_id=theater.id).all()
    assert len(showtimes) == 70
    assert len({(s.date, s.time) for s in showtimes}) == 70
    assert all(s.available_seats == theater.seating_capacity for s in showtimes)
    assert min(s.date for s in showtimes) == START
    assert max(s.date for s in showtimes) == START + timedelta(days=13)


def test_materialized_rows_use_derived_ids(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 1, start=START)

    first_slot = FIXED_SHOWTIMES[0]
    showtime = Showtime.query.filter_by(movie_id=movie.id, theater_id=theater.id,
                                        date=START, time=first_slot.time).one()
    assert showtime.id == generate_showtime_id(movie.id, theater.id, START, first_slot.time)
    assert showtime.format == first_slot.format
    assert showtime.price == first_slot.price


def test_second_run_creates_nothing(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 14, start=START)

    result = ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 14, start=START)

    assert result.success
    assert result.created == 0
    assert result.skipped
    assert Showtime.query.count() == 70


def test_any_existing_showtime_short_circuits_the_pair(movie, theater):
    db.session.add(Showtime(movie_id=movie.id, theater_id=theater.id, date=START,
                            time='11:30 AM', format='standard', price=120,
                            available_seats=theater.seating_capacity))
    db.session.commit()

    result = ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 14, start=START)

    assert result.success
    assert result.created == 0
    assert Showtime.query.count() == 1


def test_missing_movie_is_reported_not_raised(theater):
    result = ShowtimeMaterializer.for_movie_theater(999, theater.id, 14, start=START)

    assert not result.success
    assert result.error == 'MOVIE_NOT_FOUND'
    assert Showtime.query.count() == 0


def test_missing_theater_is_reported_not_raised(movie):
    result = ShowtimeMaterializer.for_movie_theater(movie.id, 999, 14, start=START)

    assert not result.success
    assert result.error == 'THEATER_NOT_FOUND'


@pytest.mark.parametrize('days', [0, -3, 'many', 1000, True])
def test_days_must_be_a_positive_integer(movie, theater, days):
    with pytest.raises(ValidationError):
        ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, days, start=START)


def test_falls_back_to_row_inserts_when_batch_fails(movie, theater):
    other_movie = make_movie(title='Dune')
    blocked_id = generate_showtime_id(movie.id, theater.id, START, FIXED_SHOWTIMES[2].time)
    db.session.add(Showtime(id=blocked_id, movie_id=other_movie.id, theater_id=theater.id,
                            date=START, time='9:00 AM', format='standard', price=100,
                            available_seats=theater.seating_capacity))
    db.session.commit()

    result = ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 2, start=START)

    assert result.success
    assert result.created == 2 * len(FIXED_SHOWTIMES)
    moved = Showtime.query.filter_by(movie_id=movie.id, theater_id=theater.id,
                                     date=START, time=FIXED_SHOWTIMES[2].time).one()
    assert moved.id != blocked_id
    assert db.session.get(Showtime, blocked_id).movie_id == other_movie.id


@pytest.mark.usefixtures('app')
def test_bulk_all_covers_every_pair():
    movies = [make_movie(title=f'Movie {i}') for i in range(3)]
    theaters = [make_theater(name=f'Theater {i}', seating_capacity=50 + i) for i in range(2)]

    result = ShowtimeMaterializer.for_all(2, start=START)

    assert result.success
    assert result.pairs == 6
    assert result.succeeded + result.failed == 6
    assert result.succeeded == 6
    assert result.created == 6 * 2 * len(FIXED_SHOWTIMES)
    for m in movies:
        for t in theaters:
            count = Showtime.query.filter_by(movie_id=m.id, theater_id=t.id).count()
            assert count == 2 * len(FIXED_SHOWTIMES)


@pytest.mark.usefixtures('app')
def test_bulk_isolates_pair_failures(monkeypatch):
    movies = [make_movie(title=f'Movie {i}') for i in range(3)]
    make_theater()
    make_theater(name='INOX')
    original = ShowtimeMaterializer.for_movie_theater
    broken_movie = movies[1].id

    def flaky(movie_id, theater_id, days=None, start=None):
        if movie_id == broken_movie:
            raise RuntimeError('boom')
        return original(movie_id, theater_id, days, start)

    monkeypatch.setattr(ShowtimeMaterializer, 'for_movie_theater', staticmethod(flaky))

    result = ShowtimeMaterializer.for_all(1, start=START)

    assert result.pairs == 6
    assert result.succeeded == 4
    assert result.failed == 2
    assert result.success
    assert Showtime.query.filter_by(movie_id=broken_movie).count() == 0


def test_bulk_reports_existing_pairs_as_skipped(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 1, start=START)
    make_theater(name='INOX')

    result = ShowtimeMaterializer.for_movie(movie.id, 1, start=START)

    assert result.pairs == 2
    assert result.succeeded == 2
    assert result.skipped == 1
    assert result.created == len(FIXED_SHOWTIMES)


def test_bulk_without_theaters_signals_failure(movie):
    result = ShowtimeMaterializer.for_all(14, start=START)

    assert not result.success
    assert result.error == 'NO_THEATERS'
    assert result.pairs == 0
    assert Showtime.query.count() == 0


def test_bulk_without_movies_signals_failure(theater):
    assert ShowtimeMaterializer.for_all(14, start=START).error == 'NO_MOVIES'
    assert ShowtimeMaterializer.for_theater(theater.id, 14, start=START).error == 'NO_MOVIES'


def test_bulk_for_unknown_anchor(app):
    assert ShowtimeMaterializer.for_movie(42).error == 'MOVIE_NOT_FOUND'
    assert ShowtimeMaterializer.for_theater(42).error == 'THEATER_NOT_FOUND'


def test_for_theater_covers_every_movie(theater):
    make_movie(title='A')
    make_movie(title='B')

    result = ShowtimeMaterializer.for_theater(theater.id, 1, start=START)

    assert result.pairs == 2
    assert result.created == 2 * len(FIXED_SHOWTIMES)


def test_fill_missing_only_touches_empty_entities(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 1, start=START)
    new_movie = make_movie(title='Dune')

    summary = ShowtimeMaterializer.fill_missing(1, start=START)

    assert summary == {'movies_fixed': 1, 'movies_failed': 0, 'theaters_fixed': 0, 'theaters_failed': 0}
    assert Showtime.query.filter_by(movie_id=new_movie.id).count() == len(FIXED_SHOWTIMES)


def test_clear_unbooked_keeps_booked_showtimes(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 1, start=START)
    booked = Showtime.query.first()
    user = make_user()
    db.session.add(Booking(booking_reference='ABCD1234', user_id=user.id, showtime_id=booked.id,
                           seats=encode_seats(['A1']), total_price=150))
    db.session.commit()

    cleared = clear_unbooked_showtimes(movie_id=movie.id)

    assert cleared == len(FIXED_SHOWTIMES) - 1
    assert [s.id for s in Showtime.query.all()] == [booked.id]
