import logging
import uuid
from datetime import datetime

from flask import current_app, session
from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import CACHE_TIMEOUT_CATALOG, CACHE_TIMEOUT_SEATS
from .errors import (AuthenticationError, BookingAppException, BusinessLogicError,
                     DatabaseError, NotFoundError, PermissionDenied,
                     ValidationError)
from .extensions import cache, db
from .models import (ACTIVE_BOOKING_STATUSES, BOOKING_CANCELLED, BOOKING_CONFIRMED,
                     BOOKING_STATUSES, Booking, Movie, Showtime, Theater, User)
from .serialization import encode_cast, encode_genres, encode_seats
from .showtimes import (SEAT_PRICES, SHOWTIME_FORMATS, ShowtimeMaterializer,
                        catalog_entry_for, generate_showtime_id,
                        normalize_date)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


# ==================== INPUT HELPERS ====================

def parse_int(value, field, minimum=None, code=None):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', code=code)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', code=code) from None
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', code=code)
    return number


def parse_float(value, field, minimum=None, code=None):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', code=code)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number', code=code) from None
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', code=code)
    return number


def parse_date(value, field='date', code=None):
    try:
        return normalize_date(value)
    except ValueError as e:
        raise ValidationError(f'{field}: {e}', code=code) from None


def paginate_args(limit, offset):
    limit = DEFAULT_PAGE_SIZE if limit in (None, '') else parse_int(limit, 'limit', minimum=1)
    offset = 0 if offset in (None, '') else parse_int(offset, 'offset', minimum=0)
    return min(limit, MAX_PAGE_SIZE), offset


def time_sort_key(time):
    """Order display times chronologically; unparseable values sort last"""
    try:
        return 0, datetime.strptime(time.strip().upper(), '%I:%M %p').time().isoformat()
    except (AttributeError, ValueError):
        return 1, time or ''


def booked_seat_count(showtime_id):
    """Seats held by active bookings of a showtime"""
    bookings = Booking.query.filter(
        Booking.showtime_id == showtime_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    ).all()
    return sum(len(b.seat_labels) for b in bookings)


def _commit(message, code='DB_ERROR'):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error('%s: %s', message, e)
        raise DatabaseError(message, code=code) from e


# ==================== MOVIES ====================

class MovieService:
    """Service for movie-related business logic"""

    FIELDS = ('title', 'description', 'poster', 'duration', 'rating', 'release_date',
              'language', 'genres', 'cast')

    @staticmethod
    def list_movies():
        """Get all movies with caching"""
        cached_data = cache.get('movies_all')
        if cached_data:
            return cached_data

        movies = Movie.query.order_by(Movie.title).all()
        movies_data = [movie.to_dict() for movie in movies]
        cache.set('movies_all', movies_data, timeout=CACHE_TIMEOUT_CATALOG)
        return movies_data

    @staticmethod
    def get_movie(movie_id):
        movie = db.session.get(Movie, movie_id)
        if not movie:
            raise NotFoundError(f'Movie with ID {movie_id} not found', code='MOVIE_NOT_FOUND')
        return movie

    @staticmethod
    def _apply(movie, data):
        for field in MovieService.FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field == 'title':
                if not value or not str(value).strip():
                    raise ValidationError('title is required')
                value = str(value).strip()
            elif field == 'duration' and value is not None:
                value = parse_int(value, 'duration', minimum=1)
            elif field == 'rating' and value is not None:
                value = parse_float(value, 'rating', minimum=0)
            elif field == 'release_date' and value:
                value = parse_date(value, 'release_date')
            elif field == 'genres':
                try:
                    value = encode_genres(value)
                except ValueError as e:
                    raise ValidationError(str(e)) from None
            elif field == 'cast':
                try:
                    value = encode_cast(value)
                except ValueError as e:
                    raise ValidationError(str(e)) from None
            setattr(movie, field, value)

    @staticmethod
    def create_movie(data):
        """Create a movie and generate its showtimes at every theater"""
        if not data.get('title'):
            raise ValidationError('title is required')
        movie = Movie()
        MovieService._apply(movie, data)
        db.session.add(movie)
        _commit('Failed to create movie')
        invalidate_catalog_caches()

        generation = None
        try:
            generation = ShowtimeMaterializer.for_movie(movie.id, current_app.config['SHOWTIME_DAYS'])
        except Exception:
            db.session.rollback()
            logger.exception('Error generating showtimes for new movie %s', movie.id)
        return movie, generation

    @staticmethod
    def update_movie(movie_id, data):
        movie = MovieService.get_movie(movie_id)
        MovieService._apply(movie, data)
        _commit('Failed to update movie')
        invalidate_catalog_caches()
        return movie

    @staticmethod
    def delete_movie(movie_id):
        """Delete a movie together with its unbooked showtimes"""
        movie = MovieService.get_movie(movie_id)
        booked = Booking.query.join(Showtime).filter(Showtime.movie_id == movie.id).count()
        if booked:
            raise BusinessLogicError('Cannot delete movie with existing bookings', code='HAS_BOOKINGS')
        Showtime.query.filter_by(movie_id=movie.id).delete(synchronize_session=False)
        db.session.delete(movie)
        _commit('Failed to delete movie')
        invalidate_catalog_caches()


# ==================== THEATERS ====================

class TheaterService:
    """Service for theater-related business logic"""

    FIELDS = ('name', 'location', 'seating_capacity', 'rating', 'amenities')

    @staticmethod
    def list_theaters():
        """Get all theaters with caching"""
        cached_data = cache.get('theaters_all')
        if cached_data:
            return cached_data

        theaters = Theater.query.order_by(Theater.name).all()
        theaters_data = [theater.to_dict() for theater in theaters]
        cache.set('theaters_all', theaters_data, timeout=CACHE_TIMEOUT_CATALOG)
        return theaters_data

    @staticmethod
    def get_theater(theater_id):
        theater = db.session.get(Theater, theater_id)
        if not theater:
            raise NotFoundError(f'Theater with ID {theater_id} not found', code='THEATER_NOT_FOUND')
        return theater

    @staticmethod
    def _apply(theater, data):
        for field in TheaterService.FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field in ('name', 'location'):
                if not value or not str(value).strip():
                    raise ValidationError(f'{field} is required')
                value = str(value).strip()
            elif field == 'seating_capacity':
                value = parse_int(value, 'seating_capacity', minimum=1)
            elif field == 'rating' and value is not None:
                value = parse_float(value, 'rating', minimum=0)
            setattr(theater, field, value)

    @staticmethod
    def create_theater(data):
        """Create a theater and generate showtimes for every movie there"""
        missing = [f for f in ('name', 'location', 'seating_capacity') if not data.get(f)]
        if missing:
            raise ValidationError(f'Missing required fields: {", ".join(missing)}')
        theater = Theater()
        TheaterService._apply(theater, data)
        db.session.add(theater)
        _commit('Failed to create theater')
        invalidate_catalog_caches()

        generation = None
        try:
            generation = ShowtimeMaterializer.for_theater(theater.id, current_app.config['SHOWTIME_DAYS'])
        except Exception:
            db.session.rollback()
            logger.exception('Error generating showtimes for new theater %s', theater.id)
        return theater, generation

    @staticmethod
    def update_theater(theater_id, data):
        """Update a theater; a capacity change re-derives its showtimes' free seats"""
        theater = TheaterService.get_theater(theater_id)
        old_capacity = theater.seating_capacity
        TheaterService._apply(theater, data)

        if theater.seating_capacity != old_capacity:
            for showtime in Showtime.query.filter_by(theater_id=theater.id).all():
                booked = booked_seat_count(showtime.id)
                showtime.available_seats = max(0, theater.seating_capacity - booked)
                ShowtimeService.invalidate_caches(showtime_id=showtime.id)
        _commit('Failed to update theater')
        invalidate_catalog_caches()
        return theater

    @staticmethod
    def delete_theater(theater_id):
        """Delete a theater together with its unbooked showtimes"""
        theater = TheaterService.get_theater(theater_id)
        booked = Booking.query.join(Showtime).filter(Showtime.theater_id == theater.id).count()
        if booked:
            raise BusinessLogicError('Cannot delete theater with existing bookings', code='HAS_BOOKINGS')
        Showtime.query.filter_by(theater_id=theater.id).delete(synchronize_session=False)
        db.session.delete(theater)
        _commit('Failed to delete theater')
        invalidate_catalog_caches()


def invalidate_catalog_caches():
    cache.delete('movies_all')
    cache.delete('theaters_all')


# ==================== SHOWTIMES ====================

class ShowtimeService:
    """Service for showtime lookup, creation and admin edits"""

    @staticmethod
    def list_showtimes(movie_id=None, theater_id=None, show_date=None):
        query = Showtime.query
        if movie_id not in (None, ''):
            query = query.filter(Showtime.movie_id == parse_int(movie_id, 'movieId'))
        if theater_id not in (None, ''):
            query = query.filter(Showtime.theater_id == parse_int(theater_id, 'theaterId'))
        if show_date not in (None, ''):
            query = query.filter(Showtime.date == parse_date(show_date))
        showtimes = query.all()
        return sorted(showtimes, key=lambda s: (s.date, time_sort_key(s.time), s.theater_id))

    @staticmethod
    def get_showtime(showtime_id):
        showtime = db.session.get(Showtime, showtime_id)
        if not showtime:
            raise NotFoundError('The selected showtime does not exist', code='SHOWTIME_NOT_FOUND')
        return showtime

    @staticmethod
    def booked_seats(showtime_id, use_cache=True):
        """Seat labels held by active bookings, cached per showtime"""
        cache_key = f'seats_{showtime_id}'
        if use_cache:
            seats = cache.get(cache_key)
            if seats is not None:
                return seats

        bookings = Booking.query.filter(
            Booking.showtime_id == showtime_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        ).all()
        seats = sorted({seat for booking in bookings for seat in booking.seat_labels})
        cache.set(cache_key, seats, timeout=CACHE_TIMEOUT_SEATS)
        return seats

    @staticmethod
    def invalidate_caches(showtime_id=None):
        if showtime_id:
            cache.delete(f'seats_{showtime_id}')

    @staticmethod
    def _natural_key(data, require_time):
        if not isinstance(data, dict):
            raise ValidationError('Showtime data must be an object', code='INVALID_SHOWTIME_DATA')
        required = ['movieId', 'theaterId', 'date'] + (['time'] if require_time else [])
        missing = [f for f in required if data.get(f) in (None, '')]
        if missing:
            raise ValidationError(f'Missing showtime fields: {", ".join(missing)}',
                                  code='INVALID_SHOWTIME_DATA')
        movie_id = parse_int(data['movieId'], 'movieId', code='INVALID_SHOWTIME_DATA')
        theater_id = parse_int(data['theaterId'], 'theaterId', code='INVALID_SHOWTIME_DATA')
        day = parse_date(data['date'], code='INVALID_SHOWTIME_DATA')
        time = str(data['time']).strip() if data.get('time') not in (None, '') else None
        return movie_id, theater_id, day, time

    @staticmethod
    def resolve(data, require_time=False, commit=True):
        """Find or create the showtime described by {movieId, theaterId, date, time?, format?, price?}.

        Returns ``(showtime, created)``. Without a time, the pair is
        materialized if needed and the earliest showtime that day returned.
        With ``commit=False`` a new showtime is only flushed and the caller
        owns the transaction.
        """
        movie_id, theater_id, day, time = ShowtimeService._natural_key(data, require_time)
        movie = MovieService.get_movie(movie_id)
        theater = TheaterService.get_theater(theater_id)

        if time is None:
            ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, start=day)
            showtimes = ShowtimeService.list_showtimes(movie.id, theater.id, day)
            if not showtimes:
                raise NotFoundError('No showtimes scheduled on that date', code='SHOWTIME_NOT_FOUND')
            return showtimes[0], False

        existing = ShowtimeService._find(movie.id, theater.id, day, time)
        if existing:
            return existing, False

        fmt, price = ShowtimeService._format_and_price(data, time)
        derived_id = generate_showtime_id(movie.id, theater.id, day, time)
        taken = db.session.get(Showtime, derived_id) is not None
        showtime = Showtime(
            id=None if taken else derived_id,
            movie_id=movie.id,
            theater_id=theater.id,
            date=day,
            time=time,
            format=fmt,
            price=price,
            available_seats=theater.seating_capacity,
        )
        db.session.add(showtime)
        try:
            if commit:
                db.session.commit()
            else:
                db.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent creator of the same slot
            db.session.rollback()
            existing = ShowtimeService._find(movie.id, theater.id, day, time)
            if existing:
                return existing, False
            raise DatabaseError('Failed to create showtime', code='SHOWTIME_CREATE_ERROR') from None
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Failed to create showtime for movie %s at theater %s: %s',
                         movie.id, theater.id, e)
            raise DatabaseError('Failed to create showtime', code='SHOWTIME_CREATE_ERROR') from e
        logger.info('Created showtime %s on demand (%s %s)', showtime.id, day, time)
        return showtime, True

    @staticmethod
    def _find(movie_id, theater_id, day, time):
        showtime = Showtime.query.filter_by(
            movie_id=movie_id, theater_id=theater_id, date=day, time=time).first()
        if showtime:
            return showtime
        candidate = db.session.get(Showtime, generate_showtime_id(movie_id, theater_id, day, time))
        if candidate and (candidate.movie_id, candidate.theater_id, candidate.date) == (movie_id, theater_id, day) \
                and candidate.time.upper() == time.upper():
            return candidate
        return None

    @staticmethod
    def _format_and_price(data, time):
        entry = catalog_entry_for(time)
        fmt = data.get('format') or (entry.format if entry else 'standard')
        if fmt not in SHOWTIME_FORMATS:
            raise ValidationError(f'format must be one of {", ".join(SHOWTIME_FORMATS)}',
                                  code='INVALID_SHOWTIME_DATA')
        if data.get('price') not in (None, ''):
            price = parse_float(data['price'], 'price', minimum=0, code='INVALID_SHOWTIME_DATA')
        elif entry and entry.format == fmt:
            price = float(entry.price)
        else:
            price = float(SEAT_PRICES[fmt])
        return fmt, price

    @staticmethod
    def create_showtime(data):
        """Admin creation; the id is assigned by the database"""
        missing = [f for f in ('movieId', 'theaterId', 'date', 'time', 'price') if data.get(f) in (None, '')]
        if missing:
            raise ValidationError(f'Missing required fields: {", ".join(missing)}')
        movie = MovieService.get_movie(parse_int(data['movieId'], 'movieId'))
        theater = TheaterService.get_theater(parse_int(data['theaterId'], 'theaterId'))
        fmt = data.get('format') or 'standard'
        if fmt not in SHOWTIME_FORMATS:
            raise ValidationError(f'format must be one of {", ".join(SHOWTIME_FORMATS)}')

        showtime = Showtime(
            movie_id=movie.id,
            theater_id=theater.id,
            date=parse_date(data['date']),
            time=str(data['time']).strip(),
            format=fmt,
            price=parse_float(data['price'], 'price', minimum=0),
            available_seats=theater.seating_capacity,
        )
        db.session.add(showtime)
        _commit('Failed to create showtime')
        return showtime

    @staticmethod
    def update_showtime(showtime_id, data):
        """Admin edit; moving to another theater resets free seats to its capacity minus bookings"""
        showtime = ShowtimeService.get_showtime(showtime_id)

        if data.get('movieId') not in (None, ''):
            showtime.movie_id = MovieService.get_movie(parse_int(data['movieId'], 'movieId')).id
        if data.get('date') not in (None, ''):
            showtime.date = parse_date(data['date'])
        if data.get('time') not in (None, ''):
            showtime.time = str(data['time']).strip()
        if data.get('format') not in (None, ''):
            if data['format'] not in SHOWTIME_FORMATS:
                raise ValidationError(f'format must be one of {", ".join(SHOWTIME_FORMATS)}')
            showtime.format = data['format']
        if data.get('price') not in (None, ''):
            showtime.price = parse_float(data['price'], 'price', minimum=0)

        theater = showtime.theater
        if data.get('theaterId') not in (None, ''):
            theater = TheaterService.get_theater(parse_int(data['theaterId'], 'theaterId'))
            showtime.theater_id = theater.id
            showtime.available_seats = max(0, theater.seating_capacity - booked_seat_count(showtime.id))
        elif data.get('available_seats') not in (None, ''):
            seats = parse_int(data['available_seats'], 'available_seats', minimum=0)
            if seats > theater.seating_capacity:
                raise ValidationError(
                    f'available_seats cannot exceed the theater capacity ({theater.seating_capacity})')
            showtime.available_seats = seats

        _commit('Failed to update showtime')
        ShowtimeService.invalidate_caches(showtime_id=showtime.id)
        return showtime

    @staticmethod
    def delete_showtime(showtime_id):
        showtime = ShowtimeService.get_showtime(showtime_id)
        if Booking.query.filter_by(showtime_id=showtime.id).count():
            raise BusinessLogicError('Cannot delete showtime with existing bookings', code='HAS_BOOKINGS')
        db.session.delete(showtime)
        _commit('Failed to delete showtime')
        ShowtimeService.invalidate_caches(showtime_id=showtime_id)


# ==================== BOOKINGS ====================

def _validate_seats(seats):
    if not isinstance(seats, list) or not seats:
        raise ValidationError('Seats must be a non-empty array', code='INVALID_SEATS')
    labels = []
    for seat in seats:
        if not isinstance(seat, str) or not seat.strip():
            raise ValidationError('Seat labels must be non-empty strings', code='INVALID_SEATS')
        labels.append(seat.strip())
    if len(set(labels)) != len(labels):
        raise ValidationError('Seats must not contain duplicates', code='INVALID_SEATS')
    return labels


def _validate_payment_method(value):
    if value in (None, ''):
        return 'card'
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('paymentMethod must be a non-empty string', code='INVALID_PAYMENT_METHOD')
    value = value.strip().lower()
    if len(value) > 30:
        raise ValidationError('paymentMethod is too long', code='INVALID_PAYMENT_METHOD')
    return value


def generate_booking_reference():
    """Short opaque reference shown to customers"""
    for _ in range(5):
        reference = str(uuid.uuid4())[:8].upper()
        if not Booking.query.filter_by(booking_reference=reference).first():
            return reference
    return uuid.uuid4().hex[:12].upper()


class BookingService:
    """Service for booking-related business logic"""

    @staticmethod
    def create_booking(user_id, data):
        """Create a booking and take its seats off the showtime.

        The seat decrement is a single conditional UPDATE, so a booking
        that would push available seats below zero is rejected.
        """
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        seats = _validate_seats(data.get('seats'))
        payment_method = _validate_payment_method(data.get('paymentMethod'))
        total_price = None
        if data.get('totalPrice') not in (None, ''):
            total_price = parse_float(data['totalPrice'], 'totalPrice', minimum=0)

        if data.get('showtimeData'):
            # A showtime created here commits together with the booking
            showtime, _ = ShowtimeService.resolve(data['showtimeData'], require_time=True, commit=False)
        elif data.get('showtimeId') not in (None, ''):
            showtime_id = parse_int(data['showtimeId'], 'showtimeId', code='INVALID_SHOWTIME_DATA')
            showtime = ShowtimeService.get_showtime(showtime_id)
        else:
            raise ValidationError('Either showtimeId or showtimeData is required',
                                  code='MISSING_SHOWTIME_INFO')

        showtime_id = showtime.id
        try:
            if not showtime.movie or not showtime.theater:
                raise ValidationError('The showtime has incomplete data (missing movie or theater)',
                                      code='INVALID_SHOWTIME_DATA')

            taken = set(seats) & set(ShowtimeService.booked_seats(showtime_id, use_cache=False))
            if taken:
                raise BusinessLogicError(f'Seats already booked: {", ".join(sorted(taken))}',
                                         code='SEATS_ALREADY_BOOKED')

            if total_price is None:
                total_price = showtime.price * len(seats)

            result = db.session.execute(
                update(Showtime)
                .where(Showtime.id == showtime_id, Showtime.available_seats >= len(seats))
                .values(available_seats=Showtime.available_seats - len(seats))
            )
            if result.rowcount == 0:
                raise BusinessLogicError('Not enough seats available for this showtime',
                                         code='SEATS_UNAVAILABLE')

            booking = Booking(
                booking_reference=generate_booking_reference(),
                user_id=user_id,
                showtime_id=showtime_id,
                seats=encode_seats(seats),
                total_price=total_price,
                payment_method=payment_method,
                status=BOOKING_CONFIRMED,
            )
            db.session.add(booking)
            db.session.commit()
        except BookingAppException:
            db.session.rollback()
            ShowtimeService.invalidate_caches(showtime_id=showtime_id)
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Database error creating booking for showtime %s: %s', showtime_id, e)
            raise DatabaseError('Failed to create booking in database', code='DB_ERROR') from e

        ShowtimeService.invalidate_caches(showtime_id=showtime_id)
        logger.info('Booking %s confirmed: %d seats for showtime %s',
                    booking.booking_reference, len(seats), showtime_id)
        return booking

    @staticmethod
    def get_booking(user, reference):
        """Find a booking by reference, then by numeric id; non-admins see only their own"""
        query = Booking.query
        if not user.is_admin:
            query = query.filter(Booking.user_id == user.id)
        booking = query.filter(Booking.booking_reference == str(reference).upper()).first()
        if not booking and str(reference).isdigit():
            booking = query.filter(Booking.id == int(reference)).first()
        if not booking:
            raise NotFoundError(f'Booking {reference} not found', code='BOOKING_NOT_FOUND')
        return booking

    @staticmethod
    def list_bookings(user=None, limit=None, offset=None):
        """Bookings newest first; ``user=None`` or an admin user lists everyone's"""
        limit, offset = paginate_args(limit, offset)
        query = Booking.query
        if user is not None and not user.is_admin:
            query = query.filter(Booking.user_id == user.id)
        total = query.count()
        bookings = query.order_by(Booking.created_at.desc(), Booking.id.desc()) \
            .offset(offset).limit(limit).all()
        return {
            'bookings': [booking.to_dict() for booking in bookings],
            'pagination': {
                'total': total,
                'offset': offset,
                'limit': limit,
                'hasMore': offset + limit < total,
            },
        }

    @staticmethod
    def _get_by_id(booking_id):
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(f'Booking {booking_id} not found', code='BOOKING_NOT_FOUND')
        return booking

    @staticmethod
    def update_booking(booking_id, data):
        """Admin edit of status, payment method or total price; seats stay as booked"""
        booking = BookingService._get_by_id(booking_id)

        if data.get('status') not in (None, ''):
            status = str(data['status']).strip().upper()
            if status not in BOOKING_STATUSES:
                raise ValidationError(f'status must be one of {", ".join(BOOKING_STATUSES)}',
                                      code='INVALID_STATUS')
            if status == BOOKING_CANCELLED and booking.status != BOOKING_CANCELLED:
                raise BusinessLogicError('Bookings cannot be cancelled; delete the booking to release its seats',
                                         code='INVALID_STATUS')
            booking.status = status
        if 'paymentMethod' in data:
            booking.payment_method = _validate_payment_method(data['paymentMethod'])
        if data.get('totalPrice') not in (None, ''):
            booking.total_price = parse_float(data['totalPrice'], 'totalPrice', minimum=0)

        _commit('Failed to update booking')
        return booking

    @staticmethod
    def delete_booking(booking_id):
        """Delete a booking and give its seats back to the showtime, capped at capacity"""
        booking = BookingService._get_by_id(booking_id)
        showtime_id = booking.showtime_id
        released = len(booking.seat_labels) if booking.status in ACTIVE_BOOKING_STATUSES else 0

        if released and booking.showtime and booking.showtime.theater:
            capacity = booking.showtime.theater.seating_capacity
            restored = Showtime.available_seats + released
            db.session.execute(
                update(Showtime)
                .where(Showtime.id == showtime_id)
                .values(available_seats=case((restored > capacity, capacity), else_=restored))
            )
        db.session.delete(booking)
        _commit('Failed to delete booking')
        ShowtimeService.invalidate_caches(showtime_id=showtime_id)
        logger.info('Booking %s deleted; %d seats released on showtime %s',
                    booking_id, released, showtime_id)
        return released


# ==================== USERS & AUTH ====================

class AuthService:
    """Service for authentication-related business logic"""

    @staticmethod
    def register_user(email, password, first_name=None, last_name=None):
        """Register a new user"""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise BusinessLogicError('Email already registered', code='EMAIL_EXISTS')

        user = User(email=email, first_name=first_name, last_name=last_name)
        user.set_password(password)
        db.session.add(user)
        _commit('Failed to register user')
        return user

    @staticmethod
    def login_user(email, password):
        """Authenticate user"""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not user.check_password(password):
            raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')
        return user

    @staticmethod
    def login_admin(email, password):
        """Authenticate an admin user"""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')
        if not user.is_admin:
            raise PermissionDenied('Access denied. Not an admin user.')
        if not user.check_password(password):
            raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')
        return user

    @staticmethod
    def change_password(user, current_password, new_password):
        """Change a user's password after checking the current one"""
        if not current_password or not new_password:
            raise ValidationError('Current and new password are required')
        if not isinstance(current_password, str) or not isinstance(new_password, str):
            raise ValidationError('Passwords must be strings')
        if not user.check_password(current_password):
            raise ValidationError('Current password is incorrect', code='INVALID_PASSWORD')
        user.set_password(new_password)
        _commit('Failed to change password')

    @staticmethod
    def update_profile(user, data):
        """Update first and last name"""
        for key, field in (('firstName', 'first_name'), ('lastName', 'last_name')):
            if key not in data and field not in data:
                continue
            value = data.get(key, data.get(field))
            if value is not None and not isinstance(value, str):
                raise ValidationError(f'{key} must be a string')
            setattr(user, field, value.strip() if value else None)
        _commit('Failed to update profile')
        return user

    @staticmethod
    def get_current_user():
        """Get current logged in user"""
        user_id = session.get('user_id')
        if not user_id:
            return None
        return db.session.get(User, user_id)

    @staticmethod
    def list_users():
        return User.query.order_by(User.created_at.desc()).all()


class DashboardService:
    """Aggregates for the admin dashboard"""

    @staticmethod
    def summary():
        recent = Booking.query.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(10).all()
        return {
            'moviesCount': Movie.query.count(),
            'theatersCount': Theater.query.count(),
            'showtimesCount': Showtime.query.count(),
            'usersCount': User.query.count(),
            'bookingsCount': Booking.query.count(),
            'totalRevenue': float(db.session.query(func.coalesce(func.sum(Booking.total_price), 0)).scalar()),
            'recentBookings': [
                {
                    'id': booking.id,
                    'reference': booking.booking_reference,
                    'user': booking.user.display_name,
                    'email': booking.user.email,
                    'movie': booking.showtime.movie.title,
                    'theater': booking.showtime.theater.name,
                    'date': booking.showtime.date.isoformat(),
                    'time': booking.showtime.time,
                    'seats': booking.seat_labels,
                    'amount': booking.total_price,
                    'created_at': booking.created_at.isoformat(),
                }
                for booking in recent
            ],
        }
