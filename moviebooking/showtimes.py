"""
Showtime scheduling.

The daily schedule is the fixed catalog below. Showtime ids for catalog
slots are derived from (movie, theater, date, time) so that the booking
flow and the bulk generator agree on a showtime's identity without a
lookup.
"""
import logging
from collections import namedtuple
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import Movie, Showtime, Theater

logger = logging.getLogger(__name__)

DEFAULT_DAYS_TO_GENERATE = 14
MAX_DAYS_TO_GENERATE = 90

SHOWTIME_ID_OFFSET = 1000
SHOWTIME_ID_SPACE = 1000000


# ==================== FIXED SHOWTIME CATALOG ====================

CatalogEntry = namedtuple('CatalogEntry', ['time', 'format', 'price'])

SHOWTIME_FORMATS = ('standard', 'premium', 'imax', 'vip')

FIXED_SHOWTIMES = (
    CatalogEntry('10:00 AM', 'standard', 150),
    CatalogEntry('1:00 PM', 'standard', 150),
    CatalogEntry('4:00 PM', 'premium', 180),
    CatalogEntry('7:00 PM', 'imax', 200),
    CatalogEntry('10:00 PM', 'vip', 220),
)

# Price by seat type
SEAT_PRICES = {
    'standard': 150,
    'premium': 180,
    'imax': 200,
    'vip': 220,
}


def showtimes_for_date(day):
    """Catalog entries scheduled on ``day``; every day uses the same slots"""
    return FIXED_SHOWTIMES


def catalog_entry_for(time):
    """Return the catalog entry with the given display time, or None"""
    if not time:
        return None
    wanted = time.strip().upper()
    for entry in FIXED_SHOWTIMES:
        if entry.time.upper() == wanted:
            return entry
    return None


# ==================== DETERMINISTIC SHOWTIME IDS ====================

def normalize_date(value):
    """Reduce a date, datetime or ISO string to a calendar date (UTC for aware values)"""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError('Date is required')
        if text[-1] in 'Zz':
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f'Invalid date: {value!r}') from None
        return normalize_date(parsed)
    raise ValueError(f'Invalid date: {value!r}')


def _to_int32(value):
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(seed):
    """Rolling 32-bit string hash: h = h * 31 + code, wrapped to a signed int"""
    h = 0
    for char in seed:
        h = _to_int32((h << 5) - h + ord(char))
    return h


def generate_showtime_id(movie_id, theater_id, show_date, time):
    """Stable showtime id in [1000, 1001000) for a movie, theater, date and time"""
    day = normalize_date(show_date).isoformat()
    seed = f'{movie_id}-{theater_id}-{day}-{time}'
    return abs(string_hash(seed)) % SHOWTIME_ID_SPACE + SHOWTIME_ID_OFFSET


# ==================== MATERIALIZATION ====================

@dataclass
class MaterializeResult:
    success: bool
    created: int = 0
    skipped: bool = False
    error: str = None

    def to_dict(self):
        return asdict(self)


@dataclass
class BulkResult:
    success: bool
    pairs: int = 0
    succeeded: int = 0
    failed: int = 0
    created: int = 0
    skipped: int = 0
    error: str = None

    def to_dict(self):
        return asdict(self)


def validate_days(days):
    if days is None:
        return DEFAULT_DAYS_TO_GENERATE
    if isinstance(days, bool):
        raise ValidationError('daysToGenerate must be a positive integer')
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError('daysToGenerate must be a positive integer') from None
    if days < 1 or days > MAX_DAYS_TO_GENERATE:
        raise ValidationError(f'daysToGenerate must be between 1 and {MAX_DAYS_TO_GENERATE}')
    return days


def build_showtime_rows(movie_id, theater, days, start=None):
    """Column values for every catalog slot over ``days`` days from ``start``"""
    start = start or datetime.now(timezone.utc).date()
    rows = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        for entry in showtimes_for_date(day):
            rows.append({
                'id': generate_showtime_id(movie_id, theater.id, day, entry.time),
                'movie_id': movie_id,
                'theater_id': theater.id,
                'date': day,
                'time': entry.time,
                'format': entry.format,
                'price': float(entry.price),
                'available_seats': theater.seating_capacity,
            })
    return rows


def _insert_rows(rows):
    """Insert rows in one batch; on failure fall back to one row at a time"""
    try:
        db.session.add_all([Showtime(**row) for row in rows])
        db.session.commit()
        return len(rows)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning('Batch insert of %d showtimes failed (%s); inserting individually',
                       len(rows), e.__class__.__name__)

    created = 0
    for row in rows:
        if _insert_row(row):
            created += 1
    logger.info('Created %d/%d showtimes individually', created, len(rows))
    return created


def _insert_row(row):
    try:
        db.session.add(Showtime(**row))
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        error = e

    # Derived id already used by another slot: let the database assign one
    holder = db.session.get(Showtime, row['id'])
    if holder is not None and (holder.movie_id, holder.theater_id, holder.date, holder.time) != \
            (row['movie_id'], row['theater_id'], row['date'], row['time']):
        logger.warning('Showtime id %s collides with showtime for movie %s at theater %s; '
                       'assigning a new id', row['id'], holder.movie_id, holder.theater_id)
        try:
            db.session.add(Showtime(**dict(row, id=None)))
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            error = e

    logger.error('Failed to create showtime %s (%s %s): %s', row['id'], row['date'], row['time'], error)
    return False


class ShowtimeMaterializer:
    """Creates showtime rows from the fixed catalog"""

    @staticmethod
    def for_movie_theater(movie_id, theater_id, days=None, start=None):
        """Ensure a movie/theater pair has catalog showtimes for the next ``days`` days.

        Any existing showtime for the pair counts as already materialized.
        Missing movie or theater is reported in the result, not raised.
        """
        days = validate_days(days)
        try:
            movie = db.session.get(Movie, movie_id)
            if not movie:
                raise NotFoundError(f'Movie with ID {movie_id} not found', code='MOVIE_NOT_FOUND')
            theater = db.session.get(Theater, theater_id)
            if not theater:
                raise NotFoundError(f'Theater with ID {theater_id} not found', code='THEATER_NOT_FOUND')
        except NotFoundError as e:
            logger.warning('Cannot generate showtimes: %s', e.message)
            return MaterializeResult(success=False, error=e.code)

        existing = Showtime.query.filter_by(movie_id=movie.id, theater_id=theater.id).count()
        if existing:
            logger.info('%d showtimes already exist for movie %s at theater %s; skipping',
                        existing, movie.id, theater.id)
            return MaterializeResult(success=True, skipped=True)

        rows = build_showtime_rows(movie.id, theater, days, start)
        logger.info('Creating %d showtimes for "%s" at "%s"', len(rows), movie.title, theater.name)
        created = _insert_rows(rows)
        return MaterializeResult(success=created > 0, created=created)

    @staticmethod
    def _run_pairs(pairs, days, start):
        result = BulkResult(success=False, pairs=len(pairs))
        for movie_id, theater_id in pairs:
            try:
                outcome = ShowtimeMaterializer.for_movie_theater(movie_id, theater_id, days, start)
            except Exception:
                db.session.rollback()
                logger.exception('Error generating showtimes for movie %s at theater %s',
                                 movie_id, theater_id)
                result.failed += 1
                continue
            if outcome.success:
                result.succeeded += 1
                result.created += outcome.created
                result.skipped += int(outcome.skipped)
            else:
                result.failed += 1
        result.success = result.succeeded > 0
        logger.info('Generated showtimes for %d/%d movie-theater pairs (%d created, %d skipped)',
                    result.succeeded, result.pairs, result.created, result.skipped)
        return result

    @staticmethod
    def for_movie(movie_id, days=None, start=None):
        """Materialize a movie at every theater"""
        days = validate_days(days)
        if not db.session.get(Movie, movie_id):
            logger.warning('Movie with ID %s not found', movie_id)
            return BulkResult(success=False, error='MOVIE_NOT_FOUND')
        theater_ids = [t.id for t in Theater.query.order_by(Theater.id).all()]
        if not theater_ids:
            logger.warning('No theaters found to generate showtimes for movie %s', movie_id)
            return BulkResult(success=False, error='NO_THEATERS')
        return ShowtimeMaterializer._run_pairs(
            [(movie_id, theater_id) for theater_id in theater_ids], days, start)

    @staticmethod
    def for_theater(theater_id, days=None, start=None):
        """Materialize every movie at a theater"""
        days = validate_days(days)
        if not db.session.get(Theater, theater_id):
            logger.warning('Theater with ID %s not found', theater_id)
            return BulkResult(success=False, error='THEATER_NOT_FOUND')
        movie_ids = [m.id for m in Movie.query.order_by(Movie.id).all()]
        if not movie_ids:
            logger.warning('No movies found to generate showtimes for theater %s', theater_id)
            return BulkResult(success=False, error='NO_MOVIES')
        return ShowtimeMaterializer._run_pairs(
            [(movie_id, theater_id) for movie_id in movie_ids], days, start)

    @staticmethod
    def for_all(days=None, start=None):
        """Materialize the full movie x theater cross-product"""
        days = validate_days(days)
        movie_ids = [m.id for m in Movie.query.order_by(Movie.id).all()]
        theater_ids = [t.id for t in Theater.query.order_by(Theater.id).all()]
        logger.info('Found %d movies and %d theaters', len(movie_ids), len(theater_ids))
        if not movie_ids:
            logger.warning('Cannot generate showtimes: no movies found')
            return BulkResult(success=False, error='NO_MOVIES')
        if not theater_ids:
            logger.warning('Cannot generate showtimes: no theaters found')
            return BulkResult(success=False, error='NO_THEATERS')
        pairs = [(m, t) for m in movie_ids for t in theater_ids]
        return ShowtimeMaterializer._run_pairs(pairs, days, start)

    @staticmethod
    def fill_missing(days=None, start=None):
        """Materialize movies and theaters that have no showtimes at all"""
        days = validate_days(days)
        movie_ids = [m.id for m in Movie.query.filter(~Movie.showtimes.any()).all()]
        theater_ids = [t.id for t in Theater.query.filter(~Theater.showtimes.any()).all()]
        logger.info('Found %d movies and %d theaters with no showtimes',
                    len(movie_ids), len(theater_ids))

        summary = {'movies_fixed': 0, 'movies_failed': 0, 'theaters_fixed': 0, 'theaters_failed': 0}
        for movie_id in movie_ids:
            if ShowtimeMaterializer.for_movie(movie_id, days, start).success:
                summary['movies_fixed'] += 1
            else:
                summary['movies_failed'] += 1
        for theater_id in theater_ids:
            if ShowtimeMaterializer.for_theater(theater_id, days, start).success:
                summary['theaters_fixed'] += 1
            else:
                summary['theaters_failed'] += 1
        return summary


def clear_unbooked_showtimes(movie_id=None, theater_id=None):
    """Delete showtimes in scope that no booking references; returns the count"""
    query = db.session.query(Showtime.id).filter(~Showtime.bookings.any())
    if movie_id is not None:
        query = query.filter(Showtime.movie_id == movie_id)
    if theater_id is not None:
        query = query.filter(Showtime.theater_id == theater_id)
    ids = [row.id for row in query.all()]
    for i in range(0, len(ids), 500):
        chunk = ids[i:i + 500]
        Showtime.query.filter(Showtime.id.in_(chunk)).delete()
    db.session.commit()
    logger.info('Cleared %d unbooked showtimes (movie=%s, theater=%s)', len(ids), movie_id, theater_id)
    return len(ids)
