from flask import Blueprint, current_app, jsonify, request

from .api import json_body
from .auth import ADMIN_TOKEN_COOKIE, admin_required, issue_admin_token
from .errors import BusinessLogicError, ValidationError, handle_exceptions
from .services import (AuthService, BookingService, DashboardService,
                       MovieService, ShowtimeService, TheaterService,
                       parse_int)
from .showtimes import ShowtimeMaterializer, clear_unbooked_showtimes, validate_days

admin = Blueprint('admin', __name__, url_prefix='/api/admin')

SCOPES = ('movie', 'theater', 'pair', 'all')


@admin.route('/login', methods=['POST'])
@handle_exceptions
def login():
    """Exchange admin credentials for a bearer token"""
    data = json_body()
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required', 'code': 'VALIDATION_ERROR'}), 400

    user = AuthService.login_admin(data['email'], data['password'])
    token = issue_admin_token(user)
    response = jsonify({'success': True, 'user': user.to_dict(), 'token': token})
    response.set_cookie(
        ADMIN_TOKEN_COOKIE,
        token,
        max_age=current_app.config['ADMIN_TOKEN_MAX_AGE'],
        httponly=True,
        secure=current_app.config['SESSION_COOKIE_SECURE'],
        samesite='Lax',
    )
    return response


@admin.route('/dashboard', methods=['GET'])
@handle_exceptions
@admin_required
def dashboard():
    return jsonify(DashboardService.summary())


# ==================== MOVIES ====================

@admin.route('/movies', methods=['GET'])
@handle_exceptions
@admin_required
def list_movies():
    return jsonify({'movies': MovieService.list_movies()})


@admin.route('/movies', methods=['POST'])
@handle_exceptions
@admin_required
def create_movie():
    """Create a movie; showtimes at every theater are generated right away"""
    movie, generation = MovieService.create_movie(json_body())
    return jsonify({
        'movie': movie.to_dict(),
        'showtimes': generation.to_dict() if generation else None,
    }), 201


@admin.route('/movies/<int:movie_id>', methods=['GET'])
@handle_exceptions
@admin_required
def get_movie(movie_id):
    movie = MovieService.get_movie(movie_id)
    data = movie.to_dict()
    data['showtimesCount'] = len(movie.showtimes)
    return jsonify({'movie': data})


@admin.route('/movies/<int:movie_id>', methods=['PATCH'])
@handle_exceptions
@admin_required
def update_movie(movie_id):
    movie = MovieService.update_movie(movie_id, json_body())
    return jsonify({'movie': movie.to_dict()})


@admin.route('/movies/<int:movie_id>', methods=['DELETE'])
@handle_exceptions
@admin_required
def delete_movie(movie_id):
    MovieService.delete_movie(movie_id)
    return jsonify({'success': True})


# ==================== THEATERS ====================

@admin.route('/theaters', methods=['GET'])
@handle_exceptions
@admin_required
def list_theaters():
    return jsonify({'theaters': TheaterService.list_theaters()})


@admin.route('/theaters', methods=['POST'])
@handle_exceptions
@admin_required
def create_theater():
    """Create a theater; showtimes for every movie are generated right away"""
    theater, generation = TheaterService.create_theater(json_body())
    return jsonify({
        'theater': theater.to_dict(),
        'showtimes': generation.to_dict() if generation else None,
    }), 201


@admin.route('/theaters/<int:theater_id>', methods=['GET'])
@handle_exceptions
@admin_required
def get_theater(theater_id):
    theater = TheaterService.get_theater(theater_id)
    data = theater.to_dict()
    data['showtimesCount'] = len(theater.showtimes)
    return jsonify({'theater': data})


@admin.route('/theaters/<int:theater_id>', methods=['PATCH'])
@handle_exceptions
@admin_required
def update_theater(theater_id):
    theater = TheaterService.update_theater(theater_id, json_body())
    return jsonify({'theater': theater.to_dict()})


@admin.route('/theaters/<int:theater_id>', methods=['DELETE'])
@handle_exceptions
@admin_required
def delete_theater(theater_id):
    TheaterService.delete_theater(theater_id)
    return jsonify({'success': True})


# ==================== SHOWTIMES ====================

@admin.route('/showtimes', methods=['GET'])
@handle_exceptions
@admin_required
def list_showtimes():
    showtimes = ShowtimeService.list_showtimes(
        movie_id=request.args.get('movieId'),
        theater_id=request.args.get('theaterId'),
        show_date=request.args.get('date'),
    )
    return jsonify({'showtimes': [s.to_dict(include_related=True) for s in showtimes]})


@admin.route('/showtimes', methods=['POST'])
@handle_exceptions
@admin_required
def create_showtime():
    showtime = ShowtimeService.create_showtime(json_body())
    return jsonify({'showtime': showtime.to_dict(include_related=True)}), 201


@admin.route('/showtimes/<int:showtime_id>', methods=['GET'])
@handle_exceptions
@admin_required
def get_showtime(showtime_id):
    showtime = ShowtimeService.get_showtime(showtime_id)
    data = showtime.to_dict(include_related=True)
    data['bookings'] = [b.to_dict(include_showtime=False) for b in showtime.bookings]
    return jsonify({'showtime': data})


@admin.route('/showtimes/<int:showtime_id>', methods=['PATCH'])
@handle_exceptions
@admin_required
def update_showtime(showtime_id):
    showtime = ShowtimeService.update_showtime(showtime_id, json_body())
    return jsonify({'showtime': showtime.to_dict(include_related=True)})


@admin.route('/showtimes/<int:showtime_id>', methods=['DELETE'])
@handle_exceptions
@admin_required
def delete_showtime(showtime_id):
    ShowtimeService.delete_showtime(showtime_id)
    return jsonify({'success': True})


def _generation_request(data):
    """Parse {scope, movieId, theaterId, daysToGenerate}; scope defaults from the ids given"""
    movie_id = parse_int(data['movieId'], 'movieId') if data.get('movieId') not in (None, '') else None
    theater_id = parse_int(data['theaterId'], 'theaterId') if data.get('theaterId') not in (None, '') else None
    scope = data.get('scope')
    if not scope:
        if movie_id and theater_id:
            scope = 'pair'
        elif movie_id:
            scope = 'movie'
        elif theater_id:
            scope = 'theater'
        else:
            scope = 'all'
    if scope not in SCOPES:
        raise ValidationError(f'scope must be one of {", ".join(SCOPES)}')
    if scope in ('movie', 'pair') and movie_id is None:
        raise ValidationError('movieId is required for this scope')
    if scope in ('theater', 'pair') and theater_id is None:
        raise ValidationError('theaterId is required for this scope')
    days = validate_days(data.get('daysToGenerate', current_app.config['SHOWTIME_DAYS']))
    return scope, movie_id, theater_id, days


def _materialize(scope, movie_id, theater_id, days):
    if scope == 'movie':
        MovieService.get_movie(movie_id)
        return ShowtimeMaterializer.for_movie(movie_id, days).to_dict()
    if scope == 'theater':
        TheaterService.get_theater(theater_id)
        return ShowtimeMaterializer.for_theater(theater_id, days).to_dict()
    if scope == 'pair':
        MovieService.get_movie(movie_id)
        TheaterService.get_theater(theater_id)
        outcome = ShowtimeMaterializer.for_movie_theater(movie_id, theater_id, days)
        return {
            'success': outcome.success,
            'pairs': 1,
            'succeeded': int(outcome.success),
            'failed': int(not outcome.success),
            'created': outcome.created,
            'skipped': int(outcome.skipped),
            'error': outcome.error,
        }

    result = ShowtimeMaterializer.for_all(days)
    if result.error in ('NO_MOVIES', 'NO_THEATERS'):
        raise BusinessLogicError(
            'Cannot generate showtimes: no movies found' if result.error == 'NO_MOVIES'
            else 'Cannot generate showtimes: no theaters found',
            code=result.error,
        )
    return result.to_dict()


@admin.route('/showtimes/generate', methods=['POST'])
@handle_exceptions
@admin_required
def generate_showtimes():
    """Materialize catalog showtimes for a movie, a theater, a pair or everything"""
    scope, movie_id, theater_id, days = _generation_request(json_body())
    return jsonify({'scope': scope, 'result': _materialize(scope, movie_id, theater_id, days)})


@admin.route('/showtimes/regenerate', methods=['POST'])
@handle_exceptions
@admin_required
def regenerate_showtimes():
    """Drop unbooked showtimes in scope, then materialize again"""
    scope, movie_id, theater_id, days = _generation_request(json_body())
    if movie_id is not None:
        MovieService.get_movie(movie_id)
    if theater_id is not None:
        TheaterService.get_theater(theater_id)
    cleared = clear_unbooked_showtimes(
        movie_id=movie_id if scope in ('movie', 'pair') else None,
        theater_id=theater_id if scope in ('theater', 'pair') else None,
    )
    result = _materialize(scope, movie_id, theater_id, days)
    return jsonify({'scope': scope, 'cleared': cleared, 'result': result})


@admin.route('/showtimes/fix', methods=['POST'])
@handle_exceptions
@admin_required
def fix_missing_showtimes():
    """Generate showtimes for movies and theaters that have none"""
    days = validate_days(json_body().get('daysToGenerate', current_app.config['SHOWTIME_DAYS']))
    return jsonify({'success': True, 'results': ShowtimeMaterializer.fill_missing(days)})


# ==================== BOOKINGS & USERS ====================

@admin.route('/bookings', methods=['GET'])
@handle_exceptions
@admin_required
def list_bookings():
    return jsonify(BookingService.list_bookings(
        None,
        limit=request.args.get('limit'),
        offset=request.args.get('offset'),
    ))


@admin.route('/bookings/<int:booking_id>', methods=['PATCH'])
@handle_exceptions
@admin_required
def update_booking(booking_id):
    booking = BookingService.update_booking(booking_id, json_body())
    return jsonify({'booking': booking.to_dict()})


@admin.route('/bookings/<int:booking_id>', methods=['DELETE'])
@handle_exceptions
@admin_required
def delete_booking(booking_id):
    """Delete a booking and hand its seats back to the showtime"""
    released = BookingService.delete_booking(booking_id)
    return jsonify({'success': True, 'releasedSeats': released})


@admin.route('/users', methods=['GET'])
@handle_exceptions
@admin_required
def list_users():
    return jsonify({'users': [user.to_dict() for user in AuthService.list_users()]})
