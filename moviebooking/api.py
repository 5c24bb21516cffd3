from flask import Blueprint, g, jsonify, request, session

from .auth import login_required
from .errors import ValidationError, handle_exceptions
from .services import (AuthService, BookingService, MovieService,
                       ShowtimeService, TheaterService)

api = Blueprint('api', __name__, url_prefix='/api')


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# ==================== AUTH ====================

@api.route('/auth/register', methods=['POST'])
@handle_exceptions
def register():
    """Register a new user"""
    data = json_body()
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required', 'code': 'VALIDATION_ERROR'}), 400

    user = AuthService.register_user(
        email=data['email'],
        password=data['password'],
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
    )

    # Auto login after registration
    session['user_id'] = user.id
    return jsonify({'message': 'Registration successful', 'user': user.to_dict()}), 201


@api.route('/auth/login', methods=['POST'])
@handle_exceptions
def login():
    """Login user"""
    data = json_body()
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required', 'code': 'VALIDATION_ERROR'}), 400

    user = AuthService.login_user(data['email'], data['password'])
    session.clear()
    session['user_id'] = user.id
    return jsonify({'message': 'Login successful', 'user': user.to_dict()})


@api.route('/auth/logout', methods=['POST'])
def logout():
    """Logout user"""
    session.clear()
    return jsonify({'message': 'Logged out successfully'})


@api.route('/auth/me', methods=['GET'])
@handle_exceptions
def me():
    """Get current logged in user"""
    user = AuthService.get_current_user()
    if not user:
        return jsonify({'error': 'Not logged in', 'code': 'AUTH_REQUIRED'}), 401
    return jsonify(user.to_dict())


@api.route('/auth/change-password', methods=['POST'])
@handle_exceptions
@login_required
def change_password():
    data = json_body()
    AuthService.change_password(g.user, data.get('currentPassword'), data.get('newPassword'))
    return jsonify({'message': 'Password updated successfully'})


@api.route('/auth/update-profile', methods=['PUT'])
@handle_exceptions
@login_required
def update_profile():
    user = AuthService.update_profile(g.user, json_body())
    return jsonify({'message': 'Profile updated successfully', 'user': user.to_dict()})


# ==================== MOVIES & THEATERS ====================

@api.route('/movies', methods=['GET'])
@handle_exceptions
def list_movies():
    return jsonify({'movies': MovieService.list_movies()})


@api.route('/movies/<int:movie_id>', methods=['GET'])
@handle_exceptions
def get_movie(movie_id):
    return jsonify({'movie': MovieService.get_movie(movie_id).to_dict()})


@api.route('/movies/<int:movie_id>/showtimes', methods=['GET'])
@handle_exceptions
def movie_showtimes(movie_id):
    """Showtimes of one movie, optionally narrowed to a theater and date"""
    MovieService.get_movie(movie_id)
    showtimes = ShowtimeService.list_showtimes(
        movie_id=movie_id,
        theater_id=request.args.get('theaterId'),
        show_date=request.args.get('date'),
    )
    return jsonify({
        'showtimes': [s.to_dict(include_related=True) for s in showtimes],
        'total': len(showtimes),
    })


@api.route('/theaters', methods=['GET'])
@handle_exceptions
def list_theaters():
    return jsonify({'theaters': TheaterService.list_theaters()})


@api.route('/theaters/<int:theater_id>', methods=['GET'])
@handle_exceptions
def get_theater(theater_id):
    return jsonify({'theater': TheaterService.get_theater(theater_id).to_dict()})


# ==================== SHOWTIMES ====================

@api.route('/showtimes', methods=['GET'])
@handle_exceptions
def list_showtimes():
    showtimes = ShowtimeService.list_showtimes(
        movie_id=request.args.get('movieId'),
        theater_id=request.args.get('theaterId'),
        show_date=request.args.get('date'),
    )
    return jsonify({
        'showtimes': [s.to_dict(include_related=True) for s in showtimes],
        'total': len(showtimes),
    })


@api.route('/showtimes/<int:showtime_id>', methods=['GET'])
@handle_exceptions
def get_showtime(showtime_id):
    """Showtime with the seat labels already taken"""
    showtime = ShowtimeService.get_showtime(showtime_id)
    data = showtime.to_dict(include_related=True)
    data['booked_seats'] = ShowtimeService.booked_seats(showtime.id)
    return jsonify({'showtime': data})


@api.route('/showtimes/resolve', methods=['POST'])
@handle_exceptions
def resolve_showtime():
    """Find or create the showtime for a movie, theater, date and optional time"""
    showtime, created = ShowtimeService.resolve(json_body())
    return jsonify({'showtime': showtime.to_dict(), 'created': created}), 201 if created else 200


# ==================== BOOKINGS ====================

@api.route('/bookings', methods=['POST'])
@handle_exceptions
@login_required
def create_booking():
    """Book seats for a showtime given by id or by inline showtime data"""
    booking = BookingService.create_booking(g.user.id, json_body())
    return jsonify({
        'success': True,
        'bookingReference': booking.booking_reference,
        'booking': booking.to_dict(),
    }), 201


@api.route('/bookings', methods=['GET'])
@handle_exceptions
@login_required
def list_bookings():
    """Current user's bookings; admins see everyone's"""
    return jsonify(BookingService.list_bookings(
        g.user,
        limit=request.args.get('limit'),
        offset=request.args.get('offset'),
    ))


@api.route('/bookings/<reference>', methods=['GET'])
@handle_exceptions
@login_required
def get_booking(reference):
    booking = BookingService.get_booking(g.user, reference)
    return jsonify({'booking': booking.to_dict()})
