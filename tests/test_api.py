import pytest
from cachelib.file import FileSystemCache

from moviebooking.extensions import db
from moviebooking.models import Booking, Showtime
from moviebooking.showtimes import ShowtimeMaterializer, generate_showtime_id

from .conftest import START


@pytest.fixture
def scheduled(movie, theater):
    ShowtimeMaterializer.for_movie_theater(movie.id, theater.id, 2, start=START)
    return movie, theater


def _showtime(movie, time='7:00 PM'):
    return Showtime.query.filter_by(movie_id=movie.id, date=START, time=time).one()


def test_index(client):
    assert client.get('/').status_code == 200


def test_register_logs_the_user_in(client):
    response = client.post('/api/auth/register', json={
        'email': 'New@Example.com', 'password': 'secret', 'first_name': 'Asha'})

    assert response.status_code == 201
    assert response.get_json()['user']['email'] == 'new@example.com'
    me = client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.get_json()['first_name'] == 'Asha'


def test_register_rejects_duplicate_email(client, user):
    response = client.post('/api/auth/register', json={'email': user.email, 'password': 'x'})

    assert response.status_code == 409
    assert response.get_json()['code'] == 'EMAIL_EXISTS'


def test_login_and_logout(client, user):
    bad = client.post('/api/auth/login', json={'email': user.email, 'password': 'wrong'})
    assert bad.status_code == 401

    assert client.post('/api/auth/login', json={'email': user.email, 'password': 'password123'}).status_code == 200
    assert client.get('/api/auth/me').status_code == 200

    client.post('/api/auth/logout')
    assert client.get('/api/auth/me').status_code == 401


def test_sessions_are_kept_server_side(app, logged_in_client):
    assert app.config['SESSION_TYPE'] == 'cachelib'
    assert isinstance(app.config['SESSION_CACHELIB'], FileSystemCache)
    assert logged_in_client.get('/api/auth/me').status_code == 200


def test_change_password(logged_in_client, user):
    wrong = logged_in_client.post('/api/auth/change-password', json={
        'currentPassword': 'guess', 'newPassword': 'better-secret'})
    assert wrong.status_code == 400
    assert wrong.get_json()['code'] == 'INVALID_PASSWORD'

    response = logged_in_client.post('/api/auth/change-password', json={
        'currentPassword': 'password123', 'newPassword': 'better-secret'})
    assert response.status_code == 200

    logged_in_client.post('/api/auth/logout')
    old = logged_in_client.post('/api/auth/login', json={'email': user.email, 'password': 'password123'})
    assert old.status_code == 401
    new = logged_in_client.post('/api/auth/login', json={'email': user.email, 'password': 'better-secret'})
    assert new.status_code == 200


def test_change_password_requires_both_fields(logged_in_client):
    response = logged_in_client.post('/api/auth/change-password', json={'newPassword': 'x'})
    assert response.status_code == 400


def test_profile_endpoints_require_login(client):
    assert client.post('/api/auth/change-password', json={}).status_code == 401
    assert client.put('/api/auth/update-profile', json={}).status_code == 401


def test_update_profile(logged_in_client):
    response = logged_in_client.put('/api/auth/update-profile', json={'firstName': ' Meera ', 'lastName': 'Nair'})

    assert response.status_code == 200
    assert response.get_json()['user']['name'] == 'Meera Nair'
    assert logged_in_client.get('/api/auth/me').get_json()['first_name'] == 'Meera'

    bad = logged_in_client.put('/api/auth/update-profile', json={'lastName': 42})
    assert bad.status_code == 400


def test_login_requires_credentials(client):
    response = client.post('/api/auth/login', json={'email': 'a@b.c'})
    assert response.status_code == 400


def test_movies_are_listed_with_decoded_fields(client, movie):
    response = client.get('/api/movies')

    assert response.status_code == 200
    listed = response.get_json()['movies'][0]
    assert listed['genres'] == ['Sci-Fi']
    assert listed['cast'] == [{'name': 'Matthew McConaughey', 'role': 'Cooper'}]


def test_unknown_movie_returns_code(client):
    response = client.get('/api/movies/404')

    assert response.status_code == 404
    assert response.get_json()['code'] == 'MOVIE_NOT_FOUND'


def test_theaters(client, theater):
    assert client.get('/api/theaters').get_json()['theaters'][0]['seating_capacity'] == 120
    assert client.get(f'/api/theaters/{theater.id}').status_code == 200
    assert client.get('/api/theaters/999').get_json()['code'] == 'THEATER_NOT_FOUND'


def test_showtimes_are_filtered_and_ordered_by_time(client, scheduled):
    movie, theater = scheduled

    response = client.get(f'/api/showtimes?movieId={movie.id}&date={START.isoformat()}')

    body = response.get_json()
    assert body['total'] == 5
    assert [s['time'] for s in body['showtimes']] == ['10:00 AM', '1:00 PM', '4:00 PM', '7:00 PM', '10:00 PM']
    assert body['showtimes'][0]['movie']['title'] == movie.title


def test_movie_showtimes_endpoint(client, scheduled):
    movie, theater = scheduled

    response = client.get(f'/api/movies/{movie.id}/showtimes?theaterId={theater.id}')

    assert response.get_json()['total'] == 10


def test_showtime_filter_with_bad_date(client, scheduled):
    response = client.get('/api/showtimes?date=someday')
    assert response.status_code == 400


def test_resolve_creates_then_finds(client, movie, theater):
    payload = {'movieId': movie.id, 'theaterId': theater.id, 'date': '2030-02-10', 'time': '10:00 PM'}

    created = client.post('/api/showtimes/resolve', json=payload)
    found = client.post('/api/showtimes/resolve', json=payload)

    assert created.status_code == 201
    assert found.status_code == 200
    showtime = created.get_json()['showtime']
    assert showtime['id'] == generate_showtime_id(movie.id, theater.id, '2030-02-10', '10:00 PM')
    assert showtime['format'] == 'vip'
    assert showtime['available_seats'] == 120
    assert found.get_json()['showtime']['id'] == showtime['id']


def test_resolve_reports_missing_theater(client, movie):
    response = client.post('/api/showtimes/resolve', json={
        'movieId': movie.id, 'theaterId': 55, 'date': '2030-02-10', 'time': '10:00 PM'})

    assert response.status_code == 404
    assert response.get_json()['code'] == 'THEATER_NOT_FOUND'


def test_booking_requires_login(client, scheduled):
    movie, _ = scheduled
    response = client.post('/api/bookings', json={'showtimeId': _showtime(movie).id, 'seats': ['A1']})

    assert response.status_code == 401


def test_booking_flow(logged_in_client, scheduled):
    movie, theater = scheduled
    showtime_id = _showtime(movie).id
    assert logged_in_client.get(f'/api/showtimes/{showtime_id}').get_json()['showtime']['booked_seats'] == []

    response = logged_in_client.post('/api/bookings', json={
        'showtimeId': showtime_id, 'seats': ['A1', 'A2'], 'totalPrice': 400})

    assert response.status_code == 201
    body = response.get_json()
    assert body['success'] is True
    assert body['booking']['booking_reference'] == body['bookingReference']
    assert body['booking']['status'] == 'CONFIRMED'
    assert body['booking']['seats'] == ['A1', 'A2']

    detail = logged_in_client.get(f'/api/showtimes/{showtime_id}').get_json()['showtime']
    assert detail['booked_seats'] == ['A1', 'A2']
    assert detail['available_seats'] == theater.seating_capacity - 2

    fetched = logged_in_client.get(f'/api/bookings/{body["bookingReference"]}')
    assert fetched.status_code == 200
    assert fetched.get_json()['booking']['showtime']['movie']['title'] == movie.title

    listed = logged_in_client.get('/api/bookings').get_json()
    assert listed['pagination']['total'] == 1


def test_booking_with_inline_showtime(logged_in_client, movie, theater):
    response = logged_in_client.post('/api/bookings', json={
        'showtimeData': {'movieId': movie.id, 'theaterId': theater.id,
                         'date': '2030-04-01T09:00:00Z', 'time': '1:00 PM'},
        'seats': ['C7'],
    })

    assert response.status_code == 201
    expected = generate_showtime_id(movie.id, theater.id, '2030-04-01', '1:00 PM')
    assert response.get_json()['booking']['showtimeId'] == expected
    db.session.expire_all()
    assert db.session.get(Showtime, expected).available_seats == theater.seating_capacity - 1


def test_booking_with_empty_seats(logged_in_client, scheduled):
    movie, _ = scheduled
    response = logged_in_client.post('/api/bookings', json={'showtimeId': _showtime(movie).id, 'seats': []})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_SEATS'
    db.session.expire_all()
    assert Booking.query.count() == 0


def test_booking_without_showtime(logged_in_client):
    response = logged_in_client.post('/api/bookings', json={'seats': ['A1']})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'MISSING_SHOWTIME_INFO'


def test_booking_unknown_showtime(logged_in_client):
    response = logged_in_client.post('/api/bookings', json={'showtimeId': 31337, 'seats': ['A1']})

    assert response.status_code == 404
    assert response.get_json()['code'] == 'SHOWTIME_NOT_FOUND'


def test_booking_over_capacity(logged_in_client, scheduled):
    movie, _ = scheduled
    showtime = _showtime(movie)
    showtime.available_seats = 1
    db.session.commit()

    response = logged_in_client.post('/api/bookings', json={'showtimeId': showtime.id, 'seats': ['A1', 'A2']})

    assert response.status_code == 409
    assert response.get_json()['code'] == 'SEATS_UNAVAILABLE'


def test_unknown_booking_reference(logged_in_client):
    response = logged_in_client.get('/api/bookings/NOPE1234')

    assert response.status_code == 404
    assert response.get_json()['code'] == 'BOOKING_NOT_FOUND'


def test_non_object_body_is_rejected(logged_in_client):
    response = logged_in_client.post('/api/bookings', json=['A1'])

    assert response.status_code == 400


def test_booking_with_bad_payment_method(logged_in_client, scheduled):
    movie, _ = scheduled
    response = logged_in_client.post('/api/bookings', json={
        'showtimeId': _showtime(movie).id, 'seats': ['A1'], 'paymentMethod': {'type': 'card'}})

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_PAYMENT_METHOD'
