"""
Encode/decode helpers for the structured fields stored as JSON text.

Genres and seats are lists of strings; cast is a list of
``{"name": ..., "role": ...}`` records. Writers go through ``encode_*``
and readers through ``decode_*`` so the stored format is defined in
one place.
"""
import json
import logging

logger = logging.getLogger(__name__)


def _load(value):
    """Accept either a Python value or an already-encoded JSON string"""
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f'Invalid JSON: {e}') from e
    return value


def _string_list(value, field):
    items = _load(value)
    if not isinstance(items, (list, tuple)):
        raise ValueError(f'{field} must be a list')
    result = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f'{field} must contain non-empty strings')
        result.append(item.strip())
    return result


def _cast_member(item):
    if isinstance(item, str):
        return {'name': item.strip(), 'role': ''}
    if isinstance(item, dict) and isinstance(item.get('name'), str) and item['name'].strip():
        role = item.get('role') or ''
        if not isinstance(role, str):
            raise ValueError('cast role must be a string')
        return {'name': item['name'].strip(), 'role': role.strip()}
    raise ValueError('cast entries must be names or {name, role} records')


def encode_genres(genres):
    return json.dumps(_string_list(genres, 'genres'))


def encode_seats(seats):
    return json.dumps(_string_list(seats, 'seats'))


def encode_cast(cast):
    items = _load(cast)
    if not isinstance(items, (list, tuple)):
        raise ValueError('cast must be a list')
    return json.dumps([_cast_member(item) for item in items])


def _safe_decode(raw, decoder, field):
    try:
        return decoder(raw)
    except ValueError:
        logger.warning('Could not decode stored %s value %r', field, raw)
        return []


def decode_genres(raw):
    return _safe_decode(raw, lambda v: _string_list(v, 'genres'), 'genres')


def decode_seats(raw):
    return _safe_decode(raw, lambda v: _string_list(v, 'seats'), 'seats')


def decode_cast(raw):
    def _decode(value):
        items = _load(value)
        if not isinstance(items, list):
            raise ValueError('cast must be a list')
        return [_cast_member(item) for item in items]
    return _safe_decode(raw, _decode, 'cast')
