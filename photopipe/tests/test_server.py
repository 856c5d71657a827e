"""Tests for the HTTP API."""

import io
import json
from datetime import datetime, timezone
from wsgiref.util import setup_testing_defaults

import pytest
from unittest.mock import AsyncMock, MagicMock

import server
from photopipe.photo_service import PhotoService


def call(method, path, body=None, query=''):
    environ = {}
    setup_testing_defaults(environ)
    environ['REQUEST_METHOD'] = method
    environ['PATH_INFO'] = path
    environ['QUERY_STRING'] = query
    if body is not None:
        data = json.dumps(body).encode()
        environ['CONTENT_TYPE'] = 'application/json'
        environ['CONTENT_LENGTH'] = str(len(data))
        environ['wsgi.input'] = io.BytesIO(data)

    captured = {}

    def start_response(status, headers, exc_info=None):
        captured['status'] = int(status.split()[0])
        captured['headers'] = dict(headers)

    payload = b''.join(server.app(environ, start_response))
    return captured['status'], json.loads(payload) if payload else None


class TestServer:
    """Tests for the JSON routes."""

    @pytest.fixture(autouse=True)
    def service(self, store, photo_db, s3_config):
        service = PhotoService(store, photo_db, s3_config=s3_config)
        server.set_service(service)
        yield service
        server.set_service(None)

    def test_upload_targets(self):
        status, body = call('POST', '/api/photos/upload-targets', {
            'files': [{'filename': 'IMG_0001.jpg', 'content_type': 'image/jpeg'}]
        })

        assert status == 200
        assert body[0]['key'] == 'full/IMG_0001.jpg'

    def test_upload_targets_require_files(self):
        status, body = call('POST', '/api/photos/upload-targets', {'files': []})

        assert status == 400
        assert 'files' in body['error']

    def test_upload_targets_require_file_objects(self):
        status, body = call('POST', '/api/photos/upload-targets', {'files': ['a.jpg']})

        assert status == 400
        assert 'files' in body['error']

    def test_create_and_optimize(self, store, photo_db, sample_image_bytes):
        store.objects['full/IMG_0001.jpg'] = sample_image_bytes

        status, created = call('POST', '/api/photos', {'name': 'IMG_0001.jpg', 'full_key': 'full/IMG_0001.jpg'})
        assert status == 200

        status, result = call('POST', '/api/photos/optimize', {'full_key': 'full/IMG_0001.jpg'})
        assert status == 200
        assert result['pk'] == created['pk']
        assert result['thumbnail_key'] == 'thumbnail/IMG_0001.webp'

        status, photos = call('GET', '/api/photos')
        assert status == 200
        assert photos[0]['gallery_url'] == 'https://cdn.example.com/gallery/IMG_0001.webp'

    def test_optimize_missing_source(self):
        status, body = call('POST', '/api/photos/optimize', {'full_key': 'full/missing.jpg'})

        assert status == 404
        assert body['type'] == 'SourceNotFound'

    def test_optimize_undecodable(self, store):
        store.objects['full/bad.jpg'] = b'not an image'

        status, body = call('POST', '/api/photos/optimize', {'full_key': 'full/bad.jpg'})

        assert status == 422
        assert body['type'] == 'DecodeOrEncodeFailure'

    def test_optimize_requires_key(self):
        status, _ = call('POST', '/api/photos/optimize', {})

        assert status == 400

    def test_list_bad_limit(self):
        status, _ = call('GET', '/api/photos', query='limit=many')

        assert status == 400

    def test_list_passes_filters(self, service):
        service.list_ready_photos = AsyncMock(return_value=[])

        status, body = call('GET', '/api/photos', query='tag=t1&tag=t2&order=asc&random=true&limit=3&from=2024-01-01')

        assert status == 200
        assert body == []
        kwargs = service.list_ready_photos.call_args.kwargs
        assert kwargs['tags'] == ['t1', 't2']
        assert kwargs['order'] == 'asc'
        assert kwargs['random'] is True
        assert kwargs['limit'] == 3
        assert kwargs['date_from'].year == 2024

    def test_list_date_only_to_covers_whole_day(self, service):
        service.list_ready_photos = AsyncMock(return_value=[])

        status, _ = call('GET', '/api/photos', query='from=2024-06-01&to=2024-06-01')

        assert status == 200
        kwargs = service.list_ready_photos.call_args.kwargs
        assert kwargs['date_from'] == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert kwargs['date_to'] == datetime(2024, 6, 1, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_list_to_with_time_is_kept(self, service):
        service.list_ready_photos = AsyncMock(return_value=[])

        status, _ = call('GET', '/api/photos', query='to=2024-06-01T12:00:00')

        assert status == 200
        assert service.list_ready_photos.call_args.kwargs['date_to'] == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)

    def test_list_bad_date(self):
        status, _ = call('GET', '/api/photos', query='to=soon')

        assert status == 400

    def test_delete(self, store, photo_db):
        store.objects['full/a.jpg'] = b'raw'
        pk = photo_db.create_pending_record('a.jpg', 'full/a.jpg')

        status, body = call('POST', '/api/photos/delete', {'pks': [pk]})

        assert status == 200
        assert body == {'deleted': 1, 'keys': ['full/a.jpg']}
        assert 'full/a.jpg' not in store.objects

    def test_list_objects(self, store):
        store.objects['gallery/a.webp'] = b'123'

        status, body = call('GET', '/api/objects', query='prefix=gallery/')

        assert status == 200
        assert body == [{'key': 'gallery/a.webp', 'size': 3, 'url': 'https://cdn.example.com/gallery/a.webp'}]

    def test_unexpected_error(self, service):
        service.list_objects = MagicMock(side_effect=RuntimeError('boom'))

        status, body = call('GET', '/api/objects')

        assert status == 500
        assert body['error'] == 'boom'

    def test_internal_lookup_error_is_server_error(self, service, mocker):
        service.list_objects = MagicMock(side_effect=KeyError('pk'))
        log_exception = mocker.patch.object(server.logger, 'exception')

        status, body = call('GET', '/api/objects')

        assert status == 500
        assert body['type'] == 'KeyError'
        log_exception.assert_called_once()

    def test_cross_origin_header(self):
        captured = {}
        environ = {}
        setup_testing_defaults(environ)
        environ['PATH_INFO'] = '/api/objects'

        def start_response(status, headers, exc_info=None):
            captured.update(dict(headers))

        b''.join(server.app(environ, start_response))

        assert captured['Access-Control-Allow-Origin'] == '*'
