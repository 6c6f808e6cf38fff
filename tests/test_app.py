"""
Tests for the Flask HTTP endpoints.
"""

import io

import numpy as np
import pytest

from conftest import encode
from utils.image_loader import decode_image

import app as app_module
from app import app


@pytest.fixture
def client():
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def upload(client, data, filename='strip.png', content_type='image/png', headers=None):
    return client.post(
        '/process',
        data={'file': (io.BytesIO(data), filename, content_type)},
        content_type='multipart/form-data',
        headers=headers or {}
    )


class TestHealth:
    """Test cases for GET /health."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['service'] == 'poolguy-strip-normalizer'
        assert 'opencv_version' in body

    def test_request_id_generated(self, client):
        response = client.get('/health')
        assert response.headers.get('X-Request-ID')


class TestProcess:
    """Test cases for POST /process."""

    def test_missing_file(self, client):
        response = client.post('/process', data={}, content_type='multipart/form-data')

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'MISSING_FILE'

    def test_empty_file(self, client):
        response = upload(client, b'')

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'MISSING_FILE'

    def test_invalid_content_type(self, client):
        response = upload(client, b'hello', filename='notes.txt', content_type='text/plain')

        assert response.status_code == 400
        body = response.get_json()
        assert body['error_code'] == 'INVALID_FILE_TYPE'
        assert body['received_type'] == 'text/plain'

    def test_undecodable_image(self, client):
        response = upload(client, b'not really a png')

        assert response.status_code == 400
        assert response.get_json()['error_code'] == 'IMAGE_DECODE_ERROR'

    def test_processes_strip(self, client, strip_png):
        response = upload(client, strip_png, headers={'X-Request-ID': 'test-123'})

        assert response.status_code == 200
        assert response.mimetype == 'image/png'
        assert 'processed_strip.png' in response.headers['Content-Disposition']
        assert response.headers['X-Request-ID'] == 'test-123'
        assert response.headers['X-Strip-Detection'] == 'detected'
        assert response.headers['X-Crop-Source'] == 'relocated'
        assert abs(float(response.headers['X-Rotation-Angle']) + 30.0) < 1.5

        image = decode_image(response.data)
        height, width = image.shape[:2]
        assert height > 4 * width

    def test_jpeg_upload(self, client, strip_image):
        response = upload(client, encode(strip_image, '.jpg'), filename='photo.jpg', content_type='image/jpeg')

        assert response.status_code == 200
        assert 'processed_photo.png' in response.headers['Content-Disposition']

    def test_blank_image_falls_back(self, client):
        blank = encode(np.zeros((60, 90, 3), dtype=np.uint8))
        response = upload(client, blank)

        assert response.status_code == 200
        assert response.headers['X-Strip-Detection'] == 'fallback'
        assert response.headers['X-Crop-Source'] == 'full_image'
        assert response.headers['X-Rotation-Angle'] == '0.00'
        assert decode_image(response.data).shape == (60, 90, 3)

    def test_upload_without_filename_is_processed(self, client, strip_png):
        response = upload(client, strip_png, filename='')

        assert response.status_code == 200
        assert 'processed_image.png' in response.headers['Content-Disposition']


class TestVisualLogs:
    """Visual logs written by POST /process."""

    def test_logs_stay_inside_log_dir(self, client, strip_png, tmp_path, monkeypatch):
        log_dir = tmp_path / 'logs'
        monkeypatch.setattr(app_module, 'enable_visual_logs', True)
        monkeypatch.setattr(app_module, 'visual_log_dir', str(log_dir))

        response = upload(
            client,
            strip_png,
            filename='../strip.png',
            headers={'X-Request-ID': '../../escaped'}
        )

        assert response.status_code == 200
        assert response.headers['X-Request-ID'] == '../../escaped'
        assert not (tmp_path / 'escaped').exists()
        assert [p.name for p in tmp_path.iterdir()] == ['logs']

        log_files = list(log_dir.rglob('log.json'))
        assert len(log_files) == 1
        assert log_files[0].resolve().is_relative_to(log_dir.resolve())
