"""Unit tests for ImageHostClient."""
import pytest
import requests
import responses

from clients.image_host import ImageHostClient
from processor.errors import ImageUploadFailed


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / 'cover.png'
    path.write_bytes(b'\x89PNG fake image bytes')
    return path


@pytest.fixture
def client():
    return ImageHostClient(api_key='test-key', timeout=5, max_retries=3, base_delay=0)


class TestImageHostClient:
    """Test cases for ImageHostClient."""

    @responses.activate
    def test_upload_returns_url(self, client, image_file):
        responses.add(
            responses.POST,
            ImageHostClient.BASE_URL,
            json={'data': {'url': 'https://i.ibb.co/abc/cover.png'}, 'success': True},
            status=200
        )

        url = client.upload(str(image_file))

        assert url == 'https://i.ibb.co/abc/cover.png'
        assert len(responses.calls) == 1
        assert 'key=test-key' in responses.calls[0].request.url

    @responses.activate
    def test_server_errors_are_retried(self, client, image_file):
        responses.add(responses.POST, ImageHostClient.BASE_URL, status=503)
        responses.add(
            responses.POST,
            ImageHostClient.BASE_URL,
            json={'data': {'url': 'https://i.ibb.co/ok.png'}},
            status=200
        )

        assert client.upload(str(image_file)) == 'https://i.ibb.co/ok.png'
        assert len(responses.calls) == 2

    @responses.activate
    def test_client_errors_fail_immediately(self, client, image_file):
        responses.add(responses.POST, ImageHostClient.BASE_URL, status=400)

        with pytest.raises(ImageUploadFailed):
            client.upload(str(image_file))
        assert len(responses.calls) == 1

    @responses.activate
    def test_gives_up_after_max_retries(self, client, image_file):
        responses.add(
            responses.POST,
            ImageHostClient.BASE_URL,
            body=requests.ConnectionError('connection refused')
        )

        with pytest.raises(ImageUploadFailed):
            client.upload(str(image_file))
        assert len(responses.calls) == 3

    @responses.activate
    def test_missing_url_in_response(self, client, image_file):
        responses.add(responses.POST, ImageHostClient.BASE_URL, json={'data': {}}, status=200)

        with pytest.raises(ImageUploadFailed):
            client.upload(str(image_file))

    def test_missing_api_key(self, image_file):
        with pytest.raises(ImageUploadFailed):
            ImageHostClient(api_key=None).upload(str(image_file))

    def test_unreadable_file(self, client, tmp_path):
        with pytest.raises(ImageUploadFailed):
            client.upload(str(tmp_path / 'missing.png'))
