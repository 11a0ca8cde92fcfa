"""
Tests for image URL validation
"""
from utils.url_validator import validate_image_url


class TestValidateImageURL:
    """Only public HTTPS image links are accepted"""

    def test_valid_https_image_url(self):
        assert validate_image_url('https://example.com/flood.jpg') == (True, None)
        assert validate_image_url('https://cdn.example.com/photos/Bridge.PNG') == (True, None)
        assert validate_image_url('https://example.com/damage.webp?size=large') == (True, None)

    def test_http_url_rejected(self):
        assert validate_image_url('http://example.com/flood.jpg') == (False, 'Only HTTPS URLs are allowed')

    def test_other_schemes_rejected(self):
        assert validate_image_url('file:///etc/passwd.jpg')[0] is False
        assert validate_image_url('ftp://example.com/flood.jpg')[0] is False

    def test_localhost_rejected(self):
        assert validate_image_url('https://localhost/flood.jpg') == (False, 'Local URLs not allowed')
        assert validate_image_url('https://api.localhost/flood.jpg') == (False, 'Local URLs not allowed')

    def test_private_and_loopback_addresses_rejected(self):
        for url in ('https://127.0.0.1/a.jpg', 'https://10.0.0.5/a.jpg', 'https://172.16.4.2/a.jpg',
                    'https://192.168.1.10/a.jpg', 'https://169.254.169.254/a.jpg', 'https://[::1]/a.jpg'):
            assert validate_image_url(url) == (False, 'Private network URLs not allowed'), url

    def test_public_ip_allowed(self):
        assert validate_image_url('https://8.8.8.8/a.jpg') == (True, None)

    def test_non_image_extension_rejected(self):
        is_valid, error = validate_image_url('https://example.com/report.pdf')
        assert is_valid is False
        assert error.startswith('Only image files allowed')

    def test_missing_hostname_rejected(self):
        assert validate_image_url('https:///flood.jpg') == (False, 'Invalid hostname')

    def test_long_url_rejected(self):
        url = 'https://example.com/' + 'a' * 2048 + '.jpg'
        assert validate_image_url(url) == (False, 'URL too long (max 2048 characters)')

    def test_malformed_url_rejected(self):
        assert validate_image_url('https://[broken/flood.jpg') == (False, 'Invalid URL format')
