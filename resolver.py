import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config import DEFAULT_API_HOST

logger = logging.getLogger(__name__)

# Order matters: the first platform whose marker appears in the URL wins
PLATFORM_MARKERS = [
    ('tiktok', ('tiktok.com',)),
    ('instagram', ('instagram.com',)),
    ('facebook', ('facebook.com', 'fb.watch')),
]

PLATFORM_LABELS = {
    'tiktok': 'TikTok',
    'instagram': 'Instagram',
    'facebook': 'Facebook',
}

ENDPOINTS = {
    'tiktok': '/tiktok/v3/post/details',
    'instagram': '/instagram/v3/media/post/details',
    'facebook': '/facebook/v3/post/details',
}

INSTAGRAM_SHORTCODE_PATTERNS = [
    re.compile(r'instagram\.com/p/([A-Za-z0-9_-]+)', re.IGNORECASE),
    re.compile(r'instagram\.com/reel/([A-Za-z0-9_-]+)', re.IGNORECASE),
    re.compile(r'instagram\.com/tv/([A-Za-z0-9_-]+)', re.IGNORECASE),
]

HTTP_METHODS = ('GET', 'POST')

ALLOWED_SCHEMES = ('http://', 'https://')

# Error payloads containing these mean the endpoint/method pair is not served
MISSING_ENDPOINT_MARKERS = ('does not exist', 'not found')

ERROR_MESSAGE_KEYS = ('message', 'error', 'errorMessage')

MEDIA_KINDS = ('video', 'image', 'carousel')

# Known upstream response shapes, highest priority first.
# Each entry is (path into the payload, url fields, quality fields).
# A path that lands on a bare string is taken as the URL itself.
MEDIA_URL_SHAPES = [
    (('contents', 0, 'videos', -1), ('url',), ('label', 'repId')),
    (('contents', 0, 'videos', 0), ('url',), ('label', 'repId')),
    (('contents', 0, 'images', 0), ('url',), ('label',)),
    (('links', 0), ('link', 'url', 'download'), ('quality',)),
    (('video',), ('url', 'link', 'download'), ()),
    (('download',), ('url', 'link'), ()),
    ((), ('url',), ()),
]

THUMBNAIL_SHAPES = [
    (('contents', 0), ('thumbnail', 'image', 'cover')),
    ((), ('thumbnail', 'image')),
]

TITLE_SHAPES = [
    (('contents', 0), ('title', 'description')),
    ((), ('title', 'description')),
]


class ResolverError(Exception):
    """Base error for anything that should reach the browser as JSON."""

    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        payload = {'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(ResolverError):
    status_code = 400


class ConfigurationError(ResolverError):
    status_code = 500


class UpstreamError(ResolverError):
    status_code = 400


class UpstreamUnavailable(ResolverError):
    status_code = 500


class NetworkError(ResolverError):
    status_code = 500


@dataclass
class ResolutionAttempt:
    endpoint_path: str
    http_method: str
    request_params: Dict[str, str]

    def describe(self):
        return f'{self.endpoint_path} ({self.http_method})'


@dataclass
class MediaResult:
    """
    Normalized description of one downloadable asset.

    Fields:
        kind: "video", "image" or "carousel".
        title: Caption or description of the post, if the provider sent one.
        thumbnail_url: Preview image for the card.
        media_url: Direct https URL of the file, fed to the download proxy.
        platform_label: Display name of the source platform.
        quality: Provider's quality label for the chosen rendition ("720p").
    """

    kind: str = 'video'
    title: Optional[str] = None
    thumbnail_url: Optional[str] = None
    media_url: Optional[str] = None
    platform_label: Optional[str] = None
    quality: Optional[str] = None

    def to_dict(self):
        """JSON body for /api/download, keyed the way the browser reads it"""
        return {
            'kind': self.kind,
            'title': self.title,
            'thumbnailUrl': self.thumbnail_url,
            'mediaUrl': self.media_url,
            'platformLabel': self.platform_label,
            'quality': self.quality,
        }


def detect_platform(url):
    """Detect the platform from URL"""
    url = (url or '').lower()
    for platform, markers in PLATFORM_MARKERS:
        if any(marker in url for marker in markers):
            return platform
    return 'unknown'


def extract_instagram_shortcode(url):
    """Extract the post shortcode from a /p/, /reel/ or /tv/ Instagram URL"""
    for pattern in INSTAGRAM_SHORTCODE_PATTERNS:
        match = pattern.search(url or '')
        if match:
            return match.group(1)
    return None


def build_candidates(url) -> List[ResolutionAttempt]:
    """
    Build the ordered list of endpoint/method pairs to try for a URL.

    Recognized platforms get their own endpoint only. Anything else is tried
    against every known endpoint with the raw URL as parameter. Instagram is
    queried by shortcode, so a URL without one is rejected here, before any
    request goes out.
    """
    platform = detect_platform(url)

    if platform == 'instagram':
        shortcode = extract_instagram_shortcode(url)
        if not shortcode:
            raise ValidationError('Invalid Instagram URL. Please provide a valid Instagram post/reel URL.')
        logger.info(f"📱 Extracted Instagram shortcode: {shortcode}")
        params = {'shortcode': shortcode}
        paths = [ENDPOINTS['instagram']]
    elif platform == 'unknown':
        params = {'url': url}
        paths = list(ENDPOINTS.values())
    else:
        params = {'url': url}
        paths = [ENDPOINTS[platform]]

    return [
        ResolutionAttempt(path, method, dict(params))
        for path in paths
        for method in HTTP_METHODS
    ]


def _dig(data, path):
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not current:
                return None
            if step >= len(current) or step < -len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current


def _first_text(container, fields):
    if not isinstance(container, dict):
        return None
    for name in fields:
        value = container.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _first_https_url(container, fields):
    if isinstance(container, str):
        return container if container.startswith('https://') else None
    if not isinstance(container, dict):
        return None
    for name in fields:
        value = container.get(name)
        if isinstance(value, str) and value.startswith('https://'):
            return value
    return None


def _detect_kind(data):
    kind = data.get('type')
    if kind in MEDIA_KINDS:
        return kind

    contents = data.get('contents')
    if isinstance(contents, list):
        if len(contents) > 1:
            return 'carousel'
        first = contents[0] if contents else None
        if isinstance(first, dict) and first.get('images') and not first.get('videos'):
            return 'image'
    return 'video'


def normalize_response(data, source_url) -> MediaResult:
    """Map a provider payload of any known shape onto a MediaResult."""
    if not isinstance(data, dict):
        data = {}

    result = MediaResult(kind=_detect_kind(data))

    for path, url_fields, quality_fields in MEDIA_URL_SHAPES:
        container = _dig(data, path)
        media_url = _first_https_url(container, url_fields)
        if media_url:
            result.media_url = media_url
            result.quality = _first_text(container, quality_fields)
            break

    for path, fields in THUMBNAIL_SHAPES:
        result.thumbnail_url = _first_text(_dig(data, path), fields)
        if result.thumbnail_url:
            break

    for path, fields in TITLE_SHAPES:
        result.title = _first_text(_dig(data, path), fields)
        if result.title:
            break

    result.platform_label = _first_text(data, ('platform',)) or PLATFORM_LABELS.get(detect_platform(source_url))
    return result


def _error_message(payload):
    if not isinstance(payload, dict):
        return None
    for key in ERROR_MESSAGE_KEYS:
        value = payload.get(key)
        if value:
            return str(value)
    return None


class MediaResolver:
    """Resolves social media post links into direct media URLs through RapidAPI."""

    def __init__(self, api_key, api_host=DEFAULT_API_HOST, session=None):
        self.api_key = api_key
        self.api_host = api_host or DEFAULT_API_HOST
        self.session = session if session is not None else requests.Session()

    def resolve(self, url) -> MediaResult:
        url = (url or '').strip()
        if not url:
            raise ValidationError('URL is required')

        if not url.lower().startswith(ALLOWED_SCHEMES):
            raise ValidationError('Invalid URL. Please paste a link starting with http:// or https://.')

        if not self.api_key:
            logger.error("❌ RAPID_API_KEY is missing in the environment")
            raise ConfigurationError('Server configuration error: API Key missing.')

        candidates = build_candidates(url)
        data = self._fetch_details(candidates)

        if isinstance(data, dict) and data.get('error'):
            raise UpstreamError(str(data['error']))

        result = normalize_response(data, url)
        logger.info(f"🎬 Resolved {result.platform_label or 'unknown'} {result.kind}: {result.media_url or 'no media url'}")
        return result

    def _request(self, attempt: ResolutionAttempt):
        api_url = f'https://{self.api_host}{attempt.endpoint_path}'
        headers = {
            'x-rapidapi-key': self.api_key,
            'x-rapidapi-host': self.api_host,
            'Content-Type': 'application/json',
        }
        if attempt.http_method == 'GET':
            return self.session.request('GET', api_url, params=attempt.request_params, headers=headers)
        return self.session.request(attempt.http_method, api_url, json=attempt.request_params, headers=headers)

    def _fetch_details(self, candidates: List[ResolutionAttempt]) -> Any:
        """
        Try each candidate in order and return the first successful JSON payload.

        Network errors and unparseable bodies only end the current attempt.
        Raises UpstreamUnavailable once every candidate has failed, carrying
        the most specific error message seen along the way.
        """
        last_error = None
        last_data = None
        last_status = None

        for attempt in candidates:
            label = attempt.describe()
            logger.info(f"🔄 Trying RapidAPI endpoint: {label}")

            try:
                response = self._request(attempt)
            except requests.RequestException as e:
                logger.warning(f"❌ Error fetching from {label}: {e}")
                continue

            last_status = response.status_code
            logger.info(f"📡 {label} - Status: {response.status_code}")
            logger.debug(f"📄 {label} - Raw Response: {response.text[:500]}")

            try:
                data = response.json()
            except ValueError as e:
                logger.warning(f"⚠️ Failed to parse JSON from {label}: {e}")
                continue

            if data is None:
                continue
            last_data = data

            if 200 <= response.status_code < 300:
                logger.info(f"✅ Success with endpoint: {label}")
                return data

            message = (_error_message(data) or '').lower()
            if any(marker in message for marker in MISSING_ENDPOINT_MARKERS):
                logger.info(f"⏭️ Endpoint {label} does not exist, trying next...")
                continue

            if response.status_code not in (400, 404):
                last_error = data

        error_message = (
            _error_message(last_error)
            or _error_message(last_data)
            or f"API returned status {last_status or 'unknown'}"
        )
        logger.error(f"❌ All endpoints failed. Last error: {error_message}")
        logger.error(f"Please check your RapidAPI dashboard to verify the API host ({self.api_host}), "
                     "the available endpoints and that your key has access to this API")

        status = last_status if last_status and last_status >= 400 else 500
        raise UpstreamUnavailable(
            f"{error_message}. Please check your RapidAPI dashboard to verify the correct endpoints and API access.",
            status_code=status,
            details=f"Tried {len(candidates)} endpoint/method combinations without a usable response.",
        )
