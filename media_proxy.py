import logging
import re

import requests

from resolver import NetworkError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = 'mediafetch_video.mp4'
DEFAULT_CONTENT_TYPE = 'video/mp4'
CHUNK_SIZE = 8192

USER_AGENT = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36')

UNSAFE_FILENAME_CHARS = re.compile(r'[^a-zA-Z0-9._-]')


def sanitize_filename(filename):
    """Replace every character outside [a-zA-Z0-9._-] with an underscore"""
    return UNSAFE_FILENAME_CHARS.sub('_', filename or DEFAULT_FILENAME)


def open_media_stream(url, session):
    """
    Start a streaming GET for a resolved media URL.

    Only https URLs are fetched. A non-2xx upstream answer is raised as an
    UpstreamError carrying the upstream status so the route can pass it on.
    """
    if not url or not url.startswith('https://'):
        raise ValidationError('Valid URL is required')

    try:
        upstream = session.get(url, headers={'User-Agent': USER_AGENT}, stream=True)
    except requests.RequestException as e:
        logger.error(f"❌ Download proxy error for {url}: {e}")
        raise NetworkError('Failed to download file')

    if not 200 <= upstream.status_code < 300:
        logger.warning(f"⚠️ Upstream media returned {upstream.status_code} for {url}")
        upstream.close()
        raise UpstreamError('Failed to fetch media', status_code=upstream.status_code)

    return upstream


def attachment_headers(filename):
    return {
        'Content-Disposition': f'attachment; filename="{sanitize_filename(filename)}"',
        'Cache-Control': 'no-store',
    }


def content_type_of(upstream):
    return upstream.headers.get('content-type') or DEFAULT_CONTENT_TYPE


def iter_media(upstream, session):
    """Yield the upstream body in chunks, releasing the connection afterwards"""
    sent = 0
    try:
        for chunk in upstream.iter_content(chunk_size=CHUNK_SIZE):
            if chunk:
                sent += len(chunk)
                yield chunk
        logger.info(f"📤 Streamed {sent} bytes to client")
    finally:
        upstream.close()
        session.close()
