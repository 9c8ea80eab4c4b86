from flask import Flask, Response, request, render_template, jsonify, stream_with_context
from werkzeug.exceptions import HTTPException
import logging
import requests

import config
from media_proxy import (
    DEFAULT_FILENAME,
    attachment_headers,
    content_type_of,
    iter_media,
    open_media_stream,
)
from resolver import MediaResolver, ResolverError, detect_platform

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s:%(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['RAPID_API_KEY'] = config.RAPID_API_KEY
app.config['RAPID_API_HOST'] = config.RAPID_API_HOST
# Every request gets its own HTTP session; tests swap this for a fake transport
app.config['HTTP_SESSION_FACTORY'] = requests.Session


@app.route('/')
def index():
    """Main page"""
    return render_template('index.html')


@app.route('/api/download')
def download():
    """Resolve a post link into a direct media URL"""
    url = request.args.get('url', '').strip()
    session = app.config['HTTP_SESSION_FACTORY']()

    try:
        logger.info(f"🔍 Resolving {detect_platform(url)} link: {url}")
        resolver = MediaResolver(
            app.config['RAPID_API_KEY'],
            app.config['RAPID_API_HOST'],
            session=session,
        )
        result = resolver.resolve(url)
        return jsonify(result.to_dict())

    except ResolverError as e:
        logger.warning(f"⚠️ Resolution failed ({e.status_code}): {e.message}")
        return jsonify(e.to_dict()), e.status_code

    except Exception as e:
        logger.exception(f"❌ Download error: {e}")
        return jsonify({'error': f'Failed to process URL: {e}. Please try again or check the link.'}), 500

    finally:
        session.close()


@app.route('/api/download-file')
def download_file():
    """Re-stream a resolved media URL as an attachment"""
    url = request.args.get('url', '')
    filename = request.args.get('filename') or DEFAULT_FILENAME
    session = app.config['HTTP_SESSION_FACTORY']()

    try:
        upstream = open_media_stream(url, session)
    except ResolverError as e:
        session.close()
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.close()
        logger.exception(f"❌ Download proxy error: {e}")
        return jsonify({'error': 'Failed to download file'}), 500

    logger.info(f"📤 Sending file: {filename}")
    response = Response(
        stream_with_context(iter_media(upstream, session)),
        status=200,
        content_type=content_type_of(upstream),
        headers=attachment_headers(filename),
    )
    # HEAD requests and early aborts never start the body generator
    response.call_on_close(upstream.close)
    response.call_on_close(session.close)
    return response


@app.errorhandler(HTTPException)
def handle_http_error(e):
    """Keep /api/* answers JSON, leave pages to Flask's defaults"""
    if request.path.startswith('/api/'):
        return jsonify({'error': e.description}), e.code
    return e


if __name__ == '__main__':
    logger.info("=" * 60)
    logger.info("MEDIAFETCH - SOCIAL MEDIA DOWNLOADER")
    logger.info("=" * 60)
    logger.info("Supported platforms: TikTok, Instagram, Facebook")
    logger.info(f"RapidAPI host: {config.RAPID_API_HOST}")
    if not config.RAPID_API_KEY:
        logger.warning("⚠️ RAPID_API_KEY is not set - /api/download will answer 500 until it is")
    logger.info(f"Server running on: http://localhost:{config.PORT}")
    logger.info("=" * 60)

    app.run(debug=config.DEBUG, host=config.HOST, port=config.PORT)
