#!/usr/bin/env python3

import asyncio
import json
import logging
import os
import threading
from datetime import date, datetime, time, timezone
from functools import wraps

from bottle import Bottle, HTTPResponse, request, response

from photopipe.db_config import DbConfig
from photopipe.errors import DecodeOrEncodeFailure, PipelineError, SourceNotFound
from photopipe.photo_service import build_service
from photopipe.s3_config import S3Config, str2bool

app = application = Bottle()

level = logging.getLevelName(os.environ.get('LOG_LEVEL', 'INFO').upper())
logging.basicConfig(level=level, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger('photopipe.server')

REQUEST_TIMEOUT = 300

_service = None


class LoopRunner:
    """Owns one event loop on a daemon thread and runs coroutines on it."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, name='photopipe-loop', daemon=True)
        self.thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout=REQUEST_TIMEOUT):
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join()


_runner = LoopRunner()


def get_service():
    """Return the service, building it from the environment on first use."""
    global _service
    if _service is None:
        s3_config = S3Config.from_env()
        db_config = DbConfig.from_env()
        errors = s3_config.validate() + db_config.validate()
        if errors:
            raise RuntimeError("; ".join(errors))
        _service = build_service(s3_config, db_config, logger)
    return _service


def set_service(service):
    global _service
    _service = service


def run(coro):
    return _runner.run(coro)


def json_datetime_handler(x):
    if isinstance(x, datetime):
        return x.isoformat()
    raise TypeError("Unknown type")


def error_status(error):
    """HTTP status for an exception raised by a service call."""
    if isinstance(error, SourceNotFound):
        return 404
    if isinstance(error, DecodeOrEncodeFailure):
        return 422
    if isinstance(error, ValueError):
        return 400
    return 500


def json_api(func):
    """Decorate a view to serialize its result as JSON and map errors to status codes."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        response.content_type = 'application/json'
        try:
            result = func(*args, **kwargs)
        except HTTPResponse:
            raise
        except Exception as e:
            status = error_status(e)
            if status == 500 and not isinstance(e, PipelineError):
                logger.exception(f"{request.method} {request.path} failed")
            else:
                logger.warning(f"{request.method} {request.path} -> {status}: {e}")
            response.status = status
            return json.dumps({'error': str(e), 'type': type(e).__name__})
        return json.dumps(result, default=json_datetime_handler)
    return wrapper


def allow_cross_origin(func):
    """Decorate a view function to allow cross domain access."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except HTTPResponse as r:
            r.set_header('Access-Control-Allow-Origin', '*')
            raise
        response.set_header('Access-Control-Allow-Origin', '*')
        return result
    return wrapper


def json_body():
    body = request.json
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object body")
    return body


def parse_time(value, end_of_day=False):
    """Parse an ISO date or datetime; a bare date used as an upper bound covers the whole day."""
    if not value:
        return None
    try:
        day = date.fromisoformat(value)
    except ValueError:
        pass
    else:
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@app.route('/api/photos/upload-targets', method='POST')
@allow_cross_origin
@json_api
def upload_targets():
    files = json_body().get('files')
    if not isinstance(files, list) or not files or not all(isinstance(f, dict) for f in files):
        raise ValueError("files must be a non-empty list of objects")
    return run(get_service().get_upload_targets(files))


@app.route('/api/photos', method='POST')
@allow_cross_origin
@json_api
def create_photo():
    body = json_body()
    return run(get_service().create_pending_record(body.get('name'), body.get('full_key')))


@app.route('/api/photos/optimize', method='POST')
@allow_cross_origin
@json_api
def optimize_photo():
    full_key = json_body().get('full_key')
    if not full_key:
        raise ValueError("full_key is required")
    return run(get_service().optimize(full_key)).to_dict()


@app.route('/api/photos', method='GET')
@allow_cross_origin
@json_api
def list_photos():
    query = request.query
    limit = query.get('limit')
    return run(get_service().list_ready_photos(
        tags=query.getall('tag') or None,
        date_from=parse_time(query.get('from')),
        date_to=parse_time(query.get('to'), end_of_day=True),
        order=query.get('order', 'desc'),
        random=str2bool(query.get('random'), default=False),
        limit=int(limit) if limit else None,
    ))


@app.route('/api/photos/delete', method='POST')
@allow_cross_origin
@json_api
def delete_photos():
    pks = json_body().get('pks')
    if not isinstance(pks, list):
        raise ValueError("pks must be a list")
    return run(get_service().delete_photos(pks))


@app.route('/api/objects', method='GET')
@allow_cross_origin
@json_api
def list_objects():
    return run(get_service().list_objects(request.query.get('prefix', '')))


@app.route('/')
def main_page():
    return 'photopipe'


if __name__ == '__main__':
    from bottle import run as run_server

    service = get_service()
    logger.info("Creating tables....")
    service.db.create_tables()
    logger.info("running server...")

    run_server(
        app=application,
        host=os.environ.get('HOST', '0.0.0.0'),
        port=int(os.environ.get('PORT', 8080)),
        debug=str2bool(os.environ.get('DEBUG_APP', 'false'), default=False),
    )

    _runner.stop()
    logger.info("Exiting.")
