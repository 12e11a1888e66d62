import os
import mimetypes

from flask import current_app
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
import requests

from ..errors import StorageUnavailable, StorageObjectNotFound

CHUNK_SIZE = 64 * 1024


class StoredObject:
    """A readable handle on one stored media object.

    ``stream`` is a file-like object; callers either ``read()`` it whole (the
    transcription upload) or ``iter_chunks()`` it (the download proxy) and
    must ``close()`` it.
    """

    def __init__(self, stream, content_type=None, size=None, on_close=None):
        self.stream = stream
        self.content_type = content_type
        self.size = size
        self._on_close = on_close

    def read(self):
        return self.stream.read()

    def iter_chunks(self, chunk_size=CHUNK_SIZE):
        try:
            while True:
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self):
        try:
            self.stream.close()
        finally:
            if self._on_close:
                self._on_close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _s3_client():
    # build boto3 client kwargs flexibly: endpoint_url may be empty in AWS-managed S3
    s3_kwargs = {}
    endpoint = current_app.config.get('S3_ENDPOINT')
    if endpoint:
        s3_kwargs['endpoint_url'] = endpoint
    region = current_app.config.get('S3_REGION')
    if region:
        s3_kwargs['region_name'] = region
    timeout = current_app.config.get('MEDIA_HTTP_TIMEOUT_SECONDS', 60)
    s3_config = Config(
        signature_version='s3v4',
        s3={'addressing_style': 'virtual'},
        connect_timeout=10,
        read_timeout=timeout,
        retries={'max_attempts': 2},
    )
    return boto3.client(
        's3',
        aws_access_key_id=current_app.config.get('S3_ACCESS_KEY'),
        aws_secret_access_key=current_app.config.get('S3_SECRET_KEY'),
        config=s3_config,
        **s3_kwargs,
    )


def _split_s3_key(storage_key):
    if storage_key.startswith('s3://'):
        bucket, _, key = storage_key[len('s3://'):].partition('/')
        return bucket, key
    return current_app.config.get('S3_BUCKET'), storage_key


def _local_path(storage_key):
    if storage_key.startswith('file://'):
        return storage_key[len('file://'):]
    base = os.path.abspath(current_app.config['LOCAL_STORAGE_DIR'])
    path = os.path.abspath(os.path.join(base, storage_key))
    if not path.startswith(base + os.sep):
        raise StorageObjectNotFound(f'storage key escapes storage dir: {storage_key}')
    return path


def _backend_for(storage_key, provider=None):
    if storage_key.startswith('s3://'):
        return 's3'
    if storage_key.startswith('file://'):
        return 'local'
    if storage_key.startswith(('http://', 'https://')):
        return 'http'
    if provider in ('s3', 'local'):
        return provider
    return current_app.config.get('STORAGE_BACKEND', 'local')


def _resolve_s3(storage_key):
    bucket, key = _split_s3_key(storage_key)
    if not bucket or not key:
        raise StorageObjectNotFound(f'invalid s3 key: {storage_key}')
    try:
        obj = _s3_client().get_object(Bucket=bucket, Key=key)
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code')
        if code in ('NoSuchKey', '404', 'NotFound'):
            raise StorageObjectNotFound(f's3 object not found: {key}') from e
        raise StorageUnavailable(f's3 get_object failed: {code or e}') from e
    except BotoCoreError as e:
        raise StorageUnavailable(f's3 unreachable: {e}') from e
    return StoredObject(obj['Body'], obj.get('ContentType'), obj.get('ContentLength'))


def _resolve_local(storage_key):
    path = _local_path(storage_key)
    try:
        fh = open(path, 'rb')
    except FileNotFoundError as e:
        raise StorageObjectNotFound(f'file not found: {os.path.basename(path)}') from e
    except OSError as e:
        raise StorageUnavailable(f'file unreadable: {e}') from e
    return StoredObject(fh, mimetypes.guess_type(path)[0], os.path.getsize(path))


def _resolve_http(url):
    timeout = current_app.config.get('MEDIA_HTTP_TIMEOUT_SECONDS', 60)
    try:
        r = requests.get(url, stream=True, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise StorageUnavailable(f'failed to fetch media: {e}') from e
    if r.status_code == 404:
        r.close()
        raise StorageObjectNotFound('failed to fetch media: 404')
    if not r.ok:
        r.close()
        raise StorageUnavailable(f'failed to fetch media: {r.status_code}')
    size = r.headers.get('content-length')
    return StoredObject(r.raw, r.headers.get('content-type'), int(size) if size else None, on_close=r.close)


def resolve(storage_key, provider=None):
    """Open the object behind ``storage_key`` for reading.

    Raises ``StorageObjectNotFound`` when nothing is stored under the key and
    ``StorageUnavailable`` when the backend cannot be reached.
    """
    if not storage_key:
        raise StorageObjectNotFound('empty storage key')
    backend = _backend_for(storage_key, provider)
    if backend == 's3':
        return _resolve_s3(storage_key)
    if backend == 'http':
        return _resolve_http(storage_key)
    if backend == 'local':
        return _resolve_local(storage_key)
    raise StorageUnavailable(f'unsupported storage backend: {backend}')


def delete_object(storage_key, provider=None):
    """Remove a stored object. Deleting something already gone is not an error."""
    backend = _backend_for(storage_key, provider)
    if backend == 's3':
        bucket, key = _split_s3_key(storage_key)
        try:
            _s3_client().delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailable(f's3 delete_object failed: {e}') from e
    elif backend == 'local':
        try:
            os.remove(_local_path(storage_key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageUnavailable(f'file delete failed: {e}') from e
    else:
        timeout = current_app.config.get('MEDIA_HTTP_TIMEOUT_SECONDS', 60)
        try:
            r = requests.delete(storage_key, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise StorageUnavailable(f'delete failed: {e}') from e
        if not r.ok and r.status_code != 404:
            raise StorageUnavailable(f'delete failed: {r.status_code}')
