from datetime import datetime, timedelta, timezone
import gzip
from io import BytesIO
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Optional
from unittest import TestCase

from ddt import ddt, data
from mockito import mock, unstub, verify, when
import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3 import HTTPHeaderDict, HTTPResponse

from wirecache.adapter import CachedHTTPAdapter, create, mount
from wirecache.cache import Cache, FileCache
from wirecache.config import CacheConfig
from wirecache.errors import KeyDerivationError, StoreWriteError
from wirecache.keys import capture_request, derive_key
from wirecache.model import Response


URL = 'http://api.example.com/items?page=1'


def live_response(status: int = 200, body: bytes = b'fresh', reason: str = 'OK',
                  headers: Optional[dict] = None) -> requests.Response:
    """
    Build a response the way `HTTPAdapter` would after receiving it from the network.
    """
    if headers is None:
        headers = {'Content-Type': 'text/plain', 'Content-Length': str(len(body))}
    raw = HTTPResponse(body=BytesIO(body),
                       headers=HTTPHeaderDict(headers),
                       status=status,
                       reason=reason,
                       version=11,
                       preload_content=False)

    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.headers = CaseInsensitiveDict(raw.headers)
    response.raw = raw
    response.url = URL
    return response


def prepare(method: str = 'GET', url: str = URL, **kw) -> requests.PreparedRequest:
    return requests.Request(method, url, **kw).prepare()


class AdapterTestCase(TestCase):
    def setUp(self):
        self._directory = TemporaryDirectory()
        self.root = Path(self._directory.name) / 'cache'
        self.transport = mock(HTTPAdapter)

    def tearDown(self):
        unstub()
        self._directory.cleanup()

    def build(self, **kw) -> CachedHTTPAdapter:
        return CachedHTTPAdapter(CacheConfig(directory=self.root, transport=self.transport, **kw))

    def answer(self, status: int = 200, body: bytes = b'fresh', **kw):
        when(self.transport).send(...).thenAnswer(lambda *args, **kwargs: live_response(status, body, **kw))

    def stored_files(self):
        if not self.root.exists():
            return []
        return sorted(path.name for path in self.root.iterdir())


@ddt
class TestCachedHTTPAdapterScenarios(AdapterTestCase):
    def test_second_identical_request_is_served_from_cache(self):
        # region Set up
        self.answer(body=b'first body')
        session = mount(requests.Session(), self.build(domains=('example.com',), ttl=timedelta(hours=1)))
        # endregion

        # region Exercise
        first = session.get(URL)
        second = session.get(URL)
        # endregion

        # region Verify
        verify(self.transport, times=1).send(...)
        self.assertFalse(first.from_cache)
        self.assertTrue(second.from_cache)
        self.assertEqual(b'first body', first.content)
        self.assertEqual(b'first body', second.content)
        self.assertEqual(200, second.status_code)
        self.assertEqual('OK', second.reason)
        self.assertEqual('text/plain', second.headers['Content-Type'])
        self.assertIn('X-Cache-Time', second.headers)
        self.assertEqual(URL, second.url)
        self.assertEqual(1, len(self.stored_files()))
        # endregion

    def test_ineligible_domain_is_never_cached(self):
        self.answer()
        session = mount(requests.Session(), self.build(domains=('example.com',)))

        for _ in range(3):
            response = session.get('http://example.com.evil.com/items')
            self.assertEqual(b'fresh', response.content)

        verify(self.transport, times=3).send(...)
        self.assertEqual([], self.stored_files())
        self.assertFalse(self.root.exists(), 'The cache directory should not even be created')

    def test_expired_entry_is_refreshed(self):
        # region Set up
        adapter = self.build(ttl=timedelta(hours=1))
        key = derive_key(capture_request(prepare()))
        two_hours_ago = datetime.now(timezone.utc) - timedelta(hours=2)
        FileCache(self.root).save(key, Response(status=200, reason='OK', headers=[], body=b'stale'),
                                  now=two_hours_ago)
        self.answer(body=b'refreshed')
        # endregion

        response = adapter.send(prepare())

        # region Verify
        verify(self.transport, times=1).send(...)
        self.assertFalse(response.from_cache)
        self.assertEqual(b'refreshed', response.content)

        entry = FileCache(self.root).load(key)
        self.assertEqual(b'refreshed', entry.response.body)
        self.assertGreater(entry.stored_at, two_hours_ago + timedelta(hours=1))
        # endregion

    def test_fresh_entry_is_served_without_network(self):
        adapter = self.build(ttl=timedelta(hours=1))
        key = derive_key(capture_request(prepare()))
        FileCache(self.root).save(key, Response(status=200, reason='OK', headers=[], body=b'cached'))

        response = adapter.send(prepare())

        verify(self.transport, times=0).send(...)
        self.assertTrue(response.from_cache)
        self.assertEqual(b'cached', response.content)

    def test_zero_ttl_never_expires(self):
        adapter = self.build(ttl=timedelta(0))
        key = derive_key(capture_request(prepare()))
        FileCache(self.root).save(key, Response(status=200, reason='OK', headers=[], body=b'ancient'),
                                  now=datetime(2000, 1, 1, tzinfo=timezone.utc))

        response = adapter.send(prepare())

        verify(self.transport, times=0).send(...)
        self.assertEqual(b'ancient', response.content)

    @data(404, 500, 201, 203)
    def test_unsuccessful_responses_are_not_cached(self, status):
        self.answer(status=status, body=b'nope')
        adapter = self.build()

        first = adapter.send(prepare())
        second = adapter.send(prepare())

        verify(self.transport, times=2).send(...)
        self.assertEqual(status, first.status_code)
        self.assertEqual(b'nope', first.content)
        self.assertFalse(second.from_cache)
        self.assertEqual([], self.stored_files())


class TestCachedHTTPAdapter(AdapterTestCase):
    def test_cacheable_statuses_are_configurable(self):
        self.answer(status=203)
        adapter = self.build(cacheable_statuses=(200, 203))

        adapter.send(prepare())
        response = adapter.send(prepare())

        verify(self.transport, times=1).send(...)
        self.assertEqual(203, response.status_code)

    def test_live_response_remains_readable(self):
        self.answer(body=b'payload')
        adapter = self.build()

        response = adapter.send(prepare(), stream=True)

        self.assertEqual(b'payload', response.raw.read())
        self.assertEqual(b'payload', response.content)
        self.assertEqual([derive_key(capture_request(prepare()))], self.stored_files())

    def test_keyword_arguments_reach_the_transport(self):
        self.answer()
        adapter = self.build()
        request = prepare()

        adapter.send(request, timeout=5, stream=False, verify=True, cert=None, proxies={})

        verify(self.transport).send(request, timeout=5, stream=False, verify=True, cert=None, proxies={})

    def test_keyword_arguments_reach_the_transport_on_bypass(self):
        self.answer()
        adapter = self.build(domains=('example.org',))
        request = prepare()

        adapter.send(request, timeout=(1, 2))

        verify(self.transport).send(request, timeout=(1, 2))

    def test_forwarded_body_is_intact(self):
        seen = []

        def forward(request, **kw):
            seen.append(request.body.read())
            return live_response()

        when(self.transport).send(...).thenAnswer(forward)
        adapter = self.build()

        adapter.send(prepare('POST', data=BytesIO(b'uploaded bytes')))

        self.assertEqual([b'uploaded bytes'], seen)

    def test_requests_differing_in_body_are_cached_separately(self):
        when(self.transport).send(...).thenAnswer(
            lambda request, **kw: live_response(body=b'echo ' + request.body))
        adapter = self.build()

        adapter.send(prepare('POST', data=b'one'))
        adapter.send(prepare('POST', data=b'two'))
        one = adapter.send(prepare('POST', data=b'one'))
        two = adapter.send(prepare('POST', data=b'two'))

        verify(self.transport, times=2).send(...)
        self.assertEqual(b'echo one', one.content)
        self.assertEqual(b'echo two', two.content)
        self.assertEqual(2, len(self.stored_files()))

    def test_transport_failure_propagates(self):
        when(self.transport).send(...).thenRaise(requests.ConnectionError('unreachable'))
        adapter = self.build()

        with self.assertRaises(requests.ConnectionError):
            adapter.send(prepare())
        self.assertEqual([], self.stored_files())

    def test_unreadable_body_fails_the_request(self):
        class Broken:
            def read(self, size=-1):
                raise OSError('broken pipe')

        request = prepare('POST')
        request.body = Broken()
        adapter = self.build()

        with self.assertRaises(KeyDerivationError):
            adapter.send(request)
        verify(self.transport, times=0).send(...)

    def test_corrupt_entry_falls_back_to_a_live_fetch(self):
        key = derive_key(capture_request(prepare()))
        self.root.mkdir(parents=True)
        (self.root / key).write_bytes(b'HTTP/1.1 200 OK\r\nContent-Length: 100\r\n\r\ntruncated')
        self.answer(body=b'repaired')
        adapter = self.build()

        response = adapter.send(prepare())

        self.assertEqual(b'repaired', response.content)
        self.assertEqual(b'repaired', FileCache(self.root).load(key).response.body)

    def test_stored_error_responses_are_ignored(self):
        key = derive_key(capture_request(prepare()))
        self.root.mkdir(parents=True)
        (self.root / key).write_bytes(b'HTTP/1.1 500 Internal Server Error\r\nContent-Length: 0\r\n\r\n')
        self.answer()
        adapter = self.build()

        response = adapter.send(prepare())

        verify(self.transport, times=1).send(...)
        self.assertEqual(200, response.status_code)

    def test_encoded_bodies_are_stored_decoded(self):
        compressed = gzip.compress(b'decompressed text')
        when(self.transport).send(...).thenAnswer(lambda *args, **kw: live_response(
            body=compressed,
            headers={'Content-Encoding': 'gzip', 'Content-Length': str(len(compressed))}))
        adapter = self.build()

        live = adapter.send(prepare())
        cached = adapter.send(prepare())

        self.assertEqual(b'decompressed text', live.content)
        self.assertTrue(cached.from_cache)
        self.assertEqual(b'decompressed text', cached.content)
        self.assertNotIn('Content-Encoding', cached.headers)
        self.assertEqual(str(len(b'decompressed text')), cached.headers['Content-Length'])

    def test_repeated_headers_survive(self):
        when(self.transport).send(...).thenAnswer(lambda *args, **kw: live_response(
            headers=[('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2'), ('Content-Length', '5')]))
        adapter = self.build()

        adapter.send(prepare())
        cached = adapter.send(prepare())

        self.assertEqual(['a=1', 'b=2'], cached.raw.headers.getlist('Set-Cookie'))

    def test_encoding_is_taken_from_the_stored_headers(self):
        when(self.transport).send(...).thenAnswer(lambda *args, **kw: live_response(
            body='grüße'.encode('latin-1'),
            headers={'Content-Type': 'text/plain; charset=latin-1'}))
        adapter = self.build()

        adapter.send(prepare())
        cached = adapter.send(prepare())

        self.assertEqual('latin-1', cached.encoding)
        self.assertEqual('grüße', cached.text)

    def test_close_closes_the_transport(self):
        when(self.transport).close().thenReturn(None)

        self.build().close()

        verify(self.transport).close()


class TestWriteFailures(TestCase):
    def setUp(self):
        self.transport = mock(HTTPAdapter)
        self.cache = mock(Cache)
        when(self.transport).send(...).thenAnswer(lambda *args, **kw: live_response(body=b'unsaved'))
        when(self.cache).exists(...).thenReturn(False)
        when(self.cache).save(...).thenRaise(StoreWriteError(Path('cache', 'key'), OSError('disk full')))

    def tearDown(self):
        unstub()

    def build(self, raise_on_write_error: bool) -> CachedHTTPAdapter:
        config = CacheConfig(directory=Path('cache'), transport=self.transport,
                             raise_on_write_error=raise_on_write_error)
        return CachedHTTPAdapter(config, cache=self.cache)

    def test_write_failure_fails_the_request(self):
        with self.assertRaises(StoreWriteError):
            self.build(raise_on_write_error=True).send(prepare())

    def test_write_failure_can_be_tolerated(self):
        response = self.build(raise_on_write_error=False).send(prepare())

        self.assertEqual(200, response.status_code)
        self.assertEqual(b'unsaved', response.content)
        self.assertFalse(response.from_cache)


class TestCreate(TestCase):
    def test_create(self):
        transport = HTTPAdapter()
        adapter = create(Path('somewhere'), domains=['Example.com'], ttl=timedelta(minutes=5), transport=transport,
                         raise_on_write_error=False)

        self.assertIs(transport, adapter.config.transport)
        self.assertEqual(('example.com',), adapter.domain_filter.domains)
        self.assertEqual(timedelta(minutes=5), adapter.expiration.ttl)
        self.assertEqual(Path('somewhere'), adapter.cache.directory)
        self.assertFalse(adapter.config.raise_on_write_error)

    def test_create_defaults_to_a_real_transport(self):
        adapter = create('somewhere')

        self.assertIsInstance(adapter.config.transport, HTTPAdapter)
        self.assertEqual((), adapter.config.domains)
        self.assertEqual(timedelta(0), adapter.config.ttl)

    def test_mount(self):
        adapter = create('somewhere')
        session = mount(requests.Session(), adapter)

        self.assertIs(adapter, session.get_adapter('http://example.com'))
        self.assertIs(adapter, session.get_adapter('https://example.com'))
