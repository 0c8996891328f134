import json
import os
import tempfile
import threading

from abc import ABC, abstractmethod
from pathlib import Path

import pytest

from repocache.constants import DriverError
from repocache.drivers import Driver, JsonFileDriver, MemoryDriver, NullDriver, SQLDriver
from repocache.entities import Hit
from repocache.file_utils import _read_file, _write_atomic
from repocache.formatters import GeneralJSONEncoder, JsonFormatter

from .fetchers import FakeClock

@pytest.fixture
def clock():
    return FakeClock()

class DriverContract(ABC):
    """Base test class for all storage drivers."""

    @pytest.fixture
    @abstractmethod
    def driver(self, clock):
        """Default driver fixture that should be overridden by subclasses."""
        raise NotImplementedError("Subclasses must provide a driver fixture")

    def test_get_missing(self, driver: Driver):
        assert driver.get('nonexistent') is None

    def test_basic_get_set(self, driver: Driver, clock):
        """Test basic get/set, including the fingerprint and expiry."""
        driver.set('ns.key1', 'value1', clock() + 10, 'fp-1')
        hit = driver.get('ns.key1')
        assert isinstance(hit, Hit)
        assert hit.value == 'value1'
        assert hit.fingerprint == 'fp-1'
        assert hit.expires_at == clock() + 10

        # Test overwrite
        driver.set('ns.key1', {'a': [1, 2]}, clock() + 20)
        hit = driver.get('ns.key1')
        assert hit.value == {'a': [1, 2]}
        assert hit.fingerprint is None
        assert hit.expires_at == clock() + 20

    def test_none_value_is_a_hit(self, driver: Driver, clock):
        driver.set('ns.nothing', None, clock() + 10)
        hit = driver.get('ns.nothing')
        assert hit is not None
        assert hit.value is None

    def test_expiry(self, driver: Driver, clock):
        """Records are hits strictly before expires_at, and misses from then on."""
        driver.set('ns.key1', 'value1', clock() + 10)
        clock.advance(9.5)
        assert driver.get('ns.key1').value == 'value1'
        clock.advance(0.5)
        assert driver.get('ns.key1') is None
        assert driver.get_stats()['expired'] == 1

    def test_expired_record_stays_stored(self, driver: Driver, clock):
        driver.set('ns.key1', 'value1', clock() + 10)
        clock.advance(60)
        assert list(driver.iter_prefix('ns.')) == []
        keys = [key for key, _ in driver.iter_prefix('ns.', include_expired=True)]
        assert keys == ['ns.key1']

        # setting again brings it back
        driver.set('ns.key1', 'value2', clock() + 10)
        assert driver.get('ns.key1').value == 'value2'

    def test_delete(self, driver: Driver, clock):
        driver.set('ns.key1', 'value1', clock() + 10)
        driver.set('ns.key2', 'value2', clock() + 10)
        driver.delete('ns.key1')
        assert driver.get('ns.key1') is None
        assert driver.get('ns.key2').value == 'value2'

        # Delete nonexistent key should not raise
        driver.delete('nonexistent')

    def test_clear(self, driver: Driver, clock):
        driver.set('a.key1', 'value1', clock() + 10)
        driver.set('b.key2', 'value2', clock() + 10)
        driver.clear()
        assert driver.get('a.key1') is None
        assert driver.get('b.key2') is None
        assert list(driver.iter_prefix('', include_expired=True)) == []

    def test_iter_prefix_order(self, driver: Driver, clock):
        """Prefix listing is in insertion order, and overwriting keeps a key's position."""
        driver.set('a.1', 'one', clock() + 10)
        driver.set('b.1', 'other', clock() + 10)
        driver.set('a.2', 'two', clock() + 10)
        driver.set('a.3', 'three', clock() + 10)
        driver.set('a.1', 'uno', clock() + 10)
        items = [(key, hit.value) for key, hit in driver.iter_prefix('a.')]
        assert items == [('a.1', 'uno'), ('a.2', 'two'), ('a.3', 'three')]

    def test_stats(self, driver: Driver, clock):
        """Test hit/miss statistics."""
        assert driver.get('ns.key1') is None
        assert driver.get_stats()['misses'] == 1

        driver.set('ns.key1', 'value1', clock() + 10)
        assert driver.get('ns.key1').value == 'value1'
        stats = driver.get_stats()
        assert stats['misses'] == 1
        assert stats['hits'] == 1
        assert stats['sets'] == 1


class TestMemoryDriver(DriverContract):
    @pytest.fixture
    def driver(self, clock):
        return MemoryDriver(clock=clock)

    def test_instances_are_separate(self, driver, clock):
        driver.set('ns.key1', 'value1', clock() + 10)
        assert MemoryDriver(clock=clock).get('ns.key1') is None

    def test_concurrent_sets(self, driver, clock):
        """Concurrent writers never lose records or corrupt the store."""
        def writer(n):
            for i in range(100):
                driver.set(f'ns.{n}.{i}', i, clock() + 10)
                assert driver.get(f'ns.{n}.{i}').value == i

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(list(driver.iter_prefix('ns.'))) == 800
        assert driver.get_stats()['sets'] == 800

    def test_default_clock_is_wall_time(self):
        driver = MemoryDriver()
        driver.set('ns.key1', 'value1', driver.now() + 60)
        assert driver.get('ns.key1').value == 'value1'
        driver.set('ns.key2', 'value2', driver.now() - 1)
        assert driver.get('ns.key2') is None


class TestJsonFileDriver(DriverContract):
    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / 'cache' / 'records.json'

    @pytest.fixture
    def driver(self, path, clock):
        return JsonFileDriver(path, clock=clock)

    def test_persistence(self, driver, path, clock):
        """Records survive into a new driver instance reading the same file."""
        driver.set('ns.key1', 'value1', clock() + 10, 'fp')
        driver.set('ns.key2', [1, 2, 3], clock() + 20)
        reloaded = JsonFileDriver(path, clock=clock)
        assert reloaded.get('ns.key1') == Hit('value1', 'fp', clock() + 10)
        assert [key for key, _ in reloaded.iter_prefix('ns.')] == ['ns.key1', 'ns.key2']

    def test_file_contents(self, driver, path, clock):
        driver.set('ns.key1', 'value1', 100.0)
        assert json.loads(path.read_text()) == {
            'ns.key1': {'value': 'value1', 'expires_at': 100.0, 'fingerprint': None},
        }

    def test_corrupt_file(self, path, clock):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b'{not json')
        with pytest.raises(DriverError):
            JsonFileDriver(path, clock=clock)

    def test_unserializable_value(self, driver, path, clock):
        """A value the formatter can't write raises, and leaves the cache unchanged."""
        driver.set('ns.key1', 'value1', clock() + 10)
        with pytest.raises(TypeError):
            driver.set('ns.key2', object(), clock() + 10)
        assert driver.get('ns.key2') is None
        assert JsonFileDriver(path, clock=clock).get('ns.key2') is None


class TestSQLDriver(DriverContract):
    @pytest.fixture
    def driver(self, clock):
        driver = SQLDriver(clock=clock)
        yield driver
        driver.close()

    def test_persistence(self, tmp_path, clock):
        url = f'sqlite:///{tmp_path}/db/cache.sqlite'
        driver = SQLDriver(url, clock=clock)
        driver.set('ns.key1', {'x': 1}, clock() + 10, 'fp')
        driver.close()

        reloaded = SQLDriver(url, clock=clock)
        assert reloaded.get('ns.key1') == Hit({'x': 1}, 'fp', clock() + 10)
        reloaded.close()

    def test_prefix_is_not_a_pattern(self, driver, clock):
        """LIKE wildcards and case differences in a prefix don't match other keys."""
        driver.set('a_b.1', 'underscore', clock() + 10)
        driver.set('axb.1', 'x', clock() + 10)
        driver.set('A_B.1', 'upper', clock() + 10)
        driver.set('a%.1', 'percent', clock() + 10)
        assert [hit.value for _, hit in driver.iter_prefix('a_b.')] == ['underscore']
        assert [hit.value for _, hit in driver.iter_prefix('a%.')] == ['percent']

    def test_close_reaches_every_thread(self, driver, clock):
        """Connections opened by other threads are closed too."""
        writer = threading.Thread(target=driver.set, args=('ns.key1', 'value1', clock() + 10))
        writer.start()
        writer.join()
        assert driver.get('ns.key1').value == 'value1'
        conns = list(driver._conns)
        assert len(conns) == 2
        driver.close()
        assert all(conn.closed for conn in conns)
        assert driver._conns == []

    def test_custom_table(self, clock):
        driver = SQLDriver(table_name='other_cache', clock=clock)
        driver.set('ns.key1', 'value1', clock() + 10)
        assert driver.table.name == 'other_cache'
        assert driver.get('ns.key1').value == 'value1'
        driver.close()


class TestNullDriver:
    def test_never_stores(self, clock):
        driver = NullDriver(clock=clock)
        driver.set('ns.key1', 'value1', clock() + 10)
        assert driver.get('ns.key1') is None
        assert list(driver.iter_prefix('', include_expired=True)) == []
        driver.delete('ns.key1')
        driver.clear()
        assert driver.get_stats()['misses'] == 1


def test_write_atomic_creates_file():
    """Test that _write_atomic creates a file with the correct contents."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "new_dir" / "test.txt"
        data = b"test data"

        _write_atomic(path, data)

        assert path.exists()
        assert path.read_bytes() == data

        # Check no temporary files were left behind
        temp_files = [f for f in os.listdir(path.parent) if f.startswith("test.txt.")]
        assert not temp_files

def test_write_atomic_overwrites_existing(tmp_path):
    path = tmp_path / "test.txt"
    path.write_bytes(b"initial data")
    _write_atomic(path, b"new data")
    assert path.read_bytes() == b"new data"

def test_read_file(tmp_path):
    path = tmp_path / "test.txt"
    path.write_bytes(b"test data")
    assert _read_file(path) == b"test data"
    assert _read_file(tmp_path / "nonexistent.txt") is None

def test_read_file_other_errors_raise(tmp_path):
    """Only a missing file counts as empty; a directory in the way is an error."""
    with pytest.raises(OSError):
        _read_file(tmp_path)

# Formatter Tests
def test_json_formatter_basic():
    formatter = JsonFormatter()
    obj = {'a': 1, 'b': [2, 3], 'c': {'d': 4}}
    data = formatter.dumps(obj)
    assert isinstance(data, bytes)
    assert formatter.loads(data) == obj
    assert formatter.loads(data.decode('utf-8')) == obj

def test_json_formatter_general_types():
    """The default encoder handles sets and dataclasses."""
    formatter = JsonFormatter()
    obj = {'a': {3, 1, 2}, 'b': Hit('v', None, 1.5)}
    assert formatter.loads(formatter.dumps(obj)) == {
        'a': [1, 2, 3],
        'b': {'value': 'v', 'fingerprint': None, 'expires_at': 1.5},
    }

def test_json_formatter_invalid_input():
    formatter = JsonFormatter()
    with pytest.raises(json.JSONDecodeError):
        formatter.loads(b'invalid json')

    class UnserializableObject:
        pass

    with pytest.raises(TypeError):
        formatter.dumps(UnserializableObject())

def test_general_encoder_rejects_classes():
    """Dataclass *types* (as opposed to instances) aren't encoded."""
    with pytest.raises(TypeError):
        json.dumps(Hit, cls=GeneralJSONEncoder)
