"""
Tests for the local object store (app/storage/service.py).
"""

import io

import pytest

from app.storage import LocalObjectStorage, StorageError, SignedUrlExpired, SignedUrlInvalid


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path), 'unit-test-secret')


class TestLocalObjectStorage:

    def test_upload_and_resolve(self, storage, tmp_path):
        assert storage.upload('validations', '3/1700000000000_report.pdf', io.BytesIO(b'data')) == 4
        assert storage.exists('validations', '3/1700000000000_report.pdf')
        path = tmp_path / 'validations' / '3' / '1700000000000_report.pdf'
        assert path.read_bytes() == b'data'

    def test_upload_refuses_overwrite(self, storage):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        with pytest.raises(StorageError):
            storage.upload('validations', '1/a.txt', io.BytesIO(b'two'))
        storage.upload('validations', '1/a.txt', io.BytesIO(b'two'), upsert=True)

    def test_path_traversal_rejected(self, storage):
        with pytest.raises(StorageError):
            storage.resolve('validations', '../secrets.txt')

    def test_remove_skips_missing(self, storage):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        removed = storage.remove('validations', ['1/a.txt', '1/missing.txt'])
        assert removed == ['1/a.txt']
        assert not storage.exists('validations', '1/a.txt')

    def test_signed_token_round_trip(self, storage):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        token = storage.create_signed_url('validations', '1/a.txt', 60)
        assert storage.verify_signed_token(token) == ('validations', '1/a.txt')

    def test_expired_token(self, storage):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        token = storage.create_signed_url('validations', '1/a.txt', -1)
        with pytest.raises(SignedUrlExpired):
            storage.verify_signed_token(token)

    def test_tampered_token(self, storage):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        token = storage.create_signed_url('validations', '1/a.txt', 60)
        with pytest.raises(SignedUrlInvalid):
            storage.verify_signed_token(token[:-2] + 'xx')

    def test_other_secret_rejected(self, storage, tmp_path):
        storage.upload('validations', '1/a.txt', io.BytesIO(b'one'))
        token = storage.create_signed_url('validations', '1/a.txt', 60)
        other = LocalObjectStorage(str(tmp_path), 'another-secret')
        with pytest.raises(SignedUrlInvalid):
            other.verify_signed_token(token)

    def test_signed_url_for_missing_object(self, storage):
        with pytest.raises(StorageError):
            storage.create_signed_url('validations', '1/none.txt', 60)
