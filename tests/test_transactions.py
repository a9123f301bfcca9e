import pytest

from auditlog.models.repositories import RepositoryError, UserRepository
from auditlog.services.transactions import in_transaction, transactional_session


def test_nested_transaction_reuses_same_session():
    with transactional_session(name="outer") as outer_session:
        assert in_transaction()
        with transactional_session(name="nested") as nested_session:
            assert nested_session is outer_session
    assert not in_transaction()


def test_nested_transaction_rollback_on_repository_error():
    with pytest.raises(RepositoryError):
        with transactional_session(name="outer") as session:
            repo = UserRepository(session)
            repo.create_user(email="outer@example.com")
            with transactional_session(name="nested") as nested:
                nested_repo = UserRepository(nested)
                nested_repo.create_user(email="OUTER@example.com")

    with transactional_session(name="check") as session:
        repo = UserRepository(session)
        assert repo.get_by_email("outer@example.com") is None


def test_commit_is_visible_to_later_scopes():
    with transactional_session(name="write") as session:
        UserRepository(session).create_user(email="kept@example.com", name="K")

    with transactional_session(name="read") as session:
        user = UserRepository(session).get_by_email(" Kept@Example.com ")
        assert user is not None
        assert user.name == "K"
