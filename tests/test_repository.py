"""Repository test cases against an in-memory SQLite store."""
import pytest

from datacore.config import settings
from datacore.exceptions.errors import (
    DuplicateError,
    MalformedFilterError,
    NotFoundError,
    TransactionStateError,
    UnknownFieldError,
    UnsupportedOperatorError,
    ValidationError,
)
from datacore.filtering.sorting import SortDirection, Sorting
from datacore.repository.results import GetManyAndCountResult
from apps.identity.models import Tenant, User, UserStatus
from apps.identity.unit_of_work import IdentityUnitOfWork


class TestGetManyAndCount:
    """Test filtered, sorted, paginated reads."""

    def test_status_scenario(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.get_many_and_count("status:eq:Active", "id:asc", 1, 10)

        assert [u.id for u in result.items] == [1, 3]
        assert result.count == 2
        assert result.page_number == 1
        assert result.page_size == 10
        assert result.sorting == Sorting.by("id")

    def test_pages_partition_the_filtered_set(self, uow: IdentityUnitOfWork, many_users):
        expected = {u.id for u in many_users if u.status is UserStatus.ACTIVE}
        seen = []
        counts = set()
        for page in range(1, 5):
            result = uow.users.get_many_and_count("status:eq:Active", "id", page, 3)
            assert len(result.items) <= 3
            counts.add(result.count)
            seen.extend(u.id for u in result.items)

        assert counts == {len(expected)}
        assert len(seen) == len(set(seen))
        assert set(seen) == expected

    def test_page_beyond_last_is_empty(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.get_many_and_count(None, "id", 5, 10)
        assert result.items == []
        assert result.count == 3
        assert not result.has_next

    def test_sort_overrides_default_and_is_stable(self, uow: IdentityUnitOfWork, many_users):
        first = uow.users.get_many_and_count(None, "id", 1, 50, sort="age:desc")
        second = uow.users.get_many_and_count(None, "id", 1, 50, sort="age:desc")

        ordering = [(u.age, u.id) for u in first.items]
        assert [u.id for u in second.items] == [u.id for u in first.items]
        # Ties on age fall back to ascending id
        assert ordering == sorted(ordering, key=lambda pair: (-pair[0], pair[1]))
        assert first.sorting == Sorting.by("age", SortDirection.DESCENDING)

    def test_multi_key_sort(self, uow: IdentityUnitOfWork, many_users):
        result = uow.users.get_many_and_count(None, "id", 1, 50, sort="status,age:desc,username")
        keys = [(u.status.value, -u.age, u.username) for u in result.items]
        assert keys == sorted(keys)

    def test_pagination_is_forgiving(self, uow: IdentityUnitOfWork, many_users):
        result = uow.users.get_many_and_count(None, "id", 0, 0)
        assert result.page_number == 1
        assert result.page_size == settings.DEFAULT_PAGE_SIZE
        assert len(result.items) == 23

        result = uow.users.get_many_and_count(None, "id", -3, settings.MAX_PAGE_SIZE * 10)
        assert result.page_size == settings.MAX_PAGE_SIZE

    def test_quick_search(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.get_many_and_count(None, "id", search="BOB@")
        assert [u.username for u in result.items] == ["bob"]

        result = uow.users.get_many_and_count("status:eq:Active", "id", search="c", search_fields=["username"])
        assert [u.username for u in result.items] == ["cid"]

    def test_text_operators_push_down(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.get_many_and_count("email:endswith:EXAMPLE.COM;username:startswith:a", "id")
        assert [u.username for u in result.items] == ["ann"]

    def test_like_wildcards_are_literal(self, uow: IdentityUnitOfWork, status_users):
        uow.users.add(User(username="under_score", email="u@example.com"))
        result = uow.users.get_many_and_count("username:contains:_", "id")
        assert [u.username for u in result.items] == ["under_score"]

    def test_grammar_errors_surface(self, uow: IdentityUnitOfWork):
        with pytest.raises(MalformedFilterError):
            uow.users.get_many_and_count("age>>5", "id")
        with pytest.raises(UnknownFieldError):
            uow.users.get_many_and_count("nonexistent:eq:5", "id")
        with pytest.raises(UnknownFieldError):
            uow.users.get_many_and_count(None, "id", sort="nickname")
        with pytest.raises(UnsupportedOperatorError):
            uow.users.get_many_and_count("age:contains:1", "id")

    def test_from_query_string(self, uow: IdentityUnitOfWork, many_users):
        result = uow.users.get_many_and_count_from_query(
            "filter=status%3Aeq%3AActive&sort=id%3Adesc&pageNumber=2&pageSize=3"
        )
        active = sorted((u.id for u in many_users if u.status is UserStatus.ACTIVE), reverse=True)

        assert result.count == len(active)
        assert [u.id for u in result.items] == active[3:6]
        assert result.page_number == 2

    def test_from_legacy_query_string(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.get_many_and_count_from_query("sortBy=username&sortDirection=desc&query=a")
        # Every address contains "a" (example.com)
        assert [u.username for u in result.items] == ["cid", "bob", "ann"]
        assert result.sorting == Sorting.by("username", SortDirection.DESCENDING)

    def test_read_only_repository_default_sort(self, uow: IdentityUnitOfWork, status_users):
        uow.users.add(User(id=10, username="aaron", email="aaron@example.com"))
        result = uow.user_directory.get_many_and_count()
        assert [u.username for u in result.items] == ["aaron", "ann", "bob", "cid"]


class TestReads:
    """Test non-paginated reads."""

    def test_get_and_count(self, uow: IdentityUnitOfWork, status_users):
        assert uow.users.get(2).username == "bob"
        assert uow.users.get(99) is None
        assert uow.users.count() == 3
        assert len(uow.users.get_all()) == 3

    def test_find_with_built_predicate(self, uow: IdentityUnitOfWork, status_users):
        predicate = uow.users.predicate_builder.build(uow.users.filter_parser.parse("age:lt:40"))
        assert [u.id for u in uow.users.find(predicate)] == [1, 3]
        assert uow.users.count(predicate) == 2

    def test_find_with_plain_callable(self, uow: IdentityUnitOfWork, status_users):
        assert [u.id for u in uow.users.find(lambda u: u.age > 30)] == [1, 2]
        assert uow.users.count(lambda u: u.username.endswith("b")) == 1

    def test_find_one(self, uow: IdentityUnitOfWork, status_users):
        assert uow.users.get_by_username("cid").id == 3
        assert uow.users.get_by_username("zed") is None
        with pytest.raises(UnknownFieldError):
            uow.users.find_one(nickname="x")


class TestWrites:
    """Test validate-then-persist writes."""

    def test_add_assigns_id_and_persists(self, uow: IdentityUnitOfWork):
        user = uow.users.add(User(username="dora", email="dora@example.com"))
        assert user.id is not None
        assert uow.users.count() == 1

    def test_add_duplicate_unique_key_writes_nothing(self, uow: IdentityUnitOfWork, status_users):
        before = uow.users.count()
        with pytest.raises(DuplicateError) as exc_info:
            uow.users.add(User(username="ann", email="other@example.com"))
        assert exc_info.value.key == {"username": "ann"}
        assert uow.users.count() == before

    def test_add_duplicate_id(self, uow: IdentityUnitOfWork, status_users):
        with pytest.raises(DuplicateError) as exc_info:
            uow.users.add(User(id=1, username="new", email="new@example.com"))
        assert exc_info.value.key == {"id": 1}
        assert uow.users.count() == 3

    def test_validation_failure_writes_nothing(self, uow: IdentityUnitOfWork):
        with pytest.raises(ValidationError) as exc_info:
            uow.users.add(User(username=" ", email="nope", age=200))

        fields = [error.field for error in exc_info.value.field_errors]
        assert fields == ["username", "email", "age"]
        assert exc_info.value.status_code == 422
        assert uow.users.count() == 0

    def test_try_add_returns_typed_failure(self, uow: IdentityUnitOfWork, status_users):
        result = uow.users.try_add(User(username="ann", email="ann2@example.com"))
        assert not result.ok
        assert isinstance(result.error, DuplicateError)
        with pytest.raises(DuplicateError):
            result.unwrap()

        result = uow.users.try_add(User(username="eve", email="eve@example.com"))
        assert result.ok
        assert result.unwrap().username == "eve"

    def test_save_upserts(self, uow: IdentityUnitOfWork):
        user = uow.users.save(User(username="fay", email="fay@example.com"))
        assert uow.users.count() == 1

        user.email = "fay@corp.io"
        uow.users.save(user)
        assert uow.users.count() == 1
        assert uow.users.get(user.id).email == "fay@corp.io"

    def test_save_detached_copy_updates(self, uow: IdentityUnitOfWork, status_users):
        uow.users.save(User(id=2, username="bob", email="bob@new.io", status=UserStatus.SUSPENDED))
        assert uow.users.get(2).email == "bob@new.io"
        assert uow.users.count() == 3

    def test_save_validates(self, uow: IdentityUnitOfWork, status_users):
        user = uow.users.get(1)
        user.email = "invalid"
        result = uow.users.try_save(user)
        assert not result.ok
        assert isinstance(result.error, ValidationError)

    def test_delete(self, uow: IdentityUnitOfWork, status_users):
        uow.users.delete(uow.users.get(2))
        assert uow.users.count() == 2

        with pytest.raises(NotFoundError) as exc_info:
            uow.users.delete(User(id=2, username="bob", email="bob@example.com"))
        assert exc_info.value.id == 2

    def test_tenant_repository(self, uow: IdentityUnitOfWork, sample_tenant: Tenant):
        assert uow.tenants.get_by_name("test_tenant").id == sample_tenant.id
        with pytest.raises(DuplicateError):
            uow.tenants.add(Tenant(name="test_tenant"))
        with pytest.raises(ValidationError):
            uow.tenants.add(Tenant(name="other", max_users=0))


class TestRepositoryLifetime:
    """Test repository binding to its unit of work."""

    def test_repository_unusable_after_dispose(self, uow: IdentityUnitOfWork, status_users):
        users = uow.users
        uow.dispose()
        with pytest.raises(TransactionStateError):
            users.count()

    def test_result_rejects_oversized_page(self):
        with pytest.raises(Exception):
            GetManyAndCountResult(items=[1, 2, 3], count=3, page_number=1, page_size=2, sorting=Sorting.by("id"))

    def test_result_total_pages(self):
        result = GetManyAndCountResult(items=[1, 2], count=5, page_number=1, page_size=2, sorting=Sorting.by("id"))
        assert result.total_pages == 3
        assert result.has_next
